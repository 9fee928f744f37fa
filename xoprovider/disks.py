"""Disk helpers: hashing, diffing, sorting and conversion to attribute blocks."""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Mapping
from typing import Any

from xoprovider.models import DEFAULT_CLOUD_CONFIG_DISK_NAME, Disk

_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)


class DiskAction(enum.IntEnum):
    """A change to an existing disk that can be made without recreating it."""

    NAME_DESCRIPTION_UPDATE = 0
    NAME_LABEL_UPDATE = 1
    ATTACHMENT_UPDATE = 2


def _position_number(text: str) -> int:
    if isinstance(text, str) and _INTEGER.fullmatch(text):
        return int(text)
    return 0


def disk_hash(value: Disk | Mapping[str, Any]) -> int:
    """Hash a disk or a disk block by label, description, SR, size and attachment."""
    if isinstance(value, Disk):
        sr_id, label, description, size, attached = (
            value.sr_id,
            value.name_label,
            value.name_description,
            value.size,
            value.attached,
        )
    elif isinstance(value, Mapping):
        sr_id = value["sr_id"]
        label = value["name_label"]
        description = value["name_description"]
        size = value["size"]
        attached = value["attached"]
    else:
        raise TypeError(f"disk cannot be hashed with type {type(value).__name__}")
    key = f"{label}-{description}-{sr_id}-{size}-{'true' if attached else 'false'}"
    return hash(("disk", key)) & 0x7FFFFFFFFFFFFFFF


def _find_by_id(disk: Disk, disks: Iterable[Disk]) -> Disk | None:
    found = None
    for candidate in disks:
        if candidate.id == disk.id:
            found = candidate
    return found


def get_update_disk_actions(disk: Disk, disks: Iterable[Disk]) -> list[DiskAction]:
    """List the in-place changes that turn the matching disk into ``disk``."""
    found = _find_by_id(disk, disks)
    if found is None:
        return []
    actions = []
    if found.name_label != disk.name_label:
        actions.append(DiskAction.NAME_LABEL_UPDATE)
    if found.name_description != disk.name_description:
        actions.append(DiskAction.NAME_DESCRIPTION_UPDATE)
    if found.attached != disk.attached:
        actions.append(DiskAction.ATTACHMENT_UPDATE)
    return actions


def should_update_disk(disk: Disk, disks: Iterable[Disk]) -> bool:
    """Whether ``disk`` differs from the disk with its id only in attachment."""
    found = _find_by_id(disk, disks)
    if found is None:
        return False
    flipped = Disk(**{**vars(found), "attached": not found.attached})
    return disk_hash(flipped) == disk_hash(disk)


def sort_disks_by_position(disks: Iterable[Disk]) -> list[Disk]:
    return sorted(disks, key=lambda disk: _position_number(disk.position))


def sort_disk_maps_by_position(
    disks: Iterable[Mapping[str, Any]],
) -> list[Mapping[str, Any]]:
    return sorted(disks, key=lambda disk: _position_number(disk["position"]))


def disks_to_map_list(disks: Iterable[Disk]) -> list[dict[str, Any]]:
    """Turn disks into disk blocks, leaving out the cloud config drive."""
    result = [
        {
            "attached": disk.attached,
            "vbd_id": disk.id,
            "vdi_id": disk.vdi_id,
            "position": disk.position,
            "name_label": disk.name_label,
            "name_description": disk.name_description,
            "size": disk.size,
            "sr_id": disk.sr_id,
        }
        for disk in disks
        if disk.name_label != DEFAULT_CLOUD_CONFIG_DISK_NAME
    ]
    return sort_disk_maps_by_position(result)


def cdroms_to_map_list(disks: Iterable[Disk]) -> list[dict[str, Any]]:
    return [{"id": disk.vdi_id} for disk in disks]


def expand_disks(disks: Iterable[Mapping[str, Any]]) -> list[Disk]:
    """Turn disk blocks into disks."""
    return [
        Disk(
            id=data.get("vbd_id", ""),
            attached=data.get("attached", False),
            vdi_id=data.get("vdi_id", ""),
            name_label=data.get("name_label", ""),
            name_description=data.get("name_description", ""),
            sr_id=data.get("sr_id", ""),
            size=data.get("size", 0),
        )
        for data in disks
    ]