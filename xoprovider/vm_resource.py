"""Create, read, update, delete and import of the VM resource."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from xoprovider.disks import (
    DiskAction,
    cdroms_to_map_list,
    disk_hash,
    disks_to_map_list,
    expand_disks,
    get_update_disk_actions,
    sort_disks_by_position,
)
from xoprovider.models import RUNNING, VIF, Disk, Installation, NotFound, Vm, XOClient
from xoprovider.networks import (
    expand_networks,
    extract_ips_from_networks,
    get_formatted_mac,
    should_update_vif,
    sort_networks_by_device,
    vif_hash,
    vifs_to_map_list,
)
from xoprovider.state import ResourceData

log = logging.getLogger(__name__)

_NETWORK_BLOCK_DEFAULTS = {
    "attached": True,
    "device": "",
    "network_id": "",
    "mac_address": "",
}

_DISK_BLOCK_DEFAULTS = {
    "attached": True,
    "vbd_id": "",
    "vdi_id": "",
    "position": "",
    "name_label": "",
    "name_description": "",
    "sr_id": "",
    "size": 0,
}


def _value(data: ResourceData, key: str, empty: Any) -> Any:
    value = data.get(key)
    return empty if value is None else value


def _blocks(value: Any, defaults: Mapping[str, Any]) -> list[dict[str, Any]]:
    return [{**defaults, **block} for block in (value or [])]


def _keyed(blocks: Iterable[Mapping[str, Any]], hasher) -> dict[int, Mapping[str, Any]]:
    return {hasher(block): block for block in blocks}


def _difference(
    left: dict[int, Mapping[str, Any]], right: dict[int, Mapping[str, Any]]
) -> list[Mapping[str, Any]]:
    return [block for key, block in left.items() if key not in right]


def _as_set(value: Any) -> frozenset:
    return frozenset(value or ())


def _fetch_and_record(client: XOClient, vm: Vm, data: ResourceData) -> None:
    vifs = client.get_vifs(vm)
    disks = client.get_disks(vm)
    cdroms = client.get_cdroms(vm)
    record_to_data(vm, vifs, disks, cdroms, data)


def create_vm(data: ResourceData, client: XOClient) -> None:
    """Create the VM described by ``data`` and record what was created."""
    vifs_map = []
    for network in data.get("network") or []:
        entry = {"network": network["network_id"]}
        mac = network.get("mac_address") or ""
        if mac:
            entry["mac"] = get_formatted_mac(mac)
        vifs_map.append(entry)

    disks = [
        Disk(
            sr_id=disk["sr_id"],
            name_label=disk["name_label"],
            name_description=disk.get("name_description") or "",
            size=disk["size"],
        )
        for disk in data.get("disk") or []
    ]

    cds = [cd["id"] for cd in data.get("cdrom") or []]
    installation = Installation()
    if cds:
        installation = Installation(method="cdrom", repository=cds[0])
    if _value(data, "installation_method", ""):
        installation = Installation(method="network")

    blocked_operations = {op: "true" for op in sorted(_as_set(data.get("blocked_operations")))}

    resource_set, has_resource_set = data.get_ok("resource_set")

    params = Vm(
        blocked_operations=blocked_operations,
        boot_firmware=_value(data, "hvm_boot_firmware", ""),
        destroy_cloud_config_vdi_after_boot=_value(data, "destroy_cloud_config_vdi_after_boot", False),
        exp_nested_hvm=_value(data, "exp_nested_hvm", False),
        name_label=_value(data, "name_label", ""),
        name_description=_value(data, "name_description", ""),
        template=_value(data, "template", ""),
        cloud_config=_value(data, "cloud_config", ""),
        resource_set=resource_set if has_resource_set else None,
        high_availability=_value(data, "high_availability", ""),
        auto_poweron=_value(data, "auto_poweron", False),
        cpus=_value(data, "cpus", 0),
        cloud_network_config=_value(data, "cloud_network_config", ""),
        memory_static=[0, _value(data, "memory_max", 0)],
        tags=sorted(_as_set(data.get("tags"))),
        disks=disks,
        installation=installation,
        vifs_map=vifs_map,
        start_delay=_value(data, "start_delay", 0),
        wait_for_ips=_value(data, "wait_for_ip", False),
        videoram=_value(data, "videoram", 0),
        vga=_value(data, "vga", ""),
    )
    affinity_host = _value(data, "affinity_host", "")
    if affinity_host:
        params.affinity_host = affinity_host

    vm = client.create_vm(params, data.timeout("create"))
    _fetch_and_record(client, vm, data)


def read_vm(data: ResourceData, client: XOClient) -> None:
    """Refresh ``data`` from the VM; clear the id if the VM is gone."""
    try:
        vm = client.get_vm(Vm(id=data.id))
    except NotFound:
        data.id = ""
        return
    _fetch_and_record(client, vm, data)


def _update_networks(data: ResourceData, client: XOClient, vm: Vm) -> None:
    old, new = data.get_change("network")
    old_set = _keyed(_blocks(old, _NETWORK_BLOCK_DEFAULTS), vif_hash)
    new_set = _keyed(_blocks(new, _NETWORK_BLOCK_DEFAULTS), vif_hash)

    removals = _difference(old_set, new_set)
    log.debug("Found the following network removals: %s", removals)
    new_vifs = expand_networks(new_set.values())
    for removal in expand_networks(removals):
        # Attachment-only changes are handled with the additions.
        update, _ = should_update_vif(removal, new_vifs)
        if not update:
            client.delete_vif(removal)

    additions = _difference(new_set, old_set)
    log.debug("Found the following network additions: %s", additions)
    old_vifs = expand_networks(old_set.values())
    for addition in sort_networks_by_device(expand_networks(additions)):
        update, attach = should_update_vif(addition, old_vifs)
        if not update:
            client.create_vif(vm, addition)
        elif attach:
            client.connect_vif(addition)
        else:
            client.disconnect_vif(addition)


def _update_disks(data: ResourceData, client: XOClient, vm: Vm) -> None:
    old, new = data.get_change("disk")
    old_set = _keyed(_blocks(old, _DISK_BLOCK_DEFAULTS), disk_hash)
    new_set = _keyed(_blocks(new, _DISK_BLOCK_DEFAULTS), disk_hash)

    removals = _difference(old_set, new_set)
    log.debug("Found the following disk removals: %s", removals)
    new_disks = expand_disks(new_set.values())
    for removal in expand_disks(removals):
        if get_update_disk_actions(removal, new_disks):
            continue
        client.delete_disk(vm, removal)

    additions = _difference(new_set, old_set)
    log.debug("Found the following disk additions: %s", additions)
    old_disks = expand_disks(old_set.values())
    for disk in sort_disks_by_position(expand_disks(additions)):
        actions = get_update_disk_actions(disk, old_disks)
        log.debug("Found %s disk update actions", actions)
        if not actions:
            client.create_disk(vm, disk)
            continue
        for action in actions:
            perform_disk_update_action(client, action, disk)


def update_vm(data: ResourceData, client: XOClient) -> None:
    """Apply the planned changes in ``data`` to the VM, then refresh ``data``."""
    vm_id = data.id
    affinity_host = _value(data, "affinity_host", "")
    resource_set = None
    if data.has_change("resource_set"):
        resource_set = _value(data, "resource_set", "")
    memory_max = _value(data, "memory_max", 0)

    vm = client.get_vm(Vm(id=vm_id))

    if data.has_change("network"):
        _update_networks(data, client, vm)

    if data.has_change("cdrom"):
        old_cds, new_cds = data.get_change("cdrom")
        for _ in old_cds or []:
            client.eject_cd(vm_id)
        for cd in new_cds or []:
            client.insert_cd(vm_id, cd["id"])

    if data.has_change("disk"):
        _update_disks(data, client, vm)

    _, new_cpus = data.get_change("cpus")
    halt_for_updates = data.has_change("cpus") and (new_cpus or 0) > vm.cpus_max
    if data.has_change("memory_max"):
        halt_for_updates = True

    blocked_operations: dict[str, str] = {}
    if data.has_change("blocked_operations"):
        old_ops, new_ops = (_as_set(v) for v in data.get_change("blocked_operations"))
        for removal in sorted(old_ops - new_ops):
            blocked_operations[removal] = "false"
        for addition in sorted(new_ops - old_ops):
            blocked_operations[addition] = "true"

    request = Vm(
        id=vm_id,
        cpus=_value(data, "cpus", 0),
        memory_static=[0, memory_max],
        name_label=_value(data, "name_label", ""),
        name_description=_value(data, "name_description", ""),
        high_availability=_value(data, "high_availability", ""),
        resource_set=resource_set,
        auto_poweron=_value(data, "auto_poweron", False),
        blocked_operations=blocked_operations,
        exp_nested_hvm=_value(data, "exp_nested_hvm", False),
        start_delay=_value(data, "start_delay", 0),
        vga=_value(data, "vga", ""),
        boot_firmware=_value(data, "hvm_boot_firmware", ""),
        videoram=_value(data, "videoram", 0),
    )
    if data.has_change("affinity_host"):
        request.affinity_host = affinity_host

    if halt_for_updates:
        client.halt_vm(vm_id)
    try:
        updated = client.update_vm(request)
    finally:
        if halt_for_updates:
            client.start_vm(vm_id)
    log.debug("Retrieved vm after update: %s", updated)

    if data.has_change("tags"):
        old_tags, new_tags = (_as_set(v) for v in data.get_change("tags"))
        for removal in sorted(old_tags - new_tags):
            client.remove_tag(vm_id, removal)
        for addition in sorted(new_tags - old_tags):
            client.add_tag(vm_id, addition)

    read_vm(data, client)


def delete_vm(data: ResourceData, client: XOClient) -> None:
    client.delete_vm(data.id)
    data.id = ""


def import_vm(data: ResourceData, client: XOClient) -> list[ResourceData]:
    """Fill ``data`` from the existing VM with its id."""
    vm = client.get_vm(Vm(id=data.id))
    _fetch_and_record(client, vm, data)
    return [data]


def record_to_data(
    vm: Vm,
    vifs: Iterable[VIF],
    disks: Iterable[Disk],
    cdroms: Iterable[Disk],
    data: ResourceData,
) -> None:
    """Store the VM and its devices into ``data``."""
    data.id = vm.id
    if len(vm.memory_dynamic) == 2:
        data.set("memory_max", vm.memory_dynamic[1])
    else:
        log.warning(
            "Expected the VM's memory limits to have two values, %s found instead",
            vm.memory_dynamic,
        )

    data.set("cpus", vm.cpus)
    data.set("name_label", vm.name_label)
    data.set("affinity_host", vm.affinity_host or "")
    data.set("name_description", vm.name_description)
    data.set("high_availability", vm.high_availability)
    data.set("auto_poweron", vm.auto_poweron)
    data.set("resource_set", vm.resource_set or "")
    data.set("power_state", vm.power_state)
    data.set("hvm_boot_firmware", vm.boot_firmware)
    data.set("exp_nested_hvm", vm.exp_nested_hvm)
    data.set("vga", vm.vga)
    data.set("videoram", vm.videoram)
    data.set("start_delay", vm.start_delay)
    data.set("tags", list(vm.tags))
    data.set("blocked_operations", blocked_operations_to_list(vm))

    log.debug("Found the following ip addresses: %s", vm.addresses)
    network_ips = extract_ips_from_networks(vm.addresses)
    data.set("network", vifs_to_map_list(vifs, network_ips))
    data.set("disk", disks_to_map_list(disks))
    data.set("cdrom", cdroms_to_map_list(cdroms))

    for proto in ("ipv4", "ipv6"):
        addresses = [ip for device in network_ips for ip in device.get(proto, [])]
        data.set(f"{proto}_addresses", addresses)


def blocked_operations_to_list(vm: Vm) -> list[str]:
    return sorted(vm.blocked_operations)


def perform_disk_update_action(client: XOClient, action: DiskAction, disk: Disk) -> None:
    """Carry out one in-place disk change."""
    if action == DiskAction.ATTACHMENT_UPDATE:
        if disk.attached:
            client.connect_disk(disk)
        else:
            client.disconnect_disk(disk)
    elif action in (DiskAction.NAME_DESCRIPTION_UPDATE, DiskAction.NAME_LABEL_UPDATE):
        client.update_vdi(disk)
    else:
        raise ValueError(f"disk update action '{action}' not handled")


def suppress_attached_diff_when_halted(key: str, old: str, new: str, data: ResourceData) -> bool:
    """Attachment changes only matter while the VM is running."""
    power_state = data.get("power_state")
    suppress = power_state != RUNNING
    log.debug(
        "VM '%s' attribute has transitioned from '%s' to '%s' when PowerState '%s'. "
        "Suppress diff: %s",
        key,
        old,
        new,
        power_state,
        suppress,
    )
    return suppress