"""Network interface helpers: MAC formatting, guest IPs, VIF hashing and diffing."""

from __future__ import annotations

import logging
import re
import zlib
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from xoprovider.models import VIF
from xoprovider.schema import parse_mac

log = logging.getLogger(__name__)

_IP_KEY = re.compile(r"(\d+)/(ip(?:v4|v6)?)(?:/(\d+))?", re.ASCII)
_INTEGER = re.compile(r"[+-]?\d+", re.ASCII)

GuestNetwork = dict[str, list[str]]


def _atoi(text: str) -> int:
    """Parse a decimal integer, treating anything unparsable as 0."""
    if isinstance(text, str) and _INTEGER.fullmatch(text):
        return int(text)
    return 0


def get_formatted_mac(mac_address: str) -> str:
    """Return the MAC address in lower-case colon form; empty stays empty.

    Raises ValueError when the address cannot be parsed.
    """
    if mac_address == "":
        return mac_address
    try:
        return parse_mac(mac_address)
    except ValueError:
        raise ValueError(
            f"Mac address `{mac_address}` was not parsable and should have been "
            "validated before reaching this point"
        ) from None


def extract_ips_from_networks(networks: Mapping[str, str]) -> list[GuestNetwork]:
    """Group guest-tools addresses such as ``0/ipv4/1`` by interface number.

    Each element of the result maps ``ip``, ``ipv4`` or ``ipv6`` to the
    addresses of that interface, in sorted key order.
    """
    if not networks:
        return []

    keys = sorted(networks)
    if _IP_KEY.fullmatch(keys[-1]) is None:
        raise ValueError(f"unexpected guest network key: {keys[-1]!r}")

    devices: list[GuestNetwork] = []
    for key in keys:
        match = _IP_KEY.fullmatch(key)
        if match is None:
            continue
        device = int(match.group(1))
        proto = match.group(2)
        while len(devices) <= device:
            devices.append({})
        devices[device].setdefault(proto, []).append(networks[key])

    log.debug("Extracted the following network interface ips: %s", devices)
    return devices


def vif_hash(value: VIF | Mapping[str, Any]) -> int:
    """Hash a VIF or a network block by MAC, network, device and attachment."""
    if isinstance(value, VIF):
        mac, network, device, attached = (
            value.mac_address,
            value.network,
            value.device,
            value.attached,
        )
    elif isinstance(value, Mapping):
        mac = value["mac_address"]
        network = value["network_id"]
        device = value["device"]
        attached = value["attached"]
    else:
        raise TypeError(f"can't hash type {type(value).__name__}")

    key = f"{mac}-{network}-{device}-{str(bool(attached)).lower()}"
    log.debug("Using the following as input to the VIF hash function: %s", key)
    return zlib.crc32(key.encode())


def should_update_vif(vif: VIF, vifs: Iterable[VIF]) -> tuple[bool, bool]:
    """Decide whether ``vif`` differs from its counterpart only in attachment.

    Returns ``(should_update, should_attach)``.
    """
    found: VIF | None = None
    for candidate in vifs:
        if candidate.id == vif.id or candidate.mac_address == vif.mac_address:
            found = candidate

    if found is None:
        return False, False

    flipped = VIF(
        id=found.id,
        attached=not found.attached,
        device=found.device,
        network=found.network,
        mac_address=found.mac_address,
        vm_id=found.vm_id,
    )
    if vif_hash(vif) == vif_hash(flipped):
        return True, vif.attached
    return False, False


def sort_networks_by_device(networks: Iterable[VIF]) -> list[VIF]:
    return sorted(networks, key=lambda vif: _atoi(vif.device))


def sort_network_maps_by_device(
    networks: Iterable[Mapping[str, Any]],
) -> list[Mapping[str, Any]]:
    return sorted(networks, key=lambda network: _atoi(network["device"]))


def vifs_to_map_list(
    vifs: Iterable[VIF], guest_networks: Sequence[Mapping[str, list[str]]]
) -> list[dict[str, Any]]:
    """Turn VIFs into network blocks, adding the guest's addresses per device."""
    result = []
    for vif in vifs:
        device = _atoi(vif.device)
        ipv4: list[str] = []
        ipv6: list[str] = []
        if 0 <= device < len(guest_networks):
            ipv4 = list(guest_networks[device].get("ipv4", []))
            ipv6 = list(guest_networks[device].get("ipv6", []))
        result.append(
            {
                "attached": vif.attached,
                "device": vif.device,
                "mac_address": vif.mac_address,
                "network_id": vif.network,
                "ipv4_addresses": ipv4,
                "ipv6_addresses": ipv6,
            }
        )
    return sort_network_maps_by_device(result)


def expand_networks(networks: Iterable[Mapping[str, Any]]) -> list[VIF]:
    """Turn network blocks into VIFs with normalised MAC addresses."""
    return [
        VIF(
            attached=network.get("attached", False),
            device=network.get("device", ""),
            network=network.get("network_id", ""),
            mac_address=get_formatted_mac(network.get("mac_address", "")),
        )
        for network in networks
    ]