"""Xen Orchestra object records and an in-memory client."""

from __future__ import annotations

import copy
import itertools
from dataclasses import dataclass, field, replace
from datetime import timedelta

DEFAULT_CLOUD_CONFIG_DISK_NAME = "XO CloudConfigDrive"

RUNNING = "Running"
HALTED = "Halted"


class NotFound(LookupError):
    """Raised when a requested object does not exist."""


@dataclass
class Disk:
    """A VM disk: the block device (VBD) together with its image (VDI)."""

    id: str = ""
    attached: bool = False
    position: str = ""
    vm_id: str = ""
    vdi_id: str = ""
    sr_id: str = ""
    name_label: str = ""
    name_description: str = ""
    size: int = 0


@dataclass
class VIF:
    """A virtual network interface."""

    id: str = ""
    attached: bool = False
    device: str = ""
    network: str = ""
    mac_address: str = ""
    vm_id: str = ""


@dataclass
class Installation:
    """How the operating system of a new VM gets installed."""

    method: str = ""
    repository: str = ""


@dataclass
class Vm:
    """A virtual machine as seen by Xen Orchestra."""

    id: str = ""
    name_label: str = ""
    name_description: str = ""
    template: str = ""
    cloud_config: str = ""
    cloud_network_config: str = ""
    affinity_host: str | None = None
    resource_set: str | None = None
    blocked_operations: dict[str, str] = field(default_factory=dict)
    boot_firmware: str = ""
    cpus: int = 0
    cpus_max: int = 0
    memory_static: list[int] = field(default_factory=list)
    memory_dynamic: list[int] = field(default_factory=list)
    destroy_cloud_config_vdi_after_boot: bool = False
    exp_nested_hvm: bool = False
    high_availability: str = ""
    auto_poweron: bool = False
    tags: list[str] = field(default_factory=list)
    disks: list[Disk] = field(default_factory=list)
    installation: Installation = field(default_factory=Installation)
    vifs_map: list[dict[str, str]] = field(default_factory=list)
    start_delay: int = 0
    wait_for_ips: bool = False
    videoram: int = 0
    vga: str = ""
    power_state: str = ""
    addresses: dict[str, str] = field(default_factory=dict)
    vifs: list[str] = field(default_factory=list)


class XOClient:
    """Xen Orchestra client that keeps its objects in memory."""

    def __init__(self) -> None:
        self._vms: dict[str, Vm] = {}
        self._vifs: dict[str, VIF] = {}
        self._disks: dict[str, Disk] = {}
        self._cdroms: dict[str, list[Disk]] = {}
        self._ids = itertools.count(1)

    def _new_id(self, kind: str) -> str:
        return f"{kind}-{next(self._ids)}"

    def _stored_vm(self, vm_id: str) -> Vm:
        try:
            return self._vms[vm_id]
        except KeyError:
            raise NotFound(f"vm {vm_id!r} not found") from None

    def _find_vif(self, vif: VIF) -> VIF:
        if vif.id in self._vifs:
            return self._vifs[vif.id]
        if vif.mac_address:
            for stored in self._vifs.values():
                if stored.mac_address == vif.mac_address:
                    return stored
        raise NotFound(f"vif {vif.id or vif.mac_address!r} not found")

    def _find_disk(self, disk: Disk) -> Disk:
        if disk.id in self._disks:
            return self._disks[disk.id]
        if disk.vdi_id:
            for stored in self._disks.values():
                if stored.vdi_id == disk.vdi_id:
                    return stored
        raise NotFound(f"disk {disk.id or disk.vdi_id!r} not found")

    # VMs

    def create_vm(self, vm: Vm, timeout: timedelta) -> Vm:
        """Create a VM with its interfaces, disks and install media."""
        if timeout <= timedelta(0):
            raise TimeoutError(
                f"timeout while waiting for state to become '{RUNNING}'"
            )
        stored = copy.deepcopy(vm)
        stored.id = self._new_id("vm")
        stored.cpus_max = max(stored.cpus_max, stored.cpus)
        stored.memory_dynamic = list(stored.memory_static)
        stored.power_state = RUNNING
        stored.disks = []
        stored.vifs = []
        self._vms[stored.id] = stored
        self._cdroms[stored.id] = []

        for entry in vm.vifs_map:
            self.create_vif(
                stored,
                VIF(network=entry["network"], mac_address=entry.get("mac", ""), attached=True),
            )
        for disk in vm.disks:
            self.create_disk(stored, replace(disk, attached=True))
        if vm.cloud_config and not vm.destroy_cloud_config_vdi_after_boot:
            sr_id = vm.disks[0].sr_id if vm.disks else ""
            self.create_disk(
                stored,
                Disk(attached=True, name_label=DEFAULT_CLOUD_CONFIG_DISK_NAME, sr_id=sr_id),
            )
        if vm.installation.method == "cdrom":
            self.insert_cd(stored.id, vm.installation.repository)
        return copy.deepcopy(stored)

    def get_vm(self, vm: Vm) -> Vm:
        """Look a VM up by id, or by name label when no id is given."""
        if vm.id:
            return copy.deepcopy(self._stored_vm(vm.id))
        if vm.name_label:
            for stored in self._vms.values():
                if stored.name_label == vm.name_label:
                    return copy.deepcopy(stored)
        raise NotFound(f"vm {vm.id or vm.name_label!r} not found")

    def update_vm(self, vm: Vm) -> Vm:
        """Apply the mutable settings of ``vm`` to the stored VM."""
        stored = self._stored_vm(vm.id)
        stored.name_label = vm.name_label
        stored.name_description = vm.name_description
        stored.cpus = vm.cpus
        stored.cpus_max = max(stored.cpus_max, vm.cpus)
        stored.memory_static = list(vm.memory_static)
        stored.memory_dynamic = list(vm.memory_static)
        stored.high_availability = vm.high_availability
        stored.auto_poweron = vm.auto_poweron
        stored.exp_nested_hvm = vm.exp_nested_hvm
        stored.start_delay = vm.start_delay
        stored.vga = vm.vga
        stored.boot_firmware = vm.boot_firmware
        stored.videoram = vm.videoram
        if vm.affinity_host is not None:
            stored.affinity_host = vm.affinity_host or None
        if vm.resource_set is not None:
            stored.resource_set = vm.resource_set or None
        for operation, blocked in vm.blocked_operations.items():
            if blocked == "true":
                stored.blocked_operations[operation] = "true"
            else:
                stored.blocked_operations.pop(operation, None)
        return copy.deepcopy(stored)

    def delete_vm(self, vm_id: str) -> None:
        self._stored_vm(vm_id)
        del self._vms[vm_id]
        self._cdroms.pop(vm_id, None)
        self._vifs = {k: v for k, v in self._vifs.items() if v.vm_id != vm_id}
        self._disks = {k: d for k, d in self._disks.items() if d.vm_id != vm_id}

    def halt_vm(self, vm_id: str) -> None:
        self._stored_vm(vm_id).power_state = HALTED

    def start_vm(self, vm_id: str) -> None:
        self._stored_vm(vm_id).power_state = RUNNING

    # Network interfaces

    def get_vifs(self, vm: Vm) -> list[VIF]:
        self._stored_vm(vm.id)
        vifs = [copy.deepcopy(v) for v in self._vifs.values() if v.vm_id == vm.id]
        return sorted(vifs, key=lambda v: int(v.device))

    def create_vif(self, vm: Vm, vif: VIF) -> VIF:
        stored_vm = self._stored_vm(vm.id)
        devices = [int(v.device) for v in self._vifs.values() if v.vm_id == vm.id]
        number = next(self._ids)
        mac = vif.mac_address or f"02:00:00:00:{(number >> 8) & 0xFF:02x}:{number & 0xFF:02x}"
        created = replace(
            vif,
            id=f"vif-{number}",
            vm_id=vm.id,
            device=str(max(devices, default=-1) + 1),
            mac_address=mac,
        )
        self._vifs[created.id] = created
        stored_vm.vifs.append(created.id)
        return copy.deepcopy(created)

    def delete_vif(self, vif: VIF) -> None:
        stored = self._find_vif(vif)
        del self._vifs[stored.id]
        owner = self._vms.get(stored.vm_id)
        if owner is not None and stored.id in owner.vifs:
            owner.vifs.remove(stored.id)

    def connect_vif(self, vif: VIF) -> None:
        self._find_vif(vif).attached = True

    def disconnect_vif(self, vif: VIF) -> None:
        self._find_vif(vif).attached = False

    # Disks

    def get_disks(self, vm: Vm) -> list[Disk]:
        self._stored_vm(vm.id)
        disks = [copy.deepcopy(d) for d in self._disks.values() if d.vm_id == vm.id]
        return sorted(disks, key=lambda d: int(d.position))

    def create_disk(self, vm: Vm, disk: Disk) -> str:
        """Create a disk on ``vm`` and return its block device id."""
        self._stored_vm(vm.id)
        positions = [int(d.position) for d in self._disks.values() if d.vm_id == vm.id]
        created = replace(
            disk,
            id=self._new_id("vbd"),
            vdi_id=self._new_id("vdi"),
            vm_id=vm.id,
            position=str(max(positions, default=-1) + 1),
        )
        self._disks[created.id] = created
        return created.id

    def delete_disk(self, vm: Vm, disk: Disk) -> None:
        self._stored_vm(vm.id)
        stored = self._find_disk(disk)
        del self._disks[stored.id]

    def connect_disk(self, disk: Disk) -> None:
        self._find_disk(disk).attached = True

    def disconnect_disk(self, disk: Disk) -> None:
        self._find_disk(disk).attached = False

    def update_vdi(self, disk: Disk) -> None:
        for stored in self._disks.values():
            if stored.vdi_id == disk.vdi_id:
                stored.name_label = disk.name_label
                stored.name_description = disk.name_description
                return
        raise NotFound(f"vdi {disk.vdi_id!r} not found")

    # CD drives

    def get_cdroms(self, vm: Vm) -> list[Disk]:
        self._stored_vm(vm.id)
        return copy.deepcopy(self._cdroms.get(vm.id, []))

    def eject_cd(self, vm_id: str) -> None:
        self._stored_vm(vm_id)
        self._cdroms[vm_id] = []

    def insert_cd(self, vm_id: str, cd_id: str) -> None:
        self._stored_vm(vm_id)
        self._cdroms[vm_id] = [Disk(vdi_id=cd_id, vm_id=vm_id, attached=True)]

    # Tags

    def add_tag(self, object_id: str, tag: str) -> None:
        tags = self._stored_vm(object_id).tags
        if tag not in tags:
            tags.append(tag)

    def remove_tag(self, object_id: str, tag: str) -> None:
        tags = self._stored_vm(object_id).tags
        if tag in tags:
            tags.remove(tag)