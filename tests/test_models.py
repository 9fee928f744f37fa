from datetime import timedelta

import pytest

from xoprovider.models import (
    DEFAULT_CLOUD_CONFIG_DISK_NAME,
    VIF,
    Disk,
    Installation,
    NotFound,
    Vm,
    XOClient,
)

TIMEOUT = timedelta(minutes=5)
MAC = "02:00:00:00:00:11"


def _params(**overrides):
    base = dict(
        name_label="vm",
        template="template",
        cpus=1,
        memory_static=[0, 4295000000],
        vifs_map=[{"network": "net-a", "mac": MAC}, {"network": "net-b"}],
        disks=[
            Disk(sr_id="sr", name_label="disk 1", size=10001317888),
            Disk(sr_id="sr", name_label="disk 2", size=10001317888),
        ],
    )
    base.update(overrides)
    return Vm(**base)


@pytest.fixture
def client():
    return XOClient()


def test_create_vm_runs_and_can_be_read_back(client):
    vm = client.create_vm(_params(), TIMEOUT)
    assert vm.power_state == "Running"
    assert client.get_vm(Vm(id=vm.id)) == vm
    assert vm.memory_dynamic == [0, 4295000000]


def test_get_vm_by_name_label(client):
    vm = client.create_vm(_params(), TIMEOUT)
    assert client.get_vm(Vm(name_label="vm")).id == vm.id


def test_get_vm_missing_raises_not_found(client):
    with pytest.raises(NotFound):
        client.get_vm(Vm(id="missing"))
    with pytest.raises(NotFound):
        client.get_vm(Vm())


def test_create_vm_with_zero_timeout_fails(client):
    with pytest.raises(TimeoutError, match="timeout while waiting for state to become"):
        client.create_vm(_params(), timedelta(0))


def test_create_vm_creates_vifs_in_device_order(client):
    vm = client.create_vm(_params(), TIMEOUT)
    vifs = client.get_vifs(vm)
    assert [v.device for v in vifs] == ["0", "1"]
    assert [v.network for v in vifs] == ["net-a", "net-b"]
    assert vifs[0].mac_address == MAC
    assert vifs[1].mac_address not in ("", MAC)
    assert all(v.attached for v in vifs)


def test_create_vm_creates_attached_disks(client):
    vm = client.create_vm(_params(), TIMEOUT)
    disks = client.get_disks(vm)
    assert [d.name_label for d in disks] == ["disk 1", "disk 2"]
    assert all(d.attached for d in disks)
    assert int(disks[0].position) < int(disks[1].position)


def test_cloud_config_disk_is_kept_unless_destroyed(client):
    kept = client.create_vm(_params(cloud_config="#cloud-config"), TIMEOUT)
    names = [d.name_label for d in client.get_disks(kept)]
    assert DEFAULT_CLOUD_CONFIG_DISK_NAME in names

    dropped = client.create_vm(
        _params(cloud_config="#cloud-config", destroy_cloud_config_vdi_after_boot=True),
        TIMEOUT,
    )
    names = [d.name_label for d in client.get_disks(dropped)]
    assert DEFAULT_CLOUD_CONFIG_DISK_NAME not in names


def test_cdrom_installation_inserts_iso(client):
    vm = client.create_vm(
        _params(installation=Installation(method="cdrom", repository="iso-id")), TIMEOUT
    )
    assert [cd.vdi_id for cd in client.get_cdroms(vm)] == ["iso-id"]


def test_eject_and_insert_cd(client):
    vm = client.create_vm(_params(), TIMEOUT)
    client.insert_cd(vm.id, "iso-id")
    assert [cd.vdi_id for cd in client.get_cdroms(vm)] == ["iso-id"]
    client.eject_cd(vm.id)
    assert client.get_cdroms(vm) == []


def test_update_vm_merges_blocked_operations(client):
    vm = client.create_vm(_params(blocked_operations={"copy": "true"}), TIMEOUT)
    request = Vm(
        id=vm.id,
        name_label="renamed",
        cpus=2,
        memory_static=[0, 4295000000],
        blocked_operations={"copy": "false", "clone": "true"},
    )
    updated = client.update_vm(request)
    assert updated.blocked_operations == {"clone": "true"}
    assert updated.name_label == "renamed"
    assert updated.cpus == 2
    assert updated.cpus_max >= 2


def test_update_vm_affinity_host_only_when_given(client):
    vm = client.create_vm(_params(affinity_host="host-1"), TIMEOUT)
    untouched = client.update_vm(Vm(id=vm.id, name_label="vm"))
    assert untouched.affinity_host == "host-1"
    cleared = client.update_vm(Vm(id=vm.id, name_label="vm", affinity_host=""))
    assert cleared.affinity_host is None


def test_halt_and_start(client):
    vm = client.create_vm(_params(), TIMEOUT)
    client.halt_vm(vm.id)
    assert client.get_vm(vm).power_state == "Halted"
    client.start_vm(vm.id)
    assert client.get_vm(vm).power_state == "Running"


def test_delete_vm(client):
    vm = client.create_vm(_params(), TIMEOUT)
    client.delete_vm(vm.id)
    with pytest.raises(NotFound):
        client.get_vm(vm)
    with pytest.raises(NotFound):
        client.delete_vm(vm.id)


def test_vif_lifecycle(client):
    vm = client.create_vm(_params(vifs_map=[]), TIMEOUT)
    created = client.create_vif(vm, VIF(network="net-a", mac_address=MAC, attached=True))
    assert created.vm_id == vm.id
    assert client.get_vm(vm).vifs == [created.id]

    client.disconnect_vif(VIF(mac_address=MAC))
    assert client.get_vifs(vm)[0].attached is False
    client.connect_vif(created)
    assert client.get_vifs(vm)[0].attached is True

    client.delete_vif(VIF(mac_address=MAC))
    assert client.get_vifs(vm) == []
    with pytest.raises(NotFound):
        client.delete_vif(VIF(mac_address=MAC))


def test_disk_lifecycle(client):
    vm = client.create_vm(_params(disks=[]), TIMEOUT)
    vbd_id = client.create_disk(vm, Disk(sr_id="sr", name_label="disk 1", attached=True))
    [disk] = client.get_disks(vm)
    assert disk.id == vbd_id

    client.disconnect_disk(disk)
    assert client.get_disks(vm)[0].attached is False

    client.update_vdi(Disk(vdi_id=disk.vdi_id, name_label="renamed", name_description="desc"))
    renamed = client.get_disks(vm)[0]
    assert (renamed.name_label, renamed.name_description) == ("renamed", "desc")

    client.delete_disk(vm, disk)
    assert client.get_disks(vm) == []


def test_update_vdi_missing_raises(client):
    with pytest.raises(NotFound):
        client.update_vdi(Disk(vdi_id="missing"))


def test_tags(client):
    vm = client.create_vm(_params(tags=["tag1"]), TIMEOUT)
    client.add_tag(vm.id, "tag2")
    client.add_tag(vm.id, "tag2")
    assert client.get_vm(vm).tags == ["tag1", "tag2"]
    client.remove_tag(vm.id, "tag1")
    assert client.get_vm(vm).tags == ["tag2"]