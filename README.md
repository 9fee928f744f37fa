# xoprovider

Declarative management of Xen Orchestra virtual machines.

`xoprovider` describes a VM resource (its attributes, defaults and
validation), keeps track of the recorded and the desired values of that
resource, and reconciles the two through a client: creating, reading,
updating, importing and deleting VMs together with their network interfaces,
disks, CD drives, tags and blocked operations.

## Installation

```
pip install xoprovider
```

The package has no runtime dependencies.

## Modules

- `xoprovider.models`: the records `Vm`, `Disk`, `VIF` and `Installation`,
  the `NotFound` error (a `LookupError`), and `XOClient`, a client that keeps
  its VMs, interfaces, disks and CD drives in memory. It offers `create_vm`,
  `get_vm`, `update_vm`, `delete_vm`, `halt_vm`, `start_vm`, `get_vifs`,
  `create_vif`, `delete_vif`, `connect_vif`, `disconnect_vif`, `get_disks`,
  `create_disk`, `delete_disk`, `connect_disk`, `disconnect_disk`,
  `update_vdi`, `get_cdroms`, `eject_cd`, `insert_cd`, `add_tag` and
  `remove_tag`. Lookups of unknown objects raise `NotFound`; `create_vm`
  raises `TimeoutError` when given a timeout that is not positive.
- `xoprovider.state`: `ResourceData`, which holds a resource id, the values
  before a change (`old`) and after it (`new`), optional `defaults` and
  `timeouts`. It provides `get`, `get_ok`, `has_change`, `get_change`, `set`,
  `timeout` (20 minutes unless set) and a `state` property.
- `xoprovider.schema`: the attribute schema of the VM resource
  (`vm_schema()`) and of the VM data source (`vm_data_source_schema()`),
  described with `Field` and `FieldType`; `tags_field()`; MAC address parsing
  (`parse_mac`, `validate_mac_address`); and `validate_vm_config`, which
  returns the configuration with defaults filled in or raises
  `ValidationError` listing every problem (missing required arguments, wrong
  types, values outside the allowed choices, conflicting `cdrom` and
  `installation_method`, and so on).
- `xoprovider.networks`: `get_formatted_mac`, `extract_ips_from_networks`
  (groups guest-tools keys such as `0/ipv4/1` by interface), `vif_hash`,
  `should_update_vif`, sorting helpers, `vifs_to_map_list` and
  `expand_networks`.
- `xoprovider.disks`: `DiskAction`, `disk_hash`, `get_update_disk_actions`,
  `should_update_disk`, sorting helpers, `disks_to_map_list` (which leaves out
  the cloud config drive), `cdroms_to_map_list` and `expand_disks`.
- `xoprovider.vm_resource`: the lifecycle operations `create_vm`, `read_vm`,
  `update_vm`, `delete_vm` and `import_vm`, plus `record_to_data`,
  `blocked_operations_to_list`, `perform_disk_update_action` and
  `suppress_attached_diff_when_halted`.

## Example

```python
from xoprovider.models import XOClient
from xoprovider.schema import validate_vm_config
from xoprovider.state import ResourceData
from xoprovider.vm_resource import create_vm, read_vm, update_vm

client = XOClient()

config = validate_vm_config({
    "name_label": "web-01",
    "template": "template-id",
    "cpus": 2,
    "memory_max": 4295000000,
    "network": [{"network_id": "network-id"}],
    "disk": [{"sr_id": "sr-id", "name_label": "disk 1", "size": 10001317888}],
    "tags": ["web"],
})

data = ResourceData(new=config)
create_vm(data, client)
print(data.id, data.get("network"), data.get("disk"))

# Change the description and add a tag.
recorded = data.state
desired = {**recorded, "name_description": "front end", "tags": {"web", "prod"}}
change = ResourceData(resource_id=data.id, old=recorded, new=desired)
update_vm(change, client)
print(change.get("name_description"), sorted(change.get("tags")))
```

`read_vm` clears the resource id instead of raising when the VM no longer
exists. `update_vm` halts and restarts the VM around the update when the
memory changes or the CPU count goes above the VM's maximum.

## What it does not do

`XOClient` works entirely in memory: it does not connect to a Xen Orchestra
server, so the package neither creates nor changes real virtual machines on
its own. There is no command-line tool and no persistent storage of resource
state; callers keep `ResourceData` values themselves.

## Running the tests

```
pip install -e ".[test]"
pytest
```