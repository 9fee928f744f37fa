"""Attribute schema of the VM resource and validation of its configuration."""

from __future__ import annotations

import copy
import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

VALID_VGA = ("", "cirrus", "std")
VALID_HA_OPTIONS = ("", "best-effort", "restart")
VALID_FIRMWARE = ("bios", "uefi")
VALID_INSTALLATION_METHODS = ("network",)

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_MAC_LENGTHS = (6, 8, 20)


class ValidationError(ValueError):
    """A configuration failed validation; ``errors`` lists every problem."""

    def __init__(self, errors: Union[str, list[str]]) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("; ".join(self.errors))


class FieldType(enum.Enum):
    STRING = "string"
    BOOL = "bool"
    INT = "int"
    LIST = "list"
    SET = "set"


Validator = Callable[[Any, str], None]


@dataclass(frozen=True)
class Field:
    """One attribute of a resource schema."""

    type: FieldType
    required: bool = False
    optional: bool = False
    computed: bool = False
    default: Any = None
    force_new: bool = False
    elem: Union["Field", dict[str, "Field"], None] = None
    max_items: int = 0
    conflicts_with: tuple[str, ...] = ()
    required_with: tuple[str, ...] = ()
    description: str = ""
    validate: Validator | None = None
    state_func: Callable[[Any], Any] | None = None
    suppress_diff_when_halted: bool = False


def parse_mac(value: str) -> str:
    """Parse an EUI-48, EUI-64 or 20-octet address into lower-case colon form."""
    error = ValueError(f"invalid MAC address: {value!r}")
    if not isinstance(value, str) or len(value) < 14:
        raise error
    if value[2] in ":-":
        if (len(value) + 1) % 3:
            raise error
        count, group = (len(value) + 1) // 3, 2
        parts = value.split(value[2])
    elif value[4] == ".":
        if (len(value) + 1) % 5:
            raise error
        count, group = 2 * (len(value) + 1) // 5, 4
        parts = value.split(".")
    else:
        raise error
    if count not in _MAC_LENGTHS:
        raise error
    if any(len(part) != group or not set(part) <= _HEX_DIGITS for part in parts):
        raise error
    digits = "".join(parts)
    return ":".join(digits[i:i + 2].lower() for i in range(0, len(digits), 2))


def validate_mac_address(value: Any, key: str) -> None:
    try:
        parse_mac(value)
    except ValueError:
        raise ValidationError(f"{value} Mac Address is invalid") from None


def _one_of(valid: tuple[str, ...]) -> Validator:
    def check(value: Any, key: str) -> None:
        if value not in valid:
            raise ValidationError(f"expected {key} to be one of {list(valid)!r}, got {value}")

    return check


def tags_field() -> Field:
    return Field(FieldType.SET, optional=True, elem=Field(FieldType.STRING))


def _string_list(**kwargs: Any) -> Field:
    return Field(FieldType.LIST, elem=Field(FieldType.STRING), **kwargs)


def vm_schema() -> dict[str, Field]:
    """Attributes of the managed VM resource."""
    network = {
        "attached": Field(FieldType.BOOL, optional=True, default=True, suppress_diff_when_halted=True),
        "device": Field(FieldType.STRING, computed=True),
        "network_id": Field(FieldType.STRING, required=True),
        "mac_address": Field(
            FieldType.STRING,
            optional=True,
            computed=True,
            state_func=parse_mac,
            validate=validate_mac_address,
        ),
        "ipv4_addresses": _string_list(computed=True),
        "ipv6_addresses": _string_list(computed=True),
    }
    disk = {
        "sr_id": Field(FieldType.STRING, required=True),
        "name_label": Field(FieldType.STRING, required=True),
        "name_description": Field(FieldType.STRING, optional=True),
        "size": Field(FieldType.INT, required=True),
        "attached": Field(FieldType.BOOL, optional=True, default=True, suppress_diff_when_halted=True),
        "position": Field(FieldType.STRING, computed=True),
        "vdi_id": Field(FieldType.STRING, computed=True),
        "vbd_id": Field(FieldType.STRING, computed=True),
    }
    return {
        "affinity_host": Field(FieldType.STRING, optional=True),
        "blocked_operations": Field(FieldType.SET, optional=True, elem=Field(FieldType.STRING)),
        "name_label": Field(FieldType.STRING, required=True),
        "name_description": Field(FieldType.STRING, optional=True),
        "cloud_network_config": Field(FieldType.STRING, optional=True),
        "auto_poweron": Field(FieldType.BOOL, optional=True, default=False),
        "exp_nested_hvm": Field(FieldType.BOOL, optional=True, default=False),
        "hvm_boot_firmware": Field(
            FieldType.STRING, optional=True, default="bios", validate=_one_of(VALID_FIRMWARE)
        ),
        "power_state": Field(FieldType.STRING, computed=True),
        "installation_method": Field(
            FieldType.STRING,
            optional=True,
            validate=_one_of(VALID_INSTALLATION_METHODS),
            conflicts_with=("cdrom",),
        ),
        "high_availability": Field(
            FieldType.STRING, optional=True, default="", validate=_one_of(VALID_HA_OPTIONS)
        ),
        "template": Field(FieldType.STRING, required=True, force_new=True),
        "cloud_config": Field(FieldType.STRING, optional=True),
        "destroy_cloud_config_vdi_after_boot": Field(
            FieldType.BOOL,
            optional=True,
            default=False,
            required_with=("cloud_config",),
            force_new=True,
            description=(
                "Determines whether the cloud config VDI should be deleted once "
                "the VM has booted. Defaults to `false`."
            ),
        ),
        "core_os": Field(FieldType.BOOL, optional=True, default=False),
        "cpu_cap": Field(FieldType.INT, optional=True, default=0),
        "cpu_weight": Field(FieldType.INT, optional=True, default=0),
        "cpus": Field(FieldType.INT, required=True),
        "memory_max": Field(FieldType.INT, required=True),
        "resource_set": Field(FieldType.STRING, optional=True),
        "ipv4_addresses": _string_list(computed=True),
        "ipv6_addresses": _string_list(computed=True),
        "vga": Field(FieldType.STRING, optional=True, default="std", validate=_one_of(VALID_VGA)),
        "videoram": Field(FieldType.INT, optional=True, default=8),
        "start_delay": Field(FieldType.INT, optional=True, default=0),
        "host": Field(FieldType.STRING, optional=True),
        "wait_for_ip": Field(FieldType.BOOL, optional=True, default=False),
        "cdrom": Field(
            FieldType.LIST,
            optional=True,
            conflicts_with=("installation_method",),
            elem={"id": Field(FieldType.STRING, required=True)},
            max_items=1,
        ),
        "network": Field(FieldType.LIST, required=True, elem=network),
        "disk": Field(FieldType.LIST, required=True, elem=disk),
        "tags": tags_field(),
    }


def vm_data_source_schema() -> dict[str, Field]:
    """Attributes of the VM data source: the resource's, looked up by id."""
    fields = vm_schema()
    for name in ("cdrom", "installation_method", "destroy_cloud_config_vdi_after_boot"):
        del fields[name]
    fields["id"] = Field(FieldType.STRING, required=True)
    return fields


_SCALAR_TYPES = {FieldType.STRING: str, FieldType.BOOL: bool, FieldType.INT: int}


def _check_value(spec: Field, value: Any, path: str, errors: list[str]) -> Any:
    if spec.type in (FieldType.LIST, FieldType.SET):
        if not isinstance(value, (list, tuple, set, frozenset)):
            errors.append(f'"{path}": expected {spec.type.value}, got {type(value).__name__}')
            return value
        items = list(value)
        if spec.max_items and len(items) > spec.max_items:
            errors.append(f'"{path}": too many items, at most {spec.max_items} allowed')
        converted = []
        for index, item in enumerate(items):
            item_path = f"{path}.{index}"
            if isinstance(spec.elem, dict):
                if isinstance(item, Mapping):
                    converted.append(_check_block(spec.elem, item, f"{item_path}.", errors))
                else:
                    errors.append(f'"{item_path}": expected a block, got {type(item).__name__}')
            elif isinstance(spec.elem, Field):
                converted.append(_check_value(spec.elem, item, item_path, errors))
            else:
                converted.append(item)
        return frozenset(converted) if spec.type is FieldType.SET else converted

    expected = _SCALAR_TYPES[spec.type]
    wrong_bool = spec.type is FieldType.INT and isinstance(value, bool)
    if wrong_bool or not isinstance(value, expected):
        errors.append(f'"{path}": expected {spec.type.value}, got {type(value).__name__}')
        return value
    if spec.validate is not None:
        try:
            spec.validate(value, path)
        except ValidationError as exc:
            errors.extend(exc.errors)
    return value


def _check_block(
    fields: Mapping[str, Field], values: Mapping[str, Any], prefix: str, errors: list[str]
) -> dict[str, Any]:
    errors.extend(
        f'"{prefix}{name}": unsupported argument' for name in sorted(set(values) - set(fields))
    )
    result: dict[str, Any] = {}
    for name, spec in fields.items():
        path = prefix + name
        value = values.get(name)
        if value is None:
            if spec.required:
                errors.append(f'The argument "{path}" is required')
            elif spec.default is not None:
                result[name] = copy.deepcopy(spec.default)
            continue
        if spec.computed and not spec.optional:
            errors.append(f'"{path}": value is computed and cannot be set')
            continue
        result[name] = _check_value(spec, value, path, errors)
    return result


def validate_vm_config(config: Mapping[str, Any]) -> dict[str, Any]:
    """Check a VM configuration and return it with defaults filled in.

    Raises ValidationError listing every problem found.
    """
    fields = vm_schema()
    errors: list[str] = []
    result = _check_block(fields, config, "", errors)

    def present(name: str) -> bool:
        return config.get(name) is not None

    for name, spec in fields.items():
        if not present(name):
            continue
        errors.extend(
            f'"{name}": conflicts with {other}' for other in spec.conflicts_with if present(other)
        )
        if spec.required_with and not all(present(other) for other in spec.required_with):
            keys = ",".join(sorted((name, *spec.required_with)))
            errors.append(f'"{name}": all of `{keys}` must be specified')

    if errors:
        raise ValidationError(errors)
    return result