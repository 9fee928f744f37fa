"""Declarative management of Xen Orchestra virtual machines."""

__version__ = "0.1.0"

__all__ = ["disks", "models", "networks", "schema", "state", "vm_resource"]