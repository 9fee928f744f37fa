"""Planned and recorded attribute values of one resource."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

DEFAULT_TIMEOUT = timedelta(minutes=20)


class ResourceData:
    """Values of a resource before a change (``old``) and after it (``new``).

    ``defaults`` gives the value reported for attributes that were never set;
    attributes whose default is a frozenset are stored as frozensets.
    """

    def __init__(
        self,
        resource_id: str = "",
        old: Mapping[str, Any] | None = None,
        new: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
        timeouts: Mapping[str, timedelta] | None = None,
    ) -> None:
        self.id = resource_id
        self._defaults = dict(defaults or {})
        self._old = {k: self._coerce(k, v) for k, v in (old or {}).items()}
        source = old if new is None else new
        self._new = {k: self._coerce(k, v) for k, v in (source or {}).items()}
        self._timeouts = dict(timeouts or {})

    def _coerce(self, key: str, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (set, frozenset)) or isinstance(self._defaults.get(key), frozenset):
            return frozenset(value)
        return copy.deepcopy(value)

    def _old_value(self, key: str) -> Any:
        value = self._old.get(key)
        if value is None:
            return copy.deepcopy(self._defaults.get(key))
        return copy.deepcopy(value)

    @property
    def state(self) -> dict[str, Any]:
        """The current values, defaults included."""
        merged = copy.deepcopy(self._defaults)
        merged.update({k: v for k, v in copy.deepcopy(self._new).items() if v is not None})
        return merged

    def get(self, key: str) -> Any:
        value = self._new.get(key)
        if value is None:
            return copy.deepcopy(self._defaults.get(key))
        return copy.deepcopy(value)

    def get_ok(self, key: str) -> tuple[Any, bool]:
        """Return the value and whether it differs from its zero value."""
        value = self.get(key)
        return value, bool(value)

    def has_change(self, key: str) -> bool:
        return self._old_value(key) != self.get(key)

    def get_change(self, key: str) -> tuple[Any, Any]:
        return self._old_value(key), self.get(key)

    def set(self, key: str, value: Any) -> None:
        self._new[key] = self._coerce(key, value)

    def timeout(self, kind: str) -> timedelta:
        return self._timeouts.get(kind, DEFAULT_TIMEOUT)