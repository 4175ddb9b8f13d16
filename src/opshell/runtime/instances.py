"""
Process-wide store of named instances.

A single lock guards the mapping itself; there is no per-name transaction, so
concurrent scripts that replace the same name race and the last write wins.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..errors import DuplicateInstanceError, MissingInstanceError

log = logging.getLogger(__name__)


class NamedInstanceStore(Mapping[str, Any]):
    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def __getitem__(self, name: str) -> Any:
        with self._lock:
            return self._instances[name]

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._instances))

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def add(self, name: str, instance: Any) -> None:
        with self._lock:
            if name in self._instances:
                raise DuplicateInstanceError(f"Named instance '{name}' already exists")
            self._instances[name] = instance

    def replace(self, name: str, instance: Any) -> Optional[Any]:
        """Store ``instance`` under ``name`` and return what was there before."""

        with self._lock:
            previous = self._instances.get(name)
            self._instances[name] = instance
        return previous

    def remove(self, name: str) -> Any:
        """Remove ``name`` and close or clear the instance when it supports it."""

        with self._lock:
            try:
                instance = self._instances.pop(name)
            except KeyError:
                raise MissingInstanceError(f"There is no instance with name '{name}'") from None
        close = getattr(instance, "close", None)
        if callable(close):
            close()
        else:
            clear = getattr(instance, "clear", None)
            if callable(clear):
                clear()
        log.debug("Removed named instance %s", name)
        return instance

    def items_snapshot(self) -> List[Tuple[str, Any]]:
        with self._lock:
            return list(self._instances.items())

    def extended(self, **extra: Any) -> Dict[str, Any]:
        """Copy of the store with ``extra`` entries added (None values are skipped)."""

        with self._lock:
            merged = dict(self._instances)
        merged.update({key: value for key, value in extra.items() if value is not None})
        return merged
