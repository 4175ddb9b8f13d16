"""
Named statistic counters for engines and operations.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Optional, Union

Number = Union[int, float]


class StatisticsRegistry:
    def __init__(self) -> None:
        self._values: Dict[str, Number] = {}
        self._lock = threading.Lock()
        self.enabled = True

    def increment(self, name: str, amount: Number = 1) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._values[name] = self._values.get(name, 0) + amount

    def set(self, name: str, value: Number) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._values[name] = value

    def get(self, name: str, default: Number = 0) -> Number:
        with self._lock:
            return self._values.get(name, default)

    def snapshot(self, regexp: Optional[str] = None) -> Dict[str, Number]:
        pattern = re.compile(regexp) if regexp else None
        with self._lock:
            return {
                name: value
                for name, value in sorted(self._values.items())
                if pattern is None or pattern.fullmatch(name)
            }

    def print_statistics(self, regexp: Optional[str] = None, separator: str = ", ") -> str:
        return separator.join(f"{name}: {value}" for name, value in self.snapshot(regexp).items())

    def reset(self, regexp: Optional[str] = None) -> None:
        pattern = re.compile(regexp) if regexp else None
        with self._lock:
            for name in list(self._values):
                if pattern is None or pattern.fullmatch(name):
                    self._values[name] = 0

    def merge(self, other: "StatisticsRegistry") -> None:
        for name, value in other.snapshot().items():
            self.increment(name, value)

    def disable(self) -> None:
        self.enabled = False

    def enable(self) -> None:
        self.enabled = True


global_statistics = StatisticsRegistry()
