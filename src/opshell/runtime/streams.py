"""
Object streams: iterate objects created from the lines of a text file.
"""

from __future__ import annotations

import re
import threading
from typing import Any, Callable, Iterator, Optional, Sequence, TextIO

from ..errors import StreamExhaustedError

ItemFactory = Callable[..., Any]


class ObjectStream(Iterator[Any]):
    """Lines of ``path`` converted by ``factory(line, *extra_args)``.

    Blank lines and lines starting with ``#`` are skipped.
    """

    def __init__(self, path: str, factory: ItemFactory = str, extra_args: Sequence[Any] = ()) -> None:
        self.path = path
        self.factory = factory
        self.extra_args = tuple(extra_args)
        self.position = 0
        self._lock = threading.Lock()
        self._file: Optional[TextIO] = open(path, "r", encoding="utf-8")

    def _read_line(self) -> Optional[str]:
        if self._file is None:
            raise StreamExhaustedError(f"Stream '{self.path}' is closed")
        for line in self._file:
            text = line.rstrip("\r\n")
            if text.strip() and not text.lstrip().startswith("#"):
                return text
        return None

    def next_item(self) -> Any:
        with self._lock:
            line = self._read_line()
            if line is None:
                raise StreamExhaustedError(f"No more objects in stream '{self.path}'")
            self.position += 1
        return self.factory(line, *self.extra_args)

    def __next__(self) -> Any:
        try:
            return self.next_item()
        except StreamExhaustedError:
            raise StopIteration from None

    def skip(self, count: int) -> int:
        """Skip ``count`` objects (a negative count skips to the end)."""

        skipped = 0
        with self._lock:
            while count < 0 or skipped < count:
                if self._read_line() is None:
                    break
                skipped += 1
                self.position += 1
        return skipped

    def skip_to(self, regexp: str) -> Any:
        """Return the first remaining object whose text form matches ``regexp``."""

        pattern = re.compile(regexp)
        while True:
            item = self.next_item()
            if pattern.search(str(item)):
                return item

    def reset(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
            self._file = open(self.path, "r", encoding="utf-8")
            self.position = 0

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    @property
    def closed(self) -> bool:
        return self._file is None

    def __str__(self) -> str:
        name = getattr(self.factory, "__name__", repr(self.factory))
        return f"ObjectStream({self.path!r}, {name}) at object {self.position}"
