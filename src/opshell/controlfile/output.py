"""
Output redirection for actions: caller stream, shared output files, or an
in-memory buffer that is later assigned to a variable.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import Dict, Mapping, Optional, TextIO

from .descriptor import ASSIGN, OUTPUT_FILE, has_modifier, read_modifier

log = logging.getLogger(__name__)


class _OpenFile:
    """An ``outputFile`` handle shared by a run and its background repeats."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.refs = 1


_refs_lock = threading.Lock()


class OutputRegistry:
    """Files opened by ``outputFile`` during one control-file run.

    A path is opened once and the handle is shared by every action writing to it.
    Forked registries hold the same handles; a handle is closed when the last
    registry holding it is closed.
    """

    def __init__(self, append: bool = False) -> None:
        self.append = append
        self._files: Dict[str, _OpenFile] = {}
        self._lock = threading.Lock()

    def open(self, path: str) -> TextIO:
        with self._lock:
            entry = self._files.get(path)
            if entry is None or entry.stream.closed:
                mode = "a" if self.append or entry is not None else "w"
                entry = _OpenFile(open(path, mode, encoding="utf-8", buffering=1))
                self._files[path] = entry
                log.debug("Opened output file %s (%s)", path, mode)
            return entry.stream

    def paths(self) -> list[str]:
        with self._lock:
            return list(self._files)

    def fork(self) -> "OutputRegistry":
        """Registry for a background continuation sharing the open handles.

        Files first opened by the fork are opened for appending.
        """

        child = OutputRegistry(append=True)
        with self._lock, _refs_lock:
            for path, entry in self._files.items():
                if not entry.stream.closed:
                    entry.refs += 1
                    child._files[path] = entry
        return child

    def flush(self) -> None:
        with self._lock:
            streams = [entry.stream for entry in self._files.values()]
        for stream in streams:
            if not stream.closed:
                stream.flush()

    def close(self) -> None:
        with self._lock:
            entries = list(self._files.values())
            self._files.clear()
        for entry in entries:
            with _refs_lock:
                entry.refs -= 1
                last = entry.refs <= 0
            if last:
                entry.stream.close()
            elif not entry.stream.closed:
                entry.stream.flush()

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)


def resolve_output(
    caller_out: TextIO,
    config: Mapping[str, str],
    action: str,
    variables: Mapping[str, str],
    file_registry: Optional[OutputRegistry],
    assign_buffer: Optional[io.StringIO],
) -> Optional[TextIO]:
    """Pick the stream an action writes to; ``None`` means the action must fail."""

    path = read_modifier(config, action, OUTPUT_FILE, variables)
    if path:
        if file_registry is None:
            caller_out.write(f"Cannot set outputFile for action '{action}' - output files are disabled in this context\n")
            return None
        if assign_buffer is not None or has_modifier(config, action, ASSIGN):
            caller_out.write(
                f"WARNING: Action '{action}' has both the 'outputFile' and the 'assign' parameters defined. Using outputFile.\n"
            )
        try:
            return file_registry.open(path)
        except OSError as exc:
            caller_out.write(f"Wrong outputFile for action '{action}': {exc}\n")
            return None
    if assign_buffer is not None:
        return assign_buffer
    return caller_out


class RepeatOutput(io.TextIOBase):
    """Caller stream for a background repeat.

    Writes go to the caller's stream until it is detached or closed; after that
    the output of the repeated action goes to the log.
    """

    def __init__(self, stream: TextIO, action: str) -> None:
        super().__init__()
        self.stream = stream
        self.action = action
        self.attached = True

    def writable(self) -> bool:
        return True

    def _detach_caller(self, exc: Exception) -> None:
        self.attached = False
        log.info("Output of repeated action '%s' is no longer available (%s); logging it instead", self.action, exc)

    def write(self, text: str) -> int:
        if self.attached:
            try:
                self.stream.write(text)
                return len(text)
            except (ValueError, OSError) as exc:
                self._detach_caller(exc)
        for line in text.splitlines():
            if line.strip():
                log.info("[%s] %s", self.action, line)
        return len(text)

    def flush(self) -> None:
        if self.attached:
            try:
                self.stream.flush()
            except (ValueError, OSError) as exc:
                self._detach_caller(exc)
