"""
Loader for control files written in the key/value properties syntax.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, TextIO, Union

from ..errors import ControlFileError

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_LITERAL_ESCAPES = set("\\=:#! ")


class ControlFile(Mapping[str, str]):
    """Immutable mapping of control-file keys to raw (unsubstituted) values."""

    def __init__(self, entries: Optional[Mapping[str, str]] = None, source: str = "<memory>") -> None:
        self._entries: Dict[str, str] = dict(entries or {})
        self.source = source

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ControlFile(source={self.source!r}, keys={len(self._entries)})"

    @classmethod
    def from_text(cls, text: str, source: str = "<memory>") -> "ControlFile":
        return cls(parse_properties(text.splitlines()), source=source)


def _logical_lines(lines: Iterable[str]) -> Iterator[str]:
    pending: Optional[str] = None
    for raw in lines:
        line = raw.rstrip("\r\n")
        if pending is None:
            stripped = line.lstrip()
            if not stripped or stripped[0] in "#!":
                continue
            line = stripped
        else:
            line = pending + line.lstrip()
            pending = None
        if _continues(line):
            pending = line[:-1]
            continue
        yield line
    if pending is not None:
        yield pending


def _continues(line: str) -> bool:
    backslashes = len(line) - len(line.rstrip("\\"))
    return backslashes % 2 == 1


def _unescape(text: str) -> str:
    out = []
    i = 0
    while i < len(text):
        char = text[i]
        if char != "\\" or i + 1 >= len(text):
            out.append(char)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt in _ESCAPES:
            out.append(_ESCAPES[nxt])
            i += 2
        elif nxt in _LITERAL_ESCAPES:
            out.append(nxt)
            i += 2
        elif nxt == "u" and i + 6 <= len(text):
            try:
                out.append(chr(int(text[i + 2 : i + 6], 16)))
            except ValueError as exc:
                raise ControlFileError(f"Malformed \\uXXXX encoding: {text[i:i + 6]}") from exc
            i += 6
        else:
            # unknown escapes are kept, so "\<var>" survives for the substitution step
            out.append(char)
            out.append(nxt)
            i += 2
    return "".join(out)


def _split_key_value(line: str) -> tuple[str, str]:
    i = 0
    while i < len(line):
        char = line[i]
        if char == "\\":
            i += 2
            continue
        if char in "=: \t\f":
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip(" \t\f")
    if rest[:1] in ("=", ":") and (i >= len(line) or line[i] in " \t\f"):
        rest = rest[1:].lstrip(" \t\f")
    elif i < len(line) and line[i] in "=:":
        rest = line[i + 1 :].lstrip(" \t\f")
    return key, rest


def parse_properties(lines: Iterable[str]) -> Dict[str, str]:
    entries: Dict[str, str] = {}
    for line in _logical_lines(lines):
        key, value = _split_key_value(line)
        entries[_unescape(key)] = _unescape(value)
    return entries


def load_control_file(path: Union[str, Path], stdin: Optional[TextIO] = None) -> ControlFile:
    """Read a control file from ``path``; ``-`` reads standard input."""

    if str(path) == "-":
        stream = stdin or sys.stdin
        return ControlFile(parse_properties(stream.read().splitlines()), source="<stdin>")
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ControlFileError(f"Cannot read control file '{path}': {exc}") from exc
    return ControlFile(parse_properties(text.splitlines()), source=str(path))
