"""
Process logging setup backing the ``logging*`` primitives.

Everything hangs off the ``opshell`` logger: one console handler installed by
:func:`configure_logging` and any number of file handlers keyed by path.
"""

from __future__ import annotations

import logging
import logging.handlers
import re
import sys
import threading
from typing import Dict, Optional, TextIO, Union

ROOT_LOGGER = "opshell"
VERBOSE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s.%(funcName)s: %(message)s"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LEVEL_ALIASES = {
    "SEVERE": logging.ERROR,
    "FINE": logging.DEBUG,
    "FINER": logging.DEBUG,
    "FINEST": logging.DEBUG,
    "CONFIG": logging.INFO,
    "ALL": logging.NOTSET,
    "OFF": logging.CRITICAL + 10,
    "WARN": logging.WARNING,
}

_lock = threading.Lock()
_console: Optional[logging.Handler] = None
_files: Dict[str, logging.Handler] = {}


def parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    value = logging.getLevelName(name)
    if isinstance(value, int):
        return value
    raise ValueError(f"Bad level \"{level}\"")


def _root() -> logging.Logger:
    return logging.getLogger(ROOT_LOGGER)


class RegexpFilter(logging.Filter):
    """Pass only records whose message (or logger name) matches ``pattern``."""

    def __init__(self, pattern: str, against: str = "MESSAGE") -> None:
        super().__init__()
        self.pattern = re.compile(pattern)
        self.against = against.upper()
        if self.against not in {"MESSAGE", "LOGGER_NAME", "FUNC_NAME", "MODULE"}:
            raise ValueError(f"Unknown regexp filter target: {against}")

    def filter(self, record: logging.LogRecord) -> bool:
        if self.against == "LOGGER_NAME":
            value = record.name
        elif self.against == "FUNC_NAME":
            value = record.funcName
        elif self.against == "MODULE":
            value = record.module
        else:
            value = record.getMessage()
        return self.pattern.search(value or "") is not None


def configure_logging(level: Union[str, int] = "INFO", fmt: str = DEFAULT_FORMAT, stream: Optional[TextIO] = None) -> logging.Logger:
    global _console
    root = _root()
    with _lock:
        if _console is not None:
            root.removeHandler(_console)
        _console = logging.StreamHandler(stream or sys.stderr)
        _console.setFormatter(logging.Formatter(fmt))
        root.addHandler(_console)
        root.setLevel(parse_level(level))
    return root


def get_log_level() -> str:
    return logging.getLevelName(_root().getEffectiveLevel())


def set_log_level(level: Union[str, int]) -> None:
    _root().setLevel(parse_level(level))


def set_console_level(level: Union[str, int]) -> None:
    parsed = parse_level(level)
    with _lock:
        if _console is None:
            raise ValueError("Console logging is not configured")
        _console.setLevel(parsed)


def _formatter(fmt: Optional[str]) -> logging.Formatter:
    if fmt is None or fmt == "" or fmt.lower() == "true":
        return logging.Formatter(DEFAULT_FORMAT)
    if fmt.lower() == "false":
        return logging.Formatter(VERBOSE_FORMAT)
    return logging.Formatter(fmt)


def add_log_file(
    path: str,
    level: Union[str, int, None] = None,
    append: bool = True,
    fmt: Optional[str] = None,
    regexp: Optional[str] = None,
    against: str = "MESSAGE",
    max_bytes: int = 0,
    backup_count: int = 10,
) -> logging.Handler:
    mode = "a" if append else "w"
    if max_bytes > 0:
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            path, mode=mode, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    else:
        handler = logging.FileHandler(path, mode=mode, encoding="utf-8")
    handler.setLevel(parse_level(level) if level is not None else _root().getEffectiveLevel())
    handler.setFormatter(_formatter(fmt))
    if regexp:
        handler.addFilter(RegexpFilter(regexp, against or "MESSAGE"))
    with _lock:
        previous = _files.pop(path, None)
        if previous is not None:
            _root().removeHandler(previous)
            previous.close()
        _files[path] = handler
        _root().addHandler(handler)
    return handler


def remove_log_file(path: str) -> None:
    with _lock:
        handler = _files.pop(path)
        _root().removeHandler(handler)
    handler.close()


def set_log_file_level(path: str, level: Union[str, int]) -> None:
    parsed = parse_level(level)
    with _lock:
        _files[path].setLevel(parsed)


def log_files() -> list[str]:
    with _lock:
        return list(_files)
