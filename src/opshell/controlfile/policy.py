"""
Exception kinds used by ``ignoreException`` / ``repeatUntilException`` and the
classification of errors raised while an action iterates.
"""

from __future__ import annotations

import builtins
import enum
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Type

from .. import errors
from ..errors import UnknownExceptionKindError, root_cause


@dataclass(frozen=True)
class ExceptionKind:
    identifier: str
    type: Type[BaseException]

    def matches(self, exc: BaseException) -> bool:
        return isinstance(root_cause(exc), self.type)


class Disposition(enum.Enum):
    TERMINATE_LOOP = "terminate_loop"
    IGNORE = "ignore"
    PROPAGATE = "propagate"


_BUILTIN_KINDS = (
    "Exception",
    "ArithmeticError",
    "ZeroDivisionError",
    "LookupError",
    "IndexError",
    "KeyError",
    "ValueError",
    "TypeError",
    "RuntimeError",
    "NotImplementedError",
    "StopIteration",
    "OSError",
    "FileNotFoundError",
    "PermissionError",
    "TimeoutError",
    "EOFError",
    "InterruptedError",
)

_lock = threading.Lock()
_kinds: Dict[str, ExceptionKind] = {}


def register_exception_kind(exc_type: Type[BaseException], aliases: Iterable[str] = ()) -> ExceptionKind:
    """Make ``exc_type`` addressable by its short name, qualified name and ``aliases``."""

    kind = ExceptionKind(identifier=exc_type.__name__, type=exc_type)
    names = {exc_type.__name__, f"{exc_type.__module__}.{exc_type.__qualname__}", *aliases}
    with _lock:
        for name in names:
            _kinds[name] = kind
    return kind


def resolve_exception_kind(identifier: str) -> ExceptionKind:
    name = identifier.strip()
    with _lock:
        kind = _kinds.get(name)
    if kind is None:
        raise UnknownExceptionKindError(f"Unknown exception kind: {name}")
    return kind


def known_exception_kinds() -> list[str]:
    with _lock:
        return sorted({kind.identifier for kind in _kinds.values()})


def classify(
    exc: BaseException,
    ignore: Optional[ExceptionKind],
    until: Optional[ExceptionKind],
) -> Disposition:
    """Decide what an iterating action does with ``exc``; repeat-until wins over ignore."""

    if until is not None and until.matches(exc):
        return Disposition.TERMINATE_LOOP
    if ignore is not None and ignore.matches(exc):
        return Disposition.IGNORE
    return Disposition.PROPAGATE


for _name in _BUILTIN_KINDS:
    register_exception_kind(getattr(builtins, _name))

for _value in vars(errors).values():
    if isinstance(_value, type) and issubclass(_value, errors.OpshellError):
        register_exception_kind(_value)
