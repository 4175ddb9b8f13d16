"""
Registry of primitive commands callable from control files, the socket shell
and the HTTP API.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TextIO

from ..errors import NoSuchPrimitiveError

PrimitiveHandler = Callable[..., Optional[bool]]

_SPEC_ATTR = "__opshell_primitive__"


@dataclass
class Primitive:
    name: str
    handler: PrimitiveHandler
    description: str = ""
    arguments: tuple[str, ...] = field(default_factory=tuple)

    def invoke(self, out: TextIO, arguments: Sequence[str]) -> bool:
        """Run the handler; only an explicit ``False`` result counts as failure."""

        return self.handler(out, *arguments) is not False

    def usage(self) -> str:
        if not self.arguments:
            return self.name
        return self.name + " " + " ".join(f"<{arg}>" for arg in self.arguments)


def primitive(name: str, description: str = "", arguments: Iterable[str] = ()) -> Callable[[PrimitiveHandler], PrimitiveHandler]:
    """Mark a method as the handler of primitive ``name``."""

    def decorator(func: PrimitiveHandler) -> PrimitiveHandler:
        setattr(func, _SPEC_ATTR, (name, description, tuple(arguments)))
        return func

    return decorator


class CommandRegistry:
    def __init__(self) -> None:
        self._primitives: Dict[str, Primitive] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        handler: PrimitiveHandler,
        description: str = "",
        arguments: Iterable[str] = (),
    ) -> Primitive:
        entry = Primitive(name=name, handler=handler, description=description, arguments=tuple(arguments))
        with self._lock:
            self._primitives[name] = entry
        return entry

    def register_object(self, owner: Any) -> List[Primitive]:
        """Register every method of ``owner`` decorated with :func:`primitive`."""

        registered: List[Primitive] = []
        seen: set[str] = set()
        for klass in type(owner).__mro__:
            for attr, value in vars(klass).items():
                spec = getattr(value, _SPEC_ATTR, None)
                if spec is None or attr in seen:
                    continue
                seen.add(attr)
                name, description, arguments = spec
                registered.append(self.register(name, getattr(owner, attr), description, arguments))
        return registered

    def get(self, name: str) -> Optional[Primitive]:
        with self._lock:
            return self._primitives.get(name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._primitives

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._primitives)

    def primitives(self) -> List[Primitive]:
        with self._lock:
            return [self._primitives[name] for name in sorted(self._primitives)]

    def execute(self, out: TextIO, arguments: Sequence[str]) -> bool:
        """Run ``arguments[0]`` with the remaining arguments.

        Raises :class:`NoSuchPrimitiveError` before anything runs when the name
        is unknown; errors raised by the handler propagate unchanged.
        """

        if not arguments:
            raise NoSuchPrimitiveError("No command given")
        entry = self.get(arguments[0])
        if entry is None:
            raise NoSuchPrimitiveError(f"There is no command {arguments[0]}")
        return entry.invoke(out, list(arguments[1:]))
