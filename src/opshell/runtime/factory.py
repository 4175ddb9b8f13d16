"""
Object factory: builds objects from signature strings such as
``MemoryEngine("main")``, ``MatchQueryOperation('^a', 10)``,
``ErrorCode.OBJECT_INSERTED`` or ``engine.size()``.

Names resolve against the named-instance mapping first and then against a
fixed table of registered types. Attribute access is limited to public names.
"""

from __future__ import annotations

import inspect
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..controlfile.variables import trim_and_unquote
from ..errors import InstantiationError, NoSuchInstantiatorError
from .engines import Engine, MemoryEngine
from .operations import (
    CountOperation,
    DeleteOperation,
    ErrorCode,
    InsertOperation,
    MatchQueryOperation,
    Operation,
)
from .statistics import StatisticsRegistry
from .streams import ObjectStream

_TOKEN = re.compile(
    r"""\s*(?:
        (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<number>[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
      | (?P<name>[A-Za-z_$][\w$-]*)
      | (?P<punct>[.(),\[\]])
    )""",
    re.VERBOSE,
)
_KEYWORDS = {"true": True, "false": False, "null": None, "None": None, "True": True, "False": False}
_UNESCAPE = re.compile(r"\\(.)")
_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")


def _default_types() -> Dict[str, Any]:
    types: Dict[str, Any] = {
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
        "list": list,
        "tuple": tuple,
        "dict": dict,
        "set": set,
    }
    for klass in (
        Engine,
        MemoryEngine,
        Operation,
        InsertOperation,
        DeleteOperation,
        MatchQueryOperation,
        CountOperation,
        ErrorCode,
        ObjectStream,
        StatisticsRegistry,
    ):
        types[klass.__name__] = klass
        types[f"{klass.__module__}.{klass.__qualname__}"] = klass
    return types


@dataclass
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(signature: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(signature):
        if signature[pos:].strip() == "":
            break
        match = _TOKEN.match(signature, pos)
        if match is None:
            raise NoSuchInstantiatorError(f"Cannot parse signature '{signature}' at position {pos}")
        kind = match.lastgroup or "punct"
        tokens.append(_Token(kind, match.group(kind), match.start(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, factory: "ObjectFactory", signature: str, instances: Mapping[str, Any]) -> None:
        self.factory = factory
        self.signature = signature
        self.instances = instances
        self.tokens = _tokenize(signature)
        self.index = 0

    def peek(self, text: Optional[str] = None) -> Optional[_Token]:
        if self.index >= len(self.tokens):
            return None
        token = self.tokens[self.index]
        if text is not None and token.text != text:
            return None
        return token

    def take(self, text: Optional[str] = None) -> _Token:
        token = self.peek()
        if token is None or (text is not None and token.text != text):
            expected = f"'{text}'" if text else "a value"
            raise NoSuchInstantiatorError(f"Expected {expected} in signature '{self.signature}'")
        self.index += 1
        return token

    def parse(self) -> Any:
        value, _ = self.expression()
        if self.peek() is not None:
            raise NoSuchInstantiatorError(f"Unexpected '{self.peek().text}' in signature '{self.signature}'")
        return value

    def expression(self) -> Tuple[Any, bool]:
        """Return the value and whether it was a bare named-instance reference."""

        value, bare = self.primary()
        while True:
            if self.peek("."):
                self.take(".")
                attr = self.take().text
                if attr.startswith("_"):
                    raise NoSuchInstantiatorError(f"Cannot access private member '{attr}'")
                try:
                    value = getattr(value, attr)
                except AttributeError as exc:
                    raise NoSuchInstantiatorError(f"'{value}' has no member '{attr}'") from exc
                bare = False
            elif self.peek("("):
                self.take("(")
                args = self.arguments(")")
                value = self.factory.call(value, args)
                bare = False
            else:
                return value, bare

    def arguments(self, closing: str) -> List[Any]:
        args: List[Any] = []
        if self.peek(closing):
            self.take(closing)
            return args
        while True:
            value, bare = self.expression()
            if bare and isinstance(value, ObjectStream):
                value = value.next_item()
            args.append(value)
            if self.peek(","):
                self.take(",")
                continue
            self.take(closing)
            return args

    def primary(self) -> Tuple[Any, bool]:
        token = self.take()
        if token.kind == "string":
            return _UNESCAPE.sub(r"\1", token.text[1:-1]), False
        if token.kind == "number":
            return _parse_number(token.text), False
        if token.text == "[":
            return self.arguments("]"), False
        if token.kind != "name":
            raise NoSuchInstantiatorError(f"Unexpected '{token.text}' in signature '{self.signature}'")
        if token.text in _KEYWORDS:
            return _KEYWORDS[token.text], False
        if token.text in self.instances:
            return self.instances[token.text], True
        return self.qualified_type(token.text), False

    def qualified_type(self, first: str) -> Any:
        name = first
        consumed = 0
        while True:
            found = self.factory.types.get(name)
            if found is not None:
                self.index += consumed
                return found
            if not (self.peek_at(consumed, ".") and self.peek_at(consumed + 1)):
                raise NoSuchInstantiatorError(f"Unknown type or instance '{first}' in signature '{self.signature}'")
            name = f"{name}.{self.tokens[self.index + consumed + 1].text}"
            consumed += 2

    def peek_at(self, offset: int, text: Optional[str] = None) -> bool:
        position = self.index + offset
        if position >= len(self.tokens):
            return False
        return text is None or self.tokens[position].text == text


def _parse_number(text: str) -> Any:
    try:
        return int(text)
    except ValueError:
        return float(text)


class ObjectFactory:
    def __init__(self, types: Optional[Mapping[str, Any]] = None) -> None:
        self.types: Dict[str, Any] = dict(types) if types is not None else _default_types()

    def register_type(self, obj: Any, aliases: Iterable[str] = ()) -> None:
        names = {getattr(obj, "__name__", str(obj)), *aliases}
        module = getattr(obj, "__module__", None)
        if module:
            names.add(f"{module}.{getattr(obj, '__qualname__', obj.__name__)}")
        for name in names:
            self.types[name] = obj

    def resolve_type(self, name: str) -> Any:
        try:
            return self.types[name.strip()]
        except KeyError:
            raise NoSuchInstantiatorError(f"Unknown type '{name}'") from None

    def describe(self, target: Any) -> str:
        name = getattr(target, "__name__", str(target))
        try:
            return f"{name}{inspect.signature(target)}"
        except (TypeError, ValueError):
            return name

    def call(self, target: Any, args: Sequence[Any]) -> Any:
        if not callable(target):
            raise NoSuchInstantiatorError(f"'{target}' is not callable")
        try:
            inspect.signature(target).bind(*args)
        except TypeError as exc:
            raise NoSuchInstantiatorError(f"No {self.describe(target)} accepting {len(args)} argument(s): {exc}") from exc
        except ValueError:
            pass  # builtins without an introspectable signature
        try:
            return target(*args)
        except Exception as exc:
            raise InstantiationError(f"Error creating {getattr(target, '__name__', target)}: {exc}") from exc

    def instantiate(self, signature: str, expected: type = object, instances: Optional[Mapping[str, Any]] = None) -> Any:
        """Evaluate ``signature`` and check the result is an ``expected`` instance."""

        value = _Parser(self, signature, instances or {}).parse()
        if not isinstance(value, expected):
            raise NoSuchInstantiatorError(f"Signature '{signature}' does not produce {expected.__name__}")
        return value

    def convert_argument(self, text: str, instances: Optional[Mapping[str, Any]] = None) -> Any:
        """Interpret a plain string argument as a named instance, literal or string."""

        instances = instances or {}
        if text in instances:
            value = instances[text]
            return value.next_item() if isinstance(value, ObjectStream) else value
        if text in _KEYWORDS:
            return _KEYWORDS[text]
        if _NUMBER.fullmatch(text):
            return _parse_number(text)
        return trim_and_unquote(text)

    def create(
        self,
        type_name: str,
        string_args: Sequence[str],
        instances: Optional[Mapping[str, Any]] = None,
        expected: type = object,
    ) -> Any:
        target = self.resolve_type(type_name)
        if isinstance(target, type) and not issubclass(target, expected):
            raise NoSuchInstantiatorError(f"Type '{type_name}' is not a {expected.__name__}")
        args = [self.convert_argument(arg, instances) for arg in string_args]
        return self.call(target, args)
