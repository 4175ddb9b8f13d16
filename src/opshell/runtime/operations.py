"""
Operations processed by engines: each carries its arguments, named
parameters, an answer list and an error code once it has been processed.
"""

from __future__ import annotations

import enum
import inspect
import re
from typing import Any, Dict, List, Optional

from .statistics import StatisticsRegistry


class ErrorCode(enum.Enum):
    NOT_SET = "not set"
    RESPONSE_RETURNED = "response returned"
    OBJECT_INSERTED = "object inserted"
    OBJECT_DELETED = "object deleted"
    OBJECT_NOT_FOUND = "object not found"

    def __str__(self) -> str:
        return self.name

    @property
    def is_set(self) -> bool:
        return self is not ErrorCode.NOT_SET


class Operation:
    """Base operation. Subclasses declare their arguments in ``__init__``."""

    is_query = False

    def __init__(self, *arguments: Any) -> None:
        self.arguments: tuple[Any, ...] = arguments
        self.parameters: Dict[str, Any] = {}
        self.answer: List[Any] = []
        self.error_code = ErrorCode.NOT_SET
        self.statistics = StatisticsRegistry()

    @classmethod
    def describe(cls) -> str:
        return f"{cls.__name__}{inspect.signature(cls)}"

    @property
    def argument_count(self) -> int:
        return len(self.arguments)

    def get_argument(self, index: int) -> Any:
        return self.arguments[index]

    def set_parameter(self, name: str, value: Any) -> None:
        self.parameters[name] = value

    def get_parameter(self, name: str, default: Any = None) -> Any:
        return self.parameters.get(name, default)

    def end_operation(self, code: ErrorCode = ErrorCode.RESPONSE_RETURNED) -> None:
        self.error_code = code

    @property
    def is_finished(self) -> bool:
        return self.error_code.is_set

    @property
    def answer_count(self) -> int:
        return len(self.answer)

    def add_to_answer(self, item: Any) -> None:
        self.answer.append(item)

    def reset_answer(self) -> None:
        self.answer = []
        self.error_code = ErrorCode.NOT_SET

    def __str__(self) -> str:
        args = ", ".join(repr(arg) for arg in self.arguments)
        text = f"{type(self).__name__}({args}) returned {self.error_code}"
        if self.is_query:
            text += f": {self.answer_count} object(s)"
        return text


class InsertOperation(Operation):
    def __init__(self, obj: Any) -> None:
        super().__init__(obj)

    @property
    def obj(self) -> Any:
        return self.arguments[0]


class DeleteOperation(Operation):
    """Delete objects equal to ``obj``; ``limit`` of zero removes all copies."""

    def __init__(self, obj: Any, limit: int = 0) -> None:
        super().__init__(obj, limit)

    @property
    def obj(self) -> Any:
        return self.arguments[0]

    @property
    def limit(self) -> int:
        return int(self.arguments[1])


class MatchQueryOperation(Operation):
    """Objects whose text form matches ``pattern``; at most ``limit`` when positive."""

    is_query = True

    def __init__(self, pattern: str, limit: int = 0) -> None:
        super().__init__(pattern, limit)
        self.regex = re.compile(str(pattern))

    @property
    def limit(self) -> int:
        return int(self.arguments[1])

    def accepts(self, obj: Any) -> bool:
        return self.regex.search(str(obj)) is not None

    @property
    def is_full(self) -> bool:
        return 0 < self.limit <= self.answer_count


class CountOperation(Operation):
    def __init__(self) -> None:
        super().__init__()

    @property
    def count(self) -> Optional[int]:
        return self.get_parameter("count")
