"""
Custom error types for the opshell interpreter and runtime.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(eq=False)
class OpshellError(Exception):
    """Base error with optional action context."""

    message: str
    action: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.action:
            return f"{self.message} (action '{self.action}')"
        return self.message


class ControlFileError(OpshellError):
    """Control file cannot be read or is malformed."""


class ConfigurationError(OpshellError, ValueError):
    """An action modifier or variable has an invalid value."""


class UnknownExceptionKindError(ConfigurationError):
    """An exception-kind identifier does not name a registered kind."""


class ActionNotFoundError(OpshellError, LookupError):
    """Neither an action nor a primitive exists under the requested name."""


class NoSuchPrimitiveError(OpshellError, LookupError):
    """The command registry has no primitive with the requested name."""


class NoSuchInstantiatorError(OpshellError, LookupError):
    """An object-factory signature cannot be resolved."""


class InstantiationError(OpshellError):
    """A constructor or factory raised; the original error is the __cause__."""


class DuplicateInstanceError(OpshellError, KeyError):
    """A named instance is already registered."""


class MissingInstanceError(OpshellError, KeyError):
    """A named instance is not registered."""


class StreamExhaustedError(OpshellError, LookupError):
    """An object stream has no more items."""


class OperationError(OpshellError):
    """An engine failed to process an operation."""


class UnsupportedOperationError(OperationError):
    """An engine does not support the given operation type."""


class InternalConsistencyError(OpshellError):
    """An exception escaped a run that must not raise."""


def root_cause(exc: BaseException) -> BaseException:
    """Unwrap instantiation wrappers down to the error that was really raised."""

    while isinstance(exc, InstantiationError) and exc.__cause__ is not None:
        exc = exc.__cause__
    return exc


def describe_exception(exc: BaseException) -> str:
    text = str(exc)
    name = type(exc).__name__
    return f"{name}: {text}" if text else name
