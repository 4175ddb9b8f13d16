import pytest

from opshell.controlfile.policy import (
    Disposition,
    classify,
    known_exception_kinds,
    register_exception_kind,
    resolve_exception_kind,
)
from opshell.errors import InstantiationError, StreamExhaustedError, UnknownExceptionKindError


def test_short_and_qualified_names_resolve():
    assert resolve_exception_kind("ValueError").type is ValueError
    assert resolve_exception_kind("builtins.ValueError").type is ValueError
    assert resolve_exception_kind("opshell.errors.StreamExhaustedError").type is StreamExhaustedError
    assert "StreamExhaustedError" in known_exception_kinds()


def test_unknown_kind_raises():
    with pytest.raises(UnknownExceptionKindError) as excinfo:
        resolve_exception_kind("NoSuchThing")
    assert excinfo.value.message == "Unknown exception kind: NoSuchThing"


def test_repeat_until_wins_over_ignore():
    exc = KeyError("k")
    lookup = resolve_exception_kind("LookupError")
    key = resolve_exception_kind("KeyError")
    assert classify(exc, ignore=key, until=lookup) is Disposition.TERMINATE_LOOP
    assert classify(exc, ignore=lookup, until=None) is Disposition.IGNORE
    assert classify(exc, ignore=None, until=None) is Disposition.PROPAGATE
    assert classify(ValueError(), ignore=key, until=None) is Disposition.PROPAGATE


def test_wrapped_errors_match_their_cause():
    wrapper = InstantiationError("Error creating thing")
    wrapper.__cause__ = ZeroDivisionError("boom")
    kind = resolve_exception_kind("ZeroDivisionError")
    assert classify(wrapper, ignore=kind, until=None) is Disposition.IGNORE


def test_register_custom_kind():
    class QuotaExceeded(Exception):
        pass

    register_exception_kind(QuotaExceeded, aliases=("quota",))
    assert resolve_exception_kind("quota").type is QuotaExceeded
    assert resolve_exception_kind("QuotaExceeded").matches(QuotaExceeded())
