import pytest

from opshell.controlfile.variables import (
    split_by_space_with_quotes,
    string_to_map,
    substitute,
    trim_and_unquote,
)
from opshell.errors import ConfigurationError


def test_default_used_only_when_variable_missing():
    assert substitute("<x:5>", {}) == "5"
    assert substitute("<x:5>", {"x": "9"}) == "9"


def test_none_text_passes_through():
    assert substitute(None, {"x": "1"}) is None


def test_missing_variable_without_default_becomes_empty():
    assert substitute("a<x>b", {}) == "ab"


def test_dollar_brace_form():
    assert substitute("${name}-<name>", {"name": "n"}) == "n-n"


def test_substitution_is_single_pass():
    assert substitute("<a>", {"a": "<b>", "b": "deep"}) == "<b>"


def test_escaped_placeholder_is_literal():
    assert substitute(r"keep \<x> but <x>", {"x": "1"}) == "keep <x> but 1"


def test_required_variable_missing_raises():
    with pytest.raises(ConfigurationError) as excinfo:
        substitute("<host!>", {})
    assert "Variable host is required" in str(excinfo.value)
    assert substitute("<host!>", {"host": "h"}) == "h"


def test_malformed_placeholder_left_verbatim():
    assert substitute("a < b", {}) == "a < b"
    assert substitute("<unterminated", {}) == "<unterminated"


def test_trim_and_unquote():
    assert trim_and_unquote('  "hello world"  ') == "hello world"
    assert trim_and_unquote("  plain ") == "plain"
    assert trim_and_unquote("two words") == "two words"
    assert trim_and_unquote("") == ""
    assert trim_and_unquote(None) is None


def test_split_honours_quotes():
    assert split_by_space_with_quotes('echo "a b"  c') == ["echo", "a b", "c"]
    assert split_by_space_with_quotes("x='1 2'") == ["x=1 2"]
    assert split_by_space_with_quotes('say ""') == ["say", ""]
    assert split_by_space_with_quotes("trailing  ") == ["trailing"]
    assert split_by_space_with_quotes("   ") == []


def test_split_reports_unterminated_quotes():
    with pytest.raises(ValueError) as excinfo:
        split_by_space_with_quotes('echo "oops')
    assert str(excinfo.value).startswith("Missing quotes")


def test_string_to_map():
    assert string_to_map('a=1, "b c"=2, d = \'x, y\'') == {"a": "1", "b c": "2", "d": "x, y"}
    assert string_to_map("") == {}
    with pytest.raises(ValueError):
        string_to_map("novalue")
