import io

import pytest

from opshell.controlfile.properties import ControlFile, load_control_file, parse_properties
from opshell.errors import ControlFileError


def test_separators_comments_and_continuation():
    entries = parse_properties(
        [
            "# comment",
            "! also a comment",
            "",
            "a = 1",
            "b: 2",
            "c 3",
            "long = first \\",
            "       second",
        ]
    )
    assert entries == {"a": "1", "b": "2", "c": "3", "long": "first second"}


def test_escapes():
    entries = parse_properties(["key\\ with\\ space = tab\\there", "uni = \\u0041", "var = \\<x>"])
    assert entries["key with space"] == "tab\there"
    assert entries["uni"] == "A"
    assert entries["var"] == "\\<x>"


def test_control_file_is_read_only_mapping():
    config = ControlFile.from_text("a = 1\nb = 2\n", source="inline")
    assert config["a"] == "1"
    assert "b" in config
    assert config.get("missing") is None
    assert sorted(config) == ["a", "b"]
    assert config.source == "inline"
    with pytest.raises(TypeError):
        config["c"] = "3"  # type: ignore[index]


def test_load_from_file_and_stdin(tmp_path):
    path = tmp_path / "run.cf"
    path.write_text("actions = echo\nactions.param.1 = hi\n", encoding="utf-8")
    config = load_control_file(path)
    assert config["actions.param.1"] == "hi"
    assert config.source == str(path)

    piped = load_control_file("-", stdin=io.StringIO("x = y\n"))
    assert piped["x"] == "y"
    assert piped.source == "<stdin>"


def test_missing_file_raises_control_file_error(tmp_path):
    with pytest.raises(ControlFileError) as excinfo:
        load_control_file(tmp_path / "nope.cf")
    assert "Cannot read control file" in excinfo.value.message
