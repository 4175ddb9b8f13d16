"""
Variable substitution and quoting helpers for control-file values.

Placeholders take the forms ``<name>``, ``<name:default>``, ``<name!>`` and
``${name}``. A placeholder preceded by a backslash is emitted literally.
"""

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Optional

from ..errors import ConfigurationError

VARIABLE_PATTERN = re.compile(r"(?:\\?<|\$\{)([^>}]+?)([:!]-?[^>}]*)?(?:>|\})", re.MULTILINE)
_QUOTED_TOKEN = re.compile(r"""\s*(?:'((?:[^'\\]|\\.)*)'|"((?:[^"\\]|\\.)*)"|([^\s'"]+))(\s*)""")


def substitute(text: Optional[str], variables: Mapping[str, str]) -> Optional[str]:
    """Replace placeholders in ``text`` with values from ``variables`` in a single pass."""

    if text is None:
        return None

    def _replace(match: re.Match) -> str:
        if text[match.start()] == "\\":
            return match.group(0)[1:]
        name = match.group(1)
        value = variables.get(name)
        if value is None:
            flag = match.group(2)
            if flag:
                if flag.startswith(":"):
                    value = flag[1:]
                elif flag.startswith("!"):
                    raise ConfigurationError(f"Variable {name} is required but no value has been provided")
        return "" if value is None else str(value)

    return VARIABLE_PATTERN.sub(_replace, text)


def _token(match: re.Match) -> str:
    for group in (1, 2, 3):
        value = match.group(group)
        if value is not None:
            return value
    return ""


def trim_and_unquote(text: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace and one level of quotes from a single token.

    Text holding more than one token (or unbalanced quotes) is returned unchanged.
    """

    if not text:
        return text
    match = _QUOTED_TOKEN.fullmatch(text)
    if match is None:
        return text
    return _token(match)


def split_by_space_with_quotes(text: Optional[str]) -> List[str]:
    """Split on whitespace, keeping quoted substrings together and dropping the quotes."""

    if not text or not text.strip():
        return []
    args: List[str] = []
    current: List[str] = []
    pending = False
    pos = 0
    while pos < len(text):
        match = _QUOTED_TOKEN.match(text, pos)
        if match is None or match.end() == pos:
            break
        pos = match.end()
        current.append(_token(match))
        pending = True
        if match.group(4):
            args.append("".join(current))
            current = []
            pending = False
    if pos != len(text):
        raise ValueError(f"Missing quotes: {text}")
    if pending:
        args.append("".join(current))
    return args


def string_to_map(text: Optional[str]) -> Dict[str, str]:
    """Parse ``key=value`` pairs separated by commas; keys and values may be quoted."""

    result: Dict[str, str] = {}
    if not text:
        return result
    for item in _split_outside_quotes(text, ","):
        if not item.strip():
            continue
        key, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"Missing '=' in map entry: {item.strip()}")
        result[trim_and_unquote(key.strip())] = trim_and_unquote(value.strip())
    return result


def _split_outside_quotes(text: str, separator: str) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    quote: Optional[str] = None
    escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif quote:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == separator:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return parts
