"""
Readers for action definitions stored in a control file.

An action ``name`` is described by the key ``name`` (primitive name or a
whitespace-separated block of sub-actions), positional arguments under
``name.param.1``, ``name.param.2``, ... and optional modifier keys such as
``name.repeat`` or ``name.outputFile``.
"""

from __future__ import annotations

import re
from typing import List, Mapping, Optional

from .variables import substitute, trim_and_unquote

REPEAT = "repeat"
FOREACH = "foreach"
REPEAT_UNTIL_EXCEPTION = "repeatUntilException"
IGNORE_EXCEPTION = "ignoreException"
LOOP_VARIABLE = "loopVariable"
POSTPONE_UNTIL = "postponeUntil"
OUTPUT_FILE = "outputFile"
ASSIGN = "assign"
DESCRIPTION = "description"
DESCRIPTION_AFTER = "descriptionAfter"
REPEAT_EVERY = "repeatEvery"

MODIFIERS = (
    REPEAT,
    FOREACH,
    REPEAT_UNTIL_EXCEPTION,
    IGNORE_EXCEPTION,
    LOOP_VARIABLE,
    POSTPONE_UNTIL,
    OUTPUT_FILE,
    ASSIGN,
    DESCRIPTION,
    DESCRIPTION_AFTER,
    REPEAT_EVERY,
)

# primitive name -> argument count (command name included) that triggers appending the action name
IMPLICIT_NAME_PRIMITIVES = {
    "objectStreamOpen": 3,
    "namedInstanceAdd": 2,
    "namedInstanceReplace": 2,
}

_BLOCK_SEPARATOR = re.compile(r"[ \t]+")


def modifier_key(action: str, modifier: str) -> str:
    return f"{action}.{modifier}"


def read_arguments(config: Mapping[str, str], action: str, variables: Mapping[str, str]) -> List[str]:
    """Return the method/block name followed by the contiguous ``.param.N`` values."""

    arguments: List[str] = []
    raw: Optional[str] = config.get(action, action)
    while raw is not None:
        arguments.append(trim_and_unquote(substitute(raw, variables)))
        raw = config.get(f"{action}.param.{len(arguments)}")
    name = arguments[0]
    if IMPLICIT_NAME_PRIMITIVES.get(name) == len(arguments):
        arguments.append(action)
    return arguments


def read_modifier(
    config: Mapping[str, str],
    action: str,
    modifier: str,
    variables: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Look up ``action.modifier``; values are substituted unless ``variables`` is None."""

    raw = config.get(modifier_key(action, modifier))
    if raw is None or variables is None:
        return raw
    return substitute(raw, variables)


def has_modifier(config: Mapping[str, str], action: str, modifier: str) -> bool:
    return modifier_key(action, modifier) in config


def read_foreach(config: Mapping[str, str], action: str, variables: Mapping[str, str]) -> Optional[List[str]]:
    raw = read_modifier(config, action, FOREACH, variables)
    if raw is None:
        return None
    return _BLOCK_SEPARATOR.split(raw.strip())


def is_block(target: str) -> bool:
    return " " in target or "\t" in target


def block_members(target: str) -> List[str]:
    return [name for name in _BLOCK_SEPARATOR.split(target.strip()) if name]
