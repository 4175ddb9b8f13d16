"""
Control-file parsing, variable substitution and the action interpreter.
"""

from .engine import ActionEngine
from .output import OutputRegistry, resolve_output
from .properties import ControlFile, load_control_file
from .variables import substitute

__all__ = [
    "ActionEngine",
    "ControlFile",
    "OutputRegistry",
    "load_control_file",
    "resolve_output",
    "substitute",
]
