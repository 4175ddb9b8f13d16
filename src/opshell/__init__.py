"""
opshell: control-file action interpreter and command shell.
"""

from .version import __version__  # noqa: F401

__all__ = [
    "controlfile",
    "runtime",
    "errors",
    "config",
    "__version__",
]
