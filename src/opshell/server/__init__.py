"""
HTTP front-end: health, primitive commands, control-file actions and the
dynamic contexts registered with ``httpAddContext``.
"""

from __future__ import annotations

from .app import create_app

__all__ = ["create_app"]
