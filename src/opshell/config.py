"""
Centralized configuration loader for the shell front-ends and logging.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_PROMPT = "OPSHELL >>> "
DEFAULT_ACTION = "actions"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class ShellConfig:
    prompt: str = DEFAULT_PROMPT
    default_action: str = DEFAULT_ACTION
    log_level: str = "INFO"
    log_format: str = DEFAULT_LOG_FORMAT
    shell_host: str = "0.0.0.0"
    http_host: str = "127.0.0.1"
    event_buffer_size: int = 300


def _env_int(environ: dict, name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def load_config(env: Optional[dict] = None) -> ShellConfig:
    environ = env if env is not None else os.environ
    return ShellConfig(
        prompt=environ.get("OPSHELL_PROMPT") or DEFAULT_PROMPT,
        default_action=environ.get("OPSHELL_DEFAULT_ACTION") or DEFAULT_ACTION,
        log_level=(environ.get("OPSHELL_LOG_LEVEL") or "INFO").upper(),
        log_format=environ.get("OPSHELL_LOG_FORMAT") or DEFAULT_LOG_FORMAT,
        shell_host=environ.get("OPSHELL_SHELL_HOST") or "0.0.0.0",
        http_host=environ.get("OPSHELL_HTTP_HOST") or "127.0.0.1",
        event_buffer_size=_env_int(environ, "OPSHELL_EVENT_BUFFER_SIZE", 300),
    )
