"""
Time-of-day and duration parsing for ``postponeUntil`` and ``repeatEvery``.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional

_TIME_SEPARATOR = re.compile(r"\s*[:.]\s*")
_HMS_PART = re.compile(r"\s*(\d+)\s*(\D)?\s*")
_HMS_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0}


def time_to_timestamp(text: str, now: Optional[dt.datetime] = None) -> float:
    """Return today's ``hh:mm[:ss[.mmm]]`` as epoch seconds.

    A single bare number is taken as epoch milliseconds.
    """

    parts = _TIME_SEPARATOR.split(text.strip(), maxsplit=3)
    if len(parts) == 1:
        try:
            return int(parts[0]) / 1000.0
        except ValueError as exc:
            raise ValueError(f"Invalid time '{text}'") from exc
    try:
        numbers = [int(part) for part in parts]
    except ValueError as exc:
        raise ValueError(f"Invalid time '{text}'") from exc
    numbers += [0] * (4 - len(numbers))
    hour, minute, second, millis = numbers
    base = now or dt.datetime.now()
    try:
        target = base.replace(hour=hour, minute=minute, second=second, microsecond=millis * 1000)
    except ValueError as exc:
        raise ValueError(f"Value of time '{text}' is invalid: {exc}") from exc
    return target.timestamp()


def hms_to_seconds(text: str) -> float:
    """Convert a period such as ``1h 10m 23s 999`` to seconds.

    A number without a unit letter counts milliseconds.
    """

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _HMS_PART.match(text, pos)
        if match is None:
            break
        pos = match.end()
        unit = match.group(2)
        if not unit:
            multiplier = 0.001
        else:
            try:
                multiplier = _HMS_UNITS[unit.lower()]
            except KeyError:
                raise ValueError(f"Unknown time specification: {unit}") from None
        total += multiplier * int(match.group(1))
    if pos != len(text):
        raise ValueError(f"Cannot understand hours/minutes/seconds value '{text}'")
    return total
