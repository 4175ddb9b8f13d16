"""
In-memory history of interpreter events for the HTTP API.

Every event names the action it concerns and the control-file run it belongs
to, so a client can follow one run (or one action) through the history.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, List, Optional


@dataclass
class EngineEvent:
    id: int
    timestamp: str
    level: str
    event: str
    action: Optional[str] = None
    run: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class EventBuffer:
    def __init__(self, max_events: int = 300) -> None:
        self.max_events = max_events
        self._events: Deque[EngineEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self._seq = 0
        self._runs = itertools.count(1)

    def start_run(self) -> int:
        """Number for a new control-file run."""

        with self._lock:
            return next(self._runs)

    def append(
        self,
        event: str,
        level: str = "info",
        action: Optional[str] = None,
        run: Optional[int] = None,
        **details: Any,
    ) -> EngineEvent:
        with self._lock:
            self._seq += 1
            entry = EngineEvent(
                id=self._seq,
                timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                level=level,
                event=event,
                action=action,
                run=run,
                details=details,
            )
            self._events.append(entry)
        return entry

    def history(
        self,
        limit: Optional[int] = None,
        action: Optional[str] = None,
        run: Optional[int] = None,
        after: int = 0,
    ) -> List[dict]:
        """Events oldest first, optionally narrowed to one action or run.

        ``limit`` keeps the newest matching events; ``after`` skips events up to
        and including that id.
        """

        with self._lock:
            events = list(self._events)
        events = [
            entry
            for entry in events
            if entry.id > after
            and (action is None or entry.action == action)
            and (run is None or entry.run == run)
        ]
        if limit is not None and limit > 0:
            events = events[-limit:]
        return [entry.to_dict() for entry in events]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def record_event(
    buffer: Optional[EventBuffer],
    event: str,
    level: str = "info",
    action: Optional[str] = None,
    run: Optional[int] = None,
    **details: Any,
) -> Optional[EngineEvent]:
    if buffer is None:
        return None
    return buffer.append(event, level=level, action=action, run=run, **details)
