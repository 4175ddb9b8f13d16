"""Health and engine event routes."""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter

from ...observability.events import EventBuffer, record_event
from ..schemas import EventsResponse


def build_health_router(events: EventBuffer) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health() -> Dict[str, str]:
        record_event(events, "health_ping")
        return {"status": "ok"}

    @router.get("/api/events", response_model=EventsResponse)
    def api_events(
        limit: int = 0, after: int = 0, action: Optional[str] = None, run: Optional[int] = None
    ) -> EventsResponse:
        return EventsResponse(events=events.history(limit or None, action=action, run=run, after=after))

    return router


__all__ = ["build_health_router"]
