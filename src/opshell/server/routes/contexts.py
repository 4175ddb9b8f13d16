"""Dynamic HTTP contexts bound to control-file actions by ``httpAddContext``."""

from __future__ import annotations

import io
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from ...errors import DuplicateInstanceError, describe_exception, root_cause
from ...observability.events import record_event

if TYPE_CHECKING:  # pragma: no cover
    from ...runtime.application import Application

log = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def normalize_path(path: str) -> str:
    path = path.strip()
    return path if path.startswith("/") else "/" + path


@dataclass
class HttpContext:
    path: str
    config: Mapping[str, str]
    action: str
    content_type: str = "text/plain"
    variables: Dict[str, str] = field(default_factory=dict)


class ContextRegistry:
    def __init__(self) -> None:
        self._contexts: Dict[str, HttpContext] = {}
        self._lock = threading.Lock()

    def add(
        self,
        path: str,
        config: Mapping[str, str],
        action: str,
        content_type: str = "text/plain",
        variables: Optional[Mapping[str, str]] = None,
    ) -> HttpContext:
        context = HttpContext(normalize_path(path), config, action, content_type, dict(variables or {}))
        with self._lock:
            if context.path in self._contexts:
                raise DuplicateInstanceError(f"Context '{path}' already exists")
            self._contexts[context.path] = context
        return context

    def remove(self, path: str) -> Optional[HttpContext]:
        with self._lock:
            return self._contexts.pop(normalize_path(path), None)

    def get(self, path: str) -> Optional[HttpContext]:
        with self._lock:
            return self._contexts.get(normalize_path(path))

    def paths(self) -> List[str]:
        with self._lock:
            return sorted(self._contexts)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        with self._lock:
            return normalize_path(path) in self._contexts


def build_contexts_router(application: "Application", contexts: ContextRegistry) -> APIRouter:
    """Catch-all routes; include this router after every fixed route."""

    router = APIRouter()

    def _run(context: HttpContext, variables: Dict[str, str]) -> Response:
        buffer = io.StringIO()
        try:
            ok = application.engine.run(buffer, context.config, context.action, variables, throw_exception=True)
        except Exception as exc:
            cause = root_cause(exc)
            log.error("HTTP context %s failed: %s", context.path, describe_exception(cause), exc_info=cause)
            record_event(
                application.events, "context_failed", level="error", action=context.action, path=context.path, error=str(cause)
            )
            return PlainTextResponse(describe_exception(cause), status_code=500)
        return Response(buffer.getvalue(), status_code=200 if ok else 400, media_type=context.content_type)

    @router.api_route("/{path:path}", methods=["GET", "POST"], include_in_schema=False)
    async def context_handler(path: str, request: Request) -> Response:
        context = contexts.get(path)
        if context is None:
            raise HTTPException(status_code=404, detail="Not Found")
        variables = dict(context.variables)
        variables.update(request.query_params)
        if request.method == "POST" and request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPE):
            body = (await request.body()).decode("utf-8")
            variables.update(parse_qsl(body, keep_blank_values=True))
        return await run_in_threadpool(_run, context, variables)

    return router


__all__ = ["ContextRegistry", "HttpContext", "build_contexts_router", "normalize_path"]
