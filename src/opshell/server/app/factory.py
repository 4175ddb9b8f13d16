"""Application factory that builds the FastAPI app around an opshell application."""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from ...observability.events import record_event
from ...runtime.application import Application
from ...version import __version__
from ..routes.commands import build_commands_router
from ..routes.contexts import ContextRegistry, build_contexts_router
from ..routes.health import build_health_router


def create_app(application: Optional[Application] = None) -> FastAPI:
    """Create the FastAPI app and bind ``application.http_contexts`` to it."""

    application = application or Application()
    app = FastAPI(title="opshell", version=__version__)
    contexts = ContextRegistry()
    application.http_contexts = contexts
    app.state.application = application
    app.state.contexts = contexts

    app.include_router(build_health_router(application.events))
    app.include_router(build_commands_router(application))
    # catch-all context routes go last
    app.include_router(build_contexts_router(application, contexts))
    record_event(application.events, "http_app_created")
    return app


__all__ = ["create_app"]
