"""Primitive command and control-file action routes."""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, List

from fastapi import APIRouter, HTTPException

from ...controlfile.properties import ControlFile, load_control_file
from ...errors import ControlFileError, NoSuchPrimitiveError, describe_exception
from ...observability.events import record_event
from ..schemas import ActionRequest, ActionResponse, CommandRequest, CommandResponse, PrimitiveInfo

if TYPE_CHECKING:  # pragma: no cover
    from ...runtime.application import Application

log = logging.getLogger(__name__)


def build_commands_router(application: "Application") -> APIRouter:
    router = APIRouter()

    @router.get("/api/commands", response_model=List[PrimitiveInfo])
    def api_list_commands() -> List[PrimitiveInfo]:
        return [
            PrimitiveInfo(name=entry.name, description=entry.description, arguments=list(entry.arguments))
            for entry in application.commands.primitives()
        ]

    @router.post("/api/commands", response_model=CommandResponse)
    def api_execute_command(payload: CommandRequest) -> CommandResponse:
        buffer = io.StringIO()
        try:
            success = application.execute(buffer, [payload.command, *payload.args])
        except NoSuchPrimitiveError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except Exception as exc:
            log.error("Command %s failed: %s", payload.command, describe_exception(exc), exc_info=exc)
            raise HTTPException(status_code=400, detail=describe_exception(exc)) from exc
        record_event(application.events, "command_executed", command=payload.command, success=success)
        return CommandResponse(success=success, output=buffer.getvalue())

    @router.post("/api/actions", response_model=ActionResponse)
    def api_run_action(payload: ActionRequest) -> ActionResponse:
        if payload.control_file is not None:
            try:
                config = load_control_file(payload.control_file)
            except ControlFileError as exc:
                raise HTTPException(status_code=400, detail=exc.message) from exc
        else:
            config = ControlFile.from_text(payload.source or "", source="<request>")
        variables = dict(payload.variables)
        buffer = io.StringIO()
        success = application.engine.run(buffer, config, payload.action, variables)
        return ActionResponse(success=success, output=buffer.getvalue(), variables=variables)

    return router


__all__ = ["build_commands_router"]
