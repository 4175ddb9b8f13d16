"""Pydantic schemas used by the FastAPI server."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class PrimitiveInfo(BaseModel):
    name: str
    description: str = ""
    arguments: List[str] = Field(default_factory=list)


class CommandRequest(BaseModel):
    command: str
    args: List[str] = Field(default_factory=list)


class CommandResponse(BaseModel):
    success: bool
    output: str


class ActionRequest(BaseModel):
    control_file: Optional[str] = Field(None, description="Path of a control file to load")
    source: Optional[str] = Field(None, description="Inline control-file text")
    action: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _one_source(self) -> "ActionRequest":
        if (self.control_file is None) == (self.source is None):
            raise ValueError("Exactly one of 'control_file' or 'source' must be given")
        return self


class ActionResponse(BaseModel):
    success: bool
    output: str
    variables: Dict[str, str] = Field(default_factory=dict)


class EventsResponse(BaseModel):
    events: List[Dict[str, Any]]
