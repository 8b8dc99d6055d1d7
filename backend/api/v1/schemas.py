"""Shared API payload base and small response schemas."""

from __future__ import annotations

from typing import Annotated

from fastapi import Path
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from core import MAX_RECORD_ID

RecordIdPath = Annotated[int, Path(ge=1, le=MAX_RECORD_ID)]


class ApiModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(ApiModel):
    message: str


class ErrorResponse(ApiModel):
    error: str
    details: str | None = None
