"""Pydantic request models for API endpoints.

Entity bodies (Task, ChatMessage) reuse the client's wire models; these are
the small command bodies.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from housekeeping.models import RoomStatus


class CamelBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusBody(CamelBody):
    status: RoomStatus


class GuestsBody(CamelBody):
    has_guests: bool


class CompleteBody(CamelBody):
    completed_by: str


class ArchiveBody(CamelBody):
    date: str
    summary: str
    data: dict[str, Any]


class ContentBody(BaseModel):
    message: str = ""
    content: str
    sha: str | None = None
    branch: str | None = None
