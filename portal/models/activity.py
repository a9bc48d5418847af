"""Pydantic response models for the activity history API."""

from typing import Any

from pydantic import BaseModel


class ActivityEntry(BaseModel):
    """One recorded event creation or registration."""

    kind: str
    event_id: str
    actor: str | None = None
    timestamp: str
    payload: dict[str, Any]


class ActivityResponse(BaseModel):
    """Response model for the /activity endpoint."""

    entries: list[ActivityEntry]
    next_before: str | None = None
