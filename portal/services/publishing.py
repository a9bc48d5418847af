"""Admin event publishing."""

import logging
import re
import time
from datetime import date

from portal.errors import StoreUnavailableError, ValidationError
from portal.models.events import Event, EventCreateRequest
from portal.services.registration import COUNTER_FIELD, EVENTS_COLLECTION
from portal.store import DocumentStore, StoreUnavailable

logger = logging.getLogger("portal.publishing")

REQUIRED_FIELDS = ("title", "description", "date", "time")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")


def _now_ms() -> int:
    return int(time.time() * 1000)


def validate_draft(draft: EventCreateRequest) -> None:
    missing = [name for name in REQUIRED_FIELDS if not getattr(draft, name).strip()]
    if missing:
        raise ValidationError(detail=f"Missing required fields: {', '.join(missing)}", missing=missing)
    try:
        if not DATE_RE.match(draft.date.strip()):
            raise ValueError(draft.date)
        date.fromisoformat(draft.date.strip())
    except ValueError as e:
        raise ValidationError(detail=f"invalid date format: {draft.date}", field="date") from e
    if not TIME_RE.match(draft.time.strip()):
        raise ValidationError(detail=f"invalid time format: {draft.time}", field="time")


async def create_event(
    store: DocumentStore,
    draft: EventCreateRequest,
    admin_id: str,
    placeholder_photo_url: str,
    clock=_now_ms,
) -> Event:
    """Validate and write a new event with its attendee counter at 0."""
    validate_draft(draft)
    fields = {
        "title": draft.title.strip(),
        "description": draft.description.strip(),
        "photo_url": (draft.photo_url or "").strip() or placeholder_photo_url,
        "date": draft.date.strip(),
        "time": draft.time.strip(),
        "created_at": clock(),
        "admin_id": admin_id,
        COUNTER_FIELD: 0,
    }
    try:
        event_id = await store.add(store.collection(EVENTS_COLLECTION), fields)
    except StoreUnavailable as e:
        raise StoreUnavailableError() from e
    logger.info("Created event id=%s date=%s admin=%s", event_id, fields["date"], admin_id)
    return Event(id=event_id, **fields)
