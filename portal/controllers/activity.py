import logging
from typing import Optional

import psycopg
from fastapi import APIRouter, Query

from portal import db
from portal.dependencies import AdminIdentity
from portal.errors import DatabaseError, ServiceUnavailableError, ValidationError
from portal.models.activity import ActivityEntry, ActivityResponse

logger = logging.getLogger("portal.activity")
router = APIRouter()


@router.get("/activity")
async def activity_history(
    admin: AdminIdentity,
    event_id: Optional[str] = Query(None, description="Only entries for this event"),
    kind: Optional[str] = Query(None, description="event_created or registration"),
    before: Optional[str] = Query(None, description="ISO8601 timestamp; default now"),
    limit: int = Query(100, ge=1, le=500),
) -> ActivityResponse:
    if db.get_pool() is None:
        raise ServiceUnavailableError(detail="Activity persistence disabled")
    try:
        rows = await db.fetch_activity(event_id, kind, before, limit)
    except ValueError as e:
        raise ValidationError(detail=f"invalid timestamp: {before}", field="before") from e
    except psycopg.Error as e:
        logger.warning("activity.fetch failed err=%r", e)
        raise DatabaseError(detail="Failed to read activity history") from e
    entries = [ActivityEntry(**row) for row in rows]
    next_before = entries[-1].timestamp if entries else before
    return ActivityResponse(entries=entries, next_before=next_before)
