import logging
import time
from typing import Any, Literal

from portal import db

logger = logging.getLogger("portal.activity")

ActivityKind = Literal["event_created", "registration"]


async def record_activity(kind: ActivityKind, event_id: str, actor: str | None, payload: dict[str, Any]) -> bool:
    """Append to the activity history when persistence is enabled.

    Returns whether a row was written. Storage failures are logged and never
    propagate, so the caller's workflow result stands.
    """
    if db.get_pool() is None:
        return False
    try:
        await db.insert_activity(kind, event_id, actor, payload, int(time.time() * 1000))
        return True
    except Exception as e:
        logger.warning("activity.persist failed kind=%s event_id=%s err=%r", kind, event_id, e)
        return False
