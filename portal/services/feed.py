"""Live feed of upcoming events.

The feed follows the ``events`` collection ordered by date and, on every
snapshot, keeps the events dated today or later. "Today" is a calendar
date in the configured timezone, so an event dated today stays listed for
the whole day regardless of its start time.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import date, datetime, tzinfo
from datetime import timezone as dt_timezone

from portal.errors import StoreUnavailableError
from portal.models.events import Event
from portal.services.registration import EVENTS_COLLECTION
from portal.store import DocumentSnapshot, DocumentStore, QuerySnapshot, QuerySubscription, StoreError, StoreUnavailable

logger = logging.getLogger("portal.feed")


def today_in(tz: tzinfo = dt_timezone.utc) -> date:
    return datetime.now(tz).date()


def upcoming_events(snapshots: Iterable[DocumentSnapshot], today: date) -> list[Event]:
    """Keep events dated ``today`` or later, preserving the input order."""
    upcoming = []
    for snap in snapshots:
        raw_date = snap.get("date")
        try:
            event_date = date.fromisoformat(raw_date)
        except (TypeError, ValueError):
            logger.debug("feed.skip id=%s date=%r", snap.id, raw_date)
            continue
        if event_date >= today:
            upcoming.append(Event.from_snapshot(snap))
    return upcoming


async def fetch_upcoming(store: DocumentStore, tz: tzinfo = dt_timezone.utc) -> list[Event]:
    """One-shot read of the upcoming events."""
    try:
        docs = await store.query(store.collection(EVENTS_COLLECTION), order_by="date")
    except StoreUnavailable as e:
        raise StoreUnavailableError() from e
    return upcoming_events(docs, today_in(tz))


class EventFeed:
    """Push the upcoming events to ``on_update`` whenever the collection changes.

    Usage:
        async with EventFeed(store, on_update=send):
            ...  # on_update runs once on entry, then after every change
    """

    def __init__(
        self,
        store: DocumentStore,
        on_update: Callable[[list[Event]], Awaitable[None]],
        on_error: Callable[[StoreError], Awaitable[None]] | None = None,
        tz: tzinfo = dt_timezone.utc,
        clock: Callable[[], date] | None = None,
    ):
        self._on_update = on_update
        self._clock = clock or (lambda: today_in(tz))
        self._subscription: QuerySubscription = store.subscribe(
            store.collection(EVENTS_COLLECTION),
            order_by="date",
            on_snapshot=self._handle_snapshot,
            on_error=on_error,
        )

    async def _handle_snapshot(self, snapshot: QuerySnapshot) -> None:
        await self._on_update(upcoming_events(snapshot, self._clock()))

    async def __aenter__(self) -> "EventFeed":
        await self._subscription.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self._subscription.unsubscribe()

    @property
    def active(self) -> bool:
        return self._subscription.active
