"""Attendee registration.

At most one registration exists per (event, normalized email): the
registration document is keyed by the normalized email and written with a
conditional create, so a second attempt for the same address fails before
anything is written. The event's ``registrations_count`` is then bumped
with the store's atomic increment, so concurrent registrations never
overwrite each other's count.

A registration that was written but whose counter increment failed is not
rolled back; it is logged as counter drift and reported as a failure.
"""

import logging
import time

from portal.errors import (
    DuplicateRegistrationError,
    NotFoundError,
    RegistrationFailedError,
    StoreUnavailableError,
    ValidationError,
)
from portal.models.events import Registration, RegistrationConfirmation
from portal.services.notifications import send_confirmation
from portal.store import DocumentExists, DocumentStore, StoreError, StoreUnavailable

logger = logging.getLogger("portal.registration")

EVENTS_COLLECTION = "events"
REGISTRATIONS_COLLECTION = "registrations"
COUNTER_FIELD = "registrations_count"


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_email(email: str) -> str:
    """Lower-case and trim; the result is the de-duplication key."""
    return email.strip().lower()


def _validate(name: str, email: str) -> str:
    missing = [label for label, value in (("name", name), ("email", email)) if not value.strip()]
    if missing:
        raise ValidationError(detail="Name and email are required", missing=missing)
    normalized = normalize_email(email)
    if "@" not in normalized or "/" in normalized:
        raise ValidationError(detail=f"{email} is not a valid email address", field="email")
    return normalized


async def register(
    store: DocumentStore,
    event_id: str,
    name: str,
    email: str,
    clock=_now_ms,
) -> RegistrationConfirmation:
    """Register ``name``/``email`` for an event.

    Raises:
        ValidationError: Name or email missing or malformed.
        NotFoundError: No event with ``event_id``.
        DuplicateRegistrationError: The normalized email is already registered.
        StoreUnavailableError: The store could not be reached.
        RegistrationFailedError: The store failed while writing.
    """
    normalized = _validate(name, email)
    event_ref = store.collection(EVENTS_COLLECTION).doc(event_id)
    registration_ref = event_ref.collection(REGISTRATIONS_COLLECTION).doc(normalized)

    try:
        event = await store.get(event_ref)
    except StoreUnavailable as e:
        raise StoreUnavailableError() from e
    except StoreError as e:
        raise RegistrationFailedError(detail=str(e)) from e
    if not event.exists:
        raise NotFoundError(detail="Event not found", event_id=event_id)

    try:
        await store.create(
            registration_ref,
            {"name": name.strip(), "email": normalized, "registered_at": clock()},
        )
    except DocumentExists as e:
        logger.info("registration.duplicate event_id=%s", event_id)
        raise DuplicateRegistrationError(
            detail=f"The email address {email} is already registered for this event.",
            email=email,
        ) from e
    except StoreUnavailable as e:
        raise StoreUnavailableError() from e
    except StoreError as e:
        raise RegistrationFailedError(detail=str(e)) from e

    try:
        count = await store.increment(event_ref, COUNTER_FIELD)
    except StoreError as e:
        logger.error(
            "registration.counter_drift event_id=%s registration=%s err=%s",
            event_id, registration_ref.path, e,
        )
        if isinstance(e, StoreUnavailable):
            raise StoreUnavailableError() from e
        raise RegistrationFailedError(detail=str(e)) from e

    logger.info("registration.created event_id=%s count=%d", event_id, count)
    title = event.get("title", "")
    send_confirmation(name=name, email=email, event_title=title)
    return RegistrationConfirmation(
        event_id=event_id,
        event_title=title,
        name=name,
        email=email,
        registrations_count=count,
        message=f"Thank you, {name}! A confirmation email has been sent to {email} (simulated).",
    )


async def list_registrations(store: DocumentStore, event_id: str) -> list[Registration]:
    """All registrations of an event, oldest first."""
    event_ref = store.collection(EVENTS_COLLECTION).doc(event_id)
    try:
        event = await store.get(event_ref)
        if not event.exists:
            raise NotFoundError(detail="Event not found", event_id=event_id)
        docs = await store.query(event_ref.collection(REGISTRATIONS_COLLECTION), order_by="registered_at")
    except StoreUnavailable as e:
        raise StoreUnavailableError() from e
    return [Registration.from_snapshot(d) for d in docs]
