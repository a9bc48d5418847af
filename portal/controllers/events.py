import logging

from fastapi import APIRouter

from portal.config import get_settings
from portal.dependencies import AdminIdentity, Store
from portal.errors import NotFoundError, StoreUnavailableError
from portal.models.events import (
    Event,
    EventCreatedResponse,
    EventCreateRequest,
    EventsResponse,
    RegistrationConfirmation,
    RegistrationRequest,
    RegistrationsResponse,
)
from portal.producers.activity_producer import record_activity
from portal.services.feed import fetch_upcoming
from portal.services.publishing import create_event as publish_event
from portal.services.registration import EVENTS_COLLECTION, list_registrations, normalize_email, register
from portal.store import StoreUnavailable

logger = logging.getLogger("portal.events")
router = APIRouter()


@router.get("/events")
async def list_upcoming_events(store: Store) -> EventsResponse:
    events = await fetch_upcoming(store, get_settings().app.tzinfo)
    logger.info("GET /events upcoming=%d", len(events))
    return EventsResponse(count=len(events), events=events)


@router.get("/events/{event_id}")
async def get_event(event_id: str, store: Store) -> Event:
    try:
        snap = await store.get(store.collection(EVENTS_COLLECTION).doc(event_id))
    except StoreUnavailable as e:
        raise StoreUnavailableError() from e
    if not snap.exists:
        raise NotFoundError(detail="Event not found", event_id=event_id)
    return Event.from_snapshot(snap)


@router.post("/events", status_code=201)
async def create_event(req: EventCreateRequest, store: Store, admin: AdminIdentity) -> EventCreatedResponse:
    logger.info("POST /events title=%r date=%s", req.title, req.date)
    event = await publish_event(
        store,
        req,
        admin_id=admin.uid,
        placeholder_photo_url=get_settings().app.placeholder_photo_url,
    )
    await record_activity("event_created", event.id, admin.uid, {"title": event.title, "date": event.date})
    return EventCreatedResponse(id=event.id, event=event)


@router.post("/events/{event_id}/registrations", status_code=201)
async def register_for_event(event_id: str, req: RegistrationRequest, store: Store) -> RegistrationConfirmation:
    logger.info("POST /events/%s/registrations", event_id)
    confirmation = await register(store, event_id, req.name, req.email)
    await record_activity(
        "registration",
        event_id,
        None,
        {"name": req.name.strip(), "email": normalize_email(req.email)},
    )
    return confirmation


@router.get("/events/{event_id}/registrations")
async def get_event_registrations(event_id: str, store: Store, admin: AdminIdentity) -> RegistrationsResponse:
    registrations = await list_registrations(store, event_id)
    return RegistrationsResponse(event_id=event_id, count=len(registrations), registrations=registrations)
