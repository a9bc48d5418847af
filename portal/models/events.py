"""Pydantic models for the events and registrations API."""

from pydantic import BaseModel

from portal.store import DocumentSnapshot


class Event(BaseModel):
    """A published event as stored in the ``events`` collection."""

    id: str
    title: str
    description: str = ""
    photo_url: str = ""
    date: str
    time: str = ""
    created_at: int = 0
    admin_id: str | None = None
    registrations_count: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Event":
        return cls.model_validate(snapshot.to_dict())


class EventCreateRequest(BaseModel):
    """Admin form for publishing an event; presence is checked by the workflow."""

    title: str = ""
    description: str = ""
    date: str = ""
    time: str = ""
    photo_url: str | None = None


class EventCreatedResponse(BaseModel):
    id: str
    event: Event


class EventsResponse(BaseModel):
    count: int
    events: list[Event]


class RegistrationRequest(BaseModel):
    name: str = ""
    email: str = ""


class Registration(BaseModel):
    """A registration document; ``id`` is the normalized email."""

    id: str
    name: str
    email: str
    registered_at: int

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "Registration":
        return cls.model_validate(snapshot.to_dict())


class RegistrationConfirmation(BaseModel):
    """Returned on a successful registration, echoing what the user typed."""

    event_id: str
    event_title: str
    name: str
    email: str
    registrations_count: int
    email_simulated: bool = True
    message: str


class RegistrationsResponse(BaseModel):
    event_id: str
    count: int
    registrations: list[Registration]
