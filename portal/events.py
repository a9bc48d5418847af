from typing import Literal, Optional, TypedDict, Union


class DocumentChangedEvent(TypedDict):
    type: Literal["document_changed"]
    collection: str
    id: str
    op: Literal["set", "create", "update", "increment"]


class IdentityPayload(TypedDict):
    uid: str
    is_anonymous: bool
    email: Optional[str]
    is_admin: bool


class IdentityChangedEvent(TypedDict):
    type: Literal["identity_changed"]
    identity: Optional[IdentityPayload]


class EventsSnapshotMessage(TypedDict):
    type: Literal["events"]
    events: list[dict]


class FeedErrorMessage(TypedDict):
    type: Literal["error"]
    detail: str


class PingEvent(TypedDict):
    type: Literal["ping"]


# Messages a /ws/events client may receive
FeedMessage = Union[EventsSnapshotMessage, FeedErrorMessage, PingEvent]
