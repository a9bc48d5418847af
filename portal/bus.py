"""
Event bus for the portal, backed by Redis pub/sub.

Document writes announce themselves on a per-collection channel so live
subscriptions can refresh; identity changes go out on a per-session channel.
"""
import json
from typing import Final
import redis.asyncio as redis
from portal.events import DocumentChangedEvent, IdentityChangedEvent

CHANNEL_COLLECTION_PREFIX: Final[str] = "changes:"
CHANNEL_IDENTITY_PREFIX: Final[str] = "identity:"


class EventBus:
    def __init__(self, redis_client: redis.Redis, namespace: str):
        self.redis_client = redis_client
        self.namespace = namespace

    def collection_channel(self, collection_path: str) -> str:
        return f"portal:{self.namespace}:{CHANNEL_COLLECTION_PREFIX}{collection_path}"

    def identity_channel(self, session_token: str) -> str:
        return f"portal:{self.namespace}:{CHANNEL_IDENTITY_PREFIX}{session_token}"

    async def publish_document_change(self, event: DocumentChangedEvent) -> None:
        await self.redis_client.publish(self.collection_channel(event["collection"]), json.dumps(event))

    async def publish_identity(self, session_token: str, event: IdentityChangedEvent) -> None:
        await self.redis_client.publish(self.identity_channel(session_token), json.dumps(event))
