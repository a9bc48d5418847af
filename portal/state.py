from typing import Optional
import redis.asyncio as redis
from portal.bus import EventBus
from portal.identity import IdentityProvider
from portal.store import DocumentStore

# Global runtime state initialized in main.lifespan
redis_client: Optional[redis.Redis] = None
event_bus: Optional[EventBus] = None
store: Optional[DocumentStore] = None
identity_provider: Optional[IdentityProvider] = None
