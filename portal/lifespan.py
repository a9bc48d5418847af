"""Lifespan management for the FastAPI application.

Builds the shared resources on startup and tears them down on shutdown.
Settings are read here once and handed to the adapters as explicit
values; nothing below this layer reads the environment.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from portal import db, state
from portal.bus import EventBus
from portal.config import RedisSettings, Settings, get_settings
from portal.identity import IdentityProvider
from portal.store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    event_bus: EventBus | None = None
    store: DocumentStore | None = None
    identity_provider: IdentityProvider | None = None
    db_enabled: bool = False


async def init_redis(settings: RedisSettings) -> redis.Redis:
    """Initialize Redis connection with connection pool.

    Returns:
        Configured Redis client returning ``str`` responses.
    """
    redis_pool = RedisConnectionPool(
        host=settings.host,
        port=settings.port,
        password=settings.password if settings.password else None,
        max_connections=settings.max_connections,
        timeout=settings.pool_timeout_sec,
        health_check_interval=settings.health_check_interval,
        socket_timeout=settings.socket_timeout,
        socket_connect_timeout=settings.socket_connect_timeout,
        retry_on_timeout=settings.retry_on_timeout,
        decode_responses=True,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


async def init_database(settings: Settings) -> bool:
    """Initialize the activity history pool when the feature is enabled.

    Returns:
        True if the pool is up, False otherwise.
    """
    if not settings.features.activity_db:
        return False
    try:
        await db.init_pool(settings.postgres)
        return True
    except Exception as e:
        logger.warning("Failed to initialize activity database: %s", e)
    return False


async def setup_resources(settings: Settings | None = None) -> LifespanResources:
    """Set up all shared resources and publish them to ``state``."""
    settings = settings or get_settings()
    resources = LifespanResources()

    resources.redis_client = await init_redis(settings.redis)
    resources.event_bus = EventBus(resources.redis_client, namespace=settings.app.id)
    resources.store = DocumentStore(resources.redis_client, resources.event_bus, namespace=settings.app.id)
    resources.identity_provider = IdentityProvider(
        resources.redis_client,
        resources.event_bus,
        namespace=settings.app.id,
        settings=settings.auth,
    )
    if not settings.auth.admin_emails:
        logger.warning("AUTH_ADMIN_EMAILS is empty: every signed-in (non-anonymous) user is an admin")

    resources.db_enabled = await init_database(settings)

    state.redis_client = resources.redis_client
    state.event_bus = resources.event_bus
    state.store = resources.store
    state.identity_provider = resources.identity_provider

    logger.info("Resources ready namespace=%s activity_db=%s", settings.app.id, resources.db_enabled)
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown."""
    if resources.db_enabled:
        try:
            await db.close_pool()
        except Exception as e:
            logger.warning("Failed to close activity database: %s", e)

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                close()

    state.redis_client = None
    state.event_bus = None
    state.store = None
    state.identity_provider = None
