"""Live collection queries over Redis pub/sub.

A subscription listens on the collection's change channel and re-runs the
query after every announced write. Snapshots go to ``on_snapshot`` when one
is given, otherwise they queue up for ``async for`` consumers. The pub/sub
handle is released on ``unsubscribe()``, which the context manager exit
always calls.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from portal.store.documents import CollectionRef, DocumentStore, QuerySnapshot
from portal.store.errors import StoreError, StoreUnavailable

logger = logging.getLogger("portal.store.subscription")

_CLOSED = object()


async def _maybe_await(result) -> None:
    if inspect.isawaitable(result):
        await result


class QuerySubscription:
    def __init__(
        self,
        store: DocumentStore,
        collection: CollectionRef,
        order_by: str | None = None,
        on_snapshot: Callable[[QuerySnapshot], Awaitable[None] | None] | None = None,
        on_error: Callable[[StoreError], Awaitable[None] | None] | None = None,
        poll_timeout: float = 1.0,
    ):
        self._store = store
        self._collection = collection
        self._order_by = order_by
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._poll_timeout = poll_timeout
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pubsub = None
        self._task: asyncio.Task | None = None
        self._closed = False
        self._failed = False

    @property
    def channel(self) -> str:
        return self._store.bus.collection_channel(self._collection.path)

    @property
    def active(self) -> bool:
        return self._pubsub is not None and not self._closed and not self._failed

    async def __aenter__(self) -> "QuerySubscription":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.unsubscribe()

    async def start(self) -> None:
        """Subscribe, deliver the current snapshot, then follow changes."""
        if self._pubsub is not None or self._closed:
            raise RuntimeError("subscription already started")
        self._pubsub = self._store.redis_client.pubsub()
        try:
            # Subscribe before the first read so no write falls in between.
            await self._pubsub.subscribe(self.channel)
            await self._refresh()
        except (RedisConnectionError, RedisTimeoutError) as e:
            await self.unsubscribe()
            raise StoreUnavailable(str(e)) from e
        except BaseException:
            await self.unsubscribe()
            raise
        logger.debug("subscription.start channel=%s", self.channel)
        self._task = asyncio.create_task(self._listen())

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is not None:
            try:
                await pubsub.unsubscribe(self.channel)
            except RedisError as e:
                logger.warning("subscription.unsubscribe failed channel=%s err=%r", self.channel, e)
            finally:
                if hasattr(pubsub, "aclose"):
                    await pubsub.aclose()
                else:
                    await pubsub.close()
        self._queue.put_nowait(_CLOSED)
        logger.debug("subscription.stop channel=%s", self.channel)

    async def _refresh(self) -> None:
        documents = await self._store.query(self._collection, order_by=self._order_by)
        snapshot = QuerySnapshot(collection=self._collection.path, documents=documents)
        if self._on_snapshot is not None:
            await _maybe_await(self._on_snapshot(snapshot))
        else:
            self._queue.put_nowait(snapshot)

    async def _listen(self) -> None:
        try:
            while True:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self._poll_timeout
                )
                if message is None or message.get("type") != "message":
                    continue
                await self._refresh()
        except asyncio.CancelledError:
            raise
        except (RedisConnectionError, RedisTimeoutError) as e:
            await self._fail(StoreUnavailable(str(e)))
        except RedisError as e:
            await self._fail(StoreError(str(e)))
        except StoreError as e:
            await self._fail(e)
        except Exception as e:
            logger.exception("subscription.callback failed channel=%s", self.channel)
            await self._fail(StoreError(repr(e)))

    async def _fail(self, error: StoreError) -> None:
        # The listener stops here; no further snapshots will arrive.
        self._failed = True
        logger.warning("subscription.error channel=%s err=%s", self.channel, error)
        if self._on_error is not None:
            await _maybe_await(self._on_error(error))
        else:
            self._queue.put_nowait(error)

    def __aiter__(self) -> "QuerySubscription":
        return self

    async def __anext__(self) -> QuerySnapshot:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        if isinstance(item, StoreError):
            raise item
        return item

    async def next_snapshot(self) -> QuerySnapshot:
        """Wait for the next snapshot; raises the listener's error if it failed."""
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            raise RuntimeError("subscription closed") from None
