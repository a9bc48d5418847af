"""Redis-backed document store.

Documents are Redis hashes keyed ``portal:{namespace}:doc:{collection}/{id}``
with every field JSON-encoded, so integers stay plain digits and can be
bumped in place with ``HINCRBY``. Each collection keeps a set of its
document ids for queries, and every write is announced on the collection's
bus channel so live subscriptions can refresh.

Conditional writes (``create``/``update``) run inside a WATCH/MULTI
transaction; ``increment`` relies on ``HINCRBY`` being atomic. Change
announcements are best-effort: a write that committed is never reported
as failed because its notification could not be published.
"""

import json
import logging
import secrets
import string
from collections.abc import Awaitable, Callable, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from portal.bus import EventBus
from portal.store.errors import DocumentExists, DocumentNotFound, StoreError, StoreUnavailable

logger = logging.getLogger("portal.store")

ID_LENGTH = 20
MAX_ID_ATTEMPTS = 10
MAX_TRANSACTION_RETRIES = 5

_ID_CHARS = string.ascii_letters + string.digits


def _generate_id(length: int = ID_LENGTH) -> str:
    return "".join(secrets.choice(_ID_CHARS) for _ in range(length))


def _check_segment(segment: str) -> str:
    if not segment or "/" in segment:
        raise ValueError(f"invalid path segment: {segment!r}")
    return segment


@dataclass(frozen=True)
class CollectionRef:
    path: str

    def doc(self, doc_id: str) -> "DocumentRef":
        return DocumentRef(parent=self, id=_check_segment(doc_id))


@dataclass(frozen=True)
class DocumentRef:
    parent: CollectionRef
    id: str

    @property
    def path(self) -> str:
        return f"{self.parent.path}/{self.id}"

    def collection(self, name: str) -> CollectionRef:
        return CollectionRef(f"{self.path}/{_check_segment(name)}")


@dataclass
class DocumentSnapshot:
    id: str
    exists: bool
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.data}


@dataclass
class QuerySnapshot:
    collection: str
    documents: list[DocumentSnapshot]

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self.documents)

    def __len__(self) -> int:
        return len(self.documents)


def _encode(fields: dict[str, Any]) -> dict[str, str]:
    if not fields:
        raise ValueError("a document needs at least one field")
    return {name: json.dumps(value) for name, value in fields.items()}


def _decode(raw: dict[str, str]) -> dict[str, Any]:
    return {name: json.loads(value) for name, value in raw.items()}


@asynccontextmanager
async def _translate_errors(op: str, path: str):
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.warning("store.%s unavailable path=%s err=%r", op, path, e)
        raise StoreUnavailable(str(e)) from e
    except RedisError as e:
        logger.warning("store.%s failed path=%s err=%r", op, path, e)
        raise StoreError(str(e)) from e


class DocumentStore:
    def __init__(self, redis_client: redis.Redis, bus: EventBus, namespace: str):
        self.redis_client = redis_client
        self.bus = bus
        self.namespace = namespace

    def collection(self, path: str) -> CollectionRef:
        for segment in path.split("/"):
            _check_segment(segment)
        return CollectionRef(path)

    def _doc_key(self, ref: DocumentRef) -> str:
        return f"portal:{self.namespace}:doc:{ref.path}"

    def _index_key(self, collection: CollectionRef) -> str:
        return f"portal:{self.namespace}:idx:{collection.path}"

    async def _announce(self, ref: DocumentRef, op: str) -> None:
        # The write has committed; a lost notification only delays live views.
        try:
            await self.bus.publish_document_change(
                {"type": "document_changed", "collection": ref.parent.path, "id": ref.id, "op": op}
            )
        except RedisError as e:
            logger.warning("store.%s announce failed path=%s err=%r", op, ref.path, e)

    async def get(self, ref: DocumentRef) -> DocumentSnapshot:
        async with _translate_errors("get", ref.path):
            raw = await self.redis_client.hgetall(self._doc_key(ref))
        if not raw:
            return DocumentSnapshot(id=ref.id, exists=False)
        return DocumentSnapshot(id=ref.id, exists=True, data=_decode(raw))

    async def set(self, ref: DocumentRef, fields: dict[str, Any]) -> None:
        """Upsert: the document ends up holding exactly ``fields``."""
        key = self._doc_key(ref)
        encoded = _encode(fields)
        async with _translate_errors("set", ref.path):
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=encoded)
                pipe.sadd(self._index_key(ref.parent), ref.id)
                await pipe.execute()
        await self._announce(ref, "set")

    async def create(self, ref: DocumentRef, fields: dict[str, Any]) -> None:
        """Create the document only if its key is free.

        Raises:
            DocumentExists: The key is already taken.
        """
        key = self._doc_key(ref)
        encoded = _encode(fields)

        def stage(pipe) -> None:
            pipe.hset(key, mapping=encoded)
            pipe.sadd(self._index_key(ref.parent), ref.id)

        await self._watched("create", ref, must_exist=False, stage=stage)

    async def update(self, ref: DocumentRef, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document.

        Raises:
            DocumentNotFound: The document does not exist.
        """
        key = self._doc_key(ref)
        encoded = _encode(fields)

        def stage(pipe) -> None:
            pipe.hset(key, mapping=encoded)

        await self._watched("update", ref, must_exist=True, stage=stage)

    async def _watched(
        self,
        op: str,
        ref: DocumentRef,
        must_exist: bool,
        stage: Callable[[Any], None],
    ) -> None:
        key = self._doc_key(ref)
        async with _translate_errors(op, ref.path):
            async with self.redis_client.pipeline(transaction=True) as pipe:
                for _ in range(MAX_TRANSACTION_RETRIES):
                    try:
                        await pipe.watch(key)
                        exists = bool(await pipe.exists(key))
                        if exists and not must_exist:
                            raise DocumentExists(ref.path)
                        if must_exist and not exists:
                            raise DocumentNotFound(ref.path)
                        pipe.multi()
                        stage(pipe)
                        await pipe.execute()
                        break
                    except WatchError:
                        logger.debug("store.%s conflict path=%s, retrying", op, ref.path)
                else:
                    raise StoreError(f"{op} on {ref.path} kept conflicting")
        await self._announce(ref, op)

    async def add(self, collection: CollectionRef, fields: dict[str, Any]) -> str:
        """Create a document under a store-assigned id and return the id."""
        for _ in range(MAX_ID_ATTEMPTS):
            doc_id = _generate_id()
            try:
                await self.create(collection.doc(doc_id), fields)
                return doc_id
            except DocumentExists:
                continue
        raise StoreError("Failed to generate unique document id")

    async def increment(self, ref: DocumentRef, field_name: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to an integer field and return the new value.

        A missing field counts as 0.

        Raises:
            DocumentNotFound: The document does not exist.
        """
        key = self._doc_key(ref)
        async with _translate_errors("increment", ref.path):
            if not await self.redis_client.exists(key):
                raise DocumentNotFound(ref.path)
            value = await self.redis_client.hincrby(key, field_name, amount)
        await self._announce(ref, "increment")
        return int(value)

    async def query(self, collection: CollectionRef, order_by: str | None = None) -> list[DocumentSnapshot]:
        """List a collection's documents.

        With ``order_by`` the result is sorted on that field and documents
        lacking it are left out; otherwise documents come in id order.
        """
        async with _translate_errors("query", collection.path):
            ids = sorted(await self.redis_client.smembers(self._index_key(collection)))
            if not ids:
                return []
            async with self.redis_client.pipeline(transaction=False) as pipe:
                for doc_id in ids:
                    pipe.hgetall(self._doc_key(collection.doc(doc_id)))
                rows = await pipe.execute()
        docs = [DocumentSnapshot(id=doc_id, exists=True, data=_decode(raw)) for doc_id, raw in zip(ids, rows) if raw]
        if order_by:
            docs = [d for d in docs if d.data.get(order_by) is not None]
            docs.sort(key=lambda d: d.data[order_by])
        return docs

    def subscribe(
        self,
        collection: CollectionRef,
        order_by: str | None = None,
        on_snapshot: Callable[[QuerySnapshot], Awaitable[None] | None] | None = None,
        on_error: Callable[[StoreError], Awaitable[None] | None] | None = None,
    ) -> "QuerySubscription":
        """Open a live query; use the result as an async context manager."""
        from portal.store.subscription import QuerySubscription

        return QuerySubscription(self, collection, order_by=order_by, on_snapshot=on_snapshot, on_error=on_error)
