"""Document store adapter: point reads and writes, conditional creates,
atomic counters and live collection queries on top of Redis."""

from portal.store.documents import (
    CollectionRef,
    DocumentRef,
    DocumentSnapshot,
    DocumentStore,
    QuerySnapshot,
)
from portal.store.errors import DocumentExists, DocumentNotFound, StoreError, StoreUnavailable
from portal.store.subscription import QuerySubscription

__all__ = [
    "CollectionRef",
    "DocumentExists",
    "DocumentNotFound",
    "DocumentRef",
    "DocumentSnapshot",
    "DocumentStore",
    "QuerySnapshot",
    "QuerySubscription",
    "StoreError",
    "StoreUnavailable",
]
