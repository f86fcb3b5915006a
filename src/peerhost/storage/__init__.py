"""Storage for addons: a shared engine behind a per-addon scoping gateway."""

from peerhost.storage.engine import (
    BaseStorageEngine,
    Entry,
    EntryOp,
    EventLogStore,
    FeedStore,
    KeyValueStore,
    MemoryStorageEngine,
    StorageEngine,
    Store,
    StoreKind,
)
from peerhost.storage.gateway import SCOPE_SEPARATOR, ScopedStorageGateway, scope_name
from peerhost.storage.sqlite import SQLiteStorageEngine

__all__ = [
    "SCOPE_SEPARATOR",
    "BaseStorageEngine",
    "Entry",
    "EntryOp",
    "EventLogStore",
    "FeedStore",
    "KeyValueStore",
    "MemoryStorageEngine",
    "SQLiteStorageEngine",
    "ScopedStorageGateway",
    "StorageEngine",
    "Store",
    "StoreKind",
    "scope_name",
]
