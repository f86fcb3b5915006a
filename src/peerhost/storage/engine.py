"""Multi-tenant storage engine interface and an in-process implementation.

Stores are opened by name. Every write is appended to the store's log as
an :class:`Entry`; key/value and feed views are derived from that log.
Each store exposes an ``events`` bus emitting ``ready``, ``update`` (with
the new entry) and ``close``.

The engine has no notion of tenants. Isolation between addons is the
job of :class:`peerhost.storage.gateway.ScopedStorageGateway`.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from peerhost.errors import (
    NotInitializedError,
    StorageError,
    StoreClosedError,
    StoreNotFoundError,
    StoreTypeMismatchError,
)
from peerhost.events import EventBus

logger = logging.getLogger(__name__)

ADDRESS_ROOT = "/peerhost"


class StoreKind(StrEnum):
    """Supported store types."""

    KEYVALUE = "keyvalue"
    EVENTS = "events"
    FEED = "feed"


class EntryOp(StrEnum):
    PUT = "PUT"
    DEL = "DEL"
    ADD = "ADD"


@dataclass(frozen=True)
class Entry:
    """A single operation in a store's log.

    For ``DEL`` on a feed, ``key`` holds the hash of the removed entry.
    """

    hash: str
    op: EntryOp
    key: str | None
    value: Any
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def store_address(name: str, kind: StoreKind | str) -> str:
    """Deterministic address for a store name and type."""
    digest = hashlib.sha256(f"{kind}:{name}".encode()).hexdigest()
    return f"{ADDRESS_ROOT}/{digest}"


def entry_hash(name: str, op: str, key: str | None, value: Any) -> str:
    """Hash identifying a new log entry."""
    payload = json.dumps(
        {"store": name, "op": op, "key": key, "value": value, "nonce": uuid.uuid4().hex},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


class StoreBackend(ABC):
    """Log persistence used by :class:`Store` objects."""

    @abstractmethod
    async def append(self, name: str, op: EntryOp, key: str | None, value: Any) -> Entry: ...

    @abstractmethod
    async def latest_value(self, name: str, key: str) -> Any: ...

    @abstractmethod
    async def items(self, name: str) -> dict[str, Any]: ...

    @abstractmethod
    async def entries(self, name: str) -> list[Entry]:
        """Live ``ADD`` entries in insertion order (removed ones excluded)."""
        ...


class Store:
    """Handle onto one named store."""

    kind: StoreKind

    def __init__(
        self,
        name: str,
        engine: BaseStorageEngine,
        options: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.options = dict(options or {})
        self.events = EventBus()
        self.address = store_address(name, self.kind)
        self._engine = engine
        self._closed = False

    @property
    def type(self) -> str:
        return str(self.kind)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def status(self) -> str:
        return "closed" if self._closed else "open"

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError(f"Store '{self.name}' is closed")

    async def _append(self, op: EntryOp, key: str | None, value: Any) -> Entry:
        self._ensure_open()
        entry = await self._engine.append(self.name, op, key, value)
        self.events.emit("update", entry)
        return entry

    async def close(self) -> None:
        """Close the handle and emit ``close``. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._engine._release(self)
        self.events.emit("close")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, address={self.address!r})"


class KeyValueStore(Store):
    kind = StoreKind.KEYVALUE

    async def put(self, key: str, value: Any) -> str:
        entry = await self._append(EntryOp.PUT, key, value)
        return entry.hash

    async def get(self, key: str) -> Any:
        """Value stored under ``key`` or None when absent."""
        self._ensure_open()
        return await self._engine.latest_value(self.name, key)

    async def delete(self, key: str) -> str:
        entry = await self._append(EntryOp.DEL, key, None)
        return entry.hash

    async def all(self) -> dict[str, Any]:
        self._ensure_open()
        return await self._engine.items(self.name)


class EventLogStore(Store):
    """Append-only log."""

    kind = StoreKind.EVENTS

    async def add(self, value: Any) -> str:
        entry = await self._append(EntryOp.ADD, None, value)
        return entry.hash

    async def get(self, entry_hash: str) -> Entry | None:
        self._ensure_open()
        for entry in await self._engine.entries(self.name):
            if entry.hash == entry_hash:
                return entry
        return None

    async def all(self) -> list[Entry]:
        self._ensure_open()
        return await self._engine.entries(self.name)


class FeedStore(EventLogStore):
    """Append log whose entries can be removed."""

    kind = StoreKind.FEED

    async def remove(self, entry_hash: str) -> str:
        entry = await self._append(EntryOp.DEL, entry_hash, None)
        return entry.hash


STORE_CLASSES: dict[StoreKind, type[Store]] = {
    StoreKind.KEYVALUE: KeyValueStore,
    StoreKind.EVENTS: EventLogStore,
    StoreKind.FEED: FeedStore,
}


@runtime_checkable
class StorageEngine(Protocol):
    """Interface the scoped storage gateway consumes."""

    async def open(
        self,
        name: str,
        *,
        type: str = "keyvalue",
        create: bool = True,
        **options: Any,
    ) -> Store: ...

    async def close(self) -> None: ...


class BaseStorageEngine(StoreBackend):
    """Shared ``open``/``close`` logic for concrete engines."""

    def __init__(self) -> None:
        self._handles: set[Store] = set()
        self._closed = False

    @abstractmethod
    async def _store_kind(self, name: str) -> StoreKind | None:
        """Kind of an existing store, or None if it does not exist."""
        ...

    @abstractmethod
    async def _create_store(self, name: str, kind: StoreKind) -> None: ...

    async def open(
        self,
        name: str,
        *,
        type: str = "keyvalue",
        create: bool = True,
        **options: Any,
    ) -> Store:
        """Open a store by name.

        Args:
            name: Store name
            type: Store kind ("keyvalue", "events" or "feed")
            create: Create the store when it does not exist
            **options: Extra options kept on the handle

        Returns:
            Store handle

        Raises:
            StorageError: Unknown store kind
            StoreNotFoundError: Store missing and ``create`` is False
            StoreTypeMismatchError: Store exists with another kind
        """
        if self._closed:
            raise NotInitializedError("Storage engine is closed")
        try:
            kind = StoreKind(type)
        except ValueError:
            raise StorageError(f"Unknown store type '{type}'") from None

        existing = await self._store_kind(name)
        if existing is None:
            if not create:
                raise StoreNotFoundError(f"Store '{name}' does not exist")
            await self._create_store(name, kind)
            logger.debug("Created %s store '%s'", kind, name)
        elif existing != kind:
            raise StoreTypeMismatchError(
                f"Store '{name}' is a {existing} store, not {kind}"
            )

        store = STORE_CLASSES[kind](name, self, options)
        self._handles.add(store)
        asyncio.get_running_loop().call_soon(self._announce_ready, store)
        return store

    @staticmethod
    def _announce_ready(store: Store) -> None:
        if not store.closed:
            store.events.emit("ready")

    def _release(self, store: Store) -> None:
        self._handles.discard(store)

    @property
    def open_handles(self) -> int:
        return len(self._handles)

    async def close(self) -> None:
        """Close all open handles and stop the engine."""
        if self._closed:
            return
        for store in list(self._handles):
            try:
                await store.close()
            except Exception as e:
                logger.warning("Error closing store '%s': %s", store.name, e)
        self._handles.clear()
        self._closed = True


def materialize(log: list[Entry]) -> tuple[dict[str, Any], list[Entry]]:
    """Derive the key/value view and live feed entries from a log."""
    values: dict[str, Any] = {}
    removed: set[str] = set()
    for entry in log:
        if entry.op == EntryOp.PUT and entry.key is not None:
            values[entry.key] = entry.value
        elif entry.op == EntryOp.DEL and entry.key is not None:
            values.pop(entry.key, None)
            removed.add(entry.key)
    live = [e for e in log if e.op == EntryOp.ADD and e.hash not in removed]
    return values, live


class MemoryStorageEngine(BaseStorageEngine):
    """Storage engine keeping every log in process memory.

    Data outlives individual handles: closing and reopening a store by
    the same name sees the same contents until the engine is discarded.
    """

    def __init__(self) -> None:
        super().__init__()
        self._kinds: dict[str, StoreKind] = {}
        self._logs: dict[str, list[Entry]] = {}

    async def _store_kind(self, name: str) -> StoreKind | None:
        return self._kinds.get(name)

    async def _create_store(self, name: str, kind: StoreKind) -> None:
        self._kinds[name] = kind
        self._logs[name] = []

    async def append(self, name: str, op: EntryOp, key: str | None, value: Any) -> Entry:
        entry = Entry(hash=entry_hash(name, op, key, value), op=op, key=key, value=value)
        self._logs[name].append(entry)
        return entry

    async def latest_value(self, name: str, key: str) -> Any:
        values, _ = materialize(self._logs.get(name, []))
        return values.get(key)

    async def items(self, name: str) -> dict[str, Any]:
        values, _ = materialize(self._logs.get(name, []))
        return values

    async def entries(self, name: str) -> list[Entry]:
        _, live = materialize(self._logs.get(name, []))
        return live

    @property
    def store_names(self) -> list[str]:
        return list(self._kinds.keys())
