"""Scoped storage gateway.

Addons share one storage engine, which has no tenant concept. The gateway
derives the physical store name from the calling addon's bound id and the
logical name it asked for::

    addon--<addon_id>--<logical_name>

Addon ids may not contain the separator and may not start or end with
``-``, so the first separator after the namespace always ends the id and
no two (id, logical name) pairs produce the same physical name. The id
always comes from the caller's own binding, never from an argument an
addon controls.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from peerhost.errors import StorageError, StoreTypeMismatchError
from peerhost.storage.engine import Entry, Store, StorageEngine, StoreKind

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "--"
DEFAULT_NAMESPACE = "addon"


def scope_id_error(addon_id: str) -> str | None:
    """Why ``addon_id`` cannot own scoped stores, or None if it can."""
    if SCOPE_SEPARATOR in addon_id:
        return f"may not contain '{SCOPE_SEPARATOR}'"
    if addon_id.startswith("-") or addon_id.endswith("-"):
        return "may not start or end with '-'"
    return None


def scope_name(addon_id: str, logical_name: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Derive the physical store name for an addon's logical store.

    Args:
        addon_id: Id of the owning addon
        logical_name: Store name as the addon knows it
        namespace: Prefix separating addon stores from host stores

    Returns:
        Physical store name

    Raises:
        ValueError: If an input is blank or the id is not scopable
    """
    if not isinstance(addon_id, str) or not addon_id.strip():
        raise ValueError("addon_id is required")
    if not isinstance(logical_name, str) or not logical_name.strip():
        raise ValueError("logical_name is required")
    reason = scope_id_error(addon_id)
    if reason:
        raise ValueError(f"addon_id {reason}")

    scoped = f"{addon_id}{SCOPE_SEPARATOR}{logical_name}"
    if namespace:
        return f"{namespace}{SCOPE_SEPARATOR}{scoped}"
    return scoped


def _check_kind(physical: str, store: Store, store_kind: str) -> Store:
    try:
        kind = StoreKind(store_kind)
    except ValueError:
        raise StorageError(f"Unknown store type '{store_kind}'") from None
    if store.kind != kind:
        raise StoreTypeMismatchError(f"Store '{physical}' is a {store.kind} store, not {kind}")
    return store


class ScopedStorageGateway:
    """Opens and caches addon-scoped stores on a shared engine.

    At most one handle per physical name is open through the gateway;
    callers asking for the same scoped store get the same handle back.
    """

    def __init__(self, engine: StorageEngine, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.engine = engine
        self.namespace = namespace
        self._stores: dict[str, Store] = {}
        self._pending: dict[str, asyncio.Future[Store]] = {}

    @property
    def open_stores(self) -> list[str]:
        """Physical names of the cached handles."""
        return list(self._stores.keys())

    def scope(self, addon_id: str, logical_name: str) -> str:
        return scope_name(addon_id, logical_name, self.namespace)

    async def get_scoped_store(
        self,
        addon_id: str,
        logical_name: str,
        store_kind: str = "keyvalue",
        options: dict[str, Any] | None = None,
    ) -> Store:
        """Open, or return the cached handle for, an addon's scoped store.

        Args:
            addon_id: Id of the owning addon
            logical_name: Store name as the addon knows it
            store_kind: Store type ("keyvalue", "events" or "feed")
            options: Extra engine options; ``create`` is always True

        Returns:
            Store handle

        Raises:
            ValueError: Invalid addon id or logical name
            StoreTypeMismatchError: The cached handle is of another kind
            StorageError: Unknown store kind, or the engine failed to open the store
        """
        physical = self.scope(addon_id, logical_name)

        cached = self._stores.get(physical)
        if cached is not None and cached.closed:
            logger.debug("Cached scoped store '%s' closed without an event, reopening", physical)
            self._evict(physical, cached)
        elif cached is not None:
            _check_kind(physical, cached, store_kind)
            logger.debug("Returning cached scoped store '%s'", physical)
            return cached

        pending = self._pending.get(physical)
        if pending is not None:
            return _check_kind(physical, await asyncio.shield(pending), store_kind)

        future: asyncio.Future[Store] = asyncio.get_running_loop().create_future()
        self._pending[physical] = future
        try:
            store = await self._open(physical, store_kind, options or {})
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Consume the exception so an unawaited future does not warn.
            future.exception()
            raise
        else:
            future.set_result(store)
            return store
        finally:
            del self._pending[physical]

    async def _open(self, physical: str, store_kind: str, options: dict[str, Any]) -> Store:
        logger.info("Opening scoped store '%s' (type: %s)", physical, store_kind)
        open_options = {k: v for k, v in options.items() if k not in ("type", "create")}
        try:
            store = await self.engine.open(physical, type=store_kind, create=True, **open_options)
        except Exception as e:
            logger.error("Failed to open scoped store '%s': %s", physical, e)
            raise

        store.events.on("ready", lambda: logger.debug("Scoped store '%s' is ready", physical))
        store.events.on("update", lambda entry: self._log_update(physical, entry))
        store.events.on("close", lambda: self._evict(physical, store))

        self._stores[physical] = store
        logger.info("Scoped store '%s' opened at %s", physical, store.address)
        return store

    @staticmethod
    def _log_update(physical: str, entry: Entry | None) -> None:
        logger.debug("Scoped store '%s' update: %s", physical, entry.op if entry else "n/a")

    def _evict(self, physical: str, store: Store) -> None:
        if self._stores.get(physical) is store:
            del self._stores[physical]
            logger.debug("Scoped store '%s' evicted from cache", physical)

    async def close(self) -> None:
        """Close every cached handle. Individual failures are logged."""
        if not self._stores:
            return

        logger.info("Closing %d scoped stores", len(self._stores))
        for physical, store in list(self._stores.items()):
            try:
                if getattr(store, "closed", False):
                    logger.debug("Scoped store '%s' was already closed", physical)
                    continue
                await store.close()
            except Exception as e:
                logger.error("Error closing scoped store '%s': %s", physical, e)
        self._stores.clear()
