"""Peer node runtime: wires storage, identity and the addon host together."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from peerhost.addons.host import AddonHost
from peerhost.addons.resolver import AddonResolver, RegistryResolver
from peerhost.config.schema import PeerHostConfig
from peerhost.errors import NotInitializedError
from peerhost.events import EventBus
from peerhost.identity import IdentityProvider, KeyfileIdentityProvider
from peerhost.storage.engine import BaseStorageEngine, MemoryStorageEngine, StorageEngine
from peerhost.storage.gateway import ScopedStorageGateway
from peerhost.storage.sqlite import SQLiteStorageEngine

logger = logging.getLogger(__name__)


def create_engine(config: PeerHostConfig) -> BaseStorageEngine:
    """Build the storage engine selected in the config."""
    if config.storage.backend == "memory":
        return MemoryStorageEngine()
    return SQLiteStorageEngine(config.storage_directory)


class PeerNode:
    """A running peer node hosting addons.

    Usage::

        async with PeerNode(load_config()) as node:
            await node.host.load("./my_addon.py")
    """

    def __init__(
        self,
        config: PeerHostConfig | None = None,
        *,
        identity_provider: IdentityProvider | None = None,
        engine: StorageEngine | None = None,
        event_bus: EventBus | None = None,
        registry: RegistryResolver | None = None,
        resolvers: list[AddonResolver] | None = None,
    ) -> None:
        self.config = config or PeerHostConfig()
        self.event_bus = event_bus or EventBus()
        self.registry = registry or RegistryResolver()
        self._identity_provider = identity_provider
        self._engine = engine
        self._resolvers = resolvers
        self._gateway: ScopedStorageGateway | None = None
        self._host: AddonHost | None = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def host(self) -> AddonHost:
        if self._host is None:
            raise NotInitializedError("PeerNode has not been started")
        return self._host

    @property
    def gateway(self) -> ScopedStorageGateway:
        if self._gateway is None:
            raise NotInitializedError("PeerNode has not been started")
        return self._gateway

    @property
    def engine(self) -> StorageEngine:
        if self._engine is None or not self._started:
            raise NotInitializedError("PeerNode has not been started")
        return self._engine

    @property
    def identity_provider(self) -> IdentityProvider:
        if self._identity_provider is None or not self._started:
            raise NotInitializedError("PeerNode has not been started")
        return self._identity_provider

    async def start(self, extra_addons: list[str | Path] | None = None) -> dict[str, Any]:
        """Start the node and load the configured addons.

        Args:
            extra_addons: Locators loaded after ``addons.paths``

        Returns:
            Load results keyed by locator
        """
        if self._started:
            return {}

        addons_config = self.config.addons
        if self._engine is None:
            self._engine = create_engine(self.config)
        if self._identity_provider is None:
            self._identity_provider = KeyfileIdentityProvider(self.config.data_dir)

        self._gateway = ScopedStorageGateway(self._engine, namespace=self.config.storage.namespace)
        self._host = AddonHost(
            event_bus=self.event_bus,
            gateway=self._gateway,
            identity_provider=self._identity_provider,
            registry=self.registry,
            resolvers=self._resolvers,
            entry_point_group=addons_config.entry_point_group,
            blocked=addons_config.blocked,
            gate_identity=addons_config.gate_identity,
            gate_event_bus=addons_config.gate_event_bus,
            gate_addon_access=addons_config.gate_addon_access,
            audit_trail_size=addons_config.audit_trail_size,
        )
        self._started = True
        logger.info("Peer node started (storage: %s)", self.config.storage.backend)

        locators: list[str | Path] = [*addons_config.paths, *(extra_addons or [])]
        if not locators:
            return {}
        results = await self._host.load_many(locators)
        loaded = sum(1 for instance in results.values() if instance)
        logger.info("Loaded %d of %d addons", loaded, len(results))
        return results

    async def stop(self) -> None:
        """Unload addons, then close the gateway and the engine."""
        if not self._started:
            return

        if self._host is not None:
            try:
                await self._host.close_all()
            except Exception as e:
                logger.error("Error unloading addons: %s", e)

        if self._gateway is not None:
            try:
                await self._gateway.close()
            except Exception as e:
                logger.error("Error closing storage gateway: %s", e)

        if self._engine is not None:
            try:
                await self._engine.close()
            except Exception as e:
                logger.error("Error closing storage engine: %s", e)

        self._started = False
        logger.info("Peer node stopped")

    async def __aenter__(self) -> PeerNode:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
