"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

from peerhost.addons.host import AddonHost
from peerhost.addons.manifest import AddonDefinition, AddonManifest
from peerhost.config.schema import PeerHostConfig
from peerhost.events import EventBus
from peerhost.identity import StaticIdentityProvider
from peerhost.storage.engine import MemoryStorageEngine
from peerhost.storage.gateway import ScopedStorageGateway

EXAMPLE_ADDONS_DIR = Path(__file__).resolve().parents[1] / "examples" / "addons"
TEST_PEER_ID = "12D3testpeer"


@pytest.fixture
def default_config() -> PeerHostConfig:
    """Provide a default configuration for tests."""
    return PeerHostConfig()


@pytest.fixture
def memory_config(tmp_path: Path) -> PeerHostConfig:
    """Configuration with in-memory storage and a temporary data dir."""
    config = PeerHostConfig()
    config.node.data_dir = str(tmp_path / "data")
    config.storage.backend = "memory"
    return config


@pytest.fixture
def addons_dir() -> Path:
    return EXAMPLE_ADDONS_DIR


@pytest.fixture
def engine() -> MemoryStorageEngine:
    return MemoryStorageEngine()


@pytest.fixture
def gateway(engine: MemoryStorageEngine) -> ScopedStorageGateway:
    return ScopedStorageGateway(engine)


@pytest.fixture
def identity_provider() -> StaticIdentityProvider:
    return StaticIdentityProvider(TEST_PEER_ID)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def host(
    gateway: ScopedStorageGateway,
    identity_provider: StaticIdentityProvider,
    event_bus: EventBus,
) -> AddonHost:
    return AddonHost(event_bus=event_bus, gateway=gateway, identity_provider=identity_provider)


def make_definition(
    addon_id: str,
    permissions: Iterable[str] = (),
    initialize: Callable[..., Any] | None = None,
    terminate: Callable[..., Any] | None = None,
) -> AddonDefinition:
    """Build an addon definition whose default initialize returns a dict."""

    async def _initialize(api, context):
        return {"id": context.id, "api": api}

    return AddonDefinition(
        manifest=AddonManifest(id=addon_id, name=addon_id, permissions=frozenset(permissions)),
        initialize=initialize or _initialize,
        terminate=terminate,
    )


@pytest.fixture
def register(host: AddonHost) -> Callable[..., str]:
    """Register an in-process addon on the host registry and return its locator."""

    def _register(addon_id: str, permissions: Iterable[str] = (), **hooks: Any) -> str:
        definition = make_definition(addon_id, permissions, **hooks)
        return host.register_factory(addon_id, lambda: definition)

    return _register


@pytest.fixture
def make_addon() -> Callable[..., AddonDefinition]:
    return make_definition
