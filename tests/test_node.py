"""Tests for the peer node runtime."""

from unittest.mock import AsyncMock

import pytest

from peerhost.errors import NotInitializedError
from peerhost.identity import KeyfileIdentityProvider, StaticIdentityProvider
from peerhost.node import PeerNode, create_engine
from peerhost.storage.engine import MemoryStorageEngine
from peerhost.storage.sqlite import SQLiteStorageEngine


def test_create_engine(memory_config, tmp_path):
    assert isinstance(create_engine(memory_config), MemoryStorageEngine)

    memory_config.storage.backend = "sqlite"
    memory_config.storage.directory = str(tmp_path / "stores")
    engine = create_engine(memory_config)
    assert isinstance(engine, SQLiteStorageEngine)
    assert engine.directory == tmp_path / "stores"


def test_accessors_before_start(memory_config):
    node = PeerNode(memory_config)
    assert not node.started
    for attr in ("host", "gateway", "engine", "identity_provider"):
        with pytest.raises(NotInitializedError):
            getattr(node, attr)


@pytest.mark.asyncio
async def test_start_and_stop(memory_config):
    node = PeerNode(memory_config)

    await node.start()

    assert node.started
    assert isinstance(node.engine, MemoryStorageEngine)
    assert isinstance(node.identity_provider, KeyfileIdentityProvider)
    assert node.gateway.namespace == "addon"
    assert node.host.gateway is node.gateway

    await node.stop()
    assert not node.started
    with pytest.raises(NotInitializedError):
        node.engine


@pytest.mark.asyncio
async def test_loads_configured_addons(memory_config, addons_dir):
    memory_config.addons.paths = [str(addons_dir / "sample_addon.py")]
    node = PeerNode(memory_config, identity_provider=StaticIdentityProvider("12D3node"))

    async with node:
        assert node.host.loaded_ids == ["sample-addon"]
        instance = node.host.get_loaded_addon("sample-addon").instance
        assert instance.get_db_test_value() == "testValueFromSampleAddon"

    assert node.host.get_all() == []


@pytest.mark.asyncio
async def test_extra_addons_and_results(memory_config, addons_dir, tmp_path):
    node = PeerNode(memory_config, identity_provider=StaticIdentityProvider("12D3node"))
    missing = str(tmp_path / "missing.py")

    results = await node.start(extra_addons=[str(addons_dir / "no_log_permission_addon.py"), missing])
    try:
        assert results[missing] is None
        assert node.host.is_loaded("no-log-permission-addon")
    finally:
        await node.stop()


@pytest.mark.asyncio
async def test_registry_addons(memory_config):
    node = PeerNode(memory_config, identity_provider=StaticIdentityProvider("12D3node"))
    node.registry.register(
        "inline",
        lambda: {"manifest": {"id": "inline"}, "initialize": lambda api, ctx: {"ok": True}},
    )
    memory_config.addons.paths = ["registry:inline"]

    async with node:
        assert node.host.is_loaded("inline")


@pytest.mark.asyncio
async def test_config_flows_into_host(memory_config):
    memory_config.addons.blocked = ["evil"]
    memory_config.addons.gate_event_bus = True
    memory_config.storage.namespace = "ext"
    node = PeerNode(memory_config, identity_provider=StaticIdentityProvider("12D3node"))

    async with node:
        assert node.host.blocked == {"evil"}
        assert node.host.gate_event_bus is True
        assert node.gateway.namespace == "ext"


@pytest.mark.asyncio
async def test_stop_closes_in_order(memory_config):
    engine = MemoryStorageEngine()
    node = PeerNode(memory_config, engine=engine, identity_provider=StaticIdentityProvider("x"))
    await node.start()
    order = []
    node.host.close_all = AsyncMock(side_effect=lambda: order.append("addons"))
    node.gateway.close = AsyncMock(side_effect=lambda: order.append("gateway"))
    engine.close = AsyncMock(side_effect=lambda: order.append("engine"))

    await node.stop()

    assert order == ["addons", "gateway", "engine"]


@pytest.mark.asyncio
async def test_stop_tolerates_failures(memory_config):
    engine = MemoryStorageEngine()
    node = PeerNode(memory_config, engine=engine, identity_provider=StaticIdentityProvider("x"))
    await node.start()
    node.gateway.close = AsyncMock(side_effect=RuntimeError("boom"))
    engine.close = AsyncMock()

    await node.stop()

    engine.close.assert_awaited_once()
    assert not node.started


@pytest.mark.asyncio
async def test_start_twice_is_noop(memory_config):
    node = PeerNode(memory_config, identity_provider=StaticIdentityProvider("x"))
    await node.start()
    host = node.host
    assert await node.start() == {}
    assert node.host is host
    await node.stop()
    await node.stop()
