"""Tests for the addon host lifecycle."""

import asyncio
import logging
from pathlib import Path

import pytest

from peerhost.addons.facade import AddonAPI
from peerhost.addons.host import (
    EVENT_ADDON_LOADED,
    EVENT_ADDON_UNLOADED,
    AddonHost,
    normalize_locator,
)
from peerhost.errors import AddonLoadError, LoadFailure

ADDON_SOURCE = '''
MANIFEST = {"id": "disk-addon", "permissions": ["host:log"]}


async def initialize(api, context):
    return {"id": context.id}
'''


class TestNormalizeLocator:
    def test_relative_path_made_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert normalize_locator("./addon.py") == str(tmp_path / "addon.py")
        assert normalize_locator("sub/addon.py") == str(tmp_path / "sub" / "addon.py")

    def test_path_object(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert normalize_locator(Path("addon.py")) == str(tmp_path / "addon.py")

    def test_absolute_path_unchanged(self, tmp_path):
        assert normalize_locator(str(tmp_path / "a.py")) == str(tmp_path / "a.py")

    def test_schemes_untouched(self):
        assert normalize_locator("registry:x") == "registry:x"
        assert normalize_locator("entrypoint:x") == "entrypoint:x"

    @pytest.mark.parametrize("locator", ["", "   ", None, 42])
    def test_invalid(self, locator):
        with pytest.raises(AddonLoadError) as exc_info:
            normalize_locator(locator)
        assert exc_info.value.reason == LoadFailure.INVALID_LOCATOR


class TestLoad:
    @pytest.mark.asyncio
    async def test_load_registers_addon(self, host, register):
        locator = register("alpha", ["host:log"])

        instance = await host.load(locator)

        assert instance["id"] == "alpha"
        record = host.get_loaded_addon("alpha")
        assert record is not None
        assert record.instance is instance
        assert record.source == "registry:alpha"
        assert isinstance(record.api, AddonAPI)
        assert record.api.addon_id == "alpha"
        assert record.api.permissions == frozenset({"host:log"})
        assert host.is_loaded("alpha")
        assert host.loaded_ids == ["alpha"]

    @pytest.mark.asyncio
    async def test_facade_and_context_passed_to_initialize(self, host, register):
        seen = {}

        async def initialize(api, context):
            seen["api"] = api
            seen["context_id"] = context.id
            seen["identity"] = api.get_self_identity()
            return True

        await host.load(register("alpha", initialize=initialize))

        assert seen["api"] is host.get_loaded_addon("alpha").api
        assert seen["context_id"] == "alpha"
        assert seen["identity"] == "12D3testpeer"

    @pytest.mark.asyncio
    async def test_idempotent_load(self, host, register):
        calls = []

        async def initialize(api, context):
            calls.append(context.id)
            return object()

        locator = register("alpha", initialize=initialize)
        first = await host.load(locator)
        second = await host.load(locator)

        assert first is second
        assert calls == ["alpha"]
        assert len(host.get_all()) == 1

    @pytest.mark.asyncio
    async def test_sync_initialize(self, host, register):
        instance = await host.load(register("sync", initialize=lambda api, ctx: "ready"))
        assert instance == "ready"

    @pytest.mark.parametrize("result", [None, False, 0, "", {}])
    @pytest.mark.asyncio
    async def test_falsy_instance_not_registered(self, host, register, result, caplog):
        with caplog.at_level(logging.WARNING, logger="peerhost.addons.host"):
            instance = await host.load(register("nothing", initialize=lambda api, ctx: result))

        assert instance is None
        assert host.get_loaded_addon("nothing") is None
        assert "returned no instance" in caplog.text

    @pytest.mark.asyncio
    async def test_initialize_exception_propagates(self, host, register):
        attempts = []

        async def initialize(api, context):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("addon bug")
            return "second time"

        locator = register("flaky", initialize=initialize)
        with pytest.raises(RuntimeError, match="addon bug"):
            await host.load(locator)

        assert host.get_loaded_addon("flaky") is None
        assert await host.load(locator) == "second time"

    @pytest.mark.parametrize("locator", ["", "   ", None])
    @pytest.mark.asyncio
    async def test_invalid_locator_returns_none(self, host, locator, caplog):
        with caplog.at_level(logging.ERROR, logger="peerhost.addons.host"):
            assert await host.load(locator) is None
        assert "invalid_locator" in caplog.text

    @pytest.mark.asyncio
    async def test_unresolvable_locator_returns_none(self, host, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="peerhost.addons.host"):
            assert await host.load(str(tmp_path / "missing.py")) is None
        assert "module_resolution_failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_resolver_error_returns_none(self, gateway):
        class ExplodingResolver:
            def can_resolve(self, locator):
                return True

            async def resolve(self, locator):
                raise KeyError("surprise")

        host = AddonHost(gateway=gateway, resolvers=[ExplodingResolver()])
        assert await host.load("anything") is None

    @pytest.mark.asyncio
    async def test_load_relative_path(self, host, tmp_path, monkeypatch):
        (tmp_path / "disk_addon.py").write_text(ADDON_SOURCE)
        monkeypatch.chdir(tmp_path)

        instance = await host.load("./disk_addon.py")

        assert instance == {"id": "disk-addon"}
        assert host.get_loaded_addon("disk-addon").source == str(tmp_path / "disk_addon.py")

    @pytest.mark.asyncio
    async def test_blocked_addon(self, gateway, make_addon, caplog):
        host = AddonHost(gateway=gateway, blocked=["evil"])
        host.register_factory("evil", lambda: make_addon("evil"))

        with caplog.at_level(logging.WARNING, logger="peerhost.addons.host"):
            assert await host.load("registry:evil") is None

        assert not host.is_loaded("evil")
        assert "blocked" in caplog.text

    @pytest.mark.asyncio
    async def test_reentrant_load_is_rejected(self, host, make_addon, caplog):
        inner = []

        async def initialize(api, context):
            inner.append(await host.load("registry:loop"))
            return {"ok": True}

        host.register_factory("loop", lambda: make_addon("loop", initialize=initialize))

        with caplog.at_level(logging.WARNING, logger="peerhost.addons.host"):
            instance = await host.load("registry:loop")

        assert instance == {"ok": True}
        assert inner == [None]
        assert "load_in_progress" in caplog.text

    @pytest.mark.asyncio
    async def test_concurrent_load_of_same_id(self, host, register):
        calls = []

        async def initialize(api, context):
            calls.append(1)
            await asyncio.sleep(0.01)
            return "instance"

        locator = register("slow", initialize=initialize)
        results = await asyncio.gather(host.load(locator), host.load(locator))

        assert results == ["instance", None]
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_loaded_event(self, host, register, event_bus):
        events = []
        event_bus.on(EVENT_ADDON_LOADED, events.append)

        await host.load(register("alpha"))

        assert events == [{"id": "alpha"}]

    @pytest.mark.asyncio
    async def test_load_many(self, host, register, tmp_path):
        a = register("a")
        b = register("b")
        missing = str(tmp_path / "missing.py")

        results = await host.load_many([a, missing, b])

        assert list(results) == [a, missing, b]
        assert results[missing] is None
        assert sorted(host.loaded_ids) == ["a", "b"]


class TestUnload:
    @pytest.mark.asyncio
    async def test_unload_calls_terminate_once(self, host, register):
        terminated = []

        async def terminate(api, context):
            terminated.append((api.addon_id, context.id))

        await host.load(register("alpha", terminate=terminate))

        assert await host.unload("alpha") is True
        assert terminated == [("alpha", "alpha")]
        assert host.get_loaded_addon("alpha") is None

    @pytest.mark.asyncio
    async def test_unload_unknown(self, host, caplog):
        with caplog.at_level(logging.WARNING, logger="peerhost.addons.host"):
            assert await host.unload("ghost") is False
        assert "not loaded" in caplog.text

    @pytest.mark.asyncio
    async def test_terminate_failure_still_removes(self, host, register, caplog):
        def terminate(api, context):
            raise RuntimeError("cleanup failed")

        await host.load(register("alpha", terminate=terminate))

        with caplog.at_level(logging.ERROR, logger="peerhost.addons.host"):
            assert await host.unload("alpha") is True

        assert not host.is_loaded("alpha")
        assert "raised during terminate" in caplog.text

    @pytest.mark.asyncio
    async def test_reload_builds_new_record(self, host, register):
        locator = register("alpha", ["host:log"])
        await host.load(locator)
        first_api = host.get_loaded_addon("alpha").api

        await host.unload("alpha")
        await host.load(locator)

        assert host.get_loaded_addon("alpha").api is not first_api

    @pytest.mark.asyncio
    async def test_unloaded_event(self, host, register, event_bus):
        events = []
        event_bus.on(EVENT_ADDON_UNLOADED, events.append)
        await host.load(register("alpha"))

        await host.unload("alpha")

        assert events == [{"id": "alpha"}]


class TestCloseAll:
    @pytest.mark.asyncio
    async def test_close_all_drains_registry(self, host, register):
        def broken_terminate(api, context):
            raise RuntimeError("nope")

        terminated = []
        await host.load(register("a", terminate=broken_terminate))
        await host.load(register("b", terminate=lambda api, ctx: terminated.append(ctx.id)))
        await host.load(register("c"))

        await host.close_all()

        assert host.get_all() == []
        assert terminated == ["b"]

    @pytest.mark.asyncio
    async def test_close_all_is_idempotent(self, host, register):
        await host.load(register("a"))
        await host.close_all()
        await host.close_all()
        assert host.get_all() == []


class TestInterAddonAccess:
    @pytest.mark.asyncio
    async def test_get_addon_returns_other_instance(self, host, register):
        await host.load(register("provider", initialize=lambda api, ctx: {"service": 42}))
        consumer = await host.load(register("consumer"))

        assert consumer["api"].get_addon("provider") == {"service": 42}
        assert consumer["api"].get_addon("missing") is None

    @pytest.mark.asyncio
    async def test_gated_inter_addon_access(self, gateway, make_addon):
        host = AddonHost(gateway=gateway, gate_addon_access=True)
        host.register_factory("provider", lambda: make_addon("provider"))
        host.register_factory("trusted", lambda: make_addon("trusted", ["host:addons"]))
        host.register_factory("untrusted", lambda: make_addon("untrusted"))

        await host.load("registry:provider")
        trusted = await host.load("registry:trusted")
        untrusted = await host.load("registry:untrusted")

        assert trusted["api"].get_addon("provider") is not None
        assert untrusted["api"].get_addon("provider") is None


class TestProperties:
    @pytest.mark.asyncio
    async def test_permission_gate(self, host, register, caplog):
        instance = await host.load(register("locked", []))
        api = instance["api"]

        with caplog.at_level(logging.INFO):
            api.log("hidden")
            store = await api.get_scoped_store("settings")

        assert api.has_permission("host:log") is False
        assert store is None
        assert not [r for r in caplog.records if r.name == "peerhost.addons.locked"]

    @pytest.mark.asyncio
    async def test_permission_grant(self, host, register, caplog):
        instance = await host.load(register("open", ["host:log", "host:storage:scoped"]))
        api = instance["api"]

        with caplog.at_level(logging.INFO, logger="peerhost.addons.open"):
            api.log("visible")
        store = await api.get_scoped_store("settings")
        await store.put("k", "v")

        assert "[addon:open] visible" in caplog.text
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_storage_isolation(self, host, register):
        perms = ["host:storage:scoped"]
        a = (await host.load(register("a", perms)))["api"]
        b = (await host.load(register("b", perms)))["api"]

        store_a = await a.get_scoped_store("settings")
        store_b = await b.get_scoped_store("settings")
        await store_a.put("k", "secret")

        assert store_a.address != store_b.address
        assert await store_b.get("k") is None

    @pytest.mark.asyncio
    async def test_cache_reuse(self, host, register):
        api = (await host.load(register("a", ["host:storage:scoped"])))["api"]

        first = await api.get_scoped_store("settings")
        second = await api.get_scoped_store("settings")

        assert first is second
        assert first.address == second.address

    @pytest.mark.asyncio
    async def test_scenario(self, host, register):
        none = (await host.load(register("no-perms", [])))["api"]
        assert none.has_permission("host:log") is False

        logger_addon = (await host.load(register("log-only", ["host:log"])))["api"]
        assert logger_addon.has_permission("host:log") is True

        perms = ["host:log", "host:storage:scoped"]
        first = (await host.load(register("first", perms)))["api"]
        second = (await host.load(register("second", perms)))["api"]

        await (await first.get_scoped_store("addon-settings")).put("k1", "v1")
        assert await (await second.get_scoped_store("addon-settings")).get("k1") is None
