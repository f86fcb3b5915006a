"""Sample addon: logs, emits an event and writes to its scoped settings store.

Load it with::

    peerhost run --addon examples/addons/sample_addon.py --once
"""

from __future__ import annotations

MANIFEST = {
    "id": "sample-addon",
    "name": "Sample Addon",
    "version": "0.0.1",
    "description": "A simple addon for testing dynamic loading.",
    "permissions": ["host:log", "host:storage:scoped"],
}

SETTINGS_STORE = "addon-settings"


class SampleAddon:
    def __init__(self, api, addon_id: str, db_value=None):
        self._api = api
        self.addon_id = addon_id
        self.status = "initialized"
        self._db_value = db_value

    def call_me(self) -> str:
        return f"Hello from Sample Addon ({self.addon_id})!"

    def get_db_test_value(self):
        return self._db_value

    def check_log_permission(self) -> bool:
        return self._api.has_permission("host:log")


async def initialize(api, context):
    addon_id = context.id
    api.log(f"Sample Addon ({addon_id}): initializing")

    peer_id = api.get_self_identity()
    api.log(f"Sample Addon ({addon_id}): running on peer {peer_id}")

    bus = api.get_event_bus()
    if bus is not None:
        bus.emit(f"addon:{addon_id}:initialized", {"peer_id": peer_id, "addon_id": addon_id})

    db_value = None
    settings = await api.get_scoped_store(SETTINGS_STORE)
    if settings is not None:
        api.log(f"Sample Addon ({addon_id}): settings store at {settings.address}")
        await settings.put("testKey", "testValueFromSampleAddon")
        db_value = await settings.get("testKey")
    else:
        api.log(f"Sample Addon ({addon_id}): settings store unavailable")

    return SampleAddon(api, addon_id, db_value)


async def terminate(api, context):
    api.log(f"Sample Addon ({context.id}): terminating")
    return {"status": "terminated"}
