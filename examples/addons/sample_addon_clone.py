"""Same store name as sample_addon, different id: must not see its data."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

MANIFEST = {
    "id": "sample-addon-clone",
    "name": "Sample Addon Clone",
    "version": "0.0.1",
    "description": "A clone addon for testing storage scoping.",
    "permissions": ["host:log", "host:storage:scoped"],
}


@dataclass
class CloneState:
    addon_id: str
    db_value_clone: Any = None
    original_db_value: Any = None

    def call_me(self) -> str:
        return f"Hello from Sample Addon Clone ({self.addon_id})!"


async def initialize(api, context):
    state = CloneState(addon_id=context.id)
    api.log(f"Sample Addon Clone ({context.id}): initializing")

    settings = await api.get_scoped_store("addon-settings")
    if settings is None:
        api.log(f"Sample Addon Clone ({context.id}): settings store unavailable")
        return state

    await settings.put("cloneTestKey", "testValueFromCloneAddon")
    state.db_value_clone = await settings.get("cloneTestKey")

    # Written by sample-addon into its own store; must read as None here.
    state.original_db_value = await settings.get("testKey")
    if state.original_db_value is not None:
        api.log(f"Sample Addon Clone ({context.id}): read another addon's value!")
    return state


def terminate(api, context):
    api.log(f"Sample Addon Clone ({context.id}): terminating")
