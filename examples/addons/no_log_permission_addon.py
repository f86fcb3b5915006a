"""Addon declaring no permissions. Every privileged call degrades quietly."""


async def _initialize(api, context):
    api.log(f"NoLogPermissionAddon [{context.id}]: this line is never written")
    return {
        "status": "initialized",
        "id_from_context": context.id,
        "can_log": api.has_permission("host:log"),
        "store": await api.get_scoped_store("anything"),
    }


ADDON = {
    "manifest": {
        "id": "no-log-permission-addon",
        "name": "No Log Permission Addon",
        "version": "0.0.1",
        "description": "A simple addon to test denied log permission.",
        "permissions": [],
    },
    "initialize": _initialize,
}
