"""Addon system for peerhost.

Addons are loaded by locator, receive a permission-checked :class:`AddonAPI`
and store data only through stores scoped to their own id.
"""

from peerhost.addons.audit import AccessAuditTrail, AccessDecision, Decision
from peerhost.addons.facade import AddonAPI
from peerhost.addons.host import AddonHost, normalize_locator
from peerhost.addons.manifest import (
    AddonContext,
    AddonDefinition,
    AddonManifest,
    Capability,
    LoadedAddon,
)
from peerhost.addons.resolver import (
    AddonResolver,
    EntryPointResolver,
    FileResolver,
    RegistryResolver,
    definition_from_object,
)

__all__ = [
    "AccessAuditTrail",
    "AccessDecision",
    "AddonAPI",
    "AddonContext",
    "AddonDefinition",
    "AddonHost",
    "AddonManifest",
    "AddonResolver",
    "Capability",
    "Decision",
    "EntryPointResolver",
    "FileResolver",
    "LoadedAddon",
    "RegistryResolver",
    "definition_from_object",
    "normalize_locator",
]
