"""Addon manifest and metadata models."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from peerhost.errors import AddonLoadError, LoadFailure
from peerhost.storage.gateway import scope_id_error

if TYPE_CHECKING:
    from peerhost.addons.facade import AddonAPI

_WHITESPACE = re.compile(r"\s")


class Capability(StrEnum):
    """Capabilities the host checks before handing out a resource.

    IDENTITY, EVENTS and ADDONS are only enforced when the matching gate
    is switched on in :class:`peerhost.config.schema.AddonsConfig`.
    """

    LOG = "host:log"
    STORAGE_SCOPED = "host:storage:scoped"
    IDENTITY = "host:identity"
    EVENTS = "host:events"
    ADDONS = "host:addons"


@dataclass(frozen=True)
class AddonContext:
    """Context passed to an addon's ``initialize`` and ``terminate``."""

    id: str


# Called as hook(api, context); may return a value or an awaitable.
AddonHook = Callable[..., Any]


@dataclass(frozen=True)
class AddonManifest:
    """Addon metadata declared by the addon itself."""

    id: str
    name: str = ""
    version: str = "0.0.0"
    description: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_mapping(cls, data: Any, locator: str | None = None) -> AddonManifest:
        """Build and validate a manifest from the mapping an addon exports.

        Raises:
            AddonLoadError: With reason INVALID_MANIFEST
        """
        if isinstance(data, AddonManifest):
            validate_addon_id(data.id, locator)
            return data
        if not isinstance(data, Mapping):
            raise AddonLoadError(
                LoadFailure.INVALID_MANIFEST, "Addon manifest must be a mapping", locator
            )

        addon_id = data.get("id")
        validate_addon_id(addon_id, locator)

        return cls(
            id=addon_id,
            name=str(data.get("name") or addon_id),
            version=str(data.get("version") or "0.0.0"),
            description=str(data.get("description") or ""),
            permissions=_parse_permissions(data.get("permissions"), locator),
        )


def validate_addon_id(addon_id: Any, locator: str | None = None) -> None:
    """Check that an addon id is usable as a registry key and store scope."""
    if not isinstance(addon_id, str) or not addon_id.strip():
        raise AddonLoadError(
            LoadFailure.INVALID_MANIFEST, "Addon manifest has no valid 'id'", locator
        )
    if _WHITESPACE.search(addon_id):
        raise AddonLoadError(
            LoadFailure.INVALID_MANIFEST,
            f"Addon id '{addon_id}' may not contain whitespace",
            locator,
        )
    reason = scope_id_error(addon_id)
    if reason:
        raise AddonLoadError(
            LoadFailure.INVALID_MANIFEST, f"Addon id '{addon_id}' {reason}", locator
        )


def _parse_permissions(data: Any, locator: str | None) -> frozenset[str]:
    """Parse the declared permission list into a set of capability strings."""
    if data is None:
        return frozenset()
    if isinstance(data, str) or not isinstance(data, Iterable):
        raise AddonLoadError(
            LoadFailure.INVALID_MANIFEST, "Addon 'permissions' must be a list of strings", locator
        )
    return frozenset(str(p).strip() for p in data if isinstance(p, str) and p.strip())


@dataclass(frozen=True)
class AddonDefinition:
    """What the host needs from an addon: its manifest and lifecycle hooks."""

    manifest: AddonManifest
    initialize: AddonHook
    terminate: AddonHook | None = None


@dataclass
class LoadedAddon:
    """An addon that has been initialized and registered by the host."""

    manifest: AddonManifest
    instance: Any
    api: AddonAPI
    source: str
    definition: AddonDefinition
    loaded_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def id(self) -> str:
        return self.manifest.id
