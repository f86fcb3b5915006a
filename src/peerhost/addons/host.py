"""Addon host: loads addons, drives their lifecycle and tracks them by id.

Load failures that happen before an addon's own code runs (bad locator,
nothing importable, invalid manifest) are logged and reported as a
``None`` result so a caller iterating over many locators is never
aborted by one bad source. Exceptions raised by an addon's
``initialize`` propagate to the caller of :meth:`AddonHost.load`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from peerhost.addons.facade import AddonAPI
from peerhost.addons.manifest import (
    AddonContext,
    AddonDefinition,
    AddonHook,
    AddonManifest,
    LoadedAddon,
)
from peerhost.addons.resolver import (
    DEFAULT_ENTRY_POINT_GROUP,
    ENTRY_POINT_SCHEME,
    REGISTRY_SCHEME,
    AddonFactory,
    AddonResolver,
    RegistryResolver,
    default_resolvers,
)
from peerhost.errors import AddonLoadError, LoadFailure
from peerhost.events import EventBus
from peerhost.identity import IdentityProvider
from peerhost.storage.gateway import ScopedStorageGateway

logger = logging.getLogger(__name__)

EVENT_ADDON_LOADED = "addon:loaded"
EVENT_ADDON_UNLOADED = "addon:unloaded"


def normalize_locator(locator: str | Path) -> str:
    """Make filesystem locators absolute against the current directory.

    Registry and entry point locators are returned unchanged.

    Raises:
        AddonLoadError: With reason INVALID_LOCATOR
    """
    if isinstance(locator, Path):
        return str(locator.expanduser().absolute())
    if not isinstance(locator, str) or not locator.strip():
        raise AddonLoadError(LoadFailure.INVALID_LOCATOR, f"Invalid addon locator: {locator!r}")

    locator = locator.strip()
    if locator.startswith((REGISTRY_SCHEME, ENTRY_POINT_SCHEME)):
        return locator
    return str(Path(locator).expanduser().absolute())


async def _call_hook(hook: AddonHook, api: AddonAPI, context: AddonContext) -> Any:
    result = hook(api, context)
    if inspect.isawaitable(result):
        result = await result
    return result


class AddonHost:
    """Resolves, initializes and tracks addons."""

    def __init__(
        self,
        *,
        event_bus: EventBus | None = None,
        gateway: ScopedStorageGateway | None = None,
        identity_provider: IdentityProvider | None = None,
        registry: RegistryResolver | None = None,
        resolvers: list[AddonResolver] | None = None,
        entry_point_group: str = DEFAULT_ENTRY_POINT_GROUP,
        blocked: Iterable[str] | None = None,
        gate_identity: bool = False,
        gate_event_bus: bool = False,
        gate_addon_access: bool = False,
        audit_trail_size: int = 256,
    ) -> None:
        self.event_bus = event_bus or EventBus()
        self.gateway = gateway
        self.identity_provider = identity_provider
        self.registry = registry or RegistryResolver()
        self.resolvers = (
            resolvers if resolvers is not None else default_resolvers(self.registry, entry_point_group)
        )
        self.blocked = set(blocked or [])
        self.gate_identity = gate_identity
        self.gate_event_bus = gate_event_bus
        self.gate_addon_access = gate_addon_access
        self.audit_trail_size = audit_trail_size

        self._addons: dict[str, LoadedAddon] = {}
        self._loading: set[str] = set()
        self._unloading: set[str] = set()

    def register_factory(self, name: str, factory: AddonFactory) -> str:
        """Register an in-process addon factory.

        Returns:
            The locator to pass to :meth:`load`
        """
        self.registry.register(name, factory)
        return f"{REGISTRY_SCHEME}{name}"

    async def resolve(self, locator: str | Path) -> AddonDefinition:
        """Resolve a locator to its definition without initializing anything.

        Raises:
            AddonLoadError: If the locator cannot be resolved
        """
        source = normalize_locator(locator)
        for resolver in self.resolvers:
            if resolver.can_resolve(source):
                return await resolver.resolve(source)
        raise AddonLoadError(
            LoadFailure.MODULE_RESOLUTION_FAILED, f"No resolver accepts {source}", source
        )

    async def load(self, locator: str | Path) -> Any:
        """Load and initialize an addon.

        Args:
            locator: File path, package directory, ``registry:<name>`` or
                ``entrypoint:<name>``

        Returns:
            The instance returned by the addon's ``initialize``, the
            existing instance if the addon is already loaded, or None if
            the load failed

        Raises:
            Exception: Whatever the addon's ``initialize`` raised
        """
        try:
            source = normalize_locator(locator)
            definition = await self.resolve(source)
        except AddonLoadError as e:
            logger.error("Failed to load addon from %s [%s]: %s", locator, e.reason, e)
            return None
        except Exception as e:
            logger.error(
                "Failed to load addon from %s [%s]: %s",
                locator,
                LoadFailure.MODULE_RESOLUTION_FAILED,
                e,
            )
            return None

        manifest = definition.manifest
        addon_id = manifest.id

        if addon_id in self.blocked:
            logger.warning("Addon '%s' is blocked, not loading %s", addon_id, source)
            return None

        existing = self._addons.get(addon_id)
        if existing is not None:
            logger.info("Addon '%s' is already loaded", addon_id)
            return existing.instance

        if addon_id in self._loading:
            logger.warning(
                "Addon '%s' is already being loaded [%s]", addon_id, LoadFailure.LOAD_IN_PROGRESS
            )
            return None

        self._loading.add(addon_id)
        try:
            api = self._build_api(manifest)
            await api.init()
            try:
                instance = await _call_hook(definition.initialize, api, AddonContext(id=addon_id))
            except Exception:
                logger.error(
                    "Addon '%s' raised during initialize [%s]",
                    addon_id,
                    LoadFailure.INITIALIZE_THREW,
                )
                raise
        finally:
            self._loading.discard(addon_id)

        if not instance:
            logger.warning("Addon '%s' initialize returned no instance, not registering", addon_id)
            return None

        self._addons[addon_id] = LoadedAddon(
            manifest=manifest,
            instance=instance,
            api=api,
            source=source,
            definition=definition,
        )
        logger.info("Loaded addon '%s' v%s from %s", addon_id, manifest.version, source)
        self.event_bus.emit(EVENT_ADDON_LOADED, {"id": addon_id})
        return instance

    async def load_many(self, locators: Iterable[str | Path]) -> dict[str, Any]:
        """Load addons one after another, keyed by locator."""
        results: dict[str, Any] = {}
        for locator in locators:
            results[str(locator)] = await self.load(locator)
        return results

    def _build_api(self, manifest: AddonManifest) -> AddonAPI:
        return AddonAPI(
            manifest.id,
            manifest.permissions,
            event_bus=self.event_bus,
            gateway=self.gateway,
            identity_provider=self.identity_provider,
            addon_lookup=self._instance_of,
            gate_identity=self.gate_identity,
            gate_event_bus=self.gate_event_bus,
            gate_addon_access=self.gate_addon_access,
            audit_trail_size=self.audit_trail_size,
        )

    def _instance_of(self, addon_id: str) -> Any:
        record = self._addons.get(addon_id)
        return record.instance if record else None

    async def unload(self, addon_id: str) -> bool:
        """Terminate and remove an addon.

        A failing ``terminate`` is logged; the addon is removed regardless.

        Returns:
            True if the addon was removed, False if it was not loaded
        """
        record = self._addons.get(addon_id)
        if record is None:
            logger.warning("Cannot unload addon '%s': not loaded", addon_id)
            return False
        if addon_id in self._unloading:
            logger.warning("Addon '%s' is already being unloaded", addon_id)
            return False

        self._unloading.add(addon_id)
        try:
            terminate = record.definition.terminate
            if terminate is not None:
                try:
                    await _call_hook(terminate, record.api, AddonContext(id=addon_id))
                except Exception:
                    logger.exception("Addon '%s' raised during terminate", addon_id)
        finally:
            self._unloading.discard(addon_id)
            if self._addons.get(addon_id) is record:
                del self._addons[addon_id]

        logger.info("Unloaded addon '%s'", addon_id)
        self.event_bus.emit(EVENT_ADDON_UNLOADED, {"id": addon_id})
        return True

    async def close_all(self) -> None:
        """Unload every loaded addon."""
        if not self._addons:
            return
        logger.info("Unloading %d addons", len(self._addons))
        for addon_id in list(self._addons):
            await self.unload(addon_id)

    def get_loaded_addon(self, addon_id: str) -> LoadedAddon | None:
        return self._addons.get(addon_id)

    def get_all(self) -> list[LoadedAddon]:
        return list(self._addons.values())

    def is_loaded(self, addon_id: str) -> bool:
        return addon_id in self._addons

    @property
    def loaded_ids(self) -> list[str]:
        return list(self._addons.keys())
