"""Addon resolution: turning a locator into an :class:`AddonDefinition`.

Locators come in three forms:

1. ``registry:<name>`` - a factory registered in-process with :class:`RegistryResolver`
2. ``entrypoint:<name>`` - a Python entry point (``peerhost.addons`` group), installed via pip
3. anything else - a path to a ``.py`` file or a package directory

An addon module exposes either an ``ADDON`` object (with ``manifest``,
``initialize`` and optionally ``terminate``) or module-level ``MANIFEST``,
``initialize`` and ``terminate``.
"""

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import logging
import sys
from collections.abc import Callable, Mapping
from importlib.metadata import entry_points
from pathlib import Path
from types import ModuleType
from typing import Any, Protocol, runtime_checkable

from peerhost.addons.manifest import AddonDefinition, AddonManifest
from peerhost.errors import AddonLoadError, LoadFailure

logger = logging.getLogger(__name__)

REGISTRY_SCHEME = "registry:"
ENTRY_POINT_SCHEME = "entrypoint:"
DEFAULT_ENTRY_POINT_GROUP = "peerhost.addons"

AddonFactory = Callable[[], Any]


@runtime_checkable
class AddonResolver(Protocol):
    """Turns locators into addon definitions."""

    def can_resolve(self, locator: str) -> bool: ...

    async def resolve(self, locator: str) -> AddonDefinition: ...


def definition_from_object(obj: Any, locator: str) -> AddonDefinition:
    """Extract an addon definition from whatever an addon source exported.

    Raises:
        AddonLoadError: NO_DEFINITION, MISSING_INITIALIZE or INVALID_MANIFEST
    """
    if isinstance(obj, AddonDefinition):
        return obj

    if isinstance(obj, ModuleType):
        if hasattr(obj, "ADDON"):
            obj = obj.ADDON
        elif hasattr(obj, "MANIFEST"):
            obj = {
                "manifest": obj.MANIFEST,
                "initialize": getattr(obj, "initialize", None),
                "terminate": getattr(obj, "terminate", None),
            }
        else:
            raise AddonLoadError(
                LoadFailure.NO_DEFINITION,
                f"Addon at {locator} exports neither ADDON nor MANIFEST",
                locator,
            )

    if obj is None:
        raise AddonLoadError(LoadFailure.NO_DEFINITION, f"Addon at {locator} is empty", locator)

    if isinstance(obj, Mapping):
        manifest = obj.get("manifest")
        initialize = obj.get("initialize")
        terminate = obj.get("terminate")
    else:
        manifest = getattr(obj, "manifest", None)
        initialize = getattr(obj, "initialize", None)
        terminate = getattr(obj, "terminate", None)

    if not callable(initialize):
        raise AddonLoadError(
            LoadFailure.MISSING_INITIALIZE,
            f"Addon at {locator} does not provide a callable initialize",
            locator,
        )
    if manifest is None:
        raise AddonLoadError(
            LoadFailure.INVALID_MANIFEST, f"Addon at {locator} has no manifest", locator
        )

    return AddonDefinition(
        manifest=AddonManifest.from_mapping(manifest, locator),
        initialize=initialize,
        terminate=terminate if callable(terminate) else None,
    )


class RegistryResolver:
    """Resolves ``registry:<name>`` locators from in-process factories."""

    def __init__(self, factories: Mapping[str, AddonFactory] | None = None) -> None:
        self._factories: dict[str, AddonFactory] = dict(factories or {})

    def register(self, name: str, factory: AddonFactory) -> None:
        """Register an addon factory.

        Args:
            name: Name used in ``registry:<name>`` locators
            factory: Zero-argument callable returning the addon object

        Raises:
            ValueError: If a factory with the same name already exists
        """
        if name in self._factories:
            raise ValueError(f"Addon factory '{name}' already registered")
        self._factories[name] = factory

    def unregister(self, name: str) -> bool:
        return self._factories.pop(name, None) is not None

    @property
    def names(self) -> list[str]:
        return list(self._factories.keys())

    def can_resolve(self, locator: str) -> bool:
        return locator.startswith(REGISTRY_SCHEME)

    async def resolve(self, locator: str) -> AddonDefinition:
        name = locator[len(REGISTRY_SCHEME) :]
        factory = self._factories.get(name)
        if factory is None:
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED,
                f"No addon factory registered as '{name}'",
                locator,
            )
        try:
            obj = factory()
            if inspect.isawaitable(obj):
                obj = await obj
        except Exception as e:
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED,
                f"Addon factory '{name}' failed: {e}",
                locator,
            ) from e
        return definition_from_object(obj, locator)


class EntryPointResolver:
    """Resolves ``entrypoint:<name>`` locators from installed packages."""

    def __init__(self, group: str = DEFAULT_ENTRY_POINT_GROUP) -> None:
        self.group = group

    def can_resolve(self, locator: str) -> bool:
        return locator.startswith(ENTRY_POINT_SCHEME)

    def discover(self) -> list[str]:
        """Locators of every addon entry point installed in the environment."""
        return [f"{ENTRY_POINT_SCHEME}{ep.name}" for ep in entry_points(group=self.group)]

    async def resolve(self, locator: str) -> AddonDefinition:
        name = locator[len(ENTRY_POINT_SCHEME) :]
        matches = [ep for ep in entry_points(group=self.group) if ep.name == name]
        if not matches:
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED,
                f"No entry point '{name}' in group '{self.group}'",
                locator,
            )
        try:
            obj = matches[0].load()
        except Exception as e:
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED,
                f"Failed to load entry point '{name}': {e}",
                locator,
            ) from e
        return definition_from_object(obj, locator)


class FileResolver:
    """Resolves filesystem locators: single ``.py`` files or package directories."""

    def can_resolve(self, locator: str) -> bool:
        return not (locator.startswith(REGISTRY_SCHEME) or locator.startswith(ENTRY_POINT_SCHEME))

    async def resolve(self, locator: str) -> AddonDefinition:
        path = Path(locator)
        module = self._import(path, locator)
        return definition_from_object(module, locator)

    def _import(self, path: Path, locator: str) -> ModuleType:
        if path.is_dir():
            init_path = path / "__init__.py"
            if not init_path.exists():
                raise AddonLoadError(
                    LoadFailure.MODULE_RESOLUTION_FAILED,
                    f"Addon directory {path} has no __init__.py",
                    locator,
                )
            spec = importlib.util.spec_from_file_location(
                _module_name(path), init_path, submodule_search_locations=[str(path)]
            )
        elif path.is_file():
            spec = importlib.util.spec_from_file_location(_module_name(path), path)
        else:
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED, f"No addon found at {path}", locator
            )

        if spec is None or spec.loader is None:
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED,
                f"Cannot create module spec for {path}",
                locator,
            )

        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(spec.name, None)
            raise AddonLoadError(
                LoadFailure.MODULE_RESOLUTION_FAILED,
                f"Error importing addon module {path}: {e}",
                locator,
            ) from e

        logger.debug("Imported addon module %s as %s", path, spec.name)
        return module


def _module_name(path: Path) -> str:
    """Unique module name for an addon source path."""
    digest = hashlib.sha256(str(path).encode()).hexdigest()[:12]
    stem = path.stem.replace("-", "_").replace(".", "_")
    return f"peerhost_addon_{stem}_{digest}"


def default_resolvers(
    registry: RegistryResolver | None = None,
    entry_point_group: str = DEFAULT_ENTRY_POINT_GROUP,
) -> list[AddonResolver]:
    """Registry, entry point and file resolvers, in lookup order."""
    return [
        registry or RegistryResolver(),
        EntryPointResolver(entry_point_group),
        FileResolver(),
    ]
