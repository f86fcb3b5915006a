"""Per-addon API facade.

An :class:`AddonAPI` is the only object an addon receives from the host.
Each privileged method checks the addon's declared permissions before it
touches a host resource. A missing permission never raises: the call
degrades to ``None``, ``False`` or a no-op, and the denial is logged and
recorded on the facade's audit trail.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from peerhost.addons.audit import AccessAuditTrail
from peerhost.addons.manifest import Capability
from peerhost.errors import InvalidArgumentError
from peerhost.events import EventBus
from peerhost.identity import IdentityProvider
from peerhost.storage.engine import Store
from peerhost.storage.gateway import ScopedStorageGateway

logger = logging.getLogger(__name__)

ADDON_LOGGER_PREFIX = "peerhost.addons"

AddonLookup = Callable[[str], Any]


def addon_logger(addon_id: str) -> logging.Logger:
    """Logger used as an addon's log channel."""
    return logging.getLogger(f"{ADDON_LOGGER_PREFIX}.{addon_id}")


def _escape_line_breaks(message: str) -> str:
    return message.replace("\r", "\\r").replace("\n", "\\n")


class AddonAPI:
    """Capability-checked surface handed to one addon.

    ``addon_id`` and ``permissions`` are bound at construction and cannot
    be reassigned afterwards.
    """

    def __init__(
        self,
        addon_id: str,
        permissions: Iterable[str] = (),
        *,
        event_bus: EventBus | None = None,
        gateway: ScopedStorageGateway | None = None,
        identity_provider: IdentityProvider | None = None,
        addon_lookup: AddonLookup | None = None,
        gate_identity: bool = False,
        gate_event_bus: bool = False,
        gate_addon_access: bool = False,
        audit_trail_size: int = 256,
    ) -> None:
        init = object.__setattr__
        init(self, "_addon_id", addon_id)
        init(self, "_permissions", frozenset(p.strip() for p in permissions if isinstance(p, str)))
        init(self, "_event_bus", event_bus)
        init(self, "_gateway", gateway)
        init(self, "_identity_provider", identity_provider)
        init(self, "_addon_lookup", addon_lookup)
        init(self, "_gate_identity", gate_identity)
        init(self, "_gate_event_bus", gate_event_bus)
        init(self, "_gate_addon_access", gate_addon_access)
        init(self, "_audit", AccessAuditTrail(audit_trail_size))
        init(self, "_self_identity", None)
        init(self, "_identity_resolved", False)
        init(self, "_log", addon_logger(addon_id))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} attributes are read-only")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} attributes are read-only")

    def __repr__(self) -> str:
        return f"AddonAPI(addon_id={self._addon_id!r})"

    @property
    def addon_id(self) -> str:
        return self._addon_id

    @property
    def permissions(self) -> frozenset[str]:
        return self._permissions

    @property
    def decisions(self) -> AccessAuditTrail:
        """Every capability check this facade has made."""
        return self._audit

    async def init(self) -> None:
        """Resolve the host node identity once. Never raises."""
        if self._identity_resolved:
            return
        object.__setattr__(self, "_identity_resolved", True)

        if self._identity_provider is None:
            logger.debug("No identity provider for addon %s", self._addon_id)
            return

        try:
            peer_id = await self._identity_provider.get_peer_id()
        except Exception as e:
            logger.warning("Could not resolve node identity for addon %s: %s", self._addon_id, e)
            return

        if peer_id is None:
            logger.warning("Identity provider returned no identity for addon %s", self._addon_id)
            return
        object.__setattr__(self, "_self_identity", str(peer_id))

    def has_permission(self, capability: str) -> bool:
        """Whether the addon declared ``capability``. Blank input is never granted."""
        if not isinstance(capability, str) or not capability.strip():
            return False
        return capability.strip() in self._permissions

    def _check(self, capability: Capability, operation: str) -> bool:
        allowed = self.has_permission(capability)
        self._audit.record(self._addon_id, capability, operation, allowed)
        if not allowed:
            logger.warning("Permission '%s' denied for addon %s", capability, self._addon_id)
        return allowed

    def log(self, message: Any) -> None:
        """Write ``message`` to the addon's log channel (requires ``host:log``)."""
        if not self._check(Capability.LOG, "log"):
            return
        self._log.info("[addon:%s] %s", self._addon_id, _escape_line_breaks(str(message)))

    def get_self_identity(self) -> str | None:
        """Host node identity as resolved by :meth:`init`, or None."""
        if self._gate_identity and not self._check(Capability.IDENTITY, "get_self_identity"):
            return None
        return self._self_identity

    def get_event_bus(self) -> EventBus | None:
        if self._gate_event_bus and not self._check(Capability.EVENTS, "get_event_bus"):
            return None
        return self._event_bus

    def get_addon(self, other_id: str) -> Any:
        """Raw instance of another loaded addon, or None.

        This hands out the whole instance, not a scoped resource. Addons
        that compose this way trust each other fully.
        """
        if self._gate_addon_access and not self._check(Capability.ADDONS, "get_addon"):
            return None
        if self._addon_lookup is None or not isinstance(other_id, str) or not other_id:
            return None
        return self._addon_lookup(other_id)

    async def get_scoped_store(
        self,
        logical_name: str,
        store_kind: str = "keyvalue",
        options: dict[str, Any] | None = None,
    ) -> Store | None:
        """Open one of the addon's own stores (requires ``host:storage:scoped``).

        Args:
            logical_name: Store name as the addon knows it
            store_kind: "keyvalue", "events" or "feed"
            options: Extra storage engine options

        Returns:
            Store handle, or None when denied or when storage failed

        Raises:
            InvalidArgumentError: If ``logical_name`` is blank or not a string
        """
        if not self._check(Capability.STORAGE_SCOPED, "get_scoped_store"):
            return None
        if not isinstance(logical_name, str) or not logical_name.strip():
            raise InvalidArgumentError("logical_name must be a non-empty string")

        if self._gateway is None:
            logger.error("No storage gateway available for addon %s", self._addon_id)
            return None

        try:
            return await self._gateway.get_scoped_store(
                self._addon_id, logical_name, store_kind, options
            )
        except Exception as e:
            logger.error(
                "Scoped store '%s' unavailable for addon %s: %s", logical_name, self._addon_id, e
            )
            return None
