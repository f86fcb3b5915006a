"""Access decisions taken by addon API facades.

Every capability check produces an :class:`AccessDecision`. The facade
surfaces only ``None``/``False`` to the addon; the full outcome is kept
here for operators.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class Decision(StrEnum):
    """Capability check outcomes."""

    ALLOW = "allow"
    DENY = "deny"


class AccessDecision(BaseModel):
    """Result of one capability check."""

    addon_id: str
    capability: str
    operation: str
    decision: Decision
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def allowed(self) -> bool:
        return self.decision == Decision.ALLOW


class AccessAuditTrail:
    """Bounded, most-recent-last record of access decisions."""

    def __init__(self, max_entries: int = 256) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries: deque[AccessDecision] = deque(maxlen=max_entries)

    def record(
        self, addon_id: str, capability: str, operation: str, allowed: bool
    ) -> AccessDecision:
        decision = AccessDecision(
            addon_id=addon_id,
            capability=capability,
            operation=operation,
            decision=Decision.ALLOW if allowed else Decision.DENY,
        )
        self._entries.append(decision)
        return decision

    def denials(self) -> list[AccessDecision]:
        return [d for d in self._entries if not d.allowed]

    def __iter__(self) -> Iterator[AccessDecision]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
