"""Process-wide publish/subscribe event bus.

Delivery is synchronous and in registration order. A failing listener is
logged and skipped; it never stops the remaining listeners of the same
emission.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


@dataclass(eq=False)
class _Registration:
    listener: Listener
    once: bool = False


class EventBus:
    """Simple synchronous event hub shared by the host and its addons."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[_Registration]] = {}

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener for an event.

        Args:
            event: Event name
            listener: Callable invoked with the emitted arguments
        """
        self._listeners.setdefault(event, []).append(_Registration(listener))

    def once(self, event: str, listener: Listener) -> None:
        """Register a listener that is removed after its first call."""
        self._listeners.setdefault(event, []).append(_Registration(listener, once=True))

    def off(self, event: str, listener: Listener) -> None:
        """Remove every registration of ``listener`` for ``event``.

        Listeners are compared by equality, so a bound method can be removed
        with a fresh ``obj.method`` reference.
        """
        self._keep(event, lambda reg: reg.listener != listener)

    def _keep(self, event: str, predicate: Callable[[_Registration], bool]) -> None:
        registrations = self._listeners.get(event)
        if not registrations:
            return
        remaining = [reg for reg in registrations if predicate(reg)]
        if remaining:
            self._listeners[event] = remaining
        else:
            del self._listeners[event]

    def emit(self, event: str, *args: Any) -> int:
        """Call every listener of ``event`` with ``args``.

        Args:
            event: Event name
            *args: Arguments passed to each listener

        Returns:
            Number of listeners invoked
        """
        registrations = list(self._listeners.get(event, ()))
        if not registrations:
            return 0

        fired = {id(reg) for reg in registrations if reg.once}
        if fired:
            self._keep(event, lambda reg: id(reg) not in fired)

        for reg in registrations:
            try:
                reg.listener(*args)
            except Exception:
                logger.exception("Listener for event '%s' raised", event)
        return len(registrations)

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Remove listeners for one event, or for all events when ``event`` is None."""
        if event is None:
            self._listeners.clear()
            return
        self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def event_names(self) -> list[str]:
        return list(self._listeners.keys())
