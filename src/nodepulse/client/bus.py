"""In-process publish/subscribe fan-out between the connection and its consumers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from nodepulse._internal.logging import get_logger

if TYPE_CHECKING:
    from nodepulse._internal.types import Handler

logger = get_logger("client.bus")


class EventBus:
    """Synchronous event bus keyed by event name.

    Handlers run in registration order on the caller's stack. A handler
    that raises is logged and skipped; the remaining handlers still receive
    the event.
    """

    def __init__(self) -> None:
        """Initialize a bus with no subscribers."""
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> None:
        """Register *handler* for *event*. Registering twice is a no-op."""
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str, handler: Handler) -> None:
        """Deregister *handler* from *event* if it is registered."""
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: Any = None) -> None:
        """Deliver *payload* to every handler registered for *event*.

        Iterates over a snapshot, so handlers may subscribe or unsubscribe
        while the event is being delivered.

        Args:
            event: Event name, e.g. ``"metric"``.
            payload: Value passed to each handler.
        """
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler %r failed for event %r", handler, event)

    def handler_count(self, event: str) -> int:
        """Return the number of handlers registered for *event*."""
        return len(self._handlers.get(event, ()))

    def events(self) -> list[str]:
        """Return the names of events that currently have handlers."""
        return [name for name, handlers in self._handlers.items() if handlers]
