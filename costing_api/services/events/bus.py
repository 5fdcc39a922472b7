"""
In-process event bus.

Dispatch is synchronous: handlers run inside the request that published
the event, on the publisher's database session. A handler that raises is
logged and skipped; the publisher never sees the exception.
"""

from collections import defaultdict
from typing import Any, Callable

from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from .domain_event import DomainEvent, EventType

logger = get_logger(__name__)

Handler = Callable[[DomainEvent, Session], Any]


class EventBus:
    """
    Routes domain events to subscribed handlers.

    Usage:
        bus = get_event_bus()
        bus.subscribe(EventType.MATERIAL_PRICE_CHANGED, handle_price_change)

        results = bus.publish(event, db)
    """

    def __init__(self):
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        """Register a handler. Subscribing the same handler twice is a no-op."""
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def handlers_for(self, event_type: EventType) -> list[Handler]:
        return list(self._handlers.get(event_type, ()))

    def clear(self) -> None:
        self._handlers.clear()

    def publish(self, event: DomainEvent, db: Session) -> list[Any]:
        """
        Run every handler for the event, in subscription order.

        Returns:
            One result per handler that completed.
        """
        results = []
        handlers = self.handlers_for(event.event_type)
        logger.debug("Publishing event", event=event.to_dict(), handlers=len(handlers))
        for handler in handlers:
            try:
                results.append(handler(event, db))
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type.value,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )
        return results


# =============================================================================
# Singleton instance
# =============================================================================

_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get or create event bus singleton."""
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus


def publish_event(event: DomainEvent, db: Session) -> list[Any]:
    """Convenience function for publishing on the singleton bus."""
    return get_event_bus().publish(event, db)
