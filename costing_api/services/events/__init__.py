"""
Event Services - in-process domain events.

Provides:
- Typed DomainEvent and MaterialPriceChanged value objects
- EventBus singleton with synchronous dispatch
"""

from .domain_event import (
    DomainEvent,
    EventType,
    MaterialPriceChanged,
)

from .bus import (
    EventBus,
    get_event_bus,
    publish_event,
)

__all__ = [
    "DomainEvent",
    "EventType",
    "MaterialPriceChanged",
    "EventBus",
    "get_event_bus",
    "publish_event",
]
