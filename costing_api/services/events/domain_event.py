"""
Domain Event definition.
Immutable value objects for events.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Event type enumeration for type safety."""

    MATERIAL_PRICE_CHANGED = "MATERIAL_PRICE_CHANGED"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """
    Immutable domain event.

    Represents something that happened in the domain and is dispatched
    on the in-process EventBus.

    Attributes:
        event_type: Type of event (from EventType enum)
        entity_type: Type of entity involved (e.g., "material")
        entity_id: ID of the entity
        tenant_id: Tenant ID for isolation
        actor_user_id: User who triggered the event
        actor_email: Email of user (optional)
        payload: Additional event data
        timestamp: When the event occurred
    """

    event_type: EventType
    entity_type: str
    entity_id: int
    tenant_id: int
    actor_user_id: int | None = None
    actor_email: str | None = None
    payload: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.event_type.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "tenant_id": self.tenant_id,
            "actor_user_id": self.actor_user_id,
            "actor_email": self.actor_email,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }

    # ==========================================================================
    # Factory methods
    # ==========================================================================

    @classmethod
    def material_price_changed(
        cls,
        material_id: int,
        tenant_id: int,
        old_unit_cost: Decimal,
        new_unit_cost: Decimal,
        actor_user_id: int | None = None,
        actor_email: str | None = None,
    ) -> "DomainEvent":
        """Create MATERIAL_PRICE_CHANGED event. Costs travel as strings."""
        return cls(
            event_type=EventType.MATERIAL_PRICE_CHANGED,
            entity_type="material",
            entity_id=material_id,
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            actor_email=actor_email,
            payload={
                "old_unit_cost": str(old_unit_cost),
                "new_unit_cost": str(new_unit_cost),
            },
        )


@dataclass(frozen=True, slots=True)
class MaterialPriceChanged:
    """Typed view of a MATERIAL_PRICE_CHANGED event for handlers."""

    material_id: int
    tenant_id: int
    old_unit_cost: Decimal
    new_unit_cost: Decimal
    actor_user_id: int | None = None
    actor_email: str | None = None

    @classmethod
    def from_event(cls, event: DomainEvent) -> "MaterialPriceChanged":
        if event.event_type != EventType.MATERIAL_PRICE_CHANGED or event.entity_type != "material":
            raise ValueError(
                f"Not a material price change: {event.event_type.value} on {event.entity_type}"
            )
        payload = event.payload or {}
        return cls(
            material_id=event.entity_id,
            tenant_id=event.tenant_id,
            old_unit_cost=Decimal(payload.get("old_unit_cost", "0")),
            new_unit_cost=Decimal(payload.get("new_unit_cost", "0")),
            actor_user_id=event.actor_user_id,
            actor_email=event.actor_email,
        )
