"""
Typed change-summary projection over the audit log.

Business decisions (the lifecycle history check) and reports read audit
entries through this module instead of parsing the `changes` JSON
themselves. Malformed payloads degrade to a summary holding only the
typed columns.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from costing_api.models import AuditLog
from costing_api.services.costing.calculator import HUNDRED, ZERO, to_decimal
from shared.config.constants import AuditAction, EntityType, Precision
from shared.config.logging import audit_logger as logger


@dataclass(frozen=True, slots=True)
class ChangeSummary:
    entry_id: int
    action: str
    entity_type: str
    entity_id: int
    timestamp: datetime
    description: str
    user_email: Optional[str] = None
    total_cost_before: Optional[Decimal] = None
    total_cost_after: Optional[Decimal] = None
    unit_cost_before: Optional[Decimal] = None
    unit_cost_after: Optional[Decimal] = None
    percent_change: Optional[Decimal] = None
    triggering_material_id: Optional[int] = None

    @property
    def is_cost_change(self) -> bool:
        return self.percent_change is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.entry_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "description": self.description,
            "user_email": self.user_email,
            "total_cost_before": _fmt(self.total_cost_before),
            "total_cost_after": _fmt(self.total_cost_after),
            "unit_cost_before": _fmt(self.unit_cost_before),
            "unit_cost_after": _fmt(self.unit_cost_after),
            "percent_change": _fmt(self.percent_change),
            "triggering_material_id": self.triggering_material_id,
        }


def _fmt(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _optional_decimal(source: dict, key: str) -> Optional[Decimal]:
    if key not in source or source[key] is None:
        return None
    return to_decimal(source[key])


def percent_change(before: Optional[Decimal], after: Optional[Decimal]) -> Optional[Decimal]:
    """(after - before) / before * 100 at 2 places; None when before is absent or zero."""
    if before is None or after is None or before <= ZERO:
        return None
    return Precision.percent((after - before) / before * HUNDRED)


def _decode(entry: AuditLog) -> dict:
    if not entry.changes:
        return {}
    try:
        payload = json.loads(entry.changes)
    except (TypeError, ValueError):
        logger.warning("Unreadable audit payload", audit_id=entry.id)
        return {}
    return payload if isinstance(payload, dict) else {}


def summarize(entry: AuditLog) -> ChangeSummary:
    payload = _decode(entry)
    before = payload.get("before") if isinstance(payload.get("before"), dict) else {}
    after = payload.get("after") if isinstance(payload.get("after"), dict) else {}

    total_before = _optional_decimal(before, "total_cost")
    total_after = _optional_decimal(after, "total_cost")
    unit_before = _optional_decimal(before, "unit_cost")
    unit_after = _optional_decimal(after, "unit_cost")

    # Materials change by unit cost; formulations by total cost
    has_totals = total_before is not None and total_after is not None
    if has_totals and entry.entity_type != EntityType.MATERIAL:
        pct = percent_change(total_before, total_after)
    else:
        pct = percent_change(unit_before, unit_after)

    trigger = payload.get("triggering_material_id")
    try:
        trigger = int(trigger) if trigger is not None else None
    except (TypeError, ValueError):
        trigger = None

    description = payload.get("description")
    return ChangeSummary(
        entry_id=entry.id,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        timestamp=entry.created_at,
        description=description if isinstance(description, str) else "",
        user_email=entry.user_email,
        total_cost_before=total_before,
        total_cost_after=total_after,
        unit_cost_before=unit_before,
        unit_cost_after=unit_after,
        percent_change=pct,
        triggering_material_id=trigger,
    )


class AuditQuery:
    """Tenant-scoped reads over the audit log, returned as change summaries."""

    def __init__(self, db: Session):
        self._db = db

    def non_create_count(self, tenant_id: int, entity_type: str, entity_id: int) -> int:
        return self._db.scalar(
            select(func.count())
            .select_from(AuditLog)
            .where(
                AuditLog.tenant_id == tenant_id,
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == entity_id,
                AuditLog.action != AuditAction.CREATE,
            )
        ) or 0

    def for_entity(self, tenant_id: int, entity_type: str, entity_id: int) -> list[ChangeSummary]:
        rows = self._db.scalars(
            select(AuditLog)
            .where(
                AuditLog.tenant_id == tenant_id,
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == entity_id,
            )
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        ).all()
        return [summarize(row) for row in rows]

    def recent_activity(self, tenant_id: int, limit: int = 10) -> list[ChangeSummary]:
        rows = self._db.scalars(
            select(AuditLog)
            .where(AuditLog.tenant_id == tenant_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        ).all()
        return [summarize(row) for row in rows]

    def search(
        self,
        tenant_id: int,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        action: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[AuditLog]:
        query = select(AuditLog).where(AuditLog.tenant_id == tenant_id)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == entity_id)
        if action:
            query = query.where(AuditLog.action == action)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        return self._db.scalars(query.offset(offset).limit(limit)).all()

    def cost_changes(
        self,
        tenant_id: int,
        entity_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[ChangeSummary]:
        """Update entries (recalculations included) whose cost moved, oldest first."""
        query = select(AuditLog).where(
            AuditLog.tenant_id == tenant_id,
            AuditLog.action.in_(sorted(AuditAction.BEFORE_AFTER)),
        )
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if since is not None:
            query = query.where(AuditLog.created_at >= since)
        rows = self._db.scalars(query.order_by(AuditLog.created_at, AuditLog.id)).all()

        summaries = (summarize(row) for row in rows)
        return [s for s in summaries if s.is_cost_change]
