"""
Propagation Engine.

Keeps every formulation's derived costs consistent with current material
prices. When a material's unit cost changes, every formulation in the
tenant that references it directly (not through a sub-formulation) is
fully recomputed: all of its lines are re-resolved against current
prices, not only the line for the changed material, so any other stale
line is corrected on the way.

Each formulation commits in its own transaction and failures are
isolated per formulation. Concurrent material edits are not coordinated;
the last writer wins at the formulation row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from costing_api.models import Formulation
from costing_api.services.audit import (
    Actor,
    describe_formulation,
    record_audit,
    serialize_model,
    snapshot_ingredients,
)
from costing_api.services.costing import FormulationCostResolver
from costing_api.services.crud.repository import TenantRepository
from costing_api.services.events import (
    DomainEvent,
    EventType,
    MaterialPriceChanged,
    get_event_bus,
)
from shared.config.constants import AuditAction, EntityType
from shared.config.logging import propagation_logger as logger
from shared.infrastructure.db import safe_commit


@dataclass(frozen=True, slots=True)
class RecalculationResult:
    formulation_id: int
    total_cost_before: Decimal
    total_cost_after: Decimal
    unit_cost_before: Decimal
    unit_cost_after: Decimal
    profit_margin_after: Decimal
    audit_id: Optional[int] = None

    @property
    def changed(self) -> bool:
        return (
            self.total_cost_before != self.total_cost_after
            or self.unit_cost_before != self.unit_cost_after
        )


@dataclass
class PropagationReport:
    """Outcome of one fan-out run."""

    tenant_id: int
    triggering_material_id: Optional[int]
    scanned: int = 0
    recalculated: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    results: list[RecalculationResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failed and self.error is None

    def to_summary(self) -> dict:
        return {
            "triggering_material_id": self.triggering_material_id,
            "scanned": self.scanned,
            "recalculated": list(self.recalculated),
            "skipped": len(self.skipped),
            "failed": list(self.failed),
            "error": self.error,
        }


def _references(formulation: Formulation, material_id: int) -> bool:
    return any(ing.material_id == material_id for ing in formulation.ingredients)


class PropagationEngine:
    """
    Recomputes formulations after material price changes.

    Usage:
        engine = PropagationEngine(db)
        report = engine.on_material_price_changed(event)
    """

    def __init__(self, db: Session):
        self._db = db
        self._formulations = TenantRepository(Formulation, db)
        self._resolver = FormulationCostResolver(db)

    def _load_formulations(self, tenant_id: int):
        # Archived formulations are included; restore zeroes them anyway
        return self._formulations.find_all(
            tenant_id,
            include_inactive=True,
            options=[selectinload(Formulation.ingredients)],
        )

    def recalculate_formulation(
        self,
        formulation: Formulation,
        *,
        triggering_material_id: Optional[int],
        actor: Actor,
    ) -> RecalculationResult:
        """
        Recompute one formulation, commit it, then record its audit entry.

        Raises:
            SQLAlchemyError: If the commit failed (already rolled back).
        """
        before = serialize_model(formulation)
        total_before = formulation.total_cost
        unit_before = formulation.unit_cost

        self._resolver.recompute(formulation)
        safe_commit(self._db)

        entry = record_audit(
            self._db,
            tenant_id=formulation.tenant_id,
            actor=actor,
            entity_type=EntityType.FORMULATION,
            entity_id=formulation.id,
            action=AuditAction.UPDATE,
            description=describe_formulation(
                AuditAction.UPDATE, formulation, before, recalculated=True
            ),
            before=before,
            after=serialize_model(formulation),
            extra={
                "triggering_material_id": triggering_material_id,
                "ingredients": snapshot_ingredients(formulation),
            },
        )

        return RecalculationResult(
            formulation_id=formulation.id,
            total_cost_before=total_before,
            total_cost_after=formulation.total_cost,
            unit_cost_before=unit_before,
            unit_cost_after=formulation.unit_cost,
            profit_margin_after=formulation.profit_margin,
            audit_id=entry.id if entry is not None else None,
        )

    def _run(
        self,
        formulations,
        report: PropagationReport,
        actor: Actor,
        material_id: Optional[int],
    ) -> PropagationReport:
        for formulation in formulations:
            report.scanned += 1
            if material_id is not None and not _references(formulation, material_id):
                report.skipped.append(formulation.id)
                continue

            formulation_id = formulation.id
            try:
                result = self.recalculate_formulation(
                    formulation, triggering_material_id=material_id, actor=actor
                )
            except (SQLAlchemyError, ArithmeticError, ValueError, TypeError) as e:
                self._db.rollback()
                report.failed.append(formulation_id)
                logger.error(
                    "Formulation recalculation failed; continuing",
                    tenant_id=report.tenant_id,
                    formulation_id=formulation_id,
                    triggering_material_id=material_id,
                    error=str(e),
                    exc_info=True,
                )
                continue

            report.recalculated.append(formulation_id)
            report.results.append(result)
        return report

    def on_material_price_changed(
        self, event: Union[DomainEvent, MaterialPriceChanged]
    ) -> PropagationReport:
        """Recompute every formulation of the tenant that uses the changed material."""
        if isinstance(event, MaterialPriceChanged):
            change = event
        else:
            change = MaterialPriceChanged.from_event(event)
        actor = Actor(change.actor_user_id, change.actor_email)
        report = PropagationReport(
            tenant_id=change.tenant_id, triggering_material_id=change.material_id
        )

        logger.info(
            "Propagation started",
            tenant_id=change.tenant_id,
            material_id=change.material_id,
            old_unit_cost=str(change.old_unit_cost),
            new_unit_cost=str(change.new_unit_cost),
        )
        self._run(
            self._load_formulations(change.tenant_id), report, actor, change.material_id
        )
        self._log_finished(report)
        return report

    def recalculate_all(self, tenant_id: int, actor: Optional[Actor] = None) -> PropagationReport:
        """Recompute every formulation of a tenant (backfill and repair)."""
        report = PropagationReport(tenant_id=tenant_id, triggering_material_id=None)
        logger.info("Full recalculation started", tenant_id=tenant_id)
        self._run(
            self._load_formulations(tenant_id), report, actor or Actor.system(), None
        )
        self._log_finished(report)
        return report

    def _log_finished(self, report: PropagationReport) -> None:
        log = logger.warning if report.failed else logger.info
        log(
            "Propagation finished",
            tenant_id=report.tenant_id,
            material_id=report.triggering_material_id,
            scanned=report.scanned,
            recalculated=len(report.recalculated),
            skipped=len(report.skipped),
            failed=len(report.failed),
        )


# =============================================================================
# Event wiring
# =============================================================================


def handle_material_price_changed(event: DomainEvent, db: Session) -> PropagationReport:
    """EventBus handler for MATERIAL_PRICE_CHANGED."""
    return PropagationEngine(db).on_material_price_changed(event)


def register_propagation_handlers() -> None:
    """Subscribe the propagation handler on the application event bus (idempotent)."""
    get_event_bus().subscribe(EventType.MATERIAL_PRICE_CHANGED, handle_material_price_changed)
