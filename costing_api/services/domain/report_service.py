"""
Report Service - dashboard statistics and canned reports.

Cost history is read from the audit log exclusively through the
ChangeSummary projection.
"""

from __future__ import annotations

import statistics
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from costing_api.models import Formulation, FormulationIngredient, Material, MaterialCategory, Vendor
from costing_api.services.change_summary import AuditQuery, ChangeSummary
from shared.config.constants import EntityType, Precision
from shared.config.settings import settings
from shared.utils.costing_schemas import (
    ChangeSummaryOutput,
    CostChangeReportOutput,
    DashboardStatsOutput,
    MaterialUsageOutput,
    MaterialUsageReportOutput,
    PriceVolatilityItem,
)

BIGGEST_CHANGES_LIMIT = 10
ZERO = Decimal("0")


def to_output(summary: ChangeSummary) -> ChangeSummaryOutput:
    return ChangeSummaryOutput.model_validate(summary.to_dict())


class ReportService:
    def __init__(self, db: Session):
        self._db = db
        self._audit = AuditQuery(db)

    def _count(self, model, tenant_id: int, *conditions) -> int:
        return self._db.scalar(
            select(func.count()).select_from(model).where(model.tenant_id == tenant_id, *conditions)
        ) or 0

    def dashboard_stats(self, tenant_id: int) -> DashboardStatsOutput:
        inventory = self._db.scalar(
            select(func.coalesce(func.sum(Material.total_cost), 0)).where(
                Material.tenant_id == tenant_id
            )
        )
        margins = self._db.scalars(
            select(Formulation.profit_margin).where(
                Formulation.tenant_id == tenant_id,
                Formulation.is_active.is_(True),
                Formulation.profit_margin > 0,
            )
        ).all()
        average_margin = (
            sum((Decimal(m) for m in margins), ZERO) / len(margins) if margins else ZERO
        )

        return DashboardStatsOutput(
            total_materials=self._count(Material, tenant_id),
            active_formulations=self._count(
                Formulation, tenant_id, Formulation.is_active.is_(True)
            ),
            archived_formulations=self._count(
                Formulation, tenant_id, Formulation.is_active.is_(False)
            ),
            total_vendors=self._count(Vendor, tenant_id),
            total_categories=self._count(MaterialCategory, tenant_id),
            total_inventory_value=Precision.money(Decimal(str(inventory or 0))),
            average_profit_margin=Precision.money(average_margin),
        )

    def recent_activity(self, tenant_id: int, limit: Optional[int] = None) -> list[ChangeSummaryOutput]:
        limit = limit or settings.recent_activity_limit
        return [to_output(s) for s in self._audit.recent_activity(tenant_id, limit)]

    def cost_change_report(
        self, tenant_id: int, since: Optional[datetime] = None
    ) -> CostChangeReportOutput:
        """Material and formulation cost movements, newest first, plus the biggest ones."""
        materials = [
            s
            for s in self._audit.cost_changes(tenant_id, EntityType.MATERIAL, since)
            if s.percent_change != ZERO
        ]
        formulations = [
            s
            for s in self._audit.cost_changes(tenant_id, EntityType.FORMULATION, since)
            if s.percent_change != ZERO
        ]

        biggest = sorted(
            materials + formulations,
            key=lambda s: abs(s.percent_change),
            reverse=True,
        )[:BIGGEST_CHANGES_LIMIT]

        return CostChangeReportOutput(
            materials=[to_output(s) for s in reversed(materials)],
            formulations=[to_output(s) for s in reversed(formulations)],
            biggest_changes=[to_output(s) for s in biggest],
            volatility=self._volatility(materials),
        )

    def _volatility(self, changes: list[ChangeSummary]) -> list[PriceVolatilityItem]:
        by_material: dict[int, list[Decimal]] = defaultdict(list)
        for change in changes:
            by_material[change.entity_id].append(change.percent_change)

        items = [
            PriceVolatilityItem(
                material_id=material_id,
                total_changes=len(values),
                average_change=Precision.percent(statistics.mean(values)),
                volatility_index=Precision.percent(statistics.pstdev(values)),
                max_change=max(values),
                min_change=min(values),
            )
            for material_id, values in by_material.items()
        ]
        return sorted(items, key=lambda item: item.volatility_index, reverse=True)

    def material_usage_report(self, tenant_id: int) -> MaterialUsageReportOutput:
        """How many formulations use each material and its total contribution."""
        materials = self._db.scalars(
            select(Material).where(Material.tenant_id == tenant_id).order_by(Material.name)
        ).all()
        rows = self._db.execute(
            select(
                FormulationIngredient.material_id,
                func.count(func.distinct(FormulationIngredient.formulation_id)),
                func.coalesce(func.sum(FormulationIngredient.cost_contribution), 0),
            )
            .join(Formulation, FormulationIngredient.formulation_id == Formulation.id)
            .where(
                Formulation.tenant_id == tenant_id,
                FormulationIngredient.material_id.is_not(None),
            )
            .group_by(FormulationIngredient.material_id)
        ).all()
        usage = {material_id: (count, total) for material_id, count, total in rows}

        report = MaterialUsageReportOutput()
        for material in materials:
            count, total = usage.get(material.id, (0, 0))
            if not count:
                report.unused_material_ids.append(material.id)
            report.materials.append(
                MaterialUsageOutput(
                    material_id=material.id,
                    material_name=material.name,
                    formulation_count=count,
                    total_cost_contribution=Precision.unit_cost(Decimal(str(total))),
                )
            )
        report.materials.sort(key=lambda m: m.formulation_count, reverse=True)
        return report
