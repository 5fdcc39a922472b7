"""
Report endpoints: cost movements, material usage and plan usage.
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from costing_api.routers.costing._base import current_user, get_db, plan_gate, tenant_of
from costing_api.services.domain import ReportService
from costing_api.services.plan_policy import PlanGate
from shared.utils.costing_schemas import (
    CostChangeReportOutput,
    MaterialUsageReportOutput,
    PlanUsageOutput,
)


router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/cost-changes", response_model=CostChangeReportOutput)
def get_cost_changes(
    since: datetime | None = None,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> CostChangeReportOutput:
    """
    Material and formulation cost changes recorded in the audit log.

    `since` limits the window (ISO 8601). biggest_changes holds the ten
    largest moves by absolute percent change.
    """
    return ReportService(db).cost_change_report(tenant_of(user), since)


@router.get("/material-usage", response_model=MaterialUsageReportOutput)
def get_material_usage(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> MaterialUsageReportOutput:
    return ReportService(db).material_usage_report(tenant_of(user))


@router.get("/plan-usage", response_model=PlanUsageOutput)
def get_plan_usage(gate: PlanGate = Depends(plan_gate)) -> PlanUsageOutput:
    """Usage against the tenant's plan limits, with read-only ids after a downgrade."""
    return PlanUsageOutput(**gate.summary())
