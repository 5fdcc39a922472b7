"""
Dashboard endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from costing_api.routers.costing._base import current_user, get_db, tenant_of
from costing_api.services.domain import ReportService
from shared.utils.costing_schemas import ChangeSummaryOutput, DashboardStatsOutput


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsOutput)
def get_dashboard_stats(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> DashboardStatsOutput:
    return ReportService(db).dashboard_stats(tenant_of(user))


@router.get("/recent-activity", response_model=list[ChangeSummaryOutput])
def get_recent_activity(
    limit: int | None = Query(default=None, ge=1, le=100),
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[ChangeSummaryOutput]:
    """Latest audit entries as change summaries, newest first."""
    return ReportService(db).recent_activity(tenant_of(user), limit)
