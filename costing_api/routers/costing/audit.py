"""
Audit log endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from costing_api.routers.costing._base import current_user, get_db, tenant_of
from costing_api.services.change_summary import AuditQuery
from shared.config.constants import Limits
from shared.utils.costing_schemas import AuditLogOutput


router = APIRouter(tags=["audit"])


@router.get("/audit-log", response_model=list[AuditLogOutput])
def get_audit_log(
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    limit: int = Query(default=100, ge=1, le=Limits.AUDIT_PAGE_MAX),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[AuditLogOutput]:
    """
    Get audit log entries with optional filters, newest first.

    Filters:
    - entity_type: e.g. "material", "formulation"
    - entity_id: a specific entity
    - action: create, update, delete, archive, restore, recalculate
    """
    entries = AuditQuery(db).search(
        tenant_of(user),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action.lower() if action else None,
        limit=limit,
        offset=offset,
    )
    return [AuditLogOutput.model_validate(entry) for entry in entries]
