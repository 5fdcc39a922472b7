"""
Subscription plan policy.

A capability object answering "may this tenant create one more X" and
"may this tenant edit the X at position N". Items are ranked by creation
order; once a tenant is over its plan's limit (after a downgrade), the
items beyond the limit become read-only instead of disappearing.

Counts include archived formulations.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy.orm import Session

from costing_api.models import Formulation, Material, MaterialCategory, Tenant, Vendor
from costing_api.services.crud.repository import TenantRepository
from shared.config.constants import PLAN_LIMITS, PlanResource, SubscriptionPlan
from shared.config.settings import settings
from shared.utils.exceptions import PlanLimitError, ValidationError

RESOURCE_MODELS = {
    PlanResource.MATERIALS: Material,
    PlanResource.FORMULATIONS: Formulation,
    PlanResource.VENDORS: Vendor,
    PlanResource.CATEGORIES: MaterialCategory,
}


class PlanPolicy:
    """Pure limit arithmetic for one plan. Unknown plans fall back to free."""

    def __init__(self, plan: str | None, *, enforced: bool = True):
        self.plan = plan if plan in PLAN_LIMITS else SubscriptionPlan.FREE
        self.enforced = enforced

    def limit_for(self, resource: str) -> int:
        limits = PLAN_LIMITS[self.plan]
        if resource not in limits:
            raise ValidationError(f"Unknown plan resource: {resource}", resource=resource)
        return limits[resource]

    def can_create(self, resource: str, current_count: int) -> bool:
        if not self.enforced:
            return True
        return current_count < self.limit_for(resource)

    def can_edit(self, resource: str, position: int) -> bool:
        """position is the 0-based index of the item in creation order."""
        if not self.enforced:
            return True
        return position < self.limit_for(resource)

    def read_only_ids(self, resource: str, ordered_ids: Sequence[int]) -> list[int]:
        if not self.enforced:
            return []
        return list(ordered_ids[self.limit_for(resource):])


class PlanGate:
    """
    Applies a tenant's PlanPolicy against live counts.

    Usage:
        gate = PlanGate.for_tenant(db, tenant_id)
        gate.ensure_can_create(PlanResource.MATERIALS)
        gate.ensure_can_edit(PlanResource.MATERIALS, material_id)
    """

    def __init__(self, db: Session, tenant_id: int, policy: PlanPolicy):
        self._db = db
        self.tenant_id = tenant_id
        self.policy = policy

    @classmethod
    def for_tenant(cls, db: Session, tenant_id: int) -> "PlanGate":
        tenant = db.get(Tenant, tenant_id)
        plan = tenant.plan if tenant is not None else SubscriptionPlan.FREE
        return cls(db, tenant_id, PlanPolicy(plan, enforced=settings.enforce_plan_limits))

    def _repo(self, resource: str) -> TenantRepository:
        return TenantRepository(RESOURCE_MODELS[resource], self._db)

    def ordered_ids(self, resource: str) -> list[int]:
        return self._repo(resource).ordered_ids(self.tenant_id, include_inactive=True)

    def usage(self, resource: str) -> int:
        return self._repo(resource).count(self.tenant_id, include_inactive=True)

    def ensure_can_create(self, resource: str) -> None:
        limit = self.policy.limit_for(resource)
        if not self.policy.can_create(resource, self.usage(resource)):
            raise PlanLimitError(resource, self.policy.plan, limit, tenant_id=self.tenant_id)

    def ensure_can_edit(self, resource: str, entity_id: int) -> None:
        ids = self.ordered_ids(resource)
        if entity_id not in ids:
            # Unknown ids are reported as 404 by the service
            return
        if not self.policy.can_edit(resource, ids.index(entity_id)):
            raise PlanLimitError(
                resource,
                self.policy.plan,
                self.policy.limit_for(resource),
                read_only=True,
                tenant_id=self.tenant_id,
                entity_id=entity_id,
            )

    def summary(self) -> dict:
        resources = []
        for resource in PlanResource.ALL:
            ids = self.ordered_ids(resource)
            resources.append(
                {
                    "resource": resource,
                    "used": len(ids),
                    "limit": self.policy.limit_for(resource),
                    "read_only_ids": self.policy.read_only_ids(resource, ids),
                }
            )
        return {"plan": self.policy.plan, "resources": resources}
