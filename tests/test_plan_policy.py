"""
Tests for subscription plan limits.
"""

import pytest

from costing_api.models import Tenant
from costing_api.services.audit import Actor
from costing_api.services.domain import FormulationService, MaterialService
from costing_api.services.plan_policy import PlanGate, PlanPolicy
from shared.config.constants import PLAN_LIMITS, PlanResource, SubscriptionPlan
from shared.utils.exceptions import PlanLimitError, ValidationError


class TestPlanPolicy:
    def test_unknown_plan_falls_back_to_free(self):
        assert PlanPolicy("platinum").plan == SubscriptionPlan.FREE

    def test_limits_per_plan(self):
        policy = PlanPolicy(SubscriptionPlan.STARTER)
        assert policy.limit_for(PlanResource.MATERIALS) == 20
        assert policy.can_create(PlanResource.MATERIALS, 19)
        assert not policy.can_create(PlanResource.MATERIALS, 20)

    def test_unknown_resource(self):
        with pytest.raises(ValidationError):
            PlanPolicy(SubscriptionPlan.FREE).limit_for("robots")

    def test_not_enforced_allows_everything(self):
        policy = PlanPolicy(SubscriptionPlan.FREE, enforced=False)
        assert policy.can_create(PlanResource.FORMULATIONS, 10_000)
        assert policy.can_edit(PlanResource.FORMULATIONS, 10_000)
        assert policy.read_only_ids(PlanResource.FORMULATIONS, [1, 2, 3]) == []

    def test_items_beyond_limit_are_read_only(self):
        policy = PlanPolicy(SubscriptionPlan.FREE)
        assert policy.read_only_ids(PlanResource.VENDORS, [7, 8, 9, 10]) == [9, 10]


class TestPlanGate:
    def _materials(self, db_session, tenant, count):
        actor = Actor.system()
        service = MaterialService(db_session)
        return [
            service.create_material(
                {"name": f"M{i}", "total_cost": "1", "quantity": "1", "unit": "kg"},
                tenant.id,
                actor,
            )
            for i in range(count)
        ]

    def test_create_blocked_at_limit(self, db_session, free_tenant):
        limit = PLAN_LIMITS[SubscriptionPlan.FREE][PlanResource.MATERIALS]
        self._materials(db_session, free_tenant, limit)

        gate = PlanGate.for_tenant(db_session, free_tenant.id)

        with pytest.raises(PlanLimitError) as exc_info:
            gate.ensure_can_create(PlanResource.MATERIALS)
        assert exc_info.value.status_code == 403

    def test_archived_formulations_count(self, db_session, free_tenant):
        actor = Actor.system()
        service = FormulationService(db_session)
        created = service.create_formulation(
            {"name": "Only", "batch_size": "1", "batch_unit": "batch"}, [], free_tenant.id, actor
        )
        service.archive_formulation(created.id, free_tenant.id, actor)

        with pytest.raises(PlanLimitError):
            PlanGate.for_tenant(db_session, free_tenant.id).ensure_can_create(
                PlanResource.FORMULATIONS
            )

    def test_downgrade_makes_newest_read_only(self, db_session, seed_tenant):
        materials = self._materials(db_session, seed_tenant, 7)
        seed_tenant.plan = SubscriptionPlan.FREE
        db_session.commit()

        gate = PlanGate.for_tenant(db_session, seed_tenant.id)

        gate.ensure_can_edit(PlanResource.MATERIALS, materials[0].id)
        gate.ensure_can_edit(PlanResource.MATERIALS, materials[4].id)
        with pytest.raises(PlanLimitError):
            gate.ensure_can_edit(PlanResource.MATERIALS, materials[5].id)

    def test_unknown_id_is_left_to_the_service(self, db_session, free_tenant):
        PlanGate.for_tenant(db_session, free_tenant.id).ensure_can_edit(
            PlanResource.MATERIALS, 999
        )

    def test_summary(self, db_session, free_tenant):
        self._materials(db_session, free_tenant, 6)

        summary = PlanGate.for_tenant(db_session, free_tenant.id).summary()

        assert summary["plan"] == SubscriptionPlan.FREE
        materials = next(r for r in summary["resources"] if r["resource"] == PlanResource.MATERIALS)
        assert materials["used"] == 6
        assert materials["limit"] == 5
        assert len(materials["read_only_ids"]) == 1

    def test_missing_tenant_is_free(self, db_session):
        gate = PlanGate.for_tenant(db_session, 12345)
        assert gate.policy.plan == SubscriptionPlan.FREE
        assert db_session.get(Tenant, 12345) is None
