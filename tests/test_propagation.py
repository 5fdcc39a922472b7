"""
Tests for the Propagation Engine: material price changes fanning out to formulations.
"""

import json
from decimal import Decimal

from costing_api.models import AuditLog, Formulation
from costing_api.services.domain import FormulationService, MaterialService
from costing_api.services.events import DomainEvent
from costing_api.services.propagation import PropagationEngine
from shared.config.constants import AuditAction, EntityType
from tests.conftest import line


def _recalc_entries(db_session, formulation_id):
    entries = (
        db_session.query(AuditLog)
        .filter(
            AuditLog.entity_type == EntityType.FORMULATION,
            AuditLog.entity_id == formulation_id,
            AuditLog.action == AuditAction.UPDATE,
        )
        .order_by(AuditLog.id)
        .all()
    )
    return [e for e in entries if "triggering_material_id" in json.loads(e.changes)]


class TestPriceChangePropagation:
    def test_material_price_change_updates_formulation(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        """Unit cost 10 -> 20 doubles a 2-unit single-batch formulation from 20 to 40."""
        material = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(
            ingredients=[line(material.id, "2")], batch_size="1", markup_percentage="30"
        )
        assert formulation.total_cost == Decimal("20.00")

        MaterialService(db_session).update_material(
            material.id, {"total_cost": Decimal("200.00")}, seed_tenant.id, owner_actor
        )

        stored = db_session.get(Formulation, formulation.id)
        assert stored.total_cost == Decimal("40.00")
        assert stored.unit_cost == Decimal("40.0000")
        assert stored.profit_margin == Decimal("12.00")
        assert stored.ingredients[0].cost_contribution == Decimal("40.0000")

    def test_recalculate_audit_payload(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        material = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(ingredients=[line(material.id, "2")])

        MaterialService(db_session).update_material(
            material.id, {"total_cost": Decimal("150.00")}, seed_tenant.id, owner_actor
        )

        entries = _recalc_entries(db_session, formulation.id)
        assert len(entries) == 1
        payload = json.loads(entries[0].changes)
        assert payload["triggering_material_id"] == material.id
        assert Decimal(payload["before"]["total_cost"]) == Decimal("20.00")
        assert Decimal(payload["after"]["total_cost"]) == Decimal("30.00")
        assert payload["ingredients"][0]["material_id"] == material.id
        assert entries[0].user_email == owner_actor.email
        assert entries[0].action == AuditAction.UPDATE
        assert payload["description"].startswith('Recalculated formulation "Bread"')

    def test_unrelated_formulations_are_skipped(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        flour = make_material(name="Flour")
        sugar = make_material(name="Sugar")
        uses_flour = make_formulation(name="Bread", ingredients=[line(flour.id, "1")])
        uses_sugar = make_formulation(name="Candy", ingredients=[line(sugar.id, "1")])

        _, report = MaterialService(db_session).update_material(
            flour.id, {"total_cost": Decimal("300.00")}, seed_tenant.id, owner_actor
        )

        assert report.recalculated == [uses_flour.id]
        assert report.skipped == [uses_sugar.id]
        assert report.scanned == 2
        assert _recalc_entries(db_session, uses_sugar.id) == []

    def test_other_tenants_untouched(
        self, db_session, seed_tenant, other_tenant, owner_actor, make_material, make_formulation
    ):
        flour = make_material()
        make_formulation(ingredients=[line(flour.id, "1")])

        other_material = MaterialService(db_session).create_material(
            {"name": "Flour", "total_cost": "100.00", "quantity": "10", "unit": "kg"},
            other_tenant.id,
            owner_actor,
        )
        other = FormulationService(db_session).create_formulation(
            {"name": "Bread", "batch_size": "1", "batch_unit": "batch"},
            [line(other_material.id, "1")],
            other_tenant.id,
            owner_actor,
        )

        _, report = MaterialService(db_session).update_material(
            flour.id, {"total_cost": Decimal("500.00")}, seed_tenant.id, owner_actor
        )

        assert other.id not in report.recalculated + report.skipped
        assert db_session.get(Formulation, other.id).total_cost == Decimal("10.00")

    def test_archived_formulations_are_recalculated(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        flour = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(ingredients=[line(flour.id, "1")])
        FormulationService(db_session).archive_formulation(formulation.id, seed_tenant.id, owner_actor)

        _, report = MaterialService(db_session).update_material(
            flour.id, {"total_cost": Decimal("200.00")}, seed_tenant.id, owner_actor
        )

        assert report.recalculated == [formulation.id]
        assert db_session.get(Formulation, formulation.id).total_cost == Decimal("20.00")

    def test_sub_formulation_lines_are_not_followed(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        flour = make_material(total_cost="100.00", quantity="10")
        dough = make_formulation(name="Dough", ingredients=[line(flour.id, "1")])
        pizza = make_formulation(
            name="Pizza",
            ingredients=[{"sub_formulation_id": dough.id, "quantity": "1", "unit": "kg"}],
        )

        _, report = MaterialService(db_session).update_material(
            flour.id, {"total_cost": Decimal("200.00")}, seed_tenant.id, owner_actor
        )

        assert report.recalculated == [dough.id]
        assert pizza.id in report.skipped
        assert db_session.get(Formulation, pizza.id).total_cost == Decimal("10.00")


class TestFailureIsolation:
    def test_one_failure_does_not_stop_the_rest(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation, monkeypatch
    ):
        flour = make_material(total_cost="100.00", quantity="10")
        broken = make_formulation(name="Broken", ingredients=[line(flour.id, "1")])
        healthy = make_formulation(name="Healthy", ingredients=[line(flour.id, "1")])

        original = PropagationEngine.recalculate_formulation

        def flaky(self, formulation, **kwargs):
            if formulation.id == broken.id:
                raise ValueError("boom")
            return original(self, formulation, **kwargs)

        monkeypatch.setattr(PropagationEngine, "recalculate_formulation", flaky)

        _, report = MaterialService(db_session).update_material(
            flour.id, {"total_cost": Decimal("200.00")}, seed_tenant.id, owner_actor
        )

        assert report.failed == [broken.id]
        assert report.recalculated == [healthy.id]
        assert not report.ok
        assert db_session.get(Formulation, healthy.id).total_cost == Decimal("20.00")
        assert db_session.get(Formulation, broken.id).total_cost == Decimal("10.00")

    def test_summary_counts(self):
        from costing_api.services.propagation import PropagationReport

        report = PropagationReport(
            tenant_id=1, triggering_material_id=7, scanned=3, recalculated=[1], skipped=[2, 3]
        )
        assert report.to_summary() == {
            "triggering_material_id": 7,
            "scanned": 3,
            "recalculated": [1],
            "skipped": 2,
            "failed": [],
            "error": None,
        }


class TestRecalculation:
    def test_recalculation_is_idempotent(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        flour = make_material(total_cost="100.00", quantity="3")
        formulation = make_formulation(ingredients=[line(flour.id, "1.234")], batch_size="7")
        engine = PropagationEngine(db_session)

        first = engine.recalculate_all(seed_tenant.id, actor=owner_actor)
        second = engine.recalculate_all(seed_tenant.id, actor=owner_actor)

        assert first.results[0].total_cost_after == second.results[0].total_cost_after
        assert first.results[0].unit_cost_after == second.results[0].unit_cost_after
        assert not second.results[0].changed
        assert db_session.get(Formulation, formulation.id).total_cost == formulation.total_cost

    def test_recalculate_all_repairs_stale_rows(
        self, db_session, seed_tenant, make_material, make_formulation
    ):
        flour = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(ingredients=[line(flour.id, "2")])
        stored = db_session.get(Formulation, formulation.id)
        stored.total_cost = Decimal("999.00")
        db_session.commit()

        report = PropagationEngine(db_session).recalculate_all(seed_tenant.id)

        assert report.recalculated == [formulation.id]
        assert db_session.get(Formulation, formulation.id).total_cost == Decimal("20.00")
        entry = _recalc_entries(db_session, formulation.id)[-1]
        assert entry.user_email is None

    def test_handler_accepts_raw_event(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        flour = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(ingredients=[line(flour.id, "1")])

        event = DomainEvent.material_price_changed(
            material_id=flour.id,
            tenant_id=seed_tenant.id,
            old_unit_cost=Decimal("10.0000"),
            new_unit_cost=Decimal("10.0000"),
            actor_user_id=owner_actor.user_id,
            actor_email=owner_actor.email,
        )
        report = PropagationEngine(db_session).on_material_price_changed(event)

        assert report.recalculated == [formulation.id]
        assert report.results[0].changed is False
