"""
Tests for MaterialService, VendorService and MaterialCategoryService.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from costing_api.models import AuditLog, Formulation, Material
from costing_api.services.domain import MaterialCategoryService, MaterialService, VendorService
from costing_api.services.propagation import PropagationEngine
from shared.config.constants import AuditAction, EntityType
from shared.utils.exceptions import ConflictError, MaterialInUseError, NotFoundError, ValidationError
from tests.conftest import line


def _audit_entries(db_session, entity_type, entity_id):
    return (
        db_session.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.id)
        .all()
    )


class TestMaterialCreate:
    def test_derives_unit_cost(self, make_material):
        material = make_material(total_cost="25.00", quantity="10")
        assert material.unit_cost == Decimal("2.5000")

    def test_zero_quantity_gives_zero_unit_cost(self, make_material):
        material = make_material(total_cost="25.00", quantity="0")
        assert material.unit_cost == Decimal("0")

    def test_records_create_audit(self, db_session, make_material, seed_owner_user):
        material = make_material(name="Sugar")
        entries = _audit_entries(db_session, EntityType.MATERIAL, material.id)
        assert [e.action for e in entries] == [AuditAction.CREATE]
        assert entries[0].user_email == seed_owner_user.email
        assert '"Sugar"' in entries[0].changes

    def test_rejects_vendor_of_other_tenant(
        self, db_session, seed_tenant, other_tenant, owner_actor
    ):
        foreign = VendorService(db_session).create({"name": "Elsewhere"}, other_tenant.id, owner_actor)
        with pytest.raises(ValidationError):
            MaterialService(db_session).create_material(
                {
                    "name": "Salt",
                    "total_cost": "5",
                    "quantity": "1",
                    "unit": "kg",
                    "vendor_id": foreign.id,
                },
                seed_tenant.id,
                owner_actor,
            )
        assert db_session.query(Material).count() == 0


class TestMaterialUpdate:
    def test_unit_cost_change_returns_propagation_report(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        material = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(ingredients=[line(material.id, "2")])

        output, report = MaterialService(db_session).update_material(
            material.id, {"total_cost": Decimal("200.00")}, seed_tenant.id, owner_actor
        )

        assert output.unit_cost == Decimal("20.0000")
        assert report is not None
        assert report.recalculated == [formulation.id]

    def test_name_only_change_does_not_propagate(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        material = make_material()
        make_formulation(ingredients=[line(material.id, "1")])

        output, report = MaterialService(db_session).update_material(
            material.id, {"name": "Bread flour"}, seed_tenant.id, owner_actor
        )

        assert output.name == "Bread flour"
        assert report is None

    def test_failed_fan_out_marks_dependents_stale(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation, monkeypatch
    ):
        material = make_material(total_cost="100.00", quantity="10")
        formulation = make_formulation(ingredients=[line(material.id, "2")])

        def unavailable(self, tenant_id):
            raise OperationalError("SELECT formulations", {}, Exception("connection lost"))

        monkeypatch.setattr(PropagationEngine, "_load_formulations", unavailable)

        output, report = MaterialService(db_session).update_material(
            material.id, {"total_cost": Decimal("200.00")}, seed_tenant.id, owner_actor
        )

        assert output.unit_cost == Decimal("20.0000")
        assert report is not None
        assert not report.ok
        assert report.failed == [formulation.id]
        assert report.recalculated == []
        assert "did not run" in report.error
        assert db_session.get(Formulation, formulation.id).total_cost == Decimal("20.00")

    def test_null_total_cost_rejected(self, db_session, seed_tenant, owner_actor, make_material):
        material = make_material()
        with pytest.raises(ValidationError):
            MaterialService(db_session).update_material(
                material.id, {"total_cost": None}, seed_tenant.id, owner_actor
            )

    def test_other_tenant_cannot_update(
        self, db_session, other_tenant, owner_actor, make_material
    ):
        material = make_material()
        with pytest.raises(NotFoundError):
            MaterialService(db_session).update_material(
                material.id, {"name": "Stolen"}, other_tenant.id, owner_actor
            )


class TestMaterialDelete:
    def test_delete_unused_material(self, db_session, seed_tenant, owner_actor, make_material):
        material = make_material()
        MaterialService(db_session).delete_material(material.id, seed_tenant.id, owner_actor)

        assert db_session.get(Material, material.id) is None
        actions = [e.action for e in _audit_entries(db_session, EntityType.MATERIAL, material.id)]
        assert actions == [AuditAction.CREATE, AuditAction.DELETE]

    def test_delete_referenced_material_is_refused(
        self, db_session, seed_tenant, owner_actor, make_material, make_formulation
    ):
        material = make_material()
        make_formulation(ingredients=[line(material.id, "1")])

        with pytest.raises(MaterialInUseError) as exc_info:
            MaterialService(db_session).delete_material(material.id, seed_tenant.id, owner_actor)

        assert exc_info.value.status_code == 409
        assert db_session.get(Material, material.id) is not None


class TestMaterialUsage:
    def test_usage_lists_formulations(
        self, db_session, seed_tenant, make_material, make_formulation
    ):
        material = make_material(total_cost="100.00", quantity="10")
        make_formulation(name="Bread", ingredients=[line(material.id, "2")])
        make_formulation(name="Cake", ingredients=[line(material.id, "0.5")])

        usage = MaterialService(db_session).usage(material.id, seed_tenant.id)

        assert usage.formulation_count == 2
        assert [u.formulation_name for u in usage.usages] == ["Bread", "Cake"]
        assert usage.total_cost_contribution == Decimal("25.0000")


class TestVendorAndCategory:
    def test_duplicate_vendor_name_conflicts(self, db_session, seed_tenant, owner_actor):
        service = VendorService(db_session)
        service.create({"name": "Mill"}, seed_tenant.id, owner_actor)
        with pytest.raises(ConflictError):
            service.create({"name": "Mill"}, seed_tenant.id, owner_actor)

    def test_same_vendor_name_in_other_tenant_is_allowed(
        self, db_session, seed_tenant, other_tenant, owner_actor
    ):
        service = VendorService(db_session)
        service.create({"name": "Mill"}, seed_tenant.id, owner_actor)
        other = service.create({"name": "Mill"}, other_tenant.id, owner_actor)
        assert other.id is not None

    def test_deleting_vendor_detaches_materials(
        self, db_session, seed_tenant, owner_actor, make_material
    ):
        vendor = VendorService(db_session).create({"name": "Mill"}, seed_tenant.id, owner_actor)
        material = make_material(vendor_id=vendor.id)

        VendorService(db_session).delete(vendor.id, seed_tenant.id, owner_actor)

        stored = db_session.get(Material, material.id)
        db_session.refresh(stored)
        assert stored.vendor_id is None

    def test_deleting_category_detaches_materials(
        self, db_session, seed_tenant, owner_actor, make_material
    ):
        category = MaterialCategoryService(db_session).create(
            {"name": "Dairy", "color": "#ffffff"}, seed_tenant.id, owner_actor
        )
        material = make_material(category_id=category.id)

        MaterialCategoryService(db_session).delete(category.id, seed_tenant.id, owner_actor)

        stored = db_session.get(Material, material.id)
        db_session.refresh(stored)
        assert stored.category_id is None
