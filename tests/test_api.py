"""
Tests for the costing REST endpoints.
"""

from decimal import Decimal

from sqlalchemy.exc import OperationalError

from costing_api.services.propagation import PropagationEngine


def _create_material(client, headers, name="Flour", total_cost="100.00", quantity="10", **extra):
    response = client.post(
        "/api/materials",
        json={"name": name, "total_cost": total_cost, "quantity": quantity, "unit": "kg", **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.json()
    return response.json()


def _create_formulation(client, headers, ingredients, name="Bread", **extra):
    response = client.post(
        "/api/formulations",
        json={
            "name": name,
            "batch_size": "1",
            "batch_unit": "batch",
            "markup_percentage": "30",
            "ingredients": ingredients,
            **extra,
        },
        headers=headers,
    )
    assert response.status_code == 201, response.json()
    return response.json()


class TestAuthRequired:
    def test_missing_token(self, client):
        assert client.get("/api/materials").status_code == 401

    def test_viewer_can_read(self, client, viewer_auth_headers):
        response = client.get("/api/materials", headers=viewer_auth_headers)
        assert response.status_code == 200
        assert response.json() == []

    def test_viewer_cannot_write(self, client, viewer_auth_headers):
        response = client.post(
            "/api/materials",
            json={"name": "Flour", "total_cost": "1", "quantity": "1", "unit": "kg"},
            headers=viewer_auth_headers,
        )
        assert response.status_code == 403


class TestVendorEndpoints:
    def test_crud_flow(self, client, auth_headers):
        created = client.post(
            "/api/vendors",
            json={"name": "Mill & Co", "contact_email": "orders@mill.example.com"},
            headers=auth_headers,
        )
        assert created.status_code == 201
        vendor_id = created.json()["id"]

        updated = client.patch(
            f"/api/vendors/{vendor_id}", json={"contact_phone": "555-0100"}, headers=auth_headers
        )
        assert updated.status_code == 200
        assert updated.json()["contact_phone"] == "555-0100"
        assert updated.json()["contact_email"] == "orders@mill.example.com"

        assert len(client.get("/api/vendors", headers=auth_headers).json()) == 1
        assert client.delete(f"/api/vendors/{vendor_id}", headers=auth_headers).status_code == 204
        assert client.get(f"/api/vendors/{vendor_id}", headers=auth_headers).status_code == 404

    def test_duplicate_name(self, client, auth_headers):
        client.post("/api/vendors", json={"name": "Mill"}, headers=auth_headers)
        response = client.post("/api/vendors", json={"name": "Mill"}, headers=auth_headers)
        assert response.status_code == 409


class TestCategoryEndpoints:
    def test_invalid_color_rejected(self, client, auth_headers):
        response = client.post(
            "/api/material-categories", json={"name": "Dairy", "color": "blue"}, headers=auth_headers
        )
        assert response.status_code == 422

    def test_create_and_rename(self, client, auth_headers):
        created = client.post(
            "/api/material-categories", json={"name": "Dairy"}, headers=auth_headers
        ).json()
        assert created["color"] == "#3b82f6"

        renamed = client.patch(
            f"/api/material-categories/{created['id']}", json={"name": "Cold"}, headers=auth_headers
        )
        assert renamed.json()["name"] == "Cold"


class TestMaterialEndpoints:
    def test_create_derives_unit_cost(self, client, auth_headers):
        material = _create_material(client, auth_headers, total_cost="25.00", quantity="10")
        assert Decimal(material["unit_cost"]) == Decimal("2.5")

    def test_negative_cost_rejected(self, client, auth_headers):
        response = client.post(
            "/api/materials",
            json={"name": "Bad", "total_cost": "-1", "quantity": "1", "unit": "kg"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_price_change_reports_propagation(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        formulation = _create_formulation(
            client, auth_headers, [{"material_id": material["id"], "quantity": "2", "unit": "kg"}]
        )
        assert Decimal(formulation["total_cost"]) == Decimal("20.00")

        response = client.patch(
            f"/api/materials/{material['id']}", json={"total_cost": "200.00"}, headers=auth_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["material"]["unit_cost"]) == Decimal("20")
        assert body["propagation"]["recalculated"] == [formulation["id"]]
        assert body["propagation"]["failed"] == []

        detail = client.get(f"/api/formulations/{formulation['id']}", headers=auth_headers).json()
        assert Decimal(detail["total_cost"]) == Decimal("40.00")
        assert Decimal(detail["unit_cost"]) == Decimal("40")
        assert Decimal(detail["margin"]["suggested_price"]) == Decimal("52.00")

    def test_rename_has_no_propagation(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        response = client.patch(
            f"/api/materials/{material['id']}", json={"name": "Bread flour"}, headers=auth_headers
        )
        assert response.json()["propagation"] is None

    def test_failed_fan_out_is_reported(self, client, auth_headers, monkeypatch):
        material = _create_material(client, auth_headers)
        formulation = _create_formulation(
            client, auth_headers, [{"material_id": material["id"], "quantity": "2", "unit": "kg"}]
        )

        def unavailable(self, tenant_id):
            raise OperationalError("SELECT formulations", {}, Exception("connection lost"))

        monkeypatch.setattr(PropagationEngine, "_load_formulations", unavailable)

        response = client.patch(
            f"/api/materials/{material['id']}", json={"total_cost": "200.00"}, headers=auth_headers
        )

        assert response.status_code == 200
        propagation = response.json()["propagation"]
        assert propagation is not None
        assert propagation["failed"] == [formulation["id"]]
        assert propagation["recalculated"] == []
        assert propagation["error"]

        detail = client.get(f"/api/formulations/{formulation['id']}", headers=auth_headers).json()
        assert Decimal(detail["total_cost"]) == Decimal("20.00")

    def test_delete_in_use_conflicts(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        _create_formulation(
            client, auth_headers, [{"material_id": material["id"], "quantity": "1", "unit": "kg"}]
        )

        response = client.delete(f"/api/materials/{material['id']}", headers=auth_headers)

        assert response.status_code == 409
        usage = client.get(f"/api/materials/{material['id']}/usage", headers=auth_headers).json()
        assert usage["formulation_count"] == 1

    def test_other_tenant_material_is_hidden(self, client, auth_headers, free_auth_headers):
        material = _create_material(client, auth_headers)
        response = client.get(f"/api/materials/{material['id']}", headers=free_auth_headers)
        assert response.status_code == 404


class TestFormulationEndpoints:
    def test_create_validates_ingredients(self, client, auth_headers):
        response = client.post(
            "/api/formulations",
            json={
                "name": "Ghost",
                "batch_size": "1",
                "batch_unit": "batch",
                "ingredients": [{"material_id": 999, "quantity": "1", "unit": "kg"}],
            },
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert client.get("/api/formulations", headers=auth_headers).json() == []

    def test_zero_batch_size_rejected(self, client, auth_headers):
        response = client.post(
            "/api/formulations",
            json={"name": "Flat", "batch_size": "0", "batch_unit": "batch"},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_patch_without_ingredients_keeps_lines(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        formulation = _create_formulation(
            client, auth_headers, [{"material_id": material["id"], "quantity": "1", "unit": "kg"}]
        )

        response = client.patch(
            f"/api/formulations/{formulation['id']}", json={"batch_size": "2"}, headers=auth_headers
        )

        body = response.json()
        assert len(body["ingredients"]) == 1
        assert Decimal(body["unit_cost"]) == Decimal("5")

    def test_delete_fresh_formulation(self, client, auth_headers):
        formulation = _create_formulation(client, auth_headers, [])

        response = client.delete(f"/api/formulations/{formulation['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert client.get(f"/api/formulations/{formulation['id']}", headers=auth_headers).status_code == 404

    def test_delete_edited_formulation_archives(self, client, auth_headers):
        formulation = _create_formulation(client, auth_headers, [])
        client.patch(
            f"/api/formulations/{formulation['id']}", json={"name": "Rye"}, headers=auth_headers
        )

        response = client.delete(f"/api/formulations/{formulation['id']}", headers=auth_headers)

        body = response.json()
        assert body["archived"] is True
        assert body["is_active"] is False
        fetched = client.get(f"/api/formulations/{formulation['id']}", headers=auth_headers)
        assert fetched.status_code == 200
        assert fetched.json()["is_active"] is False
        archived = client.get("/api/formulations/archived", headers=auth_headers).json()
        assert [f["id"] for f in archived] == [formulation["id"]]

    def test_archive_restore_flow(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        formulation = _create_formulation(
            client, auth_headers, [{"material_id": material["id"], "quantity": "1", "unit": "kg"}]
        )
        fid = formulation["id"]

        assert client.post(f"/api/formulations/{fid}/archive", headers=auth_headers).status_code == 200
        blocked = client.patch(f"/api/formulations/{fid}", json={"name": "X"}, headers=auth_headers)
        assert blocked.status_code == 400

        restored = client.post(f"/api/formulations/{fid}/restore", headers=auth_headers)
        assert restored.status_code == 200
        assert restored.json()["cleared_ingredients_count"] == 1
        assert Decimal(restored.json()["formulation"]["total_cost"]) == Decimal("0")

        again = client.post(f"/api/formulations/{fid}/restore", headers=auth_headers)
        assert again.status_code == 400

    def test_recalculate(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        formulation = _create_formulation(
            client, auth_headers, [{"material_id": material["id"], "quantity": "1", "unit": "kg"}]
        )

        response = client.post(
            f"/api/formulations/{formulation['id']}/recalculate", headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["changed"] is False
        assert Decimal(response.json()["total_cost_after"]) == Decimal("10.00")


class TestIngredientEndpoints:
    def test_add_update_remove(self, client, auth_headers):
        flour = _create_material(client, auth_headers, name="Flour")
        sugar = _create_material(client, auth_headers, name="Sugar", total_cost="6.00", quantity="3")
        formulation = _create_formulation(
            client, auth_headers, [{"material_id": flour["id"], "quantity": "1", "unit": "kg"}]
        )
        fid = formulation["id"]

        added = client.post(
            f"/api/formulations/{fid}/ingredients",
            json={"material_id": sugar["id"], "quantity": "2", "unit": "kg"},
            headers=auth_headers,
        )
        assert added.status_code == 201
        ingredient_id = added.json()["id"]

        updated = client.patch(
            f"/api/formulation-ingredients/{ingredient_id}",
            json={"quantity": "5"},
            headers=auth_headers,
        )
        assert Decimal(updated.json()["cost_contribution"]) == Decimal("10")

        lines = client.get(f"/api/formulations/{fid}/ingredients", headers=auth_headers).json()
        assert len(lines) == 2

        removed = client.delete(f"/api/formulation-ingredients/{ingredient_id}", headers=auth_headers)
        assert removed.status_code == 204
        detail = client.get(f"/api/formulations/{fid}", headers=auth_headers).json()
        assert Decimal(detail["total_cost"]) == Decimal("10.00")


class TestPlanLimits:
    def test_free_plan_blocks_second_formulation(self, client, free_auth_headers):
        _create_formulation(client, free_auth_headers, [])
        response = client.post(
            "/api/formulations",
            json={"name": "Second", "batch_size": "1", "batch_unit": "batch"},
            headers=free_auth_headers,
        )
        assert response.status_code == 403
        assert "free plan" in response.json()["detail"]

    def test_plan_usage_report(self, client, free_auth_headers):
        _create_material(client, free_auth_headers)
        body = client.get("/api/reports/plan-usage", headers=free_auth_headers).json()
        assert body["plan"] == "free"
        materials = next(r for r in body["resources"] if r["resource"] == "materials")
        assert materials == {"resource": "materials", "used": 1, "limit": 5, "read_only_ids": []}


class TestDashboardAndAudit:
    def test_stats(self, client, auth_headers):
        _create_material(client, auth_headers)
        stats = client.get("/api/dashboard/stats", headers=auth_headers).json()
        assert stats["total_materials"] == 1
        assert Decimal(stats["total_inventory_value"]) == Decimal("100.00")

    def test_recent_activity(self, client, auth_headers):
        _create_material(client, auth_headers, name="Salt")
        activity = client.get("/api/dashboard/recent-activity?limit=5", headers=auth_headers).json()
        assert activity[0]["action"] == "create"
        assert "Salt" in activity[0]["description"]

    def test_audit_log_filters(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        _create_formulation(client, auth_headers, [])

        entries = client.get(
            "/api/audit-log",
            params={"entity_type": "material", "entity_id": material["id"]},
            headers=auth_headers,
        ).json()

        assert [e["action"] for e in entries] == ["create"]

    def test_audit_page_size_capped(self, client, auth_headers):
        response = client.get("/api/audit-log?limit=501", headers=auth_headers)
        assert response.status_code == 422

    def test_cost_change_report(self, client, auth_headers):
        material = _create_material(client, auth_headers)
        client.patch(
            f"/api/materials/{material['id']}", json={"total_cost": "150.00"}, headers=auth_headers
        )
        report = client.get("/api/reports/cost-changes", headers=auth_headers).json()
        assert Decimal(report["materials"][0]["percent_change"]) == Decimal("50")
