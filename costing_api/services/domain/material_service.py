"""
Material Service.

Raw materials carry a purchase total_cost for a purchased quantity.
unit_cost is always derived here (total_cost / quantity, or 0) and is
never accepted from clients. When an update changes unit_cost, a
MATERIAL_PRICE_CHANGED event is published after the material commit and
the propagation report is returned with the updated material.

Usage:
    from costing_api.services.domain import MaterialService

    service = MaterialService(db)
    output, report = service.update_material(material_id, data, tenant_id, actor)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from costing_api.models import (
    Formulation,
    FormulationIngredient,
    Material,
    MaterialCategory,
    Vendor,
)
from costing_api.services.audit import Actor, describe_material
from costing_api.services.base_service import BaseCRUDService
from costing_api.services.costing import to_decimal, unit_cost
from costing_api.services.crud.repository import TenantRepository
from costing_api.services.events import DomainEvent, publish_event
from costing_api.services.propagation import PropagationReport
from shared.config.constants import EntityType, Precision
from shared.config.logging import get_logger
from shared.utils.costing_schemas import MaterialOutput, MaterialUsageItem, MaterialUsageOutput
from shared.utils.exceptions import MaterialInUseError, ValidationError

logger = get_logger(__name__)


class MaterialService(BaseCRUDService[Material, MaterialOutput]):
    """
    Service for raw material management.

    Business rules:
    - unit_cost == total_cost / quantity when quantity > 0, else 0
    - category and vendor must belong to the same tenant
    - Delete is refused while any formulation ingredient references the material
    """

    def __init__(self, db: Session):
        super().__init__(
            db=db,
            model=Material,
            output_schema=MaterialOutput,
            entity_name="Material",
            entity_type=EntityType.MATERIAL,
            describe=describe_material,
        )

    # =========================================================================
    # Query Methods
    # =========================================================================

    def get_material(self, material_id: int, tenant_id: int) -> MaterialOutput:
        return self.get_by_id(material_id, tenant_id)

    def list_materials(self, tenant_id: int) -> list[MaterialOutput]:
        return self.list_all(tenant_id, order_by=Material.name)

    def reference_count(self, material_id: int) -> int:
        return self._db.scalar(
            select(func.count())
            .select_from(FormulationIngredient)
            .where(FormulationIngredient.material_id == material_id)
        ) or 0

    def usage(self, material_id: int, tenant_id: int) -> MaterialUsageOutput:
        """Formulations using the material and what it contributes to each."""
        material = self.get_entity(material_id, tenant_id)
        rows = self._db.execute(
            select(FormulationIngredient, Formulation)
            .join(Formulation, FormulationIngredient.formulation_id == Formulation.id)
            .where(
                Formulation.tenant_id == tenant_id,
                FormulationIngredient.material_id == material_id,
            )
            .order_by(Formulation.name, FormulationIngredient.position)
        ).all()

        usages = [
            MaterialUsageItem(
                formulation_id=formulation.id,
                formulation_name=formulation.name,
                is_active=formulation.is_active,
                quantity=ingredient.quantity,
                unit=ingredient.unit,
                cost_contribution=ingredient.cost_contribution,
            )
            for ingredient, formulation in rows
        ]
        return MaterialUsageOutput(
            material_id=material.id,
            material_name=material.name,
            formulation_count=len({u.formulation_id for u in usages}),
            total_cost_contribution=Precision.unit_cost(
                sum((u.cost_contribution for u in usages), Decimal("0"))
            ),
            usages=usages,
        )

    # =========================================================================
    # Command Methods
    # =========================================================================

    def create_material(
        self, data: dict[str, Any], tenant_id: int, actor: Actor
    ) -> MaterialOutput:
        return self.create(data, tenant_id, actor)

    def update_material(
        self,
        material_id: int,
        data: dict[str, Any],
        tenant_id: int,
        actor: Actor,
    ) -> tuple[MaterialOutput, Optional[PropagationReport]]:
        """
        Update a material and propagate a unit cost change.

        Returns:
            The updated material and, when unit_cost changed, the
            propagation report (None otherwise).
        """
        material = self.get_entity(material_id, tenant_id)
        old_unit_cost = material.unit_cost

        output = self.update(material_id, data, tenant_id, actor)

        if material.unit_cost == old_unit_cost:
            return output, None

        event = DomainEvent.material_price_changed(
            material_id=material.id,
            tenant_id=tenant_id,
            old_unit_cost=old_unit_cost,
            new_unit_cost=material.unit_cost,
            actor_user_id=actor.user_id,
            actor_email=actor.email,
        )
        results = publish_event(event, self._db)
        report = next((r for r in results if isinstance(r, PropagationReport)), None)
        if report is None:
            report = self._propagation_not_run(material.id, tenant_id)
        return output, report

    def _propagation_not_run(self, material_id: int, tenant_id: int) -> PropagationReport:
        """
        Report for a price change whose fan-out never produced a result.

        The material commit already landed; every formulation that uses the
        material is listed as failed so the caller knows it holds stale costs.
        """
        # The failed handler may have left the session mid-transaction
        self._db.rollback()
        dependents = list(
            self._db.scalars(
                select(Formulation.id)
                .join(FormulationIngredient, FormulationIngredient.formulation_id == Formulation.id)
                .where(
                    Formulation.tenant_id == tenant_id,
                    FormulationIngredient.material_id == material_id,
                )
                .distinct()
                .order_by(Formulation.id)
            )
        )
        logger.warning(
            "Price change saved but propagation did not run",
            tenant_id=tenant_id,
            material_id=material_id,
            stale_formulations=dependents,
        )
        return PropagationReport(
            tenant_id=tenant_id,
            triggering_material_id=material_id,
            scanned=len(dependents),
            failed=dependents,
            error="Propagation did not run; dependent formulations keep their previous costs",
        )

    def delete_material(self, material_id: int, tenant_id: int, actor: Actor) -> None:
        self.delete(material_id, tenant_id, actor)

    # =========================================================================
    # Validation Hooks
    # =========================================================================

    def _validate_refs(self, data: dict[str, Any], tenant_id: int) -> None:
        category_id = data.get("category_id")
        if category_id is not None and not TenantRepository(MaterialCategory, self._db).exists(
            category_id, tenant_id
        ):
            raise ValidationError(
                f"Material category {category_id} does not exist", field="category_id"
            )
        vendor_id = data.get("vendor_id")
        if vendor_id is not None and not TenantRepository(Vendor, self._db).exists(
            vendor_id, tenant_id
        ):
            raise ValidationError(f"Vendor {vendor_id} does not exist", field="vendor_id")

    def _validate_create(self, data: dict[str, Any], tenant_id: int) -> None:
        self._validate_refs(data, tenant_id)

    def _validate_update(self, entity: Material, data: dict[str, Any], tenant_id: int) -> None:
        for field_name in ("total_cost", "quantity", "unit", "name"):
            if field_name in data and data[field_name] is None:
                raise ValidationError(f"{field_name} cannot be null", field=field_name)
        self._validate_refs(data, tenant_id)

    def _validate_delete(self, entity: Material, tenant_id: int) -> None:
        references = self.reference_count(entity.id)
        if references:
            raise MaterialInUseError(entity.id, references, tenant_id=tenant_id)

    # =========================================================================
    # Lifecycle Hooks
    # =========================================================================

    def _apply_derived(self, entity: Material) -> None:
        entity.total_cost = Precision.money(to_decimal(entity.total_cost))
        entity.quantity = Precision.quantity(to_decimal(entity.quantity))
        entity.unit_cost = unit_cost(entity.total_cost, entity.quantity)
