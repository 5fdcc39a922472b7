"""
Formulation Service.

Formulations are recipes made of ingredient lines. Every write path
(create, update, ingredient add/edit/remove, explicit recalculate)
recomputes the derived costs through the cost resolver before the
commit, so stored totals always match the stored lines.

Deletion goes through the LifecycleGuard, which chooses between hard
delete and archive.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from costing_api.models import Formulation, FormulationIngredient, Material
from costing_api.services.audit import (
    Actor,
    describe_formulation,
    record_audit,
    serialize_formulation,
)
from costing_api.services.base_service import BaseService
from costing_api.services.costing import FormulationCostResolver, profit_margin, to_decimal
from costing_api.services.crud.repository import TenantRepository
from costing_api.services.lifecycle import LifecycleGuard, LifecycleOutcome, RestoreOutcome
from costing_api.services.propagation import PropagationEngine, RecalculationResult
from shared.config.constants import AuditAction, EntityType, Precision
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.utils.costing_schemas import (
    FormulationDetailOutput,
    FormulationOutput,
    IngredientOutput,
    ProfitMarginOutput,
)
from shared.utils.exceptions import InvalidStateError, NotFoundError, ValidationError

logger = get_logger(__name__)

SCALAR_FIELDS = (
    "name",
    "description",
    "batch_size",
    "batch_unit",
    "target_price",
    "markup_percentage",
)


class FormulationService(BaseService[Formulation]):
    """
    Service for formulations and their ingredient lines.

    Business rules:
    - batch_size > 0, markup_percentage >= 0
    - each ingredient references exactly one existing material or
      sub-formulation of the same tenant, with quantity > 0
    - a formulation cannot contain itself
    - archived formulations are read-only until restored
    """

    def __init__(self, db: Session):
        super().__init__(db, Formulation)
        self._resolver = FormulationCostResolver(db)
        self._materials = TenantRepository(Material, db)

    # =========================================================================
    # Query Methods
    # =========================================================================

    def get_entity(self, formulation_id: int, tenant_id: int) -> Formulation:
        formulation = self._repo.find_by_id(
            formulation_id,
            tenant_id,
            include_inactive=True,
            options=[selectinload(Formulation.ingredients)],
        )
        if formulation is None:
            raise NotFoundError("Formulation", formulation_id, tenant_id=tenant_id)
        return formulation

    def get_formulation(self, formulation_id: int, tenant_id: int) -> FormulationDetailOutput:
        return self.to_detail(self.get_entity(formulation_id, tenant_id))

    def list_formulations(
        self, tenant_id: int, *, include_archived: bool = False
    ) -> list[FormulationOutput]:
        formulations = self._repo.find_all(
            tenant_id, include_inactive=include_archived, order_by=Formulation.name
        )
        return [FormulationOutput.model_validate(f) for f in formulations]

    def list_archived(self, tenant_id: int) -> list[FormulationOutput]:
        formulations = self._db.scalars(
            select(Formulation)
            .where(Formulation.tenant_id == tenant_id, Formulation.is_active.is_(False))
            .order_by(Formulation.deleted_at.desc(), Formulation.id.desc())
        ).all()
        return [FormulationOutput.model_validate(f) for f in formulations]

    def list_ingredients(self, formulation_id: int, tenant_id: int) -> list[IngredientOutput]:
        formulation = self.get_entity(formulation_id, tenant_id)
        return [IngredientOutput.model_validate(i) for i in formulation.ingredients]

    # =========================================================================
    # Command Methods
    # =========================================================================

    def create_formulation(
        self,
        data: dict[str, Any],
        ingredients: Sequence[dict[str, Any]],
        tenant_id: int,
        actor: Actor,
    ) -> FormulationDetailOutput:
        """
        Create a formulation with its ingredient lines and computed costs.

        Raises:
            ValidationError: Bad batch size, markup or ingredient reference (nothing written).
        """
        data = dict(data)
        if data.get("markup_percentage") is None:
            data["markup_percentage"] = settings.default_markup_percentage
        self._validate_scalars(data)
        self._validate_ingredients(ingredients, tenant_id, formulation_id=None)

        formulation = Formulation(tenant_id=tenant_id)
        self._assign_scalars(formulation, data)
        formulation.ingredients = self._build_lines(ingredients)
        self._resolver.recompute(formulation)
        formulation.set_created_by(actor.user_id, actor.email)

        self._db.add(formulation)
        self._commit("create formulation", tenant_id=tenant_id)

        record_audit(
            self._db,
            tenant_id=tenant_id,
            actor=actor,
            entity_type=EntityType.FORMULATION,
            entity_id=formulation.id,
            action=AuditAction.CREATE,
            description=describe_formulation(AuditAction.CREATE, formulation),
            data=serialize_formulation(formulation),
        )
        logger.info(
            "Formulation created",
            formulation_id=formulation.id,
            tenant_id=tenant_id,
            ingredients=len(formulation.ingredients),
            total_cost=str(formulation.total_cost),
        )
        return self.to_detail(formulation)

    def update_formulation(
        self,
        formulation_id: int,
        data: dict[str, Any],
        tenant_id: int,
        actor: Actor,
        ingredients: Optional[Sequence[dict[str, Any]]] = None,
    ) -> FormulationDetailOutput:
        """
        Update scalar fields and, when `ingredients` is given, replace the lines.

        Raises:
            InvalidStateError: The formulation is archived.
        """
        formulation = self._get_editable(formulation_id, tenant_id)
        self._validate_scalars(data, partial=True)
        if ingredients is not None:
            self._validate_ingredients(ingredients, tenant_id, formulation_id=formulation_id)

        def mutate(f: Formulation) -> None:
            self._assign_scalars(f, data)
            if ingredients is not None:
                f.ingredients.clear()
                f.ingredients.extend(self._build_lines(ingredients))

        return self._mutate_and_audit(formulation, actor, mutate)

    def add_ingredient(
        self,
        formulation_id: int,
        ingredient: dict[str, Any],
        tenant_id: int,
        actor: Actor,
    ) -> IngredientOutput:
        formulation = self._get_editable(formulation_id, tenant_id)
        self._validate_ingredients([ingredient], tenant_id, formulation_id=formulation_id)

        line = self._build_lines([ingredient], start=len(formulation.ingredients))[0]

        def mutate(f: Formulation) -> None:
            f.ingredients.append(line)

        self._mutate_and_audit(formulation, actor, mutate)
        return IngredientOutput.model_validate(line)

    def update_ingredient(
        self,
        ingredient_id: int,
        data: dict[str, Any],
        tenant_id: int,
        actor: Actor,
    ) -> IngredientOutput:
        line = self.get_ingredient(ingredient_id, tenant_id)
        formulation = self._get_editable(line.formulation_id, tenant_id)
        if "quantity" in data and to_decimal(data["quantity"]) <= 0:
            raise ValidationError("Quantity must be positive", field="quantity")

        def mutate(f: Formulation) -> None:
            for field_name in ("quantity", "unit", "include_in_markup", "notes"):
                if field_name in data and data[field_name] is not None:
                    value = data[field_name]
                    if field_name == "quantity":
                        value = Precision.quantity(to_decimal(value))
                    setattr(line, field_name, value)

        self._mutate_and_audit(formulation, actor, mutate)
        return IngredientOutput.model_validate(line)

    def remove_ingredient(self, ingredient_id: int, tenant_id: int, actor: Actor) -> None:
        line = self.get_ingredient(ingredient_id, tenant_id)
        formulation = self._get_editable(line.formulation_id, tenant_id)

        def mutate(f: Formulation) -> None:
            f.ingredients.remove(line)
            for position, remaining in enumerate(f.ingredients):
                remaining.position = position

        self._mutate_and_audit(formulation, actor, mutate)

    def recalculate(
        self, formulation_id: int, tenant_id: int, actor: Actor
    ) -> RecalculationResult:
        """Recompute one formulation from current prices on demand."""
        formulation = self.get_entity(formulation_id, tenant_id)
        return PropagationEngine(self._db).recalculate_formulation(
            formulation, triggering_material_id=None, actor=actor
        )

    def delete_formulation(
        self, formulation_id: int, tenant_id: int, actor: Actor
    ) -> LifecycleOutcome:
        return LifecycleGuard(self._db).decide_delete_or_archive(formulation_id, tenant_id, actor)

    def archive_formulation(
        self, formulation_id: int, tenant_id: int, actor: Actor
    ) -> FormulationOutput:
        formulation = LifecycleGuard(self._db).archive(formulation_id, tenant_id, actor)
        return FormulationOutput.model_validate(formulation)

    def restore_formulation(
        self, formulation_id: int, tenant_id: int, actor: Actor
    ) -> RestoreOutcome:
        return LifecycleGuard(self._db).restore_formulation(formulation_id, tenant_id, actor)

    # =========================================================================
    # Transformation
    # =========================================================================

    def to_detail(self, formulation: Formulation) -> FormulationDetailOutput:
        eligible = sum(
            (
                to_decimal(line.cost_contribution)
                for line in formulation.ingredients
                if line.include_in_markup
            ),
            to_decimal(0),
        )
        margin = profit_margin(eligible, formulation.markup_percentage, formulation.total_cost)
        detail = FormulationDetailOutput.model_validate(formulation)
        detail.margin = ProfitMarginOutput(
            amount=margin.amount,
            percentage=margin.percentage,
            suggested_price=margin.suggested_price,
        )
        return detail

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _get_editable(self, formulation_id: int, tenant_id: int) -> Formulation:
        formulation = self.get_entity(formulation_id, tenant_id)
        if formulation.archived:
            raise InvalidStateError(
                "Formulation", "archived", ["active"], formulation_id=formulation_id
            )
        return formulation

    def get_ingredient(self, ingredient_id: int, tenant_id: int) -> FormulationIngredient:
        line = self._db.scalar(
            select(FormulationIngredient)
            .join(Formulation, FormulationIngredient.formulation_id == Formulation.id)
            .where(FormulationIngredient.id == ingredient_id, Formulation.tenant_id == tenant_id)
        )
        if line is None:
            raise NotFoundError("Ingredient", ingredient_id, tenant_id=tenant_id)
        return line

    def _mutate_and_audit(
        self,
        formulation: Formulation,
        actor: Actor,
        mutate: Callable[[Formulation], None],
    ) -> FormulationDetailOutput:
        before = serialize_formulation(formulation)
        mutate(formulation)
        self._resolver.recompute(formulation)
        formulation.set_updated_by(actor.user_id, actor.email)
        self._commit("update formulation", formulation_id=formulation.id)

        record_audit(
            self._db,
            tenant_id=formulation.tenant_id,
            actor=actor,
            entity_type=EntityType.FORMULATION,
            entity_id=formulation.id,
            action=AuditAction.UPDATE,
            description=describe_formulation(AuditAction.UPDATE, formulation, before),
            before=before,
            after=serialize_formulation(formulation),
        )
        return self.to_detail(formulation)

    def _assign_scalars(self, formulation: Formulation, data: dict[str, Any]) -> None:
        for field_name in SCALAR_FIELDS:
            if field_name not in data:
                continue
            value = data[field_name]
            if field_name == "batch_size":
                value = Precision.quantity(to_decimal(value))
            elif field_name == "markup_percentage":
                value = Precision.percent(to_decimal(value))
            elif field_name == "target_price" and value is not None:
                value = Precision.money(to_decimal(value))
            setattr(formulation, field_name, value)

    def _build_lines(
        self, ingredients: Sequence[dict[str, Any]], start: int = 0
    ) -> list[FormulationIngredient]:
        return [
            FormulationIngredient(
                material_id=item.get("material_id"),
                sub_formulation_id=item.get("sub_formulation_id"),
                position=start + offset,
                quantity=Precision.quantity(to_decimal(item["quantity"])),
                unit=item["unit"],
                include_in_markup=item.get("include_in_markup", True),
                notes=item.get("notes"),
            )
            for offset, item in enumerate(ingredients)
        ]

    def _validate_scalars(self, data: dict[str, Any], partial: bool = False) -> None:
        for field_name in ("name", "batch_size", "batch_unit", "markup_percentage"):
            if field_name in data and data[field_name] is None:
                raise ValidationError(f"{field_name} cannot be null", field=field_name)
        if not partial:
            for field_name in ("name", "batch_size", "batch_unit"):
                if field_name not in data:
                    raise ValidationError(f"{field_name} is required", field=field_name)
        if "batch_size" in data and to_decimal(data["batch_size"]) <= 0:
            raise ValidationError("Batch size must be positive", field="batch_size")
        if "markup_percentage" in data and to_decimal(data["markup_percentage"]) < 0:
            raise ValidationError("Markup percentage cannot be negative", field="markup_percentage")

    def _validate_ingredients(
        self,
        ingredients: Sequence[dict[str, Any]],
        tenant_id: int,
        formulation_id: Optional[int],
    ) -> None:
        """Every line must resolve inside the tenant; nothing is written on failure."""
        material_ids = {i["material_id"] for i in ingredients if i.get("material_id") is not None}
        sub_ids = {
            i["sub_formulation_id"] for i in ingredients if i.get("sub_formulation_id") is not None
        }

        for position, item in enumerate(ingredients):
            has_material = item.get("material_id") is not None
            has_sub = item.get("sub_formulation_id") is not None
            if has_material == has_sub:
                raise ValidationError(
                    "Each ingredient needs exactly one of material_id or sub_formulation_id",
                    position=position,
                )
            if to_decimal(item.get("quantity")) <= 0:
                raise ValidationError(
                    "Ingredient quantity must be positive", field="quantity", position=position
                )
            if not item.get("unit"):
                raise ValidationError("Ingredient unit is required", field="unit", position=position)

        if formulation_id is not None and formulation_id in sub_ids:
            raise ValidationError("A formulation cannot contain itself", field="sub_formulation_id")

        found = self._materials.find_by_ids(list(material_ids), tenant_id)
        missing = sorted(material_ids - found.keys())
        if missing:
            raise ValidationError(f"Material {missing[0]} does not exist", field="material_id")

        if sub_ids:
            existing = set(
                self._db.scalars(
                    select(Formulation.id).where(
                        Formulation.tenant_id == tenant_id, Formulation.id.in_(sub_ids)
                    )
                ).all()
            )
            missing = sorted(sub_ids - existing)
            if missing:
                raise ValidationError(
                    f"Formulation {missing[0]} does not exist", field="sub_formulation_id"
                )

