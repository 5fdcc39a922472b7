"""
Formulation cost resolution.

Bridges the ORM and the pure calculator: resolves each ingredient's
current unit cost (material or nested formulation), runs the calculator
and writes the derived values back onto the in-memory rows. Nothing is
committed here; callers own the transaction.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from costing_api.models import Formulation, FormulationIngredient, Material
from costing_api.services.crud.repository import TenantRepository
from shared.config.constants import Precision

from .calculator import ZERO, CostLine, FormulationCosts, compute_formulation_costs


class FormulationCostResolver:
    """
    Recomputes a formulation from current material prices.

    Sub-formulation lines use the nested formulation's cached unit_cost
    (no recursion). A line whose material or sub-formulation no longer
    exists contributes zero but keeps its reference id.
    """

    def __init__(self, db: Session):
        self._db = db
        self._materials = TenantRepository(Material, db)
        self._formulations = TenantRepository(Formulation, db)

    def source_unit_costs(
        self,
        tenant_id: int,
        ingredients: Iterable[FormulationIngredient],
    ) -> list[Decimal]:
        """Current unit cost of each ingredient's source, in order."""
        ingredients = list(ingredients)
        materials = self._materials.find_by_ids(
            [i.material_id for i in ingredients if i.material_id is not None], tenant_id
        )
        subs = self._formulations.find_by_ids(
            [i.sub_formulation_id for i in ingredients if i.sub_formulation_id is not None],
            tenant_id,
        )

        costs = []
        for ing in ingredients:
            source = None
            if ing.material_id is not None:
                source = materials.get(ing.material_id)
            elif ing.sub_formulation_id is not None:
                source = subs.get(ing.sub_formulation_id)
            costs.append(source.unit_cost if source is not None else ZERO)
        return costs

    def recompute(self, formulation: Formulation) -> FormulationCosts:
        """
        Recompute every ingredient line and the formulation aggregates in place.

        Returns:
            The calculator result that was applied.
        """
        ingredients = list(formulation.ingredients)
        unit_costs = self.source_unit_costs(formulation.tenant_id, ingredients)
        lines = [
            CostLine(
                quantity=ing.quantity,
                unit_cost=cost,
                include_in_markup=bool(ing.include_in_markup),
                key=ing.id,
            )
            for ing, cost in zip(ingredients, unit_costs)
        ]
        costs = compute_formulation_costs(
            lines, formulation.batch_size, formulation.markup_percentage
        )
        apply_costs(formulation, ingredients, costs)
        return costs


def apply_costs(
    formulation: Formulation,
    ingredients: list[FormulationIngredient],
    costs: FormulationCosts,
) -> None:
    """Write calculator output onto the formulation and its ingredient rows."""
    for ing, line_cost in zip(ingredients, costs.line_costs):
        ing.cost_contribution = line_cost
    formulation.total_cost = costs.total_cost
    formulation.unit_cost = costs.unit_cost
    formulation.profit_margin = costs.profit_margin


def reset_costs(formulation: Formulation) -> None:
    """Zero every derived value (used when a formulation is restored empty)."""
    formulation.total_cost = Precision.money(ZERO)
    formulation.unit_cost = Precision.unit_cost(ZERO)
    formulation.profit_margin = Precision.money(ZERO)
