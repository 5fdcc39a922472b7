"""
Cost calculation: pure calculator functions and value types, plus the
resolver that applies them to formulation rows.
"""

from .calculator import (
    BATCH_SIZE_FLOOR,
    CostLine,
    FormulationCosts,
    ProfitMargin,
    compute_formulation_costs,
    formulation_unit_cost,
    ingredient_cost,
    profit_margin,
    sum_contributions,
    to_decimal,
    unit_cost,
)
from .resolver import FormulationCostResolver, apply_costs, reset_costs

__all__ = [
    "BATCH_SIZE_FLOOR",
    "CostLine",
    "FormulationCosts",
    "FormulationCostResolver",
    "ProfitMargin",
    "apply_costs",
    "compute_formulation_costs",
    "formulation_unit_cost",
    "ingredient_cost",
    "profit_margin",
    "reset_costs",
    "sum_contributions",
    "to_decimal",
    "unit_cost",
]
