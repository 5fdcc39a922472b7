"""
Cost Calculator.

Pure, stateless functions over Decimal. No I/O and no ORM access: callers
resolve materials and pass plain numbers in, then persist what comes out.

Precision on output: total cost 2 places, unit cost and per-line cost
contribution 4 places, percentages 2 places (ROUND_HALF_UP). Totals are
quantized from the exact sum of line costs, so repeated recalculation
over unchanged inputs always yields identical values.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Sequence

from shared.config.constants import Precision
from shared.config.settings import settings

ZERO = Decimal("0")
HUNDRED = Decimal("100")
BATCH_SIZE_FLOOR = Decimal(settings.batch_size_floor)


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a number-like value to Decimal.

    None, empty strings, non-numeric text, NaN and infinities become 0.
    Floats go through str() so 0.1 stays 0.1.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def unit_cost(total_cost: Any, quantity: Any) -> Decimal:
    """total_cost / quantity when quantity > 0, else 0. Rounded to 4 places."""
    total = to_decimal(total_cost)
    qty = to_decimal(quantity)
    if qty <= ZERO:
        return Precision.unit_cost(ZERO)
    return Precision.unit_cost(total / qty)


def ingredient_cost(material_unit_cost: Any, quantity: Any) -> Decimal:
    """quantity * unit cost, rounded to 4 places."""
    return Precision.unit_cost(to_decimal(quantity) * to_decimal(material_unit_cost))


def formulation_unit_cost(total_material_cost: Any, batch_size: Any) -> Decimal:
    """Cost per batch unit; batch size is clamped to a small positive floor."""
    batch = max(to_decimal(batch_size), BATCH_SIZE_FLOOR)
    return Precision.unit_cost(to_decimal(total_material_cost) / batch)


@dataclass(frozen=True, slots=True)
class ProfitMargin:
    """
    Canonical profit margin of a formulation.

    amount is the dollar markup applied to the markup-eligible subtotal:
    markup_eligible_cost * markup_percentage / 100. It is the value stored
    in Formulation.profit_margin. percentage echoes the markup used and
    suggested_price is total_cost + amount.
    """

    amount: Decimal
    percentage: Decimal
    suggested_price: Decimal

    @classmethod
    def zero(cls) -> "ProfitMargin":
        return cls(
            amount=Precision.money(ZERO),
            percentage=Precision.percent(ZERO),
            suggested_price=Precision.money(ZERO),
        )


def profit_margin(
    markup_eligible_cost: Any,
    markup_percentage: Any,
    total_cost: Any = None,
) -> ProfitMargin:
    """
    Compute the canonical ProfitMargin.

    total_cost defaults to the markup-eligible cost when not given.
    """
    eligible = to_decimal(markup_eligible_cost)
    pct = to_decimal(markup_percentage)
    total = eligible if total_cost is None else to_decimal(total_cost)
    amount = Precision.money(eligible * pct / HUNDRED)
    return ProfitMargin(
        amount=amount,
        percentage=Precision.percent(pct),
        suggested_price=Precision.money(Precision.money(total) + amount),
    )


# =============================================================================
# Formulation aggregation
# =============================================================================


@dataclass(frozen=True, slots=True)
class CostLine:
    """Input for one ingredient line: how much, at what unit cost, and whether it is marked up."""

    quantity: Decimal
    unit_cost: Decimal
    include_in_markup: bool = True
    key: Any = None


@dataclass(frozen=True, slots=True)
class FormulationCosts:
    """Result of aggregating a formulation's lines."""

    total_cost: Decimal
    markup_eligible_cost: Decimal
    unit_cost: Decimal
    margin: ProfitMargin
    line_costs: tuple[Decimal, ...]

    @property
    def profit_margin(self) -> Decimal:
        return self.margin.amount

    @classmethod
    def empty(cls) -> "FormulationCosts":
        return cls(
            total_cost=Precision.money(ZERO),
            markup_eligible_cost=Precision.money(ZERO),
            unit_cost=Precision.unit_cost(ZERO),
            margin=ProfitMargin.zero(),
            line_costs=(),
        )


def sum_contributions(contributions: Sequence[Any]) -> Decimal:
    """Sum cost contributions into a 2-place total."""
    return Precision.money(sum((to_decimal(c) for c in contributions), ZERO))


def compute_formulation_costs(
    lines: Iterable[CostLine],
    batch_size: Any,
    markup_percentage: Any,
) -> FormulationCosts:
    """
    Aggregate ingredient lines into formulation-level costs.

    Every line counts toward total_cost. Only lines with
    include_in_markup=True count toward the markup-eligible subtotal
    that the profit margin is computed from.
    """
    lines = list(lines)
    line_costs = [ingredient_cost(line.unit_cost, line.quantity) for line in lines]
    eligible_costs = [
        cost for line, cost in zip(lines, line_costs) if line.include_in_markup
    ]
    total = sum(line_costs, ZERO)
    eligible = sum(eligible_costs, ZERO)

    return FormulationCosts(
        total_cost=sum_contributions(line_costs),
        markup_eligible_cost=sum_contributions(eligible_costs),
        unit_cost=formulation_unit_cost(total, batch_size),
        margin=profit_margin(eligible, markup_percentage, total),
        line_costs=tuple(line_costs),
    )