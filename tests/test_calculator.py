"""
Tests for the pure cost calculator.
"""

from decimal import Decimal

import pytest

from costing_api.services.costing.calculator import (
    BATCH_SIZE_FLOOR,
    CostLine,
    FormulationCosts,
    compute_formulation_costs,
    formulation_unit_cost,
    ingredient_cost,
    profit_margin,
    sum_contributions,
    to_decimal,
    unit_cost,
)
from shared.config.constants import Precision


class TestToDecimal:
    @pytest.mark.parametrize("value", [None, "", "abc", "NaN", "Infinity", float("nan"), True])
    def test_unusable_values_become_zero(self, value):
        assert to_decimal(value) == Decimal("0")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_strips_whitespace(self):
        assert to_decimal(" 12.50 ") == Decimal("12.50")


class TestUnitCost:
    def test_divides_total_by_quantity(self):
        assert unit_cost("100.00", "10") == Decimal("10.0000")

    def test_rounds_to_four_places(self):
        result = unit_cost("1", "3")
        assert result == Decimal("0.3333")
        assert result.as_tuple().exponent == -4

    def test_rounds_half_up(self):
        assert unit_cost("0.00005", "1") == Decimal("0.0001")

    @pytest.mark.parametrize("quantity", ["0", "-1", None])
    def test_non_positive_quantity_yields_zero(self, quantity):
        assert unit_cost("25.00", quantity) == Decimal("0")


class TestIngredientCost:
    def test_quantity_times_unit_cost(self):
        assert ingredient_cost("2.5000", "0.4") == Decimal("1.0000")

    def test_missing_unit_cost_contributes_zero(self):
        assert ingredient_cost(None, "3") == Decimal("0")


class TestFormulationUnitCost:
    def test_divides_by_batch_size(self):
        assert formulation_unit_cost("40.00", "4") == Decimal("10.0000")

    def test_zero_batch_size_is_clamped(self):
        expected = Precision.unit_cost(Decimal("10") / BATCH_SIZE_FLOOR)
        assert formulation_unit_cost("10", "0") == expected


class TestProfitMargin:
    def test_amount_is_markup_of_eligible_cost(self):
        margin = profit_margin("100.00", "30", "120.00")
        assert margin.amount == Decimal("30.00")
        assert margin.percentage == Decimal("30.00")
        assert margin.suggested_price == Decimal("150.00")

    def test_total_defaults_to_eligible(self):
        margin = profit_margin("50", "10")
        assert margin.suggested_price == Decimal("55.00")

    def test_zero_markup(self):
        margin = profit_margin("80", "0", "80")
        assert margin.amount == Decimal("0")
        assert margin.suggested_price == Decimal("80.00")


class TestComputeFormulationCosts:
    def test_aggregates_lines(self):
        costs = compute_formulation_costs(
            [
                CostLine(quantity=Decimal("2"), unit_cost=Decimal("10")),
                CostLine(quantity=Decimal("0.5"), unit_cost=Decimal("4")),
            ],
            batch_size=Decimal("4"),
            markup_percentage=Decimal("25"),
        )
        assert costs.total_cost == Decimal("22.00")
        assert costs.markup_eligible_cost == Decimal("22.00")
        assert costs.unit_cost == Decimal("5.5000")
        assert costs.profit_margin == Decimal("5.50")
        assert costs.line_costs == (Decimal("20.0000"), Decimal("2.0000"))

    def test_excluded_lines_count_toward_total_only(self):
        costs = compute_formulation_costs(
            [
                CostLine(quantity=Decimal("1"), unit_cost=Decimal("10")),
                CostLine(quantity=Decimal("1"), unit_cost=Decimal("6"), include_in_markup=False),
            ],
            batch_size=Decimal("1"),
            markup_percentage=Decimal("50"),
        )
        assert costs.total_cost == Decimal("16.00")
        assert costs.markup_eligible_cost == Decimal("10.00")
        assert costs.profit_margin == Decimal("5.00")
        assert costs.margin.suggested_price == Decimal("21.00")

    def test_no_lines(self):
        costs = compute_formulation_costs([], batch_size=Decimal("1"), markup_percentage=Decimal("30"))
        empty = FormulationCosts.empty()
        assert costs.total_cost == empty.total_cost
        assert costs.unit_cost == empty.unit_cost
        assert costs.profit_margin == empty.profit_margin
        assert costs.line_costs == ()

    def test_total_is_rounded_from_exact_sum(self):
        # Three lines of 0.3333 sum to 0.9999, which rounds to 1.00
        lines = [CostLine(quantity=Decimal("1"), unit_cost=Decimal("0.3333")) for _ in range(3)]
        costs = compute_formulation_costs(lines, Decimal("1"), Decimal("0"))
        assert costs.total_cost == Decimal("1.00")


def test_sum_contributions():
    assert sum_contributions(["1.2345", Decimal("2.0001"), None]) == Decimal("3.23")
