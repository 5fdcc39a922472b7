"""
Property-based Testing with Hypothesis.

Invariants of the cost calculator and plan policy that must hold for any input.
"""

from decimal import Decimal

from hypothesis import assume, given, settings, strategies as st

from costing_api.services.change_summary import percent_change
from costing_api.services.costing.calculator import (
    CostLine,
    compute_formulation_costs,
    profit_margin,
    sum_contributions,
    unit_cost,
)
from costing_api.services.plan_policy import PlanPolicy
from shared.config.constants import PLAN_LIMITS, PlanResource

money = st.decimals(min_value=Decimal("0"), max_value=Decimal("99999999.99"), places=2)
quantities = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("9999999.999"), places=3)
markups = st.decimals(min_value=Decimal("0"), max_value=Decimal("999.99"), places=2)

cost_lines = st.builds(
    CostLine,
    quantity=quantities,
    unit_cost=st.decimals(min_value=Decimal("0"), max_value=Decimal("9999.9999"), places=4),
    include_in_markup=st.booleans(),
)


class TestCalculatorProperties:
    """Property-based tests for cost arithmetic."""

    @given(total=money, quantity=quantities)
    @settings(max_examples=100)
    def test_unit_cost_reconstructs_total(self, total, quantity):
        """Property: unit_cost * quantity is within half a unit-cost step per unit of quantity."""
        result = unit_cost(total, quantity)
        assert result >= 0
        assert abs(result * quantity - total) <= Decimal("0.00005") * quantity

    @given(lines=st.lists(cost_lines, max_size=12), batch=quantities, markup=markups)
    @settings(max_examples=75)
    def test_recalculation_is_idempotent(self, lines, batch, markup):
        """Property: identical inputs always yield identical stored values."""
        first = compute_formulation_costs(lines, batch, markup)
        second = compute_formulation_costs(lines, batch, markup)
        assert first == second

    @given(lines=st.lists(cost_lines, max_size=12), batch=quantities, markup=markups)
    @settings(max_examples=75)
    def test_total_is_sum_of_all_contributions(self, lines, batch, markup):
        """Property: total sums every line; the eligible subtotal only marked lines."""
        costs = compute_formulation_costs(lines, batch, markup)
        assert costs.total_cost == sum_contributions(costs.line_costs)
        assert costs.markup_eligible_cost == sum_contributions(
            [c for line, c in zip(lines, costs.line_costs) if line.include_in_markup]
        )

    @given(lines=st.lists(cost_lines, max_size=12), batch=quantities, markup=markups)
    @settings(max_examples=75)
    def test_eligible_never_exceeds_total(self, lines, batch, markup):
        costs = compute_formulation_costs(lines, batch, markup)
        assert Decimal("0") <= costs.markup_eligible_cost <= costs.total_cost
        assert costs.profit_margin >= 0
        assert costs.total_cost.as_tuple().exponent == -2
        assert costs.unit_cost.as_tuple().exponent == -4

    @given(eligible=money, markup=markups)
    @settings(max_examples=50)
    def test_suggested_price_is_total_plus_amount(self, eligible, markup):
        margin = profit_margin(eligible, markup, eligible)
        assert margin.suggested_price == eligible + margin.amount

    @given(before=money, after=money)
    @settings(max_examples=50)
    def test_percent_change_sign_follows_direction(self, before, after):
        assume(before > 0)
        pct = percent_change(before, after)
        if after > before:
            assert pct >= 0
        elif after < before:
            assert pct <= 0
        else:
            assert pct == 0


class TestPlanPolicyProperties:
    """Property-based tests for subscription limits."""

    @given(
        plan=st.sampled_from(sorted(PLAN_LIMITS)),
        resource=st.sampled_from(PlanResource.ALL),
        count=st.integers(min_value=0, max_value=2000),
    )
    @settings(max_examples=100)
    def test_can_create_iff_below_limit(self, plan, resource, count):
        policy = PlanPolicy(plan)
        assert policy.can_create(resource, count) == (count < PLAN_LIMITS[plan][resource])

    @given(
        plan=st.sampled_from(sorted(PLAN_LIMITS)),
        resource=st.sampled_from(PlanResource.ALL),
        total=st.integers(min_value=0, max_value=400),
    )
    @settings(max_examples=50)
    def test_read_only_ids_are_the_tail(self, plan, resource, total):
        policy = PlanPolicy(plan)
        ids = list(range(1, total + 1))
        read_only = policy.read_only_ids(resource, ids)
        limit = PLAN_LIMITS[plan][resource]
        assert len(read_only) == max(0, total - limit)
        assert all(policy.can_edit(resource, ids.index(i)) is False for i in read_only)
