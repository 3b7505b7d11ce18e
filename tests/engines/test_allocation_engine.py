"""
AllocationEngine: equal, weighted and custom-ratio splits.

The allocated total always equals the bill total; the last unit absorbs
the rounding residual.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from rental_engines.allocation import AllocationEngine, AllocationTarget


@pytest.fixture
def engine():
    return AllocationEngine()


@pytest.fixture
def units():
    return [uuid4() for _ in range(3)]


class TestEqualSplit:

    def test_even_split(self, engine, units):
        result = engine.allocate_equal(Decimal("900.00"), units)
        assert [s.amount for s in result.shares] == [Decimal("300.00")] * 3
        assert result.rounding_adjustment == Decimal("0.00")

    def test_residual_goes_to_last_unit(self, engine, units):
        result = engine.allocate_equal(Decimal("100.00"), units)
        assert [s.amount for s in result.shares] == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]
        assert result.total_allocated == Decimal("100.00")
        assert result.rounding_adjustment == Decimal("0.01")

    def test_percentages(self, engine, units):
        result = engine.allocate_equal(Decimal("900.00"), units)
        assert [s.percentage for s in result.shares] == [Decimal("33.33")] * 3

    def test_no_units(self, engine):
        with pytest.raises(ValueError, match="No units"):
            engine.allocate_equal(Decimal("10.00"), [])

    def test_non_positive_total(self, engine, units):
        with pytest.raises(ValueError, match="positive"):
            engine.allocate_equal(Decimal("0.00"), units)


class TestWeightedSplit:

    def test_proportional_to_weight(self, engine, units):
        targets = [
            AllocationTarget(units[0], Decimal("500")),
            AllocationTarget(units[1], Decimal("1000")),
            AllocationTarget(units[2], Decimal("1500")),
        ]
        result = engine.allocate_weighted(Decimal("600.00"), targets)
        assert [s.amount for s in result.shares] == [
            Decimal("100.00"),
            Decimal("200.00"),
            Decimal("300.00"),
        ]

    def test_zero_total_weight(self, engine, units):
        targets = [AllocationTarget(u, Decimal("0")) for u in units]
        with pytest.raises(ValueError, match="zero"):
            engine.allocate_weighted(Decimal("10.00"), targets)

    def test_negative_weight(self, units):
        with pytest.raises(ValueError, match="negative"):
            AllocationTarget(units[0], Decimal("-1"))

    def test_by_unit_lookup(self, engine, units):
        result = engine.allocate_equal(Decimal("90.00"), units)
        assert result.by_unit()[units[1]].amount == Decimal("30.00")


class TestCustomRatio:

    def test_ratios(self, engine, units):
        ratios = {units[0]: Decimal("0.5"), units[1]: Decimal("0.3"), units[2]: Decimal("0.2")}
        result = engine.allocate_custom_ratio(Decimal("1000.00"), ratios)
        assert [s.amount for s in result.shares] == [
            Decimal("500.00"),
            Decimal("300.00"),
            Decimal("200.00"),
        ]

    def test_ratios_must_sum_to_one(self, engine, units):
        with pytest.raises(ValueError, match="sum to 1"):
            engine.allocate_custom_ratio(
                Decimal("100.00"), {units[0]: Decimal("0.5"), units[1]: Decimal("0.4")}
            )

    def test_ratio_out_of_range(self, engine, units):
        with pytest.raises(ValueError, match="between 0 and 1"):
            engine.allocate_custom_ratio(
                Decimal("100.00"), {units[0]: Decimal("1.5"), units[1]: Decimal("-0.5")}
            )

    def test_empty(self, engine):
        with pytest.raises(ValueError):
            engine.allocate_custom_ratio(Decimal("100.00"), {})
