"""
Tests for the denomination model: coin bags <-> nominal values.
"""
from decimal import Decimal

import pytest

from bazaar.domain import (
    DEFAULT_DENOMINATIONS,
    Denomination,
    InvalidQuantityError,
    InvalidTotalError,
    MissingDenominationsError,
    base_unit_multiplier,
    make_change,
    normalize_coins,
    scale_denominations,
    value_from_coins,
)

WHOLE = [
    Denomination("Gold", Decimal("100")),
    Denomination("Silver", Decimal("10")),
    Denomination("Copper", Decimal("1")),
]


class TestValueFromCoins:
    def test_sums_counts_times_values(self):
        assert value_from_coins({"Gold": 2, "Silver": 3, "Copper": 4}, WHOLE) == Decimal("234")

    def test_unknown_names_count_as_nothing(self):
        assert value_from_coins({"Gold": 1, "Button": 50}, WHOLE) == Decimal("100")

    def test_fractional_denominations(self):
        assert value_from_coins({"Dime": 3, "Copper Farthing": 1}, DEFAULT_DENOMINATIONS) == Decimal("1.3")

    @pytest.mark.parametrize("count", [-1, 1.5, "3", True])
    def test_invalid_counts_raise(self, count):
        with pytest.raises(InvalidQuantityError):
            value_from_coins({"Gold": count}, WHOLE)

    def test_missing_denominations_raise(self):
        with pytest.raises(MissingDenominationsError):
            value_from_coins({"Gold": 1}, [])


class TestMakeChange:
    def test_greedy_distribution(self):
        assert make_change(234, WHOLE) == {"Gold": 2, "Silver": 3, "Copper": 4}

    def test_zero_total_gives_empty_counts(self):
        assert make_change(0, WHOLE) == {"Gold": 0, "Silver": 0, "Copper": 0}

    @pytest.mark.parametrize("total", [0, 1, 9, 99, 101, 12345])
    def test_round_trip_recovers_total(self, total):
        assert value_from_coins(make_change(total, WHOLE), WHOLE) == total

    def test_is_idempotent(self):
        bag = make_change(777, WHOLE)
        assert make_change(int(value_from_coins(bag, WHOLE)), WHOLE) == bag

    def test_input_order_does_not_matter(self):
        assert make_change(57, list(reversed(WHOLE))) == make_change(57, WHOLE)

    @pytest.mark.parametrize("total", [-5, 2.5, "10"])
    def test_invalid_total_raises(self, total):
        with pytest.raises(InvalidTotalError):
            make_change(total, WHOLE)

    def test_missing_denominations_raise(self):
        with pytest.raises(MissingDenominationsError):
            make_change(10, None)

    def test_non_canonical_set_is_exact_but_not_minimal(self):
        denoms = [Denomination("Four", Decimal("4")), Denomination("Three", Decimal("3")), Denomination("One", Decimal("1"))]
        bag = make_change(6, denoms)
        assert bag == {"Four": 1, "Three": 0, "One": 2}
        assert value_from_coins(bag, denoms) == 6


class TestScaling:
    def test_multiplier_for_default_set(self):
        assert base_unit_multiplier(DEFAULT_DENOMINATIONS) == 10

    def test_multiplier_follows_most_precise_value(self):
        denoms = [Denomination("A", Decimal("1.25")), Denomination("B", Decimal("0.5"))]
        assert base_unit_multiplier(denoms) == 100

    def test_multiplier_ignores_trailing_zeros(self):
        assert base_unit_multiplier([Denomination("A", Decimal("5.00"))]) == 1

    def test_empty_set_multiplier_is_one(self):
        assert base_unit_multiplier([]) == 1

    def test_scaled_round_trip(self):
        multiplier = base_unit_multiplier(DEFAULT_DENOMINATIONS)
        scaled = scale_denominations(DEFAULT_DENOMINATIONS, multiplier)
        assert [d.value for d in scaled] == [800, 40, 10, 1]

        bag = make_change(1234, scaled)
        assert value_from_coins(bag, DEFAULT_DENOMINATIONS) == Decimal("123.4")

    def test_normalize_merges_small_coins(self):
        assert normalize_coins({"Copper": 25}, WHOLE) == {"Gold": 0, "Silver": 2, "Copper": 5}
