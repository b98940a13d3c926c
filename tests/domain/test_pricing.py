"""Tests for price range computation and the two price checks."""

from decimal import Decimal

import pytest

from trialflow_kernel.db.types import round_money, to_money
from trialflow_kernel.domain.pricing import (
    PricePolicy,
    PriceRange,
    check_price,
    price_range,
)
from trialflow_kernel.exceptions import PriceMismatchError, PriceOutOfRangeError


class TestPriceRange:
    def test_default_spread_around_expected_price(self):
        assert price_range(Decimal("20")) == PriceRange(Decimal("15"), Decimal("25"))

    def test_low_price_uses_zero_to_ceiling(self):
        assert price_range(Decimal("3.50")) == PriceRange(Decimal("0"), Decimal("5"))

    def test_threshold_itself_uses_spread(self):
        assert price_range(Decimal("5")) == PriceRange(Decimal("0"), Decimal("10"))

    def test_explicit_bounds_win(self):
        result = price_range(Decimal("20"), explicit_min=Decimal("18"), explicit_max=Decimal("30"))
        assert result == PriceRange(Decimal("18"), Decimal("30"))

    def test_one_explicit_bound_is_ignored(self):
        result = price_range(Decimal("20"), explicit_min=Decimal("18"))
        assert result == PriceRange(Decimal("15"), Decimal("25"))

    def test_policy_spread(self):
        policy = PricePolicy(spread=Decimal("2"))
        assert price_range(Decimal("20"), policy) == PriceRange(Decimal("18"), Decimal("22"))

    def test_display(self):
        assert PriceRange(Decimal("15"), Decimal("25.5")).display() == "15.00 - 25.50"

    def test_negative_policy_value_rejected(self):
        with pytest.raises(ValueError):
            PricePolicy(spread=Decimal("-1"))


class TestCheckPrice:
    RANGE = PriceRange(Decimal("15"), Decimal("25"))

    def test_exact_price_passes(self):
        check_price("s1", Decimal("20.00"), Decimal("20"), self.RANGE)

    def test_outside_range(self):
        with pytest.raises(PriceOutOfRangeError) as exc_info:
            check_price("s1", Decimal("30"), Decimal("20"), self.RANGE)
        assert exc_info.value.minimum == Decimal("15")
        assert exc_info.value.maximum == Decimal("25")
        assert "15.00" in str(exc_info.value)

    def test_inside_range_but_not_expected(self):
        with pytest.raises(PriceMismatchError):
            check_price("s1", Decimal("21"), Decimal("20"), self.RANGE)

    def test_range_check_runs_first(self):
        with pytest.raises(PriceOutOfRangeError):
            check_price("s1", Decimal("100"), Decimal("100"), self.RANGE)

    def test_compared_at_display_precision(self):
        check_price("s1", Decimal("20.004"), Decimal("20"), self.RANGE)

    def test_tolerance(self):
        policy = PricePolicy(tolerance=Decimal("0.50"))
        check_price("s1", Decimal("20.40"), Decimal("20"), self.RANGE, policy)
        with pytest.raises(PriceMismatchError):
            check_price("s1", Decimal("20.60"), Decimal("20"), self.RANGE, policy)


class TestMoneyHelpers:
    def test_float_goes_through_str(self):
        assert to_money(19.9) == Decimal("19.9")

    def test_string_is_trimmed(self):
        assert to_money(" 12.50 ") == Decimal("12.50")

    @pytest.mark.parametrize("value", [True, "abc", None, float("nan"), "Infinity", [1]])
    def test_rejects_non_amounts(self, value):
        with pytest.raises(ValueError):
            to_money(value)

    def test_round_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
