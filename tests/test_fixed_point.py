"""
test_fixed_point.py - Unit tests for 18-decimal fixed-point helpers
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lendledger import (
    SCALE, UINT256_MAX, FixedPoint, ArithmeticOverflow,
    mul_div, checked_add, checked_mul, rescale,
)


class TestHelpers:

    def test_mul_div_floors(self):
        assert mul_div(10, 3, 4) == 7

    def test_mul_div_zero_denominator(self):
        with pytest.raises(ArithmeticOverflow):
            mul_div(1, 1, 0)

    def test_mul_overflow(self):
        with pytest.raises(ArithmeticOverflow):
            checked_mul(UINT256_MAX, 2)

    def test_add_overflow(self):
        with pytest.raises(ArithmeticOverflow):
            checked_add(UINT256_MAX, 1)

    def test_negative_rejected(self):
        with pytest.raises(ArithmeticOverflow):
            checked_add(-1, 1)

    def test_float_rejected(self):
        with pytest.raises(ArithmeticOverflow):
            mul_div(1.0, SCALE, SCALE)

    def test_rescale_8_decimals(self):
        assert rescale(2000 * 10 ** 8, 8) == 2000 * SCALE

    def test_rescale_more_than_18_decimals(self):
        assert rescale(5 * 10 ** 20, 20) == 5 * SCALE


class TestFixedPoint:

    def test_from_units(self):
        assert FixedPoint.from_units(3).raw == 3 * SCALE

    def test_from_feed(self):
        assert FixedPoint.from_feed(2000 * 10 ** 8) == FixedPoint.from_units(2000)

    def test_value_and_amount(self):
        price = FixedPoint.from_units(2000)
        value = price.value_of(10 * SCALE)
        assert value == 20_000 * SCALE
        assert price.amount_for(value) == 10 * SCALE

    def test_str(self):
        assert str(FixedPoint(SCALE + SCALE // 4)) == "1.25"
        assert str(FixedPoint.from_units(7)) == "7"

    def test_ordering(self):
        assert FixedPoint.from_units(1) < FixedPoint.from_units(2)

    def test_out_of_range(self):
        with pytest.raises(ArithmeticOverflow):
            FixedPoint(-1)

    @given(
        st.integers(min_value=1, max_value=10 ** 30),
        st.integers(min_value=1, max_value=10 ** 12),
    )
    @settings(max_examples=100)
    def test_round_trip_never_gains(self, amount, whole_price):
        """PROPERTY: converting to value and back never returns more units."""
        price = FixedPoint.from_units(whole_price)
        assert price.amount_for(price.value_of(amount)) <= amount
