"""
fixed_point.py - 18-decimal fixed-point arithmetic

Prices and reference values are integers with an implicit 18-decimal
exponent. All helpers operate on Python ints, floor the result, and reject
anything outside the unsigned 256-bit range so behaviour matches a
settlement layer with bounded words.

Never use float for money: quantities that enter here must already be ints.
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import ArithmeticOverflow


SCALE = 10 ** 18
DECIMALS = 18
UINT256_MAX = 2 ** 256 - 1


def _check(value: int, what: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ArithmeticOverflow(f"{what} must be int, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflow(f"{what} out of range: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    """a + b, bounded to uint256."""
    _check(a, "lhs")
    _check(b, "rhs")
    return _check(a + b, "sum")


def checked_mul(a: int, b: int) -> int:
    """a * b, bounded to uint256."""
    _check(a, "lhs")
    _check(b, "rhs")
    return _check(a * b, "product")


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    floor(a * b / denominator).

    The intermediate product must itself fit in uint256.

    Raises:
        ArithmeticOverflow: On out-of-range operands or a zero denominator
    """
    _check(denominator, "denominator")
    if denominator == 0:
        raise ArithmeticOverflow("division by zero")
    return checked_mul(a, b) // denominator


def rescale(answer: int, decimals: int) -> int:
    """Bring a feed answer with `decimals` places to 18-decimal fixed point."""
    if decimals > DECIMALS:
        return _check(answer, "answer") // 10 ** (decimals - DECIMALS)
    return checked_mul(answer, 10 ** (DECIMALS - decimals))


@dataclass(frozen=True, slots=True, order=True)
class FixedPoint:
    """
    A non-negative 18-decimal fixed-point number.

    Attributes:
        raw: Integer mantissa (value * 10**18)

    Example:
        price = FixedPoint.from_units(2000)       # 2000.0
        value = price.value_of(10 * SCALE)        # 10 units -> 20000 * SCALE
        price.amount_for(value) == 10 * SCALE
    """
    raw: int

    def __post_init__(self):
        _check(self.raw, "raw")

    @classmethod
    def from_units(cls, whole: int) -> FixedPoint:
        return cls(checked_mul(whole, SCALE))

    @classmethod
    def from_feed(cls, answer: int, decimals: int = 8) -> FixedPoint:
        return cls(rescale(answer, decimals))

    def value_of(self, amount: int) -> int:
        """Reference value of `amount` smallest units at this price."""
        return mul_div(amount, self.raw, SCALE)

    def amount_for(self, value: int) -> int:
        """Smallest units worth `value` at this price."""
        return mul_div(value, SCALE, self.raw)

    def __str__(self) -> str:
        whole, frac = divmod(self.raw, SCALE)
        frac_str = f"{frac:018d}".rstrip("0")
        return f"{whole}.{frac_str}" if frac_str else str(whole)
