"""
price_oracle.py - PriceOracle adapter

Wraps an optional external price feed and returns the collateral asset's
price in 18-decimal fixed point (USD per unit).

Modes:
- Feed mode: read the feed's latest round, reject non-positive answers and
  readings older than max_price_age, rescale to 18 decimals.
- Fixed mode (no feed): return the operator-set fixed price.

A configured feed is never bypassed: a stale or invalid reading fails the
read, it does not fall back to the fixed price.
"""

from __future__ import annotations
from datetime import timedelta
from typing import Optional

from .core import (
    Clock, DEFAULT_MAX_PRICE_AGE,
    InvalidPrice, StalePrice, InvalidParameter,
)
from .fixed_point import rescale
from .pricing_source import PriceFeed


class PriceOracle:
    """
    Read-only price adapter.

    Administration (feed, fixed price, staleness bound) is exposed as plain
    setters; the engine gates them behind its owner check and they take
    effect for the next read.
    """

    def __init__(
        self,
        clock: Clock,
        feed: Optional[PriceFeed] = None,
        fixed_price: Optional[int] = None,
        max_price_age: timedelta = DEFAULT_MAX_PRICE_AGE,
    ):
        """
        Args:
            clock: Source of the current time (normally the value ledger)
            feed: Optional external feed; None selects fixed mode
            fixed_price: 18-decimal price used in fixed mode
            max_price_age: Staleness bound for feed readings
        """
        self.clock = clock
        self.feed = feed
        self.fixed_price: Optional[int] = None
        self.max_price_age = DEFAULT_MAX_PRICE_AGE
        if fixed_price is not None:
            self.set_fixed_price(fixed_price)
        self.set_max_price_age(max_price_age)

    @property
    def uses_feed(self) -> bool:
        return self.feed is not None

    def current_price(self) -> int:
        """
        Current 18-decimal price of one unit of the collateral asset.

        Raises:
            InvalidPrice: Non-positive answer, or fixed mode with no price set
            StalePrice: Feed reading older than max_price_age
        """
        if self.feed is None:
            if self.fixed_price is None or self.fixed_price <= 0:
                raise InvalidPrice("No feed configured and no fixed price set")
            return self.fixed_price

        data = self.feed.latest_round_data()
        if data.answer <= 0:
            raise InvalidPrice(f"Feed answered {data.answer} in round {data.round_id}")
        age = self.clock.current_time - data.updated_at
        if age > self.max_price_age:
            raise StalePrice(
                f"Round {data.round_id} is {age} old (max {self.max_price_age})"
            )
        return rescale(data.answer, self.feed.decimals)

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def set_feed(self, feed: Optional[PriceFeed]) -> None:
        """Swap the feed, or clear it with None to use the fixed price."""
        self.feed = feed

    def set_fixed_price(self, price: int) -> None:
        if price <= 0:
            raise InvalidParameter("Fixed price must be positive")
        self.fixed_price = price

    def set_max_price_age(self, max_age: timedelta) -> None:
        if max_age <= timedelta(0):
            raise InvalidParameter("Staleness bound must be positive")
        self.max_price_age = max_age

    def __repr__(self):
        mode = repr(self.feed) if self.feed is not None else f"fixed={self.fixed_price}"
        return f"PriceOracle({mode}, max_age={self.max_price_age})"
