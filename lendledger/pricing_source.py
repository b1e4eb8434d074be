"""
pricing_source.py - Price feeds and real-estate index sources

Concrete sources the PriceOracle and the engine read through narrow
interfaces. External providers are not modelled; these are the in-process
implementations used for demos, simulations and tests.

Classes:
- RoundData: One feed round (round id, answer, start/update times)
- PriceFeed: Protocol for a round-based price feed
- StaticPriceFeed: Operator-updated feed; each update opens a new round
- TimeSeriesPriceFeed: Replays a price history against a clock
- RealEstateIndexSource: Protocol for the real-estate index
- StaticRealEstateIndex: Operator-updated index value

Feed answers are integers with `decimals` places (8 by convention).
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Tuple, runtime_checkable

from .core import Clock, InvalidParameter, OracleNotConfigured


FEED_DECIMALS = 8


@dataclass(frozen=True, slots=True)
class RoundData:
    """A single answered feed round."""
    round_id: int
    answer: int
    started_at: datetime
    updated_at: datetime
    answered_in_round: int


@runtime_checkable
class PriceFeed(Protocol):
    """
    Protocol for price feeds.

    Implementations expose their answer precision and the latest round.
    """
    decimals: int

    def latest_round_data(self) -> RoundData:
        """Return the most recent round."""
        ...


class StaticPriceFeed:
    """
    Price feed whose answer changes only when update() is called.

    Each update opens a new round stamped with the given time, so staleness
    is measured from the last update.
    """

    def __init__(self, answer: int, updated_at: datetime, decimals: int = FEED_DECIMALS):
        """
        Initialize with a first round.

        Args:
            answer: Price with `decimals` places (may be <= 0 to model a bad feed)
            updated_at: Time the answer was published
            decimals: Answer precision
        """
        self.decimals = decimals
        self._round = RoundData(1, answer, updated_at, updated_at, 1)

    def latest_round_data(self) -> RoundData:
        return self._round

    def update(self, answer: int, updated_at: datetime) -> RoundData:
        """Publish a new answer."""
        round_id = self._round.round_id + 1
        self._round = RoundData(round_id, answer, updated_at, updated_at, round_id)
        return self._round

    def __repr__(self):
        return f"StaticPriceFeed(answer={self._round.answer}, round={self._round.round_id})"


class TimeSeriesPriceFeed:
    """
    Price feed replaying a historical path against a clock.

    The latest round is the most recent observation at or before the
    clock's current time; its update time is the observation's timestamp,
    so gaps in the path surface as stale prices.

    Example:
        feed = TimeSeriesPriceFeed(ledger, [
            (t0, 2000_00000000),
            (t1, 1950_00000000),
        ])
        feed.latest_round_data().answer
    """

    def __init__(
        self,
        clock: Clock,
        observations: Optional[List[Tuple[datetime, int]]] = None,
        decimals: int = FEED_DECIMALS,
    ):
        self.clock = clock
        self.decimals = decimals
        self.history: List[Tuple[datetime, int]] = sorted(observations or [], key=lambda x: x[0])

    def add_observation(self, timestamp: datetime, answer: int) -> None:
        """Add an observation, keeping the history in timestamp order."""
        self.history.append((timestamp, answer))
        self.history.sort(key=lambda x: x[0])

    def latest_round_data(self) -> RoundData:
        """
        Round for the clock's current time.

        Raises:
            OracleNotConfigured: If no observation exists at or before now
        """
        # Binary search: rightmost observation with ts <= now
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, self.clock.current_time)
        if idx == 0:
            raise OracleNotConfigured(
                f"No price observation at or before {self.clock.current_time}"
            )
        ts, answer = self.history[idx - 1]
        return RoundData(idx, answer, ts, ts, idx)

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations)"


@runtime_checkable
class RealEstateIndexSource(Protocol):
    """Protocol for a real-estate price index."""

    def latest(self) -> Tuple[int, int]:
        """Return (value, decimals)."""
        ...


class StaticRealEstateIndex:
    """Operator-maintained real-estate index."""

    def __init__(self, value: int, decimals: int = FEED_DECIMALS):
        if value <= 0:
            raise InvalidParameter("Index value must be positive")
        self.value = value
        self.decimals = decimals

    def latest(self) -> Tuple[int, int]:
        return self.value, self.decimals

    def set_value(self, value: int) -> None:
        if value <= 0:
            raise InvalidParameter("Index value must be positive")
        self.value = value

    def __repr__(self):
        return f"StaticRealEstateIndex(value={self.value}, decimals={self.decimals})"
