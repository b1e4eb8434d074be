"""
simulation.py - Random price paths for scenario runs

Generates collateral price paths as a geometric random walk so the engine
and the liquidation keeper can be exercised against moving prices. Paths
are seeded for reproducibility and emitted as integer feed answers, ready
for TimeSeriesPriceFeed.

Floats live only inside the generator; everything returned is int.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import numpy as np

from .pricing_source import FEED_DECIMALS


@dataclass
class PricePathParams:
    initial_price: float = 2000.0
    volatility: float = 0.01  # per-step log-return standard deviation
    drift: float = 0.0        # per-step log-return mean
    steps: int = 24 * 30
    step: timedelta = timedelta(hours=1)
    decimals: int = FEED_DECIMALS
    random_seed: Optional[int] = None


def simulate_price_path(params: PricePathParams, start: datetime) -> List[Tuple[datetime, int]]:
    """
    Simulate a price path.

    Args:
        params: Path parameters
        start: Timestamp of the first observation (the initial price)

    Returns:
        steps + 1 (timestamp, answer) pairs; answers are strictly positive
        integers with params.decimals places
    """
    if params.initial_price <= 0:
        raise ValueError("Initial price must be positive")
    if params.steps < 0:
        raise ValueError("Steps must be non-negative")

    rng = np.random.default_rng(params.random_seed)
    log_returns = rng.normal(params.drift, params.volatility, params.steps)
    prices = params.initial_price * np.exp(np.concatenate(([0.0], np.cumsum(log_returns))))

    scale = 10 ** params.decimals
    answers = np.maximum(np.rint(prices * scale), 1).astype(np.int64)
    return [
        (start + i * params.step, int(answer))
        for i, answer in enumerate(answers)
    ]
