"""
conftest.py - Shared pytest fixtures for lending engine tests

Provides common fixtures used across unit and conformance tests:
- A funded value ledger with the usual cast of wallets
- Engines in fixed-price and feed mode
- An open request and a funded loan ready for settlement
"""

import pytest
from datetime import timedelta

from lendledger import (
    Ledger,
    LoanLifecycleEngine,
    PriceOracle,
    StaticPriceFeed,
)

from tests.fake_feed import T0, ONE, PRICE, FEED_ANSWER


WALLETS = ("admin", "alice", "bob", "carol", "keeper")
STARTING_BALANCE = 1_000 * ONE


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no wallets besides the system wallet."""
    return Ledger("test", T0, verbose=False, test_mode=True)


@pytest.fixture
def ledger():
    """Ledger with every test wallet holding STARTING_BALANCE."""
    ledger = Ledger("test", T0, verbose=False, test_mode=True)
    for wallet in WALLETS:
        ledger.register_wallet(wallet)
        ledger.set_balance(wallet, STARTING_BALANCE)
    return ledger


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(ledger):
    """Engine in fixed-price mode at 2000 USD per unit."""
    return LoanLifecycleEngine(ledger, owner="admin", fixed_price=PRICE)


@pytest.fixture
def feed(ledger):
    """Static 8-decimal feed published at the ledger's start time."""
    return StaticPriceFeed(FEED_ANSWER, ledger.current_time)


@pytest.fixture
def feed_engine(ledger, feed):
    """Engine reading its price from a feed with a one hour staleness bound."""
    oracle = PriceOracle(ledger, feed=feed, max_price_age=timedelta(hours=1))
    return LoanLifecycleEngine(ledger, owner="admin", oracle=oracle)


@pytest.fixture
def open_request(engine):
    """alice asks for 10 units over 30 days at 5%, staking 20."""
    return engine.create_request("alice", 10 * ONE, 30, 5, value=20 * ONE)


@pytest.fixture
def funded_loan(engine, open_request):
    """bob funds alice's open request."""
    return engine.fund_request("bob", open_request, value=10 * ONE)
