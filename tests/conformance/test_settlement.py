"""
Settlement Conformance Tests

INVARIANT: Each request is funded at most once; each loan is settled at most
once, by exactly one of repay or liquidate.

    Requested --fund--> Active --repay-------> Repaid
                               --liquidate---> Liquidated   (now > end_time)

INVARIANT: The amount due never decreases with time at a fixed price, and
scales inversely with the current price.
"""

import pytest
from datetime import timedelta

from hypothesis import given, settings
from hypothesis import strategies as st

from lendledger import (
    LoanStatus, AlreadyRepaid, RequestNotActive, NotExpired,
    LoanRepaid, LoanLiquidated, LoanFunded,
)
from tests.conformance.scenarios import fresh_engine, operations, apply
from tests.fake_feed import ONE, PRICE, expected_due


class TestOneShotTransitions:

    @given(operations)
    @settings(max_examples=150, deadline=None)
    def test_each_loan_settled_once(self, ops):
        """PROPERTY: at most one settlement event per loan, and only for funded loans."""
        engine = fresh_engine()
        for op in ops:
            apply(engine, op)

        settled = [e.loan_id for e in engine.events.of_type(LoanRepaid)]
        settled += [e.loan_id for e in engine.events.of_type(LoanLiquidated)]
        assert len(settled) == len(set(settled))
        assert all(0 <= i < engine.store.next_loan_id for i in settled)

        for loan_id in range(engine.store.next_loan_id):
            assert engine.get_loan(loan_id).is_repaid == (loan_id in settled)

    @given(operations)
    @settings(max_examples=150, deadline=None)
    def test_each_request_funded_once(self, ops):
        """PROPERTY: funded requests are inactive and map to exactly one loan."""
        engine = fresh_engine()
        for op in ops:
            apply(engine, op)

        funded = [e.request_id for e in engine.events.of_type(LoanFunded)]
        assert len(funded) == len(set(funded))
        for request_id in range(engine.store.next_request_id):
            assert engine.get_request(request_id).is_active == (request_id not in funded)

    @given(operations)
    @settings(max_examples=100, deadline=None)
    def test_liquidations_only_after_expiry(self, ops):
        """PROPERTY: every liquidation happened strictly after the loan's end time."""
        engine = fresh_engine()
        for op in ops:
            apply(engine, op)
        for event in engine.events.of_type(LoanLiquidated):
            assert event.timestamp > engine.get_loan(event.loan_id).end_time

    def test_repay_then_liquidate(self, engine, ledger, funded_loan):
        engine.repay("alice", funded_loan, value=10 * ONE)
        ledger.advance_time(ledger.current_time + timedelta(days=31))
        with pytest.raises(AlreadyRepaid):
            engine.liquidate("carol", funded_loan)

    def test_liquidate_then_repay(self, engine, ledger, funded_loan):
        ledger.advance_time(ledger.current_time + timedelta(days=31))
        engine.liquidate("carol", funded_loan)
        with pytest.raises(AlreadyRepaid):
            engine.repay("alice", funded_loan, value=20 * ONE)
        assert engine.loan_status(funded_loan) == LoanStatus.LIQUIDATED

    def test_fund_funded_request(self, engine, open_request, funded_loan):
        with pytest.raises(RequestNotActive):
            engine.fund_request("alice", open_request, value=10 * ONE)

    def test_liquidation_window_opens_once(self, engine, ledger, funded_loan):
        end = engine.get_loan(funded_loan).end_time
        ledger.advance_time(end)
        with pytest.raises(NotExpired):
            engine.liquidate("carol", funded_loan)
        ledger.advance_time(end + timedelta(microseconds=1))
        engine.liquidate("carol", funded_loan)


class TestAmountDueProperties:

    @given(
        amount=st.integers(min_value=1, max_value=10 ** 24),
        rate=st.integers(min_value=1, max_value=7),
        first=st.integers(min_value=0, max_value=10 * 365 * 86400),
        extra=st.integers(min_value=0, max_value=365 * 86400),
        price=st.integers(min_value=1, max_value=10 ** 8),
    )
    @settings(max_examples=200)
    def test_monotonic_in_time(self, amount, rate, first, extra, price):
        """PROPERTY: waiting longer never lowers the amount due."""
        current = price * ONE
        earlier = expected_due(amount, rate, PRICE, current, first)
        later = expected_due(amount, rate, PRICE, current, first + extra)
        assert later >= earlier

    @given(
        days=st.integers(min_value=0, max_value=400),
        units=st.integers(min_value=500, max_value=8000),
    )
    @settings(max_examples=50, deadline=None)
    def test_engine_matches_formula(self, days, units):
        """PROPERTY: the engine computes the documented formula at any time and price."""
        engine = fresh_engine()
        request_id = engine.create_request("alice", 10 * ONE, 30, 5, value=20 * ONE)
        loan_id = engine.fund_request("bob", request_id, value=10 * ONE)
        engine.ledger.advance_time(engine.now + timedelta(days=days))
        engine.set_fixed_price("admin", units * ONE)

        assert engine.compute_amount_due(loan_id) == expected_due(
            10 * ONE, 5, PRICE, units * ONE, days * 86400)

    @given(units=st.integers(min_value=1, max_value=10 ** 6))
    @settings(max_examples=100)
    def test_higher_price_lower_due(self, units):
        """PROPERTY: collateral appreciation reduces the units owed."""
        low = expected_due(10 * ONE, 5, PRICE, units * ONE, 86400)
        high = expected_due(10 * ONE, 5, PRICE, (units + 1) * ONE, 86400)
        assert high <= low
