"""
test_loan_requests.py - Unit tests for create_request and fund_request

Tests:
- Parameter validation and the exact 2x collateral rule
- Stake escrow and request recording
- Funding: exact principal, one-shot activation, principal to borrower
- Indexes and events written by funding
- Pause gating
"""

import pytest
from datetime import timedelta

from lendledger import (
    PLATFORM_WALLET, EMPTY_COMMITMENT, LoanStatus,
    InvalidAmount, InvalidDuration, InvalidRate, CollateralMismatch,
    AmountMismatch, InvalidParameter, RequestNotActive, RequestNotFound,
    EnforcedPause, InsufficientFunds, StateConflict,
    LoanRequestCreated, LoanFunded,
)
from tests.fake_feed import T0, ONE, PRICE, advance


COMMITMENT = bytes(range(32))


# ============================================================================
# CREATE REQUEST
# ============================================================================

class TestCreateRequest:
    """Tests for posting a loan request."""

    def test_first_request_id_is_zero(self, engine):
        assert engine.create_request("alice", ONE, 30, 5, value=2 * ONE) == 0
        assert engine.create_request("carol", ONE, 30, 5, value=2 * ONE) == 1

    def test_request_recorded(self, engine):
        request_id = engine.create_request(
            "alice", 10 * ONE, 30, 5, value=20 * ONE,
            metadata_commitment=COMMITMENT,
            encrypted_cid="enc://meta",
            property_commitment=COMMITMENT,
            appraisal_encrypted_cid="enc://appraisal",
            property_units=4,
        )
        request = engine.get_request(request_id)
        assert request.borrower == "alice"
        assert request.loan_amount == 10 * ONE
        assert request.duration_days == 30
        assert request.interest_rate == 5
        assert request.stake == 20 * ONE
        assert request.is_active
        assert request.metadata_commitment == COMMITMENT
        assert request.encrypted_cid == "enc://meta"
        assert request.appraisal_encrypted_cid == "enc://appraisal"
        assert request.property_units == 4
        assert request.created_at == T0

    def test_stake_escrowed(self, engine, ledger):
        before = ledger.get_balance("alice")
        engine.create_request("alice", 10 * ONE, 30, 5, value=20 * ONE)
        assert ledger.get_balance("alice") == before - 20 * ONE
        assert ledger.get_balance(PLATFORM_WALLET) == 20 * ONE

    def test_event(self, engine, open_request):
        event = engine.events.last()
        assert isinstance(event, LoanRequestCreated)
        assert event.request_id == open_request
        assert event.stake == 20 * ONE
        assert event.metadata_commitment == EMPTY_COMMITMENT

    @pytest.mark.parametrize("stake", [20 * ONE - 1, 20 * ONE + 1, 10 * ONE, 0])
    def test_collateral_must_be_exact(self, engine, ledger, stake):
        """Anything other than exactly 2x the amount is rejected."""
        before = ledger.get_balance("alice")
        with pytest.raises(CollateralMismatch):
            engine.create_request("alice", 10 * ONE, 30, 5, value=stake)
        assert ledger.get_balance("alice") == before
        assert engine.store.next_request_id == 0

    @pytest.mark.parametrize("amount", [0, -ONE, 1.5])
    def test_invalid_amount(self, engine, amount):
        with pytest.raises(InvalidAmount):
            engine.create_request("alice", amount, 30, 5, value=0)

    @pytest.mark.parametrize("duration", [0, -1])
    def test_invalid_duration(self, engine, duration):
        with pytest.raises(InvalidDuration):
            engine.create_request("alice", ONE, duration, 5, value=2 * ONE)

    @pytest.mark.parametrize("rate", [0, 8, -1, 100])
    def test_invalid_rate(self, engine, rate):
        with pytest.raises(InvalidRate):
            engine.create_request("alice", ONE, 30, rate, value=2 * ONE)

    @pytest.mark.parametrize("rate", [1, 7])
    def test_rate_bounds_inclusive(self, engine, rate):
        engine.create_request("alice", ONE, 30, rate, value=2 * ONE)

    def test_smallest_loan(self, engine):
        request_id = engine.create_request("alice", 1, 1, 1, value=2)
        assert engine.get_request(request_id).stake == 2

    def test_short_commitment_rejected(self, engine):
        with pytest.raises(InvalidParameter):
            engine.create_request("alice", ONE, 30, 5, value=2 * ONE,
                                  metadata_commitment=b"\x01" * 31)

    def test_negative_property_units_rejected(self, engine):
        with pytest.raises(InvalidParameter):
            engine.create_request("alice", ONE, 30, 5, value=2 * ONE, property_units=-1)

    def test_cannot_stake_more_than_balance(self, engine, ledger):
        balance = ledger.get_balance("alice")
        with pytest.raises(InsufficientFunds):
            engine.create_request("alice", balance, 30, 5, value=2 * balance)
        assert engine.store.next_request_id == 0
        assert len(engine.events) == 0

    def test_paused(self, engine):
        engine.pause("admin")
        with pytest.raises(EnforcedPause):
            engine.create_request("alice", ONE, 30, 5, value=2 * ONE)
        engine.unpause("admin")
        engine.create_request("alice", ONE, 30, 5, value=2 * ONE)

    def test_pause_checked_before_validation(self, engine):
        engine.pause("admin")
        with pytest.raises(EnforcedPause):
            engine.create_request("alice", 0, 0, 0, value=0)


# ============================================================================
# FUND REQUEST
# ============================================================================

class TestFundRequest:
    """Tests for funding an open request."""

    def test_first_loan_id_is_zero(self, engine, open_request):
        assert engine.fund_request("bob", open_request, value=10 * ONE) == 0

    def test_principal_reaches_borrower(self, engine, ledger, open_request):
        alice = ledger.get_balance("alice")
        bob = ledger.get_balance("bob")
        engine.fund_request("bob", open_request, value=10 * ONE)
        assert ledger.get_balance("alice") == alice + 10 * ONE
        assert ledger.get_balance("bob") == bob - 10 * ONE
        assert ledger.get_balance(PLATFORM_WALLET) == 20 * ONE

    def test_loan_recorded(self, engine, ledger, open_request):
        advance(ledger, hours=3)
        loan_id = engine.fund_request("bob", open_request, value=10 * ONE)
        loan = engine.get_loan(loan_id)
        assert loan.request_id == open_request
        assert loan.borrower == "alice"
        assert loan.lender == "bob"
        assert loan.loan_amount == 10 * ONE
        assert loan.stake == 20 * ONE
        assert loan.start_time == T0 + timedelta(hours=3)
        assert loan.end_time == loan.start_time + timedelta(days=30)
        assert loan.initial_price == PRICE
        assert loan.status == LoanStatus.ACTIVE

    def test_request_deactivated(self, engine, funded_loan, open_request):
        assert not engine.get_request(open_request).is_active

    def test_indexes(self, engine, funded_loan):
        assert engine.get_borrower_loans("alice") == [funded_loan]
        assert engine.get_lender_loans("bob") == [funded_loan]

    def test_event(self, engine, funded_loan):
        event = engine.events.last()
        assert isinstance(event, LoanFunded)
        assert event.loan_id == funded_loan
        assert event.initial_price == PRICE
        assert event.end_time - event.start_time == timedelta(days=30)

    def test_principal_paid_after_event(self, engine, ledger, open_request):
        """The borrower's receive hook already sees the loan and its event."""
        seen = []

        def hook(transfer):
            seen.append((engine.store.next_loan_id, type(engine.events.last())))

        ledger.set_receive_hook("alice", hook)
        engine.fund_request("bob", open_request, value=10 * ONE)
        assert seen == [(1, LoanFunded)]

    @pytest.mark.parametrize("value", [10 * ONE - 1, 10 * ONE + 1, 0])
    def test_amount_must_match(self, engine, ledger, open_request, value):
        before = ledger.get_balance("bob")
        with pytest.raises(AmountMismatch):
            engine.fund_request("bob", open_request, value=value)
        assert ledger.get_balance("bob") == before
        assert engine.get_request(open_request).is_active

    def test_fund_twice(self, engine, open_request, funded_loan):
        with pytest.raises(RequestNotActive):
            engine.fund_request("carol", open_request, value=10 * ONE)

    def test_unknown_request(self, engine):
        with pytest.raises(RequestNotFound):
            engine.fund_request("bob", 7, value=ONE)

    def test_unknown_request_is_a_state_conflict(self, engine):
        with pytest.raises(RequestNotActive):
            engine.fund_request("bob", 7, value=ONE)
        with pytest.raises(StateConflict):
            engine.fund_request("bob", 7, value=ONE)

    def test_self_funding_allowed(self, engine, ledger, open_request):
        loan_id = engine.fund_request("alice", open_request, value=10 * ONE)
        loan = engine.get_loan(loan_id)
        assert loan.borrower == loan.lender == "alice"

    def test_paused(self, engine, open_request):
        engine.pause("admin")
        with pytest.raises(EnforcedPause):
            engine.fund_request("bob", open_request, value=10 * ONE)
        assert engine.get_request(open_request).is_active

    def test_guard_released_after_failure(self, engine, open_request):
        with pytest.raises(AmountMismatch):
            engine.fund_request("bob", open_request, value=1)
        assert not engine.guard.entered
        engine.fund_request("bob", open_request, value=10 * ONE)

    def test_lender_without_funds(self, engine, ledger, open_request):
        ledger.register_wallet("dave")
        with pytest.raises(InsufficientFunds):
            engine.fund_request("dave", open_request, value=10 * ONE)
        assert engine.get_request(open_request).is_active
        assert engine.store.next_loan_id == 0
