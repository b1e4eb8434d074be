"""
test_access_guard.py - Unit tests for the Access/Safety Guard and the
engine's owner-only administration

Tests:
- Reentrancy scope: set on entry, cleared on exit and on failure
- Pause/unpause state transitions
- Owner checks and ownership transfer
- Parameter caps and admin events
"""

import pytest
from datetime import timedelta

from lendledger import (
    AccessGuard, LoanLifecycleEngine, StaticPriceFeed, StaticRealEstateIndex,
    Reentrant, EnforcedPause, ExpectedPause, NotOwner, InvalidParameter,
    InvalidPrice, OracleNotConfigured,
    OwnershipTransferred, Paused, Unpaused, PenaltyUpdated,
    LiquidationBonusUpdated, MaxPriceAgeUpdated, PriceFeedUpdated,
    FixedPriceUpdated, RealEstateOracleUpdated,
    MAX_BPS, SCALE,
)
from tests.fake_feed import T0, PRICE


class TestReentrancyScope:

    def test_flag_set_inside_scope(self):
        guard = AccessGuard("admin")
        with guard.non_reentrant():
            assert guard.entered
        assert not guard.entered

    def test_nested_entry_fails(self):
        guard = AccessGuard("admin")
        with guard.non_reentrant():
            with pytest.raises(Reentrant):
                with guard.non_reentrant():
                    pass
        assert not guard.entered

    def test_released_on_failure(self):
        guard = AccessGuard("admin")
        with pytest.raises(RuntimeError):
            with guard.non_reentrant():
                raise RuntimeError("boom")
        assert not guard.entered


class TestPauseState:

    def test_pause_unpause(self):
        guard = AccessGuard("admin")
        guard.pause()
        with pytest.raises(EnforcedPause):
            guard.require_not_paused()
        guard.unpause()
        guard.require_not_paused()

    def test_double_pause(self):
        guard = AccessGuard("admin")
        guard.pause()
        with pytest.raises(EnforcedPause):
            guard.pause()

    def test_unpause_when_running(self):
        with pytest.raises(ExpectedPause):
            AccessGuard("admin").unpause()

    def test_empty_owner(self):
        with pytest.raises(InvalidParameter):
            AccessGuard("")


class TestOwnership:

    def test_non_owner_rejected(self, engine):
        with pytest.raises(NotOwner):
            engine.pause("alice")
        assert not engine.paused

    def test_transfer_ownership(self, engine):
        engine.transfer_ownership("admin", "carol")
        assert engine.owner == "carol"
        event = engine.events.last()
        assert isinstance(event, OwnershipTransferred)
        assert (event.previous_owner, event.new_owner) == ("admin", "carol")
        with pytest.raises(NotOwner):
            engine.set_penalty_bp("admin", 100)
        engine.set_penalty_bp("carol", 100)

    def test_transfer_to_empty_rejected(self, engine):
        with pytest.raises(InvalidParameter):
            engine.transfer_ownership("admin", "")
        assert engine.owner == "admin"

    def test_owner_check_is_strict_identity(self, engine):
        with pytest.raises(NotOwner):
            engine.pause("Admin")


class TestParameters:

    def test_pause_events(self, engine):
        engine.pause("admin")
        assert isinstance(engine.events.last(), Paused)
        engine.unpause("admin")
        assert isinstance(engine.events.last(), Unpaused)

    def test_penalty_cap(self, engine):
        engine.set_penalty_bp("admin", MAX_BPS)
        assert engine.penalty_bp == MAX_BPS
        with pytest.raises(InvalidParameter):
            engine.set_penalty_bp("admin", MAX_BPS + 1)
        assert engine.penalty_bp == MAX_BPS

    def test_penalty_event(self, engine):
        old = engine.penalty_bp
        engine.set_penalty_bp("admin", 1000)
        event = engine.events.last()
        assert isinstance(event, PenaltyUpdated)
        assert (event.old_bp, event.new_bp) == (old, 1000)

    def test_bonus_cap(self, engine):
        with pytest.raises(InvalidParameter):
            engine.set_liquidation_bonus_bp("admin", 5001)
        engine.set_liquidation_bonus_bp("admin", 0)
        assert engine.liquidation_bonus_bp == 0
        assert isinstance(engine.events.last(), LiquidationBonusUpdated)

    def test_negative_bps_rejected(self, engine):
        with pytest.raises(InvalidParameter):
            engine.set_penalty_bp("admin", -1)

    def test_failed_update_emits_nothing(self, engine):
        count = len(engine.events)
        with pytest.raises(InvalidParameter):
            engine.set_liquidation_bonus_bp("admin", 9999)
        assert len(engine.events) == count

    def test_max_price_age(self, engine):
        engine.set_max_price_age("admin", timedelta(minutes=10))
        assert engine.oracle.max_price_age == timedelta(minutes=10)
        assert isinstance(engine.events.last(), MaxPriceAgeUpdated)

    def test_fixed_price(self, engine):
        engine.set_fixed_price("admin", 3000 * SCALE)
        assert engine.current_price() == 3000 * SCALE
        event = engine.events.last()
        assert isinstance(event, FixedPriceUpdated)
        assert event.old_price == PRICE

    def test_fixed_price_must_be_positive(self, engine):
        with pytest.raises(InvalidParameter):
            engine.set_fixed_price("admin", 0)

    def test_swap_and_clear_feed(self, engine):
        feed = StaticPriceFeed(2500 * 10 ** 8, T0)
        engine.update_price_feed("admin", feed)
        assert engine.current_price() == 2500 * SCALE
        assert isinstance(engine.events.last(), PriceFeedUpdated)
        engine.update_price_feed("admin", None)
        assert engine.current_price() == PRICE

    def test_engine_rejects_oversized_defaults(self, ledger):
        with pytest.raises(InvalidParameter):
            LoanLifecycleEngine(ledger, owner="admin", fixed_price=PRICE, penalty_bp=6000)


class TestRealEstateIndex:

    def test_not_configured(self, engine):
        with pytest.raises(OracleNotConfigured):
            engine.real_estate_index()

    def test_update_and_read(self, engine):
        index = StaticRealEstateIndex(30_000_000_000_000)
        engine.update_real_estate_oracle("admin", index)
        assert engine.real_estate_index() == (30_000_000_000_000, 8)
        assert isinstance(engine.events.last(), RealEstateOracleUpdated)

    def test_empty_source_rejected(self, engine):
        with pytest.raises(InvalidParameter):
            engine.update_real_estate_oracle("admin", None)

    def test_non_owner(self, engine):
        with pytest.raises(NotOwner):
            engine.update_real_estate_oracle("bob", StaticRealEstateIndex(1))

    def test_bad_reading(self, engine):
        class BrokenIndex:
            def latest(self):
                return 0, 8

        engine.update_real_estate_oracle("admin", BrokenIndex())
        with pytest.raises(InvalidPrice):
            engine.real_estate_index()
