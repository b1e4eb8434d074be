"""
lifecycle_engine.py - Loan Lifecycle Engine

The state machine for collateralized peer-to-peer loans:

    create_request   ->  Requested
    fund_request     :   Requested -> Active
    repay            :   Active -> Repaid
    liquidate        :   Active -> Liquidated   (only after the end time)

Every state-changing operation follows the same discipline:
1. Guard checks (reentrancy, pause, ownership)
2. Validation against current state (no side effects on failure)
3. Effects: inbound value into escrow, store mutation, event emission
4. Interactions: outbound transfers, strictly last

Operations are atomic. If any step raises, the store, the value ledger and
the event log are restored to where they were before the operation began,
so a refused payout leaves no partial settlement behind.

Amounts due are computed in reference value (18-decimal USD) at the price
captured when the loan was funded and converted back to collateral units at
the current price:

    principal_value = loan_amount * initial_price / SCALE
    interest_value  = principal_value * rate * elapsed / (SECONDS_PER_YEAR * 100)
    due             = (principal_value + interest_value) * SCALE / current_price
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional, Tuple

from .core import (
    PLATFORM_WALLET, MAX_INTEREST_RATE, BPS_DENOMINATOR, MAX_BPS,
    DEFAULT_PENALTY_BP, DEFAULT_LIQUIDATION_BONUS_BP, COLLATERAL_MULTIPLIER,
    SECONDS_PER_YEAR, EMPTY_COMMITMENT,
    LoanRequest, ActiveLoan, LoanStatus,
    InvalidAmount, InvalidDuration, InvalidRate, CollateralMismatch,
    AmountMismatch, InsufficientPayment, InvalidParameter,
    RequestNotActive, AlreadyRepaid, NotExpired, NotBorrower,
    InvalidPrice, OracleNotConfigured,
    elapsed_seconds, validate_commitment,
)
from .events import (
    EventLog,
    LoanRequestCreated, LoanFunded, LoanRepaid, LoanLiquidated,
    OwnershipTransferred, Paused, Unpaused, PenaltyUpdated,
    LiquidationBonusUpdated, MaxPriceAgeUpdated, PriceFeedUpdated,
    FixedPriceUpdated, RealEstateOracleUpdated,
)
from .fixed_point import SCALE, mul_div, checked_add, checked_mul
from .guard import AccessGuard
from .ledger import Ledger
from .price_oracle import PriceOracle
from .pricing_source import PriceFeed, RealEstateIndexSource
from .store import LedgerStore
from . import queries


def _check_bps(name: str, bp: int) -> int:
    if not isinstance(bp, int) or isinstance(bp, bool) or bp < 0 or bp > MAX_BPS:
        raise InvalidParameter(f"{name} must be an int in [0, {MAX_BPS}], got {bp!r}")
    return bp


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class LoanLifecycleEngine:
    """
    Collateralized lending engine over one store and one value ledger.

    Callers identify themselves with their wallet id (`caller`) and attach
    value with `value`, which moves from the caller into the escrow wallet
    as part of the operation.

    Example:
        ledger = Ledger("main", datetime(2025, 1, 1), verbose=False)
        engine = LoanLifecycleEngine(ledger, owner="admin", fixed_price=2000 * SCALE)

        rid = engine.create_request("alice", 10 ** 18, 30, 5, value=2 * 10 ** 18)
        lid = engine.fund_request("bob", rid, value=10 ** 18)
        due = engine.compute_amount_due(lid)
        engine.repay("alice", lid, value=due)
    """

    def __init__(
        self,
        ledger: Ledger,
        owner: str,
        oracle: Optional[PriceOracle] = None,
        store: Optional[LedgerStore] = None,
        events: Optional[EventLog] = None,
        fixed_price: Optional[int] = None,
        penalty_bp: int = DEFAULT_PENALTY_BP,
        liquidation_bonus_bp: int = DEFAULT_LIQUIDATION_BONUS_BP,
        real_estate_source: Optional[RealEstateIndexSource] = None,
        escrow_wallet: str = PLATFORM_WALLET,
        verbose: Optional[bool] = None,
    ):
        """
        Initialize the engine.

        Args:
            ledger: Value ledger; also the clock every operation reads
            owner: Wallet id allowed to administer the engine
            oracle: Price adapter (a fixed-mode oracle on the ledger clock if omitted)
            store: Record store (fresh if omitted)
            events: Event stream (fresh if omitted)
            fixed_price: 18-decimal fixed price for a default oracle
            penalty_bp: Overdue penalty in basis points
            liquidation_bonus_bp: Liquidator's share of the stake in basis points
            real_estate_source: Optional real-estate index source
            escrow_wallet: Wallet holding stakes; registered if missing
            verbose: Debug output (defaults to the ledger's setting)
        """
        self.ledger = ledger
        self.store = store if store is not None else LedgerStore()
        self.oracle = oracle if oracle is not None else PriceOracle(ledger, fixed_price=fixed_price)
        self.events = events if events is not None else EventLog()
        self.guard = AccessGuard(owner)
        self.penalty_bp = _check_bps("penalty_bp", penalty_bp)
        self.liquidation_bonus_bp = _check_bps("liquidation_bonus_bp", liquidation_bonus_bp)
        self.real_estate_source = real_estate_source
        self.escrow_wallet = escrow_wallet
        self.verbose = ledger.verbose if verbose is None else verbose

        if not ledger.is_registered(escrow_wallet):
            ledger.register_wallet(escrow_wallet)

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def now(self) -> datetime:
        return self.ledger.current_time

    @property
    def owner(self) -> str:
        return self.guard.owner

    @property
    def paused(self) -> bool:
        return self.guard.paused

    def current_price(self) -> int:
        """18-decimal price of the collateral asset (see PriceOracle)."""
        return self.oracle.current_price()

    def real_estate_index(self) -> Tuple[int, int]:
        """
        Latest real-estate index reading.

        Returns:
            (value, decimals)

        Raises:
            OracleNotConfigured: If no index source is set
            InvalidPrice: If the source reports a non-positive value
        """
        if self.real_estate_source is None:
            raise OracleNotConfigured("No real-estate index source configured")
        value, decimals = self.real_estate_source.latest()
        if value <= 0:
            raise InvalidPrice(f"Real-estate index answered {value}")
        return value, decimals

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """Run a block all-or-nothing across store, ledger and event log."""
        store_checkpoint = self.store.snapshot()
        ledger_checkpoint = self.ledger.snapshot()
        event_count = len(self.events)
        try:
            yield
        except Exception as exc:
            self.store.restore(store_checkpoint)
            self.ledger.restore(ledger_checkpoint)
            self.events.truncate(event_count)
            if self.verbose:
                print(f"✗ REVERTED {operation}: {type(exc).__name__}: {exc}")
            raise

    def _collect(self, caller: str, value: int, memo: str) -> None:
        """Move attached value from the caller into escrow."""
        if value:
            self.ledger.transfer(caller, self.escrow_wallet, value, memo)

    def _pay(self, dest: str, amount: int, memo: str) -> None:
        """Outbound leg from escrow. Zero amounts are skipped."""
        if amount:
            self.ledger.transfer(self.escrow_wallet, dest, amount, memo)

    # ========================================================================
    # LIFECYCLE OPERATIONS
    # ========================================================================

    def create_request(
        self,
        caller: str,
        amount: int,
        duration_days: int,
        interest_rate: int,
        *,
        value: int,
        metadata_commitment: bytes = EMPTY_COMMITMENT,
        encrypted_cid: str = "",
        property_commitment: bytes = EMPTY_COMMITMENT,
        appraisal_encrypted_cid: str = "",
        property_units: int = 0,
    ) -> int:
        """
        Post a loan request, escrowing the stake.

        Args:
            caller: Borrower wallet
            amount: Principal requested
            duration_days: Loan duration once funded
            interest_rate: Integer annual percent, 0 < rate <= 7
            value: Stake attached; must equal exactly 2 x amount
            metadata_commitment: Opaque 32-byte commitment (recorded, not verified)
            encrypted_cid: Encrypted off-chain metadata reference
            property_commitment: Opaque 32-byte property commitment
            appraisal_encrypted_cid: Encrypted appraisal reference
            property_units: Pledged property units

        Returns:
            The new request id

        Raises:
            EnforcedPause, InvalidAmount, InvalidDuration, InvalidRate,
            CollateralMismatch, InvalidParameter
        """
        self.guard.require_not_paused()
        if not _is_int(amount) or amount <= 0:
            raise InvalidAmount(f"Loan amount must be positive, got {amount!r}")
        if not _is_int(duration_days) or duration_days <= 0:
            raise InvalidDuration(f"Duration must be positive, got {duration_days!r}")
        if not _is_int(interest_rate) or not 0 < interest_rate <= MAX_INTEREST_RATE:
            raise InvalidRate(
                f"Interest rate must be in (0, {MAX_INTEREST_RATE}], got {interest_rate!r}"
            )
        if not _is_int(value) or value != checked_mul(amount, COLLATERAL_MULTIPLIER):
            raise CollateralMismatch(
                f"Stake must be exactly {COLLATERAL_MULTIPLIER}x the loan amount "
                f"({COLLATERAL_MULTIPLIER * amount}), got {value!r}"
            )
        metadata_commitment = validate_commitment("metadata_commitment", metadata_commitment)
        property_commitment = validate_commitment("property_commitment", property_commitment)
        if not _is_int(property_units) or property_units < 0:
            raise InvalidParameter(f"Property units must be >= 0, got {property_units!r}")

        with self._atomic("create_request"):
            request_id = self.store.next_request_id
            self._collect(caller, value, f"request_{request_id}:stake")
            request = self.store.add_request(
                borrower=caller,
                loan_amount=amount,
                duration_days=duration_days,
                interest_rate=interest_rate,
                stake=value,
                metadata_commitment=metadata_commitment,
                encrypted_cid=encrypted_cid,
                property_commitment=property_commitment,
                appraisal_encrypted_cid=appraisal_encrypted_cid,
                property_units=property_units,
                created_at=self.now,
            )
            self.events.emit(LoanRequestCreated(
                timestamp=self.now,
                request_id=request.request_id,
                borrower=caller,
                loan_amount=amount,
                duration_days=duration_days,
                interest_rate=interest_rate,
                stake=value,
                metadata_commitment=metadata_commitment,
                encrypted_cid=encrypted_cid,
                property_commitment=property_commitment,
                appraisal_encrypted_cid=appraisal_encrypted_cid,
                property_units=property_units,
            ))

        if self.verbose:
            print(f"✓ REQUESTED #{request.request_id}: {caller} asks {amount} "
                  f"for {duration_days}d at {interest_rate}%")
        return request.request_id

    def fund_request(self, caller: str, request_id: int, *, value: int) -> int:
        """
        Fund an open request, turning it into an active loan.

        The principal reaches the borrower only after the loan is recorded
        and the event emitted.

        Returns:
            The new loan id

        Raises:
            Reentrant, EnforcedPause, RequestNotActive, AmountMismatch,
            OracleError, TransferFailed
        """
        with self.guard.non_reentrant():
            self.guard.require_not_paused()
            request = self.store.get_request(request_id)
            if not request.is_active:
                raise RequestNotActive(f"Request {request_id} is not active")
            if value != request.loan_amount:
                raise AmountMismatch(
                    f"Request {request_id} needs exactly {request.loan_amount}, got {value!r}"
                )
            initial_price = self.oracle.current_price()
            start = self.now
            end = start + timedelta(days=request.duration_days)

            with self._atomic("fund_request"):
                self._collect(caller, value, f"request_{request_id}:funding")
                self.store.deactivate_request(request_id)
                loan = self.store.add_loan(
                    request=request,
                    lender=caller,
                    start_time=start,
                    end_time=end,
                    initial_price=initial_price,
                )
                self.events.emit(LoanFunded(
                    timestamp=start,
                    loan_id=loan.loan_id,
                    request_id=request_id,
                    borrower=loan.borrower,
                    lender=caller,
                    loan_amount=loan.loan_amount,
                    stake=loan.stake,
                    start_time=start,
                    end_time=end,
                    initial_price=initial_price,
                ))
                self._pay(loan.borrower, loan.loan_amount, f"loan_{loan.loan_id}:principal")

        if self.verbose:
            print(f"✓ FUNDED loan #{loan.loan_id} from request #{request_id}: "
                  f"{caller} -> {loan.borrower} {loan.loan_amount}")
        return loan.loan_id

    def _amount_due_at(self, loan: ActiveLoan, price: int) -> int:
        elapsed = elapsed_seconds(loan.start_time, self.now)
        principal_value = mul_div(loan.loan_amount, loan.initial_price, SCALE)
        interest_value = mul_div(
            checked_mul(principal_value, loan.interest_rate),
            elapsed,
            SECONDS_PER_YEAR * 100,
        )
        total_value = checked_add(principal_value, interest_value)
        return mul_div(total_value, SCALE, price)

    def _with_penalty(self, due: int, price: int) -> int:
        # Penalty is a share of value, so it is price-consistent
        value = mul_div(due, price, SCALE)
        value = checked_add(value, mul_div(value, self.penalty_bp, BPS_DENOMINATOR))
        return mul_div(value, SCALE, price)

    def _unsettled_loan(self, loan_id: int) -> ActiveLoan:
        loan = self.store.get_loan(loan_id)
        if loan.is_repaid:
            raise AlreadyRepaid(f"Loan {loan_id} is already settled")
        return loan

    def compute_amount_due(self, loan_id: int) -> int:
        """
        Principal plus time-accrued interest, in collateral units, at the
        current price. No overdue penalty.

        Raises:
            LoanNotFound, AlreadyRepaid, OracleError
        """
        loan = self._unsettled_loan(loan_id)
        return self._amount_due_at(loan, self.oracle.current_price())

    def amount_due_with_penalty(self, loan_id: int) -> int:
        """What repay() would require right now, penalty included once overdue."""
        loan = self._unsettled_loan(loan_id)
        price = self.oracle.current_price()
        due = self._amount_due_at(loan, price)
        if loan.is_expired(self.now):
            due = self._with_penalty(due, price)
        return due

    def repay(
        self,
        caller: str,
        loan_id: int,
        *,
        value: int,
        amount: Optional[int] = None,
    ) -> int:
        """
        Settle a loan in full.

        Pays the amount due to the lender, returns the whole stake to the
        borrower and refunds any excess of `value` over the amount due.

        Args:
            caller: Must be the loan's borrower
            loan_id: Loan to settle
            value: Payment attached; must cover the amount due
            amount: The caller's quoted amount due (recorded in the event only)

        Returns:
            The amount due that was paid to the lender

        Raises:
            Reentrant, EnforcedPause, LoanNotFound, NotBorrower, AlreadyRepaid,
            InsufficientPayment, OracleError, TransferFailed
        """
        with self.guard.non_reentrant():
            self.guard.require_not_paused()
            loan = self.store.get_loan(loan_id)
            if caller != loan.borrower:
                raise NotBorrower(f"{caller} is not the borrower of loan {loan_id}")
            if loan.is_repaid:
                raise AlreadyRepaid(f"Loan {loan_id} is already settled")
            if not _is_int(value) or value <= 0:
                raise InsufficientPayment("Repayment must carry value")

            price = self.oracle.current_price()
            due = self._amount_due_at(loan, price)
            overdue = loan.is_expired(self.now)
            if overdue:
                due = self._with_penalty(due, price)
            if value < due:
                raise InsufficientPayment(f"Loan {loan_id} needs {due}, got {value}")
            refund = value - due

            with self._atomic("repay"):
                self._collect(caller, value, f"loan_{loan_id}:repayment")
                self.store.mark_repaid(loan_id)
                self.events.emit(LoanRepaid(
                    timestamp=self.now,
                    loan_id=loan_id,
                    borrower=loan.borrower,
                    lender=loan.lender,
                    amount_due=due,
                    quoted_amount=amount if amount is not None else due,
                    penalty_applied=overdue,
                    refund=refund,
                ))
                self._pay(loan.lender, due, f"loan_{loan_id}:repayment_to_lender")
                self._pay(loan.borrower, loan.stake, f"loan_{loan_id}:stake_return")
                self._pay(loan.borrower, refund, f"loan_{loan_id}:refund")

        if self.verbose:
            penalty = " (with penalty)" if overdue else ""
            print(f"✓ REPAID loan #{loan_id}: {due} to {loan.lender}{penalty}")
        return due

    def liquidate(self, caller: str, loan_id: int) -> int:
        """
        Liquidate an expired, unsettled loan. Callable by anyone, also while
        paused.

        The stake is split: bonus = stake * liquidation_bonus_bp / 10000
        (floored) to the caller, the remainder to the lender.

        Returns:
            The bonus paid to the caller

        Raises:
            Reentrant, LoanNotFound, AlreadyRepaid, NotExpired, TransferFailed
        """
        with self.guard.non_reentrant():
            loan = self.store.get_loan(loan_id)
            if loan.is_repaid:
                raise AlreadyRepaid(f"Loan {loan_id} is already settled")
            if not loan.is_expired(self.now):
                raise NotExpired(f"Loan {loan_id} runs until {loan.end_time}")

            bonus = mul_div(loan.stake, self.liquidation_bonus_bp, BPS_DENOMINATOR)
            lender_share = loan.stake - bonus

            with self._atomic("liquidate"):
                self.store.mark_repaid(loan_id, liquidated=True)
                self.events.emit(LoanLiquidated(
                    timestamp=self.now,
                    loan_id=loan_id,
                    liquidator=caller,
                    lender=loan.lender,
                    stake=loan.stake,
                    bonus=bonus,
                    lender_share=lender_share,
                ))
                self._pay(caller, bonus, f"loan_{loan_id}:liquidation_bonus")
                self._pay(loan.lender, lender_share, f"loan_{loan_id}:liquidation_to_lender")

        if self.verbose:
            print(f"✓ LIQUIDATED loan #{loan_id} by {caller}: bonus {bonus}, lender {lender_share}")
        return bonus

    # ========================================================================
    # ADMINISTRATION (owner only)
    # ========================================================================

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.guard.only_owner(caller)
        previous = self.guard.transfer_ownership(new_owner)
        self.events.emit(OwnershipTransferred(self.now, previous, new_owner))

    def pause(self, caller: str) -> None:
        self.guard.only_owner(caller)
        self.guard.pause()
        self.events.emit(Paused(self.now, caller))

    def unpause(self, caller: str) -> None:
        self.guard.only_owner(caller)
        self.guard.unpause()
        self.events.emit(Unpaused(self.now, caller))

    def set_penalty_bp(self, caller: str, penalty_bp: int) -> None:
        self.guard.only_owner(caller)
        old, self.penalty_bp = self.penalty_bp, _check_bps("penalty_bp", penalty_bp)
        self.events.emit(PenaltyUpdated(self.now, old, penalty_bp))

    def set_liquidation_bonus_bp(self, caller: str, bonus_bp: int) -> None:
        self.guard.only_owner(caller)
        old = self.liquidation_bonus_bp
        self.liquidation_bonus_bp = _check_bps("liquidation_bonus_bp", bonus_bp)
        self.events.emit(LiquidationBonusUpdated(self.now, old, bonus_bp))

    def set_max_price_age(self, caller: str, max_age: timedelta) -> None:
        self.guard.only_owner(caller)
        old = self.oracle.max_price_age
        self.oracle.set_max_price_age(max_age)
        self.events.emit(MaxPriceAgeUpdated(self.now, old, max_age))

    def update_price_feed(self, caller: str, feed: Optional[PriceFeed]) -> None:
        """Swap the price feed; None switches to the fixed price."""
        self.guard.only_owner(caller)
        old = self.oracle.feed
        self.oracle.set_feed(feed)
        self.events.emit(PriceFeedUpdated(self.now, old, feed))

    def set_fixed_price(self, caller: str, price: int) -> None:
        self.guard.only_owner(caller)
        old = self.oracle.fixed_price
        self.oracle.set_fixed_price(price)
        self.events.emit(FixedPriceUpdated(self.now, old, price))

    def update_real_estate_oracle(self, caller: str, source: RealEstateIndexSource) -> None:
        self.guard.only_owner(caller)
        if source is None:
            raise InvalidParameter("Real-estate index source cannot be empty")
        old, self.real_estate_source = self.real_estate_source, source
        self.events.emit(RealEstateOracleUpdated(self.now, old, source))

    # ========================================================================
    # QUERY METHODS
    # ========================================================================

    def get_request(self, request_id: int) -> LoanRequest:
        return self.store.get_request(request_id)

    def get_loan(self, loan_id: int) -> ActiveLoan:
        return self.store.get_loan(loan_id)

    def loan_status(self, loan_id: int) -> LoanStatus:
        return queries.get_loan_status(self.store, loan_id)

    def get_all_active_loans(
        self,
    ) -> Tuple[List[int], List[ActiveLoan], List[int], List[LoanRequest]]:
        return queries.get_all_active_loans(self.store)

    def get_borrower_requests(self, borrower: str) -> List[LoanRequest]:
        return queries.get_borrower_requests(self.store, borrower)

    def get_borrower_loans(self, borrower: str) -> List[int]:
        return queries.get_borrower_loans(self.store, borrower)

    def get_lender_loans(self, lender: str) -> List[int]:
        return queries.get_lender_loans(self.store, lender)

    def __repr__(self):
        return (f"LoanLifecycleEngine(owner={self.owner!r}, paused={self.paused}, "
                f"requests={self.store.next_request_id}, loans={self.store.next_loan_id})")
