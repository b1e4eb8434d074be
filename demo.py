#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lending Engine Step by Step

A pedagogical walk through one collateralized peer-to-peer loan book. Each
step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation   - The value ledger, the engine, posting a request
  4-6:   Lifecycle    - Funding, interest accrual, repayment
  7-9:   Failure      - Expiry and liquidation, refused payouts, reentrancy
  10-12: Operations   - Administration, live price feeds, conservation

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from lendledger import (
    Ledger, LoanLifecycleEngine, LiquidationKeeper, PriceOracle,
    TimeSeriesPriceFeed, PricePathParams, simulate_price_path,
    FixedPoint, SCALE, PLATFORM_WALLET,
    CollateralMismatch, TransferFailed, Reentrant, EnforcedPause, StalePrice,
    get_all_active_loans, total_property_units,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Initial funding (whole units of the collateral asset)
    initial_units: int = 1_000

    # Loan terms
    loan_units: int = 10
    duration_days: int = 30
    interest_rate: int = 5

    # Reference price, USD per unit
    price_usd: int = 2_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

WALLETS = ("alice", "bob", "carol", "keeper")


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def units(amount: int) -> str:
    return str(FixedPoint(amount))


def show_balances(ledger: Ledger, wallets=WALLETS + (PLATFORM_WALLET,)):
    for wallet in wallets:
        print(f"  {wallet:<18} {units(ledger.get_balance(wallet)):>24}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_ledger() -> Ledger:
    """Create the value ledger and fund the participants."""
    step_header(1, "The Value Ledger",
        "Balances of one native asset, in integer smallest units.")

    print("""
    Every amount is an int in the smallest unit (18 decimals, like wei).
    Value enters through the SYSTEM wallet, so the sum of all balances is
    always zero. test_mode lets a tutorial set balances directly.
    """)

    ledger = Ledger("tutorial", CONFIG.start_time, verbose=True, test_mode=True)
    for wallet in WALLETS:
        ledger.register_wallet(wallet)
        ledger.set_balance(wallet, CONFIG.initial_units * SCALE)

    section_header("Starting Balances")
    show_balances(ledger, WALLETS)
    return ledger


def step_02_engine(ledger: Ledger) -> LoanLifecycleEngine:
    """Create the lending engine on top of the ledger."""
    step_header(2, "The Lifecycle Engine",
        "One engine owns the loan book, the escrow wallet and the event log.")

    engine = LoanLifecycleEngine(
        ledger,
        owner="admin",
        fixed_price=CONFIG.price_usd * SCALE,
    )

    print(f">>> engine = {engine!r}")
    print(f"Escrow wallet:         {engine.escrow_wallet}")
    print(f"Collateral price:      {units(engine.current_price())} USD")
    print(f"Overdue penalty:       {engine.penalty_bp} bp")
    print(f"Liquidation bonus:     {engine.liquidation_bonus_bp} bp")
    return engine


def step_03_create_request(engine: LoanLifecycleEngine) -> int:
    """Post a loan request with exactly 2x collateral."""
    step_header(3, "Posting a Request",
        "The borrower stakes exactly twice the principal, up front.")

    amount = CONFIG.loan_units * SCALE

    section_header("Wrong Collateral Is Rejected")
    try:
        engine.create_request("alice", amount, CONFIG.duration_days,
                              CONFIG.interest_rate, value=amount)
    except CollateralMismatch as exc:
        print(f"✗ REJECTED: {exc}")

    section_header("Exact Collateral")
    request_id = engine.create_request(
        "alice", amount, CONFIG.duration_days, CONFIG.interest_rate,
        value=2 * amount,
        encrypted_cid="enc://loan-metadata",
        property_units=3,
    )
    request = engine.get_request(request_id)
    print(f"Request #{request_id}: {units(request.loan_amount)} for "
          f"{request.duration_days} days at {request.interest_rate}%")
    print(f"Stake in escrow: {units(engine.ledger.get_balance(PLATFORM_WALLET))}")
    return request_id


# ============================================================================
# PHASE 2: LIFECYCLE (Steps 4-6)
# ============================================================================

def step_04_fund(engine: LoanLifecycleEngine, request_id: int) -> int:
    """A lender funds the request."""
    step_header(4, "Funding",
        "The lender sends exactly the principal; the engine forwards it to the borrower.")

    request = engine.get_request(request_id)
    loan_id = engine.fund_request("bob", request_id, value=request.loan_amount)
    loan = engine.get_loan(loan_id)

    print(f"Loan #{loan_id}: {loan.borrower} borrows from {loan.lender}")
    print(f"Runs from {loan.start_time} to {loan.end_time}")
    print(f"Initial price captured: {units(loan.initial_price)} USD")

    section_header("Balances")
    show_balances(engine.ledger)
    return loan_id


def step_05_accrual(engine: LoanLifecycleEngine, loan_id: int):
    """Watch interest accrue and the price move the amount due."""
    step_header(5, "Interest Accrual",
        "Interest accrues per second in USD terms, then converts at today's price.")

    for days in (0, 10, 20):
        engine.ledger.advance_time(CONFIG.start_time + timedelta(days=days))
        print(f"Day {days:>2}: due {units(engine.compute_amount_due(loan_id))}")

    section_header("Collateral Appreciates 10%")
    engine.set_fixed_price("admin", CONFIG.price_usd * SCALE * 11 // 10)
    print(f"Due at the new price: {units(engine.compute_amount_due(loan_id))}")
    print("The borrower owes fewer units because each unit is worth more.")

    engine.set_fixed_price("admin", CONFIG.price_usd * SCALE)


def step_06_repay(engine: LoanLifecycleEngine, loan_id: int):
    """Repay in full, overpaying slightly to see the refund."""
    step_header(6, "Repayment",
        "The lender gets the amount due, the borrower gets the stake and any excess back.")

    due = engine.compute_amount_due(loan_id)
    engine.repay("alice", loan_id, value=due + SCALE)
    event = engine.events.last()

    print(f"Paid to lender:   {units(event.amount_due)}")
    print(f"Refunded excess:  {units(event.refund)}")
    print(f"Loan status:      {engine.loan_status(loan_id).value}")

    section_header("Balances")
    show_balances(engine.ledger)


# ============================================================================
# PHASE 3: FAILURE MODES (Steps 7-9)
# ============================================================================

def open_loan(engine: LoanLifecycleEngine, borrower: str, lender: str, days: int) -> int:
    amount = CONFIG.loan_units * SCALE
    request_id = engine.create_request(borrower, amount, days, CONFIG.interest_rate,
                                       value=2 * amount)
    return engine.fund_request(lender, request_id, value=amount)


def step_07_liquidation(engine: LoanLifecycleEngine):
    """Let a loan expire and have a keeper liquidate it."""
    step_header(7, "Expiry and Liquidation",
        "After the end time anyone may liquidate; the caller earns a bonus from the stake.")

    loan_id = open_loan(engine, "carol", "bob", days=7)
    keeper = LiquidationKeeper(engine, "keeper")
    end = engine.get_loan(loan_id).end_time

    print(f"Loan #{loan_id} ends at {end}")
    print(f"Keeper at the end time:        {len(keeper.step(end))} liquidated")
    events = keeper.step(end + timedelta(hours=1))
    for event in events:
        print(f"Keeper one hour later:         loan #{event.loan_id}, "
              f"bonus {units(event.bonus)}, lender {units(event.lender_share)}")


def step_08_refused_payout(engine: LoanLifecycleEngine):
    """A recipient refuses a payout; nothing changes."""
    step_header(8, "Refused Payouts Roll Back",
        "If any outbound transfer fails, the whole operation is undone.")

    loan_id = open_loan(engine, "alice", "carol", days=30)

    def refuse(transfer):
        raise RuntimeError("wallet rejects incoming value")

    engine.ledger.set_receive_hook("carol", refuse)
    before = dict(engine.ledger.balances)
    try:
        engine.repay("alice", loan_id, value=engine.compute_amount_due(loan_id))
    except TransferFailed as exc:
        print(f"✗ REJECTED: {exc} (cause: {exc.__cause__})")

    print(f"Balances unchanged: {engine.ledger.balances == before}")
    print(f"Loan still active:  {engine.loan_status(loan_id).value}")
    engine.ledger.set_receive_hook("carol", None)
    return loan_id


def step_09_reentrancy(engine: LoanLifecycleEngine, loan_id: int):
    """A lender tries to re-enter repay while being paid."""
    step_header(9, "Reentrancy Guard",
        "A recipient gets control during a payout but cannot start another operation.")

    attempts = []

    def greedy(transfer):
        try:
            engine.repay("alice", loan_id, value=transfer.amount)
        except Reentrant as exc:
            attempts.append(exc)

    engine.ledger.set_receive_hook("carol", greedy)
    engine.repay("alice", loan_id, value=engine.compute_amount_due(loan_id))
    engine.ledger.set_receive_hook("carol", None)

    print(f"Nested attempts rejected: {len(attempts)}")
    print(f"Lender paid exactly once: "
          f"{len(engine.ledger.transfers_with_memo(f'loan_{loan_id}:repayment_to_lender')) == 1}")


# ============================================================================
# PHASE 4: OPERATIONS (Steps 10-12)
# ============================================================================

def step_10_admin(engine: LoanLifecycleEngine):
    """Pause the engine and adjust parameters."""
    step_header(10, "Administration",
        "The owner can pause new business; liquidation keeps working.")

    engine.pause("admin")
    try:
        engine.create_request("alice", SCALE, 30, 5, value=2 * SCALE)
    except EnforcedPause as exc:
        print(f"✗ REJECTED while paused: {exc}")
    engine.unpause("admin")

    engine.set_penalty_bp("admin", 1000)
    print(f"Penalty now {engine.penalty_bp} bp")

    section_header("Admin Events")
    for event in list(engine.events)[-3:]:
        print(f"  {event.name}")


def step_11_price_feed(ledger: Ledger):
    """Run a loan against a simulated feed and watch staleness."""
    step_header(11, "Live Price Feeds",
        "With a feed configured, stale answers halt every price-dependent operation.")

    path = simulate_price_path(PricePathParams(steps=24 * 5, random_seed=7),
                               ledger.current_time)
    oracle = PriceOracle(ledger, feed=TimeSeriesPriceFeed(ledger, path))
    engine = LoanLifecycleEngine(ledger, owner="admin", oracle=oracle,
                                 escrow_wallet="feed_escrow")

    loan_id = open_loan(engine, "alice", "bob", days=3)
    for hours in (12, 48):
        ledger.advance_time(path[0][0] + timedelta(hours=hours))
        print(f"Hour {hours:>3}: price {units(engine.current_price())} USD, "
              f"due {units(engine.compute_amount_due(loan_id))}")

    ledger.advance_time(path[-1][0] + timedelta(hours=2))
    try:
        engine.compute_amount_due(loan_id)
    except StalePrice as exc:
        print(f"✗ After the path ends: {exc}")

    print(f"Pledged property units for alice: {total_property_units(engine.store, 'alice')}")
    return engine


def step_12_conservation(ledger: Ledger, engines):
    """Prove that no value was created or destroyed."""
    step_header(12, "Conservation Finale",
        "Every operation only moved value between wallets.")

    result = ledger.verify_conservation()
    print(f"Sum of all balances: {result['total']} (valid: {result['valid']})")

    for engine in engines:
        loan_ids, _, request_ids, _ = get_all_active_loans(engine.store)
        print(f"{engine.escrow_wallet}: {len(loan_ids)} active loans, "
              f"{len(request_ids)} open requests, "
              f"escrow {units(ledger.get_balance(engine.escrow_wallet))}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LENDING ENGINE - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger = step_01_ledger()
    wait_for_enter()

    engine = step_02_engine(ledger)
    wait_for_enter()

    request_id = step_03_create_request(engine)
    wait_for_enter()

    loan_id = step_04_fund(engine, request_id)
    wait_for_enter()

    step_05_accrual(engine, loan_id)
    wait_for_enter()

    step_06_repay(engine, loan_id)
    wait_for_enter()

    step_07_liquidation(engine)
    wait_for_enter()

    refused_loan = step_08_refused_payout(engine)
    wait_for_enter()

    step_09_reentrancy(engine, refused_loan)
    wait_for_enter()

    step_10_admin(engine)
    wait_for_enter()

    feed_engine = step_11_price_feed(ledger)
    wait_for_enter()

    step_12_conservation(ledger, [engine, feed_engine])

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See lendledger/lifecycle_engine.py for the state machine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
