"""
keeper.py - Liquidation Keeper

A permissionless liquidator that walks the ledger clock forward and
liquidates every loan past its end time.

Execution order each step():
1. Advance ledger time
2. Scan unsettled loans in id order
3. Liquidate each expired one, collecting the bonus into the keeper wallet

The event log is the audit trail - the keeper keeps no separate history
beyond the failures it skipped.
"""

from __future__ import annotations
from datetime import datetime
from typing import List, Tuple

from .core import TransferFailed
from .events import LoanLiquidated
from .lifecycle_engine import LoanLifecycleEngine


class LiquidationKeeper:
    """
    Time-stepping liquidation bot.

    Features:
    - Deterministic id-order scanning
    - Transfer failures on one loan do not stop the others; they are
      recorded in `failures` and the loan is retried on the next step
    """

    def __init__(self, engine: LoanLifecycleEngine, keeper_wallet: str):
        """
        Args:
            engine: Engine to liquidate against
            keeper_wallet: Wallet receiving liquidation bonuses (registered if missing)
        """
        self.engine = engine
        self.keeper_wallet = keeper_wallet
        self.failures: List[Tuple[int, datetime, TransferFailed]] = []
        self.verbose = engine.verbose

        if not engine.ledger.is_registered(keeper_wallet):
            engine.ledger.register_wallet(keeper_wallet)

    def expired_loans(self) -> List[int]:
        """Ids of unsettled loans past their end time."""
        now = self.engine.now
        loan_ids, loans, _, _ = self.engine.get_all_active_loans()
        return [i for i, loan in zip(loan_ids, loans) if loan.is_expired(now)]

    def step(self, timestamp: datetime) -> List[LoanLiquidated]:
        """
        Advance time and liquidate everything that has expired.

        Args:
            timestamp: New ledger time

        Returns:
            LoanLiquidated events emitted during this step
        """
        self.engine.ledger.advance_time(timestamp)
        liquidated: List[LoanLiquidated] = []

        for loan_id in self.expired_loans():
            try:
                self.engine.liquidate(self.keeper_wallet, loan_id)
            except TransferFailed as exc:
                if self.verbose:
                    print(f"[KEEPER] Liquidation of loan #{loan_id} refused: {exc}")
                self.failures.append((loan_id, timestamp, exc))
                continue
            liquidated.append(self.engine.events.last())

        return liquidated

    def run(self, timestamps: List[datetime]) -> List[LoanLiquidated]:
        """Step through a sequence of timestamps."""
        all_events: List[LoanLiquidated] = []
        for timestamp in timestamps:
            all_events.extend(self.step(timestamp))
        return all_events

    def pending_count(self) -> int:
        """Number of loans that are currently liquidatable."""
        return len(self.expired_loans())
