"""
ledger.py - Value Ledger for the Collateral Asset

The Ledger holds wallet balances of the single native collateral asset and
the logical clock every engine operation reads. It is the only module that
moves value between wallets.

Key responsibilities:
    - Transfers between registered wallets, never taking a balance below zero
    - Receive hooks: a wallet may register a callback that runs after value
      lands in it, the way a contract recipient gets control during a payment.
      A hook that raises refuses the payment (TransferFailed).
    - Audit trail of every applied transfer
    - Snapshot/restore so a failed operation can roll back completely
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set, Tuple, Any

from .core import (
    SYSTEM_WALLET,
    LedgerError, InsufficientFunds, WalletNotRegistered, TransferFailed,
)


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    An applied movement of value between two wallets.

    Attributes:
        amount: Smallest units moved (strictly positive)
        source: Wallet debited
        dest: Wallet credited
        memo: Why the value moved (e.g. "loan_0:principal")
        timestamp: Ledger time when applied
        sequence_number: Monotonic position in the ledger's log
    """
    amount: int
    source: str
    dest: str
    memo: str
    timestamp: datetime
    sequence_number: int

    def __repr__(self) -> str:
        return f"Transfer({self.amount}: {self.source}→{self.dest}, {self.memo})"


ReceiveHook = Callable[[Transfer], None]


class Ledger:
    """
    Single-asset ledger with balance validation and an audit trail.

    Thread Safety:
        Not thread-safe. The lending engine serializes every state-changing
        operation through one ledger instance.

    Example:
        ledger = Ledger("main", datetime(2025, 1, 1))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        ledger.issue("alice", 10 ** 18)
        ledger.transfer("alice", "bob", 10 ** 17, "payment_001")
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Enable debug output (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, int] = {}
        self.registered_wallets: Set[str] = set()
        self.hooks: Dict[str, ReceiveHook] = {}
        self.transaction_log: List[Transfer] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0

        # The system wallet issues value and may run a negative balance
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = 0

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_balance(self, wallet_id: str) -> int:
        """
        Get a wallet's balance.

        Raises:
            WalletNotRegistered: If wallet is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return self.balances[wallet_id]

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def total_supply(self) -> int:
        """Sum of all balances, including the (negative) system wallet."""
        return sum(self.balances[w] for w in sorted(self.registered_wallets))

    def total_issued(self) -> int:
        """Value issued into circulation through the system wallet."""
        return -self.balances[SYSTEM_WALLET]

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that transfers never created or destroyed value.

        Every issuance debits the system wallet, so the sum across all
        wallets must stay at zero.

        Returns:
            Dict with 'valid', 'total' and 'issued' keys
        """
        total = self.total_supply()
        return {
            'valid': total == 0,
            'total': total,
            'issued': self.total_issued(),
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Time can only move forward, never backward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str, on_receive: Optional[ReceiveHook] = None) -> str:
        """
        Register a new wallet in the ledger.

        Args:
            wallet_id: Unique identifier for the wallet
            on_receive: Optional hook invoked after each credit to this wallet

        Returns:
            The wallet_id that was registered

        Raises:
            ValueError: If wallet is empty or already registered
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = 0
        if on_receive is not None:
            self.hooks[wallet_id] = on_receive
        return wallet_id

    def set_receive_hook(self, wallet_id: str, on_receive: Optional[ReceiveHook]) -> None:
        """Install, replace or (with None) remove a wallet's receive hook."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if on_receive is None:
            self.hooks.pop(wallet_id, None)
        else:
            self.hooks[wallet_id] = on_receive

    def set_balance(self, wallet_id: str, amount: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This bypasses the transfer log and is only available in test
        mode. Use issue() or transfer() otherwise.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() or transfer() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        self._check_amount(amount, allow_zero=True)
        delta = amount - self.balances[wallet_id]
        self.balances[wallet_id] = amount
        # Keep the conservation identity intact
        self.balances[SYSTEM_WALLET] -= delta

    # ========================================================================
    # TRANSFERS (Mutating)
    # ========================================================================

    def issue(self, wallet_id: str, amount: int, memo: str = "issue") -> Transfer:
        """Issue new value from the system wallet."""
        return self.transfer(SYSTEM_WALLET, wallet_id, amount, memo)

    def transfer(self, source: str, dest: str, amount: int, memo: str) -> Transfer:
        """
        Move value between wallets, then hand control to the recipient's hook.

        The balances and the log entry are committed before the hook runs.
        If the hook raises, this transfer is undone (along with anything the
        hook itself did to the ledger) and TransferFailed is raised with the
        hook's exception as its cause.

        Raises:
            WalletNotRegistered: If either wallet is not registered
            InsufficientFunds: If source would go below zero
            TransferFailed: If the recipient's hook refuses the payment
        """
        self._check_amount(amount)
        if source == dest:
            raise ValueError("Source and dest must be different")
        for wallet_id in (source, dest):
            if wallet_id not in self.registered_wallets:
                raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if source != SYSTEM_WALLET and self.balances[source] < amount:
            if self.verbose:
                print(f"✗ REJECTED: {source} has {self.balances[source]}, needs {amount}")
            raise InsufficientFunds(
                f"{source} has {self.balances[source]}, cannot send {amount}"
            )

        checkpoint = self.snapshot()
        sequence = self._next_sequence
        self._next_sequence += 1
        record = Transfer(
            amount=amount,
            source=source,
            dest=dest,
            memo=memo,
            timestamp=self._current_time,
            sequence_number=sequence,
        )
        self.balances[source] -= amount
        self.balances[dest] += amount
        self.transaction_log.append(record)

        hook = self.hooks.get(dest)
        if hook is not None:
            try:
                hook(record)
            except Exception as exc:
                self.restore(checkpoint)
                if self.verbose:
                    print(f"✗ REFUSED: {record!r}: {exc}")
                raise TransferFailed(f"{dest} refused {record!r}: {exc}") from exc

        if self.verbose:
            print(f"✓ APPLIED: {record!r}")
        return record

    @staticmethod
    def _check_amount(amount: int, allow_zero: bool = False) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise ValueError(f"Amount must be int, got {type(amount).__name__}")
        if amount < 0 or (amount == 0 and not allow_zero):
            raise ValueError(f"Amount must be positive, got {amount}")

    # ========================================================================
    # ROLLBACK SUPPORT
    # ========================================================================

    def snapshot(self) -> Tuple[Dict[str, int], int, int]:
        """Capture balances and log position for a later restore()."""
        return dict(self.balances), len(self.transaction_log), self._next_sequence

    def restore(self, snapshot: Tuple[Dict[str, int], int, int]) -> None:
        """
        Return balances and the log to a snapshot.

        Wallets registered after the snapshot keep their registration with a
        zero balance; registration is not part of an operation's effects.
        """
        balances, log_length, sequence = snapshot
        for wallet_id in self.balances:
            self.balances[wallet_id] = balances.get(wallet_id, 0)
        del self.transaction_log[log_length:]
        self._next_sequence = sequence

    def clone(self) -> Ledger:
        """Create an independent copy (hooks are not copied)."""
        cloned = Ledger(self.name, self._current_time, verbose=self.verbose,
                        test_mode=self._test_mode)
        cloned.balances = dict(self.balances)
        cloned.registered_wallets = set(self.registered_wallets)
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        return cloned

    def transfers_with_memo(self, prefix: str) -> List[Transfer]:
        """Applied transfers whose memo starts with prefix."""
        return [t for t in self.transaction_log if t.memo.startswith(prefix)]

    def __repr__(self) -> str:
        return (f"Ledger({self.name!r}, wallets={len(self.registered_wallets)}, "
                f"transfers={len(self.transaction_log)}, time={self._current_time})")
