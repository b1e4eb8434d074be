"""
Core types for the collateralized lending engine.

This module provides the foundational data structures and protocols:
1. Constants: interest, basis point and staleness limits, reserved wallets
2. Exceptions: LendingError and the category hierarchy beneath it
3. Immutable records: LoanRequest, ActiveLoan
4. Protocols: Clock and LoanStoreView for read-only access

All monetary quantities are integers in the smallest unit of the collateral
asset. Prices are integers in 18-decimal fixed point (see fixed_point.py).
Nothing in this module mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance. Exempt from balance validation.
SYSTEM_WALLET = "system"

# Escrow wallet holding stakes and in-flight payments.
PLATFORM_WALLET = "lending_platform"

# Interest rate is an integer percent, 0 < rate <= MAX_INTEREST_RATE.
MAX_INTEREST_RATE = 7

# Penalty and liquidation bonus are expressed in basis points.
BPS_DENOMINATOR = 10_000
MAX_BPS = 5_000

DEFAULT_PENALTY_BP = 500
DEFAULT_LIQUIDATION_BONUS_BP = 500

# Maximum tolerated age of a feed reading.
DEFAULT_MAX_PRICE_AGE = timedelta(hours=1)

# Stake must equal exactly this multiple of the principal.
COLLATERAL_MULTIPLIER = 2

SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY

# Size of the opaque metadata and property commitments.
COMMITMENT_SIZE = 32
EMPTY_COMMITMENT = bytes(COMMITMENT_SIZE)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending engine errors."""
    pass


# --- Validation: rejected before any state change ---------------------------

class ValidationError(LendingError):
    """Raised when caller-supplied input is malformed."""
    pass


class InvalidAmount(ValidationError):
    """Raised when a loan amount is not strictly positive."""
    pass


class InvalidDuration(ValidationError):
    """Raised when a loan duration is not strictly positive."""
    pass


class InvalidRate(ValidationError):
    """Raised when an interest rate is outside (0, MAX_INTEREST_RATE]."""
    pass


class CollateralMismatch(ValidationError):
    """Raised when the posted stake is not exactly twice the loan amount."""
    pass


class AmountMismatch(ValidationError):
    """Raised when a lender supplies anything but the exact loan amount."""
    pass


class InsufficientPayment(ValidationError):
    """Raised when a repayment does not cover the amount due."""
    pass


class InvalidParameter(ValidationError):
    """Raised when an administrative parameter is out of range."""
    pass


# --- State conflict: caller must re-query current state ---------------------

class StateConflict(LendingError):
    """Raised when an operation does not apply to the current state."""
    pass


class RequestNotActive(StateConflict):
    """Raised when funding a request that was already funded."""
    pass


class RequestNotFound(RequestNotActive):
    """Raised when a request id was never allocated."""
    pass


class LoanNotFound(StateConflict):
    """Raised when a loan id was never allocated."""
    pass


class AlreadyRepaid(StateConflict):
    """Raised when a loan has already been repaid or liquidated."""
    pass


class NotExpired(StateConflict):
    """Raised when liquidating a loan that has not passed its end time."""
    pass


class NotBorrower(StateConflict):
    """Raised when someone other than the borrower tries to repay."""
    pass


class Reentrant(StateConflict):
    """Raised when a guarded operation is entered while one is in flight."""
    pass


class EnforcedPause(StateConflict):
    """Raised when a pausable operation is called while paused."""
    pass


class ExpectedPause(StateConflict):
    """Raised when unpausing an engine that is not paused."""
    pass


# --- Access -----------------------------------------------------------------

class AccessError(LendingError):
    """Base exception for authorization failures."""
    pass


class NotOwner(AccessError):
    """Raised when a non-owner calls an owner-only operation."""
    pass


# --- Oracle -----------------------------------------------------------------

class OracleError(LendingError):
    """Base exception for price and index source failures."""
    pass


class InvalidPrice(OracleError):
    """Raised when a price source reports a non-positive value."""
    pass


class StalePrice(OracleError):
    """Raised when the latest feed reading is older than the staleness bound."""
    pass


class OracleNotConfigured(OracleError):
    """Raised when reading a source that has not been set."""
    pass


class ArithmeticOverflow(LendingError):
    """Raised when fixed-point arithmetic leaves the 256-bit unsigned range."""
    pass


# --- Value movement ---------------------------------------------------------

class LedgerError(LendingError):
    """Base exception for value ledger errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a transfer would take a wallet balance below zero."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class TransferFailed(LendingError):
    """Raised when an outbound transfer is refused by its recipient."""
    pass


# ============================================================================
# RECORDS
# ============================================================================

class LoanStatus(Enum):
    """Lifecycle state of a request or loan."""
    REQUESTED = "REQUESTED"
    ACTIVE = "ACTIVE"
    REPAID = "REPAID"
    LIQUIDATED = "LIQUIDATED"


@dataclass(frozen=True, slots=True)
class LoanRequest:
    """
    A borrower's proposal awaiting funding.

    Immutable once created except is_active, which the store clears exactly
    once when the request is funded (by replacing the record).

    Attributes:
        request_id: Sequential id, independent of loan ids
        borrower: Wallet id of the borrower
        loan_amount: Principal in smallest units
        duration_days: Requested duration
        interest_rate: Integer annual percent
        is_active: True until funded
        stake: Collateral posted, always 2 x loan_amount
        metadata_commitment: Opaque 32-byte commitment to loan metadata
        encrypted_cid: Off-chain encrypted reference for the metadata
        property_commitment: Opaque 32-byte commitment to property evidence
        appraisal_encrypted_cid: Off-chain encrypted appraisal reference
        property_units: Count of pledged property units
        created_at: Time the request was posted
    """
    request_id: int
    borrower: str
    loan_amount: int
    duration_days: int
    interest_rate: int
    is_active: bool
    stake: int
    metadata_commitment: bytes
    encrypted_cid: str
    property_commitment: bytes
    appraisal_encrypted_cid: str
    property_units: int
    created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ActiveLoan:
    """
    A funded request accruing interest until repaid or liquidated.

    is_repaid is the single terminal flag shared by repayment and
    liquidation; liquidated only records which of the two happened.
    The lender is fixed at funding and never changes.
    """
    loan_id: int
    request_id: int
    borrower: str
    lender: str
    loan_amount: int
    stake: int
    start_time: datetime
    end_time: datetime
    interest_rate: int
    initial_price: int
    property_units: int
    is_repaid: bool = False
    liquidated: bool = False

    @property
    def status(self) -> LoanStatus:
        if not self.is_repaid:
            return LoanStatus.ACTIVE
        return LoanStatus.LIQUIDATED if self.liquidated else LoanStatus.REPAID

    def is_expired(self, now: datetime) -> bool:
        """True strictly after the end time."""
        return now > self.end_time


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class Clock(Protocol):
    """Anything exposing the current logical time."""

    @property
    def current_time(self) -> datetime:
        ...


@runtime_checkable
class LoanStoreView(Protocol):
    """
    Read-only view of the ledger store.

    The query layer depends only on these methods, so it can never mutate
    the records it projects.
    """

    @property
    def next_request_id(self) -> int:
        ...

    @property
    def next_loan_id(self) -> int:
        ...

    def get_request(self, request_id: int) -> LoanRequest:
        ...

    def get_loan(self, loan_id: int) -> ActiveLoan:
        ...

    def loans_of_borrower(self, borrower: str) -> List[int]:
        ...

    def loans_of_lender(self, lender: str) -> List[int]:
        ...


def elapsed_seconds(start: datetime, now: datetime) -> int:
    """Whole seconds from start to now, never negative."""
    return max(0, int((now - start).total_seconds()))


def validate_commitment(name: str, commitment: bytes) -> bytes:
    """Check an opaque commitment is exactly COMMITMENT_SIZE bytes."""
    if not isinstance(commitment, (bytes, bytearray)) or len(commitment) != COMMITMENT_SIZE:
        raise InvalidParameter(f"{name} must be {COMMITMENT_SIZE} bytes")
    return bytes(commitment)


ERROR_CATEGORIES: Dict[type, str] = {
    ValidationError: "validation",
    StateConflict: "state-conflict",
    AccessError: "access",
    OracleError: "oracle",
    TransferFailed: "transfer",
    LedgerError: "ledger",
    ArithmeticOverflow: "arithmetic",
}


def error_category(exc: BaseException) -> str:
    """Classify a lending error into its handling category."""
    for cls, category in ERROR_CATEGORIES.items():
        if isinstance(exc, cls):
            return category
    return "unknown"
