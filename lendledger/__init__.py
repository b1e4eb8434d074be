"""
lendledger - Collateralized Peer-to-Peer Lending Engine

Borrowers post requests over-collateralized at exactly 2x, lenders fund
them, interest accrues against a reference price, and loans resolve by
repayment or by liquidation after expiry.

Usage:
    from datetime import datetime
    from lendledger import Ledger, LoanLifecycleEngine, SCALE

    ledger = Ledger("main", datetime(2025, 1, 1), verbose=False)
    for wallet in ("alice", "bob"):
        ledger.register_wallet(wallet)
    ledger.issue("alice", 10 * SCALE)
    ledger.issue("bob", 10 * SCALE)

    engine = LoanLifecycleEngine(ledger, owner="admin", fixed_price=2000 * SCALE)
    request_id = engine.create_request("alice", SCALE, 30, 5, value=2 * SCALE)
    loan_id = engine.fund_request("bob", request_id, value=SCALE)
    engine.repay("alice", loan_id, value=engine.compute_amount_due(loan_id))
"""

# Core types
from .core import (
    LoanRequest,
    ActiveLoan,
    LoanStatus,
    Clock,
    LoanStoreView,
    SYSTEM_WALLET,
    PLATFORM_WALLET,
    MAX_INTEREST_RATE,
    BPS_DENOMINATOR,
    MAX_BPS,
    DEFAULT_PENALTY_BP,
    DEFAULT_LIQUIDATION_BONUS_BP,
    DEFAULT_MAX_PRICE_AGE,
    SECONDS_PER_YEAR,
    EMPTY_COMMITMENT,
    error_category,
    # Exceptions
    LendingError,
    ValidationError,
    InvalidAmount,
    InvalidDuration,
    InvalidRate,
    CollateralMismatch,
    AmountMismatch,
    InsufficientPayment,
    InvalidParameter,
    StateConflict,
    RequestNotActive,
    RequestNotFound,
    LoanNotFound,
    AlreadyRepaid,
    NotExpired,
    NotBorrower,
    Reentrant,
    EnforcedPause,
    ExpectedPause,
    AccessError,
    NotOwner,
    OracleError,
    InvalidPrice,
    StalePrice,
    OracleNotConfigured,
    ArithmeticOverflow,
    LedgerError,
    InsufficientFunds,
    WalletNotRegistered,
    TransferFailed,
)

# Fixed point
from .fixed_point import (
    SCALE,
    UINT256_MAX,
    FixedPoint,
    mul_div,
    checked_add,
    checked_mul,
    rescale,
)

# Value ledger
from .ledger import Ledger, Transfer

# Pricing
from .pricing_source import (
    RoundData,
    PriceFeed,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    RealEstateIndexSource,
    StaticRealEstateIndex,
)
from .price_oracle import PriceOracle

# Store, guard, events
from .store import LedgerStore
from .guard import AccessGuard
from .events import (
    Event,
    EventLog,
    LoanRequestCreated,
    LoanFunded,
    LoanRepaid,
    LoanLiquidated,
    OwnershipTransferred,
    Paused,
    Unpaused,
    PenaltyUpdated,
    LiquidationBonusUpdated,
    MaxPriceAgeUpdated,
    PriceFeedUpdated,
    FixedPriceUpdated,
    RealEstateOracleUpdated,
)

# Engine
from .lifecycle_engine import LoanLifecycleEngine
from .keeper import LiquidationKeeper

# Queries
from .queries import (
    get_all_active_loans,
    get_borrower_requests,
    get_borrower_loans,
    get_lender_loans,
    get_loans,
    get_loan_status,
    total_property_units,
)

# Simulation
from .simulation import PricePathParams, simulate_price_path

__all__ = [
    # Core
    'LoanRequest', 'ActiveLoan', 'LoanStatus', 'Clock', 'LoanStoreView',
    'SYSTEM_WALLET', 'PLATFORM_WALLET', 'MAX_INTEREST_RATE', 'BPS_DENOMINATOR',
    'MAX_BPS', 'DEFAULT_PENALTY_BP', 'DEFAULT_LIQUIDATION_BONUS_BP',
    'DEFAULT_MAX_PRICE_AGE', 'SECONDS_PER_YEAR', 'EMPTY_COMMITMENT', 'error_category',
    # Exceptions
    'LendingError', 'ValidationError', 'InvalidAmount', 'InvalidDuration',
    'InvalidRate', 'CollateralMismatch', 'AmountMismatch', 'InsufficientPayment',
    'InvalidParameter', 'StateConflict', 'RequestNotActive', 'RequestNotFound',
    'LoanNotFound', 'AlreadyRepaid', 'NotExpired', 'NotBorrower', 'Reentrant',
    'EnforcedPause', 'ExpectedPause', 'AccessError', 'NotOwner', 'OracleError',
    'InvalidPrice', 'StalePrice', 'OracleNotConfigured', 'ArithmeticOverflow',
    'LedgerError', 'InsufficientFunds', 'WalletNotRegistered', 'TransferFailed',
    # Fixed point
    'SCALE', 'UINT256_MAX', 'FixedPoint', 'mul_div', 'checked_add', 'checked_mul', 'rescale',
    # Ledger
    'Ledger', 'Transfer',
    # Pricing
    'RoundData', 'PriceFeed', 'StaticPriceFeed', 'TimeSeriesPriceFeed',
    'RealEstateIndexSource', 'StaticRealEstateIndex', 'PriceOracle',
    # Store, guard, events
    'LedgerStore', 'AccessGuard',
    'Event', 'EventLog', 'LoanRequestCreated', 'LoanFunded', 'LoanRepaid',
    'LoanLiquidated', 'OwnershipTransferred', 'Paused', 'Unpaused',
    'PenaltyUpdated', 'LiquidationBonusUpdated', 'MaxPriceAgeUpdated',
    'PriceFeedUpdated', 'FixedPriceUpdated', 'RealEstateOracleUpdated',
    # Engine
    'LoanLifecycleEngine', 'LiquidationKeeper',
    # Queries
    'get_all_active_loans', 'get_borrower_requests', 'get_borrower_loans',
    'get_lender_loans', 'get_loans', 'get_loan_status', 'total_property_units',
    # Simulation
    'PricePathParams', 'simulate_price_path',
]

__version__ = '1.0.0'
