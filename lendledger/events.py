"""
events.py - Event records and the event log

Events are the only channel external observers (indexers, dashboards) use to
reconstruct ledger history. Every record is immutable and carries the
affected ids and monetary fields.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterator, List, Optional, Type, TypeVar


@dataclass(frozen=True, slots=True)
class Event:
    """Base class for all emitted events."""
    timestamp: datetime

    @property
    def name(self) -> str:
        return type(self).__name__


# ============================================================================
# LOAN LIFECYCLE
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanRequestCreated(Event):
    request_id: int
    borrower: str
    loan_amount: int
    duration_days: int
    interest_rate: int
    stake: int
    metadata_commitment: bytes
    encrypted_cid: str
    property_commitment: bytes
    appraisal_encrypted_cid: str
    property_units: int


@dataclass(frozen=True, slots=True)
class LoanFunded(Event):
    loan_id: int
    request_id: int
    borrower: str
    lender: str
    loan_amount: int
    stake: int
    start_time: datetime
    end_time: datetime
    initial_price: int


@dataclass(frozen=True, slots=True)
class LoanRepaid(Event):
    loan_id: int
    borrower: str
    lender: str
    amount_due: int
    quoted_amount: int
    penalty_applied: bool
    refund: int


@dataclass(frozen=True, slots=True)
class LoanLiquidated(Event):
    loan_id: int
    liquidator: str
    lender: str
    stake: int
    bonus: int
    lender_share: int


# ============================================================================
# ADMINISTRATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class OwnershipTransferred(Event):
    previous_owner: str
    new_owner: str


@dataclass(frozen=True, slots=True)
class Paused(Event):
    account: str


@dataclass(frozen=True, slots=True)
class Unpaused(Event):
    account: str


@dataclass(frozen=True, slots=True)
class PenaltyUpdated(Event):
    old_bp: int
    new_bp: int


@dataclass(frozen=True, slots=True)
class LiquidationBonusUpdated(Event):
    old_bp: int
    new_bp: int


@dataclass(frozen=True, slots=True)
class MaxPriceAgeUpdated(Event):
    old_max_age: timedelta
    new_max_age: timedelta


@dataclass(frozen=True, slots=True)
class PriceFeedUpdated(Event):
    old_feed: Optional[Any]
    new_feed: Optional[Any]


@dataclass(frozen=True, slots=True)
class FixedPriceUpdated(Event):
    old_price: Optional[int]
    new_price: int


@dataclass(frozen=True, slots=True)
class RealEstateOracleUpdated(Event):
    old_source: Optional[Any]
    new_source: Any


E = TypeVar("E", bound=Event)


class EventLog:
    """
    Append-only event stream.

    Observers only read; truncate() exists solely for the engine's rollback
    of a failed operation, which must leave no trace.
    """

    def __init__(self):
        self._events: List[Event] = []

    def emit(self, event: Event) -> Event:
        self._events.append(event)
        return event

    def of_type(self, event_type: Type[E]) -> List[E]:
        """All events of a given class, in emission order."""
        return [e for e in self._events if isinstance(e, event_type)]

    def last(self) -> Optional[Event]:
        return self._events[-1] if self._events else None

    def truncate(self, length: int) -> None:
        del self._events[length:]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def __getitem__(self, index: int) -> Event:
        return self._events[index]

    def __repr__(self):
        return f"EventLog({len(self._events)} events)"
