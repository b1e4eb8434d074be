"""
store.py - Ledger Store

Owns every persistent entity of the lending engine:
    - requests: LoanRequest table indexed by sequential request id
    - loans: ActiveLoan table indexed by sequential loan id
    - borrower_loans / lender_loans: per-party loan id lists

Ids start at 0 and are never reused. Records are never deleted; they only
change through the two one-shot transitions below, each of which replaces
the frozen record:
    - deactivate_request: is_active True -> False, exactly once
    - mark_repaid: is_repaid False -> True, exactly once

The index lists are appended to once per funding and never pruned, so they
are a historical index; "active" views filter on is_repaid.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Tuple

from .core import (
    LoanRequest, ActiveLoan,
    RequestNotActive, RequestNotFound, LoanNotFound, AlreadyRepaid,
)


StoreSnapshot = Tuple[
    List[LoanRequest], List[ActiveLoan], Dict[str, List[int]], Dict[str, List[int]]
]


class LedgerStore:
    """
    Arena of request and loan records keyed by sequential ids.

    Implements the LoanStoreView protocol for the query layer; mutators are
    called only by the lifecycle engine.
    """

    def __init__(self):
        self.requests: List[LoanRequest] = []
        self.loans: List[ActiveLoan] = []
        self.borrower_loans: Dict[str, List[int]] = defaultdict(list)
        self.lender_loans: Dict[str, List[int]] = defaultdict(list)

    # ========================================================================
    # LoanStoreView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def next_request_id(self) -> int:
        return len(self.requests)

    @property
    def next_loan_id(self) -> int:
        return len(self.loans)

    def get_request(self, request_id: int) -> LoanRequest:
        """
        Raises:
            RequestNotFound: If the id was never allocated
        """
        if not 0 <= request_id < len(self.requests):
            raise RequestNotFound(f"Request {request_id} does not exist")
        return self.requests[request_id]

    def get_loan(self, loan_id: int) -> ActiveLoan:
        """
        Raises:
            LoanNotFound: If the id was never allocated
        """
        if not 0 <= loan_id < len(self.loans):
            raise LoanNotFound(f"Loan {loan_id} does not exist")
        return self.loans[loan_id]

    def loans_of_borrower(self, borrower: str) -> List[int]:
        return list(self.borrower_loans.get(borrower, ()))

    def loans_of_lender(self, lender: str) -> List[int]:
        return list(self.lender_loans.get(lender, ()))

    # ========================================================================
    # MUTATORS
    # ========================================================================

    def add_request(
        self,
        borrower: str,
        loan_amount: int,
        duration_days: int,
        interest_rate: int,
        stake: int,
        metadata_commitment: bytes,
        encrypted_cid: str,
        property_commitment: bytes,
        appraisal_encrypted_cid: str,
        property_units: int,
        created_at: datetime,
    ) -> LoanRequest:
        """Allocate the next request id and store an active request."""
        request = LoanRequest(
            request_id=self.next_request_id,
            borrower=borrower,
            loan_amount=loan_amount,
            duration_days=duration_days,
            interest_rate=interest_rate,
            is_active=True,
            stake=stake,
            metadata_commitment=metadata_commitment,
            encrypted_cid=encrypted_cid,
            property_commitment=property_commitment,
            appraisal_encrypted_cid=appraisal_encrypted_cid,
            property_units=property_units,
            created_at=created_at,
        )
        self.requests.append(request)
        return request

    def deactivate_request(self, request_id: int) -> LoanRequest:
        """
        Clear is_active on a request.

        Raises:
            RequestNotActive: If the request was already funded
        """
        request = self.get_request(request_id)
        if not request.is_active:
            raise RequestNotActive(f"Request {request_id} is not active")
        updated = replace(request, is_active=False)
        self.requests[request_id] = updated
        return updated

    def add_loan(
        self,
        request: LoanRequest,
        lender: str,
        start_time: datetime,
        end_time: datetime,
        initial_price: int,
    ) -> ActiveLoan:
        """
        Allocate the next loan id for a funded request and index it under
        both parties.
        """
        loan = ActiveLoan(
            loan_id=self.next_loan_id,
            request_id=request.request_id,
            borrower=request.borrower,
            lender=lender,
            loan_amount=request.loan_amount,
            stake=request.stake,
            start_time=start_time,
            end_time=end_time,
            interest_rate=request.interest_rate,
            initial_price=initial_price,
            property_units=request.property_units,
        )
        self.loans.append(loan)
        self.borrower_loans[loan.borrower].append(loan.loan_id)
        self.lender_loans[lender].append(loan.loan_id)
        return loan

    def mark_repaid(self, loan_id: int, liquidated: bool = False) -> ActiveLoan:
        """
        Set the terminal flag on a loan.

        Raises:
            AlreadyRepaid: If the loan was already repaid or liquidated
        """
        loan = self.get_loan(loan_id)
        if loan.is_repaid:
            raise AlreadyRepaid(f"Loan {loan_id} is already settled")
        updated = replace(loan, is_repaid=True, liquidated=liquidated)
        self.loans[loan_id] = updated
        return updated

    # ========================================================================
    # ROLLBACK SUPPORT
    # ========================================================================

    def snapshot(self) -> StoreSnapshot:
        """Capture the tables; records are frozen so shallow copies suffice."""
        return (
            list(self.requests),
            list(self.loans),
            {k: list(v) for k, v in self.borrower_loans.items()},
            {k: list(v) for k, v in self.lender_loans.items()},
        )

    def restore(self, snapshot: StoreSnapshot) -> None:
        requests, loans, borrower_loans, lender_loans = snapshot
        self.requests[:] = requests
        self.loans[:] = loans
        self.borrower_loans = defaultdict(list, {k: list(v) for k, v in borrower_loans.items()})
        self.lender_loans = defaultdict(list, {k: list(v) for k, v in lender_loans.items()})

    def __repr__(self):
        return f"LedgerStore(requests={len(self.requests)}, loans={len(self.loans)})"
