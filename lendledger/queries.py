"""
queries.py - Query/Index Layer

Read-only projections over a LoanStoreView. Nothing here mutates the store;
failures from the store propagate unchanged.
"""

from __future__ import annotations
from typing import Iterable, List, Tuple

from .core import LoanStoreView, LoanRequest, ActiveLoan, LoanStatus


def get_all_active_loans(
    view: LoanStoreView,
) -> Tuple[List[int], List[ActiveLoan], List[int], List[LoanRequest]]:
    """
    Every unsettled loan and every still-open request.

    Two independent linear scans over the full id ranges.

    Returns:
        (loan_ids, loans, request_ids, requests) as parallel lists
    """
    loan_ids: List[int] = []
    loans: List[ActiveLoan] = []
    for loan_id in range(view.next_loan_id):
        loan = view.get_loan(loan_id)
        if not loan.is_repaid:
            loan_ids.append(loan_id)
            loans.append(loan)

    request_ids: List[int] = []
    requests: List[LoanRequest] = []
    for request_id in range(view.next_request_id):
        request = view.get_request(request_id)
        if request.is_active:
            request_ids.append(request_id)
            requests.append(request)

    return loan_ids, loans, request_ids, requests


def get_borrower_requests(view: LoanStoreView, borrower: str) -> List[LoanRequest]:
    """All requests a borrower ever posted, funded or not, in id order."""
    requests = (view.get_request(i) for i in range(view.next_request_id))
    return [r for r in requests if r.borrower == borrower]


def get_borrower_loans(view: LoanStoreView, borrower: str) -> List[int]:
    """Historical loan ids where the party is the borrower."""
    return view.loans_of_borrower(borrower)


def get_lender_loans(view: LoanStoreView, lender: str) -> List[int]:
    """Historical loan ids where the party is the lender."""
    return view.loans_of_lender(lender)


def get_loans(view: LoanStoreView, loan_ids: Iterable[int]) -> List[ActiveLoan]:
    return [view.get_loan(i) for i in loan_ids]


def get_loan_status(view: LoanStoreView, loan_id: int) -> LoanStatus:
    return view.get_loan(loan_id).status


def total_property_units(view: LoanStoreView, borrower: str) -> int:
    """
    Property units a borrower currently has pledged: open requests plus
    unsettled loans.
    """
    pending = sum(r.property_units for r in get_borrower_requests(view, borrower) if r.is_active)
    active = sum(
        loan.property_units
        for loan in get_loans(view, get_borrower_loans(view, borrower))
        if not loan.is_repaid
    )
    return pending + active
