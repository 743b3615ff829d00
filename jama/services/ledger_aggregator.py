"""Ledger aggregation for JAMA.

Turns a loan's principal and its collection records into paid-to-date,
outstanding balance and progress. Outstanding is always loan-lifetime:
callers pass every collection the loan has, never a date-filtered slice.
"""
import logging
import math

from jama.data_structures import LedgerSummary, LoanStatus

logger = logging.getLogger(__name__)


def round_half_up(value):
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def aggregate_ledger(principal, collections, loan_id=None) -> LedgerSummary:
    """Summarize a loan's collections against its principal.
    
    Args:
        principal: Loan principal.
        collections: Iterable of Collection records; None counts as empty.
        loan_id: Optional loan id, only used for log context.
        
    Returns:
        LedgerSummary. Pending is floored at 0; an overpayment is
        reported in ``overpaid_amount`` and logged, never raised.
    """
    records = list(collections or [])
    paid = sum(float(c.amount) for c in records)
    pending = max(0.0, principal - paid)
    overpaid = max(0.0, paid - principal)

    progress = round_half_up(paid / principal * 100) if principal > 0 else 0
    status = LoanStatus.COMPLETED if pending <= 0 else LoanStatus.ACTIVE

    count = len(records)
    average = paid / count if count else 0.0
    last_payment = max((c.collection_date for c in records), default=None)

    if overpaid > 0:
        logger.warning("Loan %s overpaid by %.2f (paid %.2f, principal %.2f)",
                       loan_id if loan_id is not None else "?", overpaid, paid, principal)

    return LedgerSummary(
        paid_amount=paid,
        pending_amount=pending,
        progress_percent=progress,
        derived_status=status,
        payment_count=count,
        average_payment=average,
        last_payment_date=last_payment,
        overpaid_amount=overpaid,
    )
