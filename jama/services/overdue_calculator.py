"""Overdue and timing calculator for JAMA."""
from datetime import date, timedelta

from jama.config import HIGH_PRIORITY_OVERDUE_DAYS, MEDIUM_PRIORITY_OVERDUE_DAYS
from jama.data_structures import OverdueStatus, PriorityBand, LoanStatus, LedgerSummary
from jama.services.loan_economics import tenor_to_days


def priority_band(days_overdue):
    """Display priority for a number of overdue days."""
    if days_overdue >= HIGH_PRIORITY_OVERDUE_DAYS:
        return PriorityBand.HIGH
    if days_overdue >= MEDIUM_PRIORITY_OVERDUE_DAYS:
        return PriorityBand.MEDIUM
    return PriorityBand.NORMAL


def compute_overdue(start_date, duration_count, duration_unit, last_payment_date=None, today=None) -> OverdueStatus:
    """Derive the expected end date and how far past it a loan is.
    
    Args:
        start_date: Loan start date.
        duration_count: Tenor count.
        duration_unit: 'days', 'weeks' or 'months' (months are 30 days).
        last_payment_date: Date of the latest collection; defaults to start_date.
        today: Reference date; defaults to date.today().
        
    Returns:
        OverdueStatus.
    """
    if today is None:
        today = date.today()
    if last_payment_date is None:
        last_payment_date = start_date

    tenor_days = tenor_to_days(duration_count, duration_unit)
    days_since_start = (today - start_date).days
    days_overdue = max(0, days_since_start - tenor_days)

    return OverdueStatus(
        expected_end_date=start_date + timedelta(days=tenor_days),
        days_since_start=days_since_start,
        days_overdue=days_overdue,
        priority_band=priority_band(days_overdue),
        last_payment_date=last_payment_date,
        days_since_last_payment=(today - last_payment_date).days,
    )


def classify_loan_status(ledger: LedgerSummary, overdue: OverdueStatus):
    """Display status for a loan. Never persisted; recomputed on every read."""
    if ledger.pending_amount <= 0:
        return LoanStatus.COMPLETED
    if overdue.days_overdue > 0:
        return LoanStatus.OVERDUE
    return LoanStatus.ACTIVE
