"""Report projections for JAMA.

Every projection here composes the loan economics, ledger and overdue
calculators over already-fetched loans and collections. Nothing is
cached between calls; callers pass fresh data each time.

``collections_by_loan`` is always a mapping of loan id to that loan's
full collection history. A loan missing from the mapping is treated as
having no collections.
"""
from datetime import date, timedelta
from dateutil.relativedelta import relativedelta

from jama.data_structures import (
    LoanStatus, PriorityBand, Role,
    DailyCollectionRow, LoanDatabaseRow, LoanDatabaseReport, CustomerReportRow,
    PeriodSummary, ActiveLoanRow, ActiveLoansReport, PendingBalanceRow,
    NewLoansReport, PlatformSummary,
)
from jama.exceptions import ValidationError
from jama.services.ledger_aggregator import aggregate_ledger, round_half_up
from jama.services.loan_economics import tenor_to_days
from jama.services.overdue_calculator import compute_overdue, classify_loan_status

REPORT_TYPES = ("daily", "monthly", "annual", "custom")


def _history(collections_by_loan, loan_id):
    return (collections_by_loan or {}).get(loan_id) or []


def group_collections_by_loan(collections):
    """Index a flat collection list by loan id."""
    grouped = {}
    for collection in collections or []:
        grouped.setdefault(collection.loan_id, []).append(collection)
    return grouped


def build_daily_collections(loans, collections_by_loan, selected_date):
    """Collections made on ``selected_date`` with each loan's lifetime pending.
    
    Pending is re-aggregated from the loan's entire history, not just
    the selected day.
    """
    rows = []
    for loan in loans:
        history = _history(collections_by_loan, loan.id)
        day_collections = [c for c in history if c.collection_date == selected_date]
        if not day_collections:
            continue
        ledger = aggregate_ledger(loan.amount, history, loan_id=loan.id)
        for collection in day_collections:
            rows.append(DailyCollectionRow(
                collection_id=collection.id,
                loan_id=loan.id,
                collection_date=collection.collection_date,
                customer_name=loan.customer_name,
                customer_mobile=loan.customer_mobile,
                amount=collection.amount,
                pending_amount=ledger.pending_amount,
                notes=collection.notes,
            ))
    return rows


def build_loan_database(loans) -> LoanDatabaseReport:
    """Plain listing of every loan plus portfolio totals."""
    rows = [
        LoanDatabaseRow(
            loan_id=loan.id,
            customer_name=loan.customer_name,
            customer_mobile=loan.customer_mobile,
            amount=loan.amount,
            interest_rate=loan.interest_rate,
            duration_count=loan.duration_count,
            duration_unit=loan.duration_unit,
            status=loan.status,
            start_date=loan.start_date,
        )
        for loan in loans
    ]
    return LoanDatabaseReport(
        rows=rows,
        total_count=len(rows),
        total_principal=sum(r.amount for r in rows),
        active_count=sum(1 for r in rows if r.status == LoanStatus.ACTIVE),
    )


def build_customer_report(loans, collections_by_loan):
    """Per-loan lifetime figures for the customer-wise report."""
    rows = []
    for loan in loans:
        ledger = aggregate_ledger(loan.amount, _history(collections_by_loan, loan.id), loan_id=loan.id)
        end_date = loan.start_date + timedelta(days=tenor_to_days(loan.duration_count, loan.duration_unit))
        rows.append(CustomerReportRow(
            loan_id=loan.id,
            customer_name=loan.customer_name,
            customer_mobile=loan.customer_mobile,
            principal_amount=loan.amount,
            paid_amount=ledger.paid_amount,
            outstanding_amount=ledger.pending_amount,
            payment_count=ledger.payment_count,
            average_payment=ledger.average_payment,
            start_date=loan.start_date,
            end_date=end_date,
            status=loan.status,
        ))
    return rows


def search_customer_rows(rows, term):
    """Filter customer rows by name (case-insensitive), mobile or loan id."""
    if not term or not term.strip():
        return list(rows)
    needle = term.strip().lower()
    return [
        r for r in rows
        if needle in r.customer_name.lower()
        or needle in (r.customer_mobile or "")
        or needle in str(r.loan_id)
    ]


def default_period(report_type, today=None):
    """Default (start, end) dates for a report type.
    
    'custom' has no default and returns (None, today).
    """
    if today is None:
        today = date.today()
    if report_type not in REPORT_TYPES:
        raise ValidationError("report_type", f"Unknown report type '{report_type}'", report_type)

    if report_type == "daily":
        return today, today
    if report_type == "monthly":
        return today + relativedelta(day=1), today
    if report_type == "annual":
        return today + relativedelta(month=1, day=1), today
    return None, today


def build_period_summary(loans, collections, start_date, end_date, report_type="custom") -> PeriodSummary:
    """Loans started and collections dated within [start_date, end_date].
    
    Raises:
        ValidationError: If a date is missing or start is after end.
    """
    if start_date is None or end_date is None:
        raise ValidationError("start_date", "Please select both report dates")
    if start_date > end_date:
        raise ValidationError("start_date", "Start date cannot be after end date.")

    period_loans = [l for l in loans if start_date <= l.start_date <= end_date]
    period_collections = [c for c in collections if start_date <= c.collection_date <= end_date]

    total_loans = sum(l.amount for l in period_loans)
    total_collections = sum(c.amount for c in period_collections)

    return PeriodSummary(
        report_type=report_type,
        start_date=start_date,
        end_date=end_date,
        total_loans=total_loans,
        total_collections=total_collections,
        pending_amount=max(0.0, total_loans - total_collections),
        loans_count=len(period_loans),
        collections_count=len(period_collections),
        loans=period_loans,
        collections=period_collections,
    )


def build_active_loans(loans, collections_by_loan, today=None) -> ActiveLoansReport:
    """Ledger, overdue and display status for every loan still owing money."""
    rows = []
    for loan in loans:
        history = _history(collections_by_loan, loan.id)
        ledger = aggregate_ledger(loan.amount, history, loan_id=loan.id)
        if ledger.pending_amount <= 0:
            continue
        overdue = compute_overdue(loan.start_date, loan.duration_count, loan.duration_unit,
                                  ledger.last_payment_date, today=today)
        rows.append(ActiveLoanRow(
            loan=loan,
            ledger=ledger,
            overdue=overdue,
            display_status=classify_loan_status(ledger, overdue),
        ))

    total_lent = sum(r.loan.amount for r in rows)
    total_collected = sum(r.ledger.paid_amount for r in rows)
    total_pending = sum(r.ledger.pending_amount for r in rows)
    rate = round_half_up(total_collected / total_lent * 100) if total_lent > 0 else 0

    return ActiveLoansReport(
        rows=rows,
        total_lent=total_lent,
        total_collected=total_collected,
        total_pending=total_pending,
        collection_rate_percent=rate,
    )


def build_pending_balances(loans, collections_by_loan, today=None):
    """Loans with money outstanding, most overdue first."""
    report = build_active_loans(loans, collections_by_loan, today=today)
    rows = [
        PendingBalanceRow(
            loan_id=r.loan.id,
            customer_name=r.loan.customer_name,
            customer_mobile=r.loan.customer_mobile,
            total_loan=r.loan.amount,
            pending_amount=r.ledger.pending_amount,
            last_payment_date=r.overdue.last_payment_date,
            days_overdue=r.overdue.days_overdue,
            priority_band=r.overdue.priority_band,
        )
        for r in report.rows
    ]
    rows.sort(key=lambda r: (PriorityBand.ORDER[r.priority_band], -r.days_overdue, -r.pending_amount))
    return rows


def build_new_loans(loans, on_date) -> NewLoansReport:
    """Loans started on ``on_date``."""
    todays = [l for l in loans if l.start_date == on_date]
    return NewLoansReport(
        loans=todays,
        total_amount=sum(l.amount for l in todays),
        total_installment=sum(l.installment_amount for l in todays),
    )


def build_platform_summary(profiles, loans, collections, monthly_fee) -> PlatformSummary:
    """Super-admin view across every operator."""
    operators = [p for p in profiles if p.role != Role.SUPER_ADMIN]
    active = sum(1 for p in operators if p.is_active)
    monthly_revenue = active * monthly_fee

    total_loan_amount = sum(l.amount for l in loans)
    total_collections = sum(c.amount for c in collections)

    return PlatformSummary(
        total_users=len(operators),
        active_users=active,
        inactive_users=len(operators) - active,
        monthly_revenue=monthly_revenue,
        yearly_revenue=monthly_revenue * 12,
        total_customers=len({l.customer_name for l in loans}),
        total_loans=len(loans),
        total_outstanding=max(0.0, total_loan_amount - total_collections),
        total_collections=total_collections,
    )
