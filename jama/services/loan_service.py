"""Loan lifecycle service for JAMA.

This service handles all loan record operations including:
- Loan creation with derived economics
- Loan edits (economics re-derived when terms change)
- Status refresh from the collections ledger
- Hard deletion (data management only)
"""
import logging
from dataclasses import asdict

from jama.config import DURATION_UNITS, REPAYMENT_TYPES, DISBURSEMENT_TYPES
from jama.data_structures import Loan, LoanForm, LoanTerms, Collection, LoanStatus
from jama.exceptions import LoanNotFoundError, ValidationError
from jama.services.ledger_aggregator import aggregate_ledger
from jama.services.loan_economics import compute_loan_economics
from jama.validation import (
    parse_amount, parse_count, parse_date, parse_choice, parse_text, format_date,
)

logger = logging.getLogger(__name__)

# Fields whose change requires the economics to be re-derived
ECONOMIC_FIELDS = ("amount", "installment_amount", "duration_count", "duration_unit",
                   "disbursement_type", "cutting_amount")

EDITABLE_FIELDS = ECONOMIC_FIELDS + ("customer_name", "customer_mobile", "start_date",
                                     "repayment_type", "interest_rate")


class LoanService:
    """Handles loan lifecycle operations.

    Loans are owned by an operator (``user_id``). Every write goes through
    a database transaction together with its audit log entry.
    """

    def __init__(self, db_manager):
        """Initialize LoanService.

        Args:
            db_manager: DatabaseManager instance for data persistence.
        """
        self.db = db_manager

    def add_loan(self, user_id, form: LoanForm) -> Loan:
        """Create a loan from a validated form.

        Disbursed amount, total collection, profit and annualized rate
        are derived here and stored with the loan.

        Args:
            user_id: Owning operator.
            form: Parsed new-loan form.

        Returns:
            The stored Loan.
        """
        economics = compute_loan_economics(form.terms)
        terms = form.terms
        fields = dict(
            user_id=user_id,
            customer_name=form.customer_name,
            customer_mobile=form.customer_mobile,
            amount=terms.principal,
            disbursement_type=terms.disbursement_type,
            cutting_amount=terms.cutting_amount if terms.disbursement_type == "cutting" else 0.0,
            disbursed_amount=economics.disbursed_amount,
            repayment_type=form.repayment_type,
            installment_amount=terms.installment_amount,
            duration_count=terms.tenor_count,
            duration_unit=terms.tenor_unit,
            start_date=format_date(form.start_date),
            status=LoanStatus.ACTIVE,
            interest_rate=economics.annual_interest_rate_percent,
            total_collection=economics.total_collection,
            profit_interest=economics.profit_interest,
        )

        with self.db.transaction():
            loan_id = self.db.add_loan(**fields)
            self.db.add_audit_log(user_id, "loans", loan_id, "INSERT", new_values=fields)

        logger.info("Loan %s created for '%s': principal %.2f, disbursed %.2f, rate %.2f%%",
                    loan_id, form.customer_name, terms.principal,
                    economics.disbursed_amount, economics.annual_interest_rate_percent)
        return self.get_loan(loan_id)

    def get_loan(self, loan_id, user_id=None) -> Loan:
        """Fetch a loan, optionally scoped to its owner.

        Raises:
            LoanNotFoundError: If no such loan exists for the owner.
        """
        row = self.db.get_loan(loan_id, user_id)
        if not row:
            raise LoanNotFoundError(loan_id, user_id)
        return Loan.from_row(row)

    def get_loans(self, user_id=None, start_from=None, start_to=None):
        """All loans for an operator (or everyone when user_id is None), newest first."""
        rows = self.db.get_loans(user_id, format_date(start_from), format_date(start_to))
        return [Loan.from_row(row) for row in rows]

    def update_loan(self, loan_id, user_id, **changes) -> Loan:
        """Edit a loan.

        Changing any economic field re-derives disbursed amount, totals and
        the annualized rate. An explicit ``interest_rate`` is stored as given
        and takes precedence over the derived one.

        Raises:
            LoanNotFoundError: If the loan does not belong to the operator.
            ValidationError: On unknown fields or invalid values.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(sorted(unknown)[0], f"Field(s) cannot be edited: {', '.join(sorted(unknown))}")

        loan = self.get_loan(loan_id, user_id)
        updates = self._parse_changes(changes)

        if any(f in updates for f in ECONOMIC_FIELDS):
            disbursement_type = updates.get('disbursement_type', loan.disbursement_type)
            terms = LoanTerms(
                principal=updates.get('amount', loan.amount),
                installment_amount=updates.get('installment_amount', loan.installment_amount),
                tenor_count=updates.get('duration_count', loan.duration_count),
                tenor_unit=updates.get('duration_unit', loan.duration_unit),
                disbursement_type=disbursement_type,
                cutting_amount=updates.get('cutting_amount', loan.cutting_amount) if disbursement_type == "cutting" else 0.0,
            )
            economics = compute_loan_economics(terms)
            updates['cutting_amount'] = terms.cutting_amount
            updates['disbursed_amount'] = economics.disbursed_amount
            updates['total_collection'] = economics.total_collection
            updates['profit_interest'] = economics.profit_interest
            updates.setdefault('interest_rate', economics.annual_interest_rate_percent)

        old_values = {k: getattr(loan, k) for k in updates if hasattr(loan, k)}
        with self.db.transaction():
            self.db.update_loan(loan_id, **updates)
            self.db.add_audit_log(user_id, "loans", loan_id, "UPDATE",
                                  old_values=old_values, new_values=updates)
            self.refresh_status(loan_id)

        logger.info("Loan %s updated: %s", loan_id, ", ".join(sorted(updates)))
        return self.get_loan(loan_id)

    def _parse_changes(self, changes):
        parsers = {
            'customer_name': lambda v: parse_text(v, "customer_name"),
            'customer_mobile': lambda v: parse_text(v, "customer_mobile", required=False),
            'amount': lambda v: parse_amount(v, "amount"),
            'installment_amount': lambda v: parse_amount(v, "installment_amount", allow_zero=True),
            'duration_count': lambda v: parse_count(v, "duration_count"),
            'duration_unit': lambda v: parse_choice(v, DURATION_UNITS, "duration_unit"),
            'disbursement_type': lambda v: parse_choice(v, DISBURSEMENT_TYPES, "disbursement_type"),
            'cutting_amount': lambda v: parse_amount(v, "cutting_amount", allow_zero=True),
            'repayment_type': lambda v: parse_choice(v, REPAYMENT_TYPES, "repayment_type"),
            'start_date': lambda v: format_date(parse_date(v, "start_date")),
            'interest_rate': lambda v: float(parse_amount(v, "interest_rate", allow_zero=True)),
        }
        return {key: parsers[key](value) for key, value in changes.items()}

    def delete_loan(self, loan_id, user_id):
        """Hard-delete a loan and its collections.

        Raises:
            LoanNotFoundError: If the loan does not belong to the operator.
        """
        loan = self.get_loan(loan_id, user_id)
        with self.db.transaction():
            self.db.delete_loan(loan_id)
            self.db.add_audit_log(user_id, "loans", loan_id, "DELETE", old_values=asdict(loan))
        logger.info("Loan %s deleted by %s", loan_id, user_id)

    def refresh_status(self, loan_id):
        """Persist the lifecycle status derived from the loan's full ledger.

        ``completed`` once pending reaches 0, back to ``active`` if an edit
        or deletion reopens the balance. ``overdue`` is never stored.

        Returns:
            The stored status.
        """
        row = self.db.get_loan(loan_id)
        if not row:
            raise LoanNotFoundError(loan_id)
        loan = Loan.from_row(row)
        collections = [Collection.from_row(r) for r in self.db.get_collections(loan_id=loan_id)]
        ledger = aggregate_ledger(loan.amount, collections, loan_id=loan_id)

        if loan.status != ledger.derived_status:
            self.db.update_loan_status(loan_id, ledger.derived_status)
            logger.info("Loan %s status %s -> %s", loan_id, loan.status, ledger.derived_status)
        return ledger.derived_status
