"""Collection (payment) service for JAMA.

Records, edits and deletes payments. Each change re-derives the owning
loan's lifecycle status from its full collection history.
"""
import logging
from dataclasses import asdict

from jama.config import RECENT_COLLECTIONS_LIMIT
from jama.data_structures import Collection, PaymentForm, RecentCollectionRow, Loan
from jama.exceptions import CollectionNotFoundError
from jama.services.report_aggregator import group_collections_by_loan
from jama.validation import parse_amount, parse_date, parse_text, format_date

logger = logging.getLogger(__name__)


class CollectionService:
    """Handles payment records."""

    def __init__(self, db_manager, loan_service):
        """Initialize CollectionService.

        Args:
            db_manager: DatabaseManager instance.
            loan_service: LoanService used for ownership checks and status refresh.
        """
        self.db = db_manager
        self.loan_service = loan_service

    def record_payment(self, user_id, form: PaymentForm) -> Collection:
        """Record a payment against one of the operator's loans.

        Recording a payment on a completed loan is allowed.

        Raises:
            LoanNotFoundError: If the loan does not belong to the operator.
        """
        loan = self.loan_service.get_loan(form.loan_id, user_id)
        with self.db.transaction():
            collection_id = self.db.add_collection(loan.id, user_id, form.amount,
                                                   format_date(form.collection_date), form.notes)
            self.db.add_audit_log(user_id, "collections", collection_id, "INSERT",
                                  new_values=asdict(form))
            self.loan_service.refresh_status(loan.id)

        logger.info("Collected %.2f on loan %s (%s)", form.amount, loan.id, loan.customer_name)
        return self.get_collection(collection_id)

    def get_collection(self, collection_id, user_id=None) -> Collection:
        row = self.db.get_collection(collection_id, user_id)
        if not row:
            raise CollectionNotFoundError(collection_id)
        return Collection.from_row(row)

    def update_collection(self, collection_id, user_id, amount, collection_date, notes="") -> Collection:
        """Edit a payment's amount, date or notes.

        Raises:
            CollectionNotFoundError: If the payment does not belong to the operator.
            ValidationError: On a non-positive amount or invalid date.
        """
        existing = self.get_collection(collection_id, user_id)
        amount = parse_amount(amount, "amount")
        collection_date = parse_date(collection_date, "collection_date")
        notes = parse_text(notes, "notes", required=False)

        with self.db.transaction():
            self.db.update_collection(collection_id, amount, format_date(collection_date), notes)
            self.db.add_audit_log(
                user_id, "collections", collection_id, "UPDATE",
                old_values={'amount': existing.amount, 'collection_date': existing.collection_date,
                            'notes': existing.notes},
                new_values={'amount': amount, 'collection_date': collection_date, 'notes': notes},
            )
            self.loan_service.refresh_status(existing.loan_id)

        logger.info("Collection %s updated: %.2f -> %.2f", collection_id, existing.amount, amount)
        return self.get_collection(collection_id)

    def delete_collection(self, collection_id, user_id):
        """Delete a payment and reopen its loan if the balance comes back.

        Raises:
            CollectionNotFoundError: If the payment does not belong to the operator.
        """
        existing = self.get_collection(collection_id, user_id)
        with self.db.transaction():
            self.db.delete_collection(collection_id)
            self.db.add_audit_log(user_id, "collections", collection_id, "DELETE",
                                  old_values=asdict(existing))
            self.loan_service.refresh_status(existing.loan_id)
        logger.info("Collection %s deleted from loan %s", collection_id, existing.loan_id)

    def get_collections(self, user_id=None, loan_id=None, start_date=None, end_date=None):
        rows = self.db.get_collections(user_id, loan_id, format_date(start_date), format_date(end_date))
        return [Collection.from_row(row) for row in rows]

    def get_collections_by_loan(self, user_id=None):
        """Full collection history per loan id."""
        return group_collections_by_loan(self.get_collections(user_id))

    def get_recent_collections(self, user_id, limit=RECENT_COLLECTIONS_LIMIT):
        """Latest payments with the customer they came from."""
        rows = self.db.get_collections(user_id, limit=limit)
        loans = {}
        recent = []
        for row in rows:
            collection = Collection.from_row(row)
            if collection.loan_id not in loans:
                loan_row = self.db.get_loan(collection.loan_id)
                loans[collection.loan_id] = Loan.from_row(loan_row) if loan_row else None
            loan = loans[collection.loan_id]
            recent.append(RecentCollectionRow(
                collection=collection,
                customer_name=loan.customer_name if loan else "Unknown Customer",
                customer_mobile=loan.customer_mobile if loan else "",
            ))
        return recent
