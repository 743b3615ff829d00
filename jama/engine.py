"""Business logic engine for JAMA.

This module provides the JamaEngine class which acts as a facade over
the focused service classes in jama/services/ for one acting user.

Service Classes:
    - LoanService: Loan lifecycle operations
    - CollectionService: Payment records
    - AdService: Sponsored ads and their analytics
    - UserService: Profiles, roles and account activation
"""
import logging
from datetime import date

from jama.config import DEFAULT_MONTHLY_FEE, RECENT_COLLECTIONS_LIMIT, DEFAULT_ANALYTICS_RANGE_DAYS
from jama.data_structures import Role, StatementConfig
from jama.exceptions import ValidationError, DatabaseError
from jama.forms import parse_loan_form, parse_payment_form
from jama.reports import ReportGenerator
from jama.result import Result, ErrorType
from jama.services import LoanService, CollectionService, AdService, UserService
from jama.services.report_aggregator import (
    build_active_loans, build_pending_balances, build_new_loans, build_daily_collections,
    build_loan_database, build_customer_report, search_customer_rows, build_platform_summary,
)
from jama.statement_generator import StatementGenerator
from jama.validation import parse_amount

logger = logging.getLogger(__name__)


def _form_failure(e):
    if isinstance(e, ValidationError):
        return Result.fail(e.message, ErrorType.VALIDATION, e.field)
    return Result.fail(str(e), ErrorType.DATABASE)


class JamaEngine:
    """Handles business logic for one signed-in user.

    Operator actions require an active profile. Super admin actions
    require the ``super_admin`` role. Operators only ever see their own
    loans and collections.

    Attributes:
        db: DatabaseManager instance for data persistence.
        user_id: The acting user.
        loan_service: LoanService instance (lazy-loaded).
        collection_service: CollectionService instance (lazy-loaded).
        ad_service: AdService instance (lazy-loaded).
        user_service: UserService instance (lazy-loaded).
    """

    def __init__(self, db_manager, acting_user_id):
        self.db = db_manager
        self.user_id = acting_user_id
        self._loan_service = None
        self._collection_service = None
        self._ad_service = None
        self._user_service = None
        self._report_generator = None

    @property
    def loan_service(self):
        """Lazy-load LoanService instance."""
        if self._loan_service is None:
            self._loan_service = LoanService(self.db)
        return self._loan_service

    @property
    def collection_service(self):
        """Lazy-load CollectionService instance."""
        if self._collection_service is None:
            self._collection_service = CollectionService(self.db, self.loan_service)
        return self._collection_service

    @property
    def ad_service(self):
        """Lazy-load AdService instance."""
        if self._ad_service is None:
            self._ad_service = AdService(self.db)
        return self._ad_service

    @property
    def user_service(self):
        """Lazy-load UserService instance."""
        if self._user_service is None:
            self._user_service = UserService(self.db)
        return self._user_service

    @property
    def report_generator(self):
        """Lazy-load ReportGenerator instance."""
        if self._report_generator is None:
            self._report_generator = ReportGenerator(self.db)
        return self._report_generator

    @property
    def profile(self):
        return self.user_service.get_profile(self.user_id)

    def _require_active(self):
        return self.user_service.require_active(self.user_id)

    def _require_super_admin(self):
        return self.user_service.require_role(self.user_id, Role.SUPER_ADMIN)

    # ------------------------------------------------------------------
    # Operator: data entry
    # ------------------------------------------------------------------

    def submit_loan_form(self, form_data, today=None) -> Result:
        """Create a loan from raw form input.

        Returns:
            Result with the stored Loan, or a VALIDATION failure naming the
            offending field.

        Raises:
            AccountDeactivatedError: If the operator has been deactivated.
        """
        self._require_active()
        try:
            form = parse_loan_form(form_data, today=today)
            return Result.ok(self.loan_service.add_loan(self.user_id, form))
        except (ValidationError, DatabaseError) as e:
            logger.info("Loan form rejected for %s: %s", self.user_id, e)
            return _form_failure(e)

    def submit_payment_form(self, form_data, today=None) -> Result:
        """Record a payment from raw keypad/form input.

        Raises:
            AccountDeactivatedError: If the operator has been deactivated.
            LoanNotFoundError: If the loan belongs to another operator.
        """
        self._require_active()
        try:
            form = parse_payment_form(form_data, today=today)
            return Result.ok(self.collection_service.record_payment(self.user_id, form))
        except (ValidationError, DatabaseError) as e:
            logger.info("Payment form rejected for %s: %s", self.user_id, e)
            return _form_failure(e)

    def edit_loan(self, loan_id, **changes) -> Result:
        self._require_active()
        try:
            return Result.ok(self.loan_service.update_loan(loan_id, self.user_id, **changes))
        except (ValidationError, DatabaseError) as e:
            return _form_failure(e)

    def delete_loan(self, loan_id):
        self._require_active()
        self.loan_service.delete_loan(loan_id, self.user_id)

    def edit_collection(self, collection_id, amount, collection_date, notes="") -> Result:
        self._require_active()
        try:
            return Result.ok(self.collection_service.update_collection(
                collection_id, self.user_id, amount, collection_date, notes))
        except (ValidationError, DatabaseError) as e:
            return _form_failure(e)

    def delete_collection(self, collection_id):
        self._require_active()
        self.collection_service.delete_collection(collection_id, self.user_id)

    # ------------------------------------------------------------------
    # Operator: views
    # ------------------------------------------------------------------

    def _portfolio(self):
        loans = self.loan_service.get_loans(self.user_id)
        return loans, self.collection_service.get_collections_by_loan(self.user_id)

    def get_loan(self, loan_id):
        self._require_active()
        return self.loan_service.get_loan(loan_id, self.user_id)

    def get_loans(self):
        self._require_active()
        return self.loan_service.get_loans(self.user_id)

    def recent_collections(self, limit=RECENT_COLLECTIONS_LIMIT):
        self._require_active()
        return self.collection_service.get_recent_collections(self.user_id, limit)

    def active_loans(self, today=None):
        self._require_active()
        return build_active_loans(*self._portfolio(), today=today)

    def pending_balances(self, today=None):
        self._require_active()
        return build_pending_balances(*self._portfolio(), today=today)

    def new_loans(self, on_date=None):
        self._require_active()
        return build_new_loans(self.loan_service.get_loans(self.user_id), on_date or date.today())

    def daily_collections(self, selected_date=None):
        self._require_active()
        loans, collections_by_loan = self._portfolio()
        return build_daily_collections(loans, collections_by_loan, selected_date or date.today())

    def loan_database(self):
        self._require_active()
        return build_loan_database(self.loan_service.get_loans(self.user_id))

    def customer_report(self, search=None):
        self._require_active()
        rows = build_customer_report(*self._portfolio())
        return search_customer_rows(rows, search) if search else rows

    def generate_period_report(self, report_type, start_date=None, end_date=None, today=None) -> Result:
        """Summarize a period and store a report snapshot."""
        self._require_active()
        try:
            return Result.ok(self.report_generator.generate_period_report(
                self.user_id, report_type, start_date, end_date, today))
        except (ValidationError, DatabaseError) as e:
            return _form_failure(e)

    def export_report(self, report_type, output_path, selected_date=None, search=None):
        """Export the daily, loans or customers report.

        Returns:
            tuple: (bool, str) - (Success status, message).
        """
        self._require_active()
        return self.report_generator.export_report(report_type, self.user_id, output_path,
                                                   selected_date, search)

    # ------------------------------------------------------------------
    # Ads (any signed-in user)
    # ------------------------------------------------------------------

    def ads_to_show(self, today=None, village=None, dismissed=(), max_ads=1):
        return self.ad_service.get_active_ads(today, village, self.user_id, dismissed, max_ads)

    def record_ad_event(self, ad_id, event_type, village=None):
        return self.ad_service.record_event(ad_id, event_type, self.user_id, village)

    # ------------------------------------------------------------------
    # Super admin
    # ------------------------------------------------------------------

    def monthly_fee(self):
        return parse_amount(self.db.get_setting("monthly_fee", DEFAULT_MONTHLY_FEE),
                            "monthly_fee", allow_zero=True)

    def platform_summary(self):
        self._require_super_admin()
        profiles = self.user_service.list_operators()
        loans = self.loan_service.get_loans()
        collections = self.collection_service.get_collections()
        return build_platform_summary(profiles, loans, collections, self.monthly_fee())

    def list_operators(self):
        self._require_super_admin()
        return self.user_service.list_operators()

    def set_operator_active(self, user_id, is_active):
        self._require_super_admin()
        return self.user_service.set_active(user_id, is_active)

    def list_ads(self):
        self._require_super_admin()
        return self.ad_service.get_ads()

    def create_ad(self, **fields) -> Result:
        self._require_super_admin()
        try:
            return Result.ok(self.ad_service.create_ad(self.user_id, **fields))
        except (ValidationError, DatabaseError) as e:
            return _form_failure(e)

    def update_ad(self, ad_id, **fields) -> Result:
        self._require_super_admin()
        try:
            return Result.ok(self.ad_service.update_ad(ad_id, **fields))
        except (ValidationError, DatabaseError) as e:
            return _form_failure(e)

    def set_ad_active(self, ad_id, is_active):
        self._require_super_admin()
        return self.ad_service.set_active(ad_id, is_active)

    def delete_ad(self, ad_id):
        self._require_super_admin()
        self.ad_service.delete_ad(ad_id)

    def ad_analytics(self, ad_id, days=DEFAULT_ANALYTICS_RANGE_DAYS, today=None):
        self._require_super_admin()
        return self.ad_service.get_analytics(ad_id, days, today)

    def export_operator_statement(self, operator_id, folder, fmt="pdf", from_date=None, to_date=None,
                                  config: StatementConfig = None):
        """Export one operator's statement.

        Returns:
            The generator's result tuple: (success, path, kind) for PDF,
            (success, path) for Excel.
        """
        self._require_super_admin()
        generator = StatementGenerator(self.db)
        if fmt == "pdf":
            return generator.generate_pdf_statement(operator_id, folder, from_date, to_date, config)
        if fmt in ("xlsx", "excel"):
            return generator.generate_excel_statement(operator_id, folder, from_date, to_date, config)
        raise ValidationError("fmt", f"Unsupported statement format '{fmt}'", fmt)
