"""Record and view-model dataclasses for JAMA.

Records (Loan, Collection, Profile, Ad, AdEvent) are built from database
rows through ``from_row``, which validates every field at the boundary.
View models (LoanEconomics, LedgerSummary, OverdueStatus and the report
rows) are produced by the calculators and never persisted.
"""
import json
from dataclasses import dataclass, field
from datetime import date
from typing import List, Dict, Any, Optional

from jama.config import (
    DURATION_UNITS, REPAYMENT_TYPES, DISBURSEMENT_TYPES,
    DEFAULT_DURATION_UNIT, DEFAULT_REPAYMENT_TYPE, DEFAULT_DISBURSEMENT_TYPE,
    AD_EVENT_TYPES, AD_RECURRING_TYPES, DATE_FORMAT_DISPLAY, REPORT_TITLE,
)
from jama.exceptions import ValidationError
from jama.validation import parse_amount, parse_count, parse_date, parse_choice, parse_text


class LoanStatus:
    """Loan status constants. OVERDUE is display-only and never stored."""
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"

    STORED = (ACTIVE, COMPLETED)
    ALL = (ACTIVE, COMPLETED, OVERDUE)


class PriorityBand:
    """Overdue priority bands, ordered from most to least urgent."""
    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"

    ORDER = {HIGH: 0, MEDIUM: 1, NORMAL: 2}


class Role:
    JAMA_USER = "jama_user"
    SUPER_ADMIN = "super_admin"

    ALL = (JAMA_USER, SUPER_ADMIN)


def _signed_float(value, field_name):
    """Parse a stored derived value that may legitimately be negative."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, f"{field_name} must be a number", value)


def _load_json(value):
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        raise ValidationError("target_audience", "target_audience must be valid JSON", value)


# =============================================================================
# CALCULATOR INPUTS / OUTPUTS
# =============================================================================

@dataclass(frozen=True)
class LoanTerms:
    """Validated input for the loan economics calculator."""
    principal: float
    installment_amount: float = 0.0
    tenor_count: int = 0
    tenor_unit: str = DEFAULT_DURATION_UNIT
    disbursement_type: str = DEFAULT_DISBURSEMENT_TYPE
    cutting_amount: float = 0.0

    def validate(self):
        """Reject terms the calculator must never see.
        
        Zero or missing installment or tenor is allowed here; the calculator returns
        a 0% rate for them. Stricter rules belong to the form boundary.
        
        Raises:
            ValidationError: On non-positive principal, negative values,
                an unknown unit/type, or cutting larger than principal.
        """
        principal = parse_amount(self.principal, "principal")
        parse_amount(self.installment_amount, "installment_amount", allow_zero=True, allow_empty=True)
        parse_count(self.tenor_count, "tenor_count", allow_zero=True, allow_empty=True)
        parse_choice(self.tenor_unit, DURATION_UNITS, "tenor_unit")
        disbursement_type = parse_choice(self.disbursement_type, DISBURSEMENT_TYPES, "disbursement_type")
        if disbursement_type == "cutting":
            cutting = parse_amount(self.cutting_amount, "cutting_amount", allow_zero=True)
            if cutting > principal:
                raise ValidationError(
                    "cutting_amount",
                    f"Cutting amount {cutting:,.2f} cannot exceed principal {principal:,.2f}",
                    cutting,
                )


@dataclass(frozen=True)
class LoanEconomics:
    disbursed_amount: float
    total_collection: float
    profit_interest: float
    annual_interest_rate_percent: float
    tenor_days: int


@dataclass(frozen=True)
class LedgerSummary:
    paid_amount: float
    pending_amount: float
    progress_percent: int
    derived_status: str
    payment_count: int = 0
    average_payment: float = 0.0
    last_payment_date: Optional[date] = None
    overpaid_amount: float = 0.0


@dataclass(frozen=True)
class OverdueStatus:
    expected_end_date: date
    days_since_start: int
    days_overdue: int
    priority_band: str
    last_payment_date: date
    days_since_last_payment: int


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class Loan:
    """A loan as stored for one operator."""
    id: Optional[int]
    user_id: str
    customer_name: str
    customer_mobile: str
    amount: float
    start_date: date
    disbursement_type: str = DEFAULT_DISBURSEMENT_TYPE
    cutting_amount: float = 0.0
    disbursed_amount: float = 0.0
    repayment_type: str = DEFAULT_REPAYMENT_TYPE
    installment_amount: float = 0.0
    duration_count: int = 0
    duration_unit: str = DEFAULT_DURATION_UNIT
    status: str = LoanStatus.ACTIVE
    interest_rate: float = 0.0
    total_collection: float = 0.0
    profit_interest: float = 0.0
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Loan':
        """Build a Loan from a database row, rejecting malformed values."""
        amount = parse_amount(row.get('amount'), "amount")
        disbursement_type = parse_choice(row.get('disbursement_type'), DISBURSEMENT_TYPES,
                                         "disbursement_type", default=DEFAULT_DISBURSEMENT_TYPE)
        cutting = parse_amount(row.get('cutting_amount'), "cutting_amount",
                               allow_zero=True, allow_empty=True) or 0.0
        disbursed = parse_amount(row.get('disbursed_amount'), "disbursed_amount",
                                 allow_zero=True, allow_empty=True)
        if disbursed is None:
            disbursed = amount - cutting if disbursement_type == "cutting" else amount

        return cls(
            id=row.get('id'),
            user_id=row.get('user_id') or "",
            customer_name=parse_text(row.get('customer_name'), "customer_name"),
            customer_mobile=parse_text(row.get('customer_mobile'), "customer_mobile", required=False),
            amount=amount,
            start_date=parse_date(row.get('start_date'), "start_date"),
            disbursement_type=disbursement_type,
            cutting_amount=cutting,
            disbursed_amount=disbursed,
            repayment_type=parse_choice(row.get('repayment_type'), REPAYMENT_TYPES,
                                        "repayment_type", default=DEFAULT_REPAYMENT_TYPE),
            installment_amount=parse_amount(row.get('installment_amount'), "installment_amount",
                                            allow_zero=True, allow_empty=True) or 0.0,
            duration_count=parse_count(row.get('duration_count'), "duration_count",
                                       allow_zero=True, allow_empty=True) or 0,
            duration_unit=parse_choice(row.get('duration_unit'), DURATION_UNITS,
                                       "duration_unit", default=DEFAULT_DURATION_UNIT),
            status=parse_choice(row.get('status'), LoanStatus.ALL, "status", default=LoanStatus.ACTIVE),
            interest_rate=_signed_float(row.get('interest_rate'), "interest_rate"),
            total_collection=_signed_float(row.get('total_collection'), "total_collection"),
            profit_interest=_signed_float(row.get('profit_interest'), "profit_interest"),
            created_at=row.get('created_at'),
        )

    @property
    def terms(self) -> LoanTerms:
        return LoanTerms(
            principal=self.amount,
            installment_amount=self.installment_amount,
            tenor_count=self.duration_count,
            tenor_unit=self.duration_unit,
            disbursement_type=self.disbursement_type,
            cutting_amount=self.cutting_amount,
        )


@dataclass
class Collection:
    """A single recorded payment against a loan."""
    id: Optional[int]
    loan_id: int
    amount: float
    collection_date: date
    notes: str = ""
    user_id: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Collection':
        return cls(
            id=row.get('id'),
            loan_id=row.get('loan_id'),
            amount=parse_amount(row.get('amount'), "amount"),
            collection_date=parse_date(row.get('collection_date'), "collection_date"),
            notes=parse_text(row.get('notes'), "notes", required=False),
            user_id=row.get('user_id') or "",
            created_at=row.get('created_at'),
        )


@dataclass
class Profile:
    user_id: str
    role: str = Role.JAMA_USER
    full_name: str = ""
    mobile_number: str = ""
    company_name: str = ""
    is_active: bool = True
    monthly_fee: float = 0.0
    subscription_status: str = ""
    subscription_start_date: Optional[date] = None
    referral_id: str = ""
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Profile':
        return cls(
            user_id=parse_text(row.get('user_id'), "user_id"),
            role=parse_choice(row.get('role'), Role.ALL, "role", default=Role.JAMA_USER),
            full_name=row.get('full_name') or "",
            mobile_number=row.get('mobile_number') or "",
            company_name=row.get('company_name') or "",
            # A NULL flag counts as inactive
            is_active=bool(row.get('is_active')),
            monthly_fee=_signed_float(row.get('monthly_fee'), "monthly_fee"),
            subscription_status=row.get('subscription_status') or "",
            subscription_start_date=parse_date(row.get('subscription_start_date'),
                                               "subscription_start_date", allow_empty=True),
            referral_id=row.get('referral_id') or "",
            created_at=row.get('created_at'),
        )

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


@dataclass
class Ad:
    id: Optional[int]
    user_id: str
    title: str
    start_date: date
    description: str = ""
    image_url: str = ""
    video_url: str = ""
    end_date: Optional[date] = None
    is_active: bool = True
    is_recurring: bool = False
    recurring_type: Optional[str] = None
    target_audience: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Ad':
        is_recurring = bool(row.get('is_recurring'))
        recurring_type = None
        if is_recurring:
            recurring_type = parse_choice(row.get('recurring_type'), AD_RECURRING_TYPES, "recurring_type")
        return cls(
            id=row.get('id'),
            user_id=row.get('user_id') or "",
            title=parse_text(row.get('title'), "title"),
            start_date=parse_date(row.get('start_date'), "start_date"),
            description=row.get('description') or "",
            image_url=row.get('image_url') or "",
            video_url=row.get('video_url') or "",
            end_date=parse_date(row.get('end_date'), "end_date", allow_empty=True),
            is_active=bool(row.get('is_active')),
            is_recurring=is_recurring,
            recurring_type=recurring_type,
            target_audience=_load_json(row.get('target_audience')),
            created_at=row.get('created_at'),
        )


@dataclass
class AdEvent:
    ad_id: int
    event_type: str
    created_at: date
    user_id: Optional[str] = None
    village: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AdEvent':
        return cls(
            ad_id=row.get('ad_id'),
            event_type=parse_choice(row.get('event_type'), AD_EVENT_TYPES, "event_type"),
            created_at=parse_date(row.get('created_at'), "created_at"),
            user_id=row.get('user_id'),
            village=row.get('village'),
        )


# =============================================================================
# FORMS
# =============================================================================

@dataclass
class LoanForm:
    """A parsed and validated new-loan submission."""
    customer_name: str
    customer_mobile: str
    terms: LoanTerms
    start_date: date
    repayment_type: str = DEFAULT_REPAYMENT_TYPE


@dataclass
class PaymentForm:
    loan_id: int
    amount: float
    collection_date: date
    notes: str = ""


# =============================================================================
# REPORT VIEW MODELS
# =============================================================================

@dataclass
class DailyCollectionRow:
    collection_id: Optional[int]
    loan_id: int
    collection_date: date
    customer_name: str
    customer_mobile: str
    amount: float
    pending_amount: float
    notes: str


@dataclass
class LoanDatabaseRow:
    loan_id: int
    customer_name: str
    customer_mobile: str
    amount: float
    interest_rate: float
    duration_count: int
    duration_unit: str
    status: str
    start_date: date


@dataclass
class LoanDatabaseReport:
    rows: List[LoanDatabaseRow]
    total_count: int
    total_principal: float
    active_count: int


@dataclass
class CustomerReportRow:
    loan_id: int
    customer_name: str
    customer_mobile: str
    principal_amount: float
    paid_amount: float
    outstanding_amount: float
    payment_count: int
    average_payment: float
    start_date: date
    end_date: date
    status: str

    @property
    def time_frame(self) -> str:
        return (f"{self.start_date.strftime(DATE_FORMAT_DISPLAY)} - "
                f"{self.end_date.strftime(DATE_FORMAT_DISPLAY)}")


@dataclass
class PeriodSummary:
    report_type: str
    start_date: date
    end_date: date
    total_loans: float
    total_collections: float
    pending_amount: float
    loans_count: int
    collections_count: int
    loans: List[Loan] = field(default_factory=list)
    collections: List[Collection] = field(default_factory=list)


@dataclass
class ActiveLoanRow:
    loan: Loan
    ledger: LedgerSummary
    overdue: OverdueStatus
    display_status: str


@dataclass
class ActiveLoansReport:
    rows: List[ActiveLoanRow]
    total_lent: float
    total_collected: float
    total_pending: float
    collection_rate_percent: int


@dataclass
class PendingBalanceRow:
    loan_id: int
    customer_name: str
    customer_mobile: str
    total_loan: float
    pending_amount: float
    last_payment_date: date
    days_overdue: int
    priority_band: str


@dataclass
class NewLoansReport:
    loans: List[Loan]
    total_amount: float
    total_installment: float


@dataclass
class PlatformSummary:
    total_users: int
    active_users: int
    inactive_users: int
    monthly_revenue: float
    yearly_revenue: float
    total_customers: int
    total_loans: int
    total_outstanding: float
    total_collections: float


@dataclass
class AdAnalytics:
    ad_id: int
    ad_title: str
    views: int
    clicks: int
    dismissals: int
    click_through_rate: float
    villages: Dict[str, int] = field(default_factory=dict)
    users: Dict[str, int] = field(default_factory=dict)
    daily_stats: Dict[str, Dict[str, int]] = field(default_factory=dict)


# =============================================================================
# EXPORT CONFIGURATION
# =============================================================================

@dataclass
class ReportConfig:
    title: str = REPORT_TITLE
    date_format: str = DATE_FORMAT_DISPLAY
    company_name: Optional[str] = None
    allow_html_fallback: bool = True


@dataclass
class StatementConfig:
    show_loans: bool = True
    show_collections: bool = True
    custom_title: str = "OPERATOR STATEMENT"
    custom_footer: str = ""
    date_format: str = DATE_FORMAT_DISPLAY
    loan_columns: List[str] = field(default_factory=lambda: [
        "Loan ID", "Customer", "Mobile", "Amount", "Paid", "Pending", "Rate", "Status", "Start Date"])
    company_name: Optional[str] = None
    allow_html_fallback: bool = True


@dataclass
class StatementData:
    """DTO holding everything a statement needs for one operator."""
    profile: Profile
    loans: List[Loan]
    collections: List[Collection]


@dataclass
class RecentCollectionRow:
    collection: Collection
    customer_name: str
    customer_mobile: str


@dataclass
class StatementLoanRow:
    loan: Loan
    ledger: LedgerSummary


@dataclass
class StatementPresentation:
    """Formatted statement content shared by the PDF and Excel writers."""
    operator_name: str
    operator_mobile: str
    company_name: str
    status_str: str
    status_color: str
    period_display: str
    loan_rows: List[StatementLoanRow]
    collection_rows: List[RecentCollectionRow]
    total_lent: float = 0.0
    total_pending: float = 0.0
    total_collected: float = 0.0
