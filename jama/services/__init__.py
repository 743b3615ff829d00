"""Services package for JAMA business logic.

Stateless calculators (loan economics, ledger, overdue, report
projections) plus record services that persist loans, collections,
profiles and ads.
"""

from .loan_economics import compute_loan_economics, compute_disbursed_amount, tenor_to_days, suggest_installment
from .ledger_aggregator import aggregate_ledger, round_half_up
from .overdue_calculator import compute_overdue, priority_band, classify_loan_status
from .loan_service import LoanService
from .collection_service import CollectionService
from .ad_service import AdService
from .user_service import UserService

__all__ = ['compute_loan_economics', 'compute_disbursed_amount', 'tenor_to_days', 'suggest_installment',
           'aggregate_ledger', 'round_half_up', 'compute_overdue', 'priority_band', 'classify_loan_status',
           'LoanService', 'CollectionService', 'AdService', 'UserService']
