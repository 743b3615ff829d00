"""Loan economics calculator for JAMA.

Derives what a loan is worth from its terms:
- Disbursed amount (full vs. cutting up front)
- Total expected collection and profit
- Tenor in days and the annualized interest rate

All functions are pure; they never touch the database.
"""
import math

from jama.config import (
    DAYS_PER_WEEK, DAYS_PER_MONTH, DAYS_PER_YEAR, INTEREST_RATE_PRECISION,
    DURATION_UNITS,
)
from jama.data_structures import LoanTerms, LoanEconomics
from jama.exceptions import ValidationError
from jama.validation import parse_choice


def tenor_to_days(count, unit):
    """Convert a tenor to days.
    
    Weeks are 7 days; months are approximated as 30 days.
    
    Args:
        count: Number of units (None is treated as 0).
        unit: 'days', 'weeks' or 'months'.
        
    Returns:
        Tenor length in whole days.
    """
    count = int(count or 0)
    unit = parse_choice(unit, DURATION_UNITS, "tenor_unit")
    if unit == "weeks":
        return count * DAYS_PER_WEEK
    if unit == "months":
        return count * DAYS_PER_MONTH
    return count


def compute_disbursed_amount(principal, disbursement_type, cutting_amount=0.0):
    """Cash handed to the customer.
    
    Raises:
        ValidationError: If the cutting exceeds the principal.
    """
    if disbursement_type != "cutting":
        return principal
    cutting = cutting_amount or 0.0
    if cutting > principal:
        raise ValidationError("cutting_amount",
                              f"Cutting amount {cutting:,.2f} cannot exceed principal {principal:,.2f}",
                              cutting)
    return principal - cutting


def compute_loan_economics(terms: LoanTerms) -> LoanEconomics:
    """Derive disbursement, collection, profit and annualized rate.
    
    Zero installment or tenor does not raise: the totals come out as 0
    and the rate as 0%.
    
    Args:
        terms: Loan terms; validated before any arithmetic.
        
    Returns:
        LoanEconomics for the terms.
        
    Raises:
        ValidationError: If the terms are invalid (see LoanTerms.validate).
    """
    terms.validate()

    principal = float(terms.principal)
    installment = float(terms.installment_amount or 0.0)
    tenor_count = int(terms.tenor_count or 0)

    disbursed = compute_disbursed_amount(principal, terms.disbursement_type.lower(),
                                         float(terms.cutting_amount or 0.0))
    total_collection = installment * tenor_count
    profit_interest = total_collection - disbursed
    tenor_days = tenor_to_days(tenor_count, terms.tenor_unit)

    annual_rate = 0.0
    if disbursed > 0 and tenor_days > 0 and total_collection > 0:
        annual_rate = round(
            (profit_interest / disbursed) * (DAYS_PER_YEAR / tenor_days) * 100,
            INTEREST_RATE_PRECISION,
        )

    return LoanEconomics(
        disbursed_amount=disbursed,
        total_collection=total_collection,
        profit_interest=profit_interest,
        annual_interest_rate_percent=annual_rate,
        tenor_days=tenor_days,
    )


def suggest_installment(principal, tenor_count):
    """Suggested per-period payment: principal spread evenly, rounded up."""
    if not tenor_count or tenor_count <= 0:
        return 0
    return math.ceil(principal / tenor_count)
