"""Boundary validation for raw form and database values.

Every value that reaches a calculator passes through one of these
parsers first. They accept the loose shapes a form or a database row
produces (strings, ints, floats, dates, ISO timestamps) and either
return a clean Python value or raise ``ValidationError``. Nothing here
clamps or guesses; bad input is rejected.
"""
import math
from datetime import date, datetime

from jama.config import DATE_FORMAT_STORAGE
from jama.exceptions import ValidationError


def parse_amount(value, field, allow_zero=False, allow_empty=False):
    """Parse a money amount.
    
    Args:
        value: Raw value (str, int, float or None).
        field: Field name used in error messages.
        allow_zero: Accept 0 as a valid amount.
        allow_empty: Return None for missing/blank values instead of raising.
        
    Returns:
        The amount as float, or None for an allowed empty value.
        
    Raises:
        ValidationError: If the value is missing, non-numeric, negative or zero.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_empty:
            return None
        raise ValidationError(field, f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(field, f"{field} must be a number", value)

    try:
        amount = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{field} must be a number", value)

    if math.isnan(amount) or math.isinf(amount):
        raise ValidationError(field, f"{field} must be a finite number", value)
    if amount < 0:
        raise ValidationError(field, f"{field} cannot be negative", value)
    if amount == 0 and not allow_zero:
        raise ValidationError(field, f"{field} must be greater than zero", value)
    return amount


def parse_count(value, field, allow_zero=False, allow_empty=False):
    """Parse a whole-number count such as a tenor length.
    
    Accepts "30", 30 and 30.0; rejects 30.5.
    """
    amount = parse_amount(value, field, allow_zero=allow_zero, allow_empty=allow_empty)
    if amount is None:
        return None
    if amount != int(amount):
        raise ValidationError(field, f"{field} must be a whole number", value)
    return int(amount)


def parse_date(value, field, allow_empty=False):
    """Parse a date from a date, datetime or ISO string.
    
    ISO timestamps ("2024-01-05T10:30:00", "2024-01-05 10:30:00") are
    truncated to their date part.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_empty:
            return None
        raise ValidationError(field, f"{field} is required")

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a date", value)

    text = value.strip()
    if len(text) > 10 and text[10] in ("T", " "):
        text = text[:10]
    try:
        return datetime.strptime(text, DATE_FORMAT_STORAGE).date()
    except ValueError:
        raise ValidationError(field, f"Invalid {field}. Expected YYYY-MM-DD.", value)


def parse_choice(value, choices, field, default=None):
    """Parse a value that must be one of ``choices`` (case-insensitive)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValidationError(field, f"{field} is required")

    text = str(value).strip().lower()
    if text not in choices:
        allowed = ", ".join(choices)
        raise ValidationError(field, f"{field} must be one of: {allowed}", value)
    return text


def parse_text(value, field, required=True):
    """Parse free text, stripping whitespace."""
    text = "" if value is None else str(value).strip()
    if required and not text:
        raise ValidationError(field, f"{field} is required")
    return text


def format_date(value):
    """Format a date for storage, passing None through."""
    if value is None:
        return None
    return value.strftime(DATE_FORMAT_STORAGE)
