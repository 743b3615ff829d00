"""Centralized configuration for JAMA.

This module contains the business rule constants, default values and
display formats shared by the calculators, services and exporters.
Values that operators may tune at runtime are mirrored in the
``settings`` table (see ``DatabaseManager.get_setting``) and fall back
to the defaults defined here.
"""

# =============================================================================
# TENOR CONVERSION
# =============================================================================

DAYS_PER_WEEK = 7

# A month is approximated as exactly 30 days for tenor conversion and
# interest annualization. This is not calendar accurate.
DAYS_PER_MONTH = 30

DAYS_PER_YEAR = 365

DURATION_UNITS = ("days", "weeks", "months")

REPAYMENT_TYPES = ("daily", "weekly", "monthly")

DISBURSEMENT_TYPES = ("full", "cutting")

# =============================================================================
# LOAN DEFAULTS
# =============================================================================

DEFAULT_DURATION_UNIT = "days"

DEFAULT_REPAYMENT_TYPE = "daily"

DEFAULT_DISBURSEMENT_TYPE = "full"

# Annualized interest rate precision (decimal places)
INTEREST_RATE_PRECISION = 2

# =============================================================================
# OVERDUE PRIORITY BANDS
# =============================================================================

# days_overdue >= HIGH -> high, >= MEDIUM -> medium, otherwise normal
HIGH_PRIORITY_OVERDUE_DAYS = 7

MEDIUM_PRIORITY_OVERDUE_DAYS = 4

# =============================================================================
# COLLECTIONS
# =============================================================================

RECENT_COLLECTIONS_LIMIT = 20

# Keypad quick-add amounts on the payment screen
QUICK_PAYMENT_AMOUNTS = (100, 500, 1000)

# Keypad entry is limited to 8 digits
MAX_PAYMENT_DIGITS = 8

# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

# Monthly fee charged per active operator
DEFAULT_MONTHLY_FEE = 1000

# =============================================================================
# ADS
# =============================================================================

AD_EVENT_TYPES = ("view", "click", "dismiss")

AD_RECURRING_TYPES = ("daily", "weekly", "monthly", "yearly")

DEFAULT_ANALYTICS_RANGE_DAYS = 30

# =============================================================================
# DISPLAY FORMATS
# =============================================================================

# Date format for storage (ISO 8601)
DATE_FORMAT_STORAGE = "%Y-%m-%d"

# Date format for display (en-IN style)
DATE_FORMAT_DISPLAY = "%d/%m/%Y"

CURRENCY_SYMBOL = "Rs."

# =============================================================================
# REPORT EXPORT
# =============================================================================

REPORT_TITLE = "JAMA Report"

EXCEL_HEADER_BG = "#D7E4BC"

EXCEL_TOTAL_BG = "#F0F0F0"

# PDF margins in mm
PDF_MARGIN_MM = 10
