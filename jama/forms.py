"""Form parsing for JAMA.

Turns the raw string dictionaries a data-entry screen submits into
validated LoanForm / PaymentForm objects. This is the input boundary:
anything that fails here never reaches a calculator or the database.
"""
from datetime import date

from jama.config import (
    DURATION_UNITS, REPAYMENT_TYPES, DISBURSEMENT_TYPES, MAX_PAYMENT_DIGITS, QUICK_PAYMENT_AMOUNTS,
    DEFAULT_DURATION_UNIT, DEFAULT_REPAYMENT_TYPE, DEFAULT_DISBURSEMENT_TYPE,
)
from jama.data_structures import LoanForm, LoanTerms, PaymentForm
from jama.exceptions import ValidationError
from jama.services.loan_economics import suggest_installment
from jama.validation import parse_amount, parse_count, parse_date, parse_choice, parse_text


def parse_loan_form(form, today=None) -> LoanForm:
    """Parse a new-loan submission.
    
    Expected keys: customer_name, customer_mobile, amount, duration_count,
    and optionally duration_unit, repayment_type, disbursement_type,
    cutting_amount, installment_amount, start_date.
    
    A blank installment falls back to the suggested installment
    (principal spread evenly over the tenor, rounded up). A blank start
    date means today.
    
    Raises:
        ValidationError: On the first invalid field.
    """
    customer_name = parse_text(form.get('customer_name'), "customer_name")
    customer_mobile = parse_text(form.get('customer_mobile'), "customer_mobile", required=False)
    if customer_mobile and not customer_mobile.replace("+", "", 1).isdigit():
        raise ValidationError("customer_mobile", "customer_mobile must contain digits only", customer_mobile)

    principal = parse_amount(form.get('amount'), "amount")
    duration_count = parse_count(form.get('duration_count'), "duration_count")
    duration_unit = parse_choice(form.get('duration_unit'), DURATION_UNITS, "duration_unit",
                                 default=DEFAULT_DURATION_UNIT)
    repayment_type = parse_choice(form.get('repayment_type'), REPAYMENT_TYPES, "repayment_type",
                                  default=DEFAULT_REPAYMENT_TYPE)
    disbursement_type = parse_choice(form.get('disbursement_type'), DISBURSEMENT_TYPES,
                                     "disbursement_type", default=DEFAULT_DISBURSEMENT_TYPE)

    cutting_amount = 0.0
    if disbursement_type == "cutting":
        cutting_amount = parse_amount(form.get('cutting_amount'), "cutting_amount", allow_zero=True)

    installment = parse_amount(form.get('installment_amount'), "installment_amount", allow_empty=True)
    if installment is None:
        installment = float(suggest_installment(principal, duration_count))

    start_date = parse_date(form.get('start_date'), "start_date", allow_empty=True)
    if start_date is None:
        start_date = today or date.today()

    terms = LoanTerms(
        principal=principal,
        installment_amount=installment,
        tenor_count=duration_count,
        tenor_unit=duration_unit,
        disbursement_type=disbursement_type,
        cutting_amount=cutting_amount,
    )
    terms.validate()

    return LoanForm(
        customer_name=customer_name,
        customer_mobile=customer_mobile,
        terms=terms,
        start_date=start_date,
        repayment_type=repayment_type,
    )


def parse_payment_form(form, today=None) -> PaymentForm:
    """Parse a payment submission (loan_id, amount, collection_date, notes).
    
    Raises:
        ValidationError: If the loan is missing, the amount is not a
            positive number of at most MAX_PAYMENT_DIGITS digits, or the
            date is invalid.
    """
    loan_id = parse_count(form.get('loan_id'), "loan_id")
    amount = parse_amount(form.get('amount'), "amount")
    if amount >= 10 ** MAX_PAYMENT_DIGITS:
        raise ValidationError("amount", f"amount cannot exceed {MAX_PAYMENT_DIGITS} digits", amount)

    collection_date = parse_date(form.get('collection_date'), "collection_date", allow_empty=True)
    if collection_date is None:
        collection_date = today or date.today()

    return PaymentForm(
        loan_id=loan_id,
        amount=amount,
        collection_date=collection_date,
        notes=parse_text(form.get('notes'), "notes", required=False),
    )


class PaymentKeypad:
    """Amount entry state for the payment keypad.

    Digits append to the amount up to MAX_PAYMENT_DIGITS; quick-add
    buttons add to whatever has been typed so far.
    """

    def __init__(self, quick_amounts=QUICK_PAYMENT_AMOUNTS):
        self.quick_amounts = tuple(quick_amounts)
        self.entry = ""

    @property
    def amount(self) -> int:
        return int(self.entry) if self.entry else 0

    def press_digit(self, digit):
        digit = str(digit)
        if not digit.isdigit() or len(digit) != 1:
            raise ValidationError("amount", "Keypad accepts single digits only", digit)
        if len(self.entry) < MAX_PAYMENT_DIGITS:
            self.entry = str(int(self.entry + digit))
        return self.amount

    def add_quick_amount(self, value):
        if value not in self.quick_amounts:
            raise ValidationError("amount", f"No quick-add button for {value}", value)
        total = self.amount + value
        if len(str(total)) <= MAX_PAYMENT_DIGITS:
            self.entry = str(total)
        return self.amount

    def backspace(self):
        self.entry = self.entry[:-1]
        return self.amount

    def clear(self):
        self.entry = ""

    def confirm(self):
        """The entered amount, or None while it is still zero."""
        return self.amount if self.amount > 0 else None
