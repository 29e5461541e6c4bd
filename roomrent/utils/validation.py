import re
from datetime import date
from typing import List, Optional

from roomrent.schemas.payment import PaymentForm

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


def current_month(today: Optional[date] = None) -> str:
    """Billing month for today, as YYYY-MM"""
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def is_valid_month(month: str) -> bool:
    return bool(month and MONTH_PATTERN.match(month))


def month_display(month: str) -> str:
    """'2025-03' -> 'March 2025'. Unparseable values are returned unchanged."""
    if not is_valid_month(month):
        return month
    year, number = month.split("-")
    return f"{MONTH_NAMES[int(number) - 1]} {year}"


def format_currency(amount) -> str:
    """
    Format a rupee amount with Indian digit grouping and no decimals.

    Examples:
        5000 -> '₹5,000'
        1234567 -> '₹12,34,567'
    """
    value = int(round(float(amount)))
    sign = "-" if value < 0 else ""
    digits = str(abs(value))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"{sign}₹{digits}"


def validate_payment_form(form: PaymentForm, monthly_rent: Optional[int] = None) -> List[str]:
    """
    Check a draft payment before anything is sent to the backend.

    Returns a list of human-readable reasons; an empty list means the form
    can be submitted. The minimum amount is only enforced when the room's
    rent is known.
    """
    errors: List[str] = []

    if form.amount is None or form.amount <= 0:
        errors.append("Invalid amount. Please enter a valid amount")
    elif monthly_rent is not None and form.amount < monthly_rent:
        errors.append(f"Amount cannot be less than {format_currency(monthly_rent)}")

    if not form.month:
        errors.append("Please select a billing month")
    elif not is_valid_month(form.month):
        errors.append("Billing month must be in YYYY-MM format")

    if form.method is None:
        errors.append("Please select a payment method")

    if not form.agree_terms:
        errors.append("You must agree to the terms and conditions")

    return errors
