"""
Amortization Calculator Module

Pure reducing-balance arithmetic: EMI for a principal/rate/tenure and the
interest/principal split for one period. No I/O. NEVER uses float for
monetary values; every result is quantized to currency precision.
"""

from decimal import Decimal, ROUND_HALF_UP, DecimalException, getcontext
from dataclasses import dataclass
from datetime import date
from typing import Any
import calendar

from .exceptions import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

CURRENCY_QUANTUM = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Coerce user input into a finite Decimal or raise ValidationError"""
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except DecimalException:
            raise ValidationError(f"{field_name} must be a number")
    else:
        raise ValidationError(f"{field_name} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def to_tenure(value: Any) -> int:
    """Validate a tenure in months: a positive whole number"""
    if isinstance(value, bool) or value is None:
        raise ValidationError("Valid tenure in months is required")
    months = to_decimal(value, "tenure_months")
    if months != months.to_integral_value() or months <= 0:
        raise ValidationError("Valid tenure in months is required")
    return int(months)


def quantize_amount(amount: Decimal) -> Decimal:
    """Round to currency precision; amounts too large for the context are rejected"""
    try:
        return amount.quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)
    except DecimalException:
        raise ValidationError(f"Amount {amount} exceeds supported precision")


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """Convert an annual percentage rate into a monthly fraction"""
    return Decimal(annual_rate_percent) / Decimal('1200')


def compute_emi(principal: Any, annual_rate_percent: Any, tenure_months: Any) -> Decimal:
    """
    Calculate the equated monthly installment

    Standard formula: P * [r(1+r)^n] / [(1+r)^n - 1], with r the monthly rate.
    A zero rate degrades to simple division.

    Args:
        principal: Amount borrowed, must be positive
        annual_rate_percent: Annual interest rate in percent, must be non-negative
        tenure_months: Number of monthly installments, must be positive

    Returns:
        EMI rounded to currency precision

    Raises:
        ValidationError: On out-of-range input or a non-finite result
    """
    principal = to_decimal(principal, "principal_amount")
    rate = to_decimal(annual_rate_percent, "interest_rate")
    tenure = to_tenure(tenure_months)

    if principal <= 0:
        raise ValidationError("principal_amount must be greater than zero")
    if rate < 0:
        raise ValidationError("interest_rate cannot be negative")

    try:
        if rate == 0:
            emi = principal / Decimal(tenure)
        else:
            r = monthly_rate(rate)
            factor = (Decimal('1') + r) ** tenure
            emi = principal * r * factor / (factor - Decimal('1'))
    except DecimalException:
        raise ValidationError("EMI could not be computed for the given terms")

    if not emi.is_finite():
        raise ValidationError("EMI could not be computed for the given terms")

    return quantize_amount(emi)


@dataclass(frozen=True)
class PeriodSplit:
    """Interest/principal breakdown of a single installment"""
    interest_portion: Decimal
    principal_portion: Decimal
    new_balance: Decimal


def split_period(outstanding_balance: Decimal, rate: Decimal, emi_amount: Decimal) -> PeriodSplit:
    """
    Split one EMI into interest and principal against the running balance

    The new balance is clamped at zero so terminal rounding drift never
    produces a negative balance.
    """
    interest = quantize_amount(outstanding_balance * rate)
    principal = emi_amount - interest
    new_balance = max(ZERO, quantize_amount(outstanding_balance - principal))
    return PeriodSplit(
        interest_portion=interest,
        principal_portion=principal,
        new_balance=new_balance
    )


def add_months(start_date: date, months: int) -> date:
    """
    Add months to a date, handling month-end edge cases

    Raises ValueError when the result falls outside the calendar (year 1..9999).
    """
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_year(value: date) -> str:
    """Bucket key used by the monthly ledger, e.g. '2024-03'"""
    return f"{value.year:04d}-{value.month:02d}"
