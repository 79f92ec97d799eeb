"""
Schedule Generator Module

Builds the ordered installment list for a new loan: due dates, per-period
interest/principal split, and the paid/pending status backfilled from the
loan's real-world history.
"""

from decimal import Decimal
from datetime import datetime, timezone, date, time
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, TYPE_CHECKING
from enum import Enum
import uuid

from .amortization import ZERO, add_months, monthly_rate, quantize_amount, split_period
from .storage import StorageRecord

if TYPE_CHECKING:
    from .loans import Loan


class InstallmentStatus(Enum):
    """Installment payment states"""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass
class Installment(StorageRecord):
    """Single scheduled EMI of a loan"""
    user_id: str
    loan_id: str
    payment_number: int                 # 1-based, unique within the loan
    due_date: date
    emi_amount: Decimal
    principal_paid: Decimal             # Principal portion of this EMI
    interest_paid: Decimal              # Interest portion of this EMI
    outstanding_balance: Decimal        # Balance after this EMI
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_on: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            loan_id=data['loan_id'],
            payment_number=data['payment_number'],
            due_date=date.fromisoformat(data['due_date']),
            emi_amount=Decimal(data['emi_amount']),
            principal_paid=Decimal(data['principal_paid']),
            interest_paid=Decimal(data['interest_paid']),
            outstanding_balance=Decimal(data['outstanding_balance']),
            status=InstallmentStatus(data['status']),
            paid_on=datetime.fromisoformat(data['paid_on']) if data.get('paid_on') else None
        )


def generate_schedule(
    loan: 'Loan',
    start_date: date,
    emi_amount: Decimal,
    today: Optional[date] = None
) -> List[Installment]:
    """
    Generate the full amortization schedule for a loan

    Installment i falls due i calendar months after the start date (month-end
    clamped, always measured from the start date). Installments due on or
    before today are marked paid with paid_on at the due date, since loans can
    be registered after repayment has already begun.

    The final installment absorbs accumulated rounding so the balance ends at
    exactly zero and the principal portions sum to the loan principal.

    Args:
        loan: Loan the schedule belongs to
        start_date: Disbursement date; the first EMI is due one month later
        emi_amount: Rounded EMI from compute_emi
        today: Reference date for the paid/pending decision (defaults to today)

    Returns:
        Installments ordered by payment number
    """
    if today is None:
        today = date.today()

    now = datetime.now(timezone.utc)
    rate = monthly_rate(loan.interest_rate)
    balance = quantize_amount(loan.principal_amount)
    schedule = []

    for payment_number in range(1, loan.tenure_months + 1):
        due_date = add_months(start_date, payment_number)
        split = split_period(balance, rate, emi_amount)

        payment_amount = emi_amount
        principal = split.principal_portion
        new_balance = split.new_balance

        # Final EMI settles exactly what is left; earlier ones never overpay
        if payment_number == loan.tenure_months or principal > balance:
            principal = balance
            payment_amount = principal + split.interest_portion
            new_balance = ZERO

        if due_date <= today:
            status = InstallmentStatus.PAID
            paid_on = datetime.combine(due_date, time.min, tzinfo=timezone.utc)
        else:
            status = InstallmentStatus.PENDING
            paid_on = None

        schedule.append(Installment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=loan.user_id,
            loan_id=loan.id,
            payment_number=payment_number,
            due_date=due_date,
            emi_amount=payment_amount,
            principal_paid=principal,
            interest_paid=split.interest_portion,
            outstanding_balance=new_balance,
            status=status,
            paid_on=paid_on
        ))

        balance = new_balance

    return schedule
