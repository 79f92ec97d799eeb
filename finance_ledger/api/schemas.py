"""
Pydantic schemas for API requests and response serialization
"""

from typing import Dict, List, Optional, Any, Union
from pydantic import BaseModel, Field

from ..debts import Debt, DebtPaymentResult
from ..expenses import RecurringExpense
from ..ledger import LedgerEntry
from ..loans import Loan, LoanOverview, PaymentSummary
from ..schedule import Installment


# Amounts may be sent as decimal strings or JSON numbers; the engine validates them
Amount = Union[str, int, float]


# Loan schemas
class CreateLoanRequest(BaseModel):
    loan_name: str
    principal_amount: Amount
    interest_rate: Amount = Field(..., description="Annual rate in percent")
    tenure_months: Amount
    start_date: Optional[str] = None  # ISO date string
    notes: Optional[str] = None


class UpdateLoanRequest(BaseModel):
    loan_name: Optional[str] = None
    notes: Optional[str] = None


# Debt schemas
class CreateDebtRequest(BaseModel):
    debt_name: str
    total_amount: Amount
    creditor: Optional[str] = None
    due_date: Optional[str] = None  # ISO date string
    notes: Optional[str] = None


class UpdateDebtRequest(BaseModel):
    debt_name: Optional[str] = None
    creditor: Optional[str] = None
    due_date: Optional[str] = None
    notes: Optional[str] = None


class PayDebtRequest(BaseModel):
    amount_paid: Optional[Amount] = Field(None, description="Omit to pay the remaining balance")


# Expense schemas
class CreateExpenseRequest(BaseModel):
    category: str
    amount: Amount
    month_year: Optional[str] = None  # YYYY-MM
    due_date: Optional[str] = None  # ISO date string, overrides month_year
    description: Optional[str] = None
    payment_method: Optional[str] = None


class UpdateExpenseRequest(BaseModel):
    category: Optional[str] = None
    amount: Optional[Amount] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    due_date: Optional[str] = None


class CreateRecurringExpenseRequest(BaseModel):
    category: str
    amount: Amount
    start_month: str = Field(..., description="YYYY-MM or YYYY-MM-01")
    end_month: Optional[str] = None
    due_day: int = 1
    description: Optional[str] = None
    payment_method: Optional[str] = None


class UpdateRecurringExpenseRequest(BaseModel):
    category: Optional[str] = None
    amount: Optional[Amount] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    end_month: Optional[str] = None
    due_day: Optional[int] = None
    is_active: Optional[bool] = None


# Response helpers
def loan_response(loan: Loan, summary: Optional[PaymentSummary] = None) -> Dict[str, Any]:
    data = loan.to_dict()
    if summary is not None:
        data['payment_summary'] = summary.to_dict()
    return data


def overview_response(overview: LoanOverview) -> Dict[str, Any]:
    return loan_response(overview.loan, overview.payment_summary)


def installments_response(installments: List[Installment]) -> List[Dict[str, Any]]:
    return [i.to_dict() for i in installments]


def debt_response(debt: Debt) -> Dict[str, Any]:
    data = debt.to_dict()
    data['remaining_amount'] = str(debt.remaining_amount)
    return data


def debt_payment_response(result: DebtPaymentResult) -> Dict[str, Any]:
    return {
        "debt": debt_response(result.debt),
        "applied_amount": str(result.applied_amount),
        "ledger_entry_created": result.ledger_entry_created,
        "ledger_entry_id": result.ledger_entry.id if result.ledger_entry else None
    }


def ledger_entries_response(entries: List[LedgerEntry]) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in entries]


def recurring_expense_response(template: RecurringExpense) -> Dict[str, Any]:
    return template.to_dict()


def summary_response(summary: Dict[str, Any]) -> Dict[str, Any]:
    """Render Decimal totals as strings, leave counts alone"""
    return {k: str(v) if not isinstance(v, int) else v for k, v in summary.items()}
