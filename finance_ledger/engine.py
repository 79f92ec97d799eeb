"""
Ledger Engine Module

Single entry point that wires storage, audit, ledger mirror, coordinator and
the loan, debt and expense managers together. Every public operation of the
system is reachable from here; the HTTP layer is a thin adapter over this class.
"""

from datetime import date
from typing import Dict, List, Optional, Any

from .audit import AuditTrail
from .config import LedgerConfig, get_config
from .coordinator import TransactionCoordinator
from .debts import Debt, DebtManager, DebtPaymentResult
from .expenses import ExpenseManager, ExpensePaidResult, RecurringExpense
from .ledger import LedgerEntry, LedgerMirror
from .loans import (
    InstallmentPaidResult, Loan, LoanClosureResult,
    LoanCreationResult, LoanManager, LoanOverview, PaymentSummary
)
from .schedule import Installment
from .storage import StorageInterface, create_storage


class LedgerEngine:
    """Loan amortization and ledger synchronization engine"""

    def __init__(self, storage: Optional[StorageInterface] = None, config: Optional[LedgerConfig] = None):
        self.config = config or get_config()
        self.storage = storage or create_storage(
            self.config.database_url,
            timeout=self.config.database_timeout_seconds
        )
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.ledger_mirror = LedgerMirror(
            self.storage,
            self.audit_trail,
            loan_category=self.config.ledger_loan_category,
            debt_category=self.config.ledger_debt_category,
            payment_method=self.config.ledger_payment_method
        )
        self.coordinator = TransactionCoordinator(
            self.storage,
            timeout_seconds=self.config.transaction_timeout_seconds
        )
        self.loan_manager = LoanManager(self.storage, self.ledger_mirror, self.coordinator, self.audit_trail)
        self.debt_manager = DebtManager(self.storage, self.ledger_mirror, self.coordinator, self.audit_trail)
        self.expense_manager = ExpenseManager(self.storage, self.ledger_mirror, self.coordinator, self.audit_trail)

    @classmethod
    def from_config(cls, config: Optional[LedgerConfig] = None) -> 'LedgerEngine':
        """Build an engine whose backend is chosen by config.database_url"""
        return cls(config=config)

    def close(self) -> None:
        self.storage.close()

    # Loans

    def create_loan(
        self,
        user_id: str,
        loan_name: str,
        principal: Any,
        annual_rate: Any,
        tenure_months: Any,
        start_date: Any = None,
        notes: Optional[str] = None,
        today: Optional[date] = None
    ) -> LoanCreationResult:
        return self.loan_manager.create_loan(
            user_id, loan_name, principal, annual_rate, tenure_months,
            start_date=start_date, notes=notes, today=today
        )

    def close_loan(self, user_id: str, loan_id: str) -> LoanClosureResult:
        return self.loan_manager.close_loan(user_id, loan_id)

    def foreclose_loan(self, user_id: str, loan_id: str) -> LoanClosureResult:
        return self.loan_manager.foreclose_loan(user_id, loan_id)

    def delete_loan(self, user_id: str, loan_id: str) -> int:
        return self.loan_manager.delete_loan(user_id, loan_id)

    def mark_installment_paid(self, user_id: str, loan_id: str, installment_id: str) -> InstallmentPaidResult:
        return self.loan_manager.mark_installment_paid(user_id, loan_id, installment_id)

    def update_loan(
        self,
        user_id: str,
        loan_id: str,
        loan_name: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Loan:
        return self.loan_manager.update_loan(user_id, loan_id, loan_name=loan_name, notes=notes)

    def get_loan(self, user_id: str, loan_id: str) -> Loan:
        return self.loan_manager.get_loan(user_id, loan_id)

    def list_loans(self, user_id: str, status: Optional[str] = None) -> List[LoanOverview]:
        return self.loan_manager.list_loan_overviews(user_id, status=status)

    def get_installments(self, user_id: str, loan_id: str, status: Optional[str] = None) -> List[Installment]:
        return self.loan_manager.get_installments(user_id, loan_id, status=status)

    def get_payment_summary(self, user_id: str, loan_id: str) -> PaymentSummary:
        return self.loan_manager.get_payment_summary(user_id, loan_id)

    def get_monthly_emi_due(self, user_id: str, month_year: Optional[str] = None) -> Dict[str, Any]:
        return self.loan_manager.get_monthly_emi_due(user_id, month_year=month_year)

    # Debts

    def create_debt(
        self,
        user_id: str,
        debt_name: str,
        total_amount: Any,
        creditor: Optional[str] = None,
        due_date: Any = None,
        notes: Optional[str] = None
    ) -> Debt:
        return self.debt_manager.create_debt(
            user_id, debt_name, total_amount,
            creditor=creditor, due_date=due_date, notes=notes
        )

    def apply_debt_payment(self, user_id: str, debt_id: str, amount: Any = None) -> DebtPaymentResult:
        return self.debt_manager.apply_debt_payment(user_id, debt_id, amount=amount)

    def get_debt(self, user_id: str, debt_id: str) -> Debt:
        return self.debt_manager.get_debt(user_id, debt_id)

    def list_debts(self, user_id: str, status: Optional[str] = None) -> List[Debt]:
        return self.debt_manager.list_debts(user_id, status=status)

    def update_debt(
        self,
        user_id: str,
        debt_id: str,
        debt_name: Optional[str] = None,
        creditor: Optional[str] = None,
        due_date: Any = None,
        notes: Optional[str] = None
    ) -> Debt:
        return self.debt_manager.update_debt(
            user_id, debt_id,
            debt_name=debt_name, creditor=creditor, due_date=due_date, notes=notes
        )

    def delete_debt(self, user_id: str, debt_id: str) -> None:
        self.debt_manager.delete_debt(user_id, debt_id)

    def get_monthly_debts_due(self, user_id: str, month_year: Optional[str] = None) -> Dict[str, Any]:
        return self.debt_manager.get_monthly_debts_due(user_id, month_year=month_year)

    # Ledger

    def get_monthly_expenses(
        self,
        user_id: str,
        month_year: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        return self.ledger_mirror.get_monthly_expenses(user_id, month_year=month_year, status=status)

    def add_expense(
        self,
        user_id: str,
        category: str,
        amount: Any,
        month_year: Optional[str] = None,
        due_date: Any = None,
        description: Optional[str] = None,
        payment_method: Optional[str] = None
    ) -> LedgerEntry:
        return self.expense_manager.add_expense(
            user_id, category, amount, month_year=month_year, due_date=due_date,
            description=description, payment_method=payment_method
        )

    def update_expense(
        self,
        user_id: str,
        entry_id: str,
        category: Optional[str] = None,
        amount: Any = None,
        description: Optional[str] = None,
        payment_method: Optional[str] = None,
        due_date: Any = None
    ) -> LedgerEntry:
        return self.expense_manager.update_expense(
            user_id, entry_id, category=category, amount=amount,
            description=description, payment_method=payment_method, due_date=due_date
        )

    def mark_expense_paid(self, user_id: str, entry_id: str) -> ExpensePaidResult:
        return self.expense_manager.mark_expense_paid(user_id, entry_id)

    def delete_expense(self, user_id: str, entry_id: str) -> None:
        self.expense_manager.delete_expense(user_id, entry_id)

    # Recurring expenses

    def create_recurring_expense(
        self,
        user_id: str,
        category: str,
        amount: Any,
        start_month: Any,
        end_month: Any = None,
        due_day: int = 1,
        description: Optional[str] = None,
        payment_method: Optional[str] = None
    ) -> RecurringExpense:
        return self.expense_manager.create_recurring_expense(
            user_id, category, amount, start_month, end_month=end_month, due_day=due_day,
            description=description, payment_method=payment_method
        )

    def list_recurring_expenses(self, user_id: str, is_active: Optional[bool] = None) -> List[RecurringExpense]:
        return self.expense_manager.list_recurring_expenses(user_id, is_active=is_active)

    def update_recurring_expense(
        self,
        user_id: str,
        template_id: str,
        category: Optional[str] = None,
        amount: Any = None,
        description: Optional[str] = None,
        payment_method: Optional[str] = None,
        end_month: Any = None,
        due_day: Optional[int] = None,
        is_active: Optional[bool] = None
    ) -> RecurringExpense:
        return self.expense_manager.update_recurring_expense(
            user_id, template_id, category=category, amount=amount,
            description=description, payment_method=payment_method,
            end_month=end_month, due_day=due_day, is_active=is_active
        )

    def delete_recurring_expense(self, user_id: str, template_id: str) -> None:
        self.expense_manager.delete_recurring_expense(user_id, template_id)

    def generate_monthly_expenses(self, user_id: str, month_year: str) -> List[LedgerEntry]:
        return self.expense_manager.generate_monthly_expenses(user_id, month_year)

    def verify_audit_integrity(self) -> Dict[str, Any]:
        return self.audit_trail.verify_integrity()
