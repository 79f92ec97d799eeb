"""
Expense Module

Direct writes to the monthly expense ledger: one-off expenses, and recurring
templates that are expanded into a month's pending entries on request.

Entries mirrored from installments or debt payments are owned by their loan or
debt and are refused here with ConflictError.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import calendar
import uuid

from .amortization import ZERO, quantize_amount, to_decimal
from .audit import AuditTrail, AuditEventType
from .coordinator import TransactionCoordinator
from .exceptions import ConflictError, NotFoundError, ValidationError
from .ledger import LedgerEntry, LedgerEntryStatus, LedgerMirror, validate_month_year
from .loans import parse_date, require_name
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


DEFAULT_PAYMENT_METHOD = "cash"


def require_amount(value: Any, field_name: str = "amount") -> Decimal:
    amount = quantize_amount(to_decimal(value, field_name))
    if amount <= ZERO:
        raise ValidationError("Category and valid amount are required")
    return amount


def parse_month(value: Any, field_name: str) -> Optional[date]:
    """Accept 'YYYY-MM', an ISO date or a date; normalized to the first of the month"""
    if value is None:
        return None
    if isinstance(value, str) and len(value) == 7:
        validate_month_year(value)
        value = f"{value}-01"
    return parse_date(value, field_name).replace(day=1)


def require_due_day(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 31:
        raise ValidationError("due_day must be a whole number between 1 and 31")
    return value


@dataclass
class RecurringExpense(StorageRecord):
    """Template for an expense that repeats every month between two months"""
    user_id: str
    category: str
    amount: Decimal
    start_month: date                   # First day of the first month
    end_month: Optional[date] = None    # Open-ended when None
    due_day: int = 1                    # Clamped to the month's length
    description: Optional[str] = None
    payment_method: str = DEFAULT_PAYMENT_METHOD
    is_active: bool = True

    def applies_to(self, month_start: date) -> bool:
        if not self.is_active or self.start_month > month_start:
            return False
        return self.end_month is None or self.end_month >= month_start

    def due_date_in(self, month_start: date) -> date:
        last_day = calendar.monthrange(month_start.year, month_start.month)[1]
        return month_start.replace(day=min(self.due_day, last_day))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RecurringExpense':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            category=data['category'],
            amount=Decimal(data['amount']),
            start_month=date.fromisoformat(data['start_month']),
            end_month=date.fromisoformat(data['end_month']) if data.get('end_month') else None,
            due_day=data['due_day'],
            description=data.get('description'),
            payment_method=data['payment_method'],
            is_active=data['is_active']
        )


@dataclass
class ExpensePaidResult:
    expense: LedgerEntry
    already_paid: bool = False


class ExpenseManager:
    """
    Manages directly entered expenses and recurring expense templates
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger_mirror: LedgerMirror,
        coordinator: TransactionCoordinator,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.ledger_mirror = ledger_mirror
        self.coordinator = coordinator
        self.audit_trail = audit_trail
        self.logger = get_logger("finance_ledger.expenses")

        self.recurring_table = "recurring_expenses"

    # One-off expenses

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
        """
        Add a one-off pending expense

        The due date defaults to the first of month_year; when both are given
        the bucket follows the due date.
        """
        category = require_name(category, "category")
        value = require_amount(amount)
        validate_month_year(month_year)
        due = parse_date(due_date, "due_date")
        if due is None:
            if month_year is None:
                raise ValidationError("Invalid month_year format. Use YYYY-MM")
            due = date.fromisoformat(f"{month_year}-01")

        with self.coordinator.unit_of_work("add_expense", due.isoformat(), user_id):
            entry = self.ledger_mirror.record_expense(
                user_id, category, value, due,
                description=description,
                payment_method=payment_method or DEFAULT_PAYMENT_METHOD
            )
            self.audit_trail.log_event(
                event_type=AuditEventType.EXPENSE_CREATED,
                entity_type="ledger_entry",
                entity_id=entry.id,
                user_id=user_id,
                metadata={"category": category, "amount": value, "month_year": entry.month_year}
            )

        log_action(
            self.logger, "info", "Monthly expense added",
            user_id=user_id, action="add_expense", resource=entry.id
        )
        return entry

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
        """Edit a directly entered expense; a new due date moves it to that month"""
        if category is not None:
            category = require_name(category, "category")
        value = require_amount(amount) if amount is not None else None
        due = parse_date(due_date, "due_date")

        with self.coordinator.unit_of_work("update_expense", entry_id, user_id):
            entry = self.ledger_mirror.get_editable_entry(user_id, entry_id)
            if category is not None:
                entry.category = category
            if value is not None:
                entry.amount = value
            if description is not None:
                entry.description = description
            if payment_method is not None:
                entry.payment_method = payment_method
            if due is not None:
                entry.due_date = due
            self.ledger_mirror.save_entry(entry)

            self.audit_trail.log_event(
                event_type=AuditEventType.EXPENSE_UPDATED,
                entity_type="ledger_entry",
                entity_id=entry_id,
                user_id=user_id,
                metadata={"amount": entry.amount, "month_year": entry.month_year}
            )

        return entry

    def mark_expense_paid(self, user_id: str, entry_id: str) -> ExpensePaidResult:
        """Mark a directly entered expense paid; repeating the call changes nothing"""
        with self.coordinator.unit_of_work("mark_expense_paid", entry_id, user_id):
            entry = self.ledger_mirror.get_editable_entry(user_id, entry_id)
            if entry.status == LedgerEntryStatus.PAID:
                return ExpensePaidResult(expense=entry, already_paid=True)

            entry.status = LedgerEntryStatus.PAID
            entry.paid_on = datetime.now(timezone.utc)
            self.ledger_mirror.save_entry(entry)

            self.audit_trail.log_event(
                event_type=AuditEventType.EXPENSE_PAID,
                entity_type="ledger_entry",
                entity_id=entry_id,
                user_id=user_id,
                metadata={"amount": entry.amount}
            )

        log_action(
            self.logger, "info", "Expense marked as paid",
            user_id=user_id, action="mark_expense_paid", resource=entry_id
        )
        return ExpensePaidResult(expense=entry)

    def delete_expense(self, user_id: str, entry_id: str) -> None:
        with self.coordinator.unit_of_work("delete_expense", entry_id, user_id):
            entry = self.ledger_mirror.get_editable_entry(user_id, entry_id)
            self.ledger_mirror.delete_entry(entry)
            self.audit_trail.log_event(
                event_type=AuditEventType.EXPENSE_DELETED,
                entity_type="ledger_entry",
                entity_id=entry_id,
                user_id=user_id,
                metadata={"category": entry.category, "amount": entry.amount, "status": entry.status}
            )

    # Recurring templates

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
        """Add a recurring expense template, active from start_month"""
        category = require_name(category, "category")
        value = require_amount(amount)
        start = parse_month(start_month, "start_month")
        if start is None:
            raise ValidationError("Start month is required (format: YYYY-MM-01)")
        end = parse_month(end_month, "end_month")
        if end is not None and end < start:
            raise ValidationError("end_month cannot be before start_month")

        now = datetime.now(timezone.utc)
        template = RecurringExpense(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            category=category,
            amount=value,
            start_month=start,
            end_month=end,
            due_day=require_due_day(due_day),
            description=description,
            payment_method=payment_method or DEFAULT_PAYMENT_METHOD
        )

        with self.coordinator.unit_of_work("create_recurring_expense", template.id, user_id):
            self._save_template(template)
            self.audit_trail.log_event(
                event_type=AuditEventType.RECURRING_EXPENSE_CREATED,
                entity_type="recurring_expense",
                entity_id=template.id,
                user_id=user_id,
                metadata={"category": category, "amount": value, "start_month": start.isoformat()}
            )

        log_action(
            self.logger, "info", "Recurring expense added",
            user_id=user_id, action="create_recurring_expense", resource=template.id
        )
        return template

    def list_recurring_expenses(self, user_id: str, is_active: Optional[bool] = None) -> List[RecurringExpense]:
        """Get a user's templates ordered by category"""
        filters = {'user_id': user_id}
        if is_active is not None:
            filters['is_active'] = is_active

        templates = [RecurringExpense.from_dict(data) for data in self.storage.find(self.recurring_table, filters)]
        templates.sort(key=lambda t: t.category)
        return templates

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
        """Update a template; entries already generated from it are left as they are"""
        if category is not None:
            category = require_name(category, "category")
        value = require_amount(amount) if amount is not None else None
        end = parse_month(end_month, "end_month")
        day = require_due_day(due_day) if due_day is not None else None

        with self.coordinator.unit_of_work("update_recurring_expense", template_id, user_id):
            template = self._require_template(user_id, template_id, for_update=True)
            if end is not None and end < template.start_month:
                raise ValidationError("end_month cannot be before start_month")

            if category is not None:
                template.category = category
            if value is not None:
                template.amount = value
            if description is not None:
                template.description = description
            if payment_method is not None:
                template.payment_method = payment_method
            if end is not None:
                template.end_month = end
            if day is not None:
                template.due_day = day
            if is_active is not None:
                template.is_active = is_active
            template.updated_at = datetime.now(timezone.utc)
            self._save_template(template)

            self.audit_trail.log_event(
                event_type=AuditEventType.RECURRING_EXPENSE_UPDATED,
                entity_type="recurring_expense",
                entity_id=template_id,
                user_id=user_id,
                metadata={"amount": template.amount, "is_active": template.is_active}
            )

        return template

    def delete_recurring_expense(self, user_id: str, template_id: str) -> None:
        """Delete a template; its generated entries stay in the ledger"""
        with self.coordinator.unit_of_work("delete_recurring_expense", template_id, user_id):
            template = self._require_template(user_id, template_id, for_update=True)
            self.storage.delete(self.recurring_table, template_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.RECURRING_EXPENSE_DELETED,
                entity_type="recurring_expense",
                entity_id=template_id,
                user_id=user_id,
                metadata={"category": template.category}
            )

    def generate_monthly_expenses(self, user_id: str, month_year: str) -> List[LedgerEntry]:
        """
        Expand every template active in a month into a pending entry

        A month is generated at most once; the check and the inserts share
        one unit of work.

        Raises:
            ConflictError: Entries were already generated for the month
        """
        if month_year is None:
            raise ValidationError("Invalid month_year format. Use YYYY-MM")
        validate_month_year(month_year)
        month_start = date.fromisoformat(f"{month_year}-01")

        with self.coordinator.unit_of_work("generate_monthly_expenses", month_year, user_id):
            if self.ledger_mirror.has_generated_entries(user_id, month_year):
                raise ConflictError(f"Monthly expenses already generated for {month_year}")

            templates = [t for t in self.list_recurring_expenses(user_id) if t.applies_to(month_start)]
            generated = [
                self.ledger_mirror.record_expense(
                    user_id, t.category, t.amount, t.due_date_in(month_start),
                    description=t.description,
                    payment_method=t.payment_method,
                    recurring_expense_id=t.id
                )
                for t in templates
            ]

            if generated:
                self.audit_trail.log_event(
                    event_type=AuditEventType.MONTHLY_EXPENSES_GENERATED,
                    entity_type="month",
                    entity_id=month_year,
                    user_id=user_id,
                    metadata={"generated": len(generated)}
                )

        log_action(
            self.logger, "info", f"{len(generated)} monthly expenses generated",
            user_id=user_id, action="generate_monthly_expenses", resource=month_year
        )
        return generated

    def _require_template(self, user_id: str, template_id: str, for_update: bool = False) -> RecurringExpense:
        if for_update:
            data = self.storage.load_for_update(self.recurring_table, template_id)
        else:
            data = self.storage.load(self.recurring_table, template_id)

        if not data or data.get('user_id') != user_id:
            raise NotFoundError(f"Recurring expense {template_id} not found")
        return RecurringExpense.from_dict(data)

    def _save_template(self, template: RecurringExpense) -> None:
        self.storage.save(self.recurring_table, template.id, template.to_dict())
