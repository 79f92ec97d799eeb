"""
Debt Module

Tracks debts and applies partial or full payments. The payment state machine
only moves forward (pending -> partially_paid -> paid) and each applied
increment is mirrored into the monthly expense ledger atomically.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .amortization import ZERO, month_year as month_bucket, quantize_amount, to_decimal
from .audit import AuditTrail, AuditEventType
from .coordinator import TransactionCoordinator
from .exceptions import NotFoundError, ValidationError
from .ledger import LedgerEntry, LedgerMirror, validate_month_year
from .loans import parse_date, require_name
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class DebtStatus(Enum):
    """Debt repayment states"""
    PENDING = "pending"                 # Nothing paid yet
    PARTIALLY_PAID = "partially_paid"   # 0 < amount_paid < total_amount
    PAID = "paid"                       # amount_paid == total_amount


def status_for(amount_paid: Decimal, total_amount: Decimal) -> DebtStatus:
    """Derive the only status consistent with the paid amount"""
    if amount_paid <= ZERO:
        return DebtStatus.PENDING
    if amount_paid >= total_amount:
        return DebtStatus.PAID
    return DebtStatus.PARTIALLY_PAID


@dataclass
class Debt(StorageRecord):
    """Money owed to a creditor, repaid in one or more increments"""
    user_id: str
    debt_name: str
    total_amount: Decimal
    amount_paid: Decimal = ZERO
    status: DebtStatus = DebtStatus.PENDING
    creditor: Optional[str] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None

    def __post_init__(self):
        if self.total_amount <= ZERO:
            raise ValueError("Debt total amount must be positive")
        if self.amount_paid < ZERO or self.amount_paid > self.total_amount:
            raise ValueError(f"Amount paid {self.amount_paid} outside 0..{self.total_amount}")
        if self.status != status_for(self.amount_paid, self.total_amount):
            raise ValueError(f"Status {self.status.value} inconsistent with amount paid {self.amount_paid}")

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.amount_paid

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Debt':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            debt_name=data['debt_name'],
            total_amount=Decimal(data['total_amount']),
            amount_paid=Decimal(data['amount_paid']),
            status=DebtStatus(data['status']),
            creditor=data.get('creditor'),
            due_date=date.fromisoformat(data['due_date']) if data.get('due_date') else None,
            notes=data.get('notes')
        )


@dataclass(frozen=True)
class PaymentOutcome:
    debt: Debt
    applied_amount: Decimal


@dataclass
class DebtPaymentResult:
    debt: Debt
    applied_amount: Decimal
    ledger_entry_created: bool
    ledger_entry: Optional[LedgerEntry] = None


def validate_payment_amount(amount: Any) -> Optional[Decimal]:
    """None means pay in full; anything else must be a positive amount"""
    if amount is None:
        return None
    value = quantize_amount(to_decimal(amount, "amount_paid"))
    if value <= ZERO:
        raise ValidationError("Payment amount must be greater than zero")
    return value


def apply_payment(debt: Debt, requested_amount: Any = None) -> PaymentOutcome:
    """
    Apply a payment to a debt without touching storage

    Omitting the amount pays the remaining balance in full. An amount that
    would overshoot the total is clamped to the remaining balance, so an
    overpayment is never recorded. A debt that is already paid comes back
    unchanged with applied_amount 0.
    """
    requested = validate_payment_amount(requested_amount)
    remaining = debt.remaining_amount

    if requested is None:
        applied = remaining
    else:
        applied = min(requested, remaining)

    if applied <= ZERO:
        return PaymentOutcome(debt=debt, applied_amount=ZERO)

    new_amount_paid = debt.amount_paid + applied
    updated = replace(
        debt,
        amount_paid=new_amount_paid,
        status=status_for(new_amount_paid, debt.total_amount),
        updated_at=datetime.now(timezone.utc)
    )
    return PaymentOutcome(debt=updated, applied_amount=applied)


class DebtManager:
    """
    Manages debts and their payments
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
        self.logger = get_logger("finance_ledger.debts")

        self.debts_table = "debts"

    def create_debt(
        self,
        user_id: str,
        debt_name: str,
        total_amount: Any,
        creditor: Optional[str] = None,
        due_date: Any = None,
        notes: Optional[str] = None
    ) -> Debt:
        """Record a new debt in pending state"""
        debt_name = require_name(debt_name, "debt_name")
        total = quantize_amount(to_decimal(total_amount, "total_amount"))
        if total <= ZERO:
            raise ValidationError("Debt name and valid amount are required")
        due = parse_date(due_date, "due_date")

        now = datetime.now(timezone.utc)
        debt = Debt(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            debt_name=debt_name,
            total_amount=total,
            creditor=creditor,
            due_date=due,
            notes=notes
        )

        with self.coordinator.unit_of_work("create_debt", debt.id, user_id):
            self._save_debt(debt)
            self.audit_trail.log_event(
                event_type=AuditEventType.DEBT_CREATED,
                entity_type="debt",
                entity_id=debt.id,
                user_id=user_id,
                metadata={"total_amount": total, "creditor": creditor}
            )

        log_action(
            self.logger, "info", "Debt added",
            user_id=user_id, action="create_debt", resource=debt.id
        )
        return debt

    def apply_debt_payment(self, user_id: str, debt_id: str, amount: Any = None) -> DebtPaymentResult:
        """
        Apply a partial or full payment and mirror the applied increment

        The debt update and the ledger insert share one unit of work.

        Args:
            user_id: Owner
            debt_id: Debt to pay
            amount: Increment to apply; None pays the remaining balance

        Returns:
            DebtPaymentResult; applied_amount is 0 when the debt was already paid
        """
        requested = validate_payment_amount(amount)

        with self.coordinator.unit_of_work("apply_debt_payment", debt_id, user_id):
            debt = self._require_debt(user_id, debt_id, for_update=True)
            outcome = apply_payment(debt, requested)

            entry = None
            if outcome.applied_amount > ZERO:
                self._save_debt(outcome.debt)
                entry = self.ledger_mirror.mirror_debt_payment(
                    user_id, debt_id, debt.debt_name, outcome.applied_amount
                )
                self.audit_trail.log_event(
                    event_type=AuditEventType.DEBT_PAYMENT_APPLIED,
                    entity_type="debt",
                    entity_id=debt_id,
                    user_id=user_id,
                    metadata={
                        "requested_amount": requested,
                        "applied_amount": outcome.applied_amount,
                        "amount_paid": outcome.debt.amount_paid,
                        "status": outcome.debt.status,
                        "ledger_entry_id": entry.id
                    }
                )

        if entry is None:
            log_action(
                self.logger, "info", "Debt already fully paid; nothing applied",
                user_id=user_id, action="apply_debt_payment", resource=debt_id
            )
        else:
            log_action(
                self.logger, "info",
                "Debt marked as fully paid" if outcome.debt.status == DebtStatus.PAID else "Partial payment recorded",
                user_id=user_id, action="apply_debt_payment", resource=debt_id,
                extra={"applied_amount": str(outcome.applied_amount)}
            )

        return DebtPaymentResult(
            debt=outcome.debt,
            applied_amount=outcome.applied_amount,
            ledger_entry_created=entry is not None,
            ledger_entry=entry
        )

    def update_debt(
        self,
        user_id: str,
        debt_id: str,
        debt_name: Optional[str] = None,
        creditor: Optional[str] = None,
        due_date: Any = None,
        notes: Optional[str] = None
    ) -> Debt:
        """Update debt metadata; amounts only change through payments"""
        if debt_name is not None:
            debt_name = require_name(debt_name, "debt_name")
        due = parse_date(due_date, "due_date")

        with self.coordinator.unit_of_work("update_debt", debt_id, user_id):
            debt = self._require_debt(user_id, debt_id, for_update=True)
            if debt_name is not None:
                debt.debt_name = debt_name
            if creditor is not None:
                debt.creditor = creditor
            if due is not None:
                debt.due_date = due
            if notes is not None:
                debt.notes = notes
            debt.updated_at = datetime.now(timezone.utc)
            self._save_debt(debt)

            self.audit_trail.log_event(
                event_type=AuditEventType.DEBT_UPDATED,
                entity_type="debt",
                entity_id=debt_id,
                user_id=user_id,
                metadata={"debt_name": debt.debt_name}
            )

        return debt

    def delete_debt(self, user_id: str, debt_id: str) -> None:
        """Delete a debt; its payment entries stay in the ledger as history"""
        with self.coordinator.unit_of_work("delete_debt", debt_id, user_id):
            debt = self._require_debt(user_id, debt_id, for_update=True)
            self.storage.delete(self.debts_table, debt_id)
            self.audit_trail.log_event(
                event_type=AuditEventType.DEBT_DELETED,
                entity_type="debt",
                entity_id=debt_id,
                user_id=user_id,
                metadata={"debt_name": debt.debt_name, "amount_paid": debt.amount_paid}
            )

    def get_debt(self, user_id: str, debt_id: str) -> Debt:
        """Get debt by ID"""
        return self._require_debt(user_id, debt_id)

    def list_debts(self, user_id: str, status: Optional[str] = None) -> List[Debt]:
        """Get a user's debts by due date (undated last), newest first within a date"""
        filters = {'user_id': user_id}
        if status is not None:
            try:
                filters['status'] = DebtStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}")

        debts = [Debt.from_dict(data) for data in self.storage.find(self.debts_table, filters)]
        debts.sort(key=lambda d: d.created_at, reverse=True)
        debts.sort(key=lambda d: (d.due_date is None, d.due_date or date.max))
        return debts

    def get_monthly_debts_due(self, user_id: str, month_year: Optional[str] = None) -> Dict[str, Any]:
        """
        Unpaid debts due in one month

        Args:
            user_id: Owner
            month_year: 'YYYY-MM' bucket, defaults to the current month

        Returns:
            Dictionary with 'debts' and a 'summary' of the remaining amount
        """
        month_year = validate_month_year(month_year) or month_bucket(date.today())

        debts = [
            d for d in self.list_debts(user_id)
            if d.due_date and month_bucket(d.due_date) == month_year and d.status != DebtStatus.PAID
        ]
        return {
            'month_year': month_year,
            'debts': debts,
            'summary': {
                'total_debts': len(debts),
                'total_amount': sum((d.remaining_amount for d in debts), ZERO)
            }
        }

    def _require_debt(self, user_id: str, debt_id: str, for_update: bool = False) -> Debt:
        """Load a debt owned by user or raise NotFoundError"""
        if for_update:
            data = self.storage.load_for_update(self.debts_table, debt_id)
        else:
            data = self.storage.load(self.debts_table, debt_id)

        if not data or data.get('user_id') != user_id:
            raise NotFoundError(f"Debt {debt_id} not found")
        return Debt.from_dict(data)

    def _save_debt(self, debt: Debt) -> None:
        """Save debt to storage"""
        self.storage.save(self.debts_table, debt.id, debt.to_dict())
