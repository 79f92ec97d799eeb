"""
Monthly Expense Ledger Module

Unified expense ledger used for reporting. Loan installments and debt payments
are mirrored here as side effects of the operations that create them; each
mirrored entry keeps an explicit back-reference to its source record.

Correspondence rules:
- exactly one entry per installment, created with the loan
- exactly one entry per applied debt-payment increment
- pending installment entries are purged when their loan closes or is deleted;
  paid entries are historical record and are never removed
- entries owned by an installment or debt payment are never edited, paid or
  deleted through the direct expense path
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Iterable
from enum import Enum
import re
import uuid

from .amortization import ZERO, month_year as month_bucket, quantize_amount, to_decimal
from .audit import AuditTrail, AuditEventType
from .exceptions import ConflictError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .schedule import Installment
from .storage import StorageInterface, StorageRecord


MONTH_YEAR_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_month_year(value: Optional[str]) -> Optional[str]:
    """Accept None or a 'YYYY-MM' bucket key"""
    if value is None:
        return None
    if not isinstance(value, str) or not MONTH_YEAR_PATTERN.match(value):
        raise ValidationError("Invalid month_year format. Use YYYY-MM")
    return value


class LedgerEntryStatus(Enum):
    """Ledger entry states"""
    PENDING = "pending"
    PAID = "paid"


@dataclass
class LedgerEntry(StorageRecord):
    """Monthly expense row"""
    user_id: str
    category: str
    amount: Decimal
    due_date: date
    month_year: str                     # Derived from due_date
    status: LedgerEntryStatus = LedgerEntryStatus.PENDING
    description: Optional[str] = None
    payment_method: Optional[str] = None
    paid_on: Optional[datetime] = None
    loan_id: Optional[str] = None
    installment_id: Optional[str] = None
    debt_id: Optional[str] = None
    recurring_expense_id: Optional[str] = None

    @property
    def is_mirrored(self) -> bool:
        """Owned by an installment or a debt payment rather than entered directly"""
        return bool(self.loan_id or self.installment_id or self.debt_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LedgerEntry':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            category=data['category'],
            amount=Decimal(data['amount']),
            due_date=date.fromisoformat(data['due_date']),
            month_year=data['month_year'],
            status=LedgerEntryStatus(data['status']),
            description=data.get('description'),
            payment_method=data.get('payment_method'),
            paid_on=datetime.fromisoformat(data['paid_on']) if data.get('paid_on') else None,
            loan_id=data.get('loan_id'),
            installment_id=data.get('installment_id'),
            debt_id=data.get('debt_id'),
            recurring_expense_id=data.get('recurring_expense_id')
        )


class LedgerMirror:
    """
    Keeps the monthly expense ledger in step with installments and debt payments

    Every method is meant to run inside the caller's unit of work; none of them
    opens its own.
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        loan_category: str = "Loan EMI",
        debt_category: str = "Debt Payment",
        payment_method: str = "bank_transfer"
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.loan_category = loan_category
        self.debt_category = debt_category
        self.payment_method = payment_method
        self.logger = get_logger("finance_ledger.ledger")

        self.entries_table = "monthly_expenses"

    def mirror_installments(
        self,
        user_id: str,
        loan_id: str,
        loan_name: str,
        installments: Iterable[Installment]
    ) -> int:
        """
        Insert one ledger entry per installment

        Status and paid_on are copied verbatim, so backfilled installments
        produce already-paid entries. Installments that already have an entry
        are skipped.

        Returns:
            Number of entries created
        """
        mirrored = {
            data.get('installment_id')
            for data in self.storage.find(self.entries_table, {'user_id': user_id, 'loan_id': loan_id})
        }

        now = datetime.now(timezone.utc)
        created = 0
        for installment in installments:
            if installment.id in mirrored:
                continue

            entry = LedgerEntry(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                user_id=user_id,
                category=self.loan_category,
                amount=installment.emi_amount,
                due_date=installment.due_date,
                month_year=month_bucket(installment.due_date),
                status=LedgerEntryStatus.PAID if installment.is_paid else LedgerEntryStatus.PENDING,
                description=f"{loan_name} - EMI #{installment.payment_number}",
                payment_method=self.payment_method,
                paid_on=installment.paid_on if installment.is_paid else None,
                loan_id=loan_id,
                installment_id=installment.id
            )
            self._save_entry(entry)
            mirrored.add(installment.id)
            created += 1

        return created

    def mirror_debt_payment(
        self,
        user_id: str,
        debt_id: str,
        debt_name: str,
        payment_amount: Decimal
    ) -> LedgerEntry:
        """
        Record one applied debt-payment increment as a paid entry dated now

        The amount is the increment itself, never the debt's running total.
        """
        amount = quantize_amount(to_decimal(payment_amount, "payment_amount"))
        if amount <= ZERO:
            raise ValidationError("Mirrored payment amount must be greater than zero")

        now = datetime.now(timezone.utc)
        entry = LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            category=self.debt_category,
            amount=amount,
            due_date=now.date(),
            month_year=month_bucket(now.date()),
            status=LedgerEntryStatus.PAID,
            description=f"Payment towards {debt_name}",
            payment_method=self.payment_method,
            paid_on=now,
            debt_id=debt_id
        )
        self._save_entry(entry)

        self.audit_trail.log_event(
            event_type=AuditEventType.LEDGER_ENTRY_CREATED,
            entity_type="ledger_entry",
            entity_id=entry.id,
            user_id=user_id,
            metadata={"debt_id": debt_id, "amount": amount}
        )

        return entry

    def purge_pending_ledger_for_loan(self, user_id: str, loan_id: str) -> int:
        """
        Delete the loan's pending entries; paid entries are left untouched

        Returns:
            Number of entries deleted
        """
        deleted = self.storage.delete_where(self.entries_table, {
            'user_id': user_id,
            'loan_id': loan_id,
            'status': LedgerEntryStatus.PENDING.value
        })

        if deleted:
            self.audit_trail.log_event(
                event_type=AuditEventType.LEDGER_ENTRIES_PURGED,
                entity_type="loan",
                entity_id=loan_id,
                user_id=user_id,
                metadata={"deleted": deleted}
            )
            log_action(
                self.logger, "info", "Purged pending ledger entries",
                user_id=user_id, action="purge_pending_ledger", resource=loan_id,
                extra={"deleted": deleted}
            )

        return deleted

    def update_ledger_for_installment_paid(
        self,
        user_id: str,
        installment_id: str,
        paid_on: Optional[datetime] = None
    ) -> int:
        """
        Mark the entry linked to an installment as paid

        Matched by the stored installment id, never by loan and period number.

        Returns:
            Number of entries updated (0 when already paid or purged)
        """
        paid_on = paid_on or datetime.now(timezone.utc)
        pending = self.storage.find(self.entries_table, {
            'user_id': user_id,
            'installment_id': installment_id,
            'status': LedgerEntryStatus.PENDING.value
        })

        for data in pending:
            entry = LedgerEntry.from_dict(data)
            entry.status = LedgerEntryStatus.PAID
            entry.paid_on = paid_on
            entry.updated_at = datetime.now(timezone.utc)
            self._save_entry(entry)

        return len(pending)

    def record_expense(
        self,
        user_id: str,
        category: str,
        amount: Decimal,
        due_date: date,
        description: Optional[str] = None,
        payment_method: Optional[str] = None,
        recurring_expense_id: Optional[str] = None
    ) -> LedgerEntry:
        """Insert a pending entry that no loan or debt owns"""
        now = datetime.now(timezone.utc)
        entry = LedgerEntry(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            category=category,
            amount=amount,
            due_date=due_date,
            month_year=month_bucket(due_date),
            description=description,
            payment_method=payment_method,
            recurring_expense_id=recurring_expense_id
        )
        self._save_entry(entry)
        return entry

    def get_entry(self, user_id: str, entry_id: str, for_update: bool = False) -> LedgerEntry:
        """Get a ledger entry owned by user"""
        if for_update:
            data = self.storage.load_for_update(self.entries_table, entry_id)
        else:
            data = self.storage.load(self.entries_table, entry_id)
        if not data or data.get('user_id') != user_id:
            raise NotFoundError(f"Monthly expense {entry_id} not found")
        return LedgerEntry.from_dict(data)

    def get_editable_entry(self, user_id: str, entry_id: str) -> LedgerEntry:
        """
        Load an entry for a direct edit, mark-paid or delete

        Raises:
            ConflictError: The entry mirrors an installment or debt payment;
                it changes only through that loan or debt
        """
        entry = self.get_entry(user_id, entry_id, for_update=True)
        if entry.installment_id:
            raise ConflictError(
                f"Monthly expense {entry_id} mirrors a loan installment; "
                f"mark installment {entry.installment_id} of loan {entry.loan_id} paid instead"
            )
        if entry.is_mirrored:
            raise ConflictError(f"Monthly expense {entry_id} mirrors a debt payment and cannot be changed directly")
        return entry

    def save_entry(self, entry: LedgerEntry) -> None:
        entry.month_year = month_bucket(entry.due_date)
        entry.updated_at = datetime.now(timezone.utc)
        self._save_entry(entry)

    def delete_entry(self, entry: LedgerEntry) -> None:
        self.storage.delete(self.entries_table, entry.id)

    def has_generated_entries(self, user_id: str, month_year: str) -> bool:
        """Whether recurring templates were already expanded into this month"""
        return any(
            data.get('recurring_expense_id')
            for data in self.storage.find(self.entries_table, {'user_id': user_id, 'month_year': month_year})
        )

    def get_entries_for_loan(self, user_id: str, loan_id: str) -> List[LedgerEntry]:
        """Entries mirrored from a loan's installments, by due date"""
        entries = [
            LedgerEntry.from_dict(data)
            for data in self.storage.find(self.entries_table, {'user_id': user_id, 'loan_id': loan_id})
        ]
        entries.sort(key=lambda e: e.due_date)
        return entries

    def get_entries_for_debt(self, user_id: str, debt_id: str) -> List[LedgerEntry]:
        """Entries recorded for a debt's payments, oldest first"""
        entries = [
            LedgerEntry.from_dict(data)
            for data in self.storage.find(self.entries_table, {'user_id': user_id, 'debt_id': debt_id})
        ]
        entries.sort(key=lambda e: e.created_at)
        return entries

    def get_monthly_expenses(
        self,
        user_id: str,
        month_year: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        List a user's ledger entries with totals

        Args:
            user_id: Owner
            month_year: Optional 'YYYY-MM' bucket
            status: Optional 'pending' or 'paid'

        Returns:
            Dictionary with 'expenses' and 'summary'
        """
        validate_month_year(month_year)

        filters = {'user_id': user_id}
        if month_year:
            filters['month_year'] = month_year
        if status is not None:
            try:
                filters['status'] = LedgerEntryStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}")

        entries = [LedgerEntry.from_dict(data) for data in self.storage.find(self.entries_table, filters)]
        entries.sort(key=lambda e: (e.due_date, e.created_at))

        paid = [e for e in entries if e.status == LedgerEntryStatus.PAID]
        pending = [e for e in entries if e.status == LedgerEntryStatus.PENDING]

        return {
            'expenses': entries,
            'summary': {
                'total': len(entries),
                'pending': len(pending),
                'paid': len(paid),
                'total_amount': sum((e.amount for e in entries), ZERO),
                'paid_amount': sum((e.amount for e in paid), ZERO),
                'pending_amount': sum((e.amount for e in pending), ZERO)
            }
        }

    def _save_entry(self, entry: LedgerEntry) -> None:
        """Save ledger entry to storage"""
        self.storage.save(self.entries_table, entry.id, entry.to_dict())
