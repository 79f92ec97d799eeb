"""
Loan Module

Handles loan creation with a full amortization schedule, installment payment,
closure, foreclosure and deletion. Every lifecycle change updates the monthly
expense ledger in the same unit of work.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .amortization import ZERO, add_months, compute_emi, month_year as month_bucket, quantize_amount, to_decimal, to_tenure
from .audit import AuditTrail, AuditEventType
from .coordinator import TransactionCoordinator
from .exceptions import ConflictError, NotFoundError, ValidationError
from .ledger import LedgerMirror, validate_month_year
from .logging_config import get_logger, log_action
from .schedule import Installment, InstallmentStatus, generate_schedule
from .storage import StorageInterface, StorageRecord


class LoanStatus(Enum):
    """Loan lifecycle states"""
    ACTIVE = "active"           # Repayment in progress
    CLOSED = "closed"           # Closed by the user
    FORECLOSED = "foreclosed"   # Paid off early


def parse_date(value: Any, field_name: str) -> Optional[date]:
    """Accept a date, an ISO 'YYYY-MM-DD' string or None"""
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid {field_name} format. Use YYYY-MM-DD")


def require_name(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


@dataclass
class Loan(StorageRecord):
    """Installment loan with fixed EMI"""
    user_id: str
    loan_name: str
    principal_amount: Decimal
    interest_rate: Decimal              # Annual, percent
    tenure_months: int
    emi_amount: Decimal
    start_date: date
    end_date: date
    status: LoanStatus = LoanStatus.ACTIVE
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == LoanStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            loan_name=data['loan_name'],
            principal_amount=Decimal(data['principal_amount']),
            interest_rate=Decimal(data['interest_rate']),
            tenure_months=data['tenure_months'],
            emi_amount=Decimal(data['emi_amount']),
            start_date=date.fromisoformat(data['start_date']),
            end_date=date.fromisoformat(data['end_date']),
            status=LoanStatus(data['status']),
            notes=data.get('notes')
        )


@dataclass
class LoanCreationResult:
    loan: Loan
    installments: List[Installment]
    ledger_entries_created: int
    past_payments_auto_marked: int
    future_payments_pending: int


@dataclass
class LoanClosureResult:
    loan: Loan
    pending_ledger_entries_deleted: int


@dataclass
class InstallmentPaidResult:
    installment: Installment
    ledger_entries_updated: int
    already_paid: bool = False


@dataclass
class PaymentSummary:
    """Installment counts and paid total for one loan"""
    total_payments: int = 0
    paid_count: int = 0
    pending_count: int = 0
    overdue_count: int = 0
    total_paid: Decimal = field(default_factory=lambda: ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_payments': self.total_payments,
            'paid_count': self.paid_count,
            'pending_count': self.pending_count,
            'overdue_count': self.overdue_count,
            'total_paid': str(self.total_paid)
        }


@dataclass
class LoanOverview:
    """Loan together with its installment counts"""
    loan: Loan
    payment_summary: PaymentSummary


class LoanManager:
    """
    Manages loan lifecycle from creation through closure
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
        self.logger = get_logger("finance_ledger.loans")

        self.loans_table = "loans"
        self.installments_table = "loan_installments"

    def create_loan(
        self,
        user_id: str,
        loan_name: str,
        principal_amount: Any,
        interest_rate: Any,
        tenure_months: Any,
        start_date: Any = None,
        notes: Optional[str] = None,
        today: Optional[date] = None
    ) -> LoanCreationResult:
        """
        Create a loan with its amortization schedule and ledger mirrors

        Input is validated before any storage access. The loan, every
        installment and every mirrored ledger entry are written in one unit
        of work.

        Args:
            user_id: Owner
            loan_name: Display name, also used in ledger descriptions
            principal_amount: Amount borrowed
            interest_rate: Annual rate in percent
            tenure_months: Number of monthly installments
            start_date: Disbursement date (defaults to today)
            notes: Free-form notes
            today: Reference date for backfilling past installments

        Returns:
            LoanCreationResult with the schedule and backfill counts
        """
        loan_name = require_name(loan_name, "loan_name")
        principal = quantize_amount(to_decimal(principal_amount, "principal_amount"))
        emi_amount = compute_emi(principal, interest_rate, tenure_months)
        rate = to_decimal(interest_rate, "interest_rate")
        tenure = to_tenure(tenure_months)
        start = parse_date(start_date, "start_date") or (today or date.today())
        try:
            end_date = add_months(start, tenure)
        except ValueError:
            raise ValidationError("Loan tenure runs past the last supported date")

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            loan_name=loan_name,
            principal_amount=principal,
            interest_rate=rate,
            tenure_months=tenure,
            emi_amount=emi_amount,
            start_date=start,
            end_date=end_date,
            status=LoanStatus.ACTIVE,
            notes=notes
        )

        installments = generate_schedule(loan, start, emi_amount, today=today)

        with self.coordinator.unit_of_work("create_loan", loan.id, user_id):
            self._save_loan(loan)
            for installment in installments:
                self._save_installment(installment)

            created = self.ledger_mirror.mirror_installments(user_id, loan.id, loan.loan_name, installments)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CREATED,
                entity_type="loan",
                entity_id=loan.id,
                user_id=user_id,
                metadata={
                    "principal_amount": loan.principal_amount,
                    "interest_rate": loan.interest_rate,
                    "tenure_months": loan.tenure_months,
                    "emi_amount": loan.emi_amount,
                    "start_date": loan.start_date.isoformat(),
                    "ledger_entries_created": created
                }
            )

        paid = sum(1 for i in installments if i.is_paid)
        log_action(
            self.logger, "info", "Loan created with payment schedule",
            user_id=user_id, action="create_loan", resource=loan.id,
            extra={"installments": len(installments), "auto_marked_paid": paid}
        )

        return LoanCreationResult(
            loan=loan,
            installments=installments,
            ledger_entries_created=created,
            past_payments_auto_marked=paid,
            future_payments_pending=len(installments) - paid
        )

    def close_loan(self, user_id: str, loan_id: str) -> LoanClosureResult:
        """Close a loan and drop its pending ledger entries"""
        return self._end_loan(user_id, loan_id, LoanStatus.CLOSED)

    def foreclose_loan(self, user_id: str, loan_id: str) -> LoanClosureResult:
        """Foreclose (pay off early) a loan; ledger handling matches closure"""
        return self._end_loan(user_id, loan_id, LoanStatus.FORECLOSED)

    def delete_loan(self, user_id: str, loan_id: str) -> int:
        """
        Delete a loan and its schedule

        Pending ledger entries go with it; paid entries remain as history.

        Returns:
            Number of pending ledger entries deleted
        """
        with self.coordinator.unit_of_work("delete_loan", loan_id, user_id):
            loan = self._require_loan(user_id, loan_id, for_update=True)

            deleted = self.ledger_mirror.purge_pending_ledger_for_loan(user_id, loan_id)
            self.storage.delete_where(self.installments_table, {'loan_id': loan_id})
            self.storage.delete(self.loans_table, loan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_DELETED,
                entity_type="loan",
                entity_id=loan_id,
                user_id=user_id,
                metadata={"loan_name": loan.loan_name, "pending_ledger_entries_deleted": deleted}
            )

        log_action(
            self.logger, "info", "Loan deleted",
            user_id=user_id, action="delete_loan", resource=loan_id,
            extra={"pending_ledger_entries_deleted": deleted}
        )
        return deleted

    def mark_installment_paid(self, user_id: str, loan_id: str, installment_id: str) -> InstallmentPaidResult:
        """
        Mark one installment paid and flip its ledger entry

        Marking an already-paid installment is a no-op, so retries are safe.

        Raises:
            NotFoundError: Loan or installment missing or not owned by user
            ConflictError: Loan is no longer active
        """
        with self.coordinator.unit_of_work("mark_installment_paid", installment_id, user_id):
            loan = self._require_loan(user_id, loan_id, for_update=True)

            data = self.storage.load_for_update(self.installments_table, installment_id)
            if not data or data.get('loan_id') != loan_id or data.get('user_id') != user_id:
                raise NotFoundError(f"Payment {installment_id} not found")
            installment = Installment.from_dict(data)

            if installment.is_paid:
                return InstallmentPaidResult(
                    installment=installment,
                    ledger_entries_updated=0,
                    already_paid=True
                )

            if not loan.is_active:
                raise ConflictError(f"Loan {loan_id} is {loan.status.value}; its installments can no longer be paid")

            now = datetime.now(timezone.utc)
            installment.status = InstallmentStatus.PAID
            installment.paid_on = now
            installment.updated_at = now
            self._save_installment(installment)

            updated = self.ledger_mirror.update_ledger_for_installment_paid(user_id, installment.id, paid_on=now)

            self.audit_trail.log_event(
                event_type=AuditEventType.INSTALLMENT_PAID,
                entity_type="installment",
                entity_id=installment.id,
                user_id=user_id,
                metadata={
                    "loan_id": loan_id,
                    "payment_number": installment.payment_number,
                    "emi_amount": installment.emi_amount,
                    "ledger_entries_updated": updated
                }
            )

        log_action(
            self.logger, "info", "EMI marked as paid",
            user_id=user_id, action="mark_installment_paid", resource=installment_id,
            extra={"loan_id": loan_id, "ledger_entries_updated": updated}
        )
        return InstallmentPaidResult(installment=installment, ledger_entries_updated=updated)

    def update_loan(
        self,
        user_id: str,
        loan_id: str,
        loan_name: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Loan:
        """Update loan metadata; financial terms are immutable"""
        if loan_name is not None:
            loan_name = require_name(loan_name, "loan_name")

        with self.coordinator.unit_of_work("update_loan", loan_id, user_id):
            loan = self._require_loan(user_id, loan_id, for_update=True)
            if loan_name is not None:
                loan.loan_name = loan_name
            if notes is not None:
                loan.notes = notes
            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_UPDATED,
                entity_type="loan",
                entity_id=loan_id,
                user_id=user_id,
                metadata={"loan_name": loan.loan_name}
            )

        return loan

    def get_loan(self, user_id: str, loan_id: str) -> Loan:
        """Get loan by ID"""
        return self._require_loan(user_id, loan_id)

    def list_loans(self, user_id: str, status: Optional[str] = None) -> List[Loan]:
        """Get a user's loans, newest first"""
        filters = {'user_id': user_id}
        if status is not None:
            try:
                filters['status'] = LoanStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}")

        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, filters)]
        loans.sort(key=lambda x: x.created_at, reverse=True)
        return loans

    def get_installments(
        self,
        user_id: str,
        loan_id: str,
        status: Optional[str] = None
    ) -> List[Installment]:
        """Get a loan's installments ordered by payment number"""
        self._require_loan(user_id, loan_id)

        filters = {'loan_id': loan_id}
        if status is not None:
            try:
                filters['status'] = InstallmentStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}")

        installments = [Installment.from_dict(data) for data in self.storage.find(self.installments_table, filters)]
        installments.sort(key=lambda x: x.payment_number)
        return installments

    def list_loan_overviews(self, user_id: str, status: Optional[str] = None) -> List[LoanOverview]:
        """List loans with a payment summary each"""
        overviews = []
        for loan in self.list_loans(user_id, status=status):
            installments = [
                Installment.from_dict(data)
                for data in self.storage.find(self.installments_table, {'loan_id': loan.id})
            ]
            overviews.append(LoanOverview(loan=loan, payment_summary=self._summarize(installments)))
        return overviews

    def get_payment_summary(self, user_id: str, loan_id: str) -> PaymentSummary:
        """Count installments by status and total the paid EMIs"""
        return self._summarize(self.get_installments(user_id, loan_id))

    def _summarize(self, installments: List[Installment]) -> PaymentSummary:
        summary = PaymentSummary()
        for installment in installments:
            summary.total_payments += 1
            if installment.status == InstallmentStatus.PAID:
                summary.paid_count += 1
                summary.total_paid += installment.emi_amount
            elif installment.status == InstallmentStatus.OVERDUE:
                summary.overdue_count += 1
            else:
                summary.pending_count += 1
        return summary

    def get_monthly_emi_due(self, user_id: str, month_year: Optional[str] = None) -> Dict[str, Any]:
        """
        Installments falling due in one month across all of a user's loans

        Args:
            user_id: Owner
            month_year: 'YYYY-MM' bucket, defaults to the current month

        Returns:
            Dictionary with 'payments' (installment plus loan name) and 'summary'
        """
        month_year = validate_month_year(month_year) or month_bucket(date.today())

        loan_names = {
            data['id']: data['loan_name']
            for data in self.storage.find(self.loans_table, {'user_id': user_id})
        }
        installments = [
            Installment.from_dict(data)
            for data in self.storage.find(self.installments_table, {'user_id': user_id})
            if data.get('loan_id') in loan_names and data['due_date'][:7] == month_year
        ]
        installments.sort(key=lambda x: (x.due_date, x.payment_number))

        paid = [i for i in installments if i.status == InstallmentStatus.PAID]
        return {
            'month_year': month_year,
            'payments': [
                {'installment': i, 'loan_name': loan_names[i.loan_id]} for i in installments
            ],
            'summary': {
                'total_emis': len(installments),
                'paid': len(paid),
                'pending': sum(1 for i in installments if i.status == InstallmentStatus.PENDING),
                'overdue': sum(1 for i in installments if i.status == InstallmentStatus.OVERDUE),
                'total_amount': sum((i.emi_amount for i in installments), ZERO),
                'paid_amount': sum((i.emi_amount for i in paid), ZERO)
            }
        }

    def _end_loan(self, user_id: str, loan_id: str, status: LoanStatus) -> LoanClosureResult:
        """Move an active loan to a terminal status and purge pending mirrors"""
        operation = "close_loan" if status == LoanStatus.CLOSED else "foreclose_loan"

        with self.coordinator.unit_of_work(operation, loan_id, user_id):
            loan = self._require_loan(user_id, loan_id, for_update=True)

            if loan.status == status:
                # Repeat of a completed request
                return LoanClosureResult(loan=loan, pending_ledger_entries_deleted=0)
            if not loan.is_active:
                raise ConflictError(f"Loan {loan_id} is already {loan.status.value}")

            loan.status = status
            loan.updated_at = datetime.now(timezone.utc)
            self._save_loan(loan)

            deleted = self.ledger_mirror.purge_pending_ledger_for_loan(user_id, loan_id)

            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CLOSED if status == LoanStatus.CLOSED
                else AuditEventType.LOAN_FORECLOSED,
                entity_type="loan",
                entity_id=loan_id,
                user_id=user_id,
                metadata={"pending_ledger_entries_deleted": deleted}
            )

        log_action(
            self.logger, "info", f"Loan {status.value}",
            user_id=user_id, action=operation, resource=loan_id,
            extra={"pending_ledger_entries_deleted": deleted}
        )
        return LoanClosureResult(loan=loan, pending_ledger_entries_deleted=deleted)

    def _require_loan(self, user_id: str, loan_id: str, for_update: bool = False) -> Loan:
        """Load a loan owned by user or raise NotFoundError"""
        if for_update:
            data = self.storage.load_for_update(self.loans_table, loan_id)
        else:
            data = self.storage.load(self.loans_table, loan_id)

        if not data or data.get('user_id') != user_id:
            raise NotFoundError(f"Loan {loan_id} not found")
        return Loan.from_dict(data)

    def _save_loan(self, loan: Loan) -> None:
        """Save loan to storage"""
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def _save_installment(self, installment: Installment) -> None:
        """Save installment to storage"""
        self.storage.save(self.installments_table, installment.id, installment.to_dict())
