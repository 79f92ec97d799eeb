"""
Test suite for debts module

Payment state machine, clamping, and the ledger entry written per applied
increment.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, date

from finance_ledger.amortization import month_year
from finance_ledger.debts import Debt, DebtStatus, apply_payment, status_for
from finance_ledger.exceptions import NotFoundError, StorageError, ValidationError
from finance_ledger.ledger import LedgerEntryStatus

from conftest import OTHER_USER_ID, USER_ID


def make_debt(total="12000.00", paid="0.00"):
    now = datetime.now(timezone.utc)
    total = Decimal(total)
    paid = Decimal(paid)
    return Debt(
        id="debt-1",
        created_at=now,
        updated_at=now,
        user_id=USER_ID,
        debt_name="Credit Card",
        total_amount=total,
        amount_paid=paid,
        status=status_for(paid, total)
    )


class TestApplyPayment:
    """Pure state machine"""

    def test_partial_payment(self):
        outcome = apply_payment(make_debt(), Decimal('5000'))

        assert outcome.applied_amount == Decimal('5000.00')
        assert outcome.debt.amount_paid == Decimal('5000.00')
        assert outcome.debt.status == DebtStatus.PARTIALLY_PAID

    def test_overpayment_is_clamped(self):
        outcome = apply_payment(make_debt(paid="5000.00"), Decimal('8000'))

        assert outcome.applied_amount == Decimal('7000.00')
        assert outcome.debt.amount_paid == Decimal('12000.00')
        assert outcome.debt.status == DebtStatus.PAID

    def test_missing_amount_pays_in_full(self):
        outcome = apply_payment(make_debt(paid="2500.00"))

        assert outcome.applied_amount == Decimal('9500.00')
        assert outcome.debt.status == DebtStatus.PAID

    def test_paid_debt_unchanged(self):
        debt = make_debt(paid="12000.00")
        outcome = apply_payment(debt, Decimal('100'))

        assert outcome.applied_amount == Decimal('0.00')
        assert outcome.debt is debt

    def test_input_debt_not_mutated(self):
        debt = make_debt()
        apply_payment(debt, Decimal('100'))
        assert debt.amount_paid == Decimal('0.00')

    @pytest.mark.parametrize("amount", [0, "-10", "abc", "NaN", True, "1e27"])
    def test_invalid_amount(self, amount):
        with pytest.raises(ValidationError):
            apply_payment(make_debt(), amount)

    def test_status_consistency_enforced(self):
        with pytest.raises(ValueError):
            Debt(
                id="d", created_at=datetime.now(timezone.utc), updated_at=datetime.now(timezone.utc),
                user_id=USER_ID, debt_name="x", total_amount=Decimal('10.00'),
                amount_paid=Decimal('10.00'), status=DebtStatus.PARTIALLY_PAID
            )


class TestDebtPayments:
    """Payments through the engine"""

    def test_create_debt(self, engine):
        debt = engine.create_debt(USER_ID, "Credit Card", "12000", creditor="Bank", due_date="2024-07-01")

        assert debt.status == DebtStatus.PENDING
        assert debt.total_amount == Decimal('12000.00')
        assert debt.amount_paid == Decimal('0.00')
        assert debt.due_date == date(2024, 7, 1)
        assert engine.get_debt(USER_ID, debt.id) == debt

    @pytest.mark.parametrize("name,total", [("", "100"), ("Card", "0"), ("Card", "-1"), ("Card", None), ("Card", "1e27")])
    def test_create_debt_validation(self, engine, name, total):
        with pytest.raises(ValidationError):
            engine.create_debt(USER_ID, name, total)
        assert engine.list_debts(USER_ID) == []

    def test_partial_then_clamped_payment(self, engine):
        debt = engine.create_debt(USER_ID, "Credit Card", "12000")

        first = engine.apply_debt_payment(USER_ID, debt.id, "5000")
        assert first.debt.status == DebtStatus.PARTIALLY_PAID
        assert first.debt.amount_paid == Decimal('5000.00')
        assert first.ledger_entry_created

        second = engine.apply_debt_payment(USER_ID, debt.id, "8000")
        assert second.applied_amount == Decimal('7000.00')
        assert second.debt.status == DebtStatus.PAID
        assert second.debt.amount_paid == Decimal('12000.00')

        entries = engine.ledger_mirror.get_entries_for_debt(USER_ID, debt.id)
        assert [e.amount for e in entries] == [Decimal('5000.00'), Decimal('7000.00')]
        assert all(e.status == LedgerEntryStatus.PAID for e in entries)
        assert all(e.category == "Debt Payment" for e in entries)
        assert entries[0].description == "Payment towards Credit Card"
        assert entries[0].month_year == month_year(date.today())

    def test_pay_in_full_twice(self, engine):
        debt = engine.create_debt(USER_ID, "Friend", "300")

        first = engine.apply_debt_payment(USER_ID, debt.id)
        second = engine.apply_debt_payment(USER_ID, debt.id)

        assert first.applied_amount == Decimal('300.00')
        assert second.applied_amount == Decimal('0.00')
        assert not second.ledger_entry_created
        assert second.debt.status == DebtStatus.PAID
        assert len(engine.ledger_mirror.get_entries_for_debt(USER_ID, debt.id)) == 1

    def test_amount_paid_monotonic(self, engine):
        debt = engine.create_debt(USER_ID, "Loan from Sam", "1000")
        previous = Decimal('0')
        for amount in ["100", "250.50", "0.01", "900", "5"]:
            result = engine.apply_debt_payment(USER_ID, debt.id, amount)
            assert result.debt.amount_paid >= previous
            assert result.debt.amount_paid <= result.debt.total_amount
            previous = result.debt.amount_paid

        assert previous == Decimal('1000.00')
        total_mirrored = sum(e.amount for e in engine.ledger_mirror.get_entries_for_debt(USER_ID, debt.id))
        assert total_mirrored == Decimal('1000.00')

    def test_invalid_amount_writes_nothing(self, engine):
        debt = engine.create_debt(USER_ID, "Card", "100")
        with pytest.raises(ValidationError):
            engine.apply_debt_payment(USER_ID, debt.id, "-5")
        assert engine.get_debt(USER_ID, debt.id).amount_paid == Decimal('0.00')

    def test_ledger_failure_leaves_debt_unpaid(self, engine, monkeypatch):
        debt = engine.create_debt(USER_ID, "Card", "1000")
        engine.apply_debt_payment(USER_ID, debt.id, "250")

        def broken_mirror(*args, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(engine.ledger_mirror, "mirror_debt_payment", broken_mirror)

        with pytest.raises(StorageError) as excinfo:
            engine.apply_debt_payment(USER_ID, debt.id, "500")

        assert excinfo.value.retryable
        stored = engine.get_debt(USER_ID, debt.id)
        assert stored.amount_paid == Decimal('250.00')
        assert stored.status == DebtStatus.PARTIALLY_PAID
        assert len(engine.ledger_mirror.get_entries_for_debt(USER_ID, debt.id)) == 1

    def test_unknown_or_foreign_debt(self, engine):
        debt = engine.create_debt(USER_ID, "Card", "100")
        with pytest.raises(NotFoundError):
            engine.apply_debt_payment(USER_ID, "missing", "10")
        with pytest.raises(NotFoundError):
            engine.apply_debt_payment(OTHER_USER_ID, debt.id, "10")


class TestDebtQueries:
    """Reads, updates and deletion"""

    def test_list_orders_by_due_date_undated_last(self, engine):
        engine.create_debt(USER_ID, "Undated", "100")
        engine.create_debt(USER_ID, "Later", "100", due_date="2024-09-01")
        engine.create_debt(USER_ID, "Sooner", "100", due_date="2024-07-01")

        names = [d.debt_name for d in engine.list_debts(USER_ID)]
        assert names == ["Sooner", "Later", "Undated"]

    def test_list_status_filter(self, engine):
        paid = engine.create_debt(USER_ID, "A", "100")
        engine.create_debt(USER_ID, "B", "100")
        engine.apply_debt_payment(USER_ID, paid.id)

        assert [d.id for d in engine.list_debts(USER_ID, status="paid")] == [paid.id]
        with pytest.raises(ValidationError):
            engine.list_debts(USER_ID, status="forgiven")

    def test_update_debt(self, engine):
        debt = engine.create_debt(USER_ID, "Card", "100")

        updated = engine.update_debt(USER_ID, debt.id, creditor="Bank", due_date="2024-08-15")

        assert updated.creditor == "Bank"
        assert updated.due_date == date(2024, 8, 15)
        assert updated.total_amount == Decimal('100.00')

    def test_delete_debt_keeps_ledger_history(self, engine):
        debt = engine.create_debt(USER_ID, "Card", "100")
        engine.apply_debt_payment(USER_ID, debt.id, "40")

        engine.delete_debt(USER_ID, debt.id)

        with pytest.raises(NotFoundError):
            engine.get_debt(USER_ID, debt.id)
        assert len(engine.ledger_mirror.get_entries_for_debt(USER_ID, debt.id)) == 1

    def test_monthly_debts_due(self, engine):
        engine.create_debt(USER_ID, "July", "100", due_date="2024-07-10")
        partial = engine.create_debt(USER_ID, "July partial", "300", due_date="2024-07-20")
        settled = engine.create_debt(USER_ID, "July settled", "50", due_date="2024-07-05")
        engine.create_debt(USER_ID, "August", "100", due_date="2024-08-01")
        engine.apply_debt_payment(USER_ID, partial.id, "100")
        engine.apply_debt_payment(USER_ID, settled.id)

        due = engine.get_monthly_debts_due(USER_ID, month_year="2024-07")

        assert [d.debt_name for d in due['debts']] == ["July", "July partial"]
        assert due['summary']['total_debts'] == 2
        assert due['summary']['total_amount'] == Decimal('300.00')
