"""
Integration tests for the Finance Ledger API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from datetime import date
from fastapi.testclient import TestClient

from finance_ledger.amortization import add_months
from finance_ledger.api import app
from finance_ledger.api.dependencies import get_engine
from finance_ledger.config import LedgerConfig
from finance_ledger.engine import LedgerEngine
from finance_ledger.storage import InMemoryStorage


HEADERS = {"X-User-Id": "user-1"}
OTHER_HEADERS = {"X-User-Id": "user-2"}


@pytest.fixture
def client():
    """Test client backed by an in-memory engine"""
    test_engine = LedgerEngine(
        storage=InMemoryStorage(),
        config=LedgerConfig(database_url="memory://")
    )
    app.dependency_overrides[get_engine] = lambda: test_engine

    yield TestClient(app)

    app.dependency_overrides.clear()


def create_loan(client, **overrides):
    body = {
        "loan_name": "Home Loan",
        "principal_amount": "120000",
        "interest_rate": 12,
        "tenure_months": 12,
        "start_date": add_months(date.today(), -3).isoformat()
    }
    body.update(overrides)
    return client.post("/loans", json=body, headers=HEADERS)


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "endpoints" in r.json()


class TestLoanFlow:
    """End-to-end loan workflow"""

    def test_create_loan(self, client):
        r = create_loan(client)
        assert r.status_code == 201
        data = r.json()

        assert data["loan"]["emi_amount"] == "10661.85"
        assert data["loan"]["status"] == "active"
        assert data["payments_created"] == 12
        assert data["ledger_entries_created"] == 12
        assert data["past_payments_auto_marked"] == 3
        assert data["future_payments_pending"] == 9

    def test_missing_user_header(self, client):
        r = client.post("/loans", json={"loan_name": "x", "principal_amount": 1, "interest_rate": 1, "tenure_months": 1})
        assert r.status_code == 401

    @pytest.mark.parametrize("overrides", [
        {"principal_amount": "abc"},
        {"principal_amount": 0},
        {"tenure_months": 0},
        {"interest_rate": -2},
        {"loan_name": ""},
        {"start_date": "March 2024"},
        {"tenure_months": 120000, "start_date": "2024-01-01"},
        {"principal_amount": "1e27"},
    ])
    def test_invalid_loan_is_400(self, client, overrides):
        r = create_loan(client, **overrides)
        assert r.status_code == 400
        assert r.json()["retryable"] is False

    def test_missing_field_is_400(self, client):
        r = client.post("/loans", json={"loan_name": "Home Loan"}, headers=HEADERS)
        assert r.status_code == 400

    def test_get_and_list_loans(self, client):
        loan_id = create_loan(client).json()["loan"]["id"]

        r = client.get(f"/loans/{loan_id}", headers=HEADERS)
        assert r.status_code == 200
        data = r.json()
        assert len(data["payments"]) == 12
        assert data["payment_summary"]["paid_count"] == 3

        r = client.get("/loans", headers=HEADERS)
        assert r.json()["count"] == 1
        assert r.json()["loans"][0]["payment_summary"]["pending_count"] == 9

        assert client.get("/loans", headers=OTHER_HEADERS).json()["count"] == 0
        assert client.get(f"/loans/{loan_id}", headers=OTHER_HEADERS).status_code == 404

    def test_update_loan(self, client):
        loan_id = create_loan(client).json()["loan"]["id"]

        r = client.put(f"/loans/{loan_id}", json={"notes": "fixed rate"}, headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["loan"]["notes"] == "fixed rate"
        assert r.json()["loan"]["loan_name"] == "Home Loan"

    def test_mark_paid_is_idempotent(self, client):
        loan_id = create_loan(client).json()["loan"]["id"]
        pending = client.get(f"/loans/{loan_id}/payments", params={"status": "pending"}, headers=HEADERS).json()
        assert pending["count"] == 9
        payment_id = pending["payments"][0]["id"]

        first = client.post(f"/loans/{loan_id}/payments/{payment_id}/mark-paid", headers=HEADERS)
        assert first.status_code == 200
        assert first.json()["ledger_entries_updated"] == 1
        assert first.json()["payment"]["status"] == "paid"

        second = client.post(f"/loans/{loan_id}/payments/{payment_id}/mark-paid", headers=HEADERS)
        assert second.status_code == 200
        assert second.json()["already_paid"] is True
        assert second.json()["ledger_entries_updated"] == 0

    def test_mark_paid_unknown_payment(self, client):
        loan_id = create_loan(client).json()["loan"]["id"]
        r = client.post(f"/loans/{loan_id}/payments/missing/mark-paid", headers=HEADERS)
        assert r.status_code == 404

    def test_close_then_foreclose_conflicts(self, client):
        loan_id = create_loan(client).json()["loan"]["id"]

        r = client.post(f"/loans/{loan_id}/close", headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["pending_ledger_entries_deleted"] == 9
        assert r.json()["loan"]["status"] == "closed"

        again = client.post(f"/loans/{loan_id}/close", headers=HEADERS)
        assert again.status_code == 200
        assert again.json()["pending_ledger_entries_deleted"] == 0

        r = client.post(f"/loans/{loan_id}/foreclose", headers=HEADERS)
        assert r.status_code == 409

    def test_delete_loan(self, client):
        loan_id = create_loan(client).json()["loan"]["id"]

        r = client.delete(f"/loans/{loan_id}", headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["pending_ledger_entries_deleted"] == 9

        expenses = client.get("/expenses/monthly", headers=HEADERS).json()
        assert expenses["summary"]["total"] == 3
        assert expenses["summary"]["pending"] == 0
        assert client.get(f"/loans/{loan_id}", headers=HEADERS).status_code == 404

    def test_monthly_emi_due(self, client):
        create_loan(client)
        next_month = add_months(date.today(), 1).strftime("%Y-%m")

        r = client.get("/loans/monthly-due/list", params={"month_year": next_month}, headers=HEADERS)
        assert r.status_code == 200
        data = r.json()
        assert data["summary"]["total_emis"] == 1
        assert data["payments"][0]["loan_name"] == "Home Loan"
        assert data["summary"]["total_amount"] == "10661.85"

    def test_bad_month_year(self, client):
        r = client.get("/loans/monthly-due/list", params={"month_year": "2024/01"}, headers=HEADERS)
        assert r.status_code == 400


class TestDebtFlow:
    """End-to-end debt workflow"""

    def create_debt(self, client, **overrides):
        body = {"debt_name": "Credit Card", "total_amount": "12000", "creditor": "Bank"}
        body.update(overrides)
        r = client.post("/debts", json=body, headers=HEADERS)
        assert r.status_code == 201
        return r.json()["debt"]

    def test_partial_then_clamped_payment(self, client):
        debt = self.create_debt(client)
        assert debt["status"] == "pending"
        assert debt["remaining_amount"] == "12000.00"

        r = client.post(f"/debts/{debt['id']}/pay", json={"amount_paid": 5000}, headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["debt"]["status"] == "partially_paid"
        assert r.json()["applied_amount"] == "5000.00"
        assert r.json()["message"] == "Partial payment recorded"

        r = client.post(f"/debts/{debt['id']}/pay", json={"amount_paid": "8000"}, headers=HEADERS)
        assert r.json()["applied_amount"] == "7000.00"
        assert r.json()["debt"]["status"] == "paid"
        assert r.json()["debt"]["amount_paid"] == "12000.00"

        r = client.post(f"/debts/{debt['id']}/pay", json={"amount_paid": "10"}, headers=HEADERS)
        assert r.json()["applied_amount"] == "0.00"
        assert r.json()["ledger_entry_created"] is False

    def test_pay_without_body_pays_in_full(self, client):
        debt = self.create_debt(client, total_amount="250.75")

        r = client.post(f"/debts/{debt['id']}/pay", headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["applied_amount"] == "250.75"
        assert r.json()["message"] == "Debt marked as fully paid"

    def test_negative_payment_is_400(self, client):
        debt = self.create_debt(client)
        r = client.post(f"/debts/{debt['id']}/pay", json={"amount_paid": -1}, headers=HEADERS)
        assert r.status_code == 400

    def test_debt_crud(self, client):
        debt = self.create_debt(client, due_date="2030-05-20")

        r = client.get(f"/debts/{debt['id']}", headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["due_date"] == "2030-05-20"

        r = client.put(f"/debts/{debt['id']}", json={"creditor": "Other Bank"}, headers=HEADERS)
        assert r.json()["debt"]["creditor"] == "Other Bank"

        listing = client.get("/debts", headers=HEADERS).json()
        assert listing["count"] == 1

        due = client.get("/debts/monthly-due/list", params={"month_year": "2030-05"}, headers=HEADERS).json()
        assert due["summary"]["total_debts"] == 1
        assert due["summary"]["total_amount"] == "12000.00"

        r = client.delete(f"/debts/{debt['id']}", headers=HEADERS)
        assert r.status_code == 200
        assert client.get(f"/debts/{debt['id']}", headers=HEADERS).status_code == 404

    def test_debt_payments_appear_in_expenses(self, client):
        debt = self.create_debt(client)
        client.post(f"/debts/{debt['id']}/pay", json={"amount_paid": "300"}, headers=HEADERS)

        month = date.today().strftime("%Y-%m")
        r = client.get("/expenses/monthly", params={"month_year": month, "status": "paid"}, headers=HEADERS)
        assert r.status_code == 200
        entries = [e for e in r.json()["expenses"] if e["debt_id"] == debt["id"]]
        assert len(entries) == 1
        assert entries[0]["amount"] == "300.00"
        assert entries[0]["category"] == "Debt Payment"


class TestExpenseFlow:
    """End-to-end direct expense and recurring template workflow"""

    def test_one_off_expense_lifecycle(self, client):
        r = client.post("/expenses/monthly", json={"category": "Rent", "amount": 1500, "month_year": "2030-01"},
                        headers=HEADERS)
        assert r.status_code == 201
        expense = r.json()["expense"]
        assert expense["due_date"] == "2030-01-01"
        assert expense["status"] == "pending"

        r = client.put(f"/expenses/monthly/{expense['id']}", json={"amount": "1550.50"}, headers=HEADERS)
        assert r.json()["expense"]["amount"] == "1550.50"

        r = client.post(f"/expenses/monthly/{expense['id']}/mark-paid", headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["expense"]["status"] == "paid"
        assert r.json()["already_paid"] is False

        r = client.delete(f"/expenses/monthly/{expense['id']}", headers=HEADERS)
        assert r.status_code == 200
        assert client.get("/expenses/monthly", params={"month_year": "2030-01"},
                          headers=HEADERS).json()["summary"]["total"] == 0

    def test_loan_entry_refused_on_generic_path(self, client):
        create_loan(client)
        pending = client.get("/expenses/monthly", params={"status": "pending"}, headers=HEADERS).json()
        entry_id = pending["expenses"][0]["id"]

        r = client.post(f"/expenses/monthly/{entry_id}/mark-paid", headers=HEADERS)
        assert r.status_code == 409
        assert client.delete(f"/expenses/monthly/{entry_id}", headers=HEADERS).status_code == 409

    def test_unknown_expense_is_404(self, client):
        assert client.post("/expenses/monthly/missing/mark-paid", headers=HEADERS).status_code == 404

    def test_recurring_generation(self, client):
        r = client.post("/expenses/recurring",
                        json={"category": "Internet", "amount": "49.99", "start_month": "2030-01", "due_day": 15},
                        headers=HEADERS)
        assert r.status_code == 201
        template_id = r.json()["expense"]["id"]

        listing = client.get("/expenses/recurring", headers=HEADERS).json()
        assert [t["id"] for t in listing["recurring_expenses"]] == [template_id]

        r = client.post("/expenses/generate/2030-03", headers=HEADERS)
        assert r.status_code == 201
        assert r.json()["expenses"][0]["due_date"] == "2030-03-15"
        assert r.json()["expenses"][0]["recurring_expense_id"] == template_id

        assert client.post("/expenses/generate/2030-03", headers=HEADERS).status_code == 409
        assert client.post("/expenses/generate/2030-3", headers=HEADERS).status_code == 400

        r = client.put(f"/expenses/recurring/{template_id}", json={"is_active": False}, headers=HEADERS)
        assert r.json()["expense"]["is_active"] is False

        assert client.delete(f"/expenses/recurring/{template_id}", headers=HEADERS).status_code == 200
        assert client.get("/expenses/recurring", headers=HEADERS).json()["recurring_expenses"] == []
