"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from ..engine import LedgerEngine
from .dependencies import get_engine, get_user_id
from .schemas import (
    CreateLoanRequest, UpdateLoanRequest,
    installments_response, loan_response, overview_response, summary_response
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Create a loan with its payment schedule and ledger entries"""
    result = engine.create_loan(
        user_id,
        request.loan_name,
        request.principal_amount,
        request.interest_rate,
        request.tenure_months,
        start_date=request.start_date,
        notes=request.notes
    )

    return {
        "message": "Loan created successfully with payment schedule",
        "loan": loan_response(result.loan),
        "payments_created": len(result.installments),
        "ledger_entries_created": result.ledger_entries_created,
        "past_payments_auto_marked": result.past_payments_auto_marked,
        "future_payments_pending": result.future_payments_pending
    }


@router.get("")
async def list_loans(
    status: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """List loans with payment summaries"""
    overviews = engine.list_loans(user_id, status=status)
    return {
        "count": len(overviews),
        "loans": [overview_response(o) for o in overviews]
    }


@router.get("/monthly-due/list")
async def get_monthly_emi_due(
    month_year: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Installments due in a month across all loans"""
    due = engine.get_monthly_emi_due(user_id, month_year=month_year)
    return {
        "month_year": due['month_year'],
        "payments": [
            dict(p['installment'].to_dict(), loan_name=p['loan_name'])
            for p in due['payments']
        ],
        "summary": summary_response(due['summary'])
    }


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Get loan details with its payment schedule"""
    loan = engine.get_loan(user_id, loan_id)
    installments = engine.get_installments(user_id, loan_id)
    summary = engine.get_payment_summary(user_id, loan_id)

    data = loan_response(loan, summary)
    data["payments"] = installments_response(installments)
    return data


@router.put("/{loan_id}")
async def update_loan(
    loan_id: str,
    request: UpdateLoanRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Update loan name or notes"""
    loan = engine.update_loan(user_id, loan_id, loan_name=request.loan_name, notes=request.notes)
    return {
        "message": "Loan updated successfully",
        "loan": loan_response(loan)
    }


@router.delete("/{loan_id}")
async def delete_loan(
    loan_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Delete a loan, its schedule and its pending ledger entries"""
    deleted = engine.delete_loan(user_id, loan_id)
    return {
        "message": "Loan deleted successfully",
        "pending_ledger_entries_deleted": deleted
    }


@router.post("/{loan_id}/close")
async def close_loan(
    loan_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Close a loan"""
    result = engine.close_loan(user_id, loan_id)
    return {
        "message": "Loan closed successfully",
        "loan": loan_response(result.loan),
        "pending_ledger_entries_deleted": result.pending_ledger_entries_deleted
    }


@router.post("/{loan_id}/foreclose")
async def foreclose_loan(
    loan_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Foreclose (pay off early) a loan"""
    result = engine.foreclose_loan(user_id, loan_id)
    return {
        "message": "Loan foreclosed successfully",
        "loan": loan_response(result.loan),
        "pending_ledger_entries_deleted": result.pending_ledger_entries_deleted
    }


@router.get("/{loan_id}/payments")
async def get_loan_payments(
    loan_id: str,
    status: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Get a loan's payment schedule"""
    installments = engine.get_installments(user_id, loan_id, status=status)
    return {
        "loan_id": loan_id,
        "count": len(installments),
        "payments": installments_response(installments)
    }


@router.post("/{loan_id}/payments/{payment_id}/mark-paid")
async def mark_payment_paid(
    loan_id: str,
    payment_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Mark an EMI as paid and update its ledger entry"""
    result = engine.mark_installment_paid(user_id, loan_id, payment_id)
    return {
        "message": "Payment was already marked as paid" if result.already_paid else "EMI marked as paid",
        "payment": result.installment.to_dict(),
        "already_paid": result.already_paid,
        "ledger_entries_updated": result.ledger_entries_updated
    }
