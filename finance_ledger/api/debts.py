"""
Debt endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from ..engine import LedgerEngine
from .dependencies import get_engine, get_user_id
from .schemas import (
    CreateDebtRequest, PayDebtRequest, UpdateDebtRequest,
    debt_payment_response, debt_response, summary_response
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_debt(
    request: CreateDebtRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Add a debt"""
    debt = engine.create_debt(
        user_id,
        request.debt_name,
        request.total_amount,
        creditor=request.creditor,
        due_date=request.due_date,
        notes=request.notes
    )
    return {
        "message": "Debt added successfully",
        "debt": debt_response(debt)
    }


@router.get("")
async def list_debts(
    status: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """List debts by due date"""
    debts = engine.list_debts(user_id, status=status)
    return {
        "count": len(debts),
        "debts": [debt_response(d) for d in debts]
    }


@router.get("/monthly-due/list")
async def get_monthly_debts_due(
    month_year: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Unpaid debts due in a month"""
    due = engine.get_monthly_debts_due(user_id, month_year=month_year)
    return {
        "month_year": due['month_year'],
        "debts": [debt_response(d) for d in due['debts']],
        "summary": summary_response(due['summary'])
    }


@router.get("/{debt_id}")
async def get_debt(
    debt_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Get debt details"""
    return debt_response(engine.get_debt(user_id, debt_id))


@router.put("/{debt_id}")
async def update_debt(
    debt_id: str,
    request: UpdateDebtRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Update debt details; amounts change only through payments"""
    debt = engine.update_debt(
        user_id, debt_id,
        debt_name=request.debt_name,
        creditor=request.creditor,
        due_date=request.due_date,
        notes=request.notes
    )
    return {
        "message": "Debt updated successfully",
        "debt": debt_response(debt)
    }


@router.delete("/{debt_id}")
async def delete_debt(
    debt_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Delete a debt; its payment history stays in the ledger"""
    engine.delete_debt(user_id, debt_id)
    return {"message": "Debt deleted successfully"}


@router.post("/{debt_id}/pay")
async def pay_debt(
    debt_id: str,
    request: Optional[PayDebtRequest] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Record a partial or full payment"""
    amount = request.amount_paid if request else None
    result = engine.apply_debt_payment(user_id, debt_id, amount=amount)

    if not result.ledger_entry_created:
        message = "Debt is already fully paid"
    elif result.debt.remaining_amount == 0:
        message = "Debt marked as fully paid"
    else:
        message = "Partial payment recorded"

    response = debt_payment_response(result)
    response["message"] = message
    return response
