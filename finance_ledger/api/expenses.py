"""
Monthly expense ledger endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from ..engine import LedgerEngine
from .dependencies import get_engine, get_user_id
from .schemas import (
    CreateExpenseRequest, CreateRecurringExpenseRequest,
    UpdateExpenseRequest, UpdateRecurringExpenseRequest,
    ledger_entries_response, recurring_expense_response, summary_response
)


router = APIRouter()


@router.get("/monthly")
async def get_monthly_expenses(
    month_year: Optional[str] = None,
    status: Optional[str] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Ledger entries with totals, optionally for one month or status"""
    expenses = engine.get_monthly_expenses(user_id, month_year=month_year, status=status)
    return {
        "expenses": ledger_entries_response(expenses['expenses']),
        "summary": summary_response(expenses['summary'])
    }


@router.post("/monthly", status_code=status.HTTP_201_CREATED)
async def add_monthly_expense(
    request: CreateExpenseRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Add a one-off expense"""
    entry = engine.add_expense(
        user_id,
        request.category,
        request.amount,
        month_year=request.month_year,
        due_date=request.due_date,
        description=request.description,
        payment_method=request.payment_method
    )
    return {
        "message": "Monthly expense added successfully",
        "expense": entry.to_dict()
    }


@router.put("/monthly/{expense_id}")
async def update_monthly_expense(
    expense_id: str,
    request: UpdateExpenseRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Edit an expense that no loan or debt owns"""
    entry = engine.update_expense(
        user_id, expense_id,
        category=request.category,
        amount=request.amount,
        description=request.description,
        payment_method=request.payment_method,
        due_date=request.due_date
    )
    return {
        "message": "Monthly expense updated successfully",
        "expense": entry.to_dict()
    }


@router.post("/monthly/{expense_id}/mark-paid")
async def mark_expense_paid(
    expense_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Mark an expense paid; EMI entries are paid through their loan"""
    result = engine.mark_expense_paid(user_id, expense_id)
    return {
        "message": "Expense already paid" if result.already_paid else "Expense marked as paid",
        "expense": result.expense.to_dict(),
        "already_paid": result.already_paid
    }


@router.delete("/monthly/{expense_id}")
async def delete_monthly_expense(
    expense_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Delete an expense that no loan or debt owns"""
    engine.delete_expense(user_id, expense_id)
    return {"message": "Monthly expense deleted successfully"}


@router.get("/recurring")
async def list_recurring_expenses(
    is_active: Optional[bool] = None,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """List recurring expense templates by category"""
    templates = engine.list_recurring_expenses(user_id, is_active=is_active)
    return {"recurring_expenses": [recurring_expense_response(t) for t in templates]}


@router.post("/recurring", status_code=status.HTTP_201_CREATED)
async def add_recurring_expense(
    request: CreateRecurringExpenseRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Add a recurring expense template"""
    template = engine.create_recurring_expense(
        user_id,
        request.category,
        request.amount,
        request.start_month,
        end_month=request.end_month,
        due_day=request.due_day,
        description=request.description,
        payment_method=request.payment_method
    )
    return {
        "message": "Recurring expense added successfully",
        "expense": recurring_expense_response(template)
    }


@router.put("/recurring/{template_id}")
async def update_recurring_expense(
    template_id: str,
    request: UpdateRecurringExpenseRequest,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Update a recurring expense template"""
    template = engine.update_recurring_expense(
        user_id, template_id,
        category=request.category,
        amount=request.amount,
        description=request.description,
        payment_method=request.payment_method,
        end_month=request.end_month,
        due_day=request.due_day,
        is_active=request.is_active
    )
    return {
        "message": "Recurring expense updated successfully",
        "expense": recurring_expense_response(template)
    }


@router.delete("/recurring/{template_id}")
async def delete_recurring_expense(
    template_id: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Delete a recurring expense template"""
    engine.delete_recurring_expense(user_id, template_id)
    return {"message": "Recurring expense deleted successfully"}


@router.post("/generate/{month_year}", status_code=status.HTTP_201_CREATED)
async def generate_monthly_expenses(
    month_year: str,
    user_id: str = Depends(get_user_id),
    engine: LedgerEngine = Depends(get_engine)
):
    """Expand the active recurring templates into a month's pending expenses"""
    generated = engine.generate_monthly_expenses(user_id, month_year)
    return {
        "message": f"{len(generated)} monthly expenses generated successfully",
        "expenses": ledger_entries_response(generated)
    }
