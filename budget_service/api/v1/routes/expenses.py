from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from budget_service.api.deps import get_current_user_profile
from budget_service.db.database import get_db
from budget_service.schemas.expense_schema import ExpenseCreate, ExpenseWithSplits
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.expense_service import (
    create_expense, delete_expense, get_group_expenses, get_expense_for_user
)
from budget_service.services.group_service import verify_group_access

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.post("/groups/{group_id}", response_model=ExpenseWithSplits, status_code=201)
def create_new_expense(
    group_id: str,
    expense_data: ExpenseCreate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Create a new expense and split it between the listed members"""
    return create_expense(db, group_id, expense_data, user)


@router.get("/groups/{group_id}", response_model=List[ExpenseWithSplits])
def get_group_expenses_list(
    group_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Get expenses for a group"""
    verify_group_access(db, group_id, user.user_id)
    return get_group_expenses(db, group_id, limit, offset)


@router.get("/{expense_id}", response_model=ExpenseWithSplits)
def get_expense_details(
    expense_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Get expense details with splits and payments"""
    return get_expense_for_user(db, expense_id, user.user_id)


@router.delete("/{expense_id}")
def delete_existing_expense(
    expense_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Delete an expense with its splits and payments (payer, admin or owner)"""
    delete_expense(db, expense_id, user)
    return {"message": "Expense deleted successfully"}
