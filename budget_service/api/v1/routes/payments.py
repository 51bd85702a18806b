from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from budget_service.api.deps import get_current_user_profile
from budget_service.db.database import get_db
from budget_service.schemas.expense_schema import PaymentOut
from budget_service.schemas.payment_schema import (
    PaymentCreate, PaymentWithContext, QuickSettleRequest, QuickSettleResponse
)
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.payment_service import record_payment, get_payments, quick_settle

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/", response_model=PaymentOut, status_code=201)
def create_payment(
    payment_data: PaymentCreate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Record a payment against an expense split"""
    return record_payment(db, payment_data, user)


@router.get("/", response_model=List[PaymentWithContext])
def list_payments(
    group_id: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Payments in the caller's groups, newest first"""
    return get_payments(db, user, group_id=group_id, user_id=user_id, limit=limit)


@router.post("/groups/{group_id}/quick-settle", response_model=QuickSettleResponse)
def quick_settle_split(
    group_id: str,
    request: QuickSettleRequest,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Pay off a split in one step, capped at what remains"""
    return quick_settle(db, group_id, request, user)
