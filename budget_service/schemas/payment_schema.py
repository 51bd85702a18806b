from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
from budget_service.models.expenses import PaymentMethod
from budget_service.schemas.expense_schema import PaymentOut


class PaymentCreate(BaseModel):
    split_id: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(None, max_length=500)
    date: Optional[datetime] = None


class PaymentWithContext(PaymentOut):
    """Payment enriched with the split and expense it was made against."""
    split_user_id: str
    expense_id: str
    expense_description: str
    group_id: str


class QuickSettleRequest(BaseModel):
    split_id: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class QuickSettleOut(BaseModel):
    id: str
    amount: Decimal
    is_paid: bool


class QuickSettleResponse(BaseModel):
    success: bool = True
    payment: QuickSettleOut
