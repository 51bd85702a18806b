from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from budget_service.models.expenses import SplitType, PaymentMethod


class SplitConfig(BaseModel):
    """One participant's share configuration; which field matters depends on the split type."""
    user_id: str
    amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)  # custom
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)  # percentage
    shares: Optional[int] = Field(None, ge=0)  # shares


class ExpenseBase(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    date: datetime
    paid_by: str = Field(..., min_length=1)
    split_type: SplitType


class ExpenseCreate(ExpenseBase):
    splits: List[SplitConfig] = Field(..., min_length=1)


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    split_id: str
    paid_by: str
    amount: Decimal
    method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    date: datetime


class ExpenseSplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    user_id: str
    amount: Decimal
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None
    is_paid: bool
    payments: List[PaymentOut] = []

    @computed_field
    @property
    def paid_amount(self) -> Decimal:
        return sum((payment.amount for payment in self.payments), Decimal("0"))

    @computed_field
    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.paid_amount


class ExpenseOut(ExpenseBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    created_at: datetime


class ExpenseWithSplits(ExpenseOut):
    splits: List[ExpenseSplitOut] = []
