from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal


class SettlementBase(BaseModel):
    from_user_id: str
    to_user_id: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class SettlementCreate(SettlementBase):
    related_expenses: List[str] = []
    is_netted: bool = False
    method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_distinct_users(self):
        if self.from_user_id == self.to_user_id:
            raise ValueError("Cannot settle with yourself")
        return self


class BulkSettlementCreate(BaseModel):
    settlements: List[SettlementCreate] = Field(..., min_length=1)


class SettlementOut(SettlementBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    method: Optional[str] = None
    notes: Optional[str] = None
    settled_at: datetime


class SettlementReceipt(BaseModel):
    id: str
    amount: Decimal
    settled_at: datetime


class SettleResponse(BaseModel):
    success: bool = True
    settlement: SettlementReceipt


class BulkSettlementItem(BaseModel):
    id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal


class BulkSettleResponse(BaseModel):
    success: bool = True
    settlements: List[BulkSettlementItem]
    count: int


class SettlementSuggestion(BaseModel):
    from_user_id: str
    to_user_id: str
    from_user_name: str
    to_user_name: str
    amount: Decimal
    reason: str
    related_expenses: List[str] = []
    is_netted: bool = False
