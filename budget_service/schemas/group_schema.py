from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from budget_service.models.groups import GroupRole, ActivityAction


class GroupBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    currency: str = Field("USD", min_length=3, max_length=3)


class GroupCreate(GroupBase):
    pass


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class GroupOut(GroupBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_by: str
    created_at: datetime


class GroupMemberBase(BaseModel):
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class GroupMemberCreate(GroupMemberBase):
    role: GroupRole = GroupRole.member


class GroupMemberOut(GroupMemberBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    group_id: str
    role: GroupRole
    is_active: bool
    joined_at: datetime


class GroupWithMembers(GroupOut):
    members: List[GroupMemberOut] = []


class GroupActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    user_id: str
    action: ActivityAction
    details: Optional[str] = None
    created_at: datetime


class MemberContribution(BaseModel):
    paid: Decimal = Decimal("0")
    owes: Decimal = Decimal("0")


class GroupStats(BaseModel):
    total_expenses: Decimal
    total_transactions: int
    avg_expense_amount: Decimal
    category_breakdown: Dict[str, Decimal]
    member_contributions: Dict[str, MemberContribution]
    active_members: int
