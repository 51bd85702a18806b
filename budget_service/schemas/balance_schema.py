from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from budget_service.schemas.settlement_schema import SettlementSuggestion


class BalanceTransaction(BaseModel):
    """One split a member participates in, as seen from that member's balance."""
    expense_id: str
    description: str
    amount: Decimal
    is_paid: bool
    due_date: Optional[datetime] = None
    paid_by: str


class UserBalance(BaseModel):
    user_id: str
    name: str
    email: str
    total_owed: Decimal = Decimal("0")  # What they owe to others
    total_owing: Decimal = Decimal("0")  # What others owe to them
    net_balance: Decimal = Decimal("0")  # Positive = others owe them, negative = they owe others
    transactions: List[BalanceTransaction] = []


class BalanceSummary(BaseModel):
    total_expenses: Decimal
    total_paid: Decimal
    total_owed: Decimal
    total_owing: Decimal


class GroupBalancesResponse(BaseModel):
    group_id: str
    balances: List[UserBalance]
    settlements: List[SettlementSuggestion]
    user_balance: Optional[UserBalance] = None
    summary: BalanceSummary
