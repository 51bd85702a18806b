from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from budget_service.api.deps import get_current_user_profile
from budget_service.db.database import get_db
from budget_service.schemas.balance_schema import GroupBalancesResponse
from budget_service.schemas.settlement_schema import (
    SettlementCreate, BulkSettlementCreate, SettlementOut,
    SettleResponse, SettlementReceipt, BulkSettleResponse, BulkSettlementItem
)
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.balance_service import get_group_balances
from budget_service.services.settlement_service import (
    execute_settlement, execute_bulk_settlements, get_group_settlements
)

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.get("/groups/{group_id}/balances", response_model=GroupBalancesResponse)
def group_balances(
    group_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Per-member balances and the suggested transfers that settle them"""
    return get_group_balances(db, group_id, user)


@router.post("/groups/{group_id}", response_model=SettleResponse)
def settle(
    group_id: str,
    settlement_data: SettlementCreate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Record a settlement and pay off the related splits"""
    settlement = execute_settlement(db, group_id, user, settlement_data)
    return SettleResponse(settlement=SettlementReceipt(
        id=settlement.id,
        amount=settlement.amount,
        settled_at=settlement.settled_at
    ))


@router.post("/groups/{group_id}/bulk", response_model=BulkSettleResponse)
def settle_bulk(
    group_id: str,
    bulk_data: BulkSettlementCreate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Record several settlements at once; nothing is written if any of them fails"""
    settlements = execute_bulk_settlements(db, group_id, user, bulk_data)
    return BulkSettleResponse(
        settlements=[
            BulkSettlementItem(id=s.id, from_user_id=s.from_user_id, to_user_id=s.to_user_id, amount=s.amount)
            for s in settlements
        ],
        count=len(settlements)
    )


@router.get("/groups/{group_id}", response_model=List[SettlementOut])
def list_settlements(
    group_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    return get_group_settlements(db, group_id, user)
