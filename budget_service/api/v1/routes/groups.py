from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from budget_service.api.deps import get_current_user_profile
from budget_service.db.database import get_db
from budget_service.schemas.group_schema import (
    GroupCreate, GroupUpdate, GroupOut, GroupWithMembers, GroupMemberCreate, GroupMemberOut, GroupActivityOut, GroupStats
)
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.balance_service import get_group_stats
from budget_service.services.group_service import (
    create_group, update_group, delete_group, get_group, get_user_groups, get_group_members, get_group_activity,
    add_member, verify_group_access
)

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("/", response_model=GroupOut, status_code=201)
def create_new_group(
    group_data: GroupCreate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Create a new group; the caller becomes its owner"""
    return create_group(db, group_data, user)


@router.get("/", response_model=List[GroupOut])
def list_my_groups(
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Get all groups the caller belongs to"""
    return get_user_groups(db, user.user_id)


@router.get("/{group_id}", response_model=GroupWithMembers)
def get_group_details(
    group_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Get group details with active members"""
    verify_group_access(db, group_id, user.user_id)
    group = get_group(db, group_id)
    return GroupWithMembers(
        id=group.id,
        name=group.name,
        description=group.description,
        currency=group.currency,
        created_by=group.created_by,
        created_at=group.created_at,
        members=[GroupMemberOut.model_validate(m) for m in get_group_members(db, group_id)]
    )


@router.put("/{group_id}", response_model=GroupOut)
def update_existing_group(
    group_id: str,
    update_data: GroupUpdate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Update group settings (owner only)"""
    return update_group(db, group_id, update_data, user)


@router.delete("/{group_id}")
def delete_existing_group(
    group_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Delete a group (owner only)"""
    delete_group(db, group_id, user)
    return {"message": "Group deleted successfully"}


@router.post("/{group_id}/members", response_model=GroupMemberOut, status_code=201)
def add_group_member(
    group_id: str,
    member_data: GroupMemberCreate,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Add a member to the group (owner or admin only)"""
    return add_member(db, group_id, member_data, user)


@router.get("/{group_id}/members", response_model=List[GroupMemberOut])
def list_group_members(
    group_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    verify_group_access(db, group_id, user.user_id)
    return get_group_members(db, group_id)


@router.get("/{group_id}/activity", response_model=List[GroupActivityOut])
def list_group_activity(
    group_id: str,
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Get the group's most recent activity entries"""
    verify_group_access(db, group_id, user.user_id)
    return get_group_activity(db, group_id, limit)


@router.get("/{group_id}/stats", response_model=GroupStats)
def group_stats(
    group_id: str,
    user: CurrentUser = Depends(get_current_user_profile),
    db: Session = Depends(get_db)
):
    """Expense totals, category breakdown and member contributions"""
    return get_group_stats(db, group_id, user)
