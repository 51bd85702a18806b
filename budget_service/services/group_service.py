import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Any
from sqlalchemy.orm import Session
from sqlalchemy import and_
from budget_service.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from budget_service.models.groups import Group, GroupMember, GroupActivity, GroupRole, ActivityAction
from budget_service.db.repository import LedgerRepository
from budget_service.schemas.group_schema import GroupCreate, GroupUpdate, GroupMemberCreate, GroupStats, MemberContribution
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.utils.permissions import GroupPermission, has_permission

logger = logging.getLogger(__name__)


def create_group(db: Session, group_data: GroupCreate, creator: CurrentUser) -> Group:
    """Create a new group with the creator as its owner"""
    repo = LedgerRepository(db)

    def _create(repo: LedgerRepository) -> Group:
        group = Group(
            name=group_data.name,
            description=group_data.description,
            currency=group_data.currency.upper(),
            created_by=creator.user_id
        )
        db.add(group)
        db.flush()

        db.add(GroupMember(
            group_id=group.id,
            user_id=creator.user_id,
            name=creator.name or creator.user_id,
            email=creator.email,
            role=GroupRole.owner
        ))
        repo.create_activity_log_entry(group.id, creator.user_id, ActivityAction.group_created, {"name": group.name})
        return group

    group = repo.run_atomic(_create)
    logger.info(f"Group {group.id} created by {creator.user_id}")
    return group


def get_group(db: Session, group_id: str) -> Optional[Group]:
    """Get an active group by ID"""
    return db.query(Group).filter(and_(Group.id == group_id, Group.is_active == True)).first()


def get_user_groups(db: Session, user_id: str) -> List[Group]:
    """Get all groups the user is an active member of"""
    return db.query(Group).join(GroupMember).filter(
        and_(GroupMember.user_id == user_id, GroupMember.is_active == True, Group.is_active == True)
    ).all()


def get_membership(db: Session, group_id: str, user_id: str) -> Optional[GroupMember]:
    """Active membership of user in group, if any"""
    return db.query(GroupMember).filter(
        and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id, GroupMember.is_active == True)
    ).first()


def verify_group_access(db: Session, group_id: str, user_id: str) -> GroupMember:
    """Return the caller's membership or raise if the group is missing or they are not an active member"""
    if not get_group(db, group_id):
        raise NotFoundError("Group not found")

    member = get_membership(db, group_id, user_id)
    if not member:
        logger.warning(f"User {user_id} refused access to group {group_id}")
        raise PermissionDeniedError("Not a member of this group")
    return member


def verify_permission(db: Session, group_id: str, user_id: str, permission: GroupPermission) -> GroupMember:
    """Like verify_group_access, and additionally require a capability of the member's role"""
    member = verify_group_access(db, group_id, user_id)
    if not has_permission(member.role, permission):
        logger.warning(f"User {user_id} lacks {permission.value} in group {group_id}")
        raise PermissionDeniedError("Insufficient permissions")
    return member


def update_group(db: Session, group_id: str, update_data: GroupUpdate, actor: CurrentUser) -> Group:
    """Update name, description or currency of a group (requires manage_settings)"""
    verify_permission(db, group_id, actor.user_id, GroupPermission.manage_settings)
    group = get_group(db, group_id)

    changes = update_data.model_dump(exclude_unset=True)
    if changes.get("currency"):
        changes["currency"] = changes["currency"].upper()

    repo = LedgerRepository(db)

    def _update(repo: LedgerRepository) -> Group:
        for field, value in changes.items():
            setattr(group, field, value)
        db.flush()
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.group_updated, {"changes": changes})
        return group

    group = repo.run_atomic(_update)
    db.refresh(group)
    logger.info(f"Group {group_id} updated by {actor.user_id}: {sorted(changes)}")
    return group


def delete_group(db: Session, group_id: str, actor: CurrentUser) -> None:
    """Soft-delete a group; its ledger is kept but the group is no longer reachable (owner only)"""
    member = verify_group_access(db, group_id, actor.user_id)
    if member.role != GroupRole.owner:
        logger.warning(f"User {actor.user_id} tried to delete group {group_id} as {member.role.value}")
        raise PermissionDeniedError("Only group owners can delete groups")

    group = get_group(db, group_id)
    repo = LedgerRepository(db)

    def _delete(repo: LedgerRepository) -> None:
        group.is_active = False
        db.flush()
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.group_deleted, {})

    repo.run_atomic(_delete)
    logger.info(f"Group {group_id} deleted by {actor.user_id}")


def add_member(db: Session, group_id: str, member_data: GroupMemberCreate, actor: CurrentUser) -> GroupMember:
    """Add a member to a group (requires manage_members)"""
    verify_permission(db, group_id, actor.user_id, GroupPermission.manage_members)

    if member_data.role == GroupRole.owner:
        raise ValidationError("A group can only have one owner")

    if get_membership(db, group_id, member_data.user_id):
        raise ValidationError("User is already a member of this group")

    repo = LedgerRepository(db)

    def _add(repo: LedgerRepository) -> GroupMember:
        member = GroupMember(
            group_id=group_id,
            user_id=member_data.user_id,
            name=member_data.name,
            email=member_data.email,
            role=member_data.role
        )
        db.add(member)
        db.flush()
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.member_added, {
            "member_user_id": member_data.user_id,
            "role": member_data.role.value
        })
        return member

    member = repo.run_atomic(_add)
    db.refresh(member)
    return member


def get_group_members(db: Session, group_id: str) -> List[GroupMember]:
    """Get all active members of a group"""
    return LedgerRepository(db).find_active_members(group_id)


def get_group_activity(db: Session, group_id: str, limit: int = 50) -> List[GroupActivity]:
    """Most recent activity entries of a group"""
    return db.query(GroupActivity).filter(GroupActivity.group_id == group_id)\
        .order_by(GroupActivity.created_at.desc())\
        .limit(limit).all()


def calculate_group_stats(expenses: Sequence[Any], members: Sequence[Any]) -> GroupStats:
    """Totals, category breakdown and per-member paid/owes figures for a group"""
    total_expenses = sum((Decimal(str(expense.amount)) for expense in expenses), Decimal('0'))
    total_transactions = len(expenses)
    avg_expense_amount = (total_expenses / total_transactions) if total_transactions else Decimal('0')

    category_breakdown: Dict[str, Decimal] = {}
    for expense in expenses:
        category_breakdown[expense.category] = category_breakdown.get(expense.category, Decimal('0')) + Decimal(str(expense.amount))

    contributions = {member.user_id: MemberContribution() for member in members}
    for expense in expenses:
        if expense.paid_by in contributions:
            contributions[expense.paid_by].paid += Decimal(str(expense.amount))
        for split in expense.splits or []:
            if split.user_id in contributions:
                contributions[split.user_id].owes += Decimal(str(split.amount))

    return GroupStats(
        total_expenses=total_expenses,
        total_transactions=total_transactions,
        avg_expense_amount=avg_expense_amount.quantize(Decimal('0.01')),
        category_breakdown=category_breakdown,
        member_contributions=contributions,
        active_members=len([member for member in members if getattr(member, "is_active", True)])
    )
