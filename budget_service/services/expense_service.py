import json
import logging
from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
from budget_service.db.repository import LedgerRepository
from budget_service.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from budget_service.models.expenses import SharedExpense, ExpenseSplit, SplitType
from budget_service.models.groups import ActivityAction
from budget_service.rabbitmq.producer import publish_group_event
from budget_service.schemas.expense_schema import ExpenseCreate
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.group_service import verify_group_access, verify_permission
from budget_service.utils.permissions import GroupPermission, has_permission
from budget_service.utils.split_calculator import calculate_splits, validate_splits

logger = logging.getLogger(__name__)


def create_expense(db: Session, group_id: str, expense_data: ExpenseCreate, actor: CurrentUser) -> SharedExpense:
    """Create a new expense with its splits"""
    verify_permission(db, group_id, actor.user_id, GroupPermission.write_transactions)

    repo = LedgerRepository(db)
    member_ids = {member.user_id for member in repo.find_active_members(group_id)}

    # Validate that payer and participants are group members
    if expense_data.paid_by not in member_ids:
        raise ValidationError(f"User {expense_data.paid_by} is not a member of this group")
    for split in expense_data.splits:
        if split.user_id not in member_ids:
            raise ValidationError(f"User {split.user_id} is not a member of this group")

    participant_ids = [split.user_id for split in expense_data.splits]
    if len(set(participant_ids)) != len(participant_ids):
        raise ValidationError("Each member can only appear once in the splits")

    validate_splits(expense_data.split_type, expense_data.splits, expense_data.amount)
    calculated = calculate_splits(expense_data.amount, expense_data.split_type, expense_data.splits)
    configs = {split.user_id: split for split in expense_data.splits}

    def _create(repo: LedgerRepository) -> SharedExpense:
        expense = SharedExpense(
            group_id=group_id,
            amount=expense_data.amount,
            description=expense_data.description,
            category=expense_data.category,
            date=expense_data.date,
            paid_by=expense_data.paid_by,
            split_type=expense_data.split_type,
            split_data=json.dumps([split.model_dump(mode="json") for split in expense_data.splits])
        )
        db.add(expense)
        db.flush()

        for split in calculated:
            config = configs[split["user_id"]]
            db.add(ExpenseSplit(
                expense_id=expense.id,
                user_id=split["user_id"],
                amount=split["amount"],
                # The payer cannot owe themselves
                is_paid=split["user_id"] == expense_data.paid_by,
                percentage=config.percentage if expense_data.split_type == SplitType.percentage else None,
                shares=config.shares if expense_data.split_type == SplitType.shares else None
            ))

        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.expense_added, {
            "expense_id": expense.id,
            "amount": expense_data.amount,
            "description": expense_data.description,
            "split_type": expense_data.split_type.value,
            "member_count": len(calculated)
        })
        return expense

    expense = repo.run_atomic(_create)
    logger.info(f"Expense {expense.id} of {expense_data.amount} added to group {group_id}")
    publish_group_event("expense.added", group_id, {
        "expense_id": expense.id,
        "amount": expense_data.amount,
        "paid_by": expense_data.paid_by
    })
    return get_expense(db, expense.id)


def get_expense(db: Session, expense_id: str) -> Optional[SharedExpense]:
    """Get an expense by ID with splits and payments"""
    return db.query(SharedExpense)\
        .options(selectinload(SharedExpense.splits).selectinload(ExpenseSplit.payments))\
        .filter(SharedExpense.id == expense_id).first()


def get_expense_for_user(db: Session, expense_id: str, user_id: str) -> SharedExpense:
    """Get an expense the user is allowed to see"""
    expense = get_expense(db, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    verify_group_access(db, expense.group_id, user_id)
    return expense


def get_group_expenses(db: Session, group_id: str, limit: int = 50, offset: int = 0) -> List[SharedExpense]:
    """Get a page of a group's expenses, newest first"""
    return db.query(SharedExpense)\
        .options(selectinload(SharedExpense.splits).selectinload(ExpenseSplit.payments))\
        .filter(SharedExpense.group_id == group_id)\
        .order_by(SharedExpense.created_at.desc(), SharedExpense.date.desc())\
        .offset(offset).limit(limit).all()


def delete_expense(db: Session, expense_id: str, actor: CurrentUser) -> None:
    """
    Delete an expense together with its splits and every payment made on them.

    Allowed for the member who paid the expense, or for roles holding
    delete_transactions. Balances computed afterwards no longer include it.
    """
    expense = get_expense(db, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    member = verify_group_access(db, expense.group_id, actor.user_id)
    if expense.paid_by != actor.user_id and not has_permission(member.role, GroupPermission.delete_transactions):
        logger.warning(f"User {actor.user_id} refused deletion of expense {expense_id}")
        raise PermissionDeniedError("Only the payer or a group admin can delete this expense")

    group_id = expense.group_id
    amount = expense.amount
    description = expense.description
    repo = LedgerRepository(db)

    def _delete(repo: LedgerRepository) -> int:
        removed = repo.delete_expense(expense_id)
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.expense_deleted, {
            "expense_id": expense_id,
            "amount": amount,
            "description": description,
            "payments_removed": removed
        })
        return removed

    removed = repo.run_atomic(_delete)
    logger.info(f"Expense {expense_id} deleted from group {group_id} by {actor.user_id} ({removed} payments removed)")
    publish_group_event("expense.deleted", group_id, {"expense_id": expense_id, "amount": amount})
