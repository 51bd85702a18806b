"""
Settlement Executor

Applies a settlement (a suggestion or a manually entered transfer) to the
underlying splits: records payments for what is still owed and flips those
splits to paid, alongside an audit Settlement row and an activity entry.

Two modes:
- Regular: only the debts of from_user_id on the related expenses are paid.
  Their own share of an expense they paid themselves is skipped, since it is
  never owed to anyone; it would otherwise be recorded as a payment to self.
- Netted: debts in both directions between from_user_id and to_user_id on the
  related expenses are paid, each attributed to the member who owed it.

Every settlement runs as one atomic unit of work; a bulk request runs all of
its settlements in a single unit, so one failure aborts the whole batch.
"""

import logging
from decimal import Decimal
from typing import List, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from budget_service.db.repository import LedgerRepository
from budget_service.exceptions import ComputationError, NotFoundError, ValidationError
from budget_service.models.expenses import ExpenseSplit, PaymentMethod
from budget_service.models.groups import ActivityAction, GroupMember
from budget_service.models.settlements import Settlement
from budget_service.rabbitmq.producer import publish_group_event
from budget_service.schemas.settlement_schema import SettlementCreate, BulkSettlementCreate
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.group_service import verify_group_access, verify_permission
from budget_service.utils.permissions import GroupPermission

logger = logging.getLogger(__name__)


def _remaining(split: ExpenseSplit) -> Decimal:
    paid = sum((payment.amount for payment in split.payments), Decimal('0'))
    return split.amount - paid


def _splits_to_pay(repo: LedgerRepository, group_id: str, data: SettlementCreate) -> List[ExpenseSplit]:
    """Splits the settlement resolves, before checking what remains on them"""
    if data.is_netted:
        splits = repo.find_splits(group_id, data.related_expenses, [data.from_user_id, data.to_user_id])
        from_owes = [
            split for split in splits
            if split.user_id == data.from_user_id and split.expense.paid_by == data.to_user_id
        ]
        to_owes = [
            split for split in splits
            if split.user_id == data.to_user_id and split.expense.paid_by == data.from_user_id
        ]
        return [split for split in from_owes + to_owes if not split.is_paid]

    splits = repo.find_splits(group_id, data.related_expenses, [data.from_user_id])
    # A member's share of an expense they paid themselves is never owed
    return [split for split in splits if split.expense.paid_by != data.from_user_id]


def _apply_settlement(
    repo: LedgerRepository,
    group_id: str,
    data: SettlementCreate,
    method: str,
    payment_method: PaymentMethod,
    default_notes: str
) -> Settlement:
    """Write one settlement inside the caller's unit of work"""
    settlement = repo.create_settlement_record(
        group_id=group_id,
        from_user_id=data.from_user_id,
        to_user_id=data.to_user_id,
        amount=data.amount,
        method=data.method or method,
        notes=data.notes or default_notes
    )

    if data.related_expenses:
        paid_split_ids = []
        for split in _splits_to_pay(repo, group_id, data):
            remaining = _remaining(split)
            if remaining > 0:
                repo.create_payment(
                    split_id=split.id,
                    paid_by=split.user_id,
                    amount=remaining,
                    method=payment_method,
                    notes=f"Settlement payment (Settlement ID: {settlement.id})"
                )
                paid_split_ids.append(split.id)

        repo.mark_splits_paid(paid_split_ids)
        logger.debug(f"Settlement {settlement.id} paid {len(paid_split_ids)} splits")

    return settlement


def _validate_settlement(repo: LedgerRepository, group_id: str, data: SettlementCreate, member_ids: set) -> None:
    if data.from_user_id not in member_ids:
        raise ValidationError("From user is not a member of this group")
    if data.to_user_id not in member_ids:
        raise ValidationError("To user is not a member of this group")

    missing = set(data.related_expenses) - set(repo.find_expense_ids(group_id, data.related_expenses))
    if missing:
        raise NotFoundError("Expense not found in this group", details=sorted(missing))


def _prepare(db: Session, group_id: str, actor: CurrentUser, settlements: Sequence[SettlementCreate]):
    member: GroupMember = verify_permission(db, group_id, actor.user_id, GroupPermission.record_settlements)
    repo = LedgerRepository(db)
    member_ids = {m.user_id for m in repo.find_active_members(group_id)}
    for data in settlements:
        _validate_settlement(repo, group_id, data, member_ids)
    return member, repo


def execute_settlement(db: Session, group_id: str, actor: CurrentUser, data: SettlementCreate) -> Settlement:
    """Record one settlement atomically"""
    member, repo = _prepare(db, group_id, actor, [data])

    def _settle(repo: LedgerRepository) -> Settlement:
        settlement = _apply_settlement(
            repo, group_id, data,
            method="settlement_suggestion",
            payment_method=PaymentMethod.settlement,
            default_notes=f"Settlement suggested by system, recorded by {member.name}"
        )
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.settlement_made, {
            "settlement_id": settlement.id,
            "from_user_id": data.from_user_id,
            "to_user_id": data.to_user_id,
            "amount": data.amount,
            "related_expenses": data.related_expenses,
            "is_netted": data.is_netted
        })
        return settlement

    try:
        settlement = repo.run_atomic(_settle)
    except SQLAlchemyError as e:
        logger.exception(f"Error recording settlement in group {group_id}: {e}")
        raise ComputationError("Failed to record settlement") from e

    logger.info(
        f"Settlement {settlement.id}: {data.from_user_id} -> {data.to_user_id} "
        f"{data.amount} in group {group_id} (netted={data.is_netted})"
    )
    publish_group_event("settlement.recorded", group_id, {
        "settlement_id": settlement.id,
        "from_user_id": data.from_user_id,
        "to_user_id": data.to_user_id,
        "amount": data.amount
    })
    return settlement


def execute_bulk_settlements(
    db: Session,
    group_id: str,
    actor: CurrentUser,
    bulk_data: BulkSettlementCreate
) -> List[Settlement]:
    """Record a batch of settlements in order, all or nothing"""
    member, repo = _prepare(db, group_id, actor, bulk_data.settlements)

    def _settle_all(repo: LedgerRepository) -> List[Settlement]:
        results = [
            _apply_settlement(
                repo, group_id, data,
                method="bulk_settlement",
                payment_method=PaymentMethod.bulk_settlement,
                default_notes=f"Bulk settlement recorded by {member.name}"
            )
            for data in bulk_data.settlements
        ]
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.bulk_settlement_made, {
            "settlements_count": len(results),
            "total_amount": sum((data.amount for data in bulk_data.settlements), Decimal('0')),
            "settlements": [
                {"id": s.id, "from_user_id": s.from_user_id, "to_user_id": s.to_user_id, "amount": s.amount}
                for s in results
            ]
        })
        return results

    try:
        settlements = repo.run_atomic(_settle_all)
    except SQLAlchemyError as e:
        logger.exception(f"Error recording bulk settlements in group {group_id}: {e}")
        raise ComputationError("Failed to record bulk settlements") from e

    logger.info(f"Recorded {len(settlements)} bulk settlements in group {group_id}")
    for settlement in settlements:
        publish_group_event("settlement.recorded", group_id, {
            "settlement_id": settlement.id,
            "from_user_id": settlement.from_user_id,
            "to_user_id": settlement.to_user_id,
            "amount": settlement.amount
        })
    return settlements


def get_group_settlements(db: Session, group_id: str, actor: CurrentUser) -> List[Settlement]:
    """Get all settlement records for a group, newest first"""
    verify_group_access(db, group_id, actor.user_id)
    return db.query(Settlement).filter(Settlement.group_id == group_id)\
        .order_by(Settlement.settled_at.desc()).all()
