import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import and_
from sqlalchemy.orm import Session
from budget_service.db.repository import LedgerRepository
from budget_service.exceptions import NotFoundError, ValidationError
from budget_service.models.expenses import ExpensePayment, ExpenseSplit, SharedExpense, PaymentMethod
from budget_service.models.groups import GroupMember, ActivityAction
from budget_service.rabbitmq.producer import publish_group_event
from budget_service.schemas.payment_schema import (
    PaymentCreate, PaymentWithContext, QuickSettleRequest, QuickSettleOut, QuickSettleResponse
)
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.group_service import verify_permission
from budget_service.utils.permissions import GroupPermission

logger = logging.getLogger(__name__)

TOLERANCE = Decimal('0.01')


def _paid_total(split: ExpenseSplit) -> Decimal:
    return sum((payment.amount for payment in split.payments), Decimal('0'))


def record_payment(db: Session, payment_data: PaymentCreate, actor: CurrentUser) -> ExpensePayment:
    """Record a payment against a split; the split flips to paid once fully covered"""
    repo = LedgerRepository(db)
    split = repo.find_split(payment_data.split_id)
    if not split:
        raise NotFoundError("Split not found")

    group_id = split.expense.group_id
    verify_permission(db, group_id, actor.user_id, GroupPermission.write_transactions)

    already_paid = _paid_total(split)
    remaining = split.amount - already_paid
    if payment_data.amount > remaining:
        raise ValidationError(f"Payment amount exceeds remaining balance of {remaining}")

    def _record(repo: LedgerRepository) -> ExpensePayment:
        payment = repo.create_payment(
            split_id=split.id,
            paid_by=actor.user_id,
            amount=payment_data.amount,
            method=payment_data.method,
            notes=payment_data.notes,
            date=payment_data.date
        )
        if abs(already_paid + payment_data.amount - split.amount) < TOLERANCE:
            repo.mark_splits_paid([split.id])

        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.payment_made, {
            "expense_id": split.expense_id,
            "split_id": split.id,
            "amount": payment_data.amount,
            "method": payment_data.method.value if payment_data.method else None,
            "expense_description": split.expense.description
        })
        return payment

    payment = repo.run_atomic(_record)
    db.refresh(payment)
    logger.info(f"Payment {payment.id} of {payment.amount} recorded on split {payment.split_id}")
    publish_group_event("payment.recorded", group_id, {
        "payment_id": payment.id,
        "split_id": payment.split_id,
        "amount": payment.amount
    })
    return payment


def quick_settle(db: Session, group_id: str, request: QuickSettleRequest, actor: CurrentUser) -> QuickSettleResponse:
    """Pay up to the remaining amount of a split in one step"""
    verify_permission(db, group_id, actor.user_id, GroupPermission.write_transactions)

    repo = LedgerRepository(db)
    split = repo.find_split(request.split_id)
    if not split or split.expense.group_id != group_id:
        raise NotFoundError("Split not found")

    total_paid = _paid_total(split)
    if total_paid >= split.amount:
        raise ValidationError("Split is already fully paid")

    payment_amount = min(request.amount, split.amount - total_paid)
    is_paid = total_paid + payment_amount >= split.amount

    def _settle(repo: LedgerRepository) -> ExpensePayment:
        payment = repo.create_payment(
            split_id=split.id,
            paid_by=actor.user_id,
            amount=payment_amount,
            method=PaymentMethod.quick_settle,
            notes="Quick settle payment"
        )
        if is_paid:
            repo.mark_splits_paid([split.id])
        repo.create_activity_log_entry(group_id, actor.user_id, ActivityAction.payment_made, {
            "expense_id": split.expense_id,
            "split_id": split.id,
            "amount": payment_amount,
            "method": PaymentMethod.quick_settle.value
        })
        return payment

    payment = repo.run_atomic(_settle)
    publish_group_event("payment.recorded", group_id, {
        "payment_id": payment.id,
        "split_id": split.id,
        "amount": payment_amount
    })
    return QuickSettleResponse(payment=QuickSettleOut(id=payment.id, amount=payment_amount, is_paid=is_paid))


def get_payments(
    db: Session,
    actor: CurrentUser,
    group_id: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = 50
) -> List[PaymentWithContext]:
    """Payments in the actor's groups, newest first, optionally narrowed to one group or split owner"""
    query = db.query(ExpensePayment, ExpenseSplit, SharedExpense)\
        .join(ExpenseSplit, ExpensePayment.split_id == ExpenseSplit.id)\
        .join(SharedExpense, ExpenseSplit.expense_id == SharedExpense.id)\
        .join(GroupMember, and_(
            GroupMember.group_id == SharedExpense.group_id,
            GroupMember.user_id == actor.user_id,
            GroupMember.is_active == True
        ))

    if group_id:
        query = query.filter(SharedExpense.group_id == group_id)
    if user_id:
        query = query.filter(ExpenseSplit.user_id == user_id)

    rows = query.order_by(ExpensePayment.date.desc()).limit(limit).all()
    return [
        PaymentWithContext(
            id=payment.id,
            split_id=payment.split_id,
            paid_by=payment.paid_by,
            amount=payment.amount,
            method=payment.method,
            notes=payment.notes,
            date=payment.date,
            split_user_id=split.user_id,
            expense_id=expense.id,
            expense_description=expense.description,
            group_id=expense.group_id
        )
        for payment, split, expense in rows
    ]
