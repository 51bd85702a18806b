"""
Ledger repository.

The storage operations the balance and settlement engine needs, implemented
over a SQLAlchemy Session. Write methods only flush; nothing is committed
except through run_atomic(), which commits the whole unit of work or rolls it
back if any step raises.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from budget_service.models.expenses import SharedExpense, ExpenseSplit, ExpensePayment, PaymentMethod
from budget_service.models.groups import GroupMember, GroupActivity, ActivityAction
from budget_service.models.settlements import Settlement

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerRepository:
    """Storage collaborator for expenses, splits, payments and settlements of groups"""

    def __init__(self, db: Session):
        self.db = db

    # Reads

    def find_expenses(self, group_id: str) -> List[SharedExpense]:
        """Expenses of a group with their splits and the payments on each split"""
        return (
            self.db.query(SharedExpense)
            .options(selectinload(SharedExpense.splits).selectinload(ExpenseSplit.payments))
            .filter(SharedExpense.group_id == group_id)
            .order_by(SharedExpense.date, SharedExpense.created_at)
            .all()
        )

    def find_expense_ids(self, group_id: str, expense_ids: Iterable[str]) -> List[str]:
        """Subset of expense_ids that belong to the group"""
        expense_ids = list(expense_ids)
        if not expense_ids:
            return []
        rows = (
            self.db.query(SharedExpense.id)
            .filter(SharedExpense.group_id == group_id, SharedExpense.id.in_(expense_ids))
            .all()
        )
        return [row.id for row in rows]

    def find_payments(self, group_id: str) -> List[ExpensePayment]:
        """All payments made against splits of the group's expenses"""
        return (
            self.db.query(ExpensePayment)
            .join(ExpenseSplit, ExpensePayment.split_id == ExpenseSplit.id)
            .join(SharedExpense, ExpenseSplit.expense_id == SharedExpense.id)
            .options(selectinload(ExpensePayment.split))
            .filter(SharedExpense.group_id == group_id)
            .order_by(ExpensePayment.date.desc())
            .all()
        )

    def find_active_members(self, group_id: str) -> List[GroupMember]:
        return (
            self.db.query(GroupMember)
            .filter(GroupMember.group_id == group_id, GroupMember.is_active == True)
            .order_by(GroupMember.joined_at, GroupMember.id)
            .all()
        )

    def find_splits(self, group_id: str, expense_ids: Iterable[str], user_ids: Iterable[str]) -> List[ExpenseSplit]:
        """Splits of the given users on the given expenses of a group, with expense and payments loaded"""
        expense_ids = list(expense_ids)
        if not expense_ids:
            return []
        return (
            self.db.query(ExpenseSplit)
            .join(SharedExpense, ExpenseSplit.expense_id == SharedExpense.id)
            .options(selectinload(ExpenseSplit.payments), selectinload(ExpenseSplit.expense))
            .populate_existing()
            .filter(
                SharedExpense.group_id == group_id,
                SharedExpense.id.in_(expense_ids),
                ExpenseSplit.user_id.in_(list(user_ids))
            )
            .all()
        )

    def find_split(self, split_id: str) -> Optional[ExpenseSplit]:
        return (
            self.db.query(ExpenseSplit)
            .options(selectinload(ExpenseSplit.payments), selectinload(ExpenseSplit.expense))
            .populate_existing()
            .filter(ExpenseSplit.id == split_id)
            .first()
        )

    # Writes

    def create_payment(
        self,
        split_id: str,
        paid_by: str,
        amount: Decimal,
        method: Optional[PaymentMethod] = None,
        notes: Optional[str] = None,
        date: Optional[datetime] = None
    ) -> ExpensePayment:
        payment = ExpensePayment(
            split_id=split_id,
            paid_by=paid_by,
            amount=amount,
            method=method,
            notes=notes
        )
        if date is not None:
            payment.date = date
        self.db.add(payment)
        self.db.flush()
        return payment

    def mark_splits_paid(self, split_ids: Iterable[str]) -> int:
        """Bulk update is_paid for a list of split ids; returns the number of rows touched"""
        split_ids = list(split_ids)
        if not split_ids:
            return 0
        return (
            self.db.query(ExpenseSplit)
            .filter(ExpenseSplit.id.in_(split_ids))
            .update({ExpenseSplit.is_paid: True}, synchronize_session="fetch")
        )

    def create_settlement_record(
        self,
        group_id: str,
        from_user_id: str,
        to_user_id: str,
        amount: Decimal,
        method: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Settlement:
        settlement = Settlement(
            group_id=group_id,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            method=method,
            notes=notes
        )
        self.db.add(settlement)
        self.db.flush()
        self.db.refresh(settlement)
        return settlement

    def delete_expense(self, expense_id: str) -> int:
        """Delete an expense, its splits and their payments; returns the number of payments removed"""
        split_ids = select(ExpenseSplit.id).where(ExpenseSplit.expense_id == expense_id)
        removed = (
            self.db.query(ExpensePayment)
            .filter(ExpensePayment.split_id.in_(split_ids))
            .delete(synchronize_session=False)
        )
        self.db.query(ExpenseSplit).filter(ExpenseSplit.expense_id == expense_id).delete(synchronize_session=False)
        self.db.query(SharedExpense).filter(SharedExpense.id == expense_id).delete(synchronize_session=False)
        return removed

    def create_activity_log_entry(
        self,
        group_id: str,
        user_id: str,
        action: ActivityAction,
        details: Dict[str, Any]
    ) -> GroupActivity:
        entry = GroupActivity(
            group_id=group_id,
            user_id=user_id,
            action=action,
            details=json.dumps(details, default=str)
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    # Transactions

    def run_atomic(self, fn: Callable[["LedgerRepository"], T]) -> T:
        """
        Run fn(self) as one unit of work.

        Commits when fn returns; on any exception everything written inside
        fn is rolled back and the exception propagates.
        """
        try:
            result = fn(self)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.warning("Atomic unit of work rolled back")
            raise
        return result
