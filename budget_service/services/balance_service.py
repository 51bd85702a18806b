import logging
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from budget_service.db.repository import LedgerRepository
from budget_service.exceptions import ComputationError
from budget_service.schemas.balance_schema import BalanceSummary, GroupBalancesResponse
from budget_service.schemas.group_schema import GroupStats
from budget_service.services.auth.jwt_handler import CurrentUser
from budget_service.services.group_service import verify_group_access, calculate_group_stats
from budget_service.utils.balance_calculator import calculate_balances
from budget_service.utils.min_cash_flow import generate_settlement_suggestions

logger = logging.getLogger(__name__)


def get_group_balances(db: Session, group_id: str, actor: CurrentUser) -> GroupBalancesResponse:
    """
    Compute balances and settlement suggestions for a group from current storage state.

    Nothing is persisted; every call re-reads expenses, payments and members.
    """
    verify_group_access(db, group_id, actor.user_id)
    repo = LedgerRepository(db)

    try:
        expenses = repo.find_expenses(group_id)
        payments = repo.find_payments(group_id)
        members = repo.find_active_members(group_id)

        balances = calculate_balances(expenses, payments, members)
        settlements = generate_settlement_suggestions(balances)
    except (SQLAlchemyError, ValueError, ArithmeticError, RuntimeError) as e:
        logger.exception(f"Error in balance calculation for group {group_id}: {e}")
        raise ComputationError("Failed to calculate balances") from e

    user_balance = next((b for b in balances if b.user_id == actor.user_id), None)
    logger.info(
        f"Balance calculation complete for group {group_id}: "
        f"{len(balances)} balances, {len(payments)} payments, {len(settlements)} suggestions"
    )

    zero = Decimal('0')
    summary = BalanceSummary(
        total_expenses=sum((expense.amount for expense in expenses), zero),
        total_paid=sum((payment.amount for payment in payments), zero),
        total_owed=sum((max(zero, -b.net_balance) for b in balances), zero),
        total_owing=sum((max(zero, b.net_balance) for b in balances), zero)
    )

    return GroupBalancesResponse(
        group_id=group_id,
        balances=balances,
        settlements=settlements,
        user_balance=user_balance,
        summary=summary
    )


def get_group_stats(db: Session, group_id: str, actor: CurrentUser) -> GroupStats:
    """Expense statistics for a group"""
    verify_group_access(db, group_id, actor.user_id)
    repo = LedgerRepository(db)
    return calculate_group_stats(repo.find_expenses(group_id), repo.find_active_members(group_id))
