"""
Balance Aggregator

Computes one net balance per group member from the group's expenses (with
their splits), the payments recorded against those splits and the member list.

Accounting rules:
- A participant owes their split amount unless they paid the expense themselves.
- The payer is owed the sum of the other members' splits of that expense.
- Payments reduce only the paying participant's total_owed. The payer's
  total_owing is left untouched, so after payments the net balances no longer
  sum to zero.
- net_balance = total_owing - total_owed (positive: others owe this member).

The inputs are duck-typed: ORM rows and schema objects both work as long as
they expose the attributes listed in calculate_balances().
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple

from budget_service.schemas.balance_schema import BalanceTransaction, UserBalance
from budget_service.utils.split_calculator import round2

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def _dec(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def calculate_balances(
    expenses: Sequence[Any],
    payments: Sequence[Any],
    members: Sequence[Any]
) -> List[UserBalance]:
    """
    Calculate the balance of every member.

    Args:
        expenses: Objects with id, description, amount, date, paid_by and
            splits (each split with id, user_id, amount, is_paid)
        payments: Objects with split_id and amount
        members: Objects with user_id, name and email

    Returns:
        One UserBalance per member, in member order. Members without any
        activity are included with zero totals.

    Raises:
        ValueError: If any of the inputs is None

    Example:
        X pays 90 split equally between X, Y and Z:
        X -> total_owing 60, net +60; Y and Z -> total_owed 30, net -30
    """
    if expenses is None or payments is None or members is None:
        raise ValueError("Invalid input: expenses, payments, and members are required")

    total_owed: Dict[str, Decimal] = {}
    total_owing: Dict[str, Decimal] = {}
    transactions: Dict[str, List[BalanceTransaction]] = {}
    for member in members:
        total_owed[member.user_id] = ZERO
        total_owing[member.user_id] = ZERO
        transactions[member.user_id] = []

    # Payment totals per split, used for the transaction paid flag
    paid_by_split: Dict[str, Decimal] = {}
    for payment in payments:
        paid_by_split[payment.split_id] = paid_by_split.get(payment.split_id, ZERO) + _dec(payment.amount)

    split_index: Dict[str, Tuple[Any, Any]] = {}

    for expense in expenses:
        others_owed = ZERO

        for split in expense.splits or []:
            split_index[split.id] = (expense, split)
            if split.user_id not in transactions:
                continue

            amount = _dec(split.amount)
            transactions[split.user_id].append(BalanceTransaction(
                expense_id=expense.id,
                description=expense.description,
                amount=amount,
                is_paid=bool(split.is_paid) or paid_by_split.get(split.id, ZERO) >= amount,
                due_date=expense.date,
                paid_by=expense.paid_by
            ))

            if split.user_id != expense.paid_by:
                total_owed[split.user_id] += amount
                others_owed += amount

        if expense.paid_by in total_owing:
            total_owing[expense.paid_by] += others_owed

    # Subtract payments from the participant's total_owed, never below the split amount
    applied: Dict[str, Decimal] = {}
    for payment in payments:
        located = split_index.get(payment.split_id)
        if located is None:
            logger.debug(f"Ignoring payment for unknown split {payment.split_id}")
            continue

        expense, split = located
        if split.user_id not in total_owed or split.user_id == expense.paid_by:
            continue

        remaining = _dec(split.amount) - applied.get(split.id, ZERO)
        reduction = min(_dec(payment.amount), max(remaining, ZERO))
        applied[split.id] = applied.get(split.id, ZERO) + reduction
        total_owed[split.user_id] -= reduction

    balances = []
    for member in members:
        owed = total_owed[member.user_id]
        owing = total_owing[member.user_id]
        balances.append(UserBalance(
            user_id=member.user_id,
            name=member.name,
            email=member.email,
            total_owed=round2(owed),
            total_owing=round2(owing),
            net_balance=round2(owing - owed),
            transactions=transactions[member.user_id]
        ))

    return balances
