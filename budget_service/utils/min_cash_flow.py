"""
Settlement Suggester

Reduces a group's member balances to a short list of pairwise transfers.

Members with a positive net balance are creditors, members with a negative
net balance are debtors. The largest outstanding credit is always matched
against the largest outstanding debt; the smaller of the two is transferred
and whichever side reaches zero drops out. Every step retires at least one
member, so c creditors and d debtors need at most c + d - 1 transfers.

Matching runs on private copies of the balances; callers' data is never
modified, so concurrent requests cannot see each other's intermediate state.

Example Usage:
    from budget_service.utils.balance_calculator import calculate_balances
    from budget_service.utils.min_cash_flow import generate_settlement_suggestions

    balances = calculate_balances(expenses, payments, members)
    suggestions = generate_settlement_suggestions(balances)

    # Result: [SettlementSuggestion(from_user_id="Z", to_user_id="X", amount=Decimal("45.00"), ...), ...]
"""

import logging
from decimal import Decimal
from typing import Dict, List, Sequence

from budget_service.schemas.balance_schema import UserBalance
from budget_service.schemas.settlement_schema import SettlementSuggestion
from budget_service.utils.split_calculator import round2

logger = logging.getLogger(__name__)

TOLERANCE = Decimal('0.01')
NET_SETTLEMENT_REASON = "Net settlement to minimize transactions"


def round_decimal(value: Decimal, precision: Decimal = Decimal('0.01')) -> Decimal:
    """
    Quantize an amount; cents use the same half-up rounding as the split calculator.

    >>> round_decimal(Decimal("43.335"))
    Decimal('43.34')
    """
    if precision == Decimal('0.01'):
        return round2(value)
    return value.quantize(precision)


def validate_balance_sum(balances: Dict[str, Decimal], tolerance: Decimal = TOLERANCE) -> None:
    """
    Raise ValueError unless the net balances cancel out within tolerance.

    Only balances computed before any payment was recorded are guaranteed to
    cancel out: payments lower the debtor's side but not the payer's.
    """
    total = sum(balances.values(), Decimal('0'))
    if abs(total) > tolerance:
        raise ValueError(f"Balances not zero-sum: off by {total} (tolerance {tolerance})")


def _ranked(balances: Dict[str, Decimal], sign: int, tolerance: Decimal) -> List[List]:
    """[user_id, outstanding] pairs for one side, largest outstanding first"""
    side = [
        [user_id, Decimal(balance) * sign]
        for user_id, balance in balances.items()
        if Decimal(balance) * sign > tolerance
    ]
    side.sort(key=lambda entry: entry[1], reverse=True)
    return side


def min_cash_flow(
    balances: Dict[str, Decimal],
    tolerance: Decimal = TOLERANCE,
    max_iterations: int = 1000,
    require_zero_sum: bool = False
) -> List[Dict[str, object]]:
    """
    Greedy transfer plan for a user_id -> net_balance mapping.

    Amounts within tolerance of zero count as settled. Unbalanced input is
    accepted unless require_zero_sum is set; whatever cannot be matched is
    left over.

    Returns:
        Transfers in generation order: [{"from": debtor, "to": creditor, "amount": Decimal}, ...]

    Raises:
        ValueError: require_zero_sum is set and the balances do not cancel out
        RuntimeError: More than max_iterations matching steps were needed

    Example:
        >>> min_cash_flow({"A": Decimal("80"), "B": Decimal("-10"), "C": Decimal("-70")})
        [{"from": "C", "to": "A", "amount": Decimal("70.00")},
         {"from": "B", "to": "A", "amount": Decimal("10.00")}]
    """
    if require_zero_sum:
        validate_balance_sum(balances, tolerance)

    creditors = _ranked(balances, 1, tolerance)
    debtors = _ranked(balances, -1, tolerance)

    transfers: List[Dict[str, object]] = []
    steps = 0
    while creditors and debtors:
        steps += 1
        if steps > max_iterations:
            raise RuntimeError(f"Settlement matching did not finish within max_iterations={max_iterations}")

        creditor, debtor = creditors[0], debtors[0]
        amount = min(creditor[1], debtor[1])
        if amount > tolerance:
            transfers.append({"from": debtor[0], "to": creditor[0], "amount": round_decimal(amount)})
            logger.debug(f"{debtor[0]} pays {creditor[0]} {round_decimal(amount)}")

        creditor[1] -= amount
        debtor[1] -= amount
        if creditor[1] <= tolerance:
            creditors.pop(0)
        if debtor[1] <= tolerance:
            debtors.pop(0)

    return transfers


def _unpaid_expense_ids(balance: UserBalance) -> List[str]:
    return [t.expense_id for t in balance.transactions if not t.is_paid]


def generate_settlement_suggestions(balances: Sequence[UserBalance]) -> List[SettlementSuggestion]:
    """
    Turn member balances into a minimal list of pairwise transfers.

    Each suggestion carries the expenses it resolves: the debtor's unpaid
    expenses followed by the creditor's, without duplicates. It is flagged
    is_netted when the creditor also owes the debtor on one of those
    expenses, so executing it in netted mode clears both directions.

    Returns:
        Suggestions in generation order (largest creditor first); an empty
        list when every balance is within one cent of zero.
    """
    by_user = {balance.user_id: balance for balance in balances}
    transfers = min_cash_flow({balance.user_id: balance.net_balance for balance in balances})

    suggestions = []
    for transfer in transfers:
        debtor = by_user[transfer["from"]]
        creditor = by_user[transfer["to"]]

        related_expenses = list(dict.fromkeys(
            _unpaid_expense_ids(debtor) + _unpaid_expense_ids(creditor)
        ))
        is_netted = any(
            not t.is_paid and t.paid_by == debtor.user_id
            for t in creditor.transactions
        )

        suggestions.append(SettlementSuggestion(
            from_user_id=debtor.user_id,
            to_user_id=creditor.user_id,
            from_user_name=debtor.name,
            to_user_name=creditor.name,
            amount=transfer["amount"],
            reason=NET_SETTLEMENT_REASON,
            related_expenses=related_expenses,
            is_netted=is_netted
        ))

    logger.info(f"Generated {len(suggestions)} settlement suggestions for {len(balances)} members")
    return suggestions
