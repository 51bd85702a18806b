"""
Split Calculator

Turns an expense amount, a split type and the per-participant configuration
into the amount each participant owes.

Rounding is always to cents, half away from zero (ROUND_HALF_UP), and there is
no cent-redistribution pass: an equal split of 100 between three people gives
33.33 each, leaving 0.01 unassigned. Residuals of up to n * 0.005 are expected.

Example Usage:
    from budget_service.utils.split_calculator import calculate_splits, validate_splits

    validate_splits("percentage", configs, Decimal("80"))
    splits = calculate_splits(Decimal("80"), "percentage", configs)
    # [{"user_id": "A", "amount": Decimal("48.00")}, {"user_id": "B", "amount": Decimal("32.00")}]
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Sequence, Union

from budget_service.exceptions import InvalidSplitType, ValidationError
from budget_service.models.expenses import SplitType
from budget_service.schemas.expense_schema import SplitConfig

CENT = Decimal('0.01')
TOLERANCE = Decimal('0.01')


def round2(value: Decimal) -> Decimal:
    """
    Round a Decimal to cents, half away from zero.

    Example:
        >>> round2(Decimal("10.005"))
        Decimal('10.01')
    """
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _as_split_type(split_type: Union[SplitType, str]) -> SplitType:
    try:
        return SplitType(split_type)
    except ValueError:
        raise InvalidSplitType(split_type)


def _value(config: SplitConfig, field: str) -> Decimal:
    value = getattr(config, field, None)
    return Decimal(str(value)) if value is not None else Decimal('0')


def calculate_splits(
    total_amount: Decimal,
    split_type: Union[SplitType, str],
    split_configs: Sequence[SplitConfig]
) -> List[Dict[str, object]]:
    """
    Calculate the owed amount for every participant.

    The calculator trusts its input: percentages and custom amounts are not
    checked against the total here, call validate_splits() first.

    Args:
        total_amount: Total expense amount advanced by the payer
        split_type: One of "equal", "percentage", "custom", "shares"
        split_configs: Participant configurations (user_id plus amount,
            percentage or shares depending on the split type)

    Returns:
        List of {"user_id": str, "amount": Decimal} in configuration order

    Raises:
        InvalidSplitType: If the split type is unknown
        ValidationError: If a shares split has zero total shares
    """
    split_type = _as_split_type(split_type)
    total_amount = Decimal(str(total_amount))

    if split_type == SplitType.equal:
        if not split_configs:
            return []
        equal_amount = round2(total_amount / Decimal(len(split_configs)))
        return [{"user_id": config.user_id, "amount": equal_amount} for config in split_configs]

    if split_type == SplitType.percentage:
        return [
            {
                "user_id": config.user_id,
                "amount": round2(total_amount * _value(config, "percentage") / Decimal('100'))
            }
            for config in split_configs
        ]

    if split_type == SplitType.custom:
        return [{"user_id": config.user_id, "amount": _value(config, "amount")} for config in split_configs]

    # shares
    total_shares = sum((_value(config, "shares") for config in split_configs), Decimal('0'))
    if total_shares == 0:
        raise ValidationError("Total shares must be greater than 0")
    amount_per_share = total_amount / total_shares
    return [
        {"user_id": config.user_id, "amount": round2(amount_per_share * _value(config, "shares"))}
        for config in split_configs
    ]


def validate_splits(
    split_type: Union[SplitType, str],
    splits: Sequence[SplitConfig],
    total_amount: Decimal
) -> bool:
    """
    Validate a split configuration against the expense total.

    Raises:
        ValidationError: With a human-readable reason when the configuration
            cannot produce a consistent split
        InvalidSplitType: If the split type is unknown
    """
    split_type = _as_split_type(split_type)

    if not splits:
        raise ValidationError("At least one split is required")

    if Decimal(str(total_amount)) <= 0:
        raise ValidationError("Expense amount must be greater than 0")

    if split_type == SplitType.percentage:
        total_percentage = sum((_value(split, "percentage") for split in splits), Decimal('0'))
        if abs(total_percentage - Decimal('100')) > TOLERANCE:
            raise ValidationError("Percentages must add up to 100%")

    elif split_type == SplitType.custom:
        total_custom = sum((_value(split, "amount") for split in splits), Decimal('0'))
        if abs(total_custom - Decimal(str(total_amount))) > TOLERANCE:
            raise ValidationError("Custom split amounts must add up to total expense amount")

    elif split_type == SplitType.shares:
        total_shares = sum((_value(split, "shares") for split in splits), Decimal('0'))
        if total_shares == 0:
            raise ValidationError("Total shares must be greater than 0")

    return True
