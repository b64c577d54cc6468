"""
Split calculator.

Derives each participant's owed share of an expense with minor-unit
precision. Every policy reduces to integer arithmetic:

    1. Convert the total to minor units (``total * 100``)
    2. Give each participant the floor of their proportional share
    3. Hand the leftover minor units, one each, to the participants with
       the largest fractional remainders

Participants are ordered by the string form of their user id. Ties in the
remainder (always the case for an equal split) go to the participant that
sorts first, so repeated calls over the same input return the same splits.

Example:
    100.00 split equally among 3 participants::

        >>> splits = compute_splits(
        ...     total_amount=Decimal('100.00'),
        ...     currency='INR',
        ...     split_type=SplitType.EQUAL,
        ...     participants=[SplitParticipant(a), SplitParticipant(b), SplitParticipant(c)],
        ... )
        >>> [s.amount for s in splits]
        [Decimal('33.34'), Decimal('33.33'), Decimal('33.33')]

This module is pure: it never touches the database.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence

from apps.expenses.models import SplitType

from .exceptions import SplitValidationError
from .money import (
    MoneyFormatError,
    TWO_PLACES,
    from_minor_units,
    is_supported_currency,
    to_minor_units,
)

HUNDRED = Decimal('100')


@dataclass(frozen=True)
class SplitParticipant:
    """
    One participant as supplied by the caller.

    Only the field matching the split type is read: ``percentage`` for
    percentage splits, ``shares`` for share splits, ``amount`` for exact.
    """
    user_id: Any
    percentage: Optional[Any] = None
    shares: Optional[int] = None
    amount: Optional[Any] = None


@dataclass(frozen=True)
class ComputedSplit:
    """A participant's derived share, ready to be stored as an ExpenseSplit."""
    user_id: Any
    amount: Decimal
    percentage: Optional[Decimal] = None
    shares: Optional[int] = None

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.amount)


def compute_splits(
    *,
    total_amount,
    currency: str,
    split_type: str,
    participants: Sequence[SplitParticipant],
) -> List[ComputedSplit]:
    """
    Split ``total_amount`` among ``participants`` under ``split_type``.

    The returned splits are ordered by user id and their amounts always
    sum to ``total_amount`` exactly.

    Raises:
        SplitValidationError: For any input the policy rejects. The error
            names the offending field and the violated rule.
    """
    total_minor = _total_in_minor_units(total_amount)

    if not is_supported_currency(currency):
        raise SplitValidationError(
            f"Currency {currency} is not supported",
            field='currency',
            rule='unsupported_currency',
        )

    ordered = _ordered_participants(participants)

    if split_type == SplitType.EQUAL:
        return _split_equal(total_minor, ordered)
    if split_type == SplitType.PERCENTAGE:
        return _split_by_percentage(total_minor, ordered)
    if split_type == SplitType.SHARES:
        return _split_by_shares(total_minor, ordered)
    if split_type == SplitType.EXACT:
        return _split_exact(total_minor, ordered)

    raise SplitValidationError(
        f"Unknown split type: {split_type}",
        field='split_type',
        rule='unknown_split_type',
    )


def allocate_proportionally(total_minor: int, weights: Sequence[int]) -> List[int]:
    """
    Distribute ``total_minor`` units proportionally to integer ``weights``.

    Largest-remainder method: floors first, then one extra unit to each
    of the largest fractional remainders. Equal remainders are resolved by
    position, so callers control the tie-break through the order of
    ``weights``.

    >>> allocate_proportionally(10000, [1, 1, 1])
    [3334, 3333, 3333]
    """
    weight_total = sum(weights)
    if weight_total <= 0:
        raise ValueError("Weights must sum to a positive number")

    floors = []
    remainders = []
    for weight in weights:
        quotient, remainder = divmod(total_minor * weight, weight_total)
        floors.append(quotient)
        remainders.append(remainder)

    leftover = total_minor - sum(floors)
    # leftover < number of non-zero remainders, so zero weights never receive a unit
    by_remainder = sorted(
        range(len(weights)),
        key=lambda index: (-remainders[index], index)
    )
    for index in by_remainder[:leftover]:
        floors[index] += 1

    return floors


def _total_in_minor_units(total_amount) -> int:
    try:
        total_minor = to_minor_units(total_amount)
    except MoneyFormatError as exc:
        raise SplitValidationError(str(exc), field='total_amount', rule='invalid_amount')

    if total_minor <= 0:
        raise SplitValidationError(
            "Total amount must be greater than zero",
            field='total_amount',
            rule='non_positive_total',
        )
    return total_minor


def _ordered_participants(participants) -> List[SplitParticipant]:
    if not participants:
        raise SplitValidationError(
            "At least one participant is required",
            field='participants',
            rule='empty_participants',
        )

    seen = set()
    for participant in participants:
        key = str(participant.user_id)
        if key in seen:
            raise SplitValidationError(
                f"Participant {key} appears more than once",
                field='participants',
                rule='duplicate_participant',
            )
        seen.add(key)

    return sorted(participants, key=lambda participant: str(participant.user_id))


def _split_equal(total_minor, ordered):
    amounts = allocate_proportionally(total_minor, [1] * len(ordered))
    return [
        ComputedSplit(user_id=participant.user_id, amount=from_minor_units(amount))
        for participant, amount in zip(ordered, amounts)
    ]


def _split_by_percentage(total_minor, ordered):
    percentages = [_read_percentage(participant) for participant in ordered]

    if sum(percentages) != HUNDRED:
        raise SplitValidationError(
            f"Percentages must sum to 100, got {sum(percentages)}",
            field='percentage',
            rule='percentage_sum',
        )

    basis_points = [int(percentage * HUNDRED) for percentage in percentages]

    amounts = allocate_proportionally(total_minor, basis_points)
    return [
        ComputedSplit(
            user_id=participant.user_id,
            amount=from_minor_units(amount),
            percentage=percentage,
        )
        for participant, percentage, amount in zip(ordered, percentages, amounts)
    ]


def _split_by_shares(total_minor, ordered):
    shares = []
    for participant in ordered:
        value = participant.shares
        if value is None:
            raise SplitValidationError(
                f"Participant {participant.user_id} has no share count",
                field='shares',
                rule='missing_value',
            )
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise SplitValidationError(
                "Share counts must be non-negative integers",
                field='shares',
                rule='invalid_shares',
            )
        shares.append(value)

    if sum(shares) == 0:
        raise SplitValidationError(
            "Share counts must sum to more than zero",
            field='shares',
            rule='shares_sum_zero',
        )

    amounts = allocate_proportionally(total_minor, shares)
    return [
        ComputedSplit(
            user_id=participant.user_id,
            amount=from_minor_units(amount),
            shares=share,
        )
        for participant, share, amount in zip(ordered, shares, amounts)
    ]


def _split_exact(total_minor, ordered):
    amounts = []
    for participant in ordered:
        if participant.amount is None:
            raise SplitValidationError(
                f"Participant {participant.user_id} has no amount",
                field='amount',
                rule='missing_value',
            )
        try:
            minor = to_minor_units(participant.amount)
        except MoneyFormatError as exc:
            raise SplitValidationError(str(exc), field='amount', rule='invalid_amount')
        if minor < 0:
            raise SplitValidationError(
                "Split amounts cannot be negative",
                field='amount',
                rule='negative_amount',
            )
        amounts.append(minor)

    if sum(amounts) != total_minor:
        raise SplitValidationError(
            f"Split amounts sum to {from_minor_units(sum(amounts))}, "
            f"expected {from_minor_units(total_minor)}",
            field='amount',
            rule='exact_sum',
        )

    return [
        ComputedSplit(user_id=participant.user_id, amount=from_minor_units(amount))
        for participant, amount in zip(ordered, amounts)
    ]


def _read_percentage(participant) -> Decimal:
    value = participant.percentage
    if value is None:
        raise SplitValidationError(
            f"Participant {participant.user_id} has no percentage",
            field='percentage',
            rule='missing_value',
        )
    if isinstance(value, (float, bool)):
        raise SplitValidationError(
            "Percentages must be exact decimals",
            field='percentage',
            rule='invalid_percentage',
        )

    try:
        percentage = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise SplitValidationError(
            f"Invalid percentage: {value!r}",
            field='percentage',
            rule='invalid_percentage',
        )

    if not percentage.is_finite() or percentage != percentage.quantize(TWO_PLACES):
        raise SplitValidationError(
            "Percentages allow at most two decimal places",
            field='percentage',
            rule='invalid_percentage',
        )
    if percentage < 0 or percentage > HUNDRED:
        raise SplitValidationError(
            "Each percentage must be between 0 and 100",
            field='percentage',
            rule='percentage_range',
        )

    return percentage.quantize(TWO_PLACES)

