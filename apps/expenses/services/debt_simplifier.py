"""
Debt simplification.

Turns a group's net balances into a short list of direct transfers that
settle everybody. Greedy max-pair matching: each round the largest
remaining creditor is paid by the largest remaining debtor, for the
smaller of the two magnitudes. At least one party leaves per round, so
``n`` non-zero members never need more than ``n - 1`` transfers.

Example:
    >>> simplify_debts({'A': Decimal('50.00'), 'B': Decimal('30.00'), 'C': Decimal('-80.00')})
    [Transfer(from_user_id='C', to_user_id='A', amount=Decimal('50.00')),
     Transfer(from_user_id='C', to_user_id='B', amount=Decimal('30.00'))]

Pure function; balances are read and transfers produced in minor units.
"""

import heapq
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Tuple, Union

from .exceptions import UnsettleableBalancesError
from .money import from_minor_units, to_minor_units

logger = logging.getLogger(__name__)

BalanceInput = Union[Mapping[Any, Decimal], Iterable[Tuple[Any, Decimal]]]


@dataclass(frozen=True)
class Transfer:
    from_user_id: Any
    to_user_id: Any
    amount: Decimal

    def as_dict(self):
        return {
            'from_user_id': self.from_user_id,
            'to_user_id': self.to_user_id,
            'amount': self.amount,
        }


def simplify_debts(balances: BalanceInput) -> List[Transfer]:
    """
    Compute settlement transfers for ``balances``.

    Args:
        balances: ``{user_id: net_balance}`` or an iterable of
            ``(user_id, net_balance)`` pairs. Positive means the user is owed.

    Returns:
        Transfers in the order they were matched. Every amount is positive.

    Raises:
        UnsettleableBalancesError: If the balances do not sum to zero. The
            input is never adjusted to make it settle.
    """
    pairs = balances.items() if isinstance(balances, Mapping) else balances

    net_minor = {}
    for user_id, balance in pairs:
        net_minor[user_id] = net_minor.get(user_id, 0) + to_minor_units(balance)

    total = sum(net_minor.values())
    if total != 0:
        logger.error(
            "Refusing to simplify balances that sum to %s instead of zero",
            from_minor_units(total)
        )
        raise UnsettleableBalancesError(
            f"Balances sum to {from_minor_units(total)}, expected 0.00"
        )

    # Max-heaps keyed by (-magnitude, user id) so ties resolve deterministically
    creditors = [(-amount, str(user_id), user_id) for user_id, amount in net_minor.items() if amount > 0]
    debtors = [(amount, str(user_id), user_id) for user_id, amount in net_minor.items() if amount < 0]
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers = []
    while creditors and debtors:
        negative_credit, creditor_key, creditor_id = heapq.heappop(creditors)
        negative_debt, debtor_key, debtor_id = heapq.heappop(debtors)

        credit = -negative_credit
        debt = -negative_debt
        amount = min(credit, debt)

        transfers.append(Transfer(
            from_user_id=debtor_id,
            to_user_id=creditor_id,
            amount=from_minor_units(amount),
        ))

        if credit > amount:
            heapq.heappush(creditors, (-(credit - amount), creditor_key, creditor_id))
        if debt > amount:
            heapq.heappush(debtors, (-(debt - amount), debtor_key, debtor_id))

    return transfers
