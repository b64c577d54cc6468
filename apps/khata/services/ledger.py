"""
Khata running-balance ledger.

Every transaction stores the customer's balance after it, counted in
chronological order: transaction_date, then created_at, then id. A
``give`` entry raises the balance and a ``get`` entry lowers it.

An insert, edit or delete at some date only changes the running balances
from that date on, so recomputation starts from the last balance before
the date and walks forward. Writers hold the customer row lock, which
serializes all mutations of one customer's sequence.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from apps.accounts.models import User
from apps.expenses.services.money import from_minor_units, to_minor_units
from apps.khata.models import (
    BalanceDirection,
    KhataCustomer,
    KhataTransaction,
    TransactionType,
)

from .exceptions import CustomerNotFoundError

logger = logging.getLogger(__name__)

CHRONOLOGICAL_ORDER = ('transaction_date', 'created_at', 'id')
REVERSE_CHRONOLOGICAL_ORDER = ('-transaction_date', '-created_at', '-id')


def signed_minor_units(transaction_type: str, amount) -> int:
    minor = to_minor_units(amount)
    return minor if transaction_type == TransactionType.GIVE else -minor


def balance_direction(balance: Decimal) -> str:
    """Label a balance from the owner's point of view."""
    if balance > 0:
        return BalanceDirection.GET
    if balance < 0:
        return BalanceDirection.GIVE
    return BalanceDirection.SETTLED


def lock_customer(customer_id: UUID, owner: Optional[User] = None) -> KhataCustomer:
    """
    Lock a customer row for the rest of the transaction.

    Raises:
        CustomerNotFoundError: If the customer doesn't exist or ``owner``
            is given and does not own it
    """
    queryset = KhataCustomer.objects.select_for_update()
    if owner is not None:
        queryset = queryset.filter(owner=owner)
    try:
        return queryset.get(id=customer_id)
    except KhataCustomer.DoesNotExist:
        raise CustomerNotFoundError(f"Customer with ID {customer_id} not found")


def recompute_running_balances(*, customer_id: UUID, from_date=None) -> int:
    """
    Re-derive running balances from ``from_date`` onwards.

    Transactions dated before ``from_date`` keep their stored balance and
    the last of them is the starting point. Without ``from_date`` the
    whole sequence is walked from zero. Must run inside the transaction
    that holds the customer lock.

    Returns:
        Number of transactions whose stored balance changed
    """
    transactions = KhataTransaction.objects.filter(customer_id=customer_id)

    running = 0
    if from_date is not None:
        previous = (
            transactions
            .filter(transaction_date__lt=from_date)
            .order_by(*REVERSE_CHRONOLOGICAL_ORDER)
            .values_list('balance', flat=True)
            .first()
        )
        if previous is not None:
            running = to_minor_units(previous)
        transactions = transactions.filter(transaction_date__gte=from_date)

    changed = []
    for txn in transactions.order_by(*CHRONOLOGICAL_ORDER):
        running += signed_minor_units(txn.type, txn.amount)
        balance = from_minor_units(running)
        if txn.balance != balance:
            txn.balance = balance
            changed.append(txn)

    if changed:
        KhataTransaction.objects.bulk_update(changed, ['balance'])

    logger.debug(
        "Recomputed khata balances for customer %s from %s: %d changed",
        customer_id, from_date, len(changed)
    )
    return len(changed)


def current_balance(*, customer_id: UUID) -> Decimal:
    """Running balance of the chronologically last transaction, or zero."""
    balance = (
        KhataTransaction.objects
        .filter(customer_id=customer_id)
        .order_by(*REVERSE_CHRONOLOGICAL_ORDER)
        .values_list('balance', flat=True)
        .first()
    )
    return balance if balance is not None else Decimal('0.00')
