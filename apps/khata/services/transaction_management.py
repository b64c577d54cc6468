"""
Khata transaction management service.

Each mutation locks the customer, writes the transaction and recomputes
running balances from the earliest affected date before committing. A
storage write conflict rolls the attempt back and is retried from a
fresh read, like the group ledger's writes.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.expenses.services.balance_accumulator import run_with_conflict_retry
from apps.expenses.services.money import (
    MoneyFormatError,
    is_supported_currency,
    normalize_currency,
    to_decimal,
)
from apps.khata.models import KhataTransaction, TransactionType

from .customer_management import get_customer
from .exceptions import InvalidKhataTransactionError, TransactionNotFoundError
from .ledger import REVERSE_CHRONOLOGICAL_ORDER, lock_customer, recompute_running_balances

logger = logging.getLogger(__name__)


def create_transaction(
    *,
    customer_id: UUID,
    owner: User,
    type: str,
    amount,
    currency: Optional[str] = None,
    description: str = '',
    transaction_date=None,
) -> KhataTransaction:
    """
    Record a give/get entry for a customer.

    A back-dated entry shifts the running balance of every later entry;
    entries before it keep theirs.

    Args:
        customer_id: Customer the entry belongs to
        owner: Khata book owner
        type: ``give`` (owner gave money) or ``get`` (owner received money)
        amount: Positive amount, as Decimal or string
        currency: Defaults to KHATA_DEFAULT_CURRENCY
        description: Optional note
        transaction_date: When it happened; defaults to now

    Raises:
        CustomerNotFoundError: If customer doesn't exist or isn't owned
        InvalidKhataTransactionError: If type, amount or currency is rejected
        ConcurrencyConflictError: If the write kept conflicting
    """
    transaction_type = _validate_type(type)
    value = _validate_amount(amount)
    transaction_currency = _validate_currency(currency or settings.KHATA_DEFAULT_CURRENCY)
    when = transaction_date or timezone.now()

    def _create():
        customer = lock_customer(customer_id, owner)

        txn = KhataTransaction.objects.create(
            customer=customer,
            type=transaction_type,
            amount=value,
            currency=transaction_currency,
            description=description,
            transaction_date=when,
        )
        recompute_running_balances(customer_id=customer.id, from_date=txn.transaction_date)
        customer.save(update_fields=['updated_at'])

        txn.refresh_from_db()
        return txn

    txn = run_with_conflict_retry(_create, description="khata transaction creation")

    logger.info(
        "Created khata %s of %s %s for customer %s, balance now %s",
        txn.type, txn.amount, txn.currency, txn.customer_id, txn.balance
    )
    return txn


def update_transaction(
    *,
    transaction_id: UUID,
    owner: User,
    type: Optional[str] = None,
    amount=None,
    currency: Optional[str] = None,
    description: Optional[str] = None,
    transaction_date=None,
) -> KhataTransaction:
    """
    Edit an entry. Arguments left as None are unchanged.

    Moving an entry in time recomputes from the earlier of its old and
    new dates.

    Raises:
        TransactionNotFoundError: If transaction doesn't exist or isn't owned
        InvalidKhataTransactionError: If a new value is rejected
        ConcurrencyConflictError: If the write kept conflicting
    """
    new_type = _validate_type(type) if type is not None else None
    new_amount = _validate_amount(amount) if amount is not None else None
    new_currency = _validate_currency(currency) if currency is not None else None
    affects_balances = any(
        value is not None for value in (new_type, new_amount, transaction_date)
    )

    def _update():
        customer, txn = _lock_transaction(transaction_id, owner)
        old_date = txn.transaction_date

        if new_type is not None:
            txn.type = new_type
        if new_amount is not None:
            txn.amount = new_amount
        if new_currency is not None:
            txn.currency = new_currency
        if description is not None:
            txn.description = description
        if transaction_date is not None:
            txn.transaction_date = transaction_date

        txn.save()

        if affects_balances:
            recompute_running_balances(
                customer_id=customer.id,
                from_date=min(old_date, txn.transaction_date),
            )
            customer.save(update_fields=['updated_at'])
            txn.refresh_from_db()
        return txn

    txn = run_with_conflict_retry(_update, description="khata transaction update")

    logger.info("Updated khata transaction %s of customer %s", txn.id, txn.customer_id)
    return txn


def delete_transaction(*, transaction_id: UUID, owner: User) -> None:
    """
    Delete an entry and shift the running balances after it.

    Raises:
        TransactionNotFoundError: If transaction doesn't exist or isn't owned
        ConcurrencyConflictError: If the write kept conflicting
    """
    def _delete():
        customer, txn = _lock_transaction(transaction_id, owner)
        from_date = txn.transaction_date

        txn.delete()
        recompute_running_balances(customer_id=customer.id, from_date=from_date)
        customer.save(update_fields=['updated_at'])
        return customer

    customer = run_with_conflict_retry(_delete, description="khata transaction deletion")

    logger.info("Deleted khata transaction %s of customer %s", transaction_id, customer.id)


def get_transaction(*, transaction_id: UUID, owner: User) -> KhataTransaction:
    """
    Raises:
        TransactionNotFoundError: If transaction doesn't exist or isn't owned
    """
    try:
        return (
            KhataTransaction.objects
            .select_related('customer')
            .get(id=transaction_id, customer__owner=owner)
        )
    except KhataTransaction.DoesNotExist:
        raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")


def get_customer_transactions(*, customer_id: UUID, owner: User) -> QuerySet[KhataTransaction]:
    """
    A customer's transactions, latest first.

    Raises:
        CustomerNotFoundError: If customer doesn't exist or isn't owned
    """
    customer = get_customer(customer_id=customer_id, owner=owner)
    return (
        KhataTransaction.objects
        .filter(customer=customer)
        .order_by(*REVERSE_CHRONOLOGICAL_ORDER)
    )


def _lock_transaction(transaction_id, owner):
    # Lock order is customer first, then transaction
    customer_id = (
        KhataTransaction.objects
        .filter(id=transaction_id, customer__owner=owner)
        .values_list('customer_id', flat=True)
        .first()
    )
    if customer_id is None:
        raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")

    customer = lock_customer(customer_id, owner)
    try:
        txn = KhataTransaction.objects.select_for_update().get(id=transaction_id)
    except KhataTransaction.DoesNotExist:
        raise TransactionNotFoundError(f"Transaction with ID {transaction_id} not found")
    return customer, txn


def _validate_type(value):
    if value not in TransactionType.values:
        raise InvalidKhataTransactionError(
            f"Transaction type must be one of {', '.join(TransactionType.values)}",
            field='type',
        )
    return value


def _validate_amount(amount) -> Decimal:
    try:
        value = to_decimal(amount)
    except MoneyFormatError as exc:
        raise InvalidKhataTransactionError(str(exc), field='amount')
    if value <= 0:
        raise InvalidKhataTransactionError(
            "Amount must be greater than zero", field='amount'
        )
    return value


def _validate_currency(currency):
    code = normalize_currency(currency)
    if not is_supported_currency(code):
        raise InvalidKhataTransactionError(
            f"Unsupported currency: {code}", field='currency'
        )
    return code
