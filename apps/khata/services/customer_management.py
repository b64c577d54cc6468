"""
Khata customer management service.

Customers are private to the user who created them; another user's
customer is reported as not found.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.db import transaction
from django.db.models import DecimalField, OuterRef, Q, QuerySet, Subquery, Value
from django.db.models.functions import Abs, Coalesce, Lower

from apps.accounts.models import User
from apps.khata.models import KhataCustomer, KhataTransaction

from .exceptions import CustomerNotFoundError, InvalidCustomerQueryError
from .ledger import REVERSE_CHRONOLOGICAL_ORDER, lock_customer

logger = logging.getLogger(__name__)

FILTER_TYPES = ('all', 'give', 'get', 'settled')

SORT_ORDERS = {
    'most-recent': ('-updated_at',),
    'oldest': ('created_at',),
    'highest-amount': ('-balance_magnitude', Lower('name')),
    'least-amount': ('balance_magnitude', Lower('name')),
    'name-az': (Lower('name'), 'created_at'),
}

CUSTOMER_FIELDS = ('name', 'email', 'phone', 'address', 'notes')


def with_current_balance(queryset: QuerySet) -> QuerySet:
    """Annotate customers with ``current_balance`` and ``balance_magnitude``."""
    latest = (
        KhataTransaction.objects
        .filter(customer=OuterRef('pk'))
        .order_by(*REVERSE_CHRONOLOGICAL_ORDER)
        .values('balance')[:1]
    )
    money = DecimalField(max_digits=12, decimal_places=2)
    return (
        queryset
        .annotate(
            current_balance=Coalesce(
                Subquery(latest, output_field=money),
                Value(Decimal('0.00'), output_field=money),
                output_field=money,
            )
        )
        .annotate(balance_magnitude=Abs('current_balance'))
    )


@transaction.atomic
def create_customer(
    *,
    owner: User,
    name: str,
    email: str = '',
    phone: str = '',
    address: str = '',
    notes: str = '',
) -> KhataCustomer:
    """Add a contact to the owner's khata book."""
    customer = KhataCustomer.objects.create(
        owner=owner,
        name=name,
        email=email,
        phone=phone,
        address=address,
        notes=notes,
    )
    logger.info("Created khata customer %s for user %s", customer.id, owner.id)
    return customer


@transaction.atomic
def update_customer(*, customer_id: UUID, owner: User, **changes) -> KhataCustomer:
    """
    Update contact details. Only keys in CUSTOMER_FIELDS are accepted;
    a value of None leaves the field unchanged.

    Raises:
        CustomerNotFoundError: If customer doesn't exist or isn't owned
        InvalidCustomerQueryError: If an unknown field is passed
    """
    unknown = set(changes) - set(CUSTOMER_FIELDS)
    if unknown:
        raise InvalidCustomerQueryError(
            f"Unknown customer fields: {', '.join(sorted(unknown))}",
            field=sorted(unknown)[0],
        )

    customer = lock_customer(customer_id, owner)

    for field, value in changes.items():
        if value is not None:
            setattr(customer, field, value)
    customer.save()

    return customer


@transaction.atomic
def delete_customer(*, customer_id: UUID, owner: User) -> None:
    """Delete a customer together with all of their transactions."""
    customer = lock_customer(customer_id, owner)
    logger.info(
        "Deleting khata customer %s of user %s with %d transactions",
        customer.id, owner.id, customer.transactions.count()
    )
    customer.delete()


def get_customer(*, customer_id: UUID, owner: User) -> KhataCustomer:
    """
    Get a customer annotated with its current balance.

    Raises:
        CustomerNotFoundError: If customer doesn't exist or isn't owned
    """
    try:
        return with_current_balance(
            KhataCustomer.objects.filter(owner=owner)
        ).get(id=customer_id)
    except KhataCustomer.DoesNotExist:
        raise CustomerNotFoundError(f"Customer with ID {customer_id} not found")


def get_customers(
    *,
    owner: User,
    search: Optional[str] = None,
    filter_type: str = 'all',
    sort_type: str = 'most-recent',
) -> QuerySet[KhataCustomer]:
    """
    List the owner's customers with their current balance.

    Args:
        owner: Khata book owner
        search: Matches name, email or phone (case-insensitive)
        filter_type: all, give (owner owes), get (customer owes) or settled
        sort_type: most-recent, oldest, highest-amount, least-amount or name-az

    Raises:
        InvalidCustomerQueryError: On an unknown filter or sort
    """
    if filter_type not in FILTER_TYPES:
        raise InvalidCustomerQueryError(
            f"Unknown filter: {filter_type}", field='filter'
        )
    if sort_type not in SORT_ORDERS:
        raise InvalidCustomerQueryError(
            f"Unknown sort order: {sort_type}", field='sort'
        )

    queryset = with_current_balance(KhataCustomer.objects.filter(owner=owner))

    if search:
        queryset = queryset.filter(
            Q(name__icontains=search) |
            Q(email__icontains=search) |
            Q(phone__icontains=search)
        )

    if filter_type == 'give':
        queryset = queryset.filter(current_balance__lt=0)
    elif filter_type == 'get':
        queryset = queryset.filter(current_balance__gt=0)
    elif filter_type == 'settled':
        queryset = queryset.filter(current_balance=0)

    return queryset.order_by(*SORT_ORDERS[sort_type])


def get_financial_summary(*, owner: User) -> dict:
    """
    Totals across all of the owner's customers.

    Returns:
        dict with ``total_give`` (what the owner owes, positive),
        ``total_get`` (what customers owe the owner) and ``customer_count``
    """
    balances = list(
        with_current_balance(KhataCustomer.objects.filter(owner=owner))
        .values_list('current_balance', flat=True)
    )
    zero = Decimal('0.00')

    return {
        'total_give': sum((-b for b in balances if b < 0), zero),
        'total_get': sum((b for b in balances if b > 0), zero),
        'customer_count': len(balances),
    }
