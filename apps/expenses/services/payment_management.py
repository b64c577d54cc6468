"""
Payment management service.

Settlement payments between two members of a group. Only completed
payments count towards balances:

    pending   -> completed   apply the payment once
    pending   -> cancelled   no balance effect
    completed -> cancelled   reverse the payment once

Any other transition is rejected. Setting a payment to the status it
already has is a no-op.
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from django.db.models import Count, Q, QuerySet, Sum
from django.utils import timezone

from apps.accounts.models import User
from apps.expenses.models import Payment, PaymentStatus
from apps.groups.models import Group

from .balance_accumulator import (
    apply_balance_deltas,
    lock_group,
    payment_balance_deltas,
    reverse_deltas,
    run_with_conflict_retry,
)
from .exceptions import (
    GroupNotFoundError,
    InsufficientPermissionsError,
    InvalidPaymentTransitionError,
    NotGroupMemberError,
    PaymentNotDeletableError,
    PaymentNotFoundError,
    SplitValidationError,
)
from .money import MoneyFormatError, normalize_currency, to_decimal

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: {PaymentStatus.CANCELLED},
    PaymentStatus.CANCELLED: set(),
}


def create_payment(
    *,
    group_id: UUID,
    user: User,
    from_user_id: UUID,
    to_user_id: UUID,
    amount,
    currency: Optional[str] = None,
    description: str = '',
    payment_method: str = '',
    status: str = PaymentStatus.PENDING,
) -> Payment:
    """
    Record a payment from one member to another.

    A payment created as ``completed`` is applied to balances right away.

    Raises:
        GroupNotFoundError: If group doesn't exist
        InsufficientPermissionsError: If user is not a member
        NotGroupMemberError: If either party is not a member
        SplitValidationError: For a non-positive amount, a payment to
            oneself, a foreign currency or an unknown status
        ConcurrencyConflictError: If the balance write kept conflicting
    """
    payment_amount = _read_amount(amount)

    if str(from_user_id) == str(to_user_id):
        raise SplitValidationError(
            "A payment needs two different members",
            field='to_user',
            rule='same_party',
        )
    if status not in (PaymentStatus.PENDING, PaymentStatus.COMPLETED):
        raise SplitValidationError(
            f"A new payment cannot be {status}",
            field='status',
            rule='invalid_initial_status',
        )

    def _create():
        group = lock_group(group_id)
        member_ids = group.member_ids()

        if user.id not in member_ids:
            raise InsufficientPermissionsError("You are not a member of this group")
        from_id = _as_uuid(from_user_id, 'from_user')
        to_id = _as_uuid(to_user_id, 'to_user')
        for field, party_id in (('from_user', from_id), ('to_user', to_id)):
            if party_id not in member_ids:
                raise NotGroupMemberError(
                    f"{party_id} is not a member of this group", field=field
                )

        payment_currency = normalize_currency(currency or group.currency)
        if payment_currency != group.currency:
            raise SplitValidationError(
                f"Payment currency {payment_currency} does not match group currency {group.currency}",
                field='currency',
                rule='currency_mismatch',
            )

        payment = Payment.objects.create(
            group=group,
            from_user_id=from_id,
            to_user_id=to_id,
            amount=payment_amount,
            currency=payment_currency,
            description=description,
            payment_method=payment_method,
            status=status,
            completed_at=timezone.now() if status == PaymentStatus.COMPLETED else None,
        )

        if payment.affects_balances:
            apply_balance_deltas(group=group, deltas=_deltas(payment))

        logger.info(
            "Created %s payment %s in group %s: %s -> %s, %s %s",
            payment.status, payment.id, group.id, payment.from_user_id,
            payment.to_user_id, payment.amount, payment.currency
        )
        return payment

    return run_with_conflict_retry(_create, description="payment creation")


def update_payment_status(*, payment_id: UUID, user: User, status: str) -> Payment:
    """
    Move a payment through its lifecycle (either party or a group admin).

    Raises:
        PaymentNotFoundError: If payment doesn't exist
        InsufficientPermissionsError: If user may not change this payment
        InvalidPaymentTransitionError: If the lifecycle forbids the change
        ConcurrencyConflictError: If the balance write kept conflicting
    """
    if status not in ALLOWED_TRANSITIONS:
        raise InvalidPaymentTransitionError(f"Unknown payment status: {status}")

    def _update():
        group, payment = _lock_payment(payment_id)
        _ensure_can_modify(group, payment, user)

        previous = payment.status
        if previous == status:
            return payment

        if status not in ALLOWED_TRANSITIONS[previous]:
            raise InvalidPaymentTransitionError(
                f"Cannot change a {previous} payment to {status}"
            )

        if status == PaymentStatus.COMPLETED:
            apply_balance_deltas(group=group, deltas=_deltas(payment))
            payment.completed_at = timezone.now()
        elif previous == PaymentStatus.COMPLETED:
            apply_balance_deltas(group=group, deltas=reverse_deltas(_deltas(payment)))

        payment.status = status
        payment.save(update_fields=['status', 'completed_at', 'updated_at'])

        logger.info(
            "Payment %s in group %s moved from %s to %s",
            payment.id, group.id, previous, status
        )
        return payment

    return run_with_conflict_retry(_update, description="payment status update")


def delete_payment(*, payment_id: UUID, user: User) -> None:
    """
    Delete a pending payment.

    Raises:
        PaymentNotFoundError: If payment doesn't exist
        InsufficientPermissionsError: If user may not change this payment
        PaymentNotDeletableError: If the payment is not pending
    """
    def _delete():
        group, payment = _lock_payment(payment_id)
        _ensure_can_modify(group, payment, user)

        if payment.status != PaymentStatus.PENDING:
            raise PaymentNotDeletableError(
                f"Only pending payments can be deleted; this one is {payment.status}"
            )

        logger.info("Deleted pending payment %s in group %s", payment.id, group.id)
        payment.delete()

    run_with_conflict_retry(_delete, description="payment deletion")


def get_payment_by_id(*, payment_id: UUID) -> Payment:
    """
    Raises:
        PaymentNotFoundError: If payment doesn't exist
    """
    try:
        return (
            Payment.objects
            .select_related('group', 'from_user', 'to_user')
            .get(id=payment_id)
        )
    except Payment.DoesNotExist:
        raise PaymentNotFoundError(f"Payment with ID {payment_id} not found")


def get_group_payments(*, group_id: UUID, status: Optional[str] = None) -> QuerySet[Payment]:
    """
    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    queryset = (
        Payment.objects
        .filter(group_id=group_id)
        .select_related('from_user', 'to_user')
        .order_by('-created_at')
    )
    if status:
        queryset = queryset.filter(status=status)
    return queryset


def get_user_payments(*, user: User) -> QuerySet[Payment]:
    """Payments sent or received by ``user`` across all groups."""
    return (
        Payment.objects
        .filter(Q(from_user=user) | Q(to_user=user))
        .select_related('group', 'from_user', 'to_user')
        .order_by('-created_at')
    )


def get_group_payment_stats(*, group_id: UUID) -> dict:
    """
    Payment counts per status and the completed total for a group.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    stats = Payment.objects.filter(group_id=group_id).aggregate(
        total_payments=Count('id'),
        pending_payments=Count('id', filter=Q(status=PaymentStatus.PENDING)),
        completed_payments=Count('id', filter=Q(status=PaymentStatus.COMPLETED)),
        cancelled_payments=Count('id', filter=Q(status=PaymentStatus.CANCELLED)),
        total_completed_amount=Sum('amount', filter=Q(status=PaymentStatus.COMPLETED)),
        total_pending_amount=Sum('amount', filter=Q(status=PaymentStatus.PENDING)),
    )
    stats['total_completed_amount'] = stats['total_completed_amount'] or Decimal('0.00')
    stats['total_pending_amount'] = stats['total_pending_amount'] or Decimal('0.00')
    return stats


def _deltas(payment):
    return payment_balance_deltas(
        from_user_id=payment.from_user_id,
        to_user_id=payment.to_user_id,
        amount=payment.amount,
    )


def _lock_payment(payment_id):
    group_id = (
        Payment.objects
        .filter(id=payment_id)
        .values_list('group_id', flat=True)
        .first()
    )
    if group_id is None:
        raise PaymentNotFoundError(f"Payment with ID {payment_id} not found")

    group = lock_group(group_id)
    try:
        payment = Payment.objects.select_for_update().get(id=payment_id)
    except Payment.DoesNotExist:
        raise PaymentNotFoundError(f"Payment with ID {payment_id} not found")
    return group, payment


def _ensure_can_modify(group, payment, user):
    if user.id in (payment.from_user_id, payment.to_user_id):
        return
    if not group.is_admin(user):
        raise InsufficientPermissionsError(
            "Only the payment parties or a group admin can change this payment"
        )


def _read_amount(amount) -> Decimal:
    try:
        value = to_decimal(amount)
    except MoneyFormatError as exc:
        raise SplitValidationError(str(exc), field='amount', rule='invalid_amount')
    if value <= 0:
        raise SplitValidationError(
            "Payment amount must be greater than zero",
            field='amount',
            rule='non_positive_amount',
        )
    return value


def _as_uuid(value, field):
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise SplitValidationError(
            f"Invalid user id: {value!r}", field=field, rule='invalid_user_id'
        )
