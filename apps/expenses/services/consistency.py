"""
Consistency validation and repair.

Recomputes a group's balances from scratch by replaying its history
(every expense with its stored splits, every completed payment) in
timestamp order, then compares the result to the stored Balance rows.

Validation is read-only and reports what it saw at the time of the
check; a result that races a concurrent write is simply re-checked.
Repair is a separate, explicit call that logs every row it overwrites.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import User
from apps.expenses.models import Balance, Expense, Payment, PaymentStatus
from apps.groups.models import Group, GroupMembership

from .balance_accumulator import (
    expense_balance_deltas,
    lock_group,
    merge_deltas,
    payment_balance_deltas,
    run_with_conflict_retry,
)
from .exceptions import ConsistencyError, GroupNotFoundError, InsufficientPermissionsError
from .money import from_minor_units, to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Discrepancy:
    user_id: UUID
    stored_balance: Decimal
    recomputed_balance: Decimal

    def as_dict(self):
        return {
            'user_id': self.user_id,
            'stored_balance': self.stored_balance,
            'recomputed_balance': self.recomputed_balance,
        }


@dataclass
class ConsistencyReport:
    """Outcome of one validation run, as of ``checked_at``."""
    group_id: UUID
    consistent: bool
    discrepancies: List[Discrepancy]
    recomputed_total: Decimal
    stored_total: Decimal
    expense_count: int
    payment_count: int
    checked_at: datetime
    repaired: bool = False
    recomputed: Dict[UUID, Decimal] = field(default_factory=dict)

    def as_dict(self):
        return {
            'group_id': self.group_id,
            'consistent': self.consistent,
            'discrepancies': [d.as_dict() for d in self.discrepancies],
            'recomputed_total': self.recomputed_total,
            'stored_total': self.stored_total,
            'expense_count': self.expense_count,
            'payment_count': self.payment_count,
            'checked_at': self.checked_at,
            'repaired': self.repaired,
        }


def replay_group_history(*, group_id) -> Dict[UUID, int]:
    """
    Recompute every member's balance in minor units from the group's history.

    Expenses replay in (date, created_at) order using their stored splits;
    completed payments replay in completion order. Stored Balance rows are
    never read.
    """
    expenses = (
        Expense.objects
        .filter(group_id=group_id)
        .prefetch_related('splits')
        .order_by('date', 'created_at', 'id')
    )
    payments = (
        Payment.objects
        .filter(group_id=group_id, status=PaymentStatus.COMPLETED)
        .order_by('completed_at', 'created_at', 'id')
    )

    recomputed: Dict[UUID, int] = {}
    for expense in expenses:
        recomputed = merge_deltas(recomputed, expense_balance_deltas(
            paid_by_id=expense.paid_by_id,
            total_amount=expense.total_amount,
            splits=expense.splits.all(),
        ))
    for payment in payments:
        recomputed = merge_deltas(recomputed, payment_balance_deltas(
            from_user_id=payment.from_user_id,
            to_user_id=payment.to_user_id,
            amount=payment.amount,
        ))

    return recomputed


def _stored_balances(group_id) -> Dict[UUID, int]:
    return {
        user_id: to_minor_units(balance)
        for user_id, balance in (
            Balance.objects
            .filter(group_id=group_id)
            .values_list('user_id', 'balance')
        )
    }


def _build_report(group_id) -> ConsistencyReport:
    recomputed = replay_group_history(group_id=group_id)
    stored = _stored_balances(group_id)
    member_ids = set(
        GroupMembership.objects
        .filter(group_id=group_id)
        .values_list('user_id', flat=True)
    )

    discrepancies = []
    for user_id in sorted(member_ids | set(stored) | set(recomputed), key=str):
        stored_minor = stored.get(user_id, 0)
        recomputed_minor = recomputed.get(user_id, 0)
        if stored_minor != recomputed_minor:
            discrepancies.append(Discrepancy(
                user_id=user_id,
                stored_balance=from_minor_units(stored_minor),
                recomputed_balance=from_minor_units(recomputed_minor),
            ))

    recomputed_total = sum(recomputed.values())

    return ConsistencyReport(
        group_id=group_id,
        consistent=not discrepancies and recomputed_total == 0,
        discrepancies=discrepancies,
        recomputed_total=from_minor_units(recomputed_total),
        stored_total=from_minor_units(sum(stored.values())),
        expense_count=Expense.objects.filter(group_id=group_id).count(),
        payment_count=Payment.objects.filter(
            group_id=group_id, status=PaymentStatus.COMPLETED
        ).count(),
        checked_at=timezone.now(),
        recomputed={
            user_id: from_minor_units(amount)
            for user_id, amount in recomputed.items()
        },
    )


def validate_group_balance_consistency(*, group_id) -> ConsistencyReport:
    """
    Compare stored balances against a full replay of the group's history.

    Members without a Balance row count as zero. The report is also
    inconsistent when the replayed balances do not sum to zero.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    with transaction.atomic():
        report = _build_report(group_id)

    if report.discrepancies:
        logger.warning(
            "Group %s has %d balance discrepancies: %s",
            group_id,
            len(report.discrepancies),
            [d.as_dict() for d in report.discrepancies],
        )
    if report.recomputed_total != Decimal('0.00'):
        logger.error(
            "Replayed balances of group %s sum to %s instead of zero",
            group_id, report.recomputed_total
        )

    return report


def repair_group_balances(*, group_id, user: Optional[User] = None) -> ConsistencyReport:
    """
    Overwrite stored balances with the replayed ones (admin only).

    The check is repeated under the group lock so the overwrite is based
    on the history as it is at that moment. Every overwritten row is
    logged. ``user`` may be omitted by operator tooling that has no
    request user.

    Returns:
        The report computed under the lock, with ``repaired`` set when
        any row was overwritten.

    Raises:
        GroupNotFoundError: If group doesn't exist
        InsufficientPermissionsError: If user is not a group admin
        ConsistencyError: If the replayed history itself does not sum to
            zero; no row is written in that case
    """
    def _repair():
        group = lock_group(group_id)

        if user is not None and not group.is_admin(user):
            raise InsufficientPermissionsError("Only group admins can recalculate balances")

        report = _build_report(group.id)

        if report.recomputed_total != Decimal('0.00'):
            logger.error(
                "Refusing to repair group %s: replayed balances sum to %s",
                group.id, report.recomputed_total
            )
            raise ConsistencyError(
                f"Replayed balances for group {group.id} do not sum to zero"
            )

        for discrepancy in report.discrepancies:
            Balance.objects.update_or_create(
                group=group,
                user_id=discrepancy.user_id,
                defaults={'balance': discrepancy.recomputed_balance},
            )
            logger.warning(
                "Repaired balance of user %s in group %s: %s -> %s (by %s)",
                discrepancy.user_id,
                group.id,
                discrepancy.stored_balance,
                discrepancy.recomputed_balance,
                user.email if user is not None else 'operator',
            )

        report.repaired = bool(report.discrepancies)
        return report

    return run_with_conflict_retry(_repair, description=f"balance repair of group {group_id}")
