"""
Balance accumulator.

Maintains the stored per-(group, user) Balance rows. Every expense or
payment mutation is expressed as a map of signed minor-unit deltas and
applied in one transaction while the group row is locked, so two writes
on the same group never compute against a stale base.

One rule covers every expense, whether or not the payer also takes a
share::

    delta[payer]       += total
    delta[participant] -= split      (payer included when participating)

A completed payment moves ``amount`` from the payee's side to the
payer's: ``delta[from_user] += amount`` and ``delta[to_user] -= amount``.
"""

import logging
from typing import Callable, Dict, Iterable, TypeVar
from uuid import UUID

from django.conf import settings
from django.db import OperationalError, transaction

from apps.expenses.models import Balance
from apps.groups.models import Group

from .exceptions import ConcurrencyConflictError, ConsistencyError, GroupNotFoundError
from .money import from_minor_units, to_minor_units

logger = logging.getLogger(__name__)

T = TypeVar('T')

Deltas = Dict[UUID, int]


def expense_balance_deltas(*, paid_by_id, total_amount, splits: Iterable) -> Deltas:
    """
    Balance effect of one expense.

    ``splits`` may be ExpenseSplit rows or ComputedSplit objects; only
    ``user_id`` and ``amount`` are read.
    """
    deltas: Deltas = {}
    deltas[paid_by_id] = deltas.get(paid_by_id, 0) + to_minor_units(total_amount)
    for split in splits:
        deltas[split.user_id] = deltas.get(split.user_id, 0) - to_minor_units(split.amount)
    return deltas


def payment_balance_deltas(*, from_user_id, to_user_id, amount) -> Deltas:
    """Balance effect of one completed payment."""
    minor = to_minor_units(amount)
    return {
        from_user_id: minor,
        to_user_id: -minor,
    }


def reverse_deltas(deltas: Deltas) -> Deltas:
    return {user_id: -delta for user_id, delta in deltas.items()}


def merge_deltas(*delta_maps: Deltas) -> Deltas:
    merged: Deltas = {}
    for deltas in delta_maps:
        for user_id, delta in deltas.items():
            merged[user_id] = merged.get(user_id, 0) + delta
    return merged


def lock_group(group_id) -> Group:
    """
    Lock the group row for the rest of the current transaction.

    All balance-affecting writes for a group take this lock first, which
    serializes them per group while leaving other groups untouched.

    Raises:
        GroupNotFoundError: If the group doesn't exist
    """
    try:
        return Group.objects.select_for_update().get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")


def apply_balance_deltas(*, group: Group, deltas: Deltas) -> Dict[UUID, Balance]:
    """
    Add ``deltas`` to the group's Balance rows.

    Must run inside ``transaction.atomic`` after ``lock_group``. Rows are
    created on first use and touched in user-id order.

    Raises:
        ConsistencyError: If the deltas do not sum to zero. Nothing is
            written in that case.
    """
    if sum(deltas.values()) != 0:
        logger.error(
            "Rejected non zero-sum balance update for group %s: %s",
            group.id, deltas
        )
        raise ConsistencyError(
            f"Balance deltas for group {group.id} do not sum to zero"
        )

    updated = {}
    for user_id in sorted(deltas, key=str):
        delta = deltas[user_id]
        if delta == 0:
            continue

        balance, _ = (
            Balance.objects
            .select_for_update()
            .get_or_create(group=group, user_id=user_id)
        )
        balance.balance = from_minor_units(to_minor_units(balance.balance) + delta)
        balance.save(update_fields=['balance', 'updated_at'])
        updated[user_id] = balance

    return updated


def run_with_conflict_retry(operation: Callable[[], T], *, description: str) -> T:
    """
    Run ``operation`` in its own transaction, retrying on write conflicts.

    A conflict reported by the database (lock timeout, deadlock, busy
    database) rolls the attempt back; the next attempt starts from a
    fresh read. After ``LEDGER_CONFLICT_RETRIES`` retries the conflict is
    surfaced as ConcurrencyConflictError.

    Raises:
        ConcurrencyConflictError: If every attempt conflicted
    """
    retries = settings.LEDGER_CONFLICT_RETRIES

    for attempt in range(retries + 1):
        try:
            with transaction.atomic():
                return operation()
        except OperationalError as exc:
            if attempt < retries:
                logger.warning(
                    "Write conflict during %s (attempt %d of %d), retrying: %s",
                    description, attempt + 1, retries + 1, exc
                )
                continue
            logger.error(
                "Write conflict during %s persisted after %d attempts: %s",
                description, retries + 1, exc
            )
            raise ConcurrencyConflictError(
                f"Could not complete {description} due to concurrent updates"
            ) from exc

    # Reached only with a negative retry setting
    raise ConcurrencyConflictError(f"Could not complete {description}")
