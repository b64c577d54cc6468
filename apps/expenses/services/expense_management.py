"""
Expense management service.

Creates, edits and deletes expenses together with their splits and the
balance changes they cause. Each mutation runs as one transaction under
the group lock: the splits are derived, the expense rows written and
every affected Balance row updated, or nothing is.
"""

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from django.db.models import QuerySet
from django.utils import timezone

from apps.accounts.models import User
from apps.expenses.models import Expense, ExpenseCategory, ExpenseSplit, SplitType
from apps.groups.models import Group

from .balance_accumulator import (
    apply_balance_deltas,
    expense_balance_deltas,
    lock_group,
    merge_deltas,
    reverse_deltas,
    run_with_conflict_retry,
)
from .exceptions import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    InsufficientPermissionsError,
    NotGroupMemberError,
    SplitValidationError,
)
from .money import normalize_currency
from .split_calculator import SplitParticipant, compute_splits

logger = logging.getLogger(__name__)


def create_expense(
    *,
    group_id: UUID,
    user: User,
    title: str,
    total_amount,
    paid_by_id: Optional[UUID] = None,
    currency: Optional[str] = None,
    split_type: Optional[str] = None,
    participants: Optional[Sequence[SplitParticipant]] = None,
    description: str = '',
    category: str = ExpenseCategory.OTHER,
    date=None,
) -> Expense:
    """
    Record an expense and apply its balance effect.

    Args:
        group_id: Group the expense belongs to
        user: Member recording the expense
        title: Short label
        total_amount: Total paid, as Decimal or string
        paid_by_id: Payer; defaults to ``user``
        currency: Must match the group currency; defaults to it
        split_type: equal, percentage, shares or exact; defaults to the
            group's default split type
        participants: Who shares the cost. When omitted the expense is
            split equally among all current members.
        description: Optional longer text
        category: One of ExpenseCategory
        date: When the expense happened; defaults to now

    Returns:
        Created Expense with its splits

    Raises:
        GroupNotFoundError: If group doesn't exist
        InsufficientPermissionsError: If user is not a member
        NotGroupMemberError: If the payer or a participant is not a member
        SplitValidationError: If the split input is rejected
        ConcurrencyConflictError: If the balance write kept conflicting
    """
    def _create():
        group = lock_group(group_id)
        member_ids = group.member_ids()
        _ensure_member(user, member_ids)

        payer_id = _as_user_id(paid_by_id or user.id, field='paid_by')
        if payer_id not in member_ids:
            raise NotGroupMemberError("Payer is not a member of this group", field='paid_by')

        resolved_type, resolved_participants = _resolve_participants(
            group, member_ids, split_type, participants
        )
        expense_currency = _resolve_currency(group, currency)

        splits = compute_splits(
            total_amount=total_amount,
            currency=expense_currency,
            split_type=resolved_type,
            participants=resolved_participants,
        )

        expense = Expense.objects.create(
            group=group,
            paid_by_id=payer_id,
            title=title,
            description=description,
            category=category,
            total_amount=sum((split.amount for split in splits)),
            currency=expense_currency,
            split_type=resolved_type,
            date=date or timezone.now(),
        )
        _store_splits(expense, splits)

        deltas = expense_balance_deltas(
            paid_by_id=payer_id,
            total_amount=expense.total_amount,
            splits=splits,
        )
        apply_balance_deltas(group=group, deltas=deltas)

        logger.info(
            "Created expense %s in group %s: %s %s paid by %s, %s split among %d",
            expense.id, group.id, expense.total_amount, expense.currency,
            payer_id, resolved_type, len(splits)
        )
        return expense

    return run_with_conflict_retry(_create, description="expense creation")


def update_expense(
    *,
    expense_id: UUID,
    user: User,
    title: Optional[str] = None,
    description: Optional[str] = None,
    category: Optional[str] = None,
    date=None,
    total_amount=None,
    paid_by_id: Optional[UUID] = None,
    split_type: Optional[str] = None,
    participants: Optional[Sequence[SplitParticipant]] = None,
) -> Expense:
    """
    Edit an expense (payer or group admin).

    Metadata-only edits leave balances alone. When the amount, payer,
    split type or participants change, the old effect is reversed and the
    new one applied in the same transaction. Participants that are not
    passed are carried over from the stored splits.

    Raises:
        ExpenseNotFoundError: If expense doesn't exist
        InsufficientPermissionsError: If user is neither payer nor admin
        NotGroupMemberError: If the payer or a participant is not a member
        SplitValidationError: If the new split input is rejected
        ConcurrencyConflictError: If the balance write kept conflicting
    """
    def _update():
        group, expense = _lock_expense(expense_id)
        _ensure_can_modify(group, expense, user)

        update_fields = ['updated_at']

        if title is not None:
            expense.title = title
            update_fields.append('title')
        if description is not None:
            expense.description = description
            update_fields.append('description')
        if category is not None:
            expense.category = category
            update_fields.append('category')
        if date is not None:
            expense.date = date
            update_fields.append('date')

        affects_balances = any(
            value is not None
            for value in (total_amount, paid_by_id, split_type, participants)
        )

        if affects_balances:
            member_ids = group.member_ids()
            stored_splits = list(expense.splits.all())

            old_deltas = expense_balance_deltas(
                paid_by_id=expense.paid_by_id,
                total_amount=expense.total_amount,
                splits=stored_splits,
            )

            payer_id = expense.paid_by_id
            if paid_by_id is not None:
                payer_id = _as_user_id(paid_by_id, field='paid_by')
                if payer_id not in member_ids:
                    raise NotGroupMemberError(
                        "Payer is not a member of this group", field='paid_by'
                    )

            new_type = split_type or expense.split_type
            if participants is not None:
                new_participants = _normalize_participants(participants, member_ids)
            else:
                new_participants = [
                    SplitParticipant(
                        user_id=split.user_id,
                        percentage=split.percentage,
                        shares=split.shares,
                        amount=split.amount,
                    )
                    for split in stored_splits
                ]

            splits = compute_splits(
                total_amount=total_amount if total_amount is not None else expense.total_amount,
                currency=expense.currency,
                split_type=new_type,
                participants=new_participants,
            )

            expense.paid_by_id = payer_id
            expense.split_type = new_type
            expense.total_amount = sum((split.amount for split in splits))
            update_fields.extend(['paid_by', 'split_type', 'total_amount'])

            expense.splits.all().delete()
            _store_splits(expense, splits)

            new_deltas = expense_balance_deltas(
                paid_by_id=payer_id,
                total_amount=expense.total_amount,
                splits=splits,
            )
            apply_balance_deltas(
                group=group,
                deltas=merge_deltas(reverse_deltas(old_deltas), new_deltas),
            )

        expense.save(update_fields=update_fields)

        logger.info(
            "Updated expense %s in group %s (balances %s)",
            expense.id, group.id, 'recomputed' if affects_balances else 'unchanged'
        )
        return expense

    return run_with_conflict_retry(_update, description="expense update")


def delete_expense(*, expense_id: UUID, user: User) -> None:
    """
    Delete an expense (payer or group admin), reversing its balance effect.

    Raises:
        ExpenseNotFoundError: If expense doesn't exist
        InsufficientPermissionsError: If user is neither payer nor admin
        ConcurrencyConflictError: If the balance write kept conflicting
    """
    def _delete():
        group, expense = _lock_expense(expense_id)
        _ensure_can_modify(group, expense, user)

        deltas = expense_balance_deltas(
            paid_by_id=expense.paid_by_id,
            total_amount=expense.total_amount,
            splits=expense.splits.all(),
        )
        apply_balance_deltas(group=group, deltas=reverse_deltas(deltas))

        logger.info(
            "Deleted expense %s in group %s (%s %s)",
            expense.id, group.id, expense.total_amount, expense.currency
        )
        expense.delete()

    run_with_conflict_retry(_delete, description="expense deletion")


def get_expense_by_id(*, expense_id: UUID) -> Expense:
    """
    Raises:
        ExpenseNotFoundError: If expense doesn't exist
    """
    try:
        return (
            Expense.objects
            .select_related('group', 'paid_by')
            .prefetch_related('splits__user')
            .get(id=expense_id)
        )
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")


def get_group_expenses(
    *,
    group_id: UUID,
    category: Optional[str] = None
) -> QuerySet[Expense]:
    """
    List a group's expenses, newest first.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    queryset = (
        Expense.objects
        .filter(group_id=group_id)
        .select_related('paid_by')
        .prefetch_related('splits__user')
        .order_by('-date', '-created_at')
    )
    if category:
        queryset = queryset.filter(category=category)
    return queryset


def get_expense_categories() -> List[dict]:
    return [
        {'value': value, 'label': label}
        for value, label in ExpenseCategory.choices
    ]


def _lock_expense(expense_id):
    # Lock order is group first, then expense, the same as every other writer
    group_id = (
        Expense.objects
        .filter(id=expense_id)
        .values_list('group_id', flat=True)
        .first()
    )
    if group_id is None:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

    group = lock_group(group_id)
    try:
        expense = Expense.objects.select_for_update().get(id=expense_id)
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")
    return group, expense


def _ensure_member(user, member_ids):
    if user.id not in member_ids:
        raise InsufficientPermissionsError("You are not a member of this group")


def _ensure_can_modify(group, expense, user):
    if expense.paid_by_id != user.id and not group.is_admin(user):
        raise InsufficientPermissionsError(
            "Only the payer or a group admin can change this expense"
        )


def _resolve_currency(group, currency):
    expense_currency = normalize_currency(currency or group.currency)
    if expense_currency != group.currency:
        raise SplitValidationError(
            f"Expense currency {expense_currency} does not match group currency {group.currency}",
            field='currency',
            rule='currency_mismatch',
        )
    return expense_currency


def _resolve_participants(group, member_ids, split_type, participants):
    if participants is None:
        if split_type not in (None, SplitType.EQUAL):
            raise SplitValidationError(
                f"A {split_type} split needs an explicit participant list",
                field='participants',
                rule='participants_required',
            )
        return SplitType.EQUAL, [
            SplitParticipant(user_id=user_id) for user_id in member_ids
        ]

    return (
        split_type or group.default_split_type,
        _normalize_participants(participants, member_ids),
    )


def _normalize_participants(participants, member_ids):
    normalized = []
    for participant in participants:
        user_id = _as_user_id(participant.user_id, field='participants')
        if user_id not in member_ids:
            raise NotGroupMemberError(
                f"Participant {user_id} is not a member of this group",
                field='participants',
            )
        normalized.append(SplitParticipant(
            user_id=user_id,
            percentage=participant.percentage,
            shares=participant.shares,
            amount=participant.amount,
        ))
    return normalized


def _as_user_id(value, *, field):
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise SplitValidationError(
            f"Invalid user id: {value!r}", field=field, rule='invalid_user_id'
        )


def _store_splits(expense, splits):
    ExpenseSplit.objects.bulk_create([
        ExpenseSplit(
            expense=expense,
            user_id=split.user_id,
            amount=split.amount,
            percentage=split.percentage,
            shares=split.shares,
        )
        for split in splits
    ])
