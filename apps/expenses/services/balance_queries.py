"""
Read-only balance queries.

All figures come from the stored Balance rows maintained by the
accumulator. Members without a row are reported with a zero balance.
"""

from decimal import Decimal
from typing import List
from uuid import UUID

from django.db.models import Sum

from apps.accounts.models import User
from apps.expenses.models import Balance, Expense
from apps.groups.models import Group, GroupMembership

from .debt_simplifier import simplify_debts
from .exceptions import GroupNotFoundError
from .money import ZERO


def _get_group(group_id) -> Group:
    try:
        return Group.objects.get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")


def get_group_balances(*, group_id: UUID) -> List[dict]:
    """
    Every member's balance in the group, highest first.

    Each entry has ``user_id``, ``user``, ``display_name`` and
    ``balance``. Users who left with a settled balance but still have a
    row are omitted.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    group = _get_group(group_id)

    stored = dict(
        Balance.objects
        .filter(group=group)
        .values_list('user_id', 'balance')
    )
    members = [
        membership.user
        for membership in (
            GroupMembership.objects
            .filter(group=group)
            .select_related('user')
        )
    ]
    member_ids = {member.id for member in members}

    # Anyone still holding a non-zero row is reported even after leaving
    orphan_ids = [
        user_id for user_id, balance in stored.items()
        if user_id not in member_ids and balance != ZERO
    ]
    users = members + list(User.objects.filter(id__in=orphan_ids))

    balances = [
        {
            'user_id': user.id,
            'user': user,
            'display_name': user.get_display_name(),
            'balance': stored.get(user.id, ZERO),
        }
        for user in users
    ]
    balances.sort(key=lambda entry: (-entry['balance'], str(entry['user_id'])))
    return balances


def get_user_net_balance(*, user: User) -> dict:
    """
    A user's position aggregated over all their groups.

    Returns:
        dict with ``total_owed`` (what others owe the user), ``total_owing``
        (what the user owes, as a positive number), ``net_balance`` and
        ``group_count`` (groups with a non-zero balance).
    """
    balances = list(
        Balance.objects
        .filter(user=user)
        .exclude(balance=ZERO)
        .values_list('balance', flat=True)
    )
    total_owed = sum((b for b in balances if b > 0), ZERO)
    total_owing = sum((-b for b in balances if b < 0), ZERO)

    return {
        'total_owed': total_owed,
        'total_owing': total_owing,
        'net_balance': total_owed - total_owing,
        'group_count': len(balances),
    }


def get_simplified_debts(*, group_id: UUID) -> List[dict]:
    """
    Settlement transfers for the group's current balances.

    Raises:
        GroupNotFoundError: If group doesn't exist
        UnsettleableBalancesError: If the stored balances do not sum to zero
    """
    balances = get_group_balances(group_id=group_id)
    users = {entry['user_id']: entry['user'] for entry in balances}

    transfers = simplify_debts(
        (entry['user_id'], entry['balance']) for entry in balances
    )

    return [
        {
            'from_user': users[transfer.from_user_id],
            'to_user': users[transfer.to_user_id],
            'amount': transfer.amount,
        }
        for transfer in transfers
    ]


def get_group_balance_summary(*, group_id: UUID) -> dict:
    """
    Balances, settlement plan and totals of a group in one call.

    Raises:
        GroupNotFoundError: If group doesn't exist
        UnsettleableBalancesError: If the stored balances do not sum to zero
    """
    group = _get_group(group_id)
    balances = get_group_balances(group_id=group.id)

    total_expenses = (
        Expense.objects
        .filter(group=group)
        .aggregate(total=Sum('total_amount'))['total']
    ) or Decimal('0.00')

    return {
        'group_id': group.id,
        'currency': group.currency,
        'total_expenses': total_expenses,
        'total_members': GroupMembership.objects.filter(group=group).count(),
        'total_owed': sum((e['balance'] for e in balances if e['balance'] > 0), ZERO),
        'total_owing': sum((-e['balance'] for e in balances if e['balance'] < 0), ZERO),
        'balances': balances,
        'simplified_debts': get_simplified_debts(group_id=group.id),
    }
