"""
Group management service.

Handles group CRUD operations with proper transaction safety.
"""

from typing import Optional
from uuid import UUID

from django.db import transaction
from django.db.models import Prefetch

from apps.accounts.models import User
from apps.expenses.services.money import is_supported_currency, normalize_currency
from apps.groups.models import Group, GroupMembership, GroupRole

from .exceptions import (
    GroupNotFoundError,
    InsufficientPermissionsError,
    UnsupportedCurrencyError,
)


@transaction.atomic
def create_group(
    *,
    name: str,
    owner: User,
    description: str = '',
    currency: Optional[str] = None,
    default_split_type: Optional[str] = None,
) -> Group:
    """
    Create a new group and add the creator as owner.

    Args:
        name: Group name
        owner: User who will own the group
        description: Optional group description
        currency: ISO currency code; falls back to the owner's preferred currency
        default_split_type: Split policy used when an expense names none

    Returns:
        Created Group instance

    Raises:
        UnsupportedCurrencyError: If the currency is not handled by the ledger
    """
    currency = normalize_currency(currency or owner.preferred_currency)
    if not is_supported_currency(currency):
        raise UnsupportedCurrencyError(f"Currency {currency} is not supported")

    fields = {
        'name': name,
        'owner': owner,
        'description': description,
        'currency': currency,
    }
    if default_split_type:
        fields['default_split_type'] = default_split_type

    group = Group.objects.create(**fields)

    GroupMembership.objects.create(
        user=owner,
        group=group,
        role=GroupRole.OWNER
    )

    return group


def get_group_by_id(*, group_id: UUID) -> Group:
    """
    Get a group by ID with its memberships prefetched.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    try:
        return (
            Group.objects
            .select_related('owner')
            .prefetch_related(
                Prefetch(
                    'memberships',
                    queryset=GroupMembership.objects.select_related('user')
                )
            )
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")


@transaction.atomic
def update_group(
    *,
    group_id: UUID,
    user: User,
    name: Optional[str] = None,
    description: Optional[str] = None,
    default_split_type: Optional[str] = None
) -> Group:
    """
    Update group details (admin only).

    The currency is fixed at creation; stored balances are denominated in it.

    Raises:
        GroupNotFoundError: If group doesn't exist
        InsufficientPermissionsError: If user is not admin
    """
    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.is_admin(user):
        raise InsufficientPermissionsError("Only group admins can update the group")

    update_fields = ['updated_at']

    if name is not None:
        group.name = name
        update_fields.append('name')

    if description is not None:
        group.description = description
        update_fields.append('description')

    if default_split_type is not None:
        group.default_split_type = default_split_type
        update_fields.append('default_split_type')

    group.save(update_fields=update_fields)

    return group


@transaction.atomic
def delete_group(*, group_id: UUID, user: User) -> None:
    """
    Delete a group (owner only).

    Cascading deletes remove memberships, expenses, splits, payments
    and balance rows together, so no orphaned balance survives.

    Raises:
        GroupNotFoundError: If group doesn't exist
        InsufficientPermissionsError: If user is not the owner
    """
    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if group.owner != user:
        raise InsufficientPermissionsError("Only the group owner can delete the group")

    group.delete()
