"""
Membership management service.

Handles group membership operations with concurrency protection.
"""

from decimal import Decimal
from uuid import UUID

from django.db import transaction, IntegrityError
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.groups.models import Group, GroupMembership, GroupRole

from .exceptions import (
    GroupNotFoundError,
    UserNotFoundError,
    AlreadyMemberError,
    NotMemberError,
    CannotRemoveOwnerError,
    OutstandingBalanceError,
    InsufficientPermissionsError,
)


@transaction.atomic
def add_member(
    *,
    group_id: UUID,
    user_id: UUID,
    added_by: User,
    role: str = GroupRole.MEMBER
) -> GroupMembership:
    """
    Add a user to a group (admin only).

    The group row is locked so membership changes serialize with
    balance-affecting writes on the same group.

    Raises:
        GroupNotFoundError: If group doesn't exist
        UserNotFoundError: If the user doesn't exist
        InsufficientPermissionsError: If added_by is not admin
        AlreadyMemberError: If user is already a member
    """
    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.is_admin(added_by):
        raise InsufficientPermissionsError("Only group admins can add members")

    try:
        user = User.objects.get(id=user_id)
    except User.DoesNotExist:
        raise UserNotFoundError(f"User with ID {user_id} not found")

    if group.has_member(user):
        raise AlreadyMemberError(f"User is already a member of {group.name}")

    try:
        with transaction.atomic():
            membership = GroupMembership.objects.create(
                user=user,
                group=group,
                role=role
            )
    except IntegrityError:
        raise AlreadyMemberError(f"User is already a member of {group.name}")

    return membership


@transaction.atomic
def remove_member(
    *,
    group_id: UUID,
    user_id: UUID,
    removed_by: User
) -> None:
    """
    Remove a member from a group (admin only).

    A member whose balance in the group is not zero cannot be removed;
    dropping them would break the group's zero-sum balance.

    Raises:
        GroupNotFoundError: If group doesn't exist
        NotMemberError: If target user is not a member
        CannotRemoveOwnerError: If trying to remove the owner
        InsufficientPermissionsError: If removed_by is not admin
        OutstandingBalanceError: If the member still owes or is owed money
    """
    from apps.expenses.models import Balance

    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.is_admin(removed_by):
        raise InsufficientPermissionsError("Only group admins can remove members")

    if str(group.owner_id) == str(user_id):
        raise CannotRemoveOwnerError("Cannot remove the group owner")

    try:
        membership = (
            GroupMembership.objects
            .select_for_update()
            .get(group=group, user_id=user_id)
        )
    except GroupMembership.DoesNotExist:
        raise NotMemberError("User is not a member of this group")

    balance = (
        Balance.objects
        .filter(group=group, user_id=user_id)
        .values_list('balance', flat=True)
        .first()
    )
    if balance is not None and balance != Decimal('0.00'):
        raise OutstandingBalanceError(
            f"Member has an unsettled balance of {balance} {group.currency}"
        )

    membership.delete()
    Balance.objects.filter(group=group, user_id=user_id).delete()


def get_group_members(*, group_id: UUID) -> QuerySet[GroupMembership]:
    """
    Get all members of a group with optimized queries.

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    return (
        GroupMembership.objects
        .filter(group_id=group_id)
        .select_related('user')
        .order_by('-role', 'joined_at')
    )
