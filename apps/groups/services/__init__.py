"""
Groups app services layer.

Services contain business logic and orchestrate operations across models.
All state-changing operations use transactions and concurrency protection.
"""

from .exceptions import (
    GroupsServiceError,
    GroupNotFoundError,
    UserNotFoundError,
    AlreadyMemberError,
    NotMemberError,
    CannotRemoveOwnerError,
    OutstandingBalanceError,
    UnsupportedCurrencyError,
    InsufficientPermissionsError,
)

from .group_management import (
    create_group,
    update_group,
    delete_group,
    get_group_by_id,
)

from .membership_management import (
    add_member,
    remove_member,
    get_group_members,
)


__all__ = [
    # Exceptions
    'GroupsServiceError',
    'GroupNotFoundError',
    'UserNotFoundError',
    'AlreadyMemberError',
    'NotMemberError',
    'CannotRemoveOwnerError',
    'OutstandingBalanceError',
    'UnsupportedCurrencyError',
    'InsufficientPermissionsError',

    # Group Management
    'create_group',
    'update_group',
    'delete_group',
    'get_group_by_id',

    # Membership Management
    'add_member',
    'remove_member',
    'get_group_members',
]
