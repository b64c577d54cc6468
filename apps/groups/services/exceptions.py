"""
Domain-specific exceptions for groups app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class GroupsServiceError(Exception):
    """Base exception for all groups service errors."""
    pass


class GroupNotFoundError(GroupsServiceError):
    """Raised when a group does not exist or is inaccessible."""
    pass


class UserNotFoundError(GroupsServiceError):
    """Raised when the user to add does not exist."""
    pass


class AlreadyMemberError(GroupsServiceError):
    """Raised when a user is added to a group they're already in."""
    pass


class NotMemberError(GroupsServiceError):
    """Raised when a user tries to perform an action requiring membership."""
    pass


class CannotRemoveOwnerError(GroupsServiceError):
    """Raised when attempting to remove the group owner."""
    pass


class OutstandingBalanceError(GroupsServiceError):
    """Raised when removing a member whose group balance is not settled."""
    pass


class UnsupportedCurrencyError(GroupsServiceError):
    """Raised when a group is created with a currency the ledger does not handle."""
    pass


class InsufficientPermissionsError(GroupsServiceError):
    """Raised when a user lacks required permissions for an action."""
    pass
