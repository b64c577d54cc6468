"""
Domain-specific exceptions for the ledger engine.

Validation errors are raised before any balance row is touched.
Consistency and concurrency errors carry full detail for the logs;
views present them to end users as a generic retry message.
"""


class LedgerServiceError(Exception):
    """Base exception for all ledger service errors."""
    pass


class SplitValidationError(LedgerServiceError):
    """
    Raised when expense or payment input violates a split rule.

    Attributes:
        field: Name of the offending input field.
        rule: Short machine-readable name of the violated rule.
    """

    def __init__(self, message, *, field='splits', rule='invalid'):
        super().__init__(message)
        self.field = field
        self.rule = rule


class GroupNotFoundError(LedgerServiceError):
    """Raised when the expense's or payment's group does not exist."""
    pass


class ExpenseNotFoundError(LedgerServiceError):
    """Raised when an expense does not exist."""
    pass


class PaymentNotFoundError(LedgerServiceError):
    """Raised when a payment does not exist."""
    pass


class NotGroupMemberError(LedgerServiceError):
    """Raised when a payer, participant or payment party is not in the group."""

    def __init__(self, message, *, field='user_id'):
        super().__init__(message)
        self.field = field


class InvalidPaymentTransitionError(LedgerServiceError):
    """Raised for a payment status change the lifecycle does not allow."""
    pass


class PaymentNotDeletableError(LedgerServiceError):
    """Raised when deleting a payment that is no longer pending."""
    pass


class InsufficientPermissionsError(LedgerServiceError):
    """Raised when a user lacks required permissions for an action."""
    pass


class ConsistencyError(LedgerServiceError):
    """Raised when stored balances disagree with the replayed history."""
    pass


class UnsettleableBalancesError(ConsistencyError):
    """Raised when balances handed to the simplifier do not sum to zero."""
    pass


class ConcurrencyConflictError(LedgerServiceError):
    """Raised when a balance write keeps conflicting after the retry budget."""
    pass
