"""
Domain-specific exceptions for khata services.
"""


class KhataServiceError(Exception):
    """Base exception for all khata service errors."""
    pass


class CustomerNotFoundError(KhataServiceError):
    """Raised when a customer does not exist or belongs to another user."""
    pass


class TransactionNotFoundError(KhataServiceError):
    """Raised when a transaction does not exist or belongs to another user."""
    pass


class KhataValidationError(KhataServiceError):
    """
    Raised when khata input is rejected.

    Attributes:
        field: Name of the offending input field.
    """

    def __init__(self, message, *, field='non_field_errors'):
        super().__init__(message)
        self.field = field


class InvalidKhataTransactionError(KhataValidationError):
    """Raised when a transaction's type, amount or currency is rejected."""
    pass


class InvalidCustomerQueryError(KhataValidationError):
    """Raised for unknown customer fields or listing filter/sort values."""
    pass
