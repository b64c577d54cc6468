"""
Khata services.

Customers, their give/get transactions and the running-balance ledger.
"""

from .exceptions import (
    KhataServiceError,
    CustomerNotFoundError,
    TransactionNotFoundError,
    KhataValidationError,
    InvalidKhataTransactionError,
    InvalidCustomerQueryError,
)
from .ledger import (
    balance_direction,
    current_balance,
    lock_customer,
    recompute_running_balances,
)
from .customer_management import (
    FILTER_TYPES,
    SORT_ORDERS,
    create_customer,
    update_customer,
    delete_customer,
    get_customer,
    get_customers,
    get_financial_summary,
)
from .transaction_management import (
    create_transaction,
    update_transaction,
    delete_transaction,
    get_transaction,
    get_customer_transactions,
)

__all__ = [
    # Exceptions
    'KhataServiceError',
    'CustomerNotFoundError',
    'TransactionNotFoundError',
    'KhataValidationError',
    'InvalidKhataTransactionError',
    'InvalidCustomerQueryError',
    # Ledger
    'balance_direction',
    'current_balance',
    'lock_customer',
    'recompute_running_balances',
    # Customers
    'FILTER_TYPES',
    'SORT_ORDERS',
    'create_customer',
    'update_customer',
    'delete_customer',
    'get_customer',
    'get_customers',
    'get_financial_summary',
    # Transactions
    'create_transaction',
    'update_transaction',
    'delete_transaction',
    'get_transaction',
    'get_customer_transactions',
]
