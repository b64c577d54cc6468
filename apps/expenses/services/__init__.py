"""
Ledger engine services.

Pure calculators (split calculator, debt simplifier) live beside the
transactional services that store expenses, payments and balances.
"""

from .exceptions import (
    LedgerServiceError,
    SplitValidationError,
    GroupNotFoundError,
    ExpenseNotFoundError,
    PaymentNotFoundError,
    NotGroupMemberError,
    InvalidPaymentTransitionError,
    PaymentNotDeletableError,
    InsufficientPermissionsError,
    ConsistencyError,
    UnsettleableBalancesError,
    ConcurrencyConflictError,
)
from .split_calculator import (
    SplitParticipant,
    ComputedSplit,
    compute_splits,
    allocate_proportionally,
)
from .debt_simplifier import (
    Transfer,
    simplify_debts,
)
from .balance_accumulator import (
    expense_balance_deltas,
    payment_balance_deltas,
    apply_balance_deltas,
    run_with_conflict_retry,
)
from .expense_management import (
    create_expense,
    update_expense,
    delete_expense,
    get_expense_by_id,
    get_group_expenses,
    get_expense_categories,
)
from .payment_management import (
    create_payment,
    update_payment_status,
    delete_payment,
    get_payment_by_id,
    get_group_payments,
    get_user_payments,
    get_group_payment_stats,
)
from .balance_queries import (
    get_group_balances,
    get_user_net_balance,
    get_simplified_debts,
    get_group_balance_summary,
)
from .consistency import (
    ConsistencyReport,
    Discrepancy,
    replay_group_history,
    validate_group_balance_consistency,
    repair_group_balances,
)

__all__ = [
    # Exceptions
    'LedgerServiceError',
    'SplitValidationError',
    'GroupNotFoundError',
    'ExpenseNotFoundError',
    'PaymentNotFoundError',
    'NotGroupMemberError',
    'InvalidPaymentTransitionError',
    'PaymentNotDeletableError',
    'InsufficientPermissionsError',
    'ConsistencyError',
    'UnsettleableBalancesError',
    'ConcurrencyConflictError',
    # Split calculator
    'SplitParticipant',
    'ComputedSplit',
    'compute_splits',
    'allocate_proportionally',
    # Debt simplifier
    'Transfer',
    'simplify_debts',
    # Balance accumulator
    'expense_balance_deltas',
    'payment_balance_deltas',
    'apply_balance_deltas',
    'run_with_conflict_retry',
    # Expenses
    'create_expense',
    'update_expense',
    'delete_expense',
    'get_expense_by_id',
    'get_group_expenses',
    'get_expense_categories',
    # Payments
    'create_payment',
    'update_payment_status',
    'delete_payment',
    'get_payment_by_id',
    'get_group_payments',
    'get_user_payments',
    'get_group_payment_stats',
    # Balances
    'get_group_balances',
    'get_user_net_balance',
    'get_simplified_debts',
    'get_group_balance_summary',
    # Consistency
    'ConsistencyReport',
    'Discrepancy',
    'replay_group_history',
    'validate_group_balance_consistency',
    'repair_group_balances',
]
