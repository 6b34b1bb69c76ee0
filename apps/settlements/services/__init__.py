"""
Settlements app services layer.

Services contain business logic and orchestrate operations across models.
Expense mutations recompute the group's settlements in the same transaction.
"""

from .exceptions import (
    SettlementsServiceError,
    RecalculationCancelledError,
    UnbalancedLedgerError,
    ExpenseGroupMismatchError,
    InvalidSplitError,
    ExpenseNotFoundError,
    GroupNotFoundError,
    NotGroupMemberError,
    InsufficientPermissionsError,
    SettlementNotFoundError,
    SettlementAlreadyPaidError,
)

from .cancellation import CancellationToken

from .engine import (
    SettlementEngine,
    recalculate_settlements,
    recalculate_settlements_for_expense_change,
    recalculate_settlements_for_expense_edit,
)

from .expense_management import (
    create_expense,
    update_expense,
    delete_expense,
    get_expense_by_id,
    get_group_expenses,
)

from .settlement_management import (
    mark_settlement_paid,
    get_settlement_by_id,
    get_group_settlements,
    get_user_settlements,
    get_user_credits,
    get_group_balances,
)


__all__ = [
    # Exceptions
    'SettlementsServiceError',
    'RecalculationCancelledError',
    'UnbalancedLedgerError',
    'ExpenseGroupMismatchError',
    'InvalidSplitError',
    'ExpenseNotFoundError',
    'GroupNotFoundError',
    'NotGroupMemberError',
    'InsufficientPermissionsError',
    'SettlementNotFoundError',
    'SettlementAlreadyPaidError',

    # Engine
    'CancellationToken',
    'SettlementEngine',
    'recalculate_settlements',
    'recalculate_settlements_for_expense_change',
    'recalculate_settlements_for_expense_edit',

    # Expense ledger
    'create_expense',
    'update_expense',
    'delete_expense',
    'get_expense_by_id',
    'get_group_expenses',

    # Settlement store
    'mark_settlement_paid',
    'get_settlement_by_id',
    'get_group_settlements',
    'get_user_settlements',
    'get_user_credits',
    'get_group_balances',
]
