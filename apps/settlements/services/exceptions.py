"""
Domain-specific exceptions for the settlements app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class SettlementsServiceError(Exception):
    """Base exception for all settlements service errors."""
    pass


# -----------------------------------------------------------------------------
# Engine errors
# -----------------------------------------------------------------------------

class RecalculationCancelledError(SettlementsServiceError):
    """Raised when a recomputation is cancelled before it commits."""
    pass


class UnbalancedLedgerError(SettlementsServiceError):
    """Raised when member balances do not net to zero (corrupt shares)."""
    pass


class ExpenseGroupMismatchError(SettlementsServiceError):
    """Raised when an expense snapshot belongs to another group."""
    pass


# -----------------------------------------------------------------------------
# Expense ledger errors
# -----------------------------------------------------------------------------

class InvalidSplitError(SettlementsServiceError):
    """Raised when beneficiary shares cannot represent the expense amount."""
    pass


class ExpenseNotFoundError(SettlementsServiceError):
    """Raised when an expense does not exist in the given group."""
    pass


class GroupNotFoundError(SettlementsServiceError):
    """Raised when a group does not exist."""
    pass


class NotGroupMemberError(SettlementsServiceError):
    """Raised when a user involved in an operation is not a group member."""
    pass


class InsufficientPermissionsError(SettlementsServiceError):
    """Raised when a user lacks required permissions for an action."""
    pass


# -----------------------------------------------------------------------------
# Settlement store errors
# -----------------------------------------------------------------------------

class SettlementNotFoundError(SettlementsServiceError):
    """Raised when a settlement does not exist in the given group."""
    pass


class SettlementAlreadyPaidError(SettlementsServiceError):
    """Raised when marking an already paid settlement as paid."""
    pass
