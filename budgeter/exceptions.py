class BudgetError(Exception):
    """Base class for budgeter errors."""


class ValidationError(BudgetError, ValueError):
    """Invalid entry data, rejected before any mutation."""


class NotFoundError(BudgetError, LookupError):
    """Referenced transaction id is not in the ledger."""


class PersistenceFailure(BudgetError):
    """The store could not write a collection."""
