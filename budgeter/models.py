from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Literal

from budgeter.exceptions import ValidationError


TransactionType = Literal["INCOME", "EXPENSE"]
INCOME: TransactionType = "INCOME"
EXPENSE: TransactionType = "EXPENSE"
TRANSACTION_TYPES = (INCOME, EXPENSE)

EXPENSE_CATEGORIES = (
    "Groceries",
    "Utilities",
    "Rent",
    "Transportation",
    "Entertainment",
    "Healthcare",
    "Dining Out",
    "Shopping",
    "Other",
)


class Scope(Enum):
    THIS_ONLY = "this"
    THIS_AND_FUTURE = "future"


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class TransactionTemplate:
    """Fields the user enters for a transaction.

    For a new entry `t_date` is the anchor date; for an edit only its calendar
    day is used.
    """
    description: str
    amount: float
    t_type: TransactionType
    t_date: datetime
    category: Optional[str] = None


TransactionFields = TransactionTemplate


@dataclass
class Transaction:
    description: str
    amount: float
    t_type: TransactionType
    t_date: datetime
    category: Optional[str] = None
    series_id: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if self.t_type == INCOME:
            self.category = None

    @property
    def is_rec(self) -> bool:
        return self.series_id is not None


def _zero_budgets() -> Dict[str, float]:
    return {cat: 0.0 for cat in EXPENSE_CATEGORIES}


@dataclass
class RecurringFlags:
    income_goal: Optional[bool] = None
    savings_goal: Optional[bool] = None
    expense_budgets: Dict[str, bool] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return (self.income_goal is None and
                self.savings_goal is None and
                not self.expense_budgets)

    def copy(self) -> RecurringFlags:
        return RecurringFlags(self.income_goal, self.savings_goal, dict(self.expense_budgets))


@dataclass
class Budget:
    income_goal: float = 0.0
    savings_goal: float = 0.0
    expense_budgets: Dict[str, float] = field(default_factory=_zero_budgets)
    recurring: RecurringFlags = field(default_factory=RecurringFlags)

    def __post_init__(self):
        unknown = set(self.expense_budgets) - set(EXPENSE_CATEGORIES)
        if unknown:
            raise ValidationError(f"Unknown expense categories: {', '.join(sorted(unknown))}")
        # every category carries a target
        self.expense_budgets = {
            cat: float(self.expense_budgets.get(cat, 0.0)) for cat in EXPENSE_CATEGORIES
        }
        self.validate()

    def validate(self) -> None:
        if self.income_goal < 0 or self.savings_goal < 0:
            raise ValidationError("Budget goals can't be negative")
        negative = [cat for cat, amount in self.expense_budgets.items() if amount < 0]
        if negative:
            raise ValidationError(f"Negative budget for: {', '.join(negative)}")
