import logging
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from budgeter import config
from budgeter.budget import default_budget, resolve_budget, monthly_summary, budget_allocation
from budgeter.exceptions import NotFoundError, PersistenceFailure
from budgeter.logic import (
    validate_entry, expand_transaction, edit_transaction, delete_transaction, find_transaction
)
from budgeter.models import Budget, Scope, Transaction, TransactionFields, TransactionTemplate
from budgeter.periods import as_instant, filter_by_month, month_key, previous_month_key, shift_month
from budgeter.storage import JsonStore


logger = logging.getLogger(__name__)


class Outcome(Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    NOT_PERSISTED = "not_persisted"


class BudgetApp:
    """Owns the ledger, the budget table and the month cursor.

    Every mutation replaces the affected collection and then writes the whole
    collection to the store. A failed write is logged and the in-memory state
    is kept.
    """

    def __init__(self, store: Optional[JsonStore] = None, today: Optional[datetime] = None,
                 policy: Optional[str] = None):
        self.store = store or JsonStore()
        self.policy = policy or config.MONTH_POLICY
        self.transactions: List[Transaction] = self.store.load_ledger()
        self.budgets: Dict[str, Budget] = self.store.load_budgets()
        self.current_date: datetime = as_instant(today or datetime.now()).astimezone()
        self.editing: Optional[Transaction] = None

    # ===== PERSISTENCE =====
    def _persist_ledger(self) -> Outcome:
        try:
            self.store.save_ledger(self.transactions)
        except PersistenceFailure as e:
            logger.error("Error saving transactions: %s", e)
            return Outcome.NOT_PERSISTED
        return Outcome.APPLIED

    def _persist_budgets(self) -> Outcome:
        try:
            self.store.save_budgets(self.budgets)
        except PersistenceFailure as e:
            logger.error("Error saving budgets: %s", e)
            return Outcome.NOT_PERSISTED
        return Outcome.APPLIED

    # ===== TRANSACTIONS =====
    def add_transaction(self, template: TransactionTemplate, recurrence: int = 0) -> Outcome:
        validate_entry(template.description, template.amount, template.t_type, template.category)
        template = replace(template, t_date=as_instant(template.t_date))
        new_transactions = expand_transaction(template, recurrence, self.policy)
        self.transactions = self.transactions + new_transactions
        logger.debug("Added %d transaction(s)", len(new_transactions))
        return self._persist_ledger()

    def start_editing(self, transaction_id: str) -> Transaction:
        self.editing = find_transaction(self.transactions, transaction_id)
        return self.editing

    def edit_transaction(self, transaction_id: str, fields: TransactionFields, scope: Scope) -> Outcome:
        validate_entry(fields.description, fields.amount, fields.t_type, fields.category)
        try:
            self.transactions = edit_transaction(self.transactions, transaction_id, fields, scope, self.policy)
        except NotFoundError as e:
            logger.warning("Edit skipped: %s", e)
            return Outcome.NOT_FOUND
        finally:
            self.editing = None
        return self._persist_ledger()

    def delete_transaction(self, transaction_id: str, series_id: Optional[str], scope: Scope) -> Outcome:
        try:
            self.transactions = delete_transaction(self.transactions, transaction_id, series_id, scope)
        except NotFoundError as e:
            logger.warning("Delete skipped: %s", e)
            return Outcome.NOT_FOUND
        return self._persist_ledger()

    # ===== BUDGETS =====
    def save_budget(self, budget: Budget) -> Outcome:
        budget.validate()
        self.budgets = {**self.budgets, self.month_key: budget}
        return self._persist_budgets()

    def current_budget(self) -> Budget:
        return self.budgets.get(self.month_key) or default_budget()

    def previous_budget(self) -> Optional[Budget]:
        return self.budgets.get(previous_month_key(self.current_date))

    def draft_budget(self) -> Budget:
        return resolve_budget(self.current_budget(), self.previous_budget())

    # ===== PERIOD =====
    @property
    def month_key(self) -> str:
        return month_key(self.current_date)

    def navigate_month(self, direction: Union[str, int]) -> str:
        self.current_date = shift_month(self.current_date, direction)
        return self.month_key

    def month_transactions(self) -> List[Transaction]:
        return filter_by_month(self.transactions, self.current_date)

    def summary(self) -> dict:
        result = monthly_summary(self.month_transactions(), self.current_budget())
        result["month"] = self.month_key
        result["allocation"] = budget_allocation(self.current_budget())
        return result
