import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional
from dateutil.parser import isoparse

from budgeter import config
from budgeter.exceptions import PersistenceFailure
from budgeter.models import Budget, RecurringFlags, Transaction
from budgeter.periods import as_instant


logger = logging.getLogger(__name__)

TRANSACTIONS_FILE = "transactions.json"
BUDGETS_FILE = "budgets.json"


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, Transaction):
            return transaction_to_dict(obj)
        if isinstance(obj, Budget):
            return budget_to_dict(obj)
        return super().default(obj)


def transaction_to_dict(t: Transaction) -> dict:
    data = {
        "id": t.id,
        "description": t.description,
        "amount": t.amount,
        "type": t.t_type,
        "date": t.t_date,
    }
    if t.category is not None:
        data["category"] = t.category
    if t.series_id is not None:
        data["recurringId"] = t.series_id
    return data


def transaction_from_dict(data: dict) -> Transaction:
    return Transaction(
        id=data["id"],
        description=data["description"],
        amount=float(data["amount"]),
        t_type=data["type"],
        t_date=as_instant(isoparse(data["date"])),
        category=data.get("category"),
        series_id=data.get("recurringId"),
    )


def budget_to_dict(b: Budget) -> dict:
    recurring = {}
    if b.recurring.income_goal is not None:
        recurring["incomeGoal"] = b.recurring.income_goal
    if b.recurring.savings_goal is not None:
        recurring["savingsGoal"] = b.recurring.savings_goal
    if b.recurring.expense_budgets:
        recurring["expenseBudgets"] = dict(b.recurring.expense_budgets)
    return {
        "incomeGoal": b.income_goal,
        "savingsGoal": b.savings_goal,
        "expenseBudgets": dict(b.expense_budgets),
        "recurring": recurring,
    }


def budget_from_dict(data: dict) -> Budget:
    rec = data.get("recurring") or {}
    return Budget(
        income_goal=float(data.get("incomeGoal", 0)),
        savings_goal=float(data.get("savingsGoal", 0)),
        expense_budgets=data.get("expenseBudgets") or {},
        recurring=RecurringFlags(
            income_goal=rec.get("incomeGoal"),
            savings_goal=rec.get("savingsGoal"),
            expense_budgets=dict(rec.get("expenseBudgets") or {}),
        ),
    )


def list_save_files(save_dir: Optional[Path] = None) -> List[str]:
    target = save_dir or config.SAVES_DIR
    if not target.exists():
        return []
    return sorted(d.name for d in target.iterdir() if d.is_dir())


class JsonStore:
    """Whole-collection JSON store: one file per collection in a named save directory."""

    def __init__(self, save_name: Optional[str] = None, save_dir: Optional[Path] = None):
        self.save_name = save_name or config.SAVE_NAME
        self.path = (save_dir or config.SAVES_DIR) / self.save_name

    def _read(self, filename: str, default):
        filepath = self.path / filename
        if not filepath.exists():
            return default
        try:
            data = json.loads(filepath.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading %s: %s", filepath, e)
            return default
        if not isinstance(data, type(default)):
            logger.error("Unexpected content in %s", filepath)
            return default
        return data

    def _write(self, filename: str, payload) -> None:
        filepath = self.path / filename
        try:
            json_str = json.dumps(payload, cls=EnhancedJSONEncoder, indent=2)
            config.ensure_save_dir(self.path)
            filepath.write_text(json_str, encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Could not write {filepath}: {e}") from e

    def load_ledger(self) -> List[Transaction]:
        transactions = []
        for i, t_data in enumerate(self._read(TRANSACTIONS_FILE, [])):
            try:
                transactions.append(transaction_from_dict(t_data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid transaction #%d: %s", i, e)
        logger.info("Loaded %d transactions from '%s'", len(transactions), self.save_name)
        return transactions

    def save_ledger(self, transactions: List[Transaction]) -> None:
        self._write(TRANSACTIONS_FILE, list(transactions))
        logger.info("Saved %d transactions to '%s'", len(transactions), self.save_name)

    def load_budgets(self) -> Dict[str, Budget]:
        budgets = {}
        for key, b_data in self._read(BUDGETS_FILE, {}).items():
            try:
                budgets[key] = budget_from_dict(b_data)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Skipping invalid budget %s: %s", key, e)
        return budgets

    def save_budgets(self, budgets: Dict[str, Budget]) -> None:
        self._write(BUDGETS_FILE, dict(budgets))
        logger.info("Saved %d budgets to '%s'", len(budgets), self.save_name)
