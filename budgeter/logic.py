from dataclasses import replace
from datetime import date, datetime
from typing import Optional, List, Iterable

from budgeter.exceptions import ValidationError, NotFoundError
from budgeter.models import (
    Scope, Transaction, TransactionFields, TransactionTemplate, TransactionType,
    EXPENSE, EXPENSE_CATEGORIES, TRANSACTION_TYPES, new_id
)
from budgeter.periods import add_months, local_date, on_local_calendar


def validate_entry(
        description: str,
        amount: float,
        t_type: TransactionType,
        category: Optional[str] = None,
) -> None:
    if not description or not description.strip():
        raise ValidationError("Description must not be empty")
    if amount is None or amount <= 0:
        raise ValidationError("Amount must be positive")
    if t_type not in TRANSACTION_TYPES:
        raise ValidationError(f"Type must be one of: {', '.join(TRANSACTION_TYPES)}")
    if t_type == EXPENSE:
        if category is None:
            raise ValidationError("Expenses need a category")
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(f"Unknown category: {category}")


def find_transaction(ledger: Iterable[Transaction], transaction_id: str) -> Transaction:
    for t in ledger:
        if t.id == transaction_id:
            return t
    raise NotFoundError(f"Transaction {transaction_id} not found")


def series_members(ledger: Iterable[Transaction], series_id: str) -> List[Transaction]:
    return sorted((t for t in ledger if t.series_id == series_id), key=lambda t: t.t_date)


def with_calendar_date(original: datetime, new_date: date) -> datetime:
    """Move `original` to the local calendar day of `new_date`.

    The local time-of-day is kept and the result stays in the tzinfo of
    `original`.
    """
    day = local_date(new_date)
    return on_local_calendar(
        original,
        lambda wall: wall.replace(year=day.year, month=day.month, day=day.day)
    )


def expand_transaction(
        template: TransactionTemplate,
        occurrences: int = 0,
        policy: Optional[str] = None,
) -> List[Transaction]:
    """Materialize a template into `occurrences + 1` monthly transactions.

    With no occurrences the result is a single one-off transaction. Otherwise
    every instance shares a fresh series id and instance i is dated i months
    after the anchor.
    """
    if occurrences < 0:
        raise ValidationError("Occurrence count can't be negative")

    if occurrences == 0:
        return [Transaction(
            description=template.description,
            amount=template.amount,
            t_type=template.t_type,
            t_date=template.t_date,
            category=template.category,
        )]

    series_id = new_id()
    return [
        Transaction(
            description=template.description,
            amount=template.amount,
            t_type=template.t_type,
            t_date=add_months(template.t_date, i, policy),
            category=template.category,
            series_id=series_id,
        ) for i in range(occurrences + 1)
    ]


def _apply_fields(t: Transaction, fields: TransactionFields, t_date: datetime) -> Transaction:
    return replace(
        t,
        description=fields.description,
        amount=fields.amount,
        t_type=fields.t_type,
        category=fields.category,
        t_date=t_date,
    )


def edit_transaction(
        ledger: List[Transaction],
        edited_id: str,
        fields: TransactionFields,
        scope: Scope,
        policy: Optional[str] = None,
) -> List[Transaction]:
    """Return a new ledger with the edit applied.

    THIS_AND_FUTURE re-anchors the edited instance and every later member of
    its series onto the new date, one month apart, and gives them all the new
    field values. Earlier members and other records are left as they are.
    """
    original = find_transaction(ledger, edited_id)
    new_date = with_calendar_date(original.t_date, fields.t_date)

    if scope is not Scope.THIS_AND_FUTURE or original.series_id is None:
        return [_apply_fields(t, fields, new_date) if t.id == edited_id else t for t in ledger]

    cutoff = original.t_date
    tail = sorted(
        (t for t in ledger if t.series_id == original.series_id and t.t_date >= cutoff),
        key=lambda t: t.t_date
    )
    updated = {
        t.id: _apply_fields(t, fields, add_months(new_date, k, policy))
        for k, t in enumerate(tail)
    }
    return [updated.get(t.id, t) for t in ledger]


def delete_transaction(
        ledger: List[Transaction],
        transaction_id: str,
        series_id: Optional[str],
        scope: Scope,
) -> List[Transaction]:
    """Return a new ledger without the target, or without the target and its later series members."""
    if not isinstance(scope, Scope):
        raise ValueError("Delete scope must be resolved before deleting")
    target = find_transaction(ledger, transaction_id)

    if series_id is None or scope is Scope.THIS_ONLY:
        return [t for t in ledger if t.id != transaction_id]

    cutoff = target.t_date
    return [t for t in ledger if not (t.series_id == series_id and t.t_date >= cutoff)]
