from typing import Optional, Iterable, Dict, Any

from budgeter import config
from budgeter.models import Budget, Transaction, EXPENSE_CATEGORIES, INCOME, EXPENSE


def default_budget() -> Budget:
    return Budget(
        income_goal=config.DEFAULT_INCOME_GOAL,
        savings_goal=config.DEFAULT_SAVINGS_GOAL,
    )


def resolve_budget(current: Budget, previous: Optional[Budget]) -> Budget:
    """Draft budget to show for the current month.

    A budget that already carries recurring flags is returned as is. Otherwise
    every field the previous month marked recurring is carried over, and the
    previous month's flags come along with it.
    """
    if not current.recurring.is_empty():
        return current
    if previous is None or previous.recurring.is_empty():
        return current

    flags = previous.recurring
    expense_budgets = dict(current.expense_budgets)
    for cat, is_rec in flags.expense_budgets.items():
        if is_rec and cat in expense_budgets:
            expense_budgets[cat] = previous.expense_budgets[cat]

    return Budget(
        income_goal=previous.income_goal if flags.income_goal else current.income_goal,
        savings_goal=previous.savings_goal if flags.savings_goal else current.savings_goal,
        expense_budgets=expense_budgets,
        recurring=flags.copy(),
    )


def budget_allocation(budget: Budget) -> Dict[str, float]:
    """How the income goal splits between expense targets, savings and the remainder."""
    total_expenses = sum(budget.expense_budgets.values())
    if budget.income_goal <= 0:
        return {
            "total_expenses": total_expenses,
            "expenses_percent": 0.0,
            "savings_percent": 0.0,
            "remaining": 0.0,
        }
    return {
        "total_expenses": total_expenses,
        "expenses_percent": total_expenses / budget.income_goal * 100,
        "savings_percent": budget.savings_goal / budget.income_goal * 100,
        "remaining": budget.income_goal - total_expenses - budget.savings_goal,
    }


def monthly_summary(transactions: Iterable[Transaction], budget: Budget) -> Dict[str, Any]:
    """Actual-vs-budgeted figures for one month's transactions."""
    totals = {
        "income": 0.0,
        "expense": 0.0,
        "balance": 0.0,
    }

    categories = {
        cat: {
            "spent": 0.0,
            "budgeted": budget.expense_budgets[cat],
        } for cat in EXPENSE_CATEGORIES
    }

    for t in transactions:
        if t.t_type == INCOME:
            totals["income"] += t.amount
        elif t.t_type == EXPENSE:
            totals["expense"] += t.amount
            if t.category in categories:
                categories[t.category]["spent"] += t.amount

    totals["balance"] = totals["income"] - totals["expense"]

    for data in categories.values():
        data["remaining"] = data["budgeted"] - data["spent"]
        data["percent_used"] = data["spent"] / data["budgeted"] * 100 if data["budgeted"] > 0 else 0.0

    if budget.savings_goal > 0:
        savings_progress = max(0.0, totals["balance"] / budget.savings_goal * 100)
    else:
        savings_progress = 0.0

    return {
        "totals": totals,
        "budgeted_expenses": sum(budget.expense_budgets.values()),
        "categories": categories,
        "savings_goal": budget.savings_goal,
        "savings_progress": savings_progress,
    }
