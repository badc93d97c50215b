import unittest
import io
import json
import os
import tempfile
import time
from contextlib import redirect_stdout
from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import patch

from budgeter.cli import BudgetCLI
from budgeter.budget import default_budget, resolve_budget, budget_allocation, monthly_summary
from budgeter.exceptions import ValidationError, NotFoundError, PersistenceFailure
from budgeter.logic import (
    validate_entry, expand_transaction, edit_transaction, delete_transaction,
    series_members, with_calendar_date
)
from budgeter.models import (
    Budget, RecurringFlags, Scope, Transaction, TransactionFields, TransactionTemplate,
    EXPENSE, EXPENSE_CATEGORIES, INCOME
)
from budgeter.periods import (
    add_months, month_key, previous_month_key, shift_month, filter_by_month
)
from budgeter.state import BudgetApp, Outcome
from budgeter.storage import JsonStore, list_save_files


def rent_template(t_date=datetime(2024, 1, 1)):
    return TransactionTemplate(
        description="Rent",
        amount=1200.0,
        t_type=EXPENSE,
        t_date=t_date,
        category="Rent",
    )


def local(*args):
    return datetime(*args).astimezone()


def rent_fields(t_date, amount=1300.0):
    return TransactionFields(
        description="New rent",
        amount=amount,
        t_type=EXPENSE,
        t_date=t_date,
        category="Rent",
    )


class TestModels(unittest.TestCase):
    def test_transaction_creation(self):
        """Test Transaction dataclass"""
        trans = Transaction(
            description="Electric bill",
            amount=100.0,
            t_type=EXPENSE,
            t_date=datetime(2023, 1, 15),
            category="Utilities",
        )
        self.assertEqual(trans.amount, 100.0)
        self.assertEqual(trans.category, "Utilities")
        self.assertIsNone(trans.series_id)
        self.assertFalse(trans.is_rec)
        self.assertTrue(trans.id)

    def test_ids_are_unique(self):
        a = Transaction("a", 1.0, INCOME, datetime(2024, 1, 1))
        b = Transaction("a", 1.0, INCOME, datetime(2024, 1, 1))
        self.assertNotEqual(a.id, b.id)

    def test_income_has_no_category(self):
        trans = Transaction("Salary", 5000.0, INCOME, datetime(2024, 1, 1), category="Rent")
        self.assertIsNone(trans.category)

    def test_budget_covers_every_category(self):
        budget = Budget(expense_budgets={"Rent": 1200})
        self.assertEqual(set(budget.expense_budgets), set(EXPENSE_CATEGORIES))
        self.assertEqual(budget.expense_budgets["Rent"], 1200.0)
        self.assertEqual(budget.expense_budgets["Groceries"], 0.0)
        self.assertTrue(budget.recurring.is_empty())

    def test_budget_rejects_unknown_category(self):
        with self.assertRaises(ValueError):
            Budget(expense_budgets={"Yachts": 10})

    def test_budget_rejects_negative_values(self):
        with self.assertRaises(ValidationError):
            Budget(income_goal=-1.0)
        with self.assertRaises(ValidationError):
            Budget(expense_budgets={"Rent": -50.0})

        budget = Budget()
        budget.savings_goal = -10.0
        with self.assertRaises(ValidationError):
            budget.validate()

    def test_recurring_flags_with_false_value_are_not_empty(self):
        self.assertFalse(RecurringFlags(income_goal=False).is_empty())
        self.assertFalse(RecurringFlags(expense_budgets={"Rent": False}).is_empty())


class TestValidation(unittest.TestCase):
    def test_valid_entries(self):
        validate_entry("Salary", 10.0, INCOME)
        validate_entry("Food", 10.0, EXPENSE, "Groceries")

    def test_invalid_entries(self):
        cases = [
            ("", 10.0, INCOME, None),
            ("   ", 10.0, INCOME, None),
            ("Salary", 0.0, INCOME, None),
            ("Salary", -5.0, INCOME, None),
            ("Salary", 10.0, "TRANSFER", None),
            ("Food", 10.0, EXPENSE, None),
            ("Food", 10.0, EXPENSE, "Yachts"),
        ]
        for description, amount, t_type, category in cases:
            with self.subTest(description=description, amount=amount, t_type=t_type, category=category):
                with self.assertRaises(ValidationError):
                    validate_entry(description, amount, t_type, category)


class TestExpand(unittest.TestCase):
    def test_single_transaction(self):
        result = expand_transaction(rent_template(), 0)
        self.assertEqual(len(result), 1)
        self.assertIsNone(result[0].series_id)
        self.assertEqual(result[0].t_date, datetime(2024, 1, 1))

    def test_expansion_count_and_series(self):
        for n in range(1, 6):
            with self.subTest(n=n):
                result = expand_transaction(rent_template(), n)
                self.assertEqual(len(result), n + 1)
                self.assertEqual(len({t.series_id for t in result}), 1)
                self.assertIsNotNone(result[0].series_id)
                self.assertEqual(len({t.id for t in result}), n + 1)

    def test_month_spacing(self):
        anchor = datetime(2024, 11, 20, 8, 30)
        result = expand_transaction(rent_template(anchor), 4)
        for i, t in enumerate(result):
            month_index = t.t_date.year * 12 + t.t_date.month
            self.assertEqual(month_index, anchor.year * 12 + anchor.month + i)
            self.assertEqual(t.t_date.day, 20)
            self.assertEqual(t.t_date.time(), anchor.time())

    def test_scenario_monthly_rent(self):
        result = expand_transaction(rent_template(), 2)
        self.assertEqual(
            [t.t_date for t in result],
            [datetime(2024, 1, 1), datetime(2024, 2, 1), datetime(2024, 3, 1)]
        )
        for t in result:
            self.assertEqual(t.amount, 1200.0)
            self.assertEqual(t.category, "Rent")
            self.assertEqual(t.description, "Rent")

    def test_separate_series_get_separate_ids(self):
        a = expand_transaction(rent_template(), 2)
        b = expand_transaction(rent_template(), 2)
        self.assertNotEqual(a[0].series_id, b[0].series_id)

    def test_negative_count(self):
        with self.assertRaises(ValidationError):
            expand_transaction(rent_template(), -1)

    def test_end_of_month_anchor(self):
        clamped = expand_transaction(rent_template(datetime(2024, 1, 31)), 2, policy="clamp")
        self.assertEqual(
            [t.t_date.date() for t in clamped],
            [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]
        )
        overflowed = expand_transaction(rent_template(datetime(2024, 1, 31)), 1, policy="overflow")
        self.assertEqual(overflowed[1].t_date.date(), date(2024, 3, 2))


class TestEdit(unittest.TestCase):
    def setUp(self):
        self.other = Transaction("Coffee", 4.0, EXPENSE, datetime(2024, 2, 3), category="Dining Out")
        self.series = expand_transaction(rent_template(), 2)
        self.ledger = [self.series[0], self.other, self.series[2], self.series[1]]

    def test_future_edit_reanchors_tail(self):
        edited = self.series[1]
        result = edit_transaction(self.ledger, edited.id, rent_fields(datetime(2024, 2, 15)), Scope.THIS_AND_FUTURE)

        by_id = {t.id: t for t in result}
        self.assertEqual(by_id[self.series[0].id].t_date, datetime(2024, 1, 1))
        self.assertEqual(by_id[self.series[1].id].t_date, datetime(2024, 2, 15))
        self.assertEqual(by_id[self.series[2].id].t_date, datetime(2024, 3, 15))

        self.assertEqual(by_id[self.series[0].id].amount, 1200.0)
        self.assertEqual(by_id[self.series[1].id].amount, 1300.0)
        self.assertEqual(by_id[self.series[2].id].description, "New rent")
        self.assertEqual(by_id[self.series[2].id].series_id, self.series[0].series_id)

    def test_future_edit_leaves_other_records_and_order(self):
        result = edit_transaction(self.ledger, self.series[1].id, rent_fields(datetime(2024, 2, 15)), Scope.THIS_AND_FUTURE)
        self.assertEqual([t.id for t in result], [t.id for t in self.ledger])
        self.assertIs(result[1], self.other)
        self.assertIs(result[0], self.series[0])

    def test_future_edit_even_spacing(self):
        series = expand_transaction(rent_template(), 5)
        result = edit_transaction(series, series[2].id, rent_fields(datetime(2024, 4, 10)), Scope.THIS_AND_FUTURE)
        tail = series_members(result, series[0].series_id)[2:]
        self.assertEqual(
            [t.t_date for t in tail],
            [datetime(2024, 4, 10), datetime(2024, 5, 10), datetime(2024, 6, 10), datetime(2024, 7, 10)]
        )

    def test_future_edit_from_first_moves_whole_series(self):
        result = edit_transaction(self.ledger, self.series[0].id, rent_fields(datetime(2023, 12, 28)), Scope.THIS_AND_FUTURE)
        dates = [t.t_date for t in series_members(result, self.series[0].series_id)]
        self.assertEqual(dates, [datetime(2023, 12, 28), datetime(2024, 1, 28), datetime(2024, 2, 28)])

    def test_this_only_edit(self):
        edited = self.series[1]
        result = edit_transaction(self.ledger, edited.id, rent_fields(datetime(2024, 2, 15)), Scope.THIS_ONLY)
        by_id = {t.id: t for t in result}
        self.assertEqual(by_id[edited.id].t_date, datetime(2024, 2, 15))
        self.assertEqual(by_id[edited.id].amount, 1300.0)
        self.assertEqual(by_id[edited.id].series_id, edited.series_id)
        self.assertEqual(by_id[self.series[2].id].t_date, datetime(2024, 3, 1))
        self.assertEqual(by_id[self.series[2].id].amount, 1200.0)

    def test_future_scope_on_one_off_edits_only_that_record(self):
        result = edit_transaction(self.ledger, self.other.id, rent_fields(datetime(2024, 2, 9), amount=5.0), Scope.THIS_AND_FUTURE)
        by_id = {t.id: t for t in result}
        self.assertEqual(by_id[self.other.id].amount, 5.0)
        self.assertEqual(by_id[self.series[1].id].amount, 1200.0)

    def test_edit_keeps_time_of_day(self):
        ledger = expand_transaction(rent_template(datetime(2024, 1, 5, 22, 45)), 1)
        result = edit_transaction(ledger, ledger[0].id, rent_fields(datetime(2024, 1, 9)), Scope.THIS_AND_FUTURE)
        self.assertEqual(result[0].t_date, datetime(2024, 1, 9, 22, 45))
        self.assertEqual(result[1].t_date, datetime(2024, 2, 9, 22, 45))

    def test_future_edit_onto_month_end(self):
        expected = {
            "clamp": [datetime(2024, 1, 31), datetime(2024, 2, 29), datetime(2024, 3, 31)],
            "overflow": [datetime(2024, 1, 31), datetime(2024, 3, 2), datetime(2024, 3, 31)],
        }
        for policy, dates in expected.items():
            with self.subTest(policy=policy):
                result = edit_transaction(
                    self.ledger, self.series[0].id, rent_fields(datetime(2024, 1, 31)),
                    Scope.THIS_AND_FUTURE, policy=policy
                )
                self.assertEqual([t.t_date for t in series_members(result, self.series[0].series_id)], dates)

    def test_edit_to_income_drops_category(self):
        fields = TransactionFields("Refund", 20.0, INCOME, datetime(2024, 2, 3), category="Dining Out")
        result = edit_transaction(self.ledger, self.other.id, fields, Scope.THIS_ONLY)
        self.assertIsNone(result[1].category)
        self.assertEqual(result[1].t_type, INCOME)

    def test_edit_missing_id(self):
        with self.assertRaises(NotFoundError):
            edit_transaction(self.ledger, "missing", rent_fields(datetime(2024, 2, 1)), Scope.THIS_ONLY)

    def test_with_calendar_date(self):
        original = datetime(2024, 3, 31, 23, 0)
        self.assertEqual(with_calendar_date(original, date(2024, 2, 29)), datetime(2024, 2, 29, 23, 0))


@unittest.skipUnless(hasattr(time, "tzset"), "needs time.tzset")
class TestLocalCalendar(unittest.TestCase):
    """Calendar changes on stored UTC instants follow the local calendar."""

    def setUp(self):
        self._tz = os.environ.get("TZ")
        os.environ["TZ"] = "Asia/Jerusalem"
        time.tzset()

    def tearDown(self):
        if self._tz is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = self._tz
        time.tzset()

    def test_day_edit_lands_on_local_day(self):
        # local 2024-02-01 00:00 +02:00
        stored = Transaction("Rent", 1200.0, EXPENSE, datetime(2024, 1, 31, 22, tzinfo=timezone.utc), category="Rent")
        self.assertEqual(filter_by_month([stored], date(2024, 2, 1)), [stored])

        result = edit_transaction([stored], stored.id, rent_fields(date(2024, 2, 15)), Scope.THIS_ONLY)
        edited = result[0].t_date
        self.assertEqual(edited.astimezone().date(), date(2024, 2, 15))
        self.assertEqual(edited.astimezone().hour, 0)
        self.assertEqual(edited, datetime(2024, 2, 14, 22, tzinfo=timezone.utc))
        self.assertEqual(edited.utcoffset(), timezone.utc.utcoffset(None))

    def test_future_edit_reanchors_on_local_days(self):
        anchor = datetime(2024, 1, 5, 22, 45, tzinfo=timezone.utc)  # local Jan 6 00:45
        ledger = expand_transaction(rent_template(anchor), 1)
        result = edit_transaction(ledger, ledger[0].id, rent_fields(date(2024, 1, 9)), Scope.THIS_AND_FUTURE)
        walls = [t.t_date.astimezone() for t in result]
        self.assertEqual([(d.date(), d.hour, d.minute) for d in walls],
                         [(date(2024, 1, 9), 0, 45), (date(2024, 2, 9), 0, 45)])

    def test_expand_keeps_local_midnight_across_dst(self):
        anchor = datetime(2024, 1, 31, 22, tzinfo=timezone.utc)  # local Feb 1 00:00
        result = expand_transaction(rent_template(anchor), 2)
        walls = [t.t_date.astimezone() for t in result]
        self.assertEqual([d.date() for d in walls], [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)])
        self.assertTrue(all(d.hour == 0 for d in walls))
        # summer time started in between
        self.assertEqual(result[2].t_date, datetime(2024, 3, 31, 21, tzinfo=timezone.utc))


class TestDelete(unittest.TestCase):
    def setUp(self):
        self.other = Transaction("Salary", 5000.0, INCOME, datetime(2024, 2, 1))
        self.series = expand_transaction(rent_template(), 3)
        self.ledger = self.series + [self.other]

    def test_delete_one_off(self):
        result = delete_transaction(self.ledger, self.other.id, None, Scope.THIS_ONLY)
        self.assertEqual(len(result), 4)
        self.assertNotIn(self.other, result)

    def test_delete_this_only(self):
        result = delete_transaction(self.ledger, self.series[1].id, self.series[1].series_id, Scope.THIS_ONLY)
        self.assertEqual(len(result), len(self.ledger) - 1)
        self.assertNotIn(self.series[1].id, [t.id for t in result])

    def test_delete_this_and_future(self):
        target = self.series[1]
        result = delete_transaction(self.ledger, target.id, target.series_id, Scope.THIS_AND_FUTURE)
        self.assertEqual([t.id for t in result], [self.series[0].id, self.other.id])

    def test_delete_future_from_first_removes_series(self):
        target = self.series[0]
        result = delete_transaction(self.ledger, target.id, target.series_id, Scope.THIS_AND_FUTURE)
        self.assertEqual(result, [self.other])

    def test_delete_missing_id(self):
        with self.assertRaises(NotFoundError):
            delete_transaction(self.ledger, "missing", None, Scope.THIS_ONLY)

    def test_delete_requires_scope(self):
        with self.assertRaises(ValueError):
            delete_transaction(self.ledger, self.series[0].id, self.series[0].series_id, None)


class TestRollover(unittest.TestCase):
    def setUp(self):
        self.previous = Budget(
            income_goal=5000.0,
            savings_goal=800.0,
            expense_budgets={"Rent": 1200.0, "Groceries": 600.0},
            recurring=RecurringFlags(
                income_goal=True,
                savings_goal=False,
                expense_budgets={"Rent": True, "Groceries": False},
            ),
        )

    def test_carries_income_goal(self):
        previous = Budget(income_goal=5000.0, recurring=RecurringFlags(income_goal=True))
        draft = resolve_budget(Budget(), previous)
        self.assertEqual(draft.income_goal, 5000.0)
        self.assertTrue(draft.recurring.income_goal)

    def test_customized_budget_is_kept(self):
        current = Budget(income_goal=3000.0, recurring=RecurringFlags(income_goal=True))
        self.assertIs(resolve_budget(current, self.previous), current)
        self.assertIs(resolve_budget(current, None), current)

    def test_false_flag_still_counts_as_customized(self):
        current = Budget(income_goal=3000.0, recurring=RecurringFlags(income_goal=False))
        self.assertIs(resolve_budget(current, self.previous), current)

    def test_selective_fields(self):
        current = Budget(income_goal=100.0, savings_goal=50.0)
        draft = resolve_budget(current, self.previous)
        self.assertEqual(draft.income_goal, 5000.0)
        self.assertEqual(draft.savings_goal, 50.0)
        self.assertEqual(draft.expense_budgets["Rent"], 1200.0)
        self.assertEqual(draft.expense_budgets["Groceries"], 0.0)
        self.assertEqual(draft.recurring, self.previous.recurring)

    def test_income_goal_not_copied_without_flag(self):
        for flag in (None, False):
            with self.subTest(flag=flag):
                previous = Budget(
                    income_goal=5000.0,
                    recurring=RecurringFlags(income_goal=flag, savings_goal=True),
                )
                draft = resolve_budget(Budget(), previous)
                self.assertEqual(draft.income_goal, 0.0)

    def test_flags_are_copied_not_shared(self):
        draft = resolve_budget(Budget(), self.previous)
        draft.recurring.expense_budgets["Rent"] = False
        self.assertTrue(self.previous.recurring.expense_budgets["Rent"])
        self.assertIsNot(draft.expense_budgets, self.previous.expense_budgets)

    def test_no_previous_budget(self):
        current = Budget()
        self.assertIs(resolve_budget(current, None), current)

    def test_previous_without_flags(self):
        current = Budget()
        previous = Budget(income_goal=9000.0)
        self.assertIs(resolve_budget(current, previous), current)

    def test_default_budget(self):
        budget = default_budget()
        self.assertEqual(budget.income_goal, 0.0)
        self.assertEqual(budget.savings_goal, 0.0)
        self.assertTrue(all(v == 0.0 for v in budget.expense_budgets.values()))
        self.assertTrue(budget.recurring.is_empty())


class TestSummary(unittest.TestCase):
    def test_allocation(self):
        budget = Budget(income_goal=5000.0, savings_goal=500.0, expense_budgets={"Rent": 2000.0, "Groceries": 500.0})
        result = budget_allocation(budget)
        self.assertEqual(result["total_expenses"], 2500.0)
        self.assertEqual(result["expenses_percent"], 50.0)
        self.assertEqual(result["savings_percent"], 10.0)
        self.assertEqual(result["remaining"], 2000.0)

    def test_allocation_without_income_goal(self):
        result = budget_allocation(Budget(expense_budgets={"Rent": 100.0}))
        self.assertEqual(result["total_expenses"], 100.0)
        self.assertEqual(result["remaining"], 0.0)

    def test_monthly_summary(self):
        budget = Budget(income_goal=4000.0, savings_goal=1000.0, expense_budgets={"Groceries": 400.0})
        transactions = [
            Transaction("Salary", 3000.0, INCOME, datetime(2024, 1, 1)),
            Transaction("Market", 100.0, EXPENSE, datetime(2024, 1, 2), category="Groceries"),
            Transaction("Market", 200.0, EXPENSE, datetime(2024, 1, 9), category="Groceries"),
            Transaction("Cinema", 50.0, EXPENSE, datetime(2024, 1, 9), category="Entertainment"),
        ]
        result = monthly_summary(transactions, budget)

        self.assertEqual(result["totals"]["income"], 3000.0)
        self.assertEqual(result["totals"]["expense"], 350.0)
        self.assertEqual(result["totals"]["balance"], 2650.0)
        self.assertEqual(result["budgeted_expenses"], 400.0)
        self.assertEqual(result["categories"]["Groceries"]["spent"], 300.0)
        self.assertEqual(result["categories"]["Groceries"]["remaining"], 100.0)
        self.assertEqual(result["categories"]["Groceries"]["percent_used"], 75.0)
        self.assertEqual(result["categories"]["Entertainment"]["percent_used"], 0.0)
        self.assertEqual(result["savings_progress"], 265.0)

    def test_savings_progress_floor(self):
        transactions = [Transaction("Rent", 100.0, EXPENSE, datetime(2024, 1, 1), category="Rent")]
        self.assertEqual(monthly_summary(transactions, Budget(savings_goal=100.0))["savings_progress"], 0.0)
        self.assertEqual(monthly_summary(transactions, Budget())["savings_progress"], 0.0)


class TestPeriods(unittest.TestCase):
    def test_month_key(self):
        self.assertEqual(month_key(date(2024, 3, 5)), "2024-03")
        self.assertEqual(month_key(datetime(2024, 12, 31, 23, 59)), "2024-12")
        # ISO week-year of this day is 2025
        self.assertEqual(month_key(date(2024, 12, 30)), "2024-12")

    def test_previous_month_key(self):
        self.assertEqual(previous_month_key(date(2024, 1, 15)), "2023-12")
        self.assertEqual(previous_month_key(date(2024, 3, 31)), "2024-02")

    def test_shift_month(self):
        self.assertEqual(shift_month(datetime(2024, 1, 31, 10), "next"), datetime(2024, 2, 1, 10))
        self.assertEqual(shift_month(date(2024, 3, 31), "prev"), date(2024, 2, 1))
        self.assertEqual(shift_month(date(2024, 12, 15), 1), date(2025, 1, 1))
        self.assertEqual(shift_month(date(2024, 1, 15), -1), date(2023, 12, 1))

    def test_shift_month_bad_direction(self):
        with self.assertRaises(ValueError):
            shift_month(date(2024, 1, 1), "sideways")

    def test_add_months_policies(self):
        self.assertEqual(add_months(date(2023, 1, 31), 1, "clamp"), date(2023, 2, 28))
        self.assertEqual(add_months(date(2023, 1, 31), 1, "overflow"), date(2023, 3, 3))
        self.assertEqual(add_months(date(2024, 1, 31), 1, "overflow"), date(2024, 3, 2))
        self.assertEqual(add_months(date(2024, 1, 15), 13, "overflow"), date(2025, 2, 15))
        with self.assertRaises(ValueError):
            add_months(date(2024, 1, 1), 1, "round")

    def test_filter_by_month(self):
        jan = Transaction("a", 1.0, INCOME, datetime(2024, 1, 31))
        feb = Transaction("b", 1.0, INCOME, datetime(2024, 2, 1))
        feb_utc = Transaction("c", 1.0, INCOME, datetime(2024, 2, 14, 12, tzinfo=timezone.utc))
        feb_last_year = Transaction("d", 1.0, INCOME, datetime(2023, 2, 10))
        ledger = [feb_utc, jan, feb, feb_last_year]
        self.assertEqual(filter_by_month(ledger, date(2024, 2, 20)), [feb_utc, feb])
        self.assertEqual(filter_by_month(ledger, date(2024, 1, 1)), [jan])
        self.assertEqual(filter_by_month(ledger, date(2024, 3, 1)), [])


class TestStorage(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.save_dir = Path(self.tmp.name)
        self.store = JsonStore("test_save", self.save_dir)

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_files_load_empty(self):
        self.assertEqual(self.store.load_ledger(), [])
        self.assertEqual(self.store.load_budgets(), {})

    def test_save_and_load_ledger(self):
        ledger = expand_transaction(rent_template(datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)), 1)
        ledger.append(Transaction("Salary", 5000.0, INCOME, datetime(2024, 1, 2).astimezone()))
        self.store.save_ledger(ledger)

        loaded = self.store.load_ledger()
        self.assertEqual(loaded, ledger)

        raw = json.loads((self.save_dir / "test_save" / "transactions.json").read_text())
        self.assertEqual(raw[0]["type"], "EXPENSE")
        self.assertEqual(raw[0]["category"], "Rent")
        self.assertEqual(raw[0]["recurringId"], ledger[0].series_id)
        self.assertNotIn("recurringId", raw[2])
        self.assertNotIn("category", raw[2])

    def test_save_and_load_budgets(self):
        budgets = {
            "2024-01": Budget(
                income_goal=5000.0,
                expense_budgets={"Rent": 1200.0},
                recurring=RecurringFlags(income_goal=True, expense_budgets={"Rent": True}),
            ),
            "2024-02": Budget(),
        }
        self.store.save_budgets(budgets)
        self.assertEqual(self.store.load_budgets(), budgets)

        raw = json.loads((self.save_dir / "test_save" / "budgets.json").read_text())
        self.assertEqual(raw["2024-01"]["recurring"], {"incomeGoal": True, "expenseBudgets": {"Rent": True}})
        self.assertEqual(raw["2024-02"]["recurring"], {})

    def test_loads_utc_suffix(self):
        path = self.save_dir / "test_save"
        path.mkdir()
        (path / "transactions.json").write_text(json.dumps([{
            "id": "abc", "description": "Rent", "amount": 1200, "type": "EXPENSE",
            "category": "Rent", "date": "2024-01-01T10:00:00.000Z", "recurringId": "s1",
        }]))
        loaded = self.store.load_ledger()
        self.assertEqual(loaded[0].t_date, datetime(2024, 1, 1, 10, tzinfo=timezone.utc))
        self.assertEqual(loaded[0].series_id, "s1")

    def test_invalid_records_are_skipped(self):
        path = self.save_dir / "test_save"
        path.mkdir()
        (path / "transactions.json").write_text(json.dumps([
            {"id": "ok", "description": "Salary", "amount": 10, "type": "INCOME", "date": "2024-01-01"},
            {"id": "broken"},
        ]))
        with self.assertLogs("budgeter.storage", level="WARNING"):
            loaded = self.store.load_ledger()
        self.assertEqual([t.id for t in loaded], ["ok"])

    def test_corrupt_file_loads_empty(self):
        path = self.save_dir / "test_save"
        path.mkdir()
        (path / "budgets.json").write_text("{not json")
        with self.assertLogs("budgeter.storage", level="ERROR"):
            self.assertEqual(self.store.load_budgets(), {})

    def test_negative_budget_is_skipped(self):
        path = self.save_dir / "test_save"
        path.mkdir()
        (path / "budgets.json").write_text(json.dumps({
            "2024-01": {"incomeGoal": 5000, "savingsGoal": 0, "expenseBudgets": {"Rent": -1200}},
            "2024-02": {"incomeGoal": 5000, "savingsGoal": 500},
        }))
        with self.assertLogs("budgeter.storage", level="WARNING"):
            loaded = self.store.load_budgets()
        self.assertEqual(list(loaded), ["2024-02"])

    def test_write_failure(self):
        with patch("pathlib.Path.write_text", side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceFailure):
                self.store.save_ledger([])

    def test_list_save_files(self):
        JsonStore("test_save1", self.save_dir).save_ledger([])
        JsonStore("test_save2", self.save_dir).save_budgets({})
        saves = list_save_files(self.save_dir)
        self.assertIn("test_save1", saves)
        self.assertIn("test_save2", saves)


class TestBudgetApp(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = JsonStore("test_app", Path(self.tmp.name))
        self.app = BudgetApp(self.store, today=datetime(2024, 2, 10, 12, 0))

    def tearDown(self):
        self.tmp.cleanup()

    def reload(self):
        return BudgetApp(self.store, today=self.app.current_date)

    def test_add_persists(self):
        outcome = self.app.add_transaction(rent_template(), 2)
        self.assertEqual(outcome, Outcome.APPLIED)
        self.assertEqual(len(self.app.transactions), 3)
        self.assertEqual(len(self.reload().transactions), 3)

    def test_add_invalid_does_not_mutate(self):
        bad = TransactionTemplate("", 10.0, INCOME, datetime(2024, 2, 1))
        with self.assertRaises(ValidationError):
            self.app.add_transaction(bad, 3)
        self.assertEqual(self.app.transactions, [])

    def test_month_view(self):
        self.app.add_transaction(rent_template(), 2)
        self.assertEqual([t.t_date for t in self.app.month_transactions()], [local(2024, 2, 1)])
        self.assertEqual(self.app.navigate_month("next"), "2024-03")
        self.assertEqual([t.t_date for t in self.app.month_transactions()], [local(2024, 3, 1)])
        self.app.navigate_month("next")
        self.assertEqual(self.app.month_transactions(), [])

    def test_edit_future_and_persist(self):
        self.app.add_transaction(rent_template(), 2)
        feb = self.app.month_transactions()[0]
        self.app.start_editing(feb.id)
        outcome = self.app.edit_transaction(feb.id, rent_fields(datetime(2024, 2, 15)), Scope.THIS_AND_FUTURE)
        self.assertEqual(outcome, Outcome.APPLIED)
        self.assertIsNone(self.app.editing)

        dates = sorted(t.t_date for t in self.reload().transactions)
        self.assertEqual(dates, [local(2024, 1, 1), local(2024, 2, 15), local(2024, 3, 15)])

    def test_edit_invalid_amount(self):
        self.app.add_transaction(rent_template(), 0)
        t = self.app.transactions[0]
        with self.assertRaises(ValidationError):
            self.app.edit_transaction(t.id, rent_fields(datetime(2024, 2, 1), amount=0), Scope.THIS_ONLY)
        self.assertEqual(self.app.transactions[0].amount, 1200.0)

    def test_stale_reference_is_noop(self):
        self.app.add_transaction(rent_template(), 1)
        before = list(self.app.transactions)
        with self.assertLogs("budgeter.state", level="WARNING"):
            self.assertEqual(self.app.delete_transaction("stale", None, Scope.THIS_ONLY), Outcome.NOT_FOUND)
            self.assertEqual(
                self.app.edit_transaction("stale", rent_fields(datetime(2024, 2, 1)), Scope.THIS_ONLY),
                Outcome.NOT_FOUND
            )
        self.assertEqual(self.app.transactions, before)

    def test_delete_future(self):
        self.app.add_transaction(rent_template(), 3)
        target = self.app.month_transactions()[0]
        self.app.delete_transaction(target.id, target.series_id, Scope.THIS_AND_FUTURE)
        self.assertEqual([t.t_date for t in self.reload().transactions], [local(2024, 1, 1)])

    def test_failed_persist_keeps_memory(self):
        with patch.object(self.store, "save_ledger", side_effect=PersistenceFailure("disk full")):
            with self.assertLogs("budgeter.state", level="ERROR"):
                outcome = self.app.add_transaction(rent_template(), 1)
        self.assertEqual(outcome, Outcome.NOT_PERSISTED)
        self.assertEqual(len(self.app.transactions), 2)

    def test_budget_rollover_between_months(self):
        self.app.navigate_month("prev")
        january = Budget(income_goal=6000.0, savings_goal=900.0, recurring=RecurringFlags(income_goal=True))
        self.assertEqual(self.app.save_budget(january), Outcome.APPLIED)

        self.app.navigate_month("next")
        self.assertEqual(self.app.month_key, "2024-02")
        self.assertIs(self.app.previous_budget(), self.app.budgets["2024-01"])
        self.assertTrue(self.app.current_budget().recurring.is_empty())

        draft = self.app.draft_budget()
        self.assertEqual(draft.income_goal, 6000.0)
        self.assertEqual(draft.savings_goal, 0.0)

        self.app.save_budget(draft)
        reloaded = self.reload()
        self.assertEqual(reloaded.current_budget().income_goal, 6000.0)
        self.assertTrue(reloaded.current_budget().recurring.income_goal)

    def test_negative_budget_is_rejected(self):
        self.app.save_budget(Budget(income_goal=5000.0))
        before = dict(self.app.budgets)

        budget = self.app.draft_budget()
        budget.expense_budgets["Rent"] = -100.0
        with self.assertRaises(ValidationError):
            self.app.save_budget(budget)
        self.assertEqual(self.app.budgets, before)

    def test_stored_utc_record_lists_with_new_entries(self):
        path = Path(self.tmp.name) / "test_app"
        path.mkdir()
        (path / "transactions.json").write_text(json.dumps([{
            "id": "abc", "description": "Gym", "amount": 40, "type": "EXPENSE",
            "category": "Other", "date": "2024-02-03T10:00:00Z",
        }]))
        app = BudgetApp(self.store, today=datetime(2024, 2, 10, 12, 0))
        app.add_transaction(TransactionTemplate("Salary", 5000.0, INCOME, datetime(2024, 2, 5)))
        self.assertTrue(all(t.t_date.tzinfo is not None for t in app.transactions))

        cli = BudgetCLI(app)
        out = io.StringIO()
        with redirect_stdout(out):
            cli.onecmd("list")
        self.assertEqual([t.description for t in cli.listing], ["Gym", "Salary"])
        self.assertIn("Gym", out.getvalue())
        self.assertIn("Salary", out.getvalue())

    def test_cli_budget_set_and_show(self):
        cli = BudgetCLI(self.app)
        with redirect_stdout(io.StringIO()):
            cli.onecmd('budget set income 5000 --recur')
            cli.onecmd('budget set "Rent" -10')
        self.assertEqual(self.app.current_budget().income_goal, 5000.0)
        self.assertEqual(self.app.current_budget().expense_budgets["Rent"], 0.0)

        out = io.StringIO()
        with redirect_stdout(out):
            cli.onecmd("budget")
        self.assertIn("Income goal:  $5,000.00 ↻", out.getvalue())
        self.assertIn("Unallocated: $5,000.00", out.getvalue())

    def test_summary(self):
        self.app.add_transaction(TransactionTemplate("Salary", 5000.0, INCOME, datetime(2024, 2, 1)))
        self.app.add_transaction(rent_template(datetime(2024, 2, 1)))
        self.app.save_budget(Budget(income_goal=5000.0, savings_goal=1000.0, expense_budgets={"Rent": 1200.0}))

        result = self.app.summary()
        self.assertEqual(result["month"], "2024-02")
        self.assertEqual(result["totals"]["balance"], 3800.0)
        self.assertEqual(result["categories"]["Rent"]["percent_used"], 100.0)
        self.assertEqual(result["allocation"]["remaining"], 2800.0)


if __name__ == "__main__":
    unittest.main()
