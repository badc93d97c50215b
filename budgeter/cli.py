import cmd
import copy
import shlex
from datetime import date
from typing import Optional

from budgeter.budget import budget_allocation
from budgeter.exceptions import BudgetError
from budgeter.logic import series_members, with_calendar_date
from budgeter.models import (
    Scope, Transaction, TransactionFields, TransactionTemplate,
    EXPENSE, EXPENSE_CATEGORIES, INCOME
)
from budgeter.periods import local_date
from budgeter.state import BudgetApp, Outcome
from budgeter.storage import JsonStore, list_save_files


OUTCOME_MESSAGES = {
    Outcome.APPLIED: "✓ Saved",
    Outcome.NOT_FOUND: "Transaction not found",
    Outcome.NOT_PERSISTED: "Changed in memory, but saving to disk failed",
}


class BudgetCLI(cmd.Cmd):
    prompt = "(budget) "

    def __init__(self, app: Optional[BudgetApp] = None):
        super().__init__()
        self.app = app or BudgetApp()
        self.listing: list[Transaction] = []
        self.intro = "Welcome to the monthly budgeter. Type 'help' for commands."

    # ===== TRANSACTIONS =====
    def do_add(self, arg):
        """Add a transaction: add <amount> <income|expense> [category] [YYYY-MM-DD] [--recur <months>] [--desc "description"]"""
        try:
            args = self._parse_entry_args(arg, allow_recur=True)
            template = TransactionTemplate(
                description=args['desc'],
                amount=args['amount'],
                t_type=args['type'],
                t_date=args['date'] or self.app.current_date,
                category=args['category'],
            )
            outcome = self.app.add_transaction(template, args['recur'])
            confirmation = f"✓ Added {args['type'].lower()} of ${args['amount']:.2f}"
            if args['recur']:
                confirmation += f" (repeats for the next {args['recur']} months)"
            print(confirmation)
            if outcome is not Outcome.APPLIED:
                print(OUTCOME_MESSAGES[outcome])
        except ValueError as e:
            print(f"Invalid input: {e}")
        except BudgetError as e:
            print(f"Error adding transaction: {e}")

    def do_list(self, arg):
        """List this month's transactions: list"""
        self.listing = sorted(self.app.month_transactions(), key=lambda t: t.t_date)
        print(f"\n{' ' + self.app.month_key + ' ':-^50}")
        if not self.listing:
            print("No transactions this month")
            return
        for i, t in enumerate(self.listing, 1):
            marker = " ↻" if t.is_rec else ""
            category = f" [{t.category}]" if t.category else ""
            sign = "+" if t.t_type == INCOME else "-"
            print(f"{i:>3}. {local_date(t.t_date).date().isoformat()} {sign}${t.amount:,.2f} {t.description}{category}{marker}")

    def do_series(self, arg):
        """Show every entry of a recurring series: series <n>"""
        try:
            t = self._resolve(arg.strip())
        except LookupError as e:
            print(e)
            return
        if not t.is_rec:
            print("Not a recurring transaction")
            return
        for member in series_members(self.app.transactions, t.series_id):
            print(f"  {local_date(member.t_date).date().isoformat()} ${member.amount:,.2f} {member.description}")

    def do_edit(self, arg):
        """Edit a transaction: edit <n> <amount> <income|expense> [category] [YYYY-MM-DD] [--desc "description"]"""
        args = shlex.split(arg)
        if not args:
            print("Usage: edit <n> <amount> <income|expense> [category] [YYYY-MM-DD] [--desc \"description\"]")
            return
        try:
            t = self.app.start_editing(self._resolve(args[0]).id)
            parsed = self._parse_entry_args(shlex.join(args[1:]), allow_recur=False)
            fields = TransactionFields(
                description=parsed['desc'] or t.description,
                amount=parsed['amount'],
                t_type=parsed['type'],
                t_date=parsed['date'] or t.t_date,
                category=parsed['category'],
            )
            scope = Scope.THIS_ONLY
            if t.is_rec and self._confirm("Apply to this and all future entries?"):
                scope = Scope.THIS_AND_FUTURE
            print(OUTCOME_MESSAGES[self.app.edit_transaction(t.id, fields, scope)])
        except LookupError as e:
            print(e)
        except ValueError as e:
            print(f"Invalid input: {e}")
        except BudgetError as e:
            print(f"Error: {e}")

    def do_delete(self, arg):
        """Delete a transaction: delete <n>"""
        if not arg.strip():
            print("Usage: delete <n>")
            return
        try:
            t = self._resolve(arg.strip())
        except LookupError as e:
            print(e)
            return
        scope = Scope.THIS_ONLY
        if t.is_rec and self._confirm("This is a recurring transaction. Delete all future occurrences too?"):
            scope = Scope.THIS_AND_FUTURE
        outcome = self.app.delete_transaction(t.id, t.series_id, scope)
        if outcome is Outcome.NOT_FOUND:
            print(OUTCOME_MESSAGES[outcome])
            return
        print("✓ Deleted" if outcome is Outcome.APPLIED else OUTCOME_MESSAGES[outcome])
        self.listing = []

    # ===== BUDGET =====
    def do_budget(self, arg):
        """
        Show or change this month's budget:
        budget                         Show the budget draft
        budget set income <amount> [--recur]
        budget set savings <amount> [--recur]
        budget set "<category>" <amount> [--recur]

        --recur carries the value into next month's budget.
        """
        args = shlex.split(arg)
        if not args:
            self._print_budget()
            return
        if args[0] != "set" or len(args) < 3:
            print("Usage: budget set <income|savings|category> <amount> [--recur]")
            return

        try:
            field_name, amount = args[1], float(args[2])
            is_rec = "--recur" in args[3:]
            budget = copy.deepcopy(self.app.draft_budget())
            if field_name == "income":
                budget.income_goal = amount
                budget.recurring.income_goal = is_rec
            elif field_name == "savings":
                budget.savings_goal = amount
                budget.recurring.savings_goal = is_rec
            elif field_name in EXPENSE_CATEGORIES:
                budget.expense_budgets[field_name] = amount
                budget.recurring.expense_budgets[field_name] = is_rec
            else:
                raise ValueError(f"Unknown budget field: {field_name}")
            print(OUTCOME_MESSAGES[self.app.save_budget(budget)])
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_summary(self, arg):
        """Actual vs budgeted for this month: summary"""
        result = self.app.summary()
        totals = result['totals']
        print(f"\n{' ' + result['month'] + ' Summary ':-^50}")
        print(f"  Income:   ${totals['income']:,.2f}")
        print(f"  Expenses: ${totals['expense']:,.2f} of ${result['budgeted_expenses']:,.2f} budgeted")
        print(f"  Balance:  ${totals['balance']:,.2f}")
        print(f"  Savings:  {result['savings_progress']:.0f}% of ${result['savings_goal']:,.2f}")

        print("\nBy Category:")
        for cat, data in result['categories'].items():
            if data['spent'] or data['budgeted']:
                print(f"  {cat}: ${data['spent']:,.2f} / ${data['budgeted']:,.2f} ({data['percent_used']:.0f}%)")

    # ===== NAVIGATION =====
    def do_month(self, arg):
        """Change month: month <next|prev>"""
        direction = arg.strip() or "next"
        try:
            print(f"Now viewing {self.app.navigate_month(direction)}")
            self.listing = []
        except ValueError as e:
            print(f"Invalid input: {e}")

    # ===== DATA MANAGEMENT =====
    def do_load(self, arg):
        """Switch to another save: load [name]"""
        saves = list_save_files()
        if not arg:
            if not saves:
                print("No save files available")
                return
            print("Available saves:")
            for i, name in enumerate(saves, 1):
                print(f"{i}. {name}")
            try:
                choice = int(input("Select save: ")) - 1
                name = saves[choice]
            except (ValueError, IndexError):
                print("Invalid selection")
                return
        else:
            name = arg.strip()

        self.app = BudgetApp(JsonStore(name), today=self.app.current_date)
        self.listing = []
        print(f"✓ Loaded {len(self.app.transactions)} transactions, {len(self.app.budgets)} budgets from '{name}'")

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        print("Goodbye!")
        return True

    # ===== HELPERS =====
    def _resolve(self, ref: str) -> Transaction:
        """Find a transaction by its number in the last listing or by id prefix"""
        if ref.isdigit():
            index = int(ref) - 1
            if not self.listing or not 0 <= index < len(self.listing):
                raise LookupError("Unknown entry number, run 'list' first")
            return self.listing[index]
        matches = [t for t in self.app.transactions if t.id.startswith(ref)] if ref else []
        if len(matches) != 1:
            raise LookupError(f"No unique transaction matches '{ref}'")
        return matches[0]

    def _print_budget(self):
        budget = self.app.draft_budget()
        flags = budget.recurring

        def rec(flag):
            return " ↻" if flag else ""

        print(f"\n{' ' + self.app.month_key + ' Budget ':-^50}")
        print(f"  Income goal:  ${budget.income_goal:,.2f}{rec(flags.income_goal)}")
        print(f"  Savings goal: ${budget.savings_goal:,.2f}{rec(flags.savings_goal)}")
        print("\nExpense budgets:")
        for cat, amount in budget.expense_budgets.items():
            print(f"  {cat}: ${amount:,.2f}{rec(flags.expense_budgets.get(cat))}")

        allocation = budget_allocation(budget)
        print(f"\n  Unallocated: ${allocation['remaining']:,.2f}")

    @staticmethod
    def _confirm(question: str) -> bool:
        return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")

    def _parse_entry_args(self, arg, allow_recur=True):
        """Parse transaction arguments with proper date handling"""
        args = shlex.split(arg)
        if len(args) < 2:
            raise ValueError("Missing required arguments (amount and type)")

        result = {
            'amount': float(args[0]),
            'type': args[1].upper(),
            'category': None,
            'date': None,
            'recur': 0,
            'desc': ""
        }

        if result['type'] not in (INCOME, EXPENSE):
            raise ValueError("Type must be 'income' or 'expense'")

        i = 2
        while i < len(args):
            if args[i] == '--recur' and allow_recur:
                if i+1 >= len(args):
                    raise ValueError("Missing month count after --recur")
                result['recur'] = int(args[i+1])
                i += 2
            elif args[i] == '--desc':
                result['desc'] = ' '.join(args[i+1:])
                break
            elif args[i].startswith('--'):
                raise ValueError(f"Unknown flag: {args[i]}")
            else:
                try:
                    day = date.fromisoformat(args[i])
                    result['date'] = with_calendar_date(self.app.current_date, day)
                    i += 1
                    continue
                except ValueError:
                    pass

                if result['category'] is None:
                    result['category'] = args[i]
                    i += 1
                else:
                    raise ValueError(f"Unexpected argument: {args[i]}")

        if result['type'] == EXPENSE and result['category'] is None:
            result['category'] = "Other"
        return result
