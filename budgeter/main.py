import logging

from budgeter import config
from budgeter.cli import BudgetCLI


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    BudgetCLI().cmdloop()


if __name__ == "__main__":
    main()
