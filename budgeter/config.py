"""Configuration for the budgeter.

Values are module constants read once at import, each overridable through
an environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path

SAVES_DIR = Path(os.getenv("BUDGETER_SAVE_DIR", "saves"))
SAVE_NAME = os.getenv("BUDGETER_SAVE_NAME", "default")

# How a day-of-month past the end of the target month is handled when a
# date is advanced by whole months: "clamp" or "overflow".
MONTH_POLICY = os.getenv("BUDGETER_MONTH_POLICY", "clamp")

DEFAULT_INCOME_GOAL = float(os.getenv("BUDGETER_DEFAULT_INCOME_GOAL", "0"))
DEFAULT_SAVINGS_GOAL = float(os.getenv("BUDGETER_DEFAULT_SAVINGS_GOAL", "0"))

LOG_LEVEL = os.getenv("BUDGETER_LOG_LEVEL", "WARNING").upper()


def ensure_save_dir(path: Path | None = None) -> Path:
    """Create the save directory if it doesn't exist and return it."""
    target = path or SAVES_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target
