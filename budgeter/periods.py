from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Union
from dateutil.relativedelta import relativedelta

from budgeter import config
from budgeter.models import Transaction

DateLike = Union[date, datetime]

MONTH_POLICIES = ("clamp", "overflow")


def as_instant(d: DateLike) -> datetime:
    """Timezone-aware version of `d`; naive values are taken as local time."""
    if not isinstance(d, datetime):
        d = datetime(d.year, d.month, d.day)
    if d.tzinfo is None:
        return d.astimezone()
    return d


def local_date(dt: DateLike) -> DateLike:
    if isinstance(dt, datetime) and dt.tzinfo is not None:
        return dt.astimezone()
    return dt


def on_local_calendar(dt: DateLike, change: Callable[[DateLike], DateLike]) -> DateLike:
    """Apply a calendar change to `dt` as local wall-clock time.

    Aware values are moved to local time, changed there, re-localized (so a
    DST switch between the two days gets the right offset) and returned in
    their original tzinfo.
    """
    if not (isinstance(dt, datetime) and dt.tzinfo is not None):
        return change(dt)
    wall = dt.astimezone().replace(tzinfo=None)
    return change(wall).astimezone().astimezone(dt.tzinfo)


def _add_months_wall(d: DateLike, months: int, policy: str) -> DateLike:
    if policy == "clamp":
        return d + relativedelta(months=months)
    first = d.replace(day=1) + relativedelta(months=months)
    return first + timedelta(days=d.day - 1)


def add_months(d: DateLike, months: int, policy: str | None = None) -> DateLike:
    """Advance `d` by whole calendar months, keeping local day-of-month and time.

    With the "clamp" policy the 31st advanced into a 30-day month lands on
    the 30th. With "overflow" the extra days spill into the following month
    (Jan 31 + 1 month is Mar 2 or Mar 3).
    """
    policy = policy or config.MONTH_POLICY
    if policy not in MONTH_POLICIES:
        raise ValueError(f"Unknown month policy: {policy}")
    return on_local_calendar(d, lambda wall: _add_months_wall(wall, months, policy))


def month_key(d: DateLike) -> str:
    return f"{d.year}-{d.month:02d}"


def previous_month_key(d: DateLike) -> str:
    return month_key(shift_month(d, "prev"))


def shift_month(d: DateLike, direction: Union[str, int]) -> DateLike:
    """Move the cursor one calendar month forward ("next") or back ("prev")."""
    if direction in ("next", 1):
        step = 1
    elif direction in ("prev", -1):
        step = -1
    else:
        raise ValueError("Direction must be 'next' or 'prev'")
    # day 1 first so the 31st never skips a short month
    return d.replace(day=1) + relativedelta(months=step)


def in_month(dt: DateLike, cursor: DateLike) -> bool:
    local = local_date(dt)
    return local.year == cursor.year and local.month == cursor.month


def filter_by_month(ledger: Iterable[Transaction], cursor: DateLike) -> List[Transaction]:
    return [t for t in ledger if in_month(t.t_date, cursor)]
