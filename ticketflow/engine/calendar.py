"""Working-Day Calendar - due dates that skip weekends

Saturdays and Sundays are the only non-working days; there is no holiday
calendar. Overdue decisions are made on calendar dates, so the time of day
never matters.
"""
import math
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

from ..domain.enums import DurationUnit
from ..domain.models import Sla, Workflow
from ..utils.time import utc_now, to_date

HOURS_PER_WORKING_DAY = 8
WORKING_DAYS_PER_WEEK = 5
DEFAULT_WORKING_DAYS = 5

DateLike = Union[datetime, date]


def is_working_day(day: DateLike) -> bool:
    """Monday to Friday"""
    return day.weekday() < 5


def add_working_days(start: datetime, amount: int) -> datetime:
    """
    Walk forward from the day after `start`, counting weekdays only

    Args:
        start: Starting instant (its time of day is kept)
        amount: Working days to add; zero or less returns `start`

    Returns:
        The instant `amount` working days later
    """
    current = start
    added = 0
    while added < amount:
        current = current + timedelta(days=1)
        if is_working_day(current):
            added += 1
    return current


def to_working_days(
    value: float,
    unit: DurationUnit,
    hours_per_day: int = HOURS_PER_WORKING_DAY
) -> int:
    """Day-equivalent of a duration (hours round up to whole working days)"""
    if unit == DurationUnit.HOURS:
        return math.ceil(value / hours_per_day)
    if unit == DurationUnit.WEEKS:
        return math.ceil(value * WORKING_DAYS_PER_WEEK)
    return math.ceil(value)


def due_date(
    start: datetime,
    amount: float,
    unit: DurationUnit = DurationUnit.DAYS
) -> datetime:
    """
    Compute a due date

    Days (and weeks, as 5 working days each) skip weekends. Hours are added
    as wall-clock hours; they are only converted to working days when an
    aggregate SLA is summed over workflow steps.
    """
    if amount <= 0:
        return start
    if unit == DurationUnit.HOURS:
        return start + timedelta(hours=amount)
    return add_working_days(start, to_working_days(amount, unit))


def due_date_for_sla(start: datetime, sla: Sla) -> datetime:
    """Due date of an SLA value object"""
    return due_date(start, sla.value, sla.unit)


def days_until_due(due: DateLike, now: Optional[DateLike] = None) -> int:
    """
    Whole calendar days from today until the due date

    Returns:
        0 on the due date, positive before it, negative once overdue
    """
    today = to_date(now if now is not None else utc_now())
    return (to_date(due) - today).days


def is_overdue(due: Optional[DateLike], now: Optional[DateLike] = None) -> bool:
    """True once the due date is in the past (midnight granularity)"""
    if due is None:
        return False
    return days_until_due(due, now) < 0


def working_days_between(start: DateLike, end: DateLike) -> int:
    """Weekdays in the inclusive range [start, end]"""
    current = to_date(start)
    last = to_date(end)
    count = 0
    while current <= last:
        if is_working_day(current):
            count += 1
        current += timedelta(days=1)
    return count


def workflow_sla(workflow: Workflow, hours_per_day: int = HOURS_PER_WORKING_DAY) -> Sla:
    """Aggregate SLA of all steps, in working days"""
    total = 0
    for step in workflow.steps:
        total += to_working_days(step.estimated_duration or 1, step.duration_unit, hours_per_day)
    return Sla(value=total, unit=DurationUnit.DAYS)


# ============================================================================
# Display helpers
# ============================================================================

_SUFFIXES = {DurationUnit.HOURS: "h", DurationUnit.DAYS: "WD", DurationUnit.WEEKS: "W"}
_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_sla(sla: Sla) -> str:
    """Compact form: 12h, 5WD, 2W"""
    return f"{_format_number(sla.value)}{_SUFFIXES[sla.unit]}"


def parse_sla(text: Optional[str], default_days: int = DEFAULT_WORKING_DAYS) -> Sla:
    """
    Parse compact or legacy SLA strings

    Accepts "12h", "5WD", "5 Working Days", "2W" or a bare number (days).
    Anything unparseable yields `default_days` working days.
    """
    if not text or not isinstance(text, str):
        return Sla(value=default_days, unit=DurationUnit.DAYS)

    match = _NUMBER.search(text)
    if match is None:
        return Sla(value=default_days, unit=DurationUnit.DAYS)
    value = float(match.group())

    lowered = text.lower()
    if "wd" in lowered or "working day" in lowered:
        unit = DurationUnit.DAYS
    elif "h" in lowered:
        unit = DurationUnit.HOURS
    elif "w" in lowered:
        unit = DurationUnit.WEEKS
    else:
        unit = DurationUnit.DAYS
    return Sla(value=value, unit=unit)
