"""
Next-due-date calculation for recurring todos.
"""

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from models import RecurrenceType

_INTERVALS = {
    RecurrenceType.DAILY: timedelta(days=1),
    RecurrenceType.WEEKLY: timedelta(days=7),
    RecurrenceType.BIWEEKLY: timedelta(days=14),
    # relativedelta clamps to the last day of a shorter month (Jan 31 -> Feb 28, Feb 29 -> Feb 28)
    RecurrenceType.MONTHLY: relativedelta(months=1),
    RecurrenceType.YEARLY: relativedelta(years=1),
}


def next_due_date(current: datetime, interval: RecurrenceType) -> datetime:
    """
    Compute the due date of the successor of a recurring todo.

    Args:
        current: The completed todo's due date
        interval: Recurrence interval; must not be NONE

    Returns:
        The successor's due date, same time of day and timezone as ``current``

    Raises:
        ValueError: if called with RecurrenceType.NONE
    """
    interval = RecurrenceType(interval)
    if interval is RecurrenceType.NONE:
        raise ValueError("next_due_date() is not defined for non-recurring todos")
    return current + _INTERVALS[interval]
