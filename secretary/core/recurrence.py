"""
Group Secretary Bot — Recurrence Calculator.

Computes the next firing time for recurring tasks and recurring reminders.
All math runs on local dates in the display timezone and the local hour and
minute are kept fixed; results are aware datetimes in that zone.

Weekdays are numbered 0=Sunday .. 6=Saturday throughout.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable

from secretary.core.datetime_parser import zone_for

DAY_NAMES = ["日", "月", "火", "水", "木", "金", "土"]

# A year of candidate dates always contains every weekday and month-day
_SEARCH_DAYS = 400


def sunday_weekday(day: date) -> int:
    """Weekday with Sunday as 0."""
    return (day.weekday() + 1) % 7


def clamp_day(year: int, month: int, day_of_month: int) -> int:
    """The requested day, or the month's last day when the month is shorter."""
    return min(day_of_month, calendar.monthrange(year, month)[1])


def _matches_month_day(day: date, days_of_month: Iterable[int]) -> bool:
    return any(day.day == clamp_day(day.year, day.month, d) for d in days_of_month)


def _first_date(start: date, accept: Callable[[date], bool]) -> date:
    for offset in range(_SEARCH_DAYS):
        candidate = start + timedelta(days=offset)
        if accept(candidate):
            return candidate
    raise ValueError("No matching date within a year")


def _task_predicate(
    frequency: str,
    day_of_week: int | None,
    day_of_month: int | None,
    exclude_days: Iterable[int],
) -> Callable[[date], bool]:
    if frequency == "daily":
        excluded = set(exclude_days)
        if len(excluded & set(range(7))) == 7:
            raise ValueError("Every weekday is excluded")
        return lambda d: sunday_weekday(d) not in excluded
    if frequency == "weekly":
        if day_of_week is None or not 0 <= day_of_week <= 6:
            raise ValueError(f"Invalid day_of_week: {day_of_week!r}")
        return lambda d: sunday_weekday(d) == day_of_week
    if frequency == "monthly":
        if day_of_month is None or not 1 <= day_of_month <= 31:
            raise ValueError(f"Invalid day_of_month: {day_of_month!r}")
        return lambda d: _matches_month_day(d, [day_of_month])
    raise ValueError(f"Unknown frequency: {frequency!r}")


# ---------------------------------------------------------------------------
# Recurring tasks
# ---------------------------------------------------------------------------


def initial_send_time(
    frequency: str,
    hour: int,
    minute: int,
    now: datetime,
    tz_name: str,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    exclude_days: Iterable[int] = (),
) -> datetime:
    """First occurrence strictly after now."""
    tz = zone_for(tz_name)
    now_local = now.astimezone(tz)
    accept = _task_predicate(frequency, day_of_week, day_of_month, exclude_days)

    def _valid(d: date) -> bool:
        return accept(d) and datetime.combine(d, time(hour, minute), tzinfo=tz) > now_local

    day = _first_date(now_local.date(), _valid)
    return datetime.combine(day, time(hour, minute), tzinfo=tz)


def next_recurring_send(
    frequency: str,
    hour: int,
    minute: int,
    current: datetime,
    tz_name: str,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    exclude_days: Iterable[int] = (),
) -> datetime:
    """Occurrence following `current`, on a later local date.

    daily skips excluded weekdays, weekly lands on the next matching weekday
    (never the same week twice), monthly on the next matching day-of-month.
    """
    tz = zone_for(tz_name)
    current_local = current.astimezone(tz)
    accept = _task_predicate(frequency, day_of_week, day_of_month, exclude_days)
    day = _first_date(current_local.date() + timedelta(days=1), accept)
    return datetime.combine(day, time(hour, minute), tzinfo=tz)


def describe_schedule(
    frequency: str,
    hour: int,
    minute: int,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
    exclude_days: Iterable[int] = (),
) -> str:
    """Japanese schedule label, e.g. '毎週月曜日 9:00'."""
    clock = f"{hour}:{minute:02d}"
    if frequency == "daily":
        excluded = list(exclude_days)
        suffix = ""
        if excluded:
            suffix = "（" + "、".join(DAY_NAMES[d] for d in excluded) + "曜日除く）"
        return f"毎日 {clock}{suffix}"
    if frequency == "weekly" and day_of_week is not None:
        return f"毎週{DAY_NAMES[day_of_week]}曜日 {clock}"
    if frequency == "monthly" and day_of_month is not None:
        return f"毎月{day_of_month}日 {clock}"
    return clock


# ---------------------------------------------------------------------------
# Recurring reminders
# ---------------------------------------------------------------------------


def _add_month(day: date) -> date:
    year, month = (day.year + 1, 1) if day.month == 12 else (day.year, day.month + 1)
    return date(year, month, clamp_day(year, month, day.day))


def next_reminder_time(
    repeat_type: str,
    repeat_days: list[int],
    remind_at: datetime,
    minutes_before: int,
    tz_name: str,
) -> datetime | None:
    """Next reminder time for a recurring reminder, or None for one-offs.

    The event time (remind_at + minutes_before) moves to its next occurrence
    at the same local hour and minute; the reminder precedes it again by
    minutes_before.
    """
    if repeat_type not in ("daily", "weekly", "monthly"):
        return None

    tz = zone_for(tz_name)
    event_local = (remind_at + timedelta(minutes=minutes_before)).astimezone(tz)
    event_day = event_local.date()

    if repeat_type == "daily":
        next_day = event_day + timedelta(days=1)
    elif repeat_type == "weekly":
        if repeat_days:
            wanted = set(repeat_days)
            next_day = _first_date(
                event_day + timedelta(days=1), lambda d: sunday_weekday(d) in wanted,
            )
        else:
            next_day = event_day + timedelta(days=7)
    elif repeat_days:
        next_day = _first_date(
            event_day + timedelta(days=1), lambda d: _matches_month_day(d, repeat_days),
        )
    else:
        next_day = _add_month(event_day)

    next_event = datetime.combine(
        next_day, time(event_local.hour, event_local.minute), tzinfo=tz,
    )
    return next_event - timedelta(minutes=minutes_before)


def describe_repeat(repeat_type: str, repeat_days: list[int]) -> str:
    if repeat_type == "daily":
        return "毎日"
    if repeat_type == "weekly":
        if repeat_days:
            return "毎週" + "・".join(DAY_NAMES[d] for d in repeat_days) + "曜日"
        return "毎週"
    if repeat_type == "monthly":
        if repeat_days:
            return "毎月" + ",".join(str(d) for d in repeat_days) + "日"
        return "毎月"
    return ""
