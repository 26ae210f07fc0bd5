"""Tests for secretary.core.recurrence — next-occurrence math."""

from datetime import date, datetime, timedelta, timezone

import pytest

from secretary.core.recurrence import (
    clamp_day,
    describe_repeat,
    describe_schedule,
    initial_send_time,
    next_recurring_send,
    next_reminder_time,
    sunday_weekday,
)

MANILA = timezone(timedelta(hours=8), "Asia/Manila")
TZ = "Asia/Manila"


def at(*args) -> datetime:
    return datetime(*args, tzinfo=MANILA)


class TestWeekdayHelpers:
    def test_sunday_is_zero(self):
        assert sunday_weekday(date(2026, 2, 15)) == 0
        assert sunday_weekday(date(2026, 2, 14)) == 6

    def test_clamp_day(self):
        assert clamp_day(2026, 2, 31) == 28
        assert clamp_day(2028, 2, 31) == 29
        assert clamp_day(2026, 3, 15) == 15


# ---------------------------------------------------------------------------
# Recurring tasks
# ---------------------------------------------------------------------------


class TestInitialSendTime:
    def test_weekly_from_wednesday_lands_on_monday(self):
        result = initial_send_time("weekly", 9, 0, at(2026, 2, 11, 10, 0), TZ, day_of_week=1)
        assert result == at(2026, 2, 16, 9, 0)

    def test_daily_later_today(self):
        result = initial_send_time("daily", 11, 0, at(2026, 2, 11, 10, 0), TZ)
        assert result == at(2026, 2, 11, 11, 0)

    def test_daily_skips_excluded_weekend(self):
        # Friday evening; Saturday and Sunday excluded
        result = initial_send_time("daily", 9, 0, at(2026, 2, 13, 18, 0), TZ, exclude_days=[0, 6])
        assert result == at(2026, 2, 16, 9, 0)

    def test_monthly_clamps_to_short_month(self):
        result = initial_send_time("monthly", 9, 0, at(2026, 2, 11, 10, 0), TZ, day_of_month=31)
        assert result == at(2026, 2, 28, 9, 0)

    def test_result_is_strictly_after_now(self):
        now = at(2026, 2, 11, 9, 0)
        assert initial_send_time("daily", 9, 0, now, TZ) == at(2026, 2, 12, 9, 0)

    def test_all_days_excluded(self):
        with pytest.raises(ValueError):
            initial_send_time("daily", 9, 0, at(2026, 2, 11), TZ, exclude_days=list(range(7)))

    def test_weekly_requires_day(self):
        with pytest.raises(ValueError):
            initial_send_time("weekly", 9, 0, at(2026, 2, 11), TZ)

    def test_unknown_frequency(self):
        with pytest.raises(ValueError):
            initial_send_time("hourly", 9, 0, at(2026, 2, 11), TZ)


class TestNextRecurringSend:
    def test_weekly_advances_one_week(self):
        result = next_recurring_send("weekly", 9, 0, at(2026, 2, 16, 9, 0), TZ, day_of_week=1)
        assert result == at(2026, 2, 23, 9, 0)

    def test_daily_friday_to_monday(self):
        result = next_recurring_send("daily", 9, 0, at(2026, 2, 13, 9, 0), TZ, exclude_days=[0, 6])
        assert result == at(2026, 2, 16, 9, 0)

    def test_monthly_after_clamped_day(self):
        result = next_recurring_send("monthly", 9, 0, at(2026, 2, 28, 9, 0), TZ, day_of_month=31)
        assert result == at(2026, 3, 31, 9, 0)

    def test_keeps_local_clock_time(self):
        current = datetime(2026, 2, 11, 1, 0, tzinfo=timezone.utc)  # 09:00 Manila
        result = next_recurring_send("daily", 9, 0, current, TZ)
        assert result == at(2026, 2, 12, 9, 0)


class TestDescribeSchedule:
    def test_daily_with_exclusions(self):
        assert describe_schedule("daily", 9, 0, exclude_days=[0, 6]) == "毎日 9:00（日、土曜日除く）"

    def test_daily_plain(self):
        assert describe_schedule("daily", 7, 5) == "毎日 7:05"

    def test_weekly(self):
        assert describe_schedule("weekly", 9, 0, day_of_week=1) == "毎週月曜日 9:00"

    def test_monthly(self):
        assert describe_schedule("monthly", 18, 30, day_of_month=15) == "毎月15日 18:30"


# ---------------------------------------------------------------------------
# Recurring reminders
# ---------------------------------------------------------------------------


class TestNextReminderTime:
    def test_one_off_has_no_next(self):
        assert next_reminder_time("none", [], at(2026, 2, 11, 9, 0), 0, TZ) is None

    def test_daily_keeps_lead_time(self):
        result = next_reminder_time("daily", [], at(2026, 2, 11, 9, 50), 10, TZ)
        assert result == at(2026, 2, 12, 9, 50)

    def test_weekly_plain(self):
        result = next_reminder_time("weekly", [], at(2026, 2, 11, 9, 0), 0, TZ)
        assert result == at(2026, 2, 18, 9, 0)

    def test_weekly_on_listed_days(self):
        # Wednesday → next Monday (1) or Wednesday (3)
        result = next_reminder_time("weekly", [1, 3], at(2026, 2, 11, 9, 0), 0, TZ)
        assert result == at(2026, 2, 16, 9, 0)

    def test_monthly_plain_clamps(self):
        result = next_reminder_time("monthly", [], at(2026, 1, 31, 9, 0), 0, TZ)
        assert result == at(2026, 2, 28, 9, 0)

    def test_monthly_on_listed_day(self):
        result = next_reminder_time("monthly", [31], at(2026, 1, 31, 9, 0), 0, TZ)
        assert result == at(2026, 2, 28, 9, 0)


class TestDescribeRepeat:
    def test_labels(self):
        assert describe_repeat("daily", []) == "毎日"
        assert describe_repeat("weekly", [1, 3]) == "毎週月・水曜日"
        assert describe_repeat("monthly", [1, 15]) == "毎月1,15日"
        assert describe_repeat("none", []) == ""
