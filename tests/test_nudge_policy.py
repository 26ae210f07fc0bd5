"""Tests for secretary.core.nudge_policy — overdue escalation ladder."""

from datetime import datetime, timedelta, timezone

from secretary.core.nudge_policy import should_nudge

DUE = datetime(2026, 2, 10, 15, 59, 59, tzinfo=timezone.utc)


def after(**kwargs) -> datetime:
    return DUE + timedelta(**kwargs)


class TestShouldNudge:
    def test_not_yet_due(self):
        decision = should_nudge(DUE, DUE - timedelta(minutes=1), 0, None)
        assert decision.nudge is False
        assert decision.next_level == 0

    def test_first_nudge_as_soon_as_overdue(self):
        decision = should_nudge(DUE, after(minutes=5), 0, None)
        assert decision.nudge is True
        assert decision.next_level == 1

    def test_level_one_waits_a_full_day(self):
        decision = should_nudge(DUE, after(hours=20), 1, after(hours=1))
        assert decision.nudge is False
        assert decision.next_level == 1

    def test_level_one_escalates_after_a_day(self):
        decision = should_nudge(DUE, after(days=1, hours=1), 1, after(hours=1))
        assert decision.nudge is True
        assert decision.next_level == 2

    def test_level_two_needs_three_days(self):
        assert should_nudge(DUE, after(days=2, hours=23), 2, after(days=1)).nudge is False
        decision = should_nudge(DUE, after(days=3), 2, after(days=1))
        assert decision.nudge is True
        assert decision.next_level == 3

    def test_level_three_needs_six_days(self):
        assert should_nudge(DUE, after(days=5), 3, after(days=3)).nudge is False
        assert should_nudge(DUE, after(days=6), 3, after(days=3)).next_level == 4

    def test_rate_limit_blocks_recent_nudge(self):
        decision = should_nudge(DUE, after(days=1, hours=1), 1, after(days=1))
        assert decision.nudge is False
        assert decision.next_level == 1

    def test_rate_limit_lifts_after_three_hours(self):
        decision = should_nudge(DUE, after(days=1, hours=3), 1, after(days=1))
        assert decision.nudge is True

    def test_level_one_within_first_day_never_nudges(self):
        decision = should_nudge(DUE, after(hours=1), 1, DUE)
        assert decision.nudge is False
