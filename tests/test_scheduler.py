"""Tests for secretary.core.scheduler — reminder, recurring-task, meeting and overdue sweeps."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from unittest.mock import patch

import pytest

from secretary.core.scheduler import (
    check_overdue_tasks,
    meeting_start_text,
    overdue_text,
    process_meeting_reminders,
    process_recurring_tasks,
    process_reminders,
    recurring_reminder_text,
)
from secretary.data.models import REMINDER_PENDING, REMINDER_SENT
from secretary.handlers.recurring import completion_token
from secretary.ports.messaging_port import MessagingError
from tests.helpers import GROUP_ID, MANILA, OWNER_ID, button_tokens, texts_sent

TZ = "Asia/Manila"


def _at(day, hour, minute=0):
    return datetime(2026, 2, day, hour, minute, tzinfo=MANILA)


def _overdue_task(store, due_at, message_id=100):
    task = store.tasks.create(
        chat_id=GROUP_ID,
        message_id=message_id,
        requester_id=OWNER_ID,
        assignee="yamada",
        title="資料作成",
        requester_name="@owner",
    )
    store.tasks.set_deadline(task.id, due_at)
    return store.tasks.get(task.id)


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class TestProcessReminders:
    @pytest.mark.asyncio
    async def test_one_off_fires_and_is_marked_sent(self, services, messenger, store):
        reminder = store.reminders.create(GROUP_ID, OWNER_ID, "🔔 「朝会」のお時間です。", _at(11, 9, 50))
        store.reminders.create(GROUP_ID, OWNER_ID, "later", _at(11, 11))

        assert await process_reminders(services) == 1

        assert texts_sent(messenger) == ["🔔 「朝会」のお時間です。"]
        stored = store.reminders.get(reminder.id)
        assert stored.status == REMINDER_SENT
        assert stored.sent_at == _at(11, 10)

    @pytest.mark.asyncio
    async def test_missed_daily_fires_once_and_skips_ahead(self, services, messenger, store):
        reminder = store.reminders.create(
            GROUP_ID, OWNER_ID, "daily", _at(9, 9), repeat_type="daily", event_name="朝会",
        )

        assert await process_reminders(services) == 1

        assert messenger.send_text.await_count == 1
        stored = store.reminders.get(reminder.id)
        assert stored.status == REMINDER_PENDING
        assert stored.remind_at == _at(12, 9)

    @pytest.mark.asyncio
    async def test_weekly_respects_lead_time(self, services, store):
        # Event Wednesdays 10:00, reminded 15 minutes before
        reminder = store.reminders.create(
            GROUP_ID, OWNER_ID, "weekly", _at(11, 9, 45),
            repeat_type="weekly", repeat_days=[3], reminder_minutes_before=15,
        )
        await process_reminders(services)
        assert store.reminders.get(reminder.id).remind_at == _at(18, 9, 45)

    @pytest.mark.asyncio
    async def test_repeat_end_date_finishes_series(self, services, store):
        reminder = store.reminders.create(
            GROUP_ID, OWNER_ID, "daily", _at(11, 9),
            repeat_type="daily", repeat_end_date=_at(11, 23),
        )
        await process_reminders(services)
        assert store.reminders.get(reminder.id).status == REMINDER_SENT

    @pytest.mark.asyncio
    async def test_failed_delivery_is_retried_next_poll(self, services, messenger, store):
        bad = store.reminders.create(GROUP_ID, OWNER_ID, "first", _at(11, 9))
        good = store.reminders.create(GROUP_ID, OWNER_ID, "second", _at(11, 9, 30))
        messenger.send_text.side_effect = [MessagingError("flood"), None]

        assert await process_reminders(services) == 1

        assert store.reminders.get(bad.id).status == REMINDER_PENDING
        assert store.reminders.get(bad.id).remind_at == _at(11, 9)
        assert store.reminders.get(good.id).status == REMINDER_SENT

    @pytest.mark.asyncio
    async def test_store_failure_does_not_abort_batch(self, services, messenger, store):
        first = store.reminders.create(GROUP_ID, OWNER_ID, "first", _at(11, 9))
        second = store.reminders.create(GROUP_ID, OWNER_ID, "second", _at(11, 9, 30))
        real_mark_sent = store.reminders.mark_sent

        def mark_sent(reminder_id, at):
            if reminder_id == first.id:
                raise sqlite3.OperationalError("database is locked")
            return real_mark_sent(reminder_id, at)

        with patch.object(store.reminders, "mark_sent", side_effect=mark_sent):
            assert await process_reminders(services) == 2

        assert texts_sent(messenger) == ["first", "second"]
        assert store.reminders.get(first.id).status == REMINDER_PENDING
        assert store.reminders.get(second.id).status == REMINDER_SENT


# ---------------------------------------------------------------------------
# Recurring tasks
# ---------------------------------------------------------------------------


class TestProcessRecurringTasks:
    @pytest.mark.asyncio
    async def test_due_task_sent_with_completion_button(self, services, messenger, store):
        task = store.recurring_tasks.create(GROUP_ID, "tanaka", "掃除", "daily", 9, 0, _at(11, 9))

        assert await process_recurring_tasks(services) == 1

        assert messenger.send_with_buttons.call_args.args[1] == (
            "🔔 定期タスクのリマインダー\n\n📝 掃除\n👤 担当: @tanaka\n📅 毎日 9:00"
        )
        assert button_tokens(messenger) == [completion_token(task.id, _at(11, 9))]
        stored = store.recurring_tasks.get(task.id)
        assert stored.next_send_at == _at(12, 9)
        assert stored.last_sent_at == _at(11, 10)

    @pytest.mark.asyncio
    async def test_long_downtime_sends_once(self, services, messenger, store):
        task = store.recurring_tasks.create(
            GROUP_ID, "tanaka", "週報", "weekly", 9, 0, _at(2, 9), day_of_week=1,
        )
        await process_recurring_tasks(services)
        assert messenger.send_with_buttons.await_count == 1
        assert store.recurring_tasks.get(task.id).next_send_at == _at(16, 9)

    @pytest.mark.asyncio
    async def test_not_yet_due(self, services, messenger, store):
        store.recurring_tasks.create(GROUP_ID, "tanaka", "掃除", "daily", 18, 0, _at(11, 18))
        assert await process_recurring_tasks(services) == 0
        messenger.send_with_buttons.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_leaves_pointer(self, services, messenger, store):
        task = store.recurring_tasks.create(GROUP_ID, "tanaka", "掃除", "daily", 9, 0, _at(11, 9))
        messenger.send_with_buttons.side_effect = MessagingError("chat not found")
        assert await process_recurring_tasks(services) == 0
        assert store.recurring_tasks.get(task.id).next_send_at == _at(11, 9)

    @pytest.mark.asyncio
    async def test_store_failure_does_not_abort_batch(self, services, messenger, store):
        first = store.recurring_tasks.create(GROUP_ID, "tanaka", "掃除", "daily", 9, 0, _at(11, 9))
        second = store.recurring_tasks.create(GROUP_ID, "sato", "日報", "daily", 9, 30, _at(11, 9, 30))
        real_advance = store.recurring_tasks.advance

        def advance(task_id, following, at):
            if task_id == first.id:
                raise sqlite3.OperationalError("database is locked")
            return real_advance(task_id, following, at)

        with patch.object(store.recurring_tasks, "advance", side_effect=advance):
            assert await process_recurring_tasks(services) == 2

        assert messenger.send_with_buttons.await_count == 2
        assert store.recurring_tasks.get(first.id).next_send_at == _at(11, 9)
        assert store.recurring_tasks.get(second.id).next_send_at == _at(12, 9, 30)

    def test_reminder_text_with_exclusions(self, store):
        task = store.recurring_tasks.create(
            GROUP_ID, "tanaka", "日報", "daily", 18, 30, _at(11, 18, 30), exclude_days=[0, 6],
        )
        assert recurring_reminder_text(task).endswith("📅 毎日 18:30（日、土曜日除く）")


# ---------------------------------------------------------------------------
# Meeting start notices
# ---------------------------------------------------------------------------


class TestMeetingReminders:
    @pytest.mark.asyncio
    async def test_notice_sent_once(self, services, messenger, store):
        store.meetings.create(
            GROUP_ID, "定例", "online", "https://meet.google.com/abc-defg-hij",
            _at(11, 10, 5), _at(11, 11, 5),
        )

        assert await process_meeting_reminders(services) == 1
        assert await process_meeting_reminders(services) == 0

        assert texts_sent(messenger) == [
            "⏰ ミーティングリマインダー: 「定例」がまもなく開始します（2月11日 10:05）"
            "\n\n参加リンク: https://meet.google.com/abc-defg-hij"
        ]

    @pytest.mark.asyncio
    async def test_outside_window(self, services, messenger, store):
        store.meetings.create(GROUP_ID, "午後会議", "online", "", _at(11, 10, 30), _at(11, 11, 30))
        assert await process_meeting_reminders(services) == 0
        messenger.send_text.assert_not_awaited()

    def test_in_person_text(self, store):
        meeting = store.meetings.create(GROUP_ID, "面談", "in_person", "3F会議室", _at(11, 10, 5), _at(11, 11))
        assert meeting_start_text(meeting, TZ).endswith("\n\n📍 場所: 3F会議室")


# ---------------------------------------------------------------------------
# Overdue tasks
# ---------------------------------------------------------------------------


class TestCheckOverdueTasks:
    @pytest.mark.asyncio
    async def test_first_nudge_then_held(self, services, messenger, store, clock):
        task = _overdue_task(store, _at(10, 23, 59))

        assert await check_overdue_tasks(services) == 1
        assert button_tokens(messenger) == ["task_complete:100"]
        text = messenger.send_with_buttons.call_args.args[1]
        assert text.startswith("⚠️ 期限切れリマインダー: @yamada さん、タスク「資料作成」の期限が過ぎました")
        assert store.tasks.get(task.id).nudge_level == 1

        clock.advance(hours=1)
        assert await check_overdue_tasks(services) == 0

    @pytest.mark.asyncio
    async def test_escalates_after_a_full_day(self, services, messenger, store, clock):
        task = _overdue_task(store, _at(10, 23, 59))
        await check_overdue_tasks(services)

        clock.advance(days=1)
        assert await check_overdue_tasks(services) == 1
        assert "期限が1日過ぎています" in messenger.send_with_buttons.call_args.args[1]
        assert store.tasks.get(task.id).nudge_level == 2

    @pytest.mark.asyncio
    async def test_completed_tasks_are_skipped(self, services, messenger, store):
        task = _overdue_task(store, _at(10, 12))
        store.tasks.complete(task.id, _at(10, 13))
        assert await check_overdue_tasks(services) == 0
        messenger.send_with_buttons.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_nudge_not_recorded(self, services, messenger, store):
        task = _overdue_task(store, _at(10, 12))
        messenger.send_with_buttons.side_effect = MessagingError("blocked")
        assert await check_overdue_tasks(services) == 0
        assert store.tasks.get(task.id).nudge_level == 0

    @pytest.mark.asyncio
    async def test_nudge_is_audited(self, services, store):
        task = _overdue_task(store, _at(10, 12))
        await check_overdue_tasks(services)

        entry = store.audit.list_recent()[0]
        assert entry.action == "task_nudged"
        assert entry.actor_id is None
        assert entry.object_id == str(task.id)
        assert entry.payload == {"level": 1}

    @pytest.mark.asyncio
    async def test_store_failure_does_not_abort_batch(self, services, messenger, store):
        first = _overdue_task(store, _at(10, 12), message_id=100)
        second = _overdue_task(store, _at(10, 12), message_id=101)
        real_record = store.tasks.record_nudge

        def record_nudge(task_id, level, at):
            if task_id == first.id:
                raise sqlite3.OperationalError("database is locked")
            return real_record(task_id, level, at)

        with patch.object(store.tasks, "record_nudge", side_effect=record_nudge):
            assert await check_overdue_tasks(services) == 2

        assert store.tasks.get(first.id).nudge_level == 0
        assert store.tasks.get(second.id).nudge_level == 1

    def test_overdue_text_counts_whole_days(self, store):
        task = _overdue_task(store, _at(8, 9))
        text = overdue_text(task, _at(11, 10), TZ)
        assert "期限が3日過ぎています（期限: 2月8日 09:00）" in text
        assert text.endswith("３時間ごとにリマインダーが送られます。")
