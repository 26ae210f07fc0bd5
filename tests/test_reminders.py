"""Tests for secretary.handlers.reminders — set_reminder tool calls → Reminder rows."""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from secretary.core.llm import AIProviderError, ToolCall
from secretary.handlers.reminders import (
    create_reminder_from_tool,
    handle_reminder_request,
    parse_repeat_days,
    reminder_message,
)
from tests.helpers import GROUP_ID, MANILA, OWNER_ID, make_text, texts_sent

TZ = "Asia/Manila"


class TestHelpers:
    def test_parse_repeat_days(self):
        assert parse_repeat_days("1, 3,x,5") == [1, 3, 5]
        assert parse_repeat_days([2, "4"]) == [2, 4]
        assert parse_repeat_days(None) == []
        assert parse_repeat_days("") == []

    def test_reminder_message(self):
        assert reminder_message("朝会", 0) == "🔔 「朝会」のお時間です。"
        assert "あと15分です" in reminder_message("朝会", 15)


# ---------------------------------------------------------------------------
# Tool arguments → Reminder
# ---------------------------------------------------------------------------


class TestCreateReminderFromTool:
    @pytest.mark.asyncio
    async def test_one_off_before_event(self, services, messenger, store):
        reminder = await create_reminder_from_tool(services, GROUP_ID, OWNER_ID, {
            "event_name": "定例会議",
            "event_datetime": "2026-02-11T18:00:00",
            "reminder_minutes_before": 15,
        }, TZ)

        assert reminder.remind_at == datetime(2026, 2, 11, 17, 45, tzinfo=MANILA)
        stored = store.reminders.get(reminder.id)
        assert stored.repeat_type == "none"
        assert stored.message == "🔔 「定例会議」まであと15分です。ご準備をお願いいたします。"
        assert texts_sent(messenger) == [
            "✅ リマインダーを設定しました！\n\n📅 イベント: 定例会議\n🔔 次回リマインド: 2/11 17:45"
        ]
        assert store.audit.list_recent()[0].action == "reminder_created"

    @pytest.mark.asyncio
    async def test_offset_datetime_kept(self, services, store):
        reminder = await create_reminder_from_tool(services, GROUP_ID, OWNER_ID, {
            "event_name": "通話",
            "event_datetime": "2026-02-11T12:00:00+09:00",
            "reminder_minutes_before": 0,
        }, TZ)
        assert reminder.remind_at == datetime(2026, 2, 11, 11, 0, tzinfo=MANILA)

    @pytest.mark.asyncio
    async def test_one_off_in_past_rejected(self, services, messenger, store):
        result = await create_reminder_from_tool(services, GROUP_ID, OWNER_ID, {
            "event_name": "朝会",
            "event_datetime": "2026-02-11T09:00:00",
            "reminder_minutes_before": 0,
        }, TZ)
        assert result is None
        assert "過去の時刻" in texts_sent(messenger)[0]
        assert store.reminders.pending_reminders(datetime(2030, 1, 1, tzinfo=MANILA)) == []

    @pytest.mark.asyncio
    async def test_recurring_past_start_advances(self, services, messenger):
        # Monday 2/9 is already past on Wednesday 2/11
        reminder = await create_reminder_from_tool(services, GROUP_ID, OWNER_ID, {
            "event_name": "週次朝会",
            "event_datetime": "2026-02-09T09:00:00",
            "reminder_minutes_before": 0,
            "repeat_type": "weekly",
            "repeat_days": "1",
        }, TZ)
        assert reminder.remind_at == datetime(2026, 2, 16, 9, 0, tzinfo=MANILA)
        assert reminder.repeat_days == [1]
        assert texts_sent(messenger)[0].endswith("🔁 繰り返し: 毎週月曜日")

    @pytest.mark.asyncio
    async def test_unknown_repeat_type_is_one_off(self, services):
        reminder = await create_reminder_from_tool(services, GROUP_ID, OWNER_ID, {
            "event_name": "x",
            "event_datetime": "2026-02-12T09:00:00",
            "reminder_minutes_before": 0,
            "repeat_type": "yearly",
        }, TZ)
        assert reminder.repeat_type == "none"

    @pytest.mark.asyncio
    async def test_invalid_datetime(self, services, messenger):
        result = await create_reminder_from_tool(services, GROUP_ID, OWNER_ID, {
            "event_name": "x",
            "event_datetime": "来週のどこか",
            "reminder_minutes_before": 0,
        }, TZ)
        assert result is None
        assert texts_sent(messenger) == ["❌ リマインダーの作成に失敗しました。"]


# ---------------------------------------------------------------------------
# Tool calling round
# ---------------------------------------------------------------------------


class TestHandleReminderRequest:
    @pytest.mark.asyncio
    async def test_forces_set_reminder(self, services, store):
        call = ToolCall(name="set_reminder", arguments={
            "event_name": "会議", "event_datetime": "2026-02-11T18:00:00", "reminder_minutes_before": 10,
        })
        with patch("secretary.core.llm.complete_with_tools", new=AsyncMock(return_value=call)) as mock_tools:
            await handle_reminder_request(services, make_text("18時の会議、10分前に教えて"),
                                          services.bot_settings(), "18時の会議、10分前に教えて")

        kwargs = mock_tools.call_args.kwargs
        assert kwargs["force_tool"] == "set_reminder"
        assert {t.name for t in kwargs["tools"]} == {"get_current_time", "set_reminder"}
        assert "現在の日付: 2026-02-11" in kwargs["system"]
        reminder = store.reminders.get(1)
        assert reminder.remind_at == datetime(2026, 2, 11, 17, 50, tzinfo=MANILA)

    @pytest.mark.asyncio
    async def test_provider_error(self, services, messenger):
        with patch("secretary.core.llm.complete_with_tools", new=AsyncMock(side_effect=AIProviderError("x"))):
            await handle_reminder_request(services, make_text("q"), services.bot_settings(), "q")
        assert texts_sent(messenger) == ["❌ リマインダーの設定中にエラーが発生しました。"]

    @pytest.mark.asyncio
    async def test_no_tool_call(self, services, messenger):
        with patch("secretary.core.llm.complete_with_tools", new=AsyncMock(return_value=None)):
            await handle_reminder_request(services, make_text("q"), services.bot_settings(), "q")
        assert texts_sent(messenger) == ["❌ リマインダーの設定に失敗しました。もう一度お試しください。"]
