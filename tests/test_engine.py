"""Tests for secretary.core.engine — routing, precedence, dedup, callback acks."""

import sqlite3
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from secretary.core.dedup import DeliveryDeduplicator
from secretary.core.engine import CALLBACK_ACK, ConversationEngine
from secretary.core.events import Chat, Mention, PhotoMessage, Sender, VoiceMessage
from secretary.core.pending import STEP_FREQUENCY, AwaitingCustomDate, AwaitingRecurringStep
from secretary.core.services import STORE_APOLOGY
from secretary.ports.messaging_port import MessagingError
from tests.helpers import GROUP_ID, MANILA, OWNER_ID, button_tokens, make_click, make_text, texts_sent


@pytest.fixture
def engine(services):
    return ConversationEngine(services)


def _photo(caption, chat_type="supergroup", chat_id=GROUP_ID):
    return PhotoMessage(
        chat=Chat(chat_id=chat_id, chat_type=chat_type),
        sender=Sender(user_id=OWNER_ID, username="owner"),
        message_id=300,
        file_id="photo-file",
        caption=caption,
    )


def _voice(message_id=400):
    return VoiceMessage(
        chat=Chat(chat_id=GROUP_ID, chat_type="supergroup"),
        sender=Sender(user_id=OWNER_ID, username="owner"),
        message_id=message_id,
        file_id="voice-file",
    )


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestDedup:
    @pytest.mark.asyncio
    async def test_redelivered_message_handled_once(self, engine, messenger, store, registered_group):
        message = make_text("【タスク】 資料作成")
        await engine.handle(message)
        await engine.handle(message)

        assert messenger.send_with_buttons.await_count == 1
        assert store.tasks.get(2) is None

    @pytest.mark.asyncio
    async def test_redelivered_click_acknowledged_once(self, engine, messenger):
        click = make_click("unknown:1")
        await engine.handle(click)
        await engine.handle(click)
        messenger.answer_callback.assert_awaited_once()

    def test_entries_expire(self):
        now = [0.0]
        dedup = DeliveryDeduplicator(ttl_seconds=60, clock=lambda: now[0])
        assert dedup.is_duplicate("1:1") is False
        assert dedup.is_duplicate("1:1") is True
        now[0] = 61.0
        assert dedup.is_duplicate("1:1") is False
        assert len(dedup) == 1


class TestErrorsSwallowed:
    @pytest.mark.asyncio
    async def test_handler_exception_does_not_escape(self, engine, registered_group):
        with patch("secretary.handlers.tasks.handle_task_trigger", new=AsyncMock(side_effect=RuntimeError("boom"))):
            await engine.handle(make_text("【タスク】 x"))

    @pytest.mark.asyncio
    async def test_store_failure_reported_to_chat(self, engine, messenger, store, registered_group):
        locked = sqlite3.OperationalError("database is locked")
        with patch.object(store.tasks, "create", side_effect=locked):
            await engine.handle(make_text("【タスク】 資料作成"))

        messenger.send_text.assert_awaited_once_with(GROUP_ID, STORE_APOLOGY)
        messenger.send_with_buttons.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreported_store_failure_clears_pending(self, engine, services, messenger, store):
        services.pending.set(GROUP_ID, AwaitingCustomDate(task_message_id=100))
        with patch.object(store.tasks, "get_by_message", side_effect=sqlite3.OperationalError("disk I/O error")):
            await engine.handle(make_click("task_complete:100"))

        assert services.pending.get(GROUP_ID) is None
        messenger.send_text.assert_awaited_once_with(GROUP_ID, STORE_APOLOGY)
        messenger.answer_callback.assert_awaited_once_with("cb-1", CALLBACK_ACK)


# ---------------------------------------------------------------------------
# Text classification
# ---------------------------------------------------------------------------


class TestTextRouting:
    @pytest.mark.asyncio
    async def test_unregistered_group_dropped(self, engine, messenger, store):
        await engine.handle(make_text("【タスク】 資料作成"))
        assert store.tasks.get(1) is None
        messenger.send_with_buttons.assert_not_awaited()
        messenger.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_chat_id_works_unregistered(self, engine, messenger):
        await engine.handle(make_text("【チャットID】"))
        assert button_tokens(messenger) == [f"register_group:{GROUP_ID}:{OWNER_ID}"]

    @pytest.mark.asyncio
    async def test_first_matching_trigger_wins(self, engine, store, registered_group):
        with patch("secretary.handlers.drafts.handle_ai_query", new=AsyncMock()) as ai:
            await engine.handle(make_text("【AI】【タスク】 議事録"))
        ai.assert_not_awaited()
        assert store.tasks.get_by_message(GROUP_ID, 100) is not None

    @pytest.mark.asyncio
    async def test_empty_ai_query(self, engine, messenger, registered_group):
        await engine.handle(make_text("【AI】  "))
        assert texts_sent(messenger) == ["【AI】の後に質問や依頼内容を入力してください。"]

    @pytest.mark.asyncio
    async def test_ai_query_passed_without_trigger(self, engine, registered_group):
        with patch("secretary.handlers.drafts.handle_ai_query", new=AsyncMock()) as ai:
            await engine.handle(make_text("【AI】 来週の出張の案内文"))
        assert ai.call_args.args[3] == "来週の出張の案内文"

    @pytest.mark.asyncio
    async def test_plain_chatter_is_ignored(self, engine, messenger, registered_group):
        await engine.handle(make_text("おはようございます"))
        messenger.send_text.assert_not_awaited()
        messenger.send_with_buttons.assert_not_awaited()


class TestBotMention:
    @pytest.mark.asyncio
    async def test_bare_mention_prompts(self, engine, messenger, registered_group):
        await engine.handle(make_text("@secretary_bot", mentions=[Mention("@secretary_bot")]))
        assert texts_sent(messenger) == ["ご用件をどうぞ。"]

    @pytest.mark.asyncio
    async def test_mention_with_query(self, engine, registered_group):
        message = make_text("@Secretary_Bot 明日の予定は？", mentions=[Mention("@Secretary_Bot")])
        with patch("secretary.handlers.drafts.handle_ai_query", new=AsyncMock()) as ai:
            await engine.handle(message)
        assert ai.call_args.args[3] == "明日の予定は？"

    @pytest.mark.asyncio
    async def test_text_mention_by_user_id(self, engine, messenger, registered_group):
        message = make_text("秘書さん", mentions=[Mention("秘書さん", kind="text_mention", user_id=999)])
        await engine.handle(message)
        assert texts_sent(messenger) == ["ご用件をどうぞ。"]

    @pytest.mark.asyncio
    async def test_other_user_mention_is_not_for_bot(self, engine, messenger, registered_group):
        await engine.handle(make_text("@tanaka よろしく", mentions=[Mention("@tanaka")]))
        messenger.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_identity_lookup_failure(self, engine, messenger, registered_group):
        messenger.resolve_bot_identity.side_effect = MessagingError("timeout")
        await engine.handle(make_text("@secretary_bot", mentions=[Mention("@secretary_bot")]))
        messenger.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_mentions_skips_lookup(self, engine, messenger, registered_group):
        await engine.handle(make_text("こんにちは"))
        messenger.resolve_bot_identity.assert_not_awaited()


class TestPrivateChat:
    @pytest.mark.asyncio
    async def test_draft_edit_consumed(self, engine, messenger, store):
        draft = store.drafts.create(OWNER_ID, "旧文面", GROUP_ID)
        store.drafts.start_editing(draft.id)

        await engine.handle(make_text("新しい文面", chat_id=OWNER_ID, chat_type="private"))

        assert store.drafts.get(draft.id).draft_text == "新しい文面"
        assert messenger.send_with_buttons.call_args.args[0] == OWNER_ID

    @pytest.mark.asyncio
    async def test_triggers_ignored_in_private(self, engine, messenger, store):
        await engine.handle(make_text("【タスク】 x", chat_id=OWNER_ID, chat_type="private"))
        assert store.tasks.get(1) is None
        messenger.send_with_buttons.assert_not_awaited()


# ---------------------------------------------------------------------------
# Pending continuations
# ---------------------------------------------------------------------------


class TestPendingState:
    @pytest.mark.asyncio
    async def test_custom_deadline_round_trip(self, engine, messenger, store, services, registered_group):
        await engine.handle(make_text("【タスク】 資料作成"))
        await engine.handle(make_click("task_deadline:custom:100"))
        assert texts_sent(messenger)[-1].startswith("📅 期限の日付を入力してください")

        await engine.handle(make_text("2/15", message_id=101))

        task = store.tasks.get_by_message(GROUP_ID, 100)
        assert task.due_at == datetime(2026, 2, 15, 23, 59, 59, 999000, tzinfo=MANILA)
        assert messenger.send_with_buttons.call_args.args[1].startswith("タスクの期限を 2026/2/15 に設定しました")
        assert services.pending.get(GROUP_ID) is None

    @pytest.mark.asyncio
    async def test_continuation_beats_triggers(self, engine, messenger, store, registered_group):
        await engine.handle(make_text("【タスク】 資料作成"))
        await engine.handle(make_click("task_deadline:custom:100"))
        await engine.handle(make_text("【タスク】 別件", message_id=101))

        assert store.tasks.get_by_message(GROUP_ID, 101) is None
        assert texts_sent(messenger)[-1].startswith("日付の形式が認識できませんでした。")

    @pytest.mark.asyncio
    async def test_button_step_leaves_text_to_triggers(self, engine, services, store, registered_group):
        services.pending.set(GROUP_ID, AwaitingRecurringStep(step=STEP_FREQUENCY, creator_id=OWNER_ID))
        await engine.handle(make_text("【タスク】 資料作成"))
        assert store.tasks.get_by_message(GROUP_ID, 100) is not None

    @pytest.mark.asyncio
    async def test_recurring_dialog_end_to_end(self, engine, messenger, store, services, registered_group):
        await engine.handle(make_text("【定期タスク】", message_id=100))
        await engine.handle(make_click("recurring_freq:daily", callback_id="cb-1"))
        await engine.handle(make_click("recurring_exclude:done", callback_id="cb-2"))
        await engine.handle(make_text("9:00", message_id=101))
        await engine.handle(make_text("ゴミ出し", message_id=102))
        await engine.handle(make_text("@tanaka", message_id=103))

        task = store.recurring_tasks.get(1)
        assert task.task_title == "ゴミ出し"
        assert task.frequency == "daily"
        assert task.next_send_at == datetime(2026, 2, 12, 9, 0, tzinfo=MANILA)
        assert services.pending.get(GROUP_ID) is None
        assert messenger.answer_callback.await_count == 2


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_unknown_token_still_acknowledged(self, engine, messenger):
        await engine.handle(make_click("mystery:1", callback_id="cb-9"))
        messenger.answer_callback.assert_awaited_once_with("cb-9", CALLBACK_ACK)

    @pytest.mark.asyncio
    async def test_failing_handler_still_acknowledged(self, engine, messenger):
        await engine.handle(make_click("task_complete:not-a-number"))
        messenger.answer_callback.assert_awaited_once_with("cb-1", "処理しました")

    @pytest.mark.asyncio
    async def test_ack_failure_is_swallowed(self, engine, messenger, store, registered_group):
        messenger.answer_callback.side_effect = MessagingError("query is too old")
        await engine.handle(make_text("【タスク】 資料作成"))
        await engine.handle(make_click("task_deadline:today:100"))
        assert store.tasks.get_by_message(GROUP_ID, 100).due_at is not None

    @pytest.mark.asyncio
    async def test_registration_button(self, engine, store):
        await engine.handle(make_click(f"register_group:{GROUP_ID}:{OWNER_ID}"))
        assert store.group_chats.is_registered(GROUP_ID)


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------


class TestMediaRouting:
    @pytest.mark.asyncio
    async def test_photo_without_trigger_ignored(self, engine, registered_group):
        with patch("secretary.handlers.media.handle_photo_edit", new=AsyncMock()) as edit:
            await engine.handle(_photo("旅行の写真"))
        edit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_photo_in_unregistered_group_ignored(self, engine):
        with patch("secretary.handlers.media.handle_photo_edit", new=AsyncMock()) as edit:
            await engine.handle(_photo("【画像生成】夜空にして"))
        edit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_photo_in_private_chat_allowed(self, engine):
        with patch("secretary.handlers.media.handle_photo_edit", new=AsyncMock()) as edit:
            await engine.handle(_photo("【画像生成】夜空にして", chat_type="private", chat_id=OWNER_ID))
        edit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_voice_requires_registration(self, engine, store):
        with patch("secretary.handlers.media.handle_voice", new=AsyncMock()) as voice:
            await engine.handle(_voice())
            voice.assert_not_awaited()
            store.group_chats.register(GROUP_ID, "Team Chat", "supergroup", responsible_user_id=OWNER_ID)
            await engine.handle(_voice(message_id=401))
        voice.assert_awaited_once()
