"""Tests for secretary.adapters.telegram_gateway — retries, rejections, identity cache."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import BadRequest, Forbidden, NetworkError, TimedOut

from secretary.adapters.telegram_gateway import TelegramGateway
from secretary.ports.messaging_port import BotIdentity, Button, MessagingError, SentMessage


def _message(chat_id=-1001, message_id=55):
    message = MagicMock()
    message.chat_id = chat_id
    message.message_id = message_id
    return message


@pytest.fixture
def bot():
    mock = AsyncMock()
    mock.send_message.return_value = _message()
    return mock


@pytest.fixture
def gateway(bot):
    with patch("secretary.adapters.telegram_gateway._BACKOFF_SECONDS", 0):
        yield TelegramGateway(bot, max_retries=3)


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------


class TestSend:
    @pytest.mark.asyncio
    async def test_send_text(self, gateway, bot):
        sent = await gateway.send_text(-1001, "こんにちは")
        assert sent == SentMessage(chat_id=-1001, message_id=55)
        bot.send_message.assert_awaited_once_with(chat_id=-1001, text="こんにちは")

    @pytest.mark.asyncio
    async def test_buttons_become_inline_keyboard(self, gateway, bot):
        await gateway.send_with_buttons(-1001, "期限は？", [
            [Button("今日中", "task_deadline:today:1"), Button("明日", "task_deadline:tomorrow:1")],
        ])
        markup = bot.send_message.call_args.kwargs["reply_markup"]
        row = markup.inline_keyboard[0]
        assert [b.text for b in row] == ["今日中", "明日"]
        assert [b.callback_data for b in row] == ["task_deadline:today:1", "task_deadline:tomorrow:1"]

    @pytest.mark.asyncio
    async def test_answer_callback(self, gateway, bot):
        await gateway.answer_callback("cb-1", "処理しました")
        bot.answer_callback_query.assert_awaited_once_with(callback_query_id="cb-1", text="処理しました")


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class TestRetries:
    @pytest.mark.asyncio
    async def test_network_error_retried(self, gateway, bot):
        bot.send_message.side_effect = [NetworkError("reset"), TimedOut(), _message(message_id=7)]
        sent = await gateway.send_text(-1001, "hi")
        assert sent.message_id == 7
        assert bot.send_message.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, gateway, bot):
        bot.send_message.side_effect = NetworkError("down")
        with pytest.raises(MessagingError, match="after 3 attempts"):
            await gateway.send_text(-1001, "hi")
        assert bot.send_message.await_count == 3

    @pytest.mark.asyncio
    async def test_bad_request_not_retried(self, gateway, bot):
        bot.send_message.side_effect = BadRequest("Chat not found")
        with pytest.raises(MessagingError, match="rejected"):
            await gateway.send_text(-1001, "hi")
        assert bot.send_message.await_count == 1

    @pytest.mark.asyncio
    async def test_forbidden_not_retried(self, gateway, bot):
        bot.send_message.side_effect = Forbidden("bot was kicked")
        with pytest.raises(MessagingError):
            await gateway.send_text(-1001, "hi")
        assert bot.send_message.await_count == 1


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    @pytest.mark.asyncio
    async def test_identity_cached(self, gateway, bot):
        me = MagicMock()
        me.id = 999
        me.username = "secretary_bot"
        bot.get_me.return_value = me

        assert await gateway.resolve_bot_identity() == BotIdentity(id=999, username="secretary_bot")
        await gateway.resolve_bot_identity()
        bot.get_me.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_download_attachment(self, gateway, bot):
        tg_file = MagicMock()
        tg_file.download_as_bytearray = AsyncMock(return_value=bytearray(b"ogg-bytes"))
        bot.get_file.return_value = tg_file

        assert await gateway.download_attachment("file-1") == b"ogg-bytes"
        bot.get_file.assert_awaited_once_with("file-1")

    @pytest.mark.asyncio
    async def test_chat_title_falls_back_to_full_name(self, gateway, bot):
        chat = MagicMock()
        chat.title = None
        chat.full_name = "Owner San"
        bot.get_chat.return_value = chat
        assert await gateway.get_chat_title(111) == "Owner San"
