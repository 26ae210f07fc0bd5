"""Telegram messaging adapter — implements MessagingPort.

Wraps a telegram.Bot instance. Transport failures (NetworkError, TimedOut)
are retried with linear backoff. BadRequest subclasses NetworkError but is
a rejection, as is any other TelegramError; those raise MessagingError
immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, Message
from telegram.error import BadRequest, NetworkError, TelegramError

from secretary.ports.messaging_port import BotIdentity, Button, MessagingError, SentMessage

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BACKOFF_SECONDS = 1.0


def _keyboard(buttons: list[list[Button]]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(b.text, callback_data=b.token) for b in row] for row in buttons]
    )


def _sent(message: Message) -> SentMessage:
    return SentMessage(chat_id=message.chat_id, message_id=message.message_id)


class TelegramGateway:
    """Telegram implementation of MessagingPort."""

    def __init__(self, bot: Bot, max_retries: int = 3) -> None:
        self._bot = bot
        self._max_retries = max(1, max_retries)
        self._identity: BotIdentity | None = None

    async def _with_retries(self, label: str, call: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_retries + 1):
            try:
                return await call()
            except BadRequest as exc:
                logger.error("%s rejected: %s", label, exc)
                raise MessagingError(f"{label} rejected: {exc}") from exc
            except NetworkError as exc:
                logger.warning(
                    "%s attempt %d/%d failed: %s", label, attempt, self._max_retries, exc,
                )
                if attempt == self._max_retries:
                    raise MessagingError(f"{label} failed after {attempt} attempts: {exc}") from exc
                await asyncio.sleep(_BACKOFF_SECONDS * attempt)
            except TelegramError as exc:
                logger.error("%s rejected: %s", label, exc)
                raise MessagingError(f"{label} rejected: {exc}") from exc
        raise MessagingError(f"{label} was not attempted")

    async def send_text(self, chat_id: int, text: str) -> SentMessage:
        message = await self._with_retries(
            "send_text", lambda: self._bot.send_message(chat_id=chat_id, text=text),
        )
        return _sent(message)

    async def send_with_buttons(
        self, chat_id: int, text: str, buttons: list[list[Button]]
    ) -> SentMessage:
        markup = _keyboard(buttons)
        message = await self._with_retries(
            "send_with_buttons",
            lambda: self._bot.send_message(chat_id=chat_id, text=text, reply_markup=markup),
        )
        return _sent(message)

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None:
        await self._with_retries(
            "answer_callback",
            lambda: self._bot.answer_callback_query(callback_query_id=callback_id, text=text),
        )

    async def send_photo(
        self, chat_id: int, photo: bytes, caption: str | None = None
    ) -> SentMessage:
        message = await self._with_retries(
            "send_photo",
            lambda: self._bot.send_photo(chat_id=chat_id, photo=photo, caption=caption),
        )
        return _sent(message)

    async def send_voice(self, chat_id: int, voice: bytes) -> SentMessage:
        message = await self._with_retries(
            "send_voice", lambda: self._bot.send_voice(chat_id=chat_id, voice=voice),
        )
        return _sent(message)

    async def resolve_bot_identity(self) -> BotIdentity:
        if self._identity is None:
            me = await self._with_retries("get_me", self._bot.get_me)
            self._identity = BotIdentity(id=me.id, username=me.username or "")
            logger.info("Bot identity cached: @%s", self._identity.username)
        return self._identity

    async def download_attachment(self, file_id: str) -> bytes:
        async def _download() -> bytes:
            tg_file = await self._bot.get_file(file_id)
            return bytes(await tg_file.download_as_bytearray())

        return await self._with_retries("download_attachment", _download)

    async def get_chat_title(self, chat_id: int) -> str:
        chat = await self._with_retries("get_chat", lambda: self._bot.get_chat(chat_id=chat_id))
        return chat.title or chat.full_name or str(chat_id)
