"""
Group Secretary Bot — Conversation Engine.

Single entry point for inbound chat events: `await engine.handle(event)`.
It never raises; every failure is logged and swallowed so the transport can
acknowledge immediately and keep delivering. A store failure that a handler
did not report itself gets the apology here and clears the chat's pending state.

Text messages are classified in a fixed order, first match wins:
  1. private chat      → draft-edit continuation only
  2. 【チャットID】     → chat info (+ registration button), even unregistered
  3. pending state     → continuation for the chat, before any trigger
  4. unregistered chat → dropped
  5. TRIGGERS          → task, meeting, AI, image, recurring, bot mention,
                         reply, translation keywords, translation relay

Button clicks are dispatched on the token prefix (the part before ':').
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Awaitable, Callable

from secretary.config import BotSettings
from secretary.core.dedup import DeliveryDeduplicator
from secretary.core.events import (
    CallbackClick,
    InboundEvent,
    PhotoMessage,
    TextMessage,
    VoiceMessage,
    strip_bot_mention,
)
from secretary.core.pending import AwaitingCustomDate, AwaitingLocation, AwaitingRecurringStep
from secretary.core.services import Services
from secretary.handlers import drafts, media, meetings, recurring, registration, tasks, translation
from secretary.ports.messaging_port import MessagingError

logger = logging.getLogger(__name__)

CALLBACK_ACK = "処理しました"


@dataclass
class TriggerContext:
    """Per-message values shared by trigger predicates and handlers."""

    settings: BotSettings
    bot_query: str | None = None         # text with the bot's mention removed


@dataclass(frozen=True)
class Trigger:
    name: str
    matches: Callable[[TextMessage, TriggerContext], bool]
    handle: Callable[[Services, TextMessage, TriggerContext], Awaitable[object]]


# ---------------------------------------------------------------------------
# Trigger table
# ---------------------------------------------------------------------------


def _contains(keyword: str) -> Callable[[TextMessage, TriggerContext], bool]:
    return lambda message, ctx: keyword in message.text


async def _ai_trigger(svc: Services, message: TextMessage, ctx: TriggerContext) -> None:
    query = message.text.replace(drafts.AI_TRIGGER, "").strip()
    if not query:
        await svc.messenger.send_text(message.chat.chat_id, "【AI】の後に質問や依頼内容を入力してください。")
        return
    await drafts.handle_ai_query(svc, message, ctx.settings, query)


async def _mention_trigger(svc: Services, message: TextMessage, ctx: TriggerContext) -> None:
    if not ctx.bot_query:
        await svc.messenger.send_text(message.chat.chat_id, "ご用件をどうぞ。")
        return
    await drafts.handle_ai_query(svc, message, ctx.settings, ctx.bot_query)


def _relay_matches(message: TextMessage, ctx: TriggerContext) -> bool:
    return translation.is_relayable(message.text)


TRIGGERS: list[Trigger] = [
    Trigger("task", _contains(tasks.TRIGGER), lambda svc, m, ctx: tasks.handle_task_trigger(svc, m)),
    Trigger("meeting", _contains(meetings.TRIGGER), lambda svc, m, ctx: meetings.handle_meeting_trigger(svc, m)),
    Trigger("ai", _contains(drafts.AI_TRIGGER), _ai_trigger),
    Trigger("image", _contains(media.IMAGE_TRIGGER), lambda svc, m, ctx: media.handle_image_trigger(svc, m)),
    Trigger(
        "recurring", _contains(recurring.TRIGGER),
        lambda svc, m, ctx: recurring.handle_recurring_trigger(svc, m),
    ),
    Trigger("bot_mention", lambda m, ctx: ctx.bot_query is not None, _mention_trigger),
    Trigger("reply", _contains(drafts.REPLY_TRIGGER), lambda svc, m, ctx: drafts.handle_reply_trigger(svc, m)),
    Trigger(
        "translation_keyword",
        lambda m, ctx: translation.is_translation_keyword(m.text, ctx.settings),
        lambda svc, m, ctx: translation.handle_translation_keyword(svc, m, ctx.settings),
    ),
    Trigger("translation_relay", _relay_matches, lambda svc, m, ctx: translation.relay(svc, m)),
]

_CONTINUATIONS = {
    AwaitingCustomDate: tasks.handle_custom_date_input,
    AwaitingLocation: meetings.handle_location_input,
    AwaitingRecurringStep: recurring.handle_step_input,
}

_CALLBACKS: dict[str, Callable[[Services, CallbackClick], Awaitable[None]]] = {
    "task_deadline": tasks.handle_deadline_choice,
    "task_complete": tasks.handle_completion,
    "meeting_type": meetings.handle_format_choice,
    "meeting_reminder": meetings.handle_reminder_setup,
    "draft": drafts.handle_draft_action,
    "recurring_freq": recurring.handle_frequency_choice,
    "recurring_exclude": recurring.handle_exclude_choice,
    "recurring_dow": recurring.handle_day_of_week_choice,
    "rt_complete": recurring.handle_completion,
    "register_group": registration.handle_registration,
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ConversationEngine:
    def __init__(
        self,
        services: Services,
        dedup: DeliveryDeduplicator | None = None,
        triggers: list[Trigger] | None = None,
    ) -> None:
        self.services = services
        self.dedup = dedup or DeliveryDeduplicator()
        self.triggers = triggers if triggers is not None else TRIGGERS

    async def handle(self, event: InboundEvent) -> None:
        if self.dedup.is_duplicate(event.dedup_key):
            logger.info("Duplicate delivery %s ignored", event.dedup_key)
            return
        try:
            if isinstance(event, TextMessage):
                await self._on_text(event)
            elif isinstance(event, CallbackClick):
                await self._on_callback(event)
            elif isinstance(event, PhotoMessage):
                await self._on_photo(event)
            elif isinstance(event, VoiceMessage):
                await self._on_voice(event)
            else:
                logger.warning("Unsupported event type %s", type(event).__name__)
        except sqlite3.Error as exc:
            await self.services.report_store_failure(event.chat.chat_id, exc)
        except Exception:
            logger.exception("Error handling %s %s", type(event).__name__, event.dedup_key)

    # -- text -------------------------------------------------------------

    async def _on_text(self, message: TextMessage) -> None:
        svc = self.services
        chat = message.chat

        if chat.is_private:
            if not await drafts.handle_draft_edit(svc, message):
                logger.info("Private message from %d ignored", message.sender.user_id)
            return

        if registration.is_chat_id_request(message.text):
            await registration.handle_chat_id_request(svc, message)
            return

        state = svc.pending.get(chat.chat_id)
        if state is not None and state.consumes_text:
            logger.info("Chat %d: continuing %s", chat.chat_id, type(state).__name__)
            await _CONTINUATIONS[type(state)](svc, message, state)
            return

        if not svc.store.group_chats.is_registered(chat.chat_id):
            logger.info("Chat %d is not registered; message dropped", chat.chat_id)
            return

        ctx = TriggerContext(settings=svc.bot_settings(), bot_query=await self._bot_query(message))
        for trigger in self.triggers:
            if trigger.matches(message, ctx):
                logger.info("Chat %d: trigger %s", chat.chat_id, trigger.name)
                await trigger.handle(svc, message, ctx)
                return

    async def _bot_query(self, message: TextMessage) -> str | None:
        """Text addressed to the bot by mention, or None when the bot is not mentioned."""
        if not message.mentions:
            return None
        try:
            bot = await self.services.messenger.resolve_bot_identity()
        except MessagingError as exc:
            logger.warning("Could not resolve bot identity: %s", exc)
            return None
        return strip_bot_mention(message, bot.username, bot.id)

    # -- callbacks --------------------------------------------------------

    async def _on_callback(self, click: CallbackClick) -> None:
        prefix = click.token.split(":", 1)[0]
        handler = _CALLBACKS.get(prefix)
        try:
            if handler is None:
                logger.warning("Unknown callback token %r", click.token)
            else:
                logger.info("Chat %d: callback %s", click.chat.chat_id, click.token)
                await handler(self.services, click)
        finally:
            try:
                await self.services.messenger.answer_callback(click.callback_id, CALLBACK_ACK)
            except MessagingError as exc:
                logger.warning("Could not answer callback %s: %s", click.callback_id, exc)

    # -- media ------------------------------------------------------------

    async def _on_photo(self, photo: PhotoMessage) -> None:
        if media.IMAGE_TRIGGER not in photo.caption:
            return
        if not photo.chat.is_private and not self.services.store.group_chats.is_registered(photo.chat.chat_id):
            logger.info("Chat %d is not registered; photo ignored", photo.chat.chat_id)
            return
        await media.handle_photo_edit(self.services, photo)

    async def _on_voice(self, voice: VoiceMessage) -> None:
        if not self.services.store.group_chats.is_registered(voice.chat.chat_id):
            logger.info("Chat %d is not registered; voice ignored", voice.chat.chat_id)
            return
        await media.handle_voice(self.services, voice)
