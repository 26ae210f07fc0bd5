"""
Group Secretary Bot — Telegram Transport.

Telegram is the only chat transport. Every update is converted into a
transport-neutral event and handed to the conversation engine; the handler
runs non-blocking so the update is acknowledged before processing finishes.

The schedulers run on the application's job queue. Delivery is long polling
by default, or a webhook when WEBHOOK_URL is configured.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from telegram import Chat as TgChat
from telegram import Message, MessageEntity, Update, User
from telegram.ext import Application, ApplicationBuilder, ContextTypes, TypeHandler

from secretary.config import settings
from secretary.core import scheduler
from secretary.core.dedup import DeliveryDeduplicator
from secretary.core.engine import ConversationEngine
from secretary.core.events import (
    CallbackClick,
    Chat,
    InboundEvent,
    Mention,
    PhotoMessage,
    Sender,
    TextMessage,
    VoiceMessage,
)
from secretary.core.services import Services

logger = logging.getLogger(__name__)

_WEBHOOK_PATH = "telegram"
_FIRST_RUN_SECONDS = 10


# ---------------------------------------------------------------------------
# Update → event conversion
# ---------------------------------------------------------------------------


def _chat(chat: TgChat) -> Chat:
    return Chat(chat_id=chat.id, chat_type=chat.type, title=chat.title or "")


def _sender(user: User) -> Sender:
    return Sender(
        user_id=user.id,
        username=user.username or "",
        first_name=user.first_name or "",
        last_name=user.last_name or "",
    )


def _mentions(message: Message) -> tuple[Mention, ...]:
    entities = message.parse_entities([MessageEntity.MENTION, MessageEntity.TEXT_MENTION])
    mentions = []
    for entity, text in sorted(entities.items(), key=lambda item: item[0].offset):
        if entity.type == MessageEntity.TEXT_MENTION and entity.user is not None:
            mentions.append(Mention(text=text, kind="text_mention", user_id=entity.user.id))
        else:
            mentions.append(Mention(text=text, kind="mention"))
    return tuple(mentions)


def to_event(update: Update) -> InboundEvent | None:
    """The engine's view of an update, or None for updates the bot ignores."""
    query = update.callback_query
    if query is not None:
        if query.message is not None:
            chat = _chat(query.message.chat)
            message_id = query.message.message_id
        else:
            chat = Chat(chat_id=query.from_user.id, chat_type="private")
            message_id = None
        return CallbackClick(
            chat=chat,
            sender=_sender(query.from_user),
            callback_id=query.id,
            token=query.data or "",
            message_id=message_id,
        )

    message = update.message
    if message is None or message.from_user is None:
        return None
    chat = _chat(message.chat)
    sender = _sender(message.from_user)

    if message.text:
        reply = message.reply_to_message
        return TextMessage(
            chat=chat,
            sender=sender,
            message_id=message.message_id,
            text=message.text,
            mentions=_mentions(message),
            reply_to_text=(reply.text or reply.caption or "") if reply else "",
        )
    if message.photo:
        return PhotoMessage(
            chat=chat,
            sender=sender,
            message_id=message.message_id,
            file_id=message.photo[-1].file_id,
            caption=message.caption or "",
        )
    if message.voice:
        return VoiceMessage(
            chat=chat,
            sender=sender,
            message_id=message.message_id,
            file_id=message.voice.file_id,
            duration=message.voice.duration or 0,
            mime_type=message.voice.mime_type or "audio/ogg",
        )
    return None


# ---------------------------------------------------------------------------
# Handlers & jobs
# ---------------------------------------------------------------------------


async def on_update(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    event = to_event(update)
    if event is None:
        return
    engine: ConversationEngine = context.bot_data["engine"]
    await engine.handle(event)


def _job(
    name: str, sweep: Callable[[Services], Awaitable[int]], services: Services,
) -> Callable[[ContextTypes.DEFAULT_TYPE], Awaitable[None]]:
    async def _run(context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await sweep(services)
        except Exception:
            logger.exception("Scheduler job %s failed", name)

    return _run


def _setup_jobs(app: Application, services: Services) -> None:
    jobs = [
        ("reminders", scheduler.process_reminders, settings.REMINDER_POLL_SECONDS),
        ("recurring_tasks", scheduler.process_recurring_tasks, settings.REMINDER_POLL_SECONDS),
        ("meeting_reminders", scheduler.process_meeting_reminders, settings.REMINDER_POLL_SECONDS),
        ("overdue_tasks", scheduler.check_overdue_tasks, settings.OVERDUE_POLL_SECONDS),
    ]
    for name, sweep, interval in jobs:
        app.job_queue.run_repeating(
            _job(name, sweep, services), interval=interval, first=_FIRST_RUN_SECONDS, name=name,
        )
        logger.info("Scheduler job %s every %ds", name, interval)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(services: Services | None = None) -> Application:
    """Build the Telegram Application, wiring default adapters when none are given."""
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).concurrent_updates(True).build()

    if services is None:
        from secretary.adapters.google_calendar import GoogleCalendarAdapter
        from secretary.adapters.telegram_gateway import TelegramGateway
        from secretary.data.db import Store

        services = Services(
            store=Store(settings.DATABASE_PATH),
            messenger=TelegramGateway(app.bot, max_retries=settings.SEND_MAX_RETRIES),
            calendar=GoogleCalendarAdapter(),
            default_timezone=settings.TIMEZONE,
        )

    app.bot_data["services"] = services
    app.bot_data["engine"] = ConversationEngine(
        services, DeliveryDeduplicator(ttl_seconds=settings.DEDUP_TTL_SECONDS),
    )
    app.add_handler(TypeHandler(Update, on_update, block=False))

    _setup_jobs(app, services)
    logger.info("Telegram application built")
    return app


def main() -> None:
    """Entry point: build the app and start webhook delivery or polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Group Secretary bot...")
    app = build_app()
    if settings.WEBHOOK_URL:
        logger.info("Webhook delivery on port %d", settings.WEBHOOK_PORT)
        app.run_webhook(
            listen="0.0.0.0",
            port=settings.WEBHOOK_PORT,
            url_path=_WEBHOOK_PATH,
            webhook_url=f"{settings.WEBHOOK_URL.rstrip('/')}/{_WEBHOOK_PATH}",
            secret_token=settings.WEBHOOK_SECRET or None,
        )
    else:
        app.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
