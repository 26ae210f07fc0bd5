"""
Group Secretary Bot — Handler Collaborators.

Everything a trigger handler needs, wired once at startup and passed down.
Handlers never import adapters directly; tests substitute mocks here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from secretary.core.pending import PendingStates
from secretary.ports.messaging_port import MessagingError

if TYPE_CHECKING:
    from secretary.config import BotSettings
    from secretary.data.db import Store
    from secretary.ports.calendar_port import CalendarPort
    from secretary.ports.messaging_port import MessagingPort

logger = logging.getLogger(__name__)

STORE_APOLOGY = "申し訳ありません。データの保存に失敗しました。しばらくしてからもう一度お試しください。"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Services:
    store: Store
    messenger: MessagingPort
    calendar: CalendarPort | None = None
    pending: PendingStates = field(default_factory=PendingStates)
    clock: Callable[[], datetime] = _utcnow
    default_timezone: str = "Asia/Manila"

    def now(self) -> datetime:
        return self.clock()

    def bot_settings(self) -> BotSettings:
        """Tenant settings as currently stored; re-read on every event."""
        return self.store.settings.load(self.default_timezone)

    def audit(
        self,
        actor_id: int | None,
        action: str,
        object_type: str,
        object_id: int | str,
        payload: dict | None = None,
    ) -> None:
        self.store.audit.record(actor_id, action, object_type, str(object_id), payload or {})

    async def report_store_failure(self, chat_id: int, exc: Exception) -> None:
        """Apologise in the chat and drop its pending continuation."""
        logger.error("Store failure in chat %d: %s", chat_id, exc)
        self.pending.clear(chat_id)
        try:
            await self.messenger.send_text(chat_id, STORE_APOLOGY)
        except MessagingError as send_exc:
            logger.warning("Could not report store failure to chat %d: %s", chat_id, send_exc)
