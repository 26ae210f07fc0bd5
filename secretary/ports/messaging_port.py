"""Messaging port — abstract interface for outbound chat messages.

Core modules depend on this protocol, never on a specific chat platform.
Buttons carry a short opaque callback token that comes back as a
CallbackClick event when pressed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class MessagingError(Exception):
    """Raised when a send fails after retries or is rejected by the platform."""


@dataclass(frozen=True)
class Button:
    text: str
    token: str


@dataclass(frozen=True)
class BotIdentity:
    id: int
    username: str


@dataclass(frozen=True)
class SentMessage:
    chat_id: int
    message_id: int


class MessagingPort(Protocol):
    """Abstract messaging interface used by core modules."""

    async def send_text(self, chat_id: int, text: str) -> SentMessage: ...

    async def send_with_buttons(
        self, chat_id: int, text: str, buttons: list[list[Button]]
    ) -> SentMessage: ...

    async def answer_callback(self, callback_id: str, text: str | None = None) -> None: ...

    async def send_photo(
        self, chat_id: int, photo: bytes, caption: str | None = None
    ) -> SentMessage: ...

    async def send_voice(self, chat_id: int, voice: bytes) -> SentMessage: ...

    async def resolve_bot_identity(self) -> BotIdentity: ...

    async def download_attachment(self, file_id: str) -> bytes: ...

    async def get_chat_title(self, chat_id: int) -> str: ...
