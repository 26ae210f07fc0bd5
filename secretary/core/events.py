"""
Group Secretary Bot — Inbound Events.

Transport-neutral shapes of what arrives from the chat platform. The Telegram
adapter converts updates into these; the conversation engine only sees these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

PRIVATE = "private"


@dataclass(frozen=True)
class Chat:
    chat_id: int
    chat_type: str = "group"             # private | group | supergroup | channel
    title: str = ""

    @property
    def is_private(self) -> bool:
        return self.chat_type == PRIVATE

    @property
    def is_group(self) -> bool:
        return self.chat_type in ("group", "supergroup")


@dataclass(frozen=True)
class Sender:
    user_id: int
    username: str = ""
    first_name: str = ""
    last_name: str = ""

    @property
    def display_name(self) -> str:
        """'@username' when the user has one, else the first name."""
        return f"@{self.username}" if self.username else self.first_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Mention:
    """A mention entity already sliced out of the message text.

    kind is 'mention' (@username in the text) or 'text_mention' (a user
    without a username, identified by user_id).
    """

    text: str
    kind: str = "mention"
    user_id: int | None = None


@dataclass(frozen=True)
class TextMessage:
    chat: Chat
    sender: Sender
    message_id: int
    text: str
    mentions: tuple[Mention, ...] = field(default_factory=tuple)
    reply_to_text: str = ""

    @property
    def dedup_key(self) -> str:
        return f"{self.chat.chat_id}:{self.message_id}"


@dataclass(frozen=True)
class CallbackClick:
    chat: Chat
    sender: Sender
    callback_id: str
    token: str
    message_id: int | None = None

    @property
    def dedup_key(self) -> str:
        return f"callback:{self.callback_id}"


@dataclass(frozen=True)
class PhotoMessage:
    chat: Chat
    sender: Sender
    message_id: int
    file_id: str
    caption: str = ""

    @property
    def dedup_key(self) -> str:
        return f"{self.chat.chat_id}:{self.message_id}"


@dataclass(frozen=True)
class VoiceMessage:
    chat: Chat
    sender: Sender
    message_id: int
    file_id: str
    duration: int = 0
    mime_type: str = "audio/ogg"

    @property
    def dedup_key(self) -> str:
        return f"{self.chat.chat_id}:{self.message_id}"


InboundEvent = Union[TextMessage, CallbackClick, PhotoMessage, VoiceMessage]


def first_username_mention(message: TextMessage) -> str | None:
    """Text of the first '@username' mention, including the '@'."""
    for mention in message.mentions:
        if mention.kind == "mention":
            return mention.text
    return None


def strip_bot_mention(message: TextMessage, bot_username: str, bot_id: int) -> str | None:
    """Message text with the bot's mention removed, or None if the bot is not mentioned."""
    target = bot_username.lower().lstrip("@")
    for mention in message.mentions:
        if mention.kind == "mention" and mention.text.lower().lstrip("@") == target:
            return message.text.replace(mention.text, "", 1).strip()
    for mention in message.mentions:
        if mention.kind == "text_mention" and mention.user_id == bot_id:
            return message.text.replace(mention.text, "", 1).strip()
    return None
