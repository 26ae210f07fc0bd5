"""Shared test fixtures and configuration.

Sets up fake environment variables so secretary.config doesn't sys.exit(),
and provides a temp-file store, a mocked messaging gateway, and a fixed
clock (Wednesday 2026-02-11 10:00 Asia/Manila).
"""

import os

# Patch env vars BEFORE any secretary imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("TIMEZONE", "Asia/Manila")
os.environ.setdefault("SEARXNG_INSTANCES", "https://searx.example")

from unittest.mock import AsyncMock

import pytest

from secretary.core.services import Services
from secretary.data.db import Store
from secretary.ports.messaging_port import BotIdentity, SentMessage
from tests.helpers import BOT_ID, GROUP_ID, OWNER_ID, FixedClock


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_secretary.db")


@pytest.fixture
def store(tmp_db_path):
    return Store(db_path=tmp_db_path)


@pytest.fixture
def messenger():
    """AsyncMock MessagingPort; sends return a SentMessage."""
    mock = AsyncMock()
    mock.send_text.return_value = SentMessage(chat_id=GROUP_ID, message_id=1)
    mock.send_with_buttons.return_value = SentMessage(chat_id=GROUP_ID, message_id=2)
    mock.send_photo.return_value = SentMessage(chat_id=GROUP_ID, message_id=3)
    mock.send_voice.return_value = SentMessage(chat_id=GROUP_ID, message_id=4)
    mock.resolve_bot_identity.return_value = BotIdentity(id=BOT_ID, username="secretary_bot")
    mock.get_chat_title.return_value = "Team Chat"
    return mock


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def services(store, messenger, clock):
    return Services(store=store, messenger=messenger, clock=clock, default_timezone="Asia/Manila")


@pytest.fixture
def registered_group(store):
    return store.group_chats.register(GROUP_ID, "Team Chat", "supergroup", responsible_user_id=OWNER_ID)
