"""
Group Secretary Bot — Centralized configuration.

Loads process settings from .env and validates required keys.
Per-tenant bot settings live in the store and are modelled by BotSettings;
the admin dashboard writes them, the conversation engine only reads them.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from secretary/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

DEFAULT_SEARXNG_INSTANCES = [
    "https://searx.be",
    "https://search.sapti.me",
    "https://searx.tiekoetter.com",
    "https://search.bus-hit.me",
]


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    WEBHOOK_URL: str = ""         # empty → long polling
    WEBHOOK_PORT: int = 8443
    WEBHOOK_SECRET: str = ""

    # LLM — provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str = ""           # empty → smart default per provider
    LLM_API_KEY: str

    # OpenAI — transcription, speech, and tool-calling fallback
    OPENAI_API_KEY: str = ""

    # Gemini — image generation
    GEMINI_API_KEY: str = ""

    # Google Calendar (Meet links)
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN_PATH: str = "token.json"

    # SQLite
    DATABASE_PATH: str = "data/secretary.db"

    # Display timezone (tenant setting overrides)
    TIMEZONE: str = "Asia/Manila"

    # Schedulers & delivery
    REMINDER_POLL_SECONDS: int = 30
    OVERDUE_POLL_SECONDS: int = 1800
    DEDUP_TTL_SECONDS: int = 60
    SEND_MAX_RETRIES: int = 3

    # Web search augmenter
    SEARXNG_INSTANCES: list[str] = DEFAULT_SEARXNG_INSTANCES

    @field_validator("SEARXNG_INSTANCES", mode="before")
    @classmethod
    def parse_instances(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [url.strip() for url in v.split(",") if url.strip()]
        return list(DEFAULT_SEARXNG_INSTANCES)

    @field_validator(
        "WEBHOOK_PORT",
        "REMINDER_POLL_SECONDS",
        "OVERDUE_POLL_SECONDS",
        "DEDUP_TTL_SECONDS",
        "SEND_MAX_RETRIES",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


class BotSettings(BaseModel):
    """Per-tenant settings read from the bot_settings table.

    Every value arrives as a string from the store; validators coerce them.
    """

    timezone: str = "Asia/Manila"
    ai_provider: str = ""
    ai_model: str = ""
    ai_system_prompt: str = (
        "あなたはTelegramグループチャットのアシスタントです。"
        "過去の会話を要約し、適切な返答を生成してください。"
    )
    ai_temperature: float = 0.7
    ai_max_tokens: int = 1000
    enable_web_search: bool = False
    enable_image_generation: bool = False
    gemini_model: str = "gemini-2.5-flash-image"
    meeting_reminder_minutes: int = 15
    voice_enabled: bool = False
    voice_response_mode: str = "voice_only"
    voice_name: str = "alloy"
    bot_persona: str = "親切で丁寧な秘書AIアシスタント"
    translation_start_keywords: list[str] = ["翻訳開始", "翻訳スタート", "通訳開始", "通訳スタート"]
    translation_end_keywords: list[str] = [
        "翻訳終了", "翻訳ストップ", "翻訳停止", "通訳終了", "通訳ストップ", "通訳停止",
    ]

    @field_validator(
        "enable_web_search", "enable_image_generation", "voice_enabled", mode="before",
    )
    @classmethod
    def parse_flag(cls, v: str | bool | None) -> bool:
        if isinstance(v, bool):
            return v
        return str(v or "").strip().lower() == "true"

    @field_validator("translation_start_keywords", "translation_end_keywords", mode="before")
    @classmethod
    def parse_keywords(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        return [k.strip() for k in str(v).split(",") if k.strip()]

    @field_validator("voice_response_mode", mode="before")
    @classmethod
    def parse_voice_mode(cls, v: str) -> str:
        v = str(v or "").strip()
        return v if v in ("voice_only", "text_only", "both") else "voice_only"

    @classmethod
    def from_rows(cls, rows: dict[str, str | None], default_timezone: str) -> BotSettings:
        """Build settings from raw key/value rows, skipping empty and unknown keys."""
        values: dict[str, str] = {"timezone": default_timezone}
        for key, value in rows.items():
            if key in cls.model_fields and value not in (None, ""):
                values[key] = value
        return cls(**values)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        WEBHOOK_URL=os.getenv("WEBHOOK_URL", ""),
        WEBHOOK_PORT=os.getenv("WEBHOOK_PORT", "8443"),
        WEBHOOK_SECRET=os.getenv("WEBHOOK_SECRET", ""),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY", ""),
        GEMINI_API_KEY=os.getenv("GEMINI_API_KEY", ""),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        GOOGLE_TOKEN_PATH=os.getenv("GOOGLE_TOKEN_PATH", "token.json"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/secretary.db"),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Manila"),
        REMINDER_POLL_SECONDS=os.getenv("REMINDER_POLL_SECONDS", "30"),
        OVERDUE_POLL_SECONDS=os.getenv("OVERDUE_POLL_SECONDS", "1800"),
        DEDUP_TTL_SECONDS=os.getenv("DEDUP_TTL_SECONDS", "60"),
        SEND_MAX_RETRIES=os.getenv("SEND_MAX_RETRIES", "3"),
        SEARXNG_INSTANCES=os.getenv("SEARXNG_INSTANCES", ""),
    )


# Singleton — imported by all other modules as:
#   from secretary.config import settings
settings = _load_settings()
