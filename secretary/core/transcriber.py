"""
Group Secretary Bot — Audio Transcriber & Speech Synthesizer.

Voice messages in registered groups are transcribed with OpenAI Whisper,
answered by the LLM, and optionally read back with OpenAI text-to-speech.
"""

from __future__ import annotations

import io
import logging

from openai import AsyncOpenAI

from secretary.core.llm import AIProviderError

logger = logging.getLogger(__name__)

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        from secretary.config import settings

        if not settings.OPENAI_API_KEY:
            raise AIProviderError("OPENAI_API_KEY is not configured")
        _client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


async def transcribe_audio(audio: bytes, filename: str = "voice.ogg") -> str:
    """Transcribe an audio clip using OpenAI Whisper.

    Args:
        audio: Raw audio bytes (OGG/Opus from Telegram voice notes).
        filename: Name hint so the API can infer the container format.

    Returns:
        Transcribed text string.

    Raises:
        AIProviderError: If the Whisper API call fails.
    """
    buffer = io.BytesIO(audio)
    buffer.name = filename
    try:
        response = await _get_client().audio.transcriptions.create(
            model="whisper-1",
            file=buffer,
            language="ja",
        )
    except AIProviderError:
        raise
    except Exception as exc:
        logger.error("Whisper transcription failed: %s", exc)
        raise AIProviderError(f"Transcription failed: {exc}") from exc
    text = response.text.strip()
    logger.info("Transcribed %d chars from %d bytes of audio", len(text), len(audio))
    return text


async def synthesize_speech(text: str, voice: str = "alloy") -> bytes:
    """Read text aloud; returns OGG/Opus bytes suitable for a Telegram voice note."""
    try:
        response = await _get_client().audio.speech.create(
            model="tts-1",
            voice=voice,
            input=text,
            response_format="opus",
        )
    except AIProviderError:
        raise
    except Exception as exc:
        logger.error("Speech synthesis failed: %s", exc)
        raise AIProviderError(f"Speech synthesis failed: {exc}") from exc
    audio = response.content
    logger.info("Synthesized %d bytes of speech (%s)", len(audio), voice)
    return audio
