"""Tests for secretary.core.transcriber — Whisper transcription and speech synthesis."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from secretary.config import settings
from secretary.core import transcriber
from secretary.core.llm import AIProviderError


def _client():
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(return_value=MagicMock(text="  明日の天気は？ \n"))
    client.audio.speech.create = AsyncMock(return_value=MagicMock(content=b"opus"))
    return client


class TestTranscriber:
    @pytest.mark.asyncio
    async def test_transcribe_strips_text(self):
        client = _client()
        with patch.object(transcriber, "_client", client):
            assert await transcriber.transcribe_audio(b"ogg") == "明日の天気は？"

        kwargs = client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["language"] == "ja"
        assert kwargs["file"].name == "voice.ogg"

    @pytest.mark.asyncio
    async def test_transcribe_failure_wrapped(self):
        client = _client()
        client.audio.transcriptions.create.side_effect = RuntimeError("bad audio")
        with patch.object(transcriber, "_client", client):
            with pytest.raises(AIProviderError, match="Transcription failed: bad audio"):
                await transcriber.transcribe_audio(b"ogg")

    @pytest.mark.asyncio
    async def test_synthesize_speech(self):
        client = _client()
        with patch.object(transcriber, "_client", client):
            assert await transcriber.synthesize_speech("晴れです", voice="nova") == b"opus"
        kwargs = client.audio.speech.create.call_args.kwargs
        assert kwargs["voice"] == "nova"
        assert kwargs["response_format"] == "opus"

    @pytest.mark.asyncio
    async def test_missing_openai_key(self):
        with patch.object(transcriber, "_client", None), patch.object(settings, "OPENAI_API_KEY", ""):
            with pytest.raises(AIProviderError, match="OPENAI_API_KEY"):
                await transcriber.transcribe_audio(b"ogg")
