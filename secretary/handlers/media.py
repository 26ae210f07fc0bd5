"""
Group Secretary Bot — Image Generation & Voice Messages.

【画像生成】 <prompt> generates an image with Gemini; a photo whose caption holds
the trigger is passed along as the reference image to edit. Voice messages
in registered groups are transcribed, answered, and replied to as text,
voice, or both depending on the voice_response_mode setting.
"""

from __future__ import annotations

import logging

from secretary.core import llm, transcriber
from secretary.core.ai_output import sanitize_ai_output
from secretary.core.events import PhotoMessage, TextMessage, VoiceMessage
from secretary.core.llm import AIProviderError
from secretary.core.services import Services
from secretary.ports.messaging_port import MessagingError

logger = logging.getLogger(__name__)

IMAGE_TRIGGER = "【画像生成】"

_DISABLED = "❌ 画像生成機能が無効です。管理画面から有効にしてください。"
_NO_ANSWER = "申し訳ございません、回答を生成できませんでした。"


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


async def handle_image_trigger(svc: Services, message: TextMessage) -> None:
    chat_id = message.chat.chat_id
    cfg = svc.bot_settings()
    if not cfg.enable_image_generation:
        await svc.messenger.send_text(chat_id, _DISABLED)
        return

    prompt = message.text.replace(IMAGE_TRIGGER, "").strip()
    if not prompt:
        await svc.messenger.send_text(chat_id, "❌ 画像の説明を入力してください。\n例: 【画像生成】猫が宇宙を飛んでいる絵")
        return

    await svc.messenger.send_text(chat_id, "🎨 画像を生成中です... しばらくお待ちください。")
    try:
        image = await llm.generate_image(prompt, model=cfg.gemini_model)
        await svc.messenger.send_photo(chat_id, image, caption=f"🎨 「{prompt}」")
    except (AIProviderError, MessagingError) as exc:
        logger.error("Image generation failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "❌ 画像の生成中にエラーが発生しました。もう一度お試しください。")
        return

    svc.audit(
        message.sender.user_id, "image_generated", "image", message.message_id,
        {"prompt": prompt, "model": cfg.gemini_model},
    )


async def handle_photo_edit(svc: Services, photo: PhotoMessage) -> None:
    """Photo captioned with the image trigger: edit the photo per the caption."""
    chat_id = photo.chat.chat_id
    cfg = svc.bot_settings()
    if not cfg.enable_image_generation:
        await svc.messenger.send_text(chat_id, _DISABLED)
        return

    prompt = photo.caption.replace(IMAGE_TRIGGER, "").strip()
    if not prompt:
        await svc.messenger.send_text(
            chat_id,
            "❌ 画像の編集指示を入力してください。\n例: 【画像生成】この人をバナナを食べながら走っている姿にして",
        )
        return

    await svc.messenger.send_text(chat_id, "🎨 画像を編集中です... しばらくお待ちください。")
    try:
        reference = await svc.messenger.download_attachment(photo.file_id)
        image = await llm.generate_image(prompt, model=cfg.gemini_model, reference_image=reference)
        await svc.messenger.send_photo(chat_id, image, caption=f"🎨 「{prompt}」")
    except (AIProviderError, MessagingError) as exc:
        logger.error("Image edit failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "❌ 画像の編集中にエラーが発生しました。もう一度お試しください。")
        return

    svc.audit(
        photo.sender.user_id, "image_edited", "image", photo.message_id,
        {"prompt": prompt, "model": cfg.gemini_model},
    )


# ---------------------------------------------------------------------------
# Voice
# ---------------------------------------------------------------------------


def _voice_prompt(persona: str) -> str:
    return (
        f"あなたは{persona}です。音声メッセージで質問されています。"
        "簡潔で自然な日本語で回答してください。"
        "回答は音声で読み上げられるため、マークダウンや特殊記号は使わないでください。"
    )


def _text_reply(question: str, answer: str) -> str:
    return f"📝 あなたの質問:\n{question}\n\n💬 回答:\n{answer}"


async def handle_voice(svc: Services, voice: VoiceMessage) -> None:
    chat_id = voice.chat.chat_id
    cfg = svc.bot_settings()
    if not cfg.voice_enabled:
        logger.info("Voice message in chat %d ignored (voice disabled)", chat_id)
        return

    await svc.messenger.send_text(chat_id, "🎤 音声を処理中です... しばらくお待ちください。")
    try:
        audio = await svc.messenger.download_attachment(voice.file_id)
    except MessagingError as exc:
        logger.warning("Voice download failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "❌ 音声ファイルのダウンロードに失敗しました。")
        return

    try:
        question = await transcriber.transcribe_audio(audio)
    except AIProviderError as exc:
        await svc.messenger.send_text(chat_id, f"❌ 音声の認識に失敗しました: {exc}")
        return
    if not question:
        await svc.messenger.send_text(chat_id, "❌ 音声の認識に失敗しました: 不明なエラー")
        return

    try:
        answer = await llm.complete(
            _voice_prompt(cfg.bot_persona),
            question,
            max_tokens=cfg.ai_max_tokens,
            temperature=cfg.ai_temperature,
            provider=cfg.ai_provider or None,
            model=cfg.ai_model or None,
        )
    except AIProviderError as exc:
        logger.error("Voice answer failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "❌ 音声メッセージの処理中にエラーが発生しました。")
        return
    answer = sanitize_ai_output(answer) or _NO_ANSWER

    mode = cfg.voice_response_mode
    if mode in ("text_only", "both"):
        await svc.messenger.send_text(chat_id, _text_reply(question, answer))
    if mode in ("voice_only", "both"):
        try:
            speech = await transcriber.synthesize_speech(answer, voice=cfg.voice_name)
            await svc.messenger.send_voice(chat_id, speech)
        except (AIProviderError, MessagingError) as exc:
            logger.warning("Voice reply failed in chat %d: %s", chat_id, exc)
            if mode == "voice_only":
                await svc.messenger.send_text(chat_id, _text_reply(question, answer))

    svc.audit(
        voice.sender.user_id, "voice_message_processed", "voice", voice.message_id,
        {"transcription": question[:200], "response_mode": mode, "voice_name": cfg.voice_name},
    )
