"""
Group Secretary Bot — Live Translation.

A member says a start keyword (翻訳開始 …) and becomes the owner of a session
in that chat. While it is active:
  • other members' non-Japanese messages are translated into Japanese, and
    their language becomes the session's target language
  • the owner's Japanese messages are translated into that target language
    (nothing happens until a foreign message has set it)

Bot triggers (【…】) and slash commands are never relayed.
"""

from __future__ import annotations

import logging

from secretary.config import BotSettings
from secretary.core import llm
from secretary.core.events import TextMessage
from secretary.core.llm import AIProviderError
from secretary.core.services import Services

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = {
    "ja": "日本語",
    "en": "英語",
    "zh": "中国語",
    "ko": "韓国語",
    "tl": "タガログ語",
    "tgl-en": "タグリッシュ",
}

AUTO = "auto"
_DEFAULT_LANGUAGE = "en"

_DETECT_PROMPT = (
    "You are a language detector. Analyze the given text and return ONLY the language code. "
    "Supported codes: ja (Japanese), en (English), zh (Chinese), ko (Korean), tl (Tagalog), "
    "tgl-en (Taglish - mix of Tagalog and English). If the text is a mix of Tagalog and English, "
    'return "tgl-en". Return only the code, nothing else.'
)


def _translate_prompt(from_name: str, to_name: str) -> str:
    return (
        f"You are a professional translator. Translate the given text from {from_name} to {to_name}.\n"
        "- Maintain the original tone and nuance\n"
        "- For Taglish (tgl-en), preserve the natural mix of Tagalog and English\n"
        "- Return ONLY the translated text, no explanations or notes\n"
        "- If the text contains emojis, keep them in the translation"
    )


async def detect_language(text: str) -> str:
    """Language code for text; 'en' when detection fails."""
    try:
        detected = await llm.complete(_DETECT_PROMPT, text, max_tokens=10, temperature=0)
    except AIProviderError as exc:
        logger.warning("Language detection failed: %s", exc)
        return _DEFAULT_LANGUAGE
    code = detected.strip().lower() or _DEFAULT_LANGUAGE
    logger.info("Detected language %s for %r", code, text[:50])
    return code


async def translate_text(text: str, from_lang: str, to_lang: str) -> str:
    """Translated text; the original text when translation fails."""
    from_name = SUPPORTED_LANGUAGES.get(from_lang, from_lang)
    to_name = SUPPORTED_LANGUAGES.get(to_lang, to_lang)
    try:
        translated = await llm.complete(
            _translate_prompt(from_name, to_name), text, max_tokens=2000, temperature=0.3,
        )
    except AIProviderError as exc:
        logger.warning("Translation %s→%s failed: %s", from_lang, to_lang, exc)
        return text
    return translated.strip() or text


def _contains_any(text: str, keywords: list[str]) -> bool:
    return any(keyword and keyword in text for keyword in keywords)


def is_translation_keyword(text: str, cfg: BotSettings) -> bool:
    return _contains_any(text, cfg.translation_end_keywords) or _contains_any(
        text, cfg.translation_start_keywords
    )


async def handle_translation_keyword(svc: Services, message: TextMessage, cfg: BotSettings) -> None:
    """End keywords are checked before start keywords."""
    chat_id = message.chat.chat_id
    user_id = message.sender.user_id

    if _contains_any(message.text, cfg.translation_end_keywords):
        if svc.store.translations.end(chat_id, user_id):
            await svc.messenger.send_text(chat_id, "🌐 翻訳モードを終了しました。\n\n通常のチャットに戻ります。")
            svc.audit(user_id, "translation_ended", "translation_session", chat_id)
        else:
            await svc.messenger.send_text(chat_id, "❌ アクティブな翻訳セッションがありません。")
        return

    if svc.store.translations.get_active(chat_id, user_id) is not None:
        await svc.messenger.send_text(
            chat_id, "⚠️ すでに翻訳モードです。\n\n終了するには「翻訳終了」と入力してください。",
        )
        return

    session = svc.store.translations.start(chat_id, user_id)
    await svc.messenger.send_text(
        chat_id,
        "🌐 翻訳モードを開始しました！\n\n"
        "相手の言語は自動で検出します。\n"
        "• あなたの日本語は相手の言語に翻訳されます\n"
        "• 相手のメッセージは日本語に翻訳されます\n\n"
        "終了するには「翻訳終了」と入力してください。",
    )
    svc.audit(user_id, "translation_started", "translation_session", session.id)


def is_relayable(text: str) -> bool:
    return not (text.startswith("/") or "【" in text or "】" in text)


async def relay(svc: Services, message: TextMessage) -> bool:
    """Translate one message through the chat's active session. Returns True if relayed."""
    chat_id = message.chat.chat_id
    session = svc.store.translations.get_active_in_chat(chat_id)
    if session is None or not is_relayable(message.text):
        return False

    detected = await detect_language(message.text)
    if message.sender.user_id == session.user_id:
        if detected != "ja" or session.target_language == AUTO:
            return False
        from_lang, to_lang = "ja", session.target_language
    else:
        if detected == "ja":
            return False
        from_lang, to_lang = detected, "ja"
        svc.store.translations.set_target_language(session.id, detected)

    translated = await translate_text(message.text, from_lang, to_lang)
    await svc.messenger.send_text(chat_id, translated)
    return True
