"""
Group Secretary Bot — AI Drafts & Draft Review.

【AI】 / bot mention / 【返答】 produce a Draft that is sent to the requester's
private chat with post / edit / discard buttons. Nothing reaches the group
until the owner presses "投稿".

Draft states:
  pending_approval → approved   (post: sent to the target chat)
  pending_approval → rejected   (discard)
  pending_approval ⇄ editing    (edit: the owner's next private message
                                 replaces the text)
"""

from __future__ import annotations

import logging
import sqlite3

from secretary.config import BotSettings
from secretary.core import llm
from secretary.core.ai_output import (
    OUTPUT_RULES,
    is_reminder_request,
    is_time_query,
    requires_web_search,
    sanitize_ai_output,
)
from secretary.core.datetime_parser import zone_for
from secretary.core.events import CallbackClick, TextMessage
from secretary.core.llm import AIProviderError
from secretary.core.services import Services
from secretary.data.models import DRAFT_APPROVED, DRAFT_EDITING, DRAFT_PENDING_APPROVAL, Draft
from secretary.handlers import reminders
from secretary.integrations.web_search import search_web
from secretary.ports.messaging_port import Button, MessagingError

logger = logging.getLogger(__name__)

AI_TRIGGER = "【AI】"
REPLY_TRIGGER = "【返答】"

SOURCE_AI = "ai_trigger"
SOURCE_REPLY = "reply_generation"

_MAX_SOURCES = 3
_NOT_FOUND = "下書きが見つかりませんでした。"
_ALREADY_HANDLED = "この下書きは既に処理されています。"


def _review_buttons(draft_id: int) -> list[list[Button]]:
    return [
        [Button("投稿", f"draft:post:{draft_id}"), Button("編集", f"draft:edit:{draft_id}")],
        [Button("破棄", f"draft:discard:{draft_id}")],
    ]


# ---------------------------------------------------------------------------
# Drafting
# ---------------------------------------------------------------------------


async def _search_context(cfg: BotSettings, query: str) -> str:
    """Web search results as prompt context, or '' when search is off or fails."""
    if not cfg.enable_web_search or not requires_web_search(query):
        return ""
    logger.info("Web search for query: %s", query)
    results = await search_web(query)
    if results is None:
        return ""
    context = f"\n\n【最新のWeb検索結果】\n{results.content}"
    if results.sources:
        context += "\n\n出典: " + ", ".join(results.sources[:_MAX_SOURCES])
    return context


async def _generate(cfg: BotSettings, prompt: str, search_query: str | None = None) -> str:
    context = await _search_context(cfg, search_query) if search_query else ""
    text = await llm.complete(
        system=cfg.ai_system_prompt + OUTPUT_RULES,
        user_message=prompt + context,
        max_tokens=cfg.ai_max_tokens,
        temperature=cfg.ai_temperature,
        provider=cfg.ai_provider or None,
        model=cfg.ai_model or None,
    )
    return sanitize_ai_output(text) or "生成に失敗しました"


async def _deliver_draft(svc: Services, message: TextMessage, draft: Draft) -> None:
    """DM the draft to its owner; tell the group when the DM cannot be delivered."""
    owner_id = message.sender.user_id
    try:
        await svc.messenger.send_with_buttons(
            owner_id, f"AI下書き:\n\n{draft.draft_text}", _review_buttons(draft.id),
        )
    except MessagingError as exc:
        logger.warning("Could not DM draft #%d to %d: %s", draft.id, owner_id, exc)
        await svc.messenger.send_text(
            message.chat.chat_id,
            f"{message.sender.display_name} さん、下書きを個別チャットに送信できませんでした。"
            "先にボットとの個別チャットを開始してください。",
        )


async def _store_draft(
    svc: Services, message: TextMessage, text: str, source: str, original: str,
) -> Draft | None:
    try:
        draft = svc.store.drafts.create(
            owner_id=message.sender.user_id,
            draft_text=text,
            target_chat_id=message.chat.chat_id,
            source=source,
            original_message=original,
        )
        svc.audit(message.sender.user_id, "draft_created", "draft", draft.id, {"source": source})
    except sqlite3.Error as exc:
        await svc.report_store_failure(message.chat.chat_id, exc)
        return None
    return draft


async def handle_ai_query(svc: Services, message: TextMessage, cfg: BotSettings, query: str) -> None:
    """Answer time queries, route reminder requests, draft everything else."""
    chat_id = message.chat.chat_id

    if is_time_query(query):
        now_local = svc.now().astimezone(zone_for(cfg.timezone))
        await svc.messenger.send_text(chat_id, f"現在の時刻は {now_local:%Y年%m月%d日 %H:%M} です。")
        return

    if is_reminder_request(query):
        logger.info("Reminder request in chat %d", chat_id)
        await reminders.handle_reminder_request(svc, message, cfg, query)
        return

    try:
        text = await _generate(cfg, query, search_query=query)
    except AIProviderError as exc:
        logger.error("AI draft failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "AI下書きの生成に失敗しました。")
        return

    draft = await _store_draft(svc, message, text, SOURCE_AI, query)
    if draft is not None:
        await _deliver_draft(svc, message, draft)


async def handle_reply_trigger(svc: Services, message: TextMessage) -> None:
    """【返答】: draft a reply to the replied-to message, or to the trigger text."""
    chat_id = message.chat.chat_id
    cfg = svc.bot_settings()
    original = message.reply_to_text or message.text.replace(REPLY_TRIGGER, "").strip()
    if not original:
        await svc.messenger.send_text(chat_id, "返答するメッセージに返信する形で【返答】と送信してください。")
        return

    prompt = f"次のメッセージに対する返答を作成してください。\n\n{original}"
    try:
        text = await _generate(cfg, prompt)
    except AIProviderError as exc:
        logger.error("Reply generation failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "AI下書きの生成に失敗しました。")
        return

    draft = await _store_draft(svc, message, text, SOURCE_REPLY, original)
    if draft is not None:
        await _deliver_draft(svc, message, draft)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


async def handle_draft_action(svc: Services, click: CallbackClick) -> None:
    """Token: draft:<post|edit|discard>:<draft id>. Replies go to the clicker's private chat."""
    _, action, raw_id = click.token.split(":", 2)
    owner_id = click.sender.user_id
    draft = svc.store.drafts.get(int(raw_id))
    if draft is None:
        await svc.messenger.send_text(owner_id, _NOT_FOUND)
        return
    if draft.owner_id != owner_id:
        logger.warning("User %d pressed %s on draft #%d owned by %d", owner_id, action, draft.id, draft.owner_id)
        return

    if action == "post":
        if not svc.store.drafts.approve(draft.id):
            await svc.messenger.send_text(owner_id, _ALREADY_HANDLED)
            return
        try:
            await svc.messenger.send_text(draft.target_chat_id, draft.draft_text)
        except MessagingError as exc:
            logger.warning("Posting draft #%d to chat %d failed: %s", draft.id, draft.target_chat_id, exc)
            svc.store.drafts.transition(draft.id, DRAFT_APPROVED, DRAFT_PENDING_APPROVAL)
            await svc.messenger.send_text(
                owner_id, "❌ グループチャットへの投稿に失敗しました。もう一度「投稿」を押してください。",
            )
            return
        await svc.messenger.send_text(owner_id, "✅ 下書きをグループチャットに投稿しました。")
        svc.audit(owner_id, "draft_posted", "draft", draft.id, {"target_chat_id": draft.target_chat_id})
    elif action == "edit":
        current = svc.store.drafts.find_editing(owner_id)
        if current is not None and current.id != draft.id:
            # One draft per owner may be in editing
            svc.store.drafts.transition(current.id, DRAFT_EDITING, DRAFT_PENDING_APPROVAL)
        if draft.status != DRAFT_EDITING and not svc.store.drafts.start_editing(draft.id):
            await svc.messenger.send_text(owner_id, _ALREADY_HANDLED)
            return
        await svc.messenger.send_text(
            owner_id,
            f"📝 編集モードに入りました。\n\n現在の内容:\n{draft.draft_text}\n\n"
            "新しい内容をそのまま送信してください。送信した内容で下書きが更新されます。",
        )
        svc.audit(owner_id, "draft_edit_started", "draft", draft.id)
    elif action == "discard":
        if not svc.store.drafts.reject(draft.id):
            await svc.messenger.send_text(owner_id, _ALREADY_HANDLED)
            return
        await svc.messenger.send_text(owner_id, "🗑️ 下書きを破棄しました。")
        svc.audit(owner_id, "draft_discarded", "draft", draft.id)
    else:
        logger.warning("Unknown draft action %r", action)


async def handle_draft_edit(svc: Services, message: TextMessage) -> bool:
    """Private message from an owner with a draft in editing. Returns True if consumed."""
    owner_id = message.sender.user_id
    draft = svc.store.drafts.find_editing(owner_id)
    if draft is None:
        return False

    new_text = message.text.strip()
    if not svc.store.drafts.finish_editing(draft.id, new_text):
        logger.info("Draft #%d left editing before the edit arrived", draft.id)
        return False

    await svc.messenger.send_with_buttons(
        message.chat.chat_id, f"✅ 下書きを更新しました。\n\n{new_text}", _review_buttons(draft.id),
    )
    svc.audit(owner_id, "draft_edited", "draft", draft.id)
    return True
