"""
Group Secretary Bot — Chat Info & Group Registration.

【チャットID】 (or /chatid) works in any chat, registered or not. In an
unregistered group the reply carries a registration button; pressing it
registers the group with the presser as the responsible user.
"""

from __future__ import annotations

import logging

from secretary.core.events import CallbackClick, TextMessage
from secretary.core.services import Services
from secretary.ports.messaging_port import Button, MessagingError

logger = logging.getLogger(__name__)

TRIGGER = "【チャットID】"
COMMAND = "/chatid"

_RULE = "━━━━━━━━━━━━━━━━━━"
_CHAT_TYPE_LABELS = {
    "private": "プライベート",
    "group": "グループ",
    "supergroup": "スーパーグループ",
    "channel": "チャンネル",
}


def is_chat_id_request(text: str) -> bool:
    return TRIGGER in text or text.strip().lower().startswith(COMMAND)


async def handle_chat_id_request(svc: Services, message: TextMessage) -> None:
    chat = message.chat
    sender = message.sender
    registered = svc.store.group_chats.is_registered(chat.chat_id)

    info = (
        "📋 チャット情報\n\n"
        f"{_RULE}\n"
        f"🆔 チャットID: {chat.chat_id}\n"
        f"📝 チャット名: {chat.title or 'プライベートチャット'}\n"
        f"📁 タイプ: {_CHAT_TYPE_LABELS.get(chat.chat_type, chat.chat_type)}\n"
        f"{_RULE}\n\n"
        "👤 あなたの情報\n"
        f"{_RULE}\n"
        f"🆔 ユーザーID: {sender.user_id}\n"
        f"📝 ユーザー名: {sender.display_name}\n"
        f"{_RULE}"
    )

    if registered:
        await svc.messenger.send_text(chat.chat_id, info + "\n\n✅ このグループは登録済みです")
    elif chat.is_group:
        await svc.messenger.send_with_buttons(
            chat.chat_id,
            info,
            [[Button("➕ このグループを登録する", f"register_group:{chat.chat_id}:{sender.user_id}")]],
        )
    else:
        await svc.messenger.send_text(chat.chat_id, info)
    logger.info("Chat info requested in %d by %d (registered=%s)", chat.chat_id, sender.user_id, registered)


async def handle_registration(svc: Services, click: CallbackClick) -> None:
    """Token: register_group:<chat id>:<requesting user id>."""
    chat_id = click.chat.chat_id
    _, raw_chat, raw_user = click.token.split(":", 2)
    target_chat_id, requester_id = int(raw_chat), int(raw_user)

    if svc.store.group_chats.is_registered(target_chat_id):
        await svc.messenger.send_text(chat_id, "✅ このグループは既に登録されています")
        return

    try:
        title = await svc.messenger.get_chat_title(target_chat_id)
    except MessagingError as exc:
        logger.warning("Could not fetch title of chat %d: %s", target_chat_id, exc)
        await svc.messenger.send_text(chat_id, "❌ グループの登録に失敗しました。もう一度お試しください。")
        return

    svc.store.group_chats.register(
        target_chat_id, title or "Unknown Group", click.chat.chat_type, responsible_user_id=requester_id,
    )
    svc.audit(
        click.sender.user_id, "group_registered", "group", target_chat_id,
        {"group_name": title, "registered_by": click.sender.user_id},
    )
    await svc.messenger.send_text(
        chat_id,
        "✅ グループを登録しました！\n\n"
        f"{_RULE}\n"
        f"📝 グループ名: {title}\n"
        f"🆔 チャットID: {target_chat_id}\n"
        f"{_RULE}\n\n"
        "このグループでボットの機能が使えるようになりました。\n"
        "【タスク】【ミーティング】【AI】などのキーワードをお試しください。",
    )
