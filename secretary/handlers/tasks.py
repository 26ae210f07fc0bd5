"""
Group Secretary Bot — Task Trigger.

【タスク】 @assignee title
  → Task(pending_acceptance) + deadline prompt (today / tomorrow / +3 days / custom)
  → deadline chosen: Task(in_progress) + completion button
  → completion button: Task(completed)

Tasks are looked up by (chat, trigger message id); button tokens carry the
trigger message id.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta

from secretary.core.datetime_parser import end_of_day, format_date, parse_deadline, zone_for
from secretary.core.events import CallbackClick, TextMessage, first_username_mention
from secretary.core.pending import AwaitingCustomDate
from secretary.core.services import Services
from secretary.data.models import TASK_COMPLETED, Task
from secretary.ports.messaging_port import Button

logger = logging.getLogger(__name__)

TRIGGER = "【タスク】"

_DEADLINE_OFFSETS = {"today": 0, "tomorrow": 1, "3days": 3}
_NOT_FOUND = "タスクが見つかりませんでした。"
_CUSTOM_DATE_PROMPT = "📅 期限の日付を入力してください\n\n例: 2026/2/15 または 2/15"
_CUSTOM_DATE_RETRY = "日付の形式が認識できませんでした。\n例: 2026/2/15 または 2/15 の形式で入力してください。"


def _deadline_buttons(message_id: int) -> list[list[Button]]:
    return [
        [
            Button("今日中", f"task_deadline:today:{message_id}"),
            Button("明日", f"task_deadline:tomorrow:{message_id}"),
        ],
        [
            Button("3日後", f"task_deadline:3days:{message_id}"),
            Button("日付指定", f"task_deadline:custom:{message_id}"),
        ],
    ]


def _completion_buttons(message_id: int) -> list[list[Button]]:
    return [[Button("✅ タスク完了", f"task_complete:{message_id}")]]


def parse_task_text(message: TextMessage) -> tuple[str, str]:
    """Return (assignee username without '@', title) for a task trigger.

    The first @-mention is the assignee; without one the requester is.
    """
    text = message.text.replace(TRIGGER, "")
    mention = first_username_mention(message)
    if mention:
        assignee = mention.lstrip("@")
        text = text.replace(mention, "", 1)
    else:
        assignee = message.sender.username or message.sender.first_name or str(message.sender.user_id)
    return assignee, text.strip()


async def handle_task_trigger(svc: Services, message: TextMessage) -> None:
    chat_id = message.chat.chat_id
    assignee, title = parse_task_text(message)

    try:
        task = svc.store.tasks.create(
            chat_id=chat_id,
            message_id=message.message_id,
            requester_id=message.sender.user_id,
            assignee=assignee,
            title=title,
            requester_name=message.sender.display_name,
        )
        svc.audit(
            message.sender.user_id, "task_created", "task", task.id,
            {"title": title, "assignee": assignee},
        )
    except sqlite3.Error as exc:
        await svc.report_store_failure(chat_id, exc)
        return
    await svc.messenger.send_with_buttons(
        chat_id,
        f"@{assignee} さん、タスク「{title}」の期限を設定してください",
        _deadline_buttons(message.message_id),
    )


async def _apply_deadline(svc: Services, chat_id: int, task: Task, due_at: datetime, actor_id: int) -> bool:
    """Move the task to in_progress with its deadline. False when nothing changed."""
    try:
        if not svc.store.tasks.set_deadline(task.id, due_at):
            logger.info("Task #%d is already %s; deadline unchanged", task.id, task.status)
            return False
        svc.audit(actor_id, "task_deadline_set", "task", task.id, {"due_at": due_at.isoformat()})
    except sqlite3.Error as exc:
        await svc.report_store_failure(chat_id, exc)
        return False
    return True


async def _confirm_deadline(svc: Services, chat_id: int, message_id: int, due_text: str) -> None:
    await svc.messenger.send_with_buttons(
        chat_id,
        f"タスクの期限を {due_text} に設定しました\n\n"
        "完了したら下記のボタンを押してください。"
        "期限を過ぎても完了ボタンが押されていない場合、３時間ごとにリマインダーが送られます。",
        _completion_buttons(message_id),
    )


async def handle_deadline_choice(svc: Services, click: CallbackClick) -> None:
    """Token: task_deadline:<today|tomorrow|3days|custom>:<trigger message id>."""
    _, choice, raw_id = click.token.split(":", 2)
    chat_id = click.chat.chat_id
    message_id = int(raw_id)

    task = svc.store.tasks.get_by_message(chat_id, message_id)
    if task is None:
        await svc.messenger.send_text(chat_id, _NOT_FOUND)
        return

    if choice == "custom":
        svc.pending.set(chat_id, AwaitingCustomDate(task_message_id=message_id))
        await svc.messenger.send_text(chat_id, _CUSTOM_DATE_PROMPT)
        return

    if choice not in _DEADLINE_OFFSETS:
        logger.warning("Unknown deadline choice %r for task #%d", choice, task.id)
        return

    tz = zone_for(svc.bot_settings().timezone)
    local_today = svc.now().astimezone(tz).date()
    due_at = end_of_day(local_today + timedelta(days=_DEADLINE_OFFSETS[choice]), tz)

    if not await _apply_deadline(svc, chat_id, task, due_at, click.sender.user_id):
        return
    await _confirm_deadline(svc, chat_id, message_id, format_date(due_at, tz))


async def handle_custom_date_input(svc: Services, message: TextMessage, state: AwaitingCustomDate) -> None:
    """Consume the reply to the custom-date prompt. Unparseable input re-prompts."""
    chat_id = message.chat.chat_id
    tz_name = svc.bot_settings().timezone

    due_at = parse_deadline(message.text, svc.now(), tz_name)
    if due_at is None:
        await svc.messenger.send_text(chat_id, _CUSTOM_DATE_RETRY)
        return

    svc.pending.clear(chat_id)
    task = svc.store.tasks.get_by_message(chat_id, state.task_message_id)
    if task is None:
        await svc.messenger.send_text(chat_id, _NOT_FOUND)
        return
    if not await _apply_deadline(svc, chat_id, task, due_at, message.sender.user_id):
        return
    await _confirm_deadline(svc, chat_id, state.task_message_id, format_date(due_at, zone_for(tz_name)))


async def handle_completion(svc: Services, click: CallbackClick) -> None:
    """Token: task_complete:<trigger message id>. Completing twice reports success once more."""
    chat_id = click.chat.chat_id
    message_id = int(click.token.split(":", 1)[1])

    task = svc.store.tasks.get_by_message(chat_id, message_id)
    if task is None:
        await svc.messenger.send_text(chat_id, _NOT_FOUND)
        return

    if task.status == TASK_COMPLETED:
        await svc.messenger.send_text(chat_id, f"✅ タスク「{task.title}」が完了しました！")
        return

    if not svc.store.tasks.complete(task.id, svc.now()):
        current = svc.store.tasks.get(task.id)
        if current is not None and current.status == TASK_COMPLETED:
            await svc.messenger.send_text(chat_id, f"✅ タスク「{task.title}」が完了しました！")
        else:
            logger.warning("Task #%d cannot be completed from status %s", task.id, task.status)
        return

    await svc.messenger.send_text(chat_id, f"✅ タスク「{task.title}」が完了しました！")
    if task.requester_id != click.sender.user_id:
        await svc.messenger.send_text(
            chat_id,
            f"🎉 タスク完了のお知らせ\n\nタスク「{task.title}」が @{task.assignee} さんによって完了されました。",
        )
    svc.audit(
        click.sender.user_id, "task_completed", "task", task.id,
        {"title": task.title, "assignee": task.assignee},
    )
