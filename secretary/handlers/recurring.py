"""
Group Secretary Bot — Recurring Task Setup Dialog.

【定期タスク】 starts a strictly ordered dialog held in the chat's pending state:

  frequency ─┬─ daily   → exclude days (toggle buttons)
             ├─ weekly  → day of week (buttons)
             └─ monthly → day of month (text, 1-31)
  → time of day (text, H:MM) → task title (text) → assignee (@mention)

Invalid input re-prompts without advancing. On completion the first send
time is computed once and the RecurringTask is stored active. The scheduler
sends each occurrence with a "完了報告" button handled here as well.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from secretary.core import pending as steps
from secretary.core.datetime_parser import format_datetime, normalize_digits, timezone_label, zone_for
from secretary.core.events import CallbackClick, TextMessage
from secretary.core.pending import AwaitingRecurringStep
from secretary.core.recurrence import DAY_NAMES, describe_schedule, initial_send_time
from secretary.core.services import Services
from secretary.ports.messaging_port import Button

logger = logging.getLogger(__name__)

TRIGGER = "【定期タスク】"

_TIME_RE = re.compile(r"^(\d{1,2})[:：](\d{2})")
_DAY_RE = re.compile(r"^(\d{1,2})")
_MENTION_RE = re.compile(r"@(\w+)")

_NO_SETUP = "❗ 定期タスクの設定が見つかりませんでした。"
_TIME_PROMPT = "⏰ リマインダーを送信する時間を入力してください\n\n例: 9:00 または 14:30"
_TITLE_PROMPT = "📝 タスクの内容を入力してください\n\n例: 週次レポートの提出"
_ASSIGNEE_PROMPT = "👤 担当者を@メンションで入力してください\n\n例: @tanaka"


def _day_rows(prefix: str, marked: list[int] | None = None) -> list[list[Button]]:
    marked = marked or []

    def label(day: int) -> str:
        return f"✅ {DAY_NAMES[day]}" if day in marked else DAY_NAMES[day]

    return [
        [Button(label(d), f"{prefix}:{d}") for d in range(0, 4)],
        [Button(label(d), f"{prefix}:{d}") for d in range(4, 7)],
    ]


def _day_list(days: list[int]) -> str:
    return "、".join(DAY_NAMES[d] for d in days)


async def handle_recurring_trigger(svc: Services, message: TextMessage) -> None:
    chat_id = message.chat.chat_id
    svc.pending.set(
        chat_id,
        AwaitingRecurringStep(step=steps.STEP_FREQUENCY, creator_id=message.sender.user_id),
    )
    await svc.messenger.send_with_buttons(
        chat_id,
        "🔁 定期タスクを設定します\n\nまず、頻度を選択してください。",
        [[
            Button("📅 毎日", "recurring_freq:daily"),
            Button("📅 毎週", "recurring_freq:weekly"),
            Button("📅 毎月", "recurring_freq:monthly"),
        ]],
    )


def _current_setup(svc: Services, chat_id: int) -> AwaitingRecurringStep | None:
    state = svc.pending.get(chat_id)
    return state if isinstance(state, AwaitingRecurringStep) else None


# ---------------------------------------------------------------------------
# Button steps
# ---------------------------------------------------------------------------


async def handle_frequency_choice(svc: Services, click: CallbackClick) -> None:
    """Token: recurring_freq:<daily|weekly|monthly>."""
    chat_id = click.chat.chat_id
    frequency = click.token.split(":", 1)[1]
    state = _current_setup(svc, chat_id)
    if state is None:
        await svc.messenger.send_text(chat_id, _NO_SETUP + "もう一度【定期タスク】と入力してください。")
        return

    state.frequency = frequency
    if frequency == "daily":
        state.step = steps.STEP_EXCLUDE_DAYS
        await svc.messenger.send_with_buttons(
            chat_id,
            "📅 配信しない曜日を選択してください\n\n"
            "複数選択可能です。選択が終わったら「除外なし」または「次へ」を押してください。",
            _day_rows("recurring_exclude") + [[Button("✅ 除外なし（毎日配信）", "recurring_exclude:done")]],
        )
    elif frequency == "weekly":
        state.step = steps.STEP_DAY_OF_WEEK
        await svc.messenger.send_with_buttons(chat_id, "📅 曜日を選択してください", _day_rows("recurring_dow"))
    elif frequency == "monthly":
        state.step = steps.STEP_DAY_OF_MONTH
        await svc.messenger.send_text(chat_id, "📅 毎月何日にリマインダーを送信しますか？\n\n例: 1 または 15")
    else:
        logger.warning("Unknown recurring frequency %r", frequency)


async def handle_exclude_choice(svc: Services, click: CallbackClick) -> None:
    """Token: recurring_exclude:<0-6|done|next>. Weekday buttons toggle."""
    chat_id = click.chat.chat_id
    value = click.token.split(":", 1)[1]
    state = _current_setup(svc, chat_id)
    if state is None or state.step != steps.STEP_EXCLUDE_DAYS:
        await svc.messenger.send_text(chat_id, _NO_SETUP)
        return

    if value in ("done", "next"):
        state.step = steps.STEP_TIME
        if state.exclude_days:
            info = f"除外曜日: {_day_list(state.exclude_days)}曜日"
        else:
            info = "除外なし（毎日配信）"
        await svc.messenger.send_text(chat_id, f"✅ {info}\n\n{_TIME_PROMPT}")
        return

    day = int(value)
    if day in state.exclude_days:
        state.exclude_days.remove(day)
    else:
        state.exclude_days.append(day)
        state.exclude_days.sort()

    selected = _day_list(state.exclude_days) if state.exclude_days else "なし"
    await svc.messenger.send_with_buttons(
        chat_id,
        f"📅 配信しない曜日を選択してください\n\n現在の選択: {selected}曜日\n\n"
        "選択が終わったら「次へ」を押してください。",
        _day_rows("recurring_exclude", state.exclude_days) + [[Button("➡️ 次へ", "recurring_exclude:next")]],
    )


async def handle_day_of_week_choice(svc: Services, click: CallbackClick) -> None:
    """Token: recurring_dow:<0-6>, 0 = Sunday."""
    chat_id = click.chat.chat_id
    state = _current_setup(svc, chat_id)
    if state is None or state.step != steps.STEP_DAY_OF_WEEK:
        await svc.messenger.send_text(chat_id, _NO_SETUP)
        return

    state.day_of_week = int(click.token.split(":", 1)[1])
    state.step = steps.STEP_TIME
    await svc.messenger.send_text(chat_id, _TIME_PROMPT)


# ---------------------------------------------------------------------------
# Text steps
# ---------------------------------------------------------------------------


async def handle_step_input(svc: Services, message: TextMessage, state: AwaitingRecurringStep) -> None:
    """Advance the dialog with a text reply; invalid input re-prompts in place."""
    chat_id = message.chat.chat_id
    text = normalize_digits(message.text.strip())

    if state.step == steps.STEP_DAY_OF_MONTH:
        match = _DAY_RE.match(text)
        if not match:
            await svc.messenger.send_text(chat_id, "❗ 日付の形式が認識できませんでした。数字で入力してください（例: 15）")
            return
        day = int(match.group(1))
        if not 1 <= day <= 31:
            await svc.messenger.send_text(chat_id, "❗ 1から31の間で入力してください。")
            return
        state.day_of_month = day
        state.step = steps.STEP_TIME
        await svc.messenger.send_text(chat_id, _TIME_PROMPT)

    elif state.step == steps.STEP_TIME:
        match = _TIME_RE.match(text)
        if not match:
            await svc.messenger.send_text(chat_id, "❗ 時間の形式が認識できませんでした。\n例: 9:00 または 14:30")
            return
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            await svc.messenger.send_text(chat_id, "❗ 時間は0:00から23:59の間で入力してください。")
            return
        state.hour, state.minute = hour, minute
        state.step = steps.STEP_TASK_TITLE
        await svc.messenger.send_text(chat_id, _TITLE_PROMPT)

    elif state.step == steps.STEP_TASK_TITLE:
        if not text:
            await svc.messenger.send_text(chat_id, _TITLE_PROMPT)
            return
        state.task_title = message.text.strip()
        state.step = steps.STEP_ASSIGNEE
        await svc.messenger.send_text(chat_id, _ASSIGNEE_PROMPT)

    elif state.step == steps.STEP_ASSIGNEE:
        match = _MENTION_RE.search(text)
        if not match:
            await svc.messenger.send_text(chat_id, "❗ @メンションの形式で入力してください\n例: @tanaka")
            return
        svc.pending.clear(chat_id)
        await _create_recurring_task(svc, chat_id, state, match.group(1))

    else:
        logger.warning("Chat %d: text arrived during button step %s", chat_id, state.step)


async def _create_recurring_task(
    svc: Services, chat_id: int, state: AwaitingRecurringStep, assignee: str,
) -> None:
    if state.frequency is None or state.hour is None or not state.task_title:
        await svc.messenger.send_text(chat_id, "❗ 定期タスクの情報が不完全です。もう一度設定してください。")
        return

    tz_name = svc.bot_settings().timezone
    minute = state.minute or 0
    try:
        next_send_at = initial_send_time(
            state.frequency, state.hour, minute, svc.now(), tz_name,
            day_of_week=state.day_of_week,
            day_of_month=state.day_of_month,
            exclude_days=state.exclude_days,
        )
    except ValueError as exc:
        logger.warning("Recurring task rejected in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "❗ 定期タスクの作成に失敗しました。")
        return

    task = svc.store.recurring_tasks.create(
        chat_id=chat_id,
        assignee=assignee,
        task_title=state.task_title,
        frequency=state.frequency,
        hour=state.hour,
        minute=minute,
        next_send_at=next_send_at,
        day_of_week=state.day_of_week,
        day_of_month=state.day_of_month,
        exclude_days=state.exclude_days,
        created_by=state.creator_id,
    )

    schedule = describe_schedule(
        task.frequency, task.hour, task.minute, task.day_of_week, task.day_of_month, task.exclude_days,
    )
    await svc.messenger.send_text(
        chat_id,
        f"✅ 定期タスクを設定しました\n\n"
        f"📅 スケジュール: {schedule}\n"
        f"📝 タスク: {task.task_title}\n"
        f"👤 担当者: @{assignee}\n\n"
        f"次回のリマインダー: {format_datetime(next_send_at, zone_for(tz_name))}",
    )
    svc.audit(
        state.creator_id, "recurring_task_created", "recurring_task", task.id,
        {"task_title": task.task_title, "frequency": task.frequency},
    )


# ---------------------------------------------------------------------------
# Completion reports
# ---------------------------------------------------------------------------


def completion_token(task_id: int, scheduled_at: datetime) -> str:
    """rt_complete:<task id>:<scheduled occurrence as epoch milliseconds>."""
    return f"rt_complete:{task_id}:{int(scheduled_at.timestamp() * 1000)}"


async def handle_completion(svc: Services, click: CallbackClick) -> None:
    chat_id = click.chat.chat_id
    parts = click.token.split(":")
    if len(parts) < 3:
        await svc.messenger.send_text(chat_id, "❗ 完了報告の処理に失敗しました。")
        return

    task = svc.store.recurring_tasks.get(int(parts[1]))
    if task is None:
        await svc.messenger.send_text(chat_id, "❗ 定期タスクが見つかりませんでした。")
        return

    scheduled_at = datetime.fromtimestamp(int(parts[2]) / 1000, tz=timezone.utc)
    now = svc.now()
    reporter = click.sender.full_name or click.sender.display_name
    svc.store.recurring_tasks.add_completion(
        recurring_task_id=task.id,
        chat_id=chat_id,
        completed_by=click.sender.user_id,
        scheduled_at=scheduled_at,
        completed_at=now,
        completed_by_name=reporter,
    )

    tz_name = svc.bot_settings().timezone
    local = now.astimezone(zone_for(tz_name))
    await svc.messenger.send_text(
        chat_id,
        f"✅ 完了報告を受け付けました\n\n📝 {task.task_title}\n👤 報告者: {reporter}\n"
        f"⏰ 完了時刻: {local.hour}:{local.minute:02d} ({timezone_label(tz_name)})",
    )
    svc.audit(
        click.sender.user_id, "recurring_task_completed", "recurring_task_completion", task.id,
        {"task_title": task.task_title, "scheduled_at": scheduled_at.isoformat()},
    )
