"""
Group Secretary Bot — Schedulers.

Four polling jobs, run on the Telegram job queue independently of the
conversation engine. Each fetches the records that are due, fires a
message, and advances the record's pointer:

Reminder sweep (every REMINDER_POLL_SECONDS): pending reminders with
remind_at <= now; one-offs become 'sent', recurring ones are re-armed.

Recurring-task sweep (same interval): active recurring tasks with
next_send_at <= now; each gets a reminder with a completion button.

Meeting-start sweep (same interval): meetings starting within 10 minutes
that have not been announced yet.

Overdue sweep (every OVERDUE_POLL_SECONDS): in-progress tasks past their
deadline, nudged per the nudge policy.

A failure on one record is logged and leaves that record's pointer
untouched, so it is retried on the next poll; the batch carries on.
Pointers always move strictly past now, so after downtime a record fires
once rather than once per missed occurrence.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from secretary.core.datetime_parser import format_datetime, zone_for
from secretary.core.nudge_policy import should_nudge
from secretary.core.recurrence import describe_schedule, next_recurring_send, next_reminder_time
from secretary.core.services import Services
from secretary.data.models import Meeting, RecurringTask, Reminder, Task
from secretary.handlers.recurring import completion_token
from secretary.ports.messaging_port import Button

logger = logging.getLogger(__name__)

MEETING_NOTICE_WINDOW = timedelta(minutes=10)


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def _following_reminder_time(reminder: Reminder, now: datetime, tz_name: str) -> datetime | None:
    """Next remind_at strictly after now, or None when the reminder is finished."""
    current = reminder.remind_at
    while True:
        following = next_reminder_time(
            reminder.repeat_type, reminder.repeat_days, current,
            reminder.reminder_minutes_before, tz_name,
        )
        if following is None or following <= current:
            return None
        if reminder.repeat_end_date is not None and following > reminder.repeat_end_date:
            return None
        if following > now:
            return following
        current = following


async def process_reminders(svc: Services) -> int:
    """Fire due reminders. Returns how many were delivered."""
    now = svc.now()
    tz_name = svc.bot_settings().timezone
    due = svc.store.reminders.pending_reminders(now)
    if due:
        logger.info("Reminder sweep: %d due", len(due))

    fired = 0
    for reminder in due:
        try:
            await svc.messenger.send_text(reminder.chat_id, reminder.message)
        except Exception as exc:
            logger.error("Reminder #%d delivery failed: %s", reminder.id, exc)
            continue

        fired += 1
        try:
            following = _following_reminder_time(reminder, now, tz_name)
            if following is None:
                svc.store.reminders.mark_sent(reminder.id, now)
            else:
                svc.store.reminders.reschedule(reminder.id, following, now)
        except Exception as exc:
            logger.error("Reminder #%d sent but not advanced: %s", reminder.id, exc)
    return fired


# ---------------------------------------------------------------------------
# Recurring tasks
# ---------------------------------------------------------------------------


def recurring_reminder_text(task: RecurringTask) -> str:
    schedule = describe_schedule(
        task.frequency, task.hour, task.minute, task.day_of_week, task.day_of_month, task.exclude_days,
    )
    return (
        "🔔 定期タスクのリマインダー\n\n"
        f"📝 {task.task_title}\n"
        f"👤 担当: @{task.assignee}\n"
        f"📅 {schedule}"
    )


def _following_send_time(task: RecurringTask, now: datetime, tz_name: str) -> datetime:
    following = task.next_send_at
    while following <= now:
        following = next_recurring_send(
            task.frequency, task.hour, task.minute, following, tz_name,
            day_of_week=task.day_of_week,
            day_of_month=task.day_of_month,
            exclude_days=task.exclude_days,
        )
    return following


async def process_recurring_tasks(svc: Services) -> int:
    """Fire due recurring tasks. Returns how many were delivered."""
    now = svc.now()
    tz_name = svc.bot_settings().timezone
    due = svc.store.recurring_tasks.due_recurring_tasks(now)
    if due:
        logger.info("Recurring-task sweep: %d due", len(due))

    fired = 0
    for task in due:
        try:
            following = _following_send_time(task, now, tz_name)
            await svc.messenger.send_with_buttons(
                task.chat_id,
                recurring_reminder_text(task),
                [[Button("✅ 完了報告", completion_token(task.id, task.next_send_at))]],
            )
        except Exception as exc:
            logger.error("Recurring task #%d delivery failed: %s", task.id, exc)
            continue

        fired += 1
        try:
            svc.store.recurring_tasks.advance(task.id, following, now)
        except Exception as exc:
            logger.error("Recurring task #%d sent but not advanced: %s", task.id, exc)
    return fired


# ---------------------------------------------------------------------------
# Meeting start notices
# ---------------------------------------------------------------------------


def meeting_start_text(meeting: Meeting, tz_name: str) -> str:
    when = format_datetime(meeting.start_at, zone_for(tz_name))
    text = f"⏰ ミーティングリマインダー: 「{meeting.title}」がまもなく開始します（{when}）"
    if meeting.meeting_type == "in_person":
        text += f"\n\n📍 場所: {meeting.meet_url_or_location}"
    elif meeting.meet_url_or_location:
        text += f"\n\n参加リンク: {meeting.meet_url_or_location}"
    return text


async def process_meeting_reminders(svc: Services) -> int:
    now = svc.now()
    tz_name = svc.bot_settings().timezone
    upcoming = svc.store.meetings.list_starting_between(now, now + MEETING_NOTICE_WINDOW)

    fired = 0
    for meeting in upcoming:
        try:
            await svc.messenger.send_text(meeting.chat_id, meeting_start_text(meeting, tz_name))
        except Exception as exc:
            logger.error("Meeting #%d start notice failed: %s", meeting.id, exc)
            continue
        try:
            if svc.store.meetings.mark_reminder_sent(meeting.id):
                fired += 1
        except Exception as exc:
            logger.error("Meeting #%d notice sent but not recorded: %s", meeting.id, exc)
    if fired:
        logger.info("Meeting sweep: %d start notices sent", fired)
    return fired


# ---------------------------------------------------------------------------
# Overdue tasks
# ---------------------------------------------------------------------------


def overdue_text(task: Task, now: datetime, tz_name: str) -> str:
    days = (now - task.due_at) // timedelta(days=1)
    due = format_datetime(task.due_at, zone_for(tz_name))
    if days < 1:
        head = f"⚠️ 期限切れリマインダー: @{task.assignee} さん、タスク「{task.title}」の期限が過ぎました（期限: {due}）"
    else:
        head = (
            f"⚠️ 期限切れリマインダー: @{task.assignee} さん、"
            f"タスク「{task.title}」の期限が{days}日過ぎています（期限: {due}）"
        )
    return head + "\n\n完了したら下記のボタンを押してください。完了ボタンが押されるまで、３時間ごとにリマインダーが送られます。"


async def check_overdue_tasks(svc: Services) -> int:
    """Nudge overdue in-progress tasks. Returns how many were nudged."""
    now = svc.now()
    tz_name = svc.bot_settings().timezone
    overdue = svc.store.tasks.list_overdue(now)

    nudged = 0
    for task in overdue:
        decision = should_nudge(task.due_at, now, task.nudge_level, task.last_nudge_at)
        if not decision.nudge:
            continue
        try:
            await svc.messenger.send_with_buttons(
                task.chat_id,
                overdue_text(task, now, tz_name),
                [[Button("✅ タスク完了", f"task_complete:{task.message_id}")]],
            )
        except Exception as exc:
            logger.error("Overdue notice for task #%d failed: %s", task.id, exc)
            continue
        nudged += 1
        try:
            svc.store.tasks.record_nudge(task.id, decision.next_level, now)
            svc.audit(None, "task_nudged", "task", task.id, {"level": decision.next_level})
        except Exception as exc:
            logger.error("Nudge for task #%d sent but not recorded: %s", task.id, exc)
    if overdue:
        logger.info("Overdue sweep: %d overdue, %d nudged", len(overdue), nudged)
    return nudged
