"""
Group Secretary Bot — Meeting Trigger.

【ミーティング】 明日15時 @sato 田中さんと定例
  → format prompt (Google Meet / in person), pending AwaitingMeetingFormat
  → Google Meet: calendar event with a Meet link, Meeting persisted,
    optional "remind me N minutes before" button
  → in person: pending AwaitingLocation; the next message is the location
"""

from __future__ import annotations

import logging
import re
import sqlite3
from datetime import datetime, timedelta

from secretary.core import datetime_parser
from secretary.core.events import CallbackClick, TextMessage
from secretary.core.pending import AwaitingLocation, AwaitingMeetingFormat, MeetingDraft
from secretary.core.services import Services
from secretary.ports.calendar_port import CalendarError
from secretary.ports.messaging_port import Button

logger = logging.getLogger(__name__)

TRIGGER = "【ミーティング】"

_MEETING_DURATION = timedelta(hours=1)
_ATTENDEE_PATTERNS = [
    re.compile(r"@(\w+)"),
    re.compile(r"([一-龥]+さん)"),
]
_RULE = "───────────────"


def extract_attendees(text: str) -> list[str]:
    """@-mentions (without '@') followed by '<kanji name>さん' matches."""
    attendees: list[str] = []
    for pattern in _ATTENDEE_PATTERNS:
        attendees.extend(match.group(1) for match in pattern.finditer(text))
    return attendees


def format_attendees(attendees: list[str]) -> str:
    return ", ".join(a if a.startswith("@") else f"@{a}" for a in attendees)


async def handle_meeting_trigger(svc: Services, message: TextMessage) -> None:
    chat_id = message.chat.chat_id
    title = message.text.replace(TRIGGER, "").strip()
    tz_name = svc.bot_settings().timezone

    draft = MeetingDraft(
        title=title,
        start_at=datetime_parser.parse(title, svc.now(), tz_name),
        attendees=extract_attendees(title),
        requested_by=message.sender.user_id,
    )
    logger.info(
        "Meeting parsed in chat %d: start=%s attendees=%s",
        chat_id, draft.start_at.isoformat() if draft.start_at else None, draft.attendees,
    )
    svc.pending.set(chat_id, AwaitingMeetingFormat(meeting=draft))
    await svc.messenger.send_with_buttons(
        chat_id,
        f"ミーティング「{title}」の形式を選択してください",
        [[Button("Google Meet", "meeting_type:online"), Button("対面", "meeting_type:in_person")]],
    )


async def handle_format_choice(svc: Services, click: CallbackClick) -> None:
    """Token: meeting_type:<online|in_person>."""
    chat_id = click.chat.chat_id
    choice = click.token.split(":", 1)[1]

    state = svc.pending.get(chat_id)
    if not isinstance(state, AwaitingMeetingFormat):
        await svc.messenger.send_text(chat_id, "❌ ミーティング情報が見つかりませんでした。")
        return

    if choice == "online":
        await _create_online_meeting(svc, click, state.meeting)
    elif choice == "in_person":
        await _ask_location(svc, chat_id, state.meeting)
    else:
        logger.warning("Unknown meeting format %r", choice)
        svc.pending.clear(chat_id)


async def _create_online_meeting(svc: Services, click: CallbackClick, draft: MeetingDraft) -> None:
    chat_id = click.chat.chat_id
    # The pending state ends here whatever the outcome
    svc.pending.clear(chat_id)
    await svc.messenger.send_text(chat_id, "🔄 Google Meetリンクを生成中...")

    if svc.calendar is None or not svc.calendar.is_connected():
        await svc.messenger.send_text(
            chat_id,
            "⚠️ Googleアカウントが連携されていません。\n\n"
            "管理画面の「設定」→「Google」タブからGoogleアカウントを連携してください。",
        )
        return

    tz_name = svc.bot_settings().timezone
    start_at = draft.start_at or svc.now()
    title = draft.title or "ミーティング"
    description = f"参加者: {', '.join(draft.attendees)}" if draft.attendees else None

    try:
        event = await svc.calendar.create_meet_event(
            title, start_at, start_at + _MEETING_DURATION,
            description=description, attendees=draft.attendees,
        )
    except CalendarError as exc:
        logger.warning("Meet link creation failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, f"❌ Meetリンクの生成に失敗しました: {exc}")
        return
    except Exception:
        logger.exception("Unexpected error creating Meet link in chat %d", chat_id)
        await svc.messenger.send_text(chat_id, "❌ Meetリンクの生成中にエラーが発生しました。")
        return

    try:
        meeting = svc.store.meetings.create(
            chat_id=chat_id,
            title=title,
            meeting_type="online",
            meet_url_or_location=event.meet_link,
            start_at=start_at,
            end_at=start_at + _MEETING_DURATION,
            attendees=draft.attendees,
            calendar_event_id=event.event_id,
        )
        svc.audit(
            click.sender.user_id, "meeting_created", "meeting", meeting.id,
            {"title": title, "type": "online", "meet_link": event.meet_link},
        )
    except sqlite3.Error as exc:
        await svc.report_store_failure(chat_id, exc)
        return

    lines = ["✅ Google Meetミーティングを設定しました", "", _RULE]
    if draft.start_at:
        tz = datetime_parser.zone_for(tz_name)
        lines.append(
            f"📅 日時: {datetime_parser.format_datetime(draft.start_at, tz)}"
            f" ({datetime_parser.timezone_label(tz_name)})"
        )
    if draft.attendees:
        lines.append(f"👥 参加者: {format_attendees(draft.attendees)}")
    lines += [f"🔗 Meet: {event.meet_link}", _RULE, "", "参加される皆様、よろしくお願いいたします。"]

    await svc.messenger.send_with_buttons(
        chat_id,
        "\n".join(lines),
        [[Button("🔔 リマインダーを設定する", f"meeting_reminder:{meeting.id}")]],
    )


async def _ask_location(svc: Services, chat_id: int, draft: MeetingDraft) -> None:
    svc.pending.set(chat_id, AwaitingLocation(meeting=draft))
    tz_name = svc.bot_settings().timezone

    text = "📍 対面ミーティングを選択しました\n\n"
    if draft.start_at:
        text += f"📅 日時: {datetime_parser.format_datetime(draft.start_at, datetime_parser.zone_for(tz_name))}\n"
    if draft.attendees:
        text += f"👥 参加者: {format_attendees(draft.attendees)}\n"
    text += "\n場所を教えてください。"
    await svc.messenger.send_text(chat_id, text)


async def handle_location_input(svc: Services, message: TextMessage, state: AwaitingLocation) -> None:
    """The message after choosing in-person is taken verbatim as the location."""
    chat_id = message.chat.chat_id
    location = message.text.strip()
    draft = state.meeting
    svc.pending.clear(chat_id)

    start_at = draft.start_at or svc.now()
    try:
        meeting = svc.store.meetings.create(
            chat_id=chat_id,
            title=draft.title or "対面ミーティング",
            meeting_type="in_person",
            meet_url_or_location=location,
            start_at=start_at,
            end_at=start_at + _MEETING_DURATION,
            attendees=draft.attendees,
        )
        svc.audit(
            message.sender.user_id, "meeting_created", "meeting", meeting.id,
            {"title": meeting.title, "type": "in_person", "location": location},
        )
    except sqlite3.Error as exc:
        await svc.report_store_failure(chat_id, exc)
        return

    tz = datetime_parser.zone_for(svc.bot_settings().timezone)
    text = "✅ 対面ミーティングを設定しました\n\n"
    if draft.start_at:
        text += f"📅 日時: {datetime_parser.format_datetime(draft.start_at, tz)}\n"
    text += f"📍 場所: {location}\n"
    if draft.attendees:
        text += f"👥 参加者: {format_attendees(draft.attendees)}\n"
    await svc.messenger.send_text(chat_id, text.rstrip("\n"))


def meeting_reminder_text(
    start_at: datetime, tz_name: str, attendees: list[str], meet_link: str, minutes: int,
) -> str:
    tz = datetime_parser.zone_for(tz_name)
    lines = [
        "🔔 ミーティングのお時間が近づいてまいりました",
        "",
        _RULE,
        f"📅 日時: {datetime_parser.format_datetime(start_at, tz)} ({datetime_parser.timezone_label(tz_name)})",
    ]
    if attendees:
        lines.append(f"👥 参加者: {format_attendees(attendees)}")
    lines += [f"🔗 Meet: {meet_link}", _RULE, "", f"開始まであと{minutes}分です。ご準備をお願いいたします。"]
    return "\n".join(lines)


async def handle_reminder_setup(svc: Services, click: CallbackClick) -> None:
    """Token: meeting_reminder:<meeting id>. Stores a one-off Reminder before the start."""
    chat_id = click.chat.chat_id
    meeting = svc.store.meetings.get(int(click.token.split(":", 1)[1]))
    if meeting is None:
        await svc.messenger.send_text(chat_id, "❌ ミーティング情報が見つかりませんでした。")
        return

    cfg = svc.bot_settings()
    minutes = cfg.meeting_reminder_minutes
    now = svc.now()
    if meeting.start_at <= now:
        await svc.messenger.send_text(chat_id, "❌ ミーティングの日時が過去のため、リマインダーを設定できません。")
        return

    remind_at = meeting.start_at - timedelta(minutes=minutes)
    if remind_at <= now:
        await svc.messenger.send_text(chat_id, f"❌ リマインダー時刻（{minutes}分前）が既に過ぎています。")
        return

    try:
        reminder = svc.store.reminders.create(
            chat_id=meeting.chat_id,
            user_id=click.sender.user_id,
            message=meeting_reminder_text(
                meeting.start_at, cfg.timezone, meeting.attendees, meeting.meet_url_or_location, minutes,
            ),
            remind_at=remind_at,
            event_name=meeting.title,
            reminder_minutes_before=minutes,
        )
    except Exception:
        logger.exception("Failed to store reminder for meeting #%d", meeting.id)
        await svc.messenger.send_text(chat_id, "❌ リマインダーの設定中にエラーが発生しました。")
        return

    await svc.messenger.send_text(
        chat_id, f"✅ リマインダーを設定しました！\n\n🔔 ミーティング開始の{minutes}分前にお知らせします。",
    )
    svc.audit(
        click.sender.user_id, "reminder_created", "reminder", reminder.id,
        {"meeting_id": meeting.id, "minutes_before": minutes},
    )
