"""
Group Secretary Bot — Reminder Requests via Tool Calling.

An AI query that reads like a reminder request ("18時の会議、15分前に教えて",
"毎週月曜9時に朝会をリマインド") is sent to the model with two declared tools,
get_current_time and set_reminder. The set_reminder arguments become a
one-off or recurring Reminder.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from secretary.config import BotSettings
from secretary.core import llm
from secretary.core.datetime_parser import zone_for
from secretary.core.events import TextMessage
from secretary.core.llm import AIProviderError, ToolSpec
from secretary.core.recurrence import describe_repeat, next_reminder_time
from secretary.core.services import Services
from secretary.data.models import Reminder

logger = logging.getLogger(__name__)

REPEAT_TYPES = ("none", "daily", "weekly", "monthly")

REMINDER_TOOLS = [
    ToolSpec(
        name="get_current_time",
        description=(
            "現在の日時を取得します。「今何時？」「今日は何日？」「3分後」「1時間後」などの質問や"
            "相対時刻の計算に使用します。リマインダーを設定する前に必ずこのツールで現在時刻を取得してください。"
        ),
        parameters={"type": "object", "properties": {}, "required": []},
    ),
    ToolSpec(
        name="set_reminder",
        description=(
            "ユーザーのためにリマインダーを設定します。指定された時刻にTelegramで通知を送信します。"
            "繰り返しリマインダーも設定可能です。"
        ),
        parameters={
            "type": "object",
            "properties": {
                "event_name": {
                    "type": "string",
                    "description": "イベント名（例: ミーティング、会議、打ち合わせ、朝会）",
                },
                "event_datetime": {
                    "type": "string",
                    "description": "イベントの日時（ISO 8601形式: YYYY-MM-DDTHH:mm:ss、現地時刻）",
                },
                "reminder_minutes_before": {
                    "type": "number",
                    "description": "イベントの何分前にリマインドするか。「X分後に教えて」の場合は0。",
                },
                "repeat_type": {
                    "type": "string",
                    "enum": list(REPEAT_TYPES),
                    "description": "繰り返しタイプ。none=1回のみ, daily=毎日, weekly=毎週, monthly=毎月。",
                },
                "repeat_days": {
                    "type": "string",
                    "description": (
                        "weeklyの場合: 曜日番号をカンマ区切り（0=日,1=月,...,6=土）。"
                        "monthlyの場合: 日付をカンマ区切り。"
                    ),
                },
            },
            "required": ["event_name", "event_datetime", "reminder_minutes_before"],
        },
    ),
]


def _system_prompt(now_local: datetime, tz_name: str) -> str:
    today = now_local.strftime("%Y-%m-%d")
    clock = now_local.strftime("%H:%M")
    return f"""あなたはリマインダー設定アシスタントです。
現在の日付: {today}
現在の時刻: {clock} (タイムゾーン: {tz_name})

ユーザーのリクエストからイベント名、イベント日時、リマインド時間、繰り返し設定を抽出してset_reminder関数を呼び出してください。

ルール:
- 「今日」は{today}を使用
- 「明日」は翌日の日付を使用
- 「X分後」「X時間後」の場合は、現在時刻{clock}に指定分数を加算してevent_datetimeを設定し、reminder_minutes_beforeは0にする
- 時間が指定されていない場合はデフォルトで15分前
- event_datetimeはISO 8601形式（YYYY-MM-DDTHH:mm:ss）で返す
- 「毎日」「毎週」「毎月」などの言葉があればrepeat_typeを設定
- 「毎週月・水・金」ならrepeat_type="weekly"、repeat_days="1,3,5"
- 「毎月1日」ならrepeat_type="monthly"、repeat_days="1"
- 繰り返しがない場合はrepeat_type="none"または省略"""


def parse_repeat_days(value: object) -> list[int]:
    """'1,3,5' (or a list) → [1, 3, 5]; anything unparseable is dropped."""
    if value is None:
        return []
    parts = value if isinstance(value, list) else str(value).split(",")
    days: list[int] = []
    for part in parts:
        try:
            days.append(int(str(part).strip()))
        except ValueError:
            continue
    return days


def reminder_message(event_name: str, minutes_before: int) -> str:
    if minutes_before == 0:
        return f"🔔 「{event_name}」のお時間です。"
    return f"🔔 「{event_name}」まであと{minutes_before}分です。ご準備をお願いいたします。"


async def handle_reminder_request(
    svc: Services, message: TextMessage, cfg: BotSettings, query: str,
) -> None:
    chat_id = message.chat.chat_id
    now_local = svc.now().astimezone(zone_for(cfg.timezone))

    try:
        call = await llm.complete_with_tools(
            system=_system_prompt(now_local, cfg.timezone),
            user_message=query,
            tools=REMINDER_TOOLS,
            force_tool="set_reminder",
            provider=cfg.ai_provider or None,
            model=cfg.ai_model or None,
        )
    except AIProviderError as exc:
        logger.error("Reminder tool call failed in chat %d: %s", chat_id, exc)
        await svc.messenger.send_text(chat_id, "❌ リマインダーの設定中にエラーが発生しました。")
        return

    if call is None or call.name != "set_reminder":
        logger.warning("No set_reminder call returned for chat %d", chat_id)
        await svc.messenger.send_text(chat_id, "❌ リマインダーの設定に失敗しました。もう一度お試しください。")
        return

    await create_reminder_from_tool(svc, chat_id, message.sender.user_id, call.arguments, cfg.timezone)


async def create_reminder_from_tool(
    svc: Services, chat_id: int, user_id: int, arguments: dict, tz_name: str,
) -> Reminder | None:
    """Persist a Reminder from set_reminder arguments and confirm it in the chat."""
    tz = zone_for(tz_name)
    now = svc.now()
    event_name = str(arguments.get("event_name") or "リマインダー")
    repeat_type = str(arguments.get("repeat_type") or "none")
    if repeat_type not in REPEAT_TYPES:
        repeat_type = "none"
    repeat_days = parse_repeat_days(arguments.get("repeat_days"))

    try:
        event_at = datetime.fromisoformat(str(arguments["event_datetime"]))
        minutes_before = int(arguments.get("reminder_minutes_before") or 0)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Invalid set_reminder arguments %s: %s", arguments, exc)
        await svc.messenger.send_text(chat_id, "❌ リマインダーの作成に失敗しました。")
        return None
    if event_at.tzinfo is None:
        event_at = event_at.replace(tzinfo=tz)

    remind_at = event_at - timedelta(minutes=minutes_before)
    if repeat_type == "none":
        if remind_at <= now:
            await svc.messenger.send_text(chat_id, "❌ リマインド時刻が過去の時刻です。別の時刻を指定してください。")
            return None
    else:
        while remind_at <= now:
            following = next_reminder_time(repeat_type, repeat_days, remind_at, minutes_before, tz_name)
            if following is None or following <= remind_at:
                await svc.messenger.send_text(chat_id, "❌ 繰り返しリマインダーの設定に失敗しました。")
                return None
            remind_at = following

    reminder = svc.store.reminders.create(
        chat_id=chat_id,
        user_id=user_id,
        message=reminder_message(event_name, minutes_before),
        remind_at=remind_at,
        repeat_type=repeat_type,
        repeat_days=repeat_days,
        event_name=event_name,
        reminder_minutes_before=minutes_before,
    )

    local = remind_at.astimezone(tz)
    text = (
        f"✅ リマインダーを設定しました！\n\n📅 イベント: {event_name}\n"
        f"🔔 次回リマインド: {local.month}/{local.day} {local:%H:%M}"
    )
    if repeat_type != "none":
        text += f"\n🔁 繰り返し: {describe_repeat(repeat_type, repeat_days)}"
    await svc.messenger.send_text(chat_id, text)
    svc.audit(
        user_id, "reminder_created", "reminder", reminder.id,
        {"event_name": event_name, "repeat_type": repeat_type},
    )
    return reminder
