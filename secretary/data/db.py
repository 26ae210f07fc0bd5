"""
Group Secretary Bot — SQLite Store.

One class per table, each sharing the connection helper from _SQLiteDB.
Timestamps are written as UTC ISO-8601 strings and read back as aware
datetimes. State transitions that can race (task completion, draft review)
are conditional UPDATEs that report whether a row changed.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from secretary.data.models import (
    DRAFT_APPROVED,
    DRAFT_EDITING,
    DRAFT_PENDING_APPROVAL,
    DRAFT_REJECTED,
    REMINDER_PENDING,
    REMINDER_SENT,
    TASK_COMPLETED,
    TASK_IN_PROGRESS,
    TASK_PENDING_ACCEPTANCE,
    AuditLogEntry,
    ChatContext,
    Draft,
    Meeting,
    RecurringTask,
    RecurringTaskCompletion,
    Reminder,
    Task,
    TranslationSession,
)

logger = logging.getLogger(__name__)


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError(f"Naive datetime cannot be stored: {value!r}")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _int_list(value: str | None) -> list[int]:
    if not value:
        return []
    return [int(part) for part in value.split(",") if part.strip()]


def _join_ints(values: list[int]) -> str:
    return ",".join(str(v) for v in values)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _SQLiteDB:
    """Shared connection handling; subclasses create their own tables."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from secretary.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Group chats
# ---------------------------------------------------------------------------


class GroupChatDB(_SQLiteDB):
    """Registered group chats."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS group_chats (
                    chat_id              INTEGER PRIMARY KEY,
                    title                TEXT    NOT NULL,
                    chat_type            TEXT    NOT NULL DEFAULT 'group',
                    responsible_user_id  INTEGER,
                    calendar_id          TEXT,
                    created_at           TEXT    NOT NULL
                )
            """)
        logger.debug("group_chats table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_chat(row: sqlite3.Row) -> ChatContext:
        return ChatContext(
            chat_id=row["chat_id"],
            title=row["title"],
            chat_type=row["chat_type"],
            responsible_user_id=row["responsible_user_id"],
            calendar_id=row["calendar_id"],
            created_at=row["created_at"],
        )

    def register(
        self,
        chat_id: int,
        title: str,
        chat_type: str = "group",
        responsible_user_id: int | None = None,
    ) -> ChatContext:
        """Register a chat. Re-registering keeps the original row."""
        now = _utcnow().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO group_chats
                    (chat_id, title, chat_type, responsible_user_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (chat_id, title, chat_type, responsible_user_id, now),
            )
        logger.info("Group chat registered: %d '%s'", chat_id, title)
        return self.get(chat_id)

    def get(self, chat_id: int) -> ChatContext | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM group_chats WHERE chat_id = ?", (chat_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_chat(row)

    def is_registered(self, chat_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM group_chats WHERE chat_id = ?", (chat_id,)
            ).fetchone()
        return row is not None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskDB(_SQLiteDB):
    """Tasks assigned through the task trigger."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id         INTEGER NOT NULL,
                    message_id      INTEGER NOT NULL,
                    requester_id    INTEGER NOT NULL,
                    requester_name  TEXT    NOT NULL DEFAULT '',
                    assignee        TEXT    NOT NULL,
                    title           TEXT    NOT NULL,
                    status          TEXT    NOT NULL DEFAULT 'pending_acceptance',
                    due_at          TEXT,
                    nudge_level     INTEGER NOT NULL DEFAULT 0,
                    last_nudge_at   TEXT,
                    completed_at    TEXT,
                    UNIQUE (chat_id, message_id)
                )
            """)
        logger.debug("tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            chat_id=row["chat_id"],
            message_id=row["message_id"],
            requester_id=row["requester_id"],
            requester_name=row["requester_name"],
            assignee=row["assignee"],
            title=row["title"],
            status=row["status"],
            due_at=_from_iso(row["due_at"]),
            nudge_level=row["nudge_level"],
            last_nudge_at=_from_iso(row["last_nudge_at"]),
            completed_at=_from_iso(row["completed_at"]),
        )

    def create(
        self,
        chat_id: int,
        message_id: int,
        requester_id: int,
        assignee: str,
        title: str,
        requester_name: str = "",
    ) -> Task:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks
                    (chat_id, message_id, requester_id, requester_name, assignee, title, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (chat_id, message_id, requester_id, requester_name, assignee, title,
                 TASK_PENDING_ACCEPTANCE),
            )
            task_id = cursor.lastrowid
        logger.info("Task created: #%d '%s' for @%s", task_id, title, assignee)
        return Task(
            id=task_id,
            chat_id=chat_id,
            message_id=message_id,
            requester_id=requester_id,
            requester_name=requester_name,
            assignee=assignee,
            title=title,
        )

    def get(self, task_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def get_by_message(self, chat_id: int, message_id: int) -> Task | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE chat_id = ? AND message_id = ?",
                (chat_id, message_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def set_deadline(self, task_id: int, due_at: datetime) -> bool:
        """Set the deadline and move the task to in_progress.

        Completed or rejected tasks are left untouched.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE tasks SET due_at = ?, status = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (_to_iso(due_at), TASK_IN_PROGRESS, task_id,
                 TASK_PENDING_ACCEPTANCE, TASK_IN_PROGRESS),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Task #%d deadline set to %s", task_id, due_at.isoformat())
        return updated

    def complete(self, task_id: int, completed_at: datetime) -> bool:
        """Transition in_progress → completed. False if it was not in progress."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE tasks SET status = ?, completed_at = ? WHERE id = ? AND status = ?",
                (TASK_COMPLETED, _to_iso(completed_at), task_id, TASK_IN_PROGRESS),
            )
        completed = cursor.rowcount > 0
        if completed:
            logger.info("Task #%d completed", task_id)
        return completed

    def list_overdue(self, now: datetime) -> list[Task]:
        """In-progress tasks whose deadline has passed."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE status = ? AND due_at IS NOT NULL AND due_at < ? ORDER BY due_at",
                (TASK_IN_PROGRESS, _to_iso(now)),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def record_nudge(self, task_id: int, level: int, at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET nudge_level = ?, last_nudge_at = ? WHERE id = ?",
                (level, _to_iso(at), task_id),
            )
        logger.info("Task #%d nudged to level %d", task_id, level)


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


class MeetingDB(_SQLiteDB):
    """Meetings created once an online/in-person format is chosen."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS meetings (
                    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id               INTEGER NOT NULL,
                    title                 TEXT    NOT NULL,
                    meeting_type          TEXT    NOT NULL,
                    meet_url_or_location  TEXT    NOT NULL,
                    start_at              TEXT    NOT NULL,
                    end_at                TEXT    NOT NULL,
                    attendees             TEXT    NOT NULL DEFAULT '[]',
                    calendar_event_id     TEXT,
                    status                TEXT    NOT NULL DEFAULT 'confirmed',
                    reminder_sent         INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("meetings table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_meeting(row: sqlite3.Row) -> Meeting:
        return Meeting(
            id=row["id"],
            chat_id=row["chat_id"],
            title=row["title"],
            meeting_type=row["meeting_type"],
            meet_url_or_location=row["meet_url_or_location"],
            start_at=_from_iso(row["start_at"]),
            end_at=_from_iso(row["end_at"]),
            attendees=json.loads(row["attendees"]),
            calendar_event_id=row["calendar_event_id"],
            status=row["status"],
            reminder_sent=bool(row["reminder_sent"]),
        )

    def create(
        self,
        chat_id: int,
        title: str,
        meeting_type: str,
        meet_url_or_location: str,
        start_at: datetime,
        end_at: datetime,
        attendees: list[str] | None = None,
        calendar_event_id: str | None = None,
    ) -> Meeting:
        attendees = attendees or []
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO meetings
                    (chat_id, title, meeting_type, meet_url_or_location,
                     start_at, end_at, attendees, calendar_event_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (chat_id, title, meeting_type, meet_url_or_location,
                 _to_iso(start_at), _to_iso(end_at),
                 json.dumps(attendees, ensure_ascii=False), calendar_event_id),
            )
            meeting_id = cursor.lastrowid
        logger.info("Meeting created: #%d '%s' (%s)", meeting_id, title, meeting_type)
        return Meeting(
            id=meeting_id,
            chat_id=chat_id,
            title=title,
            meeting_type=meeting_type,
            meet_url_or_location=meet_url_or_location,
            start_at=start_at,
            end_at=end_at,
            attendees=attendees,
            calendar_event_id=calendar_event_id,
        )

    def get(self, meeting_id: int) -> Meeting | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_meeting(row)

    def list_starting_between(self, start: datetime, end: datetime) -> list[Meeting]:
        """Confirmed meetings with no start notice yet, starting in [start, end]."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM meetings
                WHERE status = 'confirmed' AND reminder_sent = 0
                  AND start_at >= ? AND start_at <= ?
                ORDER BY start_at
                """,
                (_to_iso(start), _to_iso(end)),
            ).fetchall()
        return [self._row_to_meeting(r) for r in rows]

    def mark_reminder_sent(self, meeting_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE meetings SET reminder_sent = 1 WHERE id = ? AND reminder_sent = 0",
                (meeting_id,),
            )
        return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


class DraftDB(_SQLiteDB):
    """AI drafts and their review state machine."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS drafts (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id          INTEGER NOT NULL,
                    draft_text        TEXT    NOT NULL,
                    target_chat_id    INTEGER NOT NULL,
                    status            TEXT    NOT NULL DEFAULT 'pending_approval',
                    source            TEXT    NOT NULL DEFAULT 'ai_trigger',
                    original_message  TEXT    NOT NULL DEFAULT '',
                    created_at        TEXT    NOT NULL
                )
            """)
        logger.debug("drafts table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_draft(row: sqlite3.Row) -> Draft:
        return Draft(
            id=row["id"],
            owner_id=row["owner_id"],
            draft_text=row["draft_text"],
            target_chat_id=row["target_chat_id"],
            status=row["status"],
            source=row["source"],
            original_message=row["original_message"],
        )

    def create(
        self,
        owner_id: int,
        draft_text: str,
        target_chat_id: int,
        source: str = "ai_trigger",
        original_message: str = "",
    ) -> Draft:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO drafts
                    (owner_id, draft_text, target_chat_id, status, source, original_message, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (owner_id, draft_text, target_chat_id, DRAFT_PENDING_APPROVAL,
                 source, original_message, _utcnow().isoformat()),
            )
            draft_id = cursor.lastrowid
        logger.info("Draft created: #%d for owner %d (%s)", draft_id, owner_id, source)
        return Draft(
            id=draft_id,
            owner_id=owner_id,
            draft_text=draft_text,
            target_chat_id=target_chat_id,
            source=source,
            original_message=original_message,
        )

    def get(self, draft_id: int) -> Draft | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM drafts WHERE id = ?", (draft_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_draft(row)

    def transition(self, draft_id: int, from_status: str, to_status: str) -> bool:
        """Move a draft between states only if it is still in from_status."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE drafts SET status = ? WHERE id = ? AND status = ?",
                (to_status, draft_id, from_status),
            )
        changed = cursor.rowcount > 0
        if changed:
            logger.info("Draft #%d: %s → %s", draft_id, from_status, to_status)
        return changed

    def approve(self, draft_id: int) -> bool:
        return self.transition(draft_id, DRAFT_PENDING_APPROVAL, DRAFT_APPROVED)

    def reject(self, draft_id: int) -> bool:
        return self.transition(draft_id, DRAFT_PENDING_APPROVAL, DRAFT_REJECTED)

    def start_editing(self, draft_id: int) -> bool:
        return self.transition(draft_id, DRAFT_PENDING_APPROVAL, DRAFT_EDITING)

    def find_editing(self, owner_id: int) -> Draft | None:
        """The owner's draft currently in editing, if any."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM drafts WHERE owner_id = ? AND status = ? ORDER BY id DESC LIMIT 1",
                (owner_id, DRAFT_EDITING),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_draft(row)

    def finish_editing(self, draft_id: int, new_text: str) -> bool:
        """Overwrite the text and return to pending_approval, only from editing."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE drafts SET draft_text = ?, status = ? WHERE id = ? AND status = ?",
                (new_text, DRAFT_PENDING_APPROVAL, draft_id, DRAFT_EDITING),
            )
        changed = cursor.rowcount > 0
        if changed:
            logger.info("Draft #%d edited", draft_id)
        return changed


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class ReminderDB(_SQLiteDB):
    """One-off and recurring reminders."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    id                       INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id                  INTEGER NOT NULL,
                    user_id                  INTEGER NOT NULL,
                    message                  TEXT    NOT NULL,
                    remind_at                TEXT    NOT NULL,
                    status                   TEXT    NOT NULL DEFAULT 'pending',
                    repeat_type              TEXT    NOT NULL DEFAULT 'none',
                    repeat_days              TEXT,
                    repeat_end_date          TEXT,
                    event_name               TEXT    NOT NULL DEFAULT '',
                    reminder_minutes_before  INTEGER NOT NULL DEFAULT 0,
                    sent_at                  TEXT
                )
            """)
        logger.debug("reminders table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        return Reminder(
            id=row["id"],
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            message=row["message"],
            remind_at=_from_iso(row["remind_at"]),
            status=row["status"],
            repeat_type=row["repeat_type"],
            repeat_days=_int_list(row["repeat_days"]),
            repeat_end_date=_from_iso(row["repeat_end_date"]),
            event_name=row["event_name"],
            reminder_minutes_before=row["reminder_minutes_before"],
            sent_at=_from_iso(row["sent_at"]),
        )

    def create(
        self,
        chat_id: int,
        user_id: int,
        message: str,
        remind_at: datetime,
        repeat_type: str = "none",
        repeat_days: list[int] | None = None,
        repeat_end_date: datetime | None = None,
        event_name: str = "",
        reminder_minutes_before: int = 0,
    ) -> Reminder:
        repeat_days = repeat_days or []
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO reminders
                    (chat_id, user_id, message, remind_at, status, repeat_type,
                     repeat_days, repeat_end_date, event_name, reminder_minutes_before)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (chat_id, user_id, message, _to_iso(remind_at), REMINDER_PENDING,
                 repeat_type, _join_ints(repeat_days) or None, _to_iso(repeat_end_date),
                 event_name, reminder_minutes_before),
            )
            reminder_id = cursor.lastrowid
        logger.info(
            "Reminder created: #%d '%s' at %s (%s)",
            reminder_id, event_name, remind_at.isoformat(), repeat_type,
        )
        return Reminder(
            id=reminder_id,
            chat_id=chat_id,
            user_id=user_id,
            message=message,
            remind_at=remind_at,
            repeat_type=repeat_type,
            repeat_days=repeat_days,
            repeat_end_date=repeat_end_date,
            event_name=event_name,
            reminder_minutes_before=reminder_minutes_before,
        )

    def get(self, reminder_id: int) -> Reminder | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_reminder(row)

    def pending_reminders(self, now: datetime) -> list[Reminder]:
        """Pending reminders whose remind_at is at or before now."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM reminders WHERE status = ? AND remind_at <= ? ORDER BY remind_at",
                (REMINDER_PENDING, _to_iso(now)),
            ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def mark_sent(self, reminder_id: int, sent_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE reminders SET status = ?, sent_at = ? WHERE id = ?",
                (REMINDER_SENT, _to_iso(sent_at), reminder_id),
            )
        logger.info("Reminder #%d sent", reminder_id)

    def reschedule(self, reminder_id: int, remind_at: datetime, sent_at: datetime) -> None:
        """Advance a recurring reminder's pointer and keep it pending."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE reminders SET remind_at = ?, status = ?, sent_at = ? WHERE id = ?",
                (_to_iso(remind_at), REMINDER_PENDING, _to_iso(sent_at), reminder_id),
            )
        logger.info("Reminder #%d rescheduled to %s", reminder_id, remind_at.isoformat())


# ---------------------------------------------------------------------------
# Recurring tasks
# ---------------------------------------------------------------------------


class RecurringTaskDB(_SQLiteDB):
    """Recurring tasks and their append-only completion log."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_tasks (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id        INTEGER NOT NULL,
                    assignee       TEXT    NOT NULL,
                    task_title     TEXT    NOT NULL,
                    frequency      TEXT    NOT NULL,
                    day_of_week    INTEGER,
                    day_of_month   INTEGER,
                    exclude_days   TEXT,
                    hour           INTEGER NOT NULL,
                    minute         INTEGER NOT NULL,
                    is_active      INTEGER NOT NULL DEFAULT 1,
                    next_send_at   TEXT    NOT NULL,
                    last_sent_at   TEXT,
                    created_by     INTEGER
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurring_task_completions (
                    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                    recurring_task_id   INTEGER NOT NULL,
                    chat_id             INTEGER NOT NULL,
                    completed_by        INTEGER NOT NULL,
                    completed_by_name   TEXT    NOT NULL DEFAULT '',
                    scheduled_at        TEXT    NOT NULL,
                    completed_at        TEXT    NOT NULL
                )
            """)
        logger.debug("recurring_tasks tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_recurring(row: sqlite3.Row) -> RecurringTask:
        return RecurringTask(
            id=row["id"],
            chat_id=row["chat_id"],
            assignee=row["assignee"],
            task_title=row["task_title"],
            frequency=row["frequency"],
            day_of_week=row["day_of_week"],
            day_of_month=row["day_of_month"],
            exclude_days=_int_list(row["exclude_days"]),
            hour=row["hour"],
            minute=row["minute"],
            is_active=bool(row["is_active"]),
            next_send_at=_from_iso(row["next_send_at"]),
            last_sent_at=_from_iso(row["last_sent_at"]),
            created_by=row["created_by"],
        )

    def create(
        self,
        chat_id: int,
        assignee: str,
        task_title: str,
        frequency: str,
        hour: int,
        minute: int,
        next_send_at: datetime,
        day_of_week: int | None = None,
        day_of_month: int | None = None,
        exclude_days: list[int] | None = None,
        created_by: int | None = None,
    ) -> RecurringTask:
        exclude_days = exclude_days or []
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO recurring_tasks
                    (chat_id, assignee, task_title, frequency, day_of_week, day_of_month,
                     exclude_days, hour, minute, is_active, next_send_at, created_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                """,
                (chat_id, assignee, task_title, frequency, day_of_week, day_of_month,
                 _join_ints(exclude_days) or None, hour, minute,
                 _to_iso(next_send_at), created_by),
            )
            task_id = cursor.lastrowid
        logger.info(
            "Recurring task created: #%d '%s' (%s) next at %s",
            task_id, task_title, frequency, next_send_at.isoformat(),
        )
        return RecurringTask(
            id=task_id,
            chat_id=chat_id,
            assignee=assignee,
            task_title=task_title,
            frequency=frequency,
            hour=hour,
            minute=minute,
            next_send_at=next_send_at,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
            exclude_days=exclude_days,
            created_by=created_by,
        )

    def get(self, task_id: int) -> RecurringTask | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM recurring_tasks WHERE id = ?", (task_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_recurring(row)

    def due_recurring_tasks(self, now: datetime) -> list[RecurringTask]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM recurring_tasks WHERE is_active = 1 AND next_send_at <= ? ORDER BY next_send_at",
                (_to_iso(now),),
            ).fetchall()
        return [self._row_to_recurring(r) for r in rows]

    def advance(self, task_id: int, next_send_at: datetime, last_sent_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE recurring_tasks SET next_send_at = ?, last_sent_at = ? WHERE id = ?",
                (_to_iso(next_send_at), _to_iso(last_sent_at), task_id),
            )
        logger.info("Recurring task #%d next send at %s", task_id, next_send_at.isoformat())

    def add_completion(
        self,
        recurring_task_id: int,
        chat_id: int,
        completed_by: int,
        scheduled_at: datetime,
        completed_at: datetime,
        completed_by_name: str = "",
    ) -> RecurringTaskCompletion:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO recurring_task_completions
                    (recurring_task_id, chat_id, completed_by, completed_by_name,
                     scheduled_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (recurring_task_id, chat_id, completed_by, completed_by_name,
                 _to_iso(scheduled_at), _to_iso(completed_at)),
            )
            completion_id = cursor.lastrowid
        logger.info("Recurring task #%d completed by %d", recurring_task_id, completed_by)
        return RecurringTaskCompletion(
            id=completion_id,
            recurring_task_id=recurring_task_id,
            chat_id=chat_id,
            completed_by=completed_by,
            completed_by_name=completed_by_name,
            scheduled_at=scheduled_at,
            completed_at=completed_at,
        )

    def list_completions(self, recurring_task_id: int) -> list[RecurringTaskCompletion]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM recurring_task_completions WHERE recurring_task_id = ? ORDER BY id",
                (recurring_task_id,),
            ).fetchall()
        return [
            RecurringTaskCompletion(
                id=r["id"],
                recurring_task_id=r["recurring_task_id"],
                chat_id=r["chat_id"],
                completed_by=r["completed_by"],
                completed_by_name=r["completed_by_name"],
                scheduled_at=_from_iso(r["scheduled_at"]),
                completed_at=_from_iso(r["completed_at"]),
            )
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Translation sessions
# ---------------------------------------------------------------------------


class TranslationDB(_SQLiteDB):
    """Live translation sessions, at most one active per (chat, user)."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS translation_sessions (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id          INTEGER NOT NULL,
                    user_id          INTEGER NOT NULL,
                    is_active        INTEGER NOT NULL DEFAULT 1,
                    my_language      TEXT    NOT NULL DEFAULT 'ja',
                    target_language  TEXT    NOT NULL DEFAULT 'auto',
                    created_at       TEXT    NOT NULL
                )
            """)
        logger.debug("translation_sessions table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> TranslationSession:
        return TranslationSession(
            id=row["id"],
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            is_active=bool(row["is_active"]),
            my_language=row["my_language"],
            target_language=row["target_language"],
        )

    def start(self, chat_id: int, user_id: int, my_language: str = "ja") -> TranslationSession:
        with self._connect() as conn:
            conn.execute(
                "UPDATE translation_sessions SET is_active = 0 WHERE chat_id = ? AND user_id = ?",
                (chat_id, user_id),
            )
            cursor = conn.execute(
                """
                INSERT INTO translation_sessions
                    (chat_id, user_id, is_active, my_language, target_language, created_at)
                VALUES (?, ?, 1, ?, 'auto', ?)
                """,
                (chat_id, user_id, my_language, _utcnow().isoformat()),
            )
            session_id = cursor.lastrowid
        logger.info("Translation session #%d started in chat %d by %d", session_id, chat_id, user_id)
        return TranslationSession(
            id=session_id, chat_id=chat_id, user_id=user_id, my_language=my_language,
        )

    def get_active(self, chat_id: int, user_id: int) -> TranslationSession | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM translation_sessions WHERE chat_id = ? AND user_id = ? AND is_active = 1",
                (chat_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_session(row)

    def get_active_in_chat(self, chat_id: int) -> TranslationSession | None:
        """Any active session in the chat (most recent first)."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM translation_sessions WHERE chat_id = ? AND is_active = 1 ORDER BY id DESC LIMIT 1",
                (chat_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_session(row)

    def end(self, chat_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE translation_sessions SET is_active = 0 WHERE chat_id = ? AND user_id = ? AND is_active = 1",
                (chat_id, user_id),
            )
        ended = cursor.rowcount > 0
        if ended:
            logger.info("Translation session ended in chat %d by %d", chat_id, user_id)
        return ended

    def set_target_language(self, session_id: int, language: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE translation_sessions SET target_language = ? WHERE id = ?",
                (language, session_id),
            )
        logger.info("Translation session #%d target language: %s", session_id, language)


# ---------------------------------------------------------------------------
# Bot settings & audit log
# ---------------------------------------------------------------------------


class SettingsDB(_SQLiteDB):
    """Key/value tenant settings, written by the admin collaborator."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS bot_settings (
                    setting_key    TEXT PRIMARY KEY,
                    setting_value  TEXT
                )
            """)
        logger.debug("bot_settings table initialized at %s", self._db_path)

    def get_all(self) -> dict[str, str | None]:
        with self._connect() as conn:
            rows = conn.execute("SELECT setting_key, setting_value FROM bot_settings").fetchall()
        return {r["setting_key"]: r["setting_value"] for r in rows}

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO bot_settings (setting_key, setting_value) VALUES (?, ?)
                ON CONFLICT(setting_key) DO UPDATE SET setting_value = excluded.setting_value
                """,
                (key, value),
            )
        logger.info("Bot setting %s updated", key)

    def load(self, default_timezone: str):
        """Return a validated BotSettings for the current rows."""
        from secretary.config import BotSettings

        return BotSettings.from_rows(self.get_all(), default_timezone)


class AuditLogDB(_SQLiteDB):
    """Append-only audit trail of mutating actions."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    actor_id     INTEGER,
                    action       TEXT NOT NULL,
                    object_type  TEXT NOT NULL,
                    object_id    TEXT NOT NULL,
                    payload      TEXT NOT NULL DEFAULT '{}',
                    created_at   TEXT NOT NULL
                )
            """)
        logger.debug("audit_logs table initialized at %s", self._db_path)

    def record(
        self,
        actor_id: int | None,
        action: str,
        object_type: str,
        object_id: int | str,
        payload: dict | None = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO audit_logs (actor_id, action, object_type, object_id, payload, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (actor_id, action, object_type, str(object_id),
                 json.dumps(payload or {}, ensure_ascii=False), _utcnow().isoformat()),
            )
        logger.info("Audit: %s %s #%s by %s", action, object_type, object_id, actor_id)

    def list_recent(self, limit: int = 50) -> list[AuditLogEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_logs ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            AuditLogEntry(
                id=r["id"],
                actor_id=r["actor_id"],
                action=r["action"],
                object_type=r["object_type"],
                object_id=r["object_id"],
                payload=json.loads(r["payload"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]


class Store:
    """All tables over one SQLite file."""

    def __init__(self, db_path: str | None = None) -> None:
        self.group_chats = GroupChatDB(db_path)
        self.tasks = TaskDB(db_path)
        self.meetings = MeetingDB(db_path)
        self.drafts = DraftDB(db_path)
        self.reminders = ReminderDB(db_path)
        self.recurring_tasks = RecurringTaskDB(db_path)
        self.translations = TranslationDB(db_path)
        self.settings = SettingsDB(db_path)
        self.audit = AuditLogDB(db_path)
