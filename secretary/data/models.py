"""
Group Secretary Bot — Data Models.

Records persisted in SQLite. Timestamps are aware UTC datetimes in memory and
UTC ISO-8601 strings on disk; conversion happens in the DB layer only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# Task status values
TASK_PENDING_ACCEPTANCE = "pending_acceptance"
TASK_IN_PROGRESS = "in_progress"
TASK_COMPLETED = "completed"
TASK_REJECTED = "rejected"

# Draft status values
DRAFT_PENDING_APPROVAL = "pending_approval"
DRAFT_APPROVED = "approved"
DRAFT_REJECTED = "rejected"
DRAFT_EDITING = "editing"

# Reminder status values
REMINDER_PENDING = "pending"
REMINDER_SENT = "sent"
REMINDER_CANCELLED = "cancelled"


@dataclass
class ChatContext:
    """A registered group chat (the tenant-side binding).

    Written by the admin collaborator or the in-chat registration button;
    the conversation engine only reads it.
    """

    chat_id: int
    title: str
    chat_type: str = "group"             # private | group | supergroup | channel
    responsible_user_id: int | None = None
    calendar_id: str | None = None
    created_at: str = ""


@dataclass
class Task:
    """A task assigned in a group chat, keyed by its trigger message id."""

    id: int
    chat_id: int
    message_id: int                      # id of the 【タスク】 message
    requester_id: int
    requester_name: str
    assignee: str                        # username without '@'
    title: str
    status: str = TASK_PENDING_ACCEPTANCE
    due_at: datetime | None = None
    nudge_level: int = 0
    last_nudge_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class Meeting:
    """A scheduled meeting, created once its format is chosen."""

    id: int
    chat_id: int
    title: str
    meeting_type: str                    # online | in_person
    meet_url_or_location: str
    start_at: datetime
    end_at: datetime
    attendees: list[str] = field(default_factory=list)
    calendar_event_id: str | None = None
    status: str = "confirmed"
    reminder_sent: bool = False


@dataclass
class Draft:
    """AI-generated content awaiting the owner's post/edit/discard decision."""

    id: int
    owner_id: int
    draft_text: str
    target_chat_id: int
    status: str = DRAFT_PENDING_APPROVAL
    source: str = "ai_trigger"           # ai_trigger | reply_generation
    original_message: str = ""


@dataclass
class Reminder:
    """A one-off or recurring reminder. remind_at is the scheduling pointer."""

    id: int
    chat_id: int
    user_id: int
    message: str
    remind_at: datetime
    status: str = REMINDER_PENDING
    repeat_type: str = "none"            # none | daily | weekly | monthly
    repeat_days: list[int] = field(default_factory=list)
    repeat_end_date: datetime | None = None
    event_name: str = ""
    reminder_minutes_before: int = 0
    sent_at: datetime | None = None


@dataclass
class RecurringTask:
    """A recurring task reminder. next_send_at is the scheduling pointer.

    Weekday numbering follows 0=Sunday .. 6=Saturday.
    """

    id: int
    chat_id: int
    assignee: str                        # username without '@'
    task_title: str
    frequency: str                       # daily | weekly | monthly
    hour: int
    minute: int
    next_send_at: datetime
    day_of_week: int | None = None
    day_of_month: int | None = None
    exclude_days: list[int] = field(default_factory=list)
    is_active: bool = True
    last_sent_at: datetime | None = None
    created_by: int | None = None


@dataclass
class RecurringTaskCompletion:
    """Append-only acknowledgement of one recurring-task occurrence."""

    id: int
    recurring_task_id: int
    chat_id: int
    completed_by: int
    completed_by_name: str
    scheduled_at: datetime
    completed_at: datetime


@dataclass
class TranslationSession:
    """Live translation between a chat member and the rest of the chat."""

    id: int
    chat_id: int
    user_id: int
    is_active: bool = True
    my_language: str = "ja"
    target_language: str = "auto"        # 'auto' until the first foreign message


@dataclass
class AuditLogEntry:
    """One mutating action, read by the admin collaborator."""

    id: int
    actor_id: int | None
    action: str
    object_type: str
    object_id: str
    payload: dict = field(default_factory=dict)
    created_at: str = ""
