"""
Group Secretary Bot — Per-chat Pending Conversation State.

Each chat holds at most one continuation: a single mapping from chat id to one
tagged variant. Starting a new multi-step flow replaces whatever was pending.
The table lives in process memory only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

logger = logging.getLogger(__name__)


@dataclass
class MeetingDraft:
    """A meeting parsed from the trigger text, not yet persisted."""

    title: str
    start_at: datetime | None
    attendees: list[str]
    requested_by: int


@dataclass
class AwaitingCustomDate:
    task_message_id: int

    consumes_text = True


@dataclass
class AwaitingMeetingFormat:
    meeting: MeetingDraft

    consumes_text = False


@dataclass
class AwaitingLocation:
    meeting: MeetingDraft

    consumes_text = True


# Recurring setup steps, in dialog order
STEP_FREQUENCY = "frequency"
STEP_EXCLUDE_DAYS = "exclude_days"
STEP_DAY_OF_WEEK = "day_of_week"
STEP_DAY_OF_MONTH = "day_of_month"
STEP_TIME = "time"
STEP_TASK_TITLE = "task_title"
STEP_ASSIGNEE = "assignee"

_TEXT_STEPS = {STEP_DAY_OF_MONTH, STEP_TIME, STEP_TASK_TITLE, STEP_ASSIGNEE}


@dataclass
class AwaitingRecurringStep:
    step: str
    creator_id: int
    frequency: str | None = None
    day_of_week: int | None = None
    day_of_month: int | None = None
    exclude_days: list[int] = field(default_factory=list)
    hour: int | None = None
    minute: int | None = None
    task_title: str | None = None

    @property
    def consumes_text(self) -> bool:
        # Button-driven steps leave text to the trigger classifier
        return self.step in _TEXT_STEPS


PendingState = Union[AwaitingCustomDate, AwaitingMeetingFormat, AwaitingLocation, AwaitingRecurringStep]


class PendingStates:
    """Chat id → the single pending continuation for that chat."""

    def __init__(self) -> None:
        self._states: dict[int, PendingState] = {}

    def get(self, chat_id: int) -> PendingState | None:
        return self._states.get(chat_id)

    def set(self, chat_id: int, state: PendingState) -> None:
        previous = self._states.get(chat_id)
        if previous is not None and type(previous) is not type(state):
            logger.info(
                "Chat %d: %s replaced by %s",
                chat_id, type(previous).__name__, type(state).__name__,
            )
        self._states[chat_id] = state

    def clear(self, chat_id: int) -> None:
        self._states.pop(chat_id, None)

    def __len__(self) -> int:
        return len(self._states)
