"""Calendar port — abstract interface for calendar operations.

Core modules depend on this protocol, never on a specific provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""


@dataclass(frozen=True)
class MeetEvent:
    """A created calendar event with its video-meeting link."""

    event_id: str
    meet_link: str
    html_link: str = ""


class CalendarPort(Protocol):
    """Abstract calendar interface used by core modules."""

    def is_connected(self) -> bool: ...

    async def create_meet_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
        attendees: list[str] | None = None,
    ) -> MeetEvent: ...
