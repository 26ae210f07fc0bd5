"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from secretary.integrations.google_auth import get_calendar_service, has_stored_token
from secretary.ports.calendar_port import CalendarError, MeetEvent

logger = logging.getLogger(__name__)


def _build_event_body(
    title: str,
    start: datetime,
    end: datetime,
    description: str | None,
    attendees: list[str] | None,
) -> dict:
    """Construct an event body that asks Google to attach a Meet conference."""
    body: dict = {
        "summary": title,
        "description": description or "",
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": end.isoformat()},
        "conferenceData": {
            "createRequest": {
                "requestId": uuid.uuid4().hex,
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            },
        },
    }
    emails = [a for a in (attendees or []) if "@" in a and not a.startswith("@")]
    if emails:
        body["attendees"] = [{"email": e} for e in emails]
    return body


def _meet_link(created: dict) -> str:
    if created.get("hangoutLink"):
        return created["hangoutLink"]
    for entry in created.get("conferenceData", {}).get("entryPoints", []):
        if entry.get("entryPointType") == "video":
            return entry.get("uri", "")
    return ""


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort."""

    def is_connected(self) -> bool:
        return has_stored_token()

    async def create_meet_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
        attendees: list[str] | None = None,
    ) -> MeetEvent:
        event_body = _build_event_body(title, start, end, description, attendees)
        try:
            service = get_calendar_service()
            created = (
                service.events()
                .insert(calendarId="primary", body=event_body, conferenceDataVersion=1)
                .execute()
            )
        except CalendarError:
            raise
        except Exception as exc:
            logger.error("Google Calendar API error: %s", exc)
            raise CalendarError(f"Failed to create event: {exc}") from exc

        link = _meet_link(created)
        if not link:
            raise CalendarError("Event created without a Meet link")
        logger.info("Meet event created: '%s' at %s: %s", title, start.isoformat(), link)
        return MeetEvent(
            event_id=created.get("id", ""),
            meet_link=link,
            html_link=created.get("htmlLink", ""),
        )
