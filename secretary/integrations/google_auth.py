"""
Group Secretary Bot — Google Calendar Authentication.

Meet links are generated through the Google Calendar API of the linked
account. The bot itself only reads the stored token; linking is a one-time
interactive step run from the command line:

    python -m secretary.integrations.google_auth
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from secretary.ports.calendar_port import CalendarError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


def _token_path() -> Path:
    from secretary.config import settings

    return Path(settings.GOOGLE_TOKEN_PATH)


def has_stored_token() -> bool:
    """True when a Google account has been linked."""
    return _token_path().exists()


def get_calendar_service():
    """Return a Google Calendar API v3 service built from the stored token.

    Flow:
    1. Load the token from disk (CalendarError if no account is linked).
    2. If expired, refresh with the refresh token and persist it.
    """
    token_path = _token_path()
    if not token_path.exists():
        raise CalendarError("Google account is not linked")

    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    logger.debug("Loaded token from %s", token_path)

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except Exception as exc:
            raise CalendarError(f"Token refresh failed: {exc}") from exc
        token_path.write_text(creds.to_json())
        logger.info("Token refreshed successfully")

    if not creds.valid:
        raise CalendarError("Stored Google credentials are invalid")

    return build("calendar", "v3", credentials=creds)


def authorize() -> None:
    """Run the OAuth2 consent flow and persist the token."""
    from secretary.config import settings

    creds_path = Path(settings.GOOGLE_CREDENTIALS_PATH)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google credentials file not found at {creds_path}. "
            "Download it from the Google Cloud Console."
        )
    flow = InstalledAppFlow.from_client_secrets_file(str(creds_path), SCOPES)
    creds = flow.run_local_server(port=0)

    token_path = _token_path()
    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.info("Token saved to %s", token_path)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    print("Running Google Calendar authorization flow...")
    authorize()
    svc = get_calendar_service()
    calendar = svc.calendars().get(calendarId="primary").execute()
    print(f"Auth successful! Linked calendar: {calendar.get('summary', '(primary)')}")
