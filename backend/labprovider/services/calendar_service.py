# backend/labprovider/services/calendar_service.py
"""Google Calendar access for lab bookings."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from labprovider.schemas.feature_config import CalendarConfig

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]


class CalendarError(Exception):
    """Raised when bookings cannot be fetched from the calendar."""
    pass


def parse_event_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 date-time; returns None for missing or malformed input."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    # Date-times without an offset cannot be compared to an aware "now"
    if parsed.tzinfo is None:
        return None
    return parsed


@dataclass
class Attendee:
    email: str = ""
    organizer: bool = False


@dataclass
class CalendarEvent:
    """A calendar booking reduced to the fields the pipeline needs.

    ``start``/``end`` are None for all-day events (date only) and for
    date-times that could not be parsed.
    """
    summary: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    attendees: List[Attendee] = field(default_factory=list)

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "CalendarEvent":
        start = item.get("start") or {}
        end = item.get("end") or {}
        return cls(
            summary=item.get("summary", ""),
            start=parse_event_time(start.get("dateTime")),
            end=parse_event_time(end.get("dateTime")),
            attendees=[
                Attendee(email=a.get("email", ""), organizer=bool(a.get("organizer", False)))
                for a in item.get("attendees", [])
            ],
        )


class CalendarService:
    """Lists bookings from a shared Google calendar using a service account."""

    def __init__(self, config: CalendarConfig, api: Optional[Any] = None):
        self.config = config
        if api is None:
            info = config.load_service_account_info()
            credentials = service_account.Credentials.from_service_account_info(
                info, scopes=CALENDAR_SCOPES
            )
            api = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        self._api = api

    def list_events(self, time_min: str, time_max: str) -> List[CalendarEvent]:
        """List single (expanded) events overlapping [time_min, time_max].

        Args:
            time_min: RFC 3339 lower bound
            time_max: RFC 3339 upper bound

        Returns:
            Events ordered by start time
        """
        try:
            response = self._api.events().list(
                calendarId=self.config.calendar_id,
                showDeleted=False,
                singleEvents=True,
                timeMin=time_min,
                timeMax=time_max,
                orderBy="startTime",
            ).execute()
        except HttpError as e:
            raise CalendarError(f"failed to list calendar events: {e}") from e

        items = response.get("items", [])
        logger.debug(f"Calendar returned {len(items)} events")
        return [CalendarEvent.from_api(item) for item in items]
