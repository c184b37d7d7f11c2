# backend/labprovider/services/event_matcher.py
"""Select bookings that are active right now and work out who booked them."""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List

from labprovider.services.calendar_service import CalendarEvent


@dataclass
class EventInfo:
    """An active booking and the contact address of the person who made it."""
    summary: str
    email: str = ""


def extract_email_from_summary(summary: str) -> str:
    """Extract an email from a summary of the form "Name (email@domain.com)".

    Every "(" moves the start just past it; the first ")" seen after a start
    ends the scan. Nested parentheses therefore resolve to the innermost
    address. Returns "" when there is no such pair.
    """
    start = -1
    end = -1
    for i, char in enumerate(summary):
        if char == "(":
            start = i + 1
        elif char == ")" and start > 0:
            end = i
            break

    if start > 0 and end > start:
        return summary[start:end]
    return ""


def participant_email(event: CalendarEvent) -> str:
    """First non-organizer attendee email, else the address in the summary."""
    for attendee in event.attendees:
        if attendee.email and not attendee.organizer:
            return attendee.email
    if event.summary:
        return extract_email_from_summary(event.summary)
    return ""


def is_active(event: CalendarEvent, now: datetime) -> bool:
    """Half-open window check: start <= now < end. All-day events never match."""
    if event.start is None or event.end is None:
        return False
    return event.start <= now < event.end


def filter_active_events(events: Iterable[CalendarEvent], now: datetime) -> List[EventInfo]:
    """Keep events active at ``now``, preserving input order."""
    return [
        EventInfo(summary=event.summary, email=participant_email(event))
        for event in events
        if is_active(event, now)
    ]
