"""Display formatting for reminder e-mails (en-US, 12-hour clock)."""
from datetime import date, datetime
from typing import Optional

from reminders.timezones import to_local

ACTIVITY_TYPE_LABELS = {
    "call": "Call",
    "whatsapp": "WhatsApp",
    "email": "Email",
    "meeting": "Meeting",
    "viewing": "Viewing",
    "note": "Note",
}

DEFAULT_DISPLAY_NAME = "there"
UNKNOWN_LEAD_NAME = "Unknown lead"


def format_activity_type(activity_type: str) -> str:
    return ACTIVITY_TYPE_LABELS.get(activity_type, activity_type)


def user_display_name(
    full_name: Optional[str] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> str:
    """Best available greeting name: full name, name, e-mail local part, "there"."""
    for candidate in (full_name, name):
        if candidate and candidate.strip():
            return candidate.strip()
    if email:
        local_part = email.split("@")[0].strip()
        if local_part:
            return local_part
    return DEFAULT_DISPLAY_NAME


def format_time(instant: datetime, zone: Optional[str] = "UTC") -> str:
    """e.g. "10:30 AM" """
    local = to_local(instant, zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {meridiem}"


def format_scheduled_datetime(instant: datetime, zone: Optional[str] = "UTC") -> str:
    """e.g. "Monday, Feb 23, 2026 at 10:30 AM" """
    local = to_local(instant, zone)
    return (
        f"{local.strftime('%A')}, {local.strftime('%b')} {local.day}, {local.year}"
        f" at {format_time(instant, zone)}"
    )


def format_short_date(date_string: str) -> str:
    """Label for a local YYYY-MM-DD date, e.g. "Mon, Feb 23"."""
    day = date.fromisoformat(date_string)
    return f"{day.strftime('%a')}, {day.strftime('%b')} {day.day}"
