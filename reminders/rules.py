"""Pure timing and identity rules for reminders.

Window width is twice the ticker cadence, so every activity is seen by at
least one run; overlapping runs are deduplicated by the claim store, never
by the windows.
"""
from datetime import datetime, timedelta
from uuid import UUID

from schemas.reminders import ReminderType

PRE_START = "pre_start_1h"
POST_START = "post_start_1h_open"
DAILY_DIGEST = "daily_digest"

WINDOW_NEAR = timedelta(minutes=55)
WINDOW_FAR = timedelta(minutes=65)

# scheduled_for recorded on the claim, relative to the activity start
SCHEDULED_FOR_OFFSET = {
    PRE_START: -timedelta(hours=1),
    POST_START: timedelta(hours=1),
}

CLOSED_STATUSES = frozenset({"completed"})


def is_activity_closed(status: str) -> bool:
    return status in CLOSED_STATUSES


def pre_start_window(now: datetime) -> tuple[datetime, datetime]:
    """Activities starting in roughly one hour: [now+55m, now+65m]."""
    return now + WINDOW_NEAR, now + WINDOW_FAR


def post_start_window(now: datetime) -> tuple[datetime, datetime]:
    """Activities that started roughly one hour ago: [now-65m, now-55m]."""
    return now - WINDOW_FAR, now - WINDOW_NEAR


def activity_dedupe_key(reminder_type: ReminderType, activity_id: UUID) -> str:
    if reminder_type not in SCHEDULED_FOR_OFFSET:
        raise ValueError(f"{reminder_type!r} is not a per-activity reminder type")
    return f"{reminder_type}:{activity_id}"


def digest_dedupe_key(user_id: UUID, local_date_string: str) -> str:
    """One digest per user per local calendar date."""
    return f"{DAILY_DIGEST}:{user_id}:{local_date_string}"
