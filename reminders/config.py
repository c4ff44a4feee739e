"""Environment-driven settings for the reminder worker."""
import os
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Dispatch settings (RESEND_API_KEY, REMINDER_FROM_EMAIL, EMAIL_TIMEOUT_SECONDS)
# are read by tools.email_tools at send time.

# Ticker cadence
REMINDER_INTERVAL_MINUTES = int(os.environ.get("REMINDER_INTERVAL_MINUTES", "5"))
DIGEST_INTERVAL_MINUTES = int(os.environ.get("DIGEST_INTERVAL_MINUTES", "15"))

# Local hour (0-23) during which each user's daily digest goes out
DIGEST_LOCAL_HOUR = int(os.environ.get("DIGEST_LOCAL_HOUR", "8"))

# 0 disables takeover of pending claims left behind by a crashed run
REMINDER_PENDING_RECLAIM_MINUTES = int(os.environ.get("REMINDER_PENDING_RECLAIM_MINUTES", "0"))


def pending_reclaim_after() -> Optional[timedelta]:
    if REMINDER_PENDING_RECLAIM_MINUTES <= 0:
        return None
    return timedelta(minutes=REMINDER_PENDING_RECLAIM_MINUTES)
