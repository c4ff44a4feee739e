"""Activity reminder and daily digest processing for SynCRM."""
from reminders.processors import (
    process_daily_digests,
    process_post_start_reminders,
    process_pre_start_reminders,
)

__all__ = [
    "process_pre_start_reminders",
    "process_post_start_reminders",
    "process_daily_digests",
]
