from .reminders import (
    ClaimResult,
    DigestItem,
    ReminderStatus,
    ReminderType,
    RenderedEmail,
    RunSummary,
    TerminalStatus,
)

__all__ = [
    "ClaimResult", "DigestItem", "RenderedEmail", "RunSummary",
    "ReminderType", "ReminderStatus", "TerminalStatus",
]
