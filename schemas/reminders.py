"""Reminder value objects shared by the processors, templates and claim store."""
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

ReminderType = Literal["pre_start_1h", "post_start_1h_open", "daily_digest"]
ReminderStatus = Literal["pending", "sent", "skipped", "failed"]
TerminalStatus = Literal["sent", "skipped", "failed"]


class ClaimResult(BaseModel):
    """Outcome of an insert-if-absent on the dedupe key.

    claimed=False means another run already owns this occurrence;
    existing_status then holds that row's current status.
    """

    claimed: bool
    id: Optional[UUID] = None
    existing_status: Optional[ReminderStatus] = None


class RenderedEmail(BaseModel):
    subject: str
    html: str
    text: str


class DigestItem(BaseModel):
    scheduled_at: datetime
    activity_type: str
    title: str
    lead_name: str
    lead_phone: str = ""


class RunSummary(BaseModel):
    """Per-run counters. duplicates is the subset of skipped lost to another claim."""

    sent: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    duplicates: int = Field(default=0, ge=0)

    def record(self, status: TerminalStatus) -> None:
        if status == "sent":
            self.sent += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
