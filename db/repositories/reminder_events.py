"""Reminder claim store: insert-if-absent on dedupe_key, then finalize once.

A claim is a row in crm.activity_reminder_events. The unique constraint on
dedupe_key is the only coordination between overlapping runs: the run whose
INSERT lands owns the send, every other run sees the conflict and backs off.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ActivityReminderEvent
from schemas.reminders import ClaimResult, ReminderType, TerminalStatus

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("sent", "skipped", "failed")


def _insert_for(session: AsyncSession):
    """Pick the dialect insert that supports ON CONFLICT DO NOTHING."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def claim(
    session: AsyncSession,
    dedupe_key: str,
    *,
    user_id: UUID,
    reminder_type: ReminderType,
    scheduled_for: datetime,
    activity_id: Optional[UUID] = None,
    org_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
    stale_after: Optional[timedelta] = None,
) -> ClaimResult:
    """Atomically create a pending claim for dedupe_key if none exists.

    Returns ClaimResult(claimed=True, id=...) for the caller that created the
    row. On conflict returns claimed=False with the existing row's status.

    When stale_after is set, a conflicting row that is still pending and has
    not been touched for longer than stale_after is taken over by a
    conditional UPDATE; only one caller can win that update.
    """
    now = now or datetime.now(timezone.utc)
    insert = _insert_for(session)
    stmt = (
        insert(ActivityReminderEvent)
        .values(
            id=uuid.uuid4(),
            activity_id=activity_id,
            user_id=user_id,
            reminder_type=reminder_type,
            scheduled_for=scheduled_for,
            dedupe_key=dedupe_key,
            status="pending",
            attempt_count=1,
            org_id=org_id,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["dedupe_key"])
        .returning(ActivityReminderEvent.id)
    )
    result = await session.execute(stmt)
    claim_id = result.scalar_one_or_none()
    await session.flush()
    if claim_id is not None:
        return ClaimResult(claimed=True, id=claim_id)

    existing = (
        await session.execute(
            select(ActivityReminderEvent.id, ActivityReminderEvent.status)
            .where(ActivityReminderEvent.dedupe_key == dedupe_key)
        )
    ).one()

    if stale_after is not None and existing.status == "pending":
        taken_id = await _take_over_stale(session, existing.id, now - stale_after, now)
        if taken_id is not None:
            logger.warning(
                "Reclaimed stale pending reminder %s (dedupe_key=%s)", taken_id, dedupe_key
            )
            return ClaimResult(claimed=True, id=taken_id, existing_status="pending")

    return ClaimResult(claimed=False, id=existing.id, existing_status=existing.status)


async def _take_over_stale(
    session: AsyncSession, claim_id: UUID, cutoff: datetime, now: datetime
) -> Optional[UUID]:
    stmt = (
        update(ActivityReminderEvent)
        .where(
            ActivityReminderEvent.id == claim_id,
            ActivityReminderEvent.status == "pending",
            ActivityReminderEvent.updated_at < cutoff,
        )
        .values(
            attempt_count=ActivityReminderEvent.attempt_count + 1,
            updated_at=now,
        )
        .returning(ActivityReminderEvent.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.flush()
    return result.scalar_one_or_none()


async def finalize(
    session: AsyncSession,
    claim_id: UUID,
    status: TerminalStatus,
    *,
    sent_at: Optional[datetime] = None,
    skip_reason: Optional[str] = None,
    error: Optional[str] = None,
    message_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Move a pending claim to its terminal status.

    Returns False without writing if the row is missing or already terminal.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"finalize status must be one of {TERMINAL_STATUSES}, got {status!r}")

    now = now or datetime.now(timezone.utc)
    stmt = (
        update(ActivityReminderEvent)
        .where(
            ActivityReminderEvent.id == claim_id,
            ActivityReminderEvent.status == "pending",
        )
        .values(
            status=status,
            sent_at=sent_at,
            skip_reason=skip_reason,
            error=error,
            message_id=message_id,
            updated_at=now,
        )
        .returning(ActivityReminderEvent.id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    await session.flush()
    if result.scalar_one_or_none() is None:
        logger.warning("Reminder %s was not pending; finalize(%s) ignored", claim_id, status)
        return False
    return True


async def get_by_dedupe_key(
    session: AsyncSession, dedupe_key: str
) -> Optional[ActivityReminderEvent]:
    result = await session.execute(
        select(ActivityReminderEvent).where(ActivityReminderEvent.dedupe_key == dedupe_key)
    )
    return result.scalar_one_or_none()


async def count_by_status(
    session: AsyncSession, org_id: Optional[UUID] = None
) -> dict[tuple[str, str], int]:
    """Return {(reminder_type, status): count} across the claim log."""
    stmt = select(
        ActivityReminderEvent.reminder_type,
        ActivityReminderEvent.status,
        func.count(),
    ).group_by(ActivityReminderEvent.reminder_type, ActivityReminderEvent.status)
    if org_id is not None:
        stmt = stmt.where(ActivityReminderEvent.org_id == org_id)
    result = await session.execute(stmt)
    return {(row[0], row[1]): row[2] for row in result.all()}


async def get_stale_pending(
    session: AsyncSession,
    older_than: datetime,
    org_id: Optional[UUID] = None,
) -> list[ActivityReminderEvent]:
    """Return pending claims not updated since older_than, oldest first."""
    stmt = (
        select(ActivityReminderEvent)
        .where(
            ActivityReminderEvent.status == "pending",
            ActivityReminderEvent.updated_at < older_than,
        )
        .order_by(ActivityReminderEvent.updated_at.asc())
    )
    if org_id is not None:
        stmt = stmt.where(ActivityReminderEvent.org_id == org_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())
