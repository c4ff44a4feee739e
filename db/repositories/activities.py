"""Activity repository: reminder window queries."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Activity, Lead

logger = logging.getLogger(__name__)

OPEN_STATUS = "todo"


async def get_by_id(session: AsyncSession, activity_id: UUID) -> Optional[Activity]:
    result = await session.execute(select(Activity).where(Activity.id == activity_id))
    return result.scalar_one_or_none()


async def get_open_in_trigger_window(
    session: AsyncSession,
    window_start: datetime,
    window_end: datetime,
) -> list[Activity]:
    """Return open activities whose scheduled_at falls in [window_start, window_end].

    Both bounds are inclusive. Activities without scheduled_at never match.
    """
    result = await session.execute(
        select(Activity)
        .where(
            Activity.status == OPEN_STATUS,
            Activity.scheduled_at.is_not(None),
            Activity.scheduled_at >= window_start,
            Activity.scheduled_at <= window_end,
        )
        .order_by(Activity.scheduled_at.asc())
    )
    activities = list(result.scalars().all())
    logger.debug(
        "Found %d open activities between %s and %s",
        len(activities), window_start.isoformat(), window_end.isoformat(),
    )
    return activities


async def get_open_for_user_between(
    session: AsyncSession,
    user_id: UUID,
    day_start: datetime,
    day_end: datetime,
) -> list[tuple[Activity, Optional[Lead]]]:
    """Return (activity, lead) pairs for a user's open activities in a UTC range.

    Ordered by scheduled_at ascending. The lead is outer-joined so an
    activity whose lead is gone still appears, paired with None.
    """
    result = await session.execute(
        select(Activity, Lead)
        .outerjoin(Lead, Lead.id == Activity.lead_id)
        .where(
            Activity.assigned_to_user_id == user_id,
            Activity.status == OPEN_STATUS,
            Activity.scheduled_at.is_not(None),
            Activity.scheduled_at >= day_start,
            Activity.scheduled_at <= day_end,
        )
        .order_by(Activity.scheduled_at.asc())
    )
    return [(row.Activity, row.Lead) for row in result.all()]
