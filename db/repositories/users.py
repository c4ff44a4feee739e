"""User repository: reminder recipients."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_active_users(session: AsyncSession) -> list[User]:
    """Return all active users, ordered by creation time."""
    result = await session.execute(
        select(User).where(User.is_active.is_(True)).order_by(User.created_at.asc())
    )
    return list(result.scalars().all())
