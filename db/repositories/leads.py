"""Lead repository: lookups used to enrich reminder e-mails."""
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Lead


async def get_by_id(session: AsyncSession, lead_id: UUID) -> Optional[Lead]:
    result = await session.execute(select(Lead).where(Lead.id == lead_id))
    return result.scalar_one_or_none()
