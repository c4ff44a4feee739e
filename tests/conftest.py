"""Shared fixtures: in-memory SQLite with the crm schema attached, seed helpers, fake sender."""
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.models import Activity, Base, Lead, User


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _attach_crm(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("ATTACH DATABASE ':memory:' AS crm")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    """get_db() equivalent bound to the test engine."""
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def factory():
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return factory


class Seeder:
    def __init__(self, session_factory):
        self._factory = session_factory

    async def _add(self, obj):
        async with self._factory() as session:
            session.add(obj)
        return obj

    async def user(self, **fields) -> User:
        suffix = uuid.uuid4().hex[:8]
        values = {
            "id": uuid.uuid4(),
            "email": f"agent-{suffix}@example.com",
            "full_name": f"Agent {suffix}",
            "timezone": None,
            "is_active": True,
            "role": "agent",
            "org_id": None,
        }
        values.update(fields)
        return await self._add(User(**values))

    async def lead(self, **fields) -> Lead:
        values = {"id": uuid.uuid4(), "full_name": "Jane Buyer", "phone": "+1 555 0100"}
        values.update(fields)
        return await self._add(Lead(**values))

    async def activity(
        self,
        user: User,
        scheduled_at: Optional[datetime],
        lead: Optional[Lead] = None,
        **fields,
    ) -> Activity:
        values = {
            "id": uuid.uuid4(),
            "lead_id": lead.id if lead is not None else uuid.uuid4(),
            "type": "viewing",
            "title": "Viewing at 12 Elm St",
            "scheduled_at": scheduled_at,
            "status": "todo",
            "assigned_to_user_id": user.id,
            "org_id": user.org_id,
        }
        values.update(fields)
        return await self._add(Activity(**values))


@pytest_asyncio.fixture
async def seed(session_factory):
    return Seeder(session_factory)


class FakeSender:
    """Records every send; addresses in fail_for get a provider error back."""

    def __init__(self, fail_for=(), raise_for=()):
        self.calls = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    def __call__(self, to, subject, html, text=None):
        self.calls.append({"to": to, "subject": subject, "html": html, "text": text})
        if to in self.raise_for:
            raise RuntimeError("provider exploded")
        if to in self.fail_for:
            return {"success": False, "error": "mailbox unavailable"}
        return {"success": True, "message_id": f"msg-{len(self.calls)}"}


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def make_sender():
    return FakeSender
