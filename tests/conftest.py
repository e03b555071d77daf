"""Shared fixtures: in-memory database, account factory and a fake push provider."""
from datetime import datetime
from typing import List, Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

from fibrodiario.database import Base
from fibrodiario.models import Account, DeviceToken

from .fakes import FakeProvider


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def make_account(session_factory):
    """Create an account, eligible for every category by default."""

    async def _make(
        account_id: str,
        tokens: Optional[List[str]] = None,
        issued_at: Optional[datetime] = None,
        **fields,
    ) -> Account:
        values = {
            "subscription_active": True,
            "notifications_enabled": True,
            "timezone": "America/Sao_Paulo",
        }
        values.update(fields)
        async with session_factory() as session:
            session.add(Account(id=account_id, **values))
            for token in tokens or []:
                session.add(DeviceToken(
                    account_id=account_id,
                    token=token,
                    platform="web",
                    issued_at=issued_at or datetime.utcnow(),
                    last_active_at=issued_at or datetime.utcnow(),
                ))
            await session.commit()

    return _make


@pytest.fixture
def provider():
    return FakeProvider()
