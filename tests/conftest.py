"""Pytest fixtures for pay run engine tests."""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payrun_engine.config import Settings, get_settings
from payrun_engine.models import Base

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the calculation defaults and a small worker pool."""
    return dataclasses.replace(
        get_settings(),
        max_workers=2,
        stage_timeout_seconds=5.0,
        standard_shift_hours=Decimal("80"),
        default_hourly_rate=Decimal("30"),
        basic_salary_payhead_id=1,
    )


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()
