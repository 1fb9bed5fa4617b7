# ruff: noqa: S101
from __future__ import annotations

from typing import Any, AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db.base import Base
from app.db.models import RoleEnum as Role, User
from app.services import notifications
from tests.factories import Users


@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    # файлова БД: кілька з'єднань одночасно (потрібно для тестів гонок)
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def users(session_maker) -> Users:
    roles = {
        "customer": Role.CUSTOMER,
        "other_customer": Role.CUSTOMER,
        "tech": Role.TECHNICIAN,
        "other_tech": Role.TECHNICIAN,
        "maint_admin": Role.MAINTENANCE_ADMIN,
        "super_admin": Role.SUPER_ADMIN,
        "basma": Role.BASMA_ADMIN,
    }
    async with session_maker() as session:
        created = {
            key: User(email=f"{key}@example.com", role=role, name=key, is_active=True)
            for key, role in roles.items()
        }
        session.add_all(created.values())
        await session.commit()
    return Users(**created)


@pytest.fixture(autouse=True)
def events(monkeypatch) -> list[tuple[str, dict[str, Any]]]:
    """Перехоплює доменні події замість Redis."""
    captured: list[tuple[str, dict[str, Any]]] = []

    def _capture(event_type: str, payload) -> str:
        captured.append((event_type, dict(payload)))
        return f"job-{len(captured)}"

    monkeypatch.setattr(notifications, "enqueue", _capture)
    return captured
