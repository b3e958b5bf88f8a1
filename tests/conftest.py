# tests/conftest.py
from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from lifo_queue.commands.create_task import create_task
from lifo_queue.commands.select_tasks import get_task
from lifo_queue.db import models  # noqa: F401
from lifo_queue.db.session import Base, create_session_factory, unit_of_work
from lifo_queue.utils.clock import now_ms


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so every session gets its own connection, like a real pool.
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def base_ms() -> int:
    return now_ms()


@pytest.fixture
def insert_tasks(session_factory, base_ms):
    """Inserts tasks with strictly increasing created_at, one ms apart."""

    async def _insert(*task_ids: str, start: int | None = None, ttl_seconds: int | None = None):
        created = []
        first = base_ms if start is None else start
        async with unit_of_work(session_factory) as session:
            for offset, task_id in enumerate(task_ids):
                created.append(await create_task(
                    session,
                    task_id=task_id,
                    payload={"n": offset},
                    now=first + offset,
                    ttl_seconds=ttl_seconds,
                ))
        return created

    return _insert


@pytest.fixture
def fetch_task(session_factory):
    async def _fetch(task_id: str):
        async with unit_of_work(session_factory) as session:
            return await get_task(session, task_id)

    return _fetch
