# tests/test_producer.py
"""
Producer: insert-then-announce.
"""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from lifo_queue.domain.signals import Signal
from lifo_queue.domain.states import TaskStatus
from lifo_queue.services.producer import create_and_announce, create_tasks


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.publish.return_value = True
    return mock


@pytest.mark.asyncio
async def test_create_and_announce_publishes_after_insert(session_factory, transport, fetch_task):
    task = await create_and_announce(transport, payload={"job": "resize"}, task_id="a", session_factory=session_factory)

    assert task.task_id == "a"
    assert (await fetch_task("a")).status == TaskStatus.PENDING
    transport.publish.assert_awaited_once_with(Signal.insert(["a"]))


@pytest.mark.asyncio
async def test_collision_is_not_announced(session_factory, transport, insert_tasks, fetch_task):
    await insert_tasks("a")

    assert await create_and_announce(transport, payload={"x": 1}, task_id="a", session_factory=session_factory) is None
    transport.publish.assert_not_awaited()
    assert (await fetch_task("a")).payload == {"n": 0}


@pytest.mark.asyncio
async def test_create_tasks_runs_until_active_time_is_spent(session_factory, transport, fetch_task):
    ticks = iter([0.0, 0.5, 1.0])

    created = await create_tasks(
        transport,
        session_factory=session_factory,
        interval=0,
        active_seconds=1,
        payload_factory=lambda i: {"seq": i},
        clock=lambda: next(ticks),
    )

    assert len(created) == 2
    assert transport.publish.await_count == 2
    assert [(await fetch_task(t)).payload for t in created] == [{"seq": 0}, {"seq": 1}]


@pytest.mark.asyncio
async def test_create_without_transport(session_factory, fetch_task):
    task = await create_and_announce(None, session_factory=session_factory)

    assert (await fetch_task(task.task_id)).payload == {}
