# tests/test_activation.py
"""
Activation service: serialized invocations and bounded dispatch.
"""
from __future__ import annotations

import asyncio

import pytest

from lifo_queue.services.activation import ActivationService


@pytest.mark.asyncio
async def test_activations_never_overlap():
    active = 0
    peak = 0
    runs = 0

    async def activate():
        nonlocal active, peak, runs
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        runs += 1

    service = ActivationService(activate, concurrency=1, dispatch_retries=0, queue_size=10)
    await service.start()
    try:
        for _ in range(5):
            assert await service.dispatch("insert")
        await asyncio.wait_for(service.join(), timeout=5)
    finally:
        await service.stop()

    assert runs == 5
    assert peak == 1


@pytest.mark.asyncio
async def test_dispatch_fails_when_channel_stays_full():
    async def activate():
        return None

    service = ActivationService(activate, dispatch_retries=1, queue_size=1, retry_delay=0.01)

    assert await service.dispatch("first")
    assert not await service.dispatch("second")
    assert service.pending() == 1


@pytest.mark.asyncio
async def test_dispatch_retry_succeeds_once_channel_drains():
    async def activate():
        return None

    service = ActivationService(activate, dispatch_retries=1, queue_size=1, retry_delay=0.05)
    assert await service.dispatch("first")

    async def drain():
        await asyncio.sleep(0.01)
        service._queue.get_nowait()
        service._queue.task_done()

    drainer = asyncio.create_task(drain())
    assert await service.dispatch("second")
    await drainer
    assert service.pending() == 1


@pytest.mark.asyncio
async def test_failed_activation_does_not_stop_the_service():
    calls = 0

    async def activate():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return "ok"

    service = ActivationService(activate, concurrency=1, dispatch_retries=0, queue_size=10)
    await service.start()
    try:
        await service.dispatch("first")
        await service.dispatch("second")
        await asyncio.wait_for(service.join(), timeout=5)
    finally:
        await service.stop()

    assert calls == 2


@pytest.mark.asyncio
async def test_run_once_returns_result_or_none():
    async def ok():
        return 42

    async def broken():
        raise ValueError("bad")

    assert await ActivationService(ok).run_once("manual") == 42
    assert await ActivationService(broken).run_once("manual") is None
