#!/usr/bin/env python3
import asyncio
import logging
import os
import sys
from uuid import uuid4

sys.path.append(os.getcwd())

from lifo_queue.commands.create_task import create_task
from lifo_queue.commands.select_tasks import get_pending_batch
from lifo_queue.commands.transition_task import transition_task
from lifo_queue.db.session import init_models, unit_of_work
from lifo_queue.domain.states import TaskStatus
from lifo_queue.utils.clock import now_ms

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

async def run_verification():
    await init_models()
    prefix = f"lifo-{uuid4().hex[:6]}"
    base = now_ms()

    logger.info("1. Creating 5 tasks, 1ms apart")
    async with unit_of_work() as session:
        for i in range(5):
            await create_task(session, task_id=f"{prefix}-{i}", now=base + i)

    logger.info("2. Leasing and requeueing the oldest task")
    async with unit_of_work() as session:
        await transition_task(session, f"{prefix}-0", TaskStatus.PENDING, TaskStatus.TAKEN)
    async with unit_of_work() as session:
        await transition_task(session, f"{prefix}-0", TaskStatus.TAKEN, TaskStatus.PENDING)

    async with unit_of_work() as session:
        batch = await get_pending_batch(session, 10)

    ours = [t.task_id for t in batch if t.task_id.startswith(prefix)]
    expected = [f"{prefix}-{i}" for i in reversed(range(5))]
    logger.info(f"3. Batch order: {ours}")

    if ours == expected:
        logger.info("SUCCESS: Newest first, requeued task kept its original rank.")
    else:
        logger.error(f"FAILURE: expected {expected}")

if __name__ == "__main__":
    from lifo_queue.db import models  # noqa: F401
    asyncio.run(run_verification())
