#!/usr/bin/env python3
import asyncio
import os
import sys

sys.path.append(os.getcwd())

from lifo_queue.commands.create_task import create_task
from lifo_queue.commands.transition_task import transition_task
from lifo_queue.db.session import init_models, unit_of_work
from lifo_queue.domain.states import TaskStatus

ATTEMPTS = 20

async def attempt_lease(task_id):
    async with unit_of_work() as session:
        return await transition_task(session, task_id, TaskStatus.PENDING, TaskStatus.TAKEN)

async def verify_no_double_claim():
    await init_models()

    # 1. Create 1 task
    print("1. Creating 1 task...")
    async with unit_of_work() as session:
        task = await create_task(session, payload={"task": "concurrency_test"})
    print(f"   Task created: {task.task_id}")

    # 2. Race lease attempts
    print(f"2. Spawning {ATTEMPTS} concurrent lease attempts...")
    results = await asyncio.gather(*(attempt_lease(task.task_id) for _ in range(ATTEMPTS)))

    # 3. Analyze results
    wins = sum(1 for r in results if r)
    print(f"3. Results: {wins} successful leases.")

    if wins == 1:
        print("SUCCESS: Exactly one caller leased the task.")
    elif wins == 0:
        print("FAILURE: No one leased the task (unexpected).")
    else:
        print(f"FAILURE: {wins} callers leased the task! Double claim detected.")

if __name__ == "__main__":
    from lifo_queue.db import models  # noqa: F401
    asyncio.run(verify_no_double_claim())
