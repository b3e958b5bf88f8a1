#!/usr/bin/env python3
import asyncio
import logging
import os
import sys

sys.path.append(os.getcwd())

from lifo_queue.services.producer import create_tasks
from lifo_queue.services.transport import HttpTransport
from lifo_queue.settings import settings

API_URL = os.getenv("LIFO_API_URL", "http://localhost:8000")

logging.basicConfig(level=logging.INFO)

async def main():
    # INSERT notifications go to the API's trigger endpoint, which runs the relay.
    transport = HttpTransport(f"{API_URL}/api/v1/trigger", signing_key=settings.SIGNAL_SIGNING_KEY)
    try:
        created = await create_tasks(
            transport,
            payload_factory=lambda n: {"sequence": n},
        )
    finally:
        await transport.close()
    print(f"Created {len(created)} tasks")

if __name__ == "__main__":
    asyncio.run(main())
