import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import DBAPIError

from lifo_queue.settings import settings
from lifo_queue.api.v1.tasks import router as tasks_router
from lifo_queue.api.v1.trigger import router as trigger_router
from lifo_queue.api.v1.admin import router as admin_router
from lifo_queue.api.v1.metrics import router as metrics_router

logger = logging.getLogger("uvicorn")

BOOTSTRAP_ATTEMPTS = 10
BOOTSTRAP_RETRY_DELAY = 2.0

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    from lifo_queue.db import models  # noqa: F401  registers the tasks table
    from lifo_queue.db.session import init_models
    from lifo_queue.scheduler.service import ExpirySweeper
    from lifo_queue.services.activation import ActivationService
    from lifo_queue.services.relay import TriggerRelay
    from lifo_queue.services.transport import InMemoryTransport, build_transport
    from lifo_queue.worker.loop import Worker
    from lifo_queue.worker.runner import build_task_runner

    # 1. Schema (retry while a fresh database is still coming up)
    for i in range(BOOTSTRAP_ATTEMPTS):
        try:
            await init_models()
            break
        except (DBAPIError, OSError) as e:
            if i + 1 == BOOTSTRAP_ATTEMPTS:
                logger.error(f"Bootstrap: database unreachable after {BOOTSTRAP_ATTEMPTS} attempts, giving up ({e})")
                raise
            logger.warning(
                f"Bootstrap: database not ready ({e}), retrying in {BOOTSTRAP_RETRY_DELAY}s... "
                f"({i+1}/{BOOTSTRAP_ATTEMPTS})"
            )
            await asyncio.sleep(BOOTSTRAP_RETRY_DELAY)

    # 2. Wire the engine: transport -> relay -> activations -> worker
    transport = build_transport()
    runner = build_task_runner()
    worker = Worker(runner, transport=transport)
    activations = ActivationService(worker.run_activation)
    relay = TriggerRelay(activations)

    if isinstance(transport, InMemoryTransport):
        transport.subscribe(relay.handle)
        await transport.start()

    await activations.start()

    # 3. Expiry sweeper
    sweeper = ExpirySweeper()
    await sweeper.start()

    app.state.transport = transport
    app.state.relay = relay
    app.state.activations = activations

    # Pick up anything left over from a previous run
    await activations.dispatch(reason="startup")

    yield

    # Shutdown
    await sweeper.stop()
    await activations.stop()
    if isinstance(transport, InMemoryTransport):
        await transport.stop()
    else:
        await transport.close()
    if hasattr(runner, "close"):
        await runner.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.include_router(tasks_router, prefix="/api/v1/tasks", tags=["tasks"])
app.include_router(trigger_router, prefix="/api/v1/trigger", tags=["trigger"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}
