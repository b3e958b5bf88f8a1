# tests/test_api.py
"""
HTTP surface: task endpoints, the trigger webhook, the admin actions and
the application lifespan.
"""
from __future__ import annotations

import time
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

import lifo_queue.db.session as db_session
import lifo_queue.main as main_module
from lifo_queue.auth.security import SIGNATURE_HEADER, sign_body
from lifo_queue.db.session import create_session_factory, get_db_session
from lifo_queue.domain.signals import Signal
from lifo_queue.domain.states import TaskStatus
from lifo_queue.main import app
from lifo_queue.services.relay import TriggerRelay
from lifo_queue.services.transport import InMemoryTransport
from lifo_queue.settings import settings


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.publish.return_value = True
    return mock


@pytest.fixture
def dispatcher():
    mock = AsyncMock()
    mock.dispatch.return_value = True
    return mock


@pytest_asyncio.fixture
async def client(session_factory, transport, dispatcher):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    app.state.transport = transport
    app.state.relay = TriggerRelay(dispatcher)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_create_task_announces_insert(client, transport):
    resp = await client.post("/api/v1/tasks", json={"task_id": "a", "payload": {"k": "v"}})

    assert resp.status_code == 201
    body = resp.json()
    assert body["task_id"] == "a"
    assert body["status"] == "pending"
    assert body["created_at"] == body["updated_at"]
    transport.publish.assert_awaited_once_with(Signal.insert(["a"]))


@pytest.mark.asyncio
async def test_duplicate_task_id_conflicts(client, transport):
    assert (await client.post("/api/v1/tasks", json={"task_id": "a"})).status_code == 201
    resp = await client.post("/api/v1/tasks", json={"task_id": "a"})

    assert resp.status_code == 409
    assert transport.publish.await_count == 1


@pytest.mark.asyncio
async def test_get_task(client, insert_tasks):
    await insert_tasks("a")

    resp = await client.get("/api/v1/tasks/a")
    assert resp.status_code == 200
    assert resp.json()["payload"] == {"n": 0}

    assert (await client.get("/api/v1/tasks/missing")).status_code == 404


@pytest.mark.asyncio
async def test_list_tasks_newest_first(client, insert_tasks):
    await insert_tasks("t1", "t2", "t3")

    resp = await client.get("/api/v1/tasks", params={"status": "pending", "limit": 2})

    assert resp.status_code == 200
    assert [t["task_id"] for t in resp.json()] == ["t3", "t2"]
    assert (await client.get("/api/v1/tasks", params={"status": TaskStatus.TAKEN})).json() == []


@pytest.mark.asyncio
async def test_trigger_dispatches_on_insert(client, dispatcher):
    resp = await client.post("/api/v1/trigger", json=Signal.insert(["a"]).model_dump(mode="json"))

    assert resp.status_code == 200
    assert resp.json() == {"dispatched": True}
    dispatcher.dispatch.assert_awaited_once()


@pytest.mark.asyncio
async def test_trigger_ignores_non_json(client, dispatcher):
    resp = await client.post("/api/v1/trigger", content=b"not json", headers={"Content-Type": "application/json"})

    assert resp.json() == {"dispatched": False}
    dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_trigger_requires_signature_when_key_set(client, dispatcher, monkeypatch):
    monkeypatch.setattr(settings, "SIGNAL_SIGNING_KEY", "secret")
    body = b'{"records":[{"event":"CONTINUE","source":"handoff","task_id":null}]}'

    unsigned = await client.post("/api/v1/trigger", content=body)
    forged = await client.post("/api/v1/trigger", content=body, headers={SIGNATURE_HEADER: "00"})
    signed = await client.post("/api/v1/trigger", content=body, headers={SIGNATURE_HEADER: sign_body("secret", body)})

    assert unsigned.status_code == 401
    assert forged.status_code == 401
    assert signed.status_code == 200
    assert signed.json() == {"dispatched": True}
    dispatcher.dispatch.assert_awaited_once_with(reason="handoff")


@pytest.mark.asyncio
async def test_admin_purge_and_reclaim(client, insert_tasks, base_ms):
    await insert_tasks("old", start=base_ms - 10_000, ttl_seconds=1)
    await insert_tasks("live")

    resp = await client.post("/api/v1/admin/purge_expired")
    assert resp.json() == {"purged_count": 1}

    resp = await client.post("/api/v1/admin/reclaim_stale", params={"older_than_seconds": 60})
    assert resp.json() == {"reclaimed_count": 0, "task_ids": []}


@pytest.mark.asyncio
async def test_health_and_metrics(client):
    assert (await client.get("/health")).json() == {"status": "ok"}

    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "tasks_created_total" in resp.text


def test_lifespan_wires_the_queue(tmp_path, monkeypatch):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "AsyncSessionLocal", create_session_factory(engine))
    monkeypatch.setattr(settings, "TRANSPORT_URL", None)
    monkeypatch.setattr(settings, "TASK_RUNNER_URL", None)
    monkeypatch.setattr(settings, "FAKE_TASK_DURATION_SECONDS", 0.0)
    monkeypatch.setattr(settings, "TASK_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "BATCH_DELAY_SECONDS", 0.0)

    with TestClient(app) as client:
        assert isinstance(app.state.transport, InMemoryTransport)

        resp = client.post("/api/v1/tasks", json={"task_id": "from-api"})
        assert resp.status_code == 201

        # The INSERT signal wakes a worker in the background
        deadline = time.monotonic() + 10
        task_status = resp.json()["status"]
        while task_status != "success" and time.monotonic() < deadline:
            time.sleep(0.05)
            task_status = client.get("/api/v1/tasks/from-api").json()["status"]

    assert task_status == "success"


@pytest.mark.asyncio
async def test_startup_fails_when_database_never_comes_up(monkeypatch):
    attempts = 0

    async def unreachable(bind=None):
        nonlocal attempts
        attempts += 1
        raise OSError("connection refused")

    monkeypatch.setattr(db_session, "init_models", unreachable)
    monkeypatch.setattr(main_module, "BOOTSTRAP_RETRY_DELAY", 0)

    with pytest.raises(OSError):
        async with main_module.lifespan(app):
            pass

    assert attempts == main_module.BOOTSTRAP_ATTEMPTS
