"""Router test fixtures with a mocked chat platform."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from field_service.app import create_app
from field_service.config import clear_settings_cache
from field_service.core.exceptions import ServiceError
from field_service.core.lifespan import lifespan
from field_service.core.state import get_app_state, reset_app_state
from tests.helpers import MANAGER_ID, WORKER_ID, config_yaml

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from httpx import Response

HERE = {"location": {"lat": 53.9, "lon": 27.5667}}


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with temp database and a mocked chat platform."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        config_yaml(str(tmp_path / "test.db"), str(tmp_path / "logs"), max_body_size=4096)
    )

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Mock chat platform: default, every notification is accepted
        mock_chat = AsyncMock()
        mock_chat.close = AsyncMock()
        mock_chat.notify_manager = AsyncMock(return_value=None)
        mock_chat.notify_worker = AsyncMock(return_value=None)
        state.chat_platform_client = mock_chat

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def workers(client: AsyncClient) -> None:
    """Register the default worker and manager."""
    await register_worker(client, WORKER_ID, "worker", "Ivan Petrov")
    await register_worker(client, MANAGER_ID, "manager", "Olga Sidorova")


@pytest.fixture
def mock_chat_unavailable(app: Any) -> None:
    """Configure the chat platform mock to refuse every delivery."""
    state = get_app_state()
    error = ServiceError("CHAT_PLATFORM_UNAVAILABLE", "Cannot connect to chat platform", 502, {})
    state.chat_platform_client.notify_manager = AsyncMock(side_effect=error)
    state.chat_platform_client.notify_worker = AsyncMock(side_effect=error)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
async def register_worker(
    client: AsyncClient,
    worker_id: str,
    role: str,
    full_name: str = "Test Person",
) -> Response:
    """Register a worker via POST /workers."""
    return await client.post(
        "/workers", json={"worker_id": worker_id, "full_name": full_name, "role": role}
    )


async def create_task(client: AsyncClient, **overrides: Any) -> Response:
    """Create a task via POST /tasks."""
    payload: dict[str, Any] = {
        "title": "Replace water meter",
        "description": "Apartment 12, kitchen",
        "assigned_worker_id": WORKER_ID,
        "created_by": MANAGER_ID,
    }
    payload.update(overrides)
    return await client.post("/tasks", json=payload)


async def transition(client: AsyncClient, task_id: str, event: str, **body: Any) -> Response:
    """Apply an event via POST /tasks/{task_id}/transitions."""
    return await client.post(f"/tasks/{task_id}/transitions", json={"event": event, **body})


async def add_photo(client: AsyncClient, task_id: str, kind: str) -> Response:
    """Record a photo via POST /tasks/{task_id}/photos."""
    return await client.post(
        f"/tasks/{task_id}/photos",
        json={"kind": kind, "photo_url": f"https://photos.test/{task_id}/{kind}.jpg"},
    )


async def decide(
    client: AsyncClient,
    task_id: str,
    action: str,
    decider_id: str = MANAGER_ID,
    comment: str | None = None,
) -> Response:
    """Send an approval decision via POST /tasks/{task_id}/decision."""
    body: dict[str, Any] = {"action": action, "decider_id": decider_id}
    if comment is not None:
        body["comment"] = comment
    return await client.post(f"/tasks/{task_id}/decision", json=body)


async def setup_submitted_task(client: AsyncClient) -> str:
    """Create, start, photograph and submit a task; return its ID."""
    resp = await create_task(client)
    assert resp.status_code == 201
    task_id = resp.json()["task_id"]

    resp = await transition(client, task_id, "start", **HERE)
    assert resp.status_code == 200
    for kind in ("before", "after"):
        resp = await add_photo(client, task_id, kind)
        assert resp.status_code == 201
    resp = await transition(client, task_id, "submit", **HERE)
    assert resp.status_code == 200
    return task_id
