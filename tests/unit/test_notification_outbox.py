"""Unit tests for NotificationOutbox."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from field_service.core.exceptions import ServiceError
from field_service.services.notification_outbox import NotificationOutbox
from tests.helpers import make_lifecycle, make_store, submitted_task


def _unavailable() -> ServiceError:
    return ServiceError("CHAT_PLATFORM_UNAVAILABLE", "Cannot connect to chat platform", 502, {})


@pytest.fixture
def store(tmp_path):
    field_store = make_store(tmp_path)
    yield field_store
    field_store.close()


@pytest.fixture
def chat_client():
    client = AsyncMock()
    client.notify_manager = AsyncMock(return_value=None)
    client.notify_worker = AsyncMock(return_value=None)
    return client


def _outbox(store, chat_client, max_attempts: int = 3) -> NotificationOutbox:
    return NotificationOutbox(
        store=store, chat_platform_client=chat_client, batch_size=10, max_attempts=max_attempts
    )


@pytest.mark.unit
async def test_pending_notification_delivered(store, chat_client) -> None:
    task = await submitted_task(make_lifecycle(store))
    outbox = _outbox(store, chat_client)

    assert await outbox.dispatch_pending() == {"sent": 1, "retrying": 0, "failed": 0}

    chat_client.notify_manager.assert_awaited_once()
    payload = chat_client.notify_manager.await_args.args[0]
    assert payload["task_id"] == task["task_id"]
    notification = outbox.list_for_task(task["task_id"])[0]
    assert notification["status"] == "sent"
    assert notification["sent_at"] is not None

    # Nothing left to send
    assert await outbox.dispatch_pending() == {"sent": 0, "retrying": 0, "failed": 0}


@pytest.mark.unit
async def test_failed_delivery_stays_pending(store, chat_client) -> None:
    task = await submitted_task(make_lifecycle(store))
    chat_client.notify_manager.side_effect = _unavailable()
    outbox = _outbox(store, chat_client)

    assert await outbox.dispatch_pending() == {"sent": 0, "retrying": 1, "failed": 0}

    notification = outbox.list_for_task(task["task_id"])[0]
    assert notification["status"] == "pending"
    assert notification["attempts"] == 1
    assert notification["last_error"].startswith("CHAT_PLATFORM_UNAVAILABLE")
    assert store.get_task(task["task_id"])["status"] == "awaiting_approval"
    assert outbox.get_stats() == {"pending": 1, "sent": 0, "failed": 0}


@pytest.mark.unit
async def test_gives_up_after_max_attempts(store, chat_client) -> None:
    task = await submitted_task(make_lifecycle(store))
    chat_client.notify_manager.side_effect = _unavailable()
    outbox = _outbox(store, chat_client, max_attempts=2)

    await outbox.dispatch_pending()
    assert await outbox.dispatch_pending() == {"sent": 0, "retrying": 0, "failed": 1}
    assert await outbox.dispatch_pending() == {"sent": 0, "retrying": 0, "failed": 0}
    assert chat_client.notify_manager.await_count == 2
    assert outbox.list_for_task(task["task_id"])[0]["status"] == "failed"


@pytest.mark.unit
async def test_recovers_on_retry(store, chat_client) -> None:
    await submitted_task(make_lifecycle(store))
    chat_client.notify_manager.side_effect = [_unavailable(), None]
    outbox = _outbox(store, chat_client)

    assert (await outbox.dispatch_pending())["retrying"] == 1
    assert (await outbox.dispatch_pending())["sent"] == 1
    assert outbox.get_stats() == {"pending": 0, "sent": 1, "failed": 0}


@pytest.mark.unit
async def test_worker_notifications_routed_to_worker_endpoint(store, chat_client) -> None:
    task = await submitted_task(make_lifecycle(store))
    store.commit_transition(
        task["task_id"],
        {"status": "completed"},
        expected_status="awaiting_approval",
        notification={
            "notification_id": "n-worker",
            "kind": "worker",
            "task_id": task["task_id"],
            "payload": {"task_id": task["task_id"], "outcome": "approved"},
            "created_at": "2999-01-01T00:00:00.000000Z",
        },
    )
    outbox = _outbox(store, chat_client)

    assert (await outbox.dispatch_pending())["sent"] == 2
    chat_client.notify_manager.assert_awaited_once()
    chat_client.notify_worker.assert_awaited_once_with(
        {"task_id": task["task_id"], "outcome": "approved"}
    )


@pytest.mark.unit
async def test_limit_caps_batch(store, chat_client) -> None:
    lifecycle = make_lifecycle(store)
    await submitted_task(lifecycle)
    await submitted_task(lifecycle)
    outbox = _outbox(store, chat_client)

    assert (await outbox.dispatch_pending(limit=1))["sent"] == 1
    assert outbox.get_stats()["pending"] == 1
