"""Notification outbox endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request

from field_service.core.state import get_app_state
from field_service.routers.validation import parse_int_query

if TYPE_CHECKING:
    from field_service.services.notification_outbox import NotificationOutbox

router = APIRouter()


def _outbox() -> NotificationOutbox:
    state = get_app_state()
    if state.notification_outbox is None:
        msg = "NotificationOutbox not initialized"
        raise RuntimeError(msg)
    return state.notification_outbox


@router.post("/notifications/dispatch")
async def dispatch_notifications(request: Request) -> dict[str, Any]:
    """Deliver pending notifications to the chat platform."""
    limit = parse_int_query(request, "limit", minimum=1)
    return await _outbox().dispatch_pending(limit)


@router.get("/tasks/{task_id}/notifications")
async def list_task_notifications(task_id: str) -> dict[str, Any]:
    return {"task_id": task_id, "notifications": _outbox().list_for_task(task_id)}
