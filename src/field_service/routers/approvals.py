"""Approval decision endpoints (called by the chat platform)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from field_service.core.exceptions import ServiceError
from field_service.core.state import get_app_state
from field_service.routers.validation import parse_body
from field_service.schemas import DecisionRequest

router = APIRouter()


@router.post("/tasks/{task_id}/decision")
async def process_decision(task_id: str, request: Request) -> dict[str, Any]:
    """Apply an approve / return / request_photos decision to a task."""
    body = await parse_body(request, DecisionRequest)
    if body.task_id is not None and body.task_id != task_id:
        raise ServiceError(
            "INVALID_PAYLOAD",
            "task_id in body does not match URL path",
            400,
            {},
        )

    state = get_app_state()
    if state.approval_workflow is None:
        msg = "ApprovalWorkflow not initialized"
        raise RuntimeError(msg)

    return await state.approval_workflow.process_task_approval(
        task_id,
        body.action,
        body.decider_id,
        body.comment,
    )


@router.get("/tasks/{task_id}/decisions")
async def list_decisions(task_id: str) -> dict[str, Any]:
    """Decision history of a task."""
    state = get_app_state()
    if state.approval_workflow is None:
        msg = "ApprovalWorkflow not initialized"
        raise RuntimeError(msg)

    return {"task_id": task_id, "decisions": state.approval_workflow.list_decisions(task_id)}
