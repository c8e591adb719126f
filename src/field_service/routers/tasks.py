"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from field_service.core.state import get_app_state
from field_service.routers.validation import parse_body, parse_int_query
from field_service.schemas import (
    ChecklistItemUpdateRequest,
    PhotoCreateRequest,
    TaskCreateRequest,
    TransitionRequest,
)

if TYPE_CHECKING:
    from field_service.services.task_lifecycle import TaskLifecycle

router = APIRouter()


def _lifecycle() -> TaskLifecycle:
    state = get_app_state()
    if state.task_lifecycle is None:
        msg = "TaskLifecycle not initialized"
        raise RuntimeError(msg)
    return state.task_lifecycle


# ---------------------------------------------------------------------------
# POST /tasks, GET /tasks
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Create a pending task assigned to a worker."""
    body = await parse_body(request, TaskCreateRequest)
    result = _lifecycle().create_task(
        title=body.title,
        description=body.description,
        assigned_worker_id=body.assigned_worker_id,
        created_by=body.created_by,
        task_type_id=body.task_type_id,
        checklist=body.checklist,
        photo_minimum_override=body.photo_minimum_override,
        requires_before_override=body.requires_before_override,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional status/worker filters."""
    offset = parse_int_query(request, "offset", minimum=0)
    limit = parse_int_query(request, "limit", minimum=1)
    tasks = _lifecycle().list_tasks(
        status=request.query_params.get("status"),
        worker_id=request.query_params.get("worker_id"),
        offset=offset,
        limit=limit,
    )
    return {"tasks": tasks}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> dict[str, Any]:
    """Full task details including checklist, photos and live elapsed time."""
    return _lifecycle().get_task(task_id)


@router.get("/tasks/{task_id}/elapsed")
async def get_elapsed(task_id: str) -> dict[str, Any]:
    """Effective working seconds right now; safe to poll every second."""
    return _lifecycle().get_elapsed(task_id)


@router.get("/tasks/{task_id}/gate")
async def get_gate(task_id: str) -> dict[str, Any]:
    """What is still missing before the task can be submitted."""
    return {"task_id": task_id, **_lifecycle().check_gate(task_id).to_details()}


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/transitions")
async def transition_task(task_id: str, request: Request) -> dict[str, Any]:
    """Apply a worker event (start, pause, resume, submit, rework, add_photos)."""
    body = await parse_body(request, TransitionRequest)
    return await _lifecycle().transition(
        task_id,
        body.event,
        location=body.location_provider(),
        proceed_without_location=body.proceed_without_location,
    )


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/photos", status_code=201)
async def add_photo(task_id: str, request: Request) -> JSONResponse:
    """Record a photo taken for the task."""
    body = await parse_body(request, PhotoCreateRequest)
    result = _lifecycle().record_photo(task_id, body.kind, body.photo_url)
    return JSONResponse(status_code=201, content=result)


@router.patch("/tasks/{task_id}/checklist/{item_id}")
async def update_checklist_item(task_id: str, item_id: str, request: Request) -> dict[str, Any]:
    """Tick or untick a checklist item."""
    body = await parse_body(request, ChecklistItemUpdateRequest)
    return _lifecycle().set_checklist_item(task_id, item_id, is_completed=body.is_completed)
