"""Worker and task type endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from field_service.core.state import get_app_state
from field_service.routers.validation import parse_body
from field_service.schemas import TaskTypeCreateRequest, WorkerCreateRequest

if TYPE_CHECKING:
    from field_service.services.registry import Registry

router = APIRouter()


def _registry() -> Registry:
    state = get_app_state()
    if state.registry is None:
        msg = "Registry not initialized"
        raise RuntimeError(msg)
    return state.registry


@router.post("/workers", status_code=201)
async def register_worker(request: Request) -> JSONResponse:
    body = await parse_body(request, WorkerCreateRequest)
    result = _registry().register_worker(body.worker_id, body.full_name, body.role)
    return JSONResponse(status_code=201, content=result)


@router.get("/workers/{worker_id}")
async def get_worker(worker_id: str) -> dict[str, Any]:
    """Worker record with completed/returned task counters."""
    return _registry().get_worker(worker_id)


@router.post("/task-types", status_code=201)
async def create_task_type(request: Request) -> JSONResponse:
    body = await parse_body(request, TaskTypeCreateRequest)
    result = _registry().create_task_type(
        slug=body.slug,
        display_name=body.display_name,
        photo_minimum=body.photo_minimum,
        requires_before_photos=body.requires_before_photos,
        default_checklist=body.default_checklist,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/task-types")
async def list_task_types() -> dict[str, Any]:
    return {"task_types": _registry().list_task_types()}
