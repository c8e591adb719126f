"""Work session (shift) endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from field_service.core.state import get_app_state
from field_service.routers.validation import (
    parse_body,
    parse_date,
    parse_int_query,
    required_query,
)
from field_service.schemas import LocatedRequest

if TYPE_CHECKING:
    from field_service.services.session_manager import SessionManager
    from field_service.services.worker_stats import WorkerStats

router = APIRouter()


def _sessions() -> SessionManager:
    state = get_app_state()
    if state.session_manager is None:
        msg = "SessionManager not initialized"
        raise RuntimeError(msg)
    return state.session_manager


def _stats() -> WorkerStats:
    state = get_app_state()
    if state.worker_stats is None:
        msg = "WorkerStats not initialized"
        raise RuntimeError(msg)
    return state.worker_stats


@router.post("/workers/{worker_id}/sessions/open", status_code=201)
async def open_session(worker_id: str, request: Request) -> JSONResponse:
    """Start the worker's shift."""
    body = await parse_body(request, LocatedRequest)
    result = await _sessions().open_session(
        worker_id,
        location=body.location_provider(),
        proceed_without_location=body.proceed_without_location,
    )
    return JSONResponse(status_code=201, content=result)


@router.post("/workers/{worker_id}/sessions/close")
async def close_session(worker_id: str, request: Request) -> dict[str, Any]:
    """End the worker's shift; total hours and earnings are fixed here."""
    body = await parse_body(request, LocatedRequest)
    return await _sessions().close_session(
        worker_id,
        location=body.location_provider(),
        proceed_without_location=body.proceed_without_location,
    )


@router.get("/workers/{worker_id}/sessions/open")
async def get_open_session(worker_id: str) -> dict[str, Any]:
    return _sessions().get_open_session(worker_id)


@router.get("/workers/{worker_id}/sessions")
async def list_sessions(worker_id: str, request: Request) -> dict[str, Any]:
    limit = parse_int_query(request, "limit", minimum=1)
    return {"worker_id": worker_id, "sessions": _sessions().list_sessions(worker_id, limit)}


@router.get("/workers/{worker_id}/stats")
async def worker_stats(worker_id: str, request: Request) -> dict[str, Any]:
    """Hours, earnings and completed tasks per local day between from and to, inclusive."""
    date_from = parse_date(required_query(request, "from"), "from")
    date_to = parse_date(required_query(request, "to"), "to")
    return _stats().summarize(worker_id, date_from, date_to)
