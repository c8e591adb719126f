"""Tariff rate, holiday and earnings endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from field_service.core.state import get_app_state
from field_service.routers.validation import (
    parse_body,
    parse_bool_query,
    parse_date,
    required_query,
)
from field_service.schemas import EarningsRequest, HolidayRequest, RateCreateRequest

if TYPE_CHECKING:
    from field_service.services.tariff_manager import TariffManager

router = APIRouter()


def _tariffs() -> TariffManager:
    state = get_app_state()
    if state.tariff_manager is None:
        msg = "TariffManager not initialized"
        raise RuntimeError(msg)
    return state.tariff_manager


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------


@router.post("/tariffs/rates", status_code=201)
async def create_rate(request: Request) -> JSONResponse:
    """Add a per-minute rate for a worker and day class."""
    body = await parse_body(request, RateCreateRequest)
    result = _tariffs().create_rate(
        worker_id=body.worker_id,
        day_class=body.day_class,
        rate_per_minute=body.rate_per_minute,
        valid_from=body.valid_from,
        valid_to=body.valid_to,
        currency=body.currency,
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/tariffs/rates")
async def list_rates(request: Request) -> dict[str, Any]:
    worker_id = required_query(request, "worker_id")
    active_only = parse_bool_query(request, "active_only", default=False)
    return {"worker_id": worker_id, "rates": _tariffs().list_rates(worker_id, active_only=active_only)}


@router.post("/tariffs/rates/{rate_id}/deactivate")
async def deactivate_rate(rate_id: str) -> dict[str, Any]:
    return _tariffs().deactivate_rate(rate_id)


@router.get("/tariffs/resolve")
async def resolve_rate(request: Request) -> dict[str, Any]:
    """The rate that applies to a worker on a date."""
    worker_id = required_query(request, "worker_id")
    day = parse_date(required_query(request, "date"), "date")
    return _tariffs().resolve_rate(worker_id, day)


# ---------------------------------------------------------------------------
# Holidays
# ---------------------------------------------------------------------------


@router.put("/holidays/{holiday_date}")
async def set_holiday(holiday_date: str, request: Request) -> dict[str, Any]:
    day = parse_date(holiday_date, "holiday_date")
    body = await parse_body(request, HolidayRequest)
    return _tariffs().set_holiday(day, body.name, is_active=body.is_active)


@router.get("/holidays")
async def list_holidays(request: Request) -> dict[str, Any]:
    active_only = parse_bool_query(request, "active_only", default=False)
    return {"holidays": _tariffs().list_holidays(active_only=active_only)}


@router.delete("/holidays/{holiday_date}")
async def deactivate_holiday(holiday_date: str) -> dict[str, Any]:
    day = parse_date(holiday_date, "holiday_date")
    _tariffs().deactivate_holiday(day)
    return {"holiday_date": day.isoformat(), "is_active": False}


# ---------------------------------------------------------------------------
# Earnings
# ---------------------------------------------------------------------------


@router.post("/earnings/calculate")
async def calculate_earnings(request: Request) -> dict[str, Any]:
    """Price an interval for a worker, split per local calendar day."""
    body = await parse_body(request, EarningsRequest)
    return _tariffs().calculate_earnings(body.worker_id, body.start, body.end)
