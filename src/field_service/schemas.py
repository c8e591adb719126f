"""Pydantic request/response models for the API."""

from __future__ import annotations

from datetime import date  # noqa: TC003
from decimal import Decimal  # noqa: TC003
from typing import Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from field_service.services.location import Coordinates, ReportedLocation


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]
    notifications_by_status: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]


class LocationReport(BaseModel):
    """Coordinates reported by the device."""

    model_config = ConfigDict(extra="forbid")
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class LocatedRequest(BaseModel):
    """
    Body fields shared by actions that record where the worker is.

    The device sends either ``location`` or ``location_error``. After a
    LOCATION_UNAVAILABLE response the client may retry with
    ``proceed_without_location`` set once the operator confirms.
    """

    model_config = ConfigDict(extra="forbid")
    location: LocationReport | None = None
    location_error: str | None = None
    proceed_without_location: bool = False

    def location_provider(self) -> ReportedLocation:
        if self.location is None:
            return ReportedLocation(None, self.location_error)
        return ReportedLocation(Coordinates(lat=self.location.lat, lon=self.location.lon))


class TaskCreateRequest(BaseModel):
    """Body of POST /tasks."""

    model_config = ConfigDict(extra="forbid")
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    assigned_worker_id: str = Field(min_length=1)
    created_by: str = Field(min_length=1)
    task_type_id: str | None = None
    checklist: list[str] | None = None
    photo_minimum_override: int | None = Field(default=None, ge=0)
    requires_before_override: bool | None = None


class TransitionRequest(LocatedRequest):
    """Body of POST /tasks/{task_id}/transitions."""

    event: str = Field(min_length=1)


class PhotoCreateRequest(BaseModel):
    """Body of POST /tasks/{task_id}/photos."""

    model_config = ConfigDict(extra="forbid")
    kind: Literal["before", "after"]
    photo_url: str | None = None


class ChecklistItemUpdateRequest(BaseModel):
    """Body of PATCH /tasks/{task_id}/checklist/{item_id}."""

    model_config = ConfigDict(extra="forbid")
    is_completed: bool


class DecisionRequest(BaseModel):
    """Normalized approval decision delivered by the chat platform."""

    model_config = ConfigDict(extra="forbid")
    task_id: str | None = None
    action: str = Field(min_length=1)
    decider_id: str = Field(min_length=1)
    comment: str | None = None


class WorkerCreateRequest(BaseModel):
    """Body of POST /workers."""

    model_config = ConfigDict(extra="forbid")
    worker_id: str = Field(min_length=1)
    full_name: str = Field(min_length=1)
    role: Literal["worker", "manager", "director", "admin"]


class TaskTypeCreateRequest(BaseModel):
    """Body of POST /task-types."""

    model_config = ConfigDict(extra="forbid")
    slug: str = Field(min_length=1, pattern=r"^[a-z0-9_-]+$")
    display_name: str = Field(min_length=1)
    photo_minimum: int | None = Field(default=None, ge=0)
    requires_before_photos: bool | None = None
    default_checklist: list[str] = Field(default_factory=list)


class RateCreateRequest(BaseModel):
    """Body of POST /tariffs/rates."""

    model_config = ConfigDict(extra="forbid")
    worker_id: str = Field(min_length=1)
    day_class: Literal["weekday", "weekend", "holiday"]
    rate_per_minute: Decimal = Field(ge=0)
    valid_from: date
    valid_to: date | None = None
    currency: str | None = None


class HolidayRequest(BaseModel):
    """Body of PUT /holidays/{holiday_date}."""

    model_config = ConfigDict(extra="forbid")
    name: str = Field(min_length=1)
    is_active: bool = True


class EarningsRequest(BaseModel):
    """Body of POST /earnings/calculate."""

    model_config = ConfigDict(extra="forbid")
    worker_id: str = Field(min_length=1)
    start: AwareDatetime
    end: AwareDatetime
