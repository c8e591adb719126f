"""Service errors and exception handlers for consistent error responses."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from field_service.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request
    from starlette.types import ExceptionHandler


class ServiceError(Exception):
    """
    Error reported to the caller as ``{"error", "message", "details"}``.

    Attributes:
        error: Machine-readable error code
        message: Human-readable description
        status_code: HTTP status code used when rendered by the API
        details: Structured context the caller can act on
    """

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details: dict[str, Any] = details if details is not None else {}


class InvalidTransitionError(ServiceError):
    """Requested status change is outside the allowed transition graph."""

    def __init__(self, task_id: str, status: str, event: str) -> None:
        super().__init__(
            "INVALID_TRANSITION",
            f"Cannot apply '{event}' to task in '{status}' status",
            409,
            {"task_id": task_id, "status": status, "event": event},
        )


class PhotoRequirementNotMetError(ServiceError):
    """Submission blocked by missing photos or an incomplete checklist."""

    def __init__(self, task_id: str, gate_details: dict[str, Any]) -> None:
        super().__init__(
            "PHOTO_REQUIREMENT_NOT_MET",
            "Photo and checklist requirements are not satisfied",
            422,
            {"task_id": task_id, **gate_details},
        )


class StaleApprovalTargetError(ServiceError):
    """The task already left awaiting_approval; another decider acted first."""

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(
            "STALE_APPROVAL_TARGET",
            "Task was already processed",
            409,
            {"task_id": task_id, "status": status},
        )


class LocationUnavailableError(ServiceError):
    """Location could not be acquired and proceeding without it was not confirmed."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            "LOCATION_UNAVAILABLE",
            "Location unavailable; confirm to proceed without location",
            428,
            {"reason": reason, "retry_with": {"proceed_without_location": True}},
        )


class TariffNotFoundError(ServiceError):
    """No applicable tariff rate exists for a worker and date."""

    def __init__(self, worker_id: str, day: str, day_class: str) -> None:
        super().__init__(
            "TARIFF_NOT_FOUND",
            "No applicable tariff rate",
            404,
            {"worker_id": worker_id, "date": day, "day_class": day_class},
        )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle ServiceError exceptions."""
    logger = get_logger(__name__)
    logger.warning(
        "Service error",
        extra={
            "error_code": exc.error,
            "status_code": exc.status_code,
            "path": str(request.url.path),
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": exc.message, "details": exc.details},
    )


async def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = get_logger(__name__)
    logger.exception("Unhandled exception", extra={"path": str(request.url.path)})
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "details": {},
        },
    )


async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle Starlette HTTP exceptions (e.g., 405 from router)."""
    if exc.status_code == 405:
        return JSONResponse(
            status_code=405,
            content={
                "error": "METHOD_NOT_ALLOWED",
                "message": "Method not allowed",
                "details": {},
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": str(exc.detail),
            "details": {},
        },
    )


async def validation_exception_handler(
    _request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Render pydantic body/query validation failures as INVALID_PAYLOAD."""
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "INVALID_PAYLOAD",
            "message": "Request payload failed validation",
            "details": {"errors": errors},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    app.add_exception_handler(ServiceError, cast("ExceptionHandler", service_error_handler))
    app.add_exception_handler(
        RequestValidationError,
        cast("ExceptionHandler", validation_exception_handler),
    )
    app.add_exception_handler(
        StarletteHTTPException,
        cast("ExceptionHandler", http_exception_handler),
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
