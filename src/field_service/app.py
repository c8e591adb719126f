"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from field_service.config import get_settings
from field_service.core.exceptions import register_exception_handlers
from field_service.core.lifespan import lifespan
from field_service.core.middleware import RequestValidationMiddleware
from field_service.routers import (
    approvals,
    health,
    notifications,
    registry,
    sessions,
    tariffs,
    tasks,
)


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance with all routers registered.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(tasks.router, tags=["Tasks"])
    app.include_router(approvals.router, tags=["Approvals"])
    app.include_router(sessions.router, tags=["Sessions"])
    app.include_router(tariffs.router, tags=["Tariffs"])
    app.include_router(registry.router, tags=["Registry"])
    app.include_router(notifications.router, tags=["Notifications"])

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app
