"""API routers."""

from field_service.routers import approvals, health, notifications, registry, sessions, tariffs, tasks

__all__ = ["approvals", "health", "notifications", "registry", "sessions", "tariffs", "tasks"]
