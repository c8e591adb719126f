"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from field_service.clients.chat_platform_client import ChatPlatformClient
    from field_service.services.approval_workflow import ApprovalWorkflow
    from field_service.services.field_store import FieldStore
    from field_service.services.notification_outbox import NotificationOutbox
    from field_service.services.registry import Registry
    from field_service.services.session_manager import SessionManager
    from field_service.services.tariff_manager import TariffManager
    from field_service.services.task_lifecycle import TaskLifecycle
    from field_service.services.worker_stats import WorkerStats


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: FieldStore | None = None
    task_lifecycle: TaskLifecycle | None = None
    approval_workflow: ApprovalWorkflow | None = None
    session_manager: SessionManager | None = None
    tariff_manager: TariffManager | None = None
    registry: Registry | None = None
    notification_outbox: NotificationOutbox | None = None
    worker_stats: WorkerStats | None = None
    chat_platform_client: ChatPlatformClient | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        """Keep the outbox's chat platform client in sync with the AppState field."""
        super().__setattr__(name, value)

        outbox = self.__dict__.get("notification_outbox")
        if name == "chat_platform_client" and value is not None and outbox is not None:
            outbox.set_chat_platform_client(value)
        elif name == "notification_outbox" and value is not None:
            client = self.__dict__.get("chat_platform_client")
            if client is not None:
                value.set_chat_platform_client(client)

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
