"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from field_service.clients.chat_platform_client import ChatPlatformClient
from field_service.config import get_settings
from field_service.core.state import init_app_state
from field_service.logging import get_logger, setup_logging
from field_service.services.approval_workflow import ApprovalWorkflow
from field_service.services.earnings_calculator import EarningsCalculator
from field_service.services.field_store import FieldStore
from field_service.services.notification_outbox import NotificationOutbox
from field_service.services.photo_gate import PhotoChecklistGate
from field_service.services.registry import Registry
from field_service.services.session_manager import SessionManager
from field_service.services.tariff_manager import TariffManager
from field_service.services.task_lifecycle import TaskLifecycle
from field_service.services.worker_stats import WorkerStats

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    store = FieldStore(db_path=settings.database.path)
    state.store = store
    gate = PhotoChecklistGate()

    # Initialize ChatPlatformClient (HTTP client for outbound notifications)
    chat_platform_client = ChatPlatformClient(
        base_url=settings.chat_platform.base_url,
        manager_notify_path=settings.chat_platform.manager_notify_path,
        worker_notify_path=settings.chat_platform.worker_notify_path,
        timeout_seconds=settings.chat_platform.timeout_seconds,
        api_token=settings.chat_platform.api_token,
    )
    state.chat_platform_client = chat_platform_client

    state.registry = Registry(store=store)
    state.task_lifecycle = TaskLifecycle(
        store=store,
        gate=gate,
        location_timeout_seconds=settings.location.timeout_seconds,
    )
    state.approval_workflow = ApprovalWorkflow(
        store=store,
        gate=gate,
        decider_roles=settings.approvals.decider_roles,
    )
    tariff_manager = TariffManager(
        store=store,
        calculator=EarningsCalculator(ZoneInfo(settings.tariffs.timezone)),
        currency=settings.tariffs.currency,
    )
    state.tariff_manager = tariff_manager
    state.session_manager = SessionManager(
        store=store,
        tariffs=tariff_manager,
        location_timeout_seconds=settings.location.timeout_seconds,
    )
    state.worker_stats = WorkerStats(
        store=store,
        tz=ZoneInfo(settings.tariffs.timezone),
        currency=settings.tariffs.currency,
    )
    state.notification_outbox = NotificationOutbox(
        store=store,
        chat_platform_client=chat_platform_client,
        batch_size=settings.notifications.dispatch_batch_size,
        max_attempts=settings.notifications.max_attempts,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "timezone": settings.tariffs.timezone,
            "chat_platform_base_url": settings.chat_platform.base_url,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    store.close()
    if state.chat_platform_client is not None:
        await state.chat_platform_client.close()
