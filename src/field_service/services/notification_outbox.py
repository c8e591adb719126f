"""Delivery of outbox notifications to the chat platform."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import ServiceError
from field_service.logging import get_logger
from field_service.services.clock import now_iso

if TYPE_CHECKING:
    from field_service.clients.chat_platform_client import ChatPlatformClient
    from field_service.services.field_store import FieldStore


class NotificationOutbox:
    """
    Drains pending notifications written by lifecycle and approval commits.

    A failed delivery never touches the task; the row stays pending and is
    retried on the next dispatch until max_attempts, after which it is marked
    failed.
    """

    def __init__(
        self,
        store: FieldStore,
        chat_platform_client: ChatPlatformClient,
        batch_size: int,
        max_attempts: int,
    ) -> None:
        self._store = store
        self._chat_platform_client = chat_platform_client
        self._batch_size = batch_size
        self._max_attempts = max_attempts
        self._logger = get_logger(__name__)

    def set_chat_platform_client(self, client: ChatPlatformClient) -> None:
        self._chat_platform_client = client

    async def _deliver(self, notification: dict[str, Any]) -> None:
        if notification["kind"] == "manager":
            await self._chat_platform_client.notify_manager(notification["payload"])
        else:
            await self._chat_platform_client.notify_worker(notification["payload"])

    async def dispatch_pending(self, limit: int | None = None) -> dict[str, int]:
        """
        Attempt delivery of up to ``limit`` pending notifications, oldest first.

        Returns:
            Counts of notifications sent, still pending, and given up on.
        """
        batch = self._store.list_pending_notifications(limit or self._batch_size)
        sent = 0
        retrying = 0
        failed = 0

        for notification in batch:
            notification_id = notification["notification_id"]
            try:
                await self._deliver(notification)
            except ServiceError as exc:
                self._store.record_notification_failure(
                    notification_id, f"{exc.error}: {exc.message}", self._max_attempts
                )
                current = self._store.get_notification(notification_id)
                gave_up = current is not None and current["status"] == "failed"
                self._logger.warning(
                    "Notification delivery failed",
                    extra={
                        "notification_id": notification_id,
                        "task_id": notification["task_id"],
                        "kind": notification["kind"],
                        "error_code": exc.error,
                        "gave_up": gave_up,
                    },
                )
                if gave_up:
                    failed += 1
                else:
                    retrying += 1
                continue

            self._store.mark_notification_sent(notification_id, now_iso())
            sent += 1

        if batch:
            self._logger.info(
                "Notification dispatch finished",
                extra={"sent": sent, "retrying": retrying, "failed": failed},
            )
        return {"sent": sent, "retrying": retrying, "failed": failed}

    def list_for_task(self, task_id: str) -> list[dict[str, Any]]:
        return self._store.list_notifications(task_id)

    def get_stats(self) -> dict[str, int]:
        counts = dict.fromkeys(("pending", "sent", "failed"), 0)
        counts.update(self._store.count_notifications_by_status())
        return counts
