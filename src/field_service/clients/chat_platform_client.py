"""Async HTTP client for the chat/notification platform."""

from __future__ import annotations

from typing import Any

import httpx

from field_service.core.exceptions import ServiceError
from field_service.logging import get_logger

_SUCCESS_CODES = frozenset({200, 201, 202, 204})


class ChatPlatformClient:
    """
    Delivers manager and worker notifications to the chat platform.

    The platform owns message formatting; this client only posts the
    notification body as JSON.
    """

    def __init__(
        self,
        base_url: str,
        manager_notify_path: str,
        worker_notify_path: str,
        timeout_seconds: int,
        api_token: str | None = None,
    ) -> None:
        self._base_url = base_url
        self._manager_notify_path = manager_notify_path
        self._worker_notify_path = worker_notify_path
        headers = {} if api_token is None else {"Authorization": f"Bearer {api_token}"}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> None:
        logger = get_logger(__name__)

        try:
            response = await self._client.post(path, json=payload)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Chat platform connection failed",
                extra={"error": str(exc), "base_url": self._base_url, "path": path},
            )
            raise ServiceError(
                error="CHAT_PLATFORM_UNAVAILABLE",
                message="Cannot connect to chat platform",
                status_code=502,
                details={},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Chat platform HTTP error",
                extra={"error": str(exc), "base_url": self._base_url, "path": path},
            )
            raise ServiceError(
                error="CHAT_PLATFORM_UNAVAILABLE",
                message="Chat platform request failed",
                status_code=502,
                details={},
            ) from exc

        if response.status_code not in _SUCCESS_CODES:
            logger.warning(
                "Chat platform unexpected status",
                extra={
                    "status_code": response.status_code,
                    "base_url": self._base_url,
                    "path": path,
                },
            )
            raise ServiceError(
                error="CHAT_PLATFORM_ERROR",
                message="Chat platform rejected the notification",
                status_code=502,
                details={"status_code": response.status_code},
            )

    async def notify_manager(self, payload: dict[str, Any]) -> None:
        """Tell managers that a task is awaiting approval."""
        await self._post(self._manager_notify_path, payload)

    async def notify_worker(self, payload: dict[str, Any]) -> None:
        """Tell a worker the outcome of an approval decision."""
        await self._post(self._worker_notify_path, payload)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
