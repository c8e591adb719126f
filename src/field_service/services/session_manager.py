"""Worker shifts: open, close, and earnings derived once at close."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import ServiceError
from field_service.logging import get_logger
from field_service.services.clock import now_utc, parse_iso, to_iso
from field_service.services.field_store import DuplicateOpenSessionError
from field_service.services.location import ReportedLocation, capture_location

if TYPE_CHECKING:
    from field_service.services.field_store import FieldStore
    from field_service.services.location import LocationProvider
    from field_service.services.tariff_manager import TariffManager

_HOURS_PLACES = 4


class SessionManager:
    """Opens and closes work sessions; at most one open session per worker."""

    def __init__(
        self,
        store: FieldStore,
        tariffs: TariffManager,
        location_timeout_seconds: float,
    ) -> None:
        self._store = store
        self._tariffs = tariffs
        self._location_timeout_seconds = location_timeout_seconds
        self._logger = get_logger(__name__)

    async def _capture(
        self,
        location: LocationProvider | None,
        *,
        proceed_without_location: bool,
    ) -> str | None:
        return await capture_location(
            location if location is not None else ReportedLocation(None),
            self._location_timeout_seconds,
            proceed_without_location=proceed_without_location,
        )

    def _require_worker(self, worker_id: str) -> None:
        if self._store.get_worker(worker_id) is None:
            raise ServiceError(
                "WORKER_NOT_FOUND", "Worker is not registered", 404, {"worker_id": worker_id}
            )

    async def open_session(
        self,
        worker_id: str,
        *,
        location: LocationProvider | None = None,
        proceed_without_location: bool = False,
    ) -> dict[str, Any]:
        """
        Start a shift for the worker.

        Raises:
            ServiceError: WORKER_NOT_FOUND, SESSION_ALREADY_OPEN, LOCATION_UNAVAILABLE
        """
        self._require_worker(worker_id)
        if self._store.get_open_session(worker_id) is not None:
            raise ServiceError(
                "SESSION_ALREADY_OPEN",
                "Worker already has an open work session",
                409,
                {"worker_id": worker_id},
            )

        start_location = await self._capture(
            location, proceed_without_location=proceed_without_location
        )
        session = {
            "session_id": f"ws-{uuid.uuid4()}",
            "worker_id": worker_id,
            "start_time": to_iso(now_utc()),
            "start_location": start_location,
        }
        try:
            self._store.insert_session(session)
        except DuplicateOpenSessionError as exc:
            # Lost the race against a concurrent open.
            raise ServiceError(
                "SESSION_ALREADY_OPEN",
                "Worker already has an open work session",
                409,
                {"worker_id": worker_id},
            ) from exc

        self._logger.info(
            "Work session opened",
            extra={"session_id": session["session_id"], "worker_id": worker_id},
        )
        opened = self._store.get_session(session["session_id"])
        if opened is None:
            msg = f"Session {session['session_id']} not found after insert"
            raise RuntimeError(msg)
        return opened

    async def close_session(
        self,
        worker_id: str,
        *,
        location: LocationProvider | None = None,
        proceed_without_location: bool = False,
    ) -> dict[str, Any]:
        """
        End the worker's open shift and derive total_hours and earnings.

        Earnings are computed once here and stored. Days without a tariff
        contribute zero and set ``earnings_incomplete``.
        """
        session = self._store.get_open_session(worker_id)
        if session is None:
            raise ServiceError(
                "SESSION_NOT_FOUND",
                "Worker has no open work session",
                404,
                {"worker_id": worker_id},
            )

        end_location = await self._capture(
            location, proceed_without_location=proceed_without_location
        )
        end = now_utc()
        start = parse_iso(session["start_time"])
        seconds = Decimal(str(max(0.0, (end - start).total_seconds())))
        total_hours = round(float(seconds / Decimal(3600)), _HOURS_PLACES)
        earnings = self._tariffs.compute(worker_id, start, end)

        closed = self._store.close_session(
            session["session_id"],
            {
                "end_time": to_iso(end),
                "end_location": end_location,
                "total_hours": total_hours,
                "earnings": str(earnings.amount),
                "earnings_incomplete": earnings.incomplete,
            },
        )
        if not closed:
            raise ServiceError(
                "SESSION_ALREADY_CLOSED",
                "Work session was already closed",
                409,
                {"session_id": session["session_id"]},
            )

        log_extra = {
            "session_id": session["session_id"],
            "worker_id": worker_id,
            "total_hours": total_hours,
            "earnings": str(earnings.amount),
        }
        if earnings.incomplete:
            self._logger.warning(
                "Work session closed with incomplete earnings",
                extra={
                    **log_extra,
                    "missing_dates": [day.isoformat() for day in earnings.missing_dates],
                },
            )
        else:
            self._logger.info("Work session closed", extra=log_extra)

        result = self._store.get_session(session["session_id"])
        if result is None:
            msg = f"Session {session['session_id']} not found after close"
            raise RuntimeError(msg)
        result["display_earnings"] = str(earnings.display_amount)
        return result

    def get_open_session(self, worker_id: str) -> dict[str, Any]:
        session = self._store.get_open_session(worker_id)
        if session is None:
            raise ServiceError(
                "SESSION_NOT_FOUND",
                "Worker has no open work session",
                404,
                {"worker_id": worker_id},
            )
        return session

    def list_sessions(self, worker_id: str, limit: int | None) -> list[dict[str, Any]]:
        return self._store.list_sessions(worker_id, closed_only=False, limit=limit)
