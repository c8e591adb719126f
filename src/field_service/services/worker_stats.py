"""Per-day and per-period work summaries for a worker."""

from __future__ import annotations

from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import ServiceError
from field_service.services.clock import parse_iso, to_iso
from field_service.services.earnings_calculator import round_for_display

if TYPE_CHECKING:
    from datetime import date
    from zoneinfo import ZoneInfo

    from field_service.services.field_store import FieldStore

MAX_RANGE_DAYS = 366
_HOURS_PLACES = 4


class _Bucket:
    def __init__(self) -> None:
        self.hours = 0.0
        self.earnings = Decimal(0)
        self.incomplete = False
        self.sessions = 0
        self.tasks_completed = 0

    def add_session(self, session: dict[str, Any]) -> None:
        self.sessions += 1
        self.hours += session["total_hours"] or 0.0
        if session["earnings"] is not None:
            self.earnings += Decimal(session["earnings"])
        self.incomplete = self.incomplete or session["earnings_incomplete"]

    def merge(self, other: _Bucket) -> None:
        self.hours += other.hours
        self.earnings += other.earnings
        self.incomplete = self.incomplete or other.incomplete
        self.sessions += other.sessions
        self.tasks_completed += other.tasks_completed

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_hours": round(self.hours, _HOURS_PLACES),
            "earnings": str(self.earnings),
            "display_earnings": str(round_for_display(self.earnings)),
            "earnings_incomplete": self.incomplete,
            "sessions": self.sessions,
            "tasks_completed": self.tasks_completed,
        }


class WorkerStats:
    """
    Summarizes closed shifts and approved tasks over a range of local dates.

    A shift counts toward the local date it started on and carries the
    earnings fixed when it was closed. A task counts toward the local date its
    work was completed, once it has been approved.
    """

    def __init__(self, store: FieldStore, tz: ZoneInfo, currency: str) -> None:
        self._store = store
        self._tz = tz
        self._currency = currency

    def _local_midnight(self, day: date) -> str:
        return to_iso(datetime.combine(day, time.min, tzinfo=self._tz))

    def _local_date(self, value: str) -> date:
        return parse_iso(value).astimezone(self._tz).date()

    def summarize(self, worker_id: str, date_from: date, date_to: date) -> dict[str, Any]:
        """
        Hours, earnings and completed tasks per day and for the whole range.

        Both dates are inclusive.

        Raises:
            ServiceError: INVALID_PAYLOAD for a reversed or too long range,
                WORKER_NOT_FOUND for an unregistered worker
        """
        if date_to < date_from:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "to must not be before from",
                400,
                {"from": date_from.isoformat(), "to": date_to.isoformat()},
            )
        span = (date_to - date_from).days + 1
        if span > MAX_RANGE_DAYS:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Range must not exceed {MAX_RANGE_DAYS} days",
                400,
                {"days": span},
            )
        if self._store.get_worker(worker_id) is None:
            raise ServiceError(
                "WORKER_NOT_FOUND", "Worker is not registered", 404, {"worker_id": worker_id}
            )

        start = self._local_midnight(date_from)
        end = self._local_midnight(date_to + timedelta(days=1))
        days = {date_from + timedelta(days=offset): _Bucket() for offset in range(span)}

        for session in self._store.list_closed_sessions_starting_between(worker_id, start, end):
            days[self._local_date(session["start_time"])].add_session(session)
        for task in self._store.list_completed_tasks_between(worker_id, start, end):
            days[self._local_date(task["completed_at"])].tasks_completed += 1

        total = _Bucket()
        for bucket in days.values():
            total.merge(bucket)

        return {
            "worker_id": worker_id,
            "from": date_from.isoformat(),
            "to": date_to.isoformat(),
            "currency": self._currency,
            "totals": total.to_dict(),
            "days": [{"date": day.isoformat(), **bucket.to_dict()} for day, bucket in days.items()],
        }
