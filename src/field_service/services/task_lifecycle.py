"""Task lifecycle: worker-driven transitions, evidence, and elapsed time."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import (
    InvalidTransitionError,
    PhotoRequirementNotMetError,
    ServiceError,
)
from field_service.logging import get_logger
from field_service.services.clock import now_utc, parse_iso, to_iso
from field_service.services.duration_accountant import (
    effective_elapsed_seconds,
    open_pause_seconds,
    pause_segment_seconds,
)
from field_service.services.location import ReportedLocation, capture_location
from field_service.services.task_status import (
    APPROVAL_EVENTS,
    EVIDENCE_STATUSES,
    TaskEvent,
    TaskStatus,
    allowed_events,
    next_status,
)

if TYPE_CHECKING:
    from datetime import datetime

    from field_service.services.field_store import FieldStore
    from field_service.services.location import LocationProvider
    from field_service.services.photo_gate import GateResult, PhotoChecklistGate


def manager_notification_payload(
    task: dict[str, Any],
    worker: dict[str, Any] | None,
    completed_at: str,
    photos: list[dict[str, Any]],
    checklist: list[dict[str, Any]],
) -> dict[str, Any]:
    """Body of the notification sent to managers when a task awaits approval."""
    return {
        "task_id": task["task_id"],
        "task_title": task["title"],
        "worker_id": task["assigned_worker_id"],
        "worker_name": None if worker is None else worker["full_name"],
        "completed_at": completed_at,
        "photos": [
            {"photo_id": photo["photo_id"], "kind": photo["kind"], "photo_url": photo["photo_url"]}
            for photo in photos
        ],
        "checklist_summary": {
            "total": len(checklist),
            "completed": sum(1 for item in checklist if item["is_completed"]),
        },
    }


class TaskLifecycle:
    """
    Guarded state machine for the worker side of a task.

    Every transition reads the task once, captures the current instant once,
    and commits a conditional write keyed on the status (and, where the pause
    accumulator moves, on the timestamp the delta was computed from). A write
    that no longer matches is reported as InvalidTransitionError, never retried
    or coerced.
    """

    def __init__(
        self,
        store: FieldStore,
        gate: PhotoChecklistGate,
        location_timeout_seconds: float,
    ) -> None:
        self._store = store
        self._gate = gate
        self._location_timeout_seconds = location_timeout_seconds
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {"task_id": task_id})
        return task

    def _task_type_for(self, task: dict[str, Any]) -> dict[str, Any] | None:
        if task["task_type_id"] is None:
            return None
        return self._store.get_task_type(task["task_type_id"])

    @staticmethod
    def _elapsed(task: dict[str, Any], now: datetime) -> int:
        """Stored figure once the task has completed, live figure otherwise."""
        if task["effective_elapsed_seconds"] is not None:
            return int(task["effective_elapsed_seconds"])
        return effective_elapsed_seconds(task, at=now)

    @staticmethod
    def _worker_events(status: TaskStatus) -> list[str]:
        return [event.value for event in allowed_events(status) if event not in APPROVAL_EVENTS]

    def _task_to_response(self, task: dict[str, Any], now: datetime) -> dict[str, Any]:
        status = TaskStatus(task["status"])
        return {
            **task,
            "elapsed_seconds": self._elapsed(task, now),
            "allowed_events": self._worker_events(status),
            "checklist": self._store.get_checklist(task["task_id"]),
            "photos": self._store.get_photos(task["task_id"]),
        }

    def _task_to_summary(self, task: dict[str, Any], now: datetime) -> dict[str, Any]:
        return {
            "task_id": task["task_id"],
            "title": task["title"],
            "status": task["status"],
            "assigned_worker_id": task["assigned_worker_id"],
            "task_type_id": task["task_type_id"],
            "created_at": task["created_at"],
            "started_at": task["started_at"],
            "completed_at": task["completed_at"],
            "elapsed_seconds": self._elapsed(task, now),
        }

    async def _capture(
        self,
        location: LocationProvider | None,
        *,
        proceed_without_location: bool,
    ) -> str | None:
        provider = location if location is not None else ReportedLocation(None)
        return await capture_location(
            provider,
            self._location_timeout_seconds,
            proceed_without_location=proceed_without_location,
        )

    def _commit(
        self,
        task: dict[str, Any],
        event: TaskEvent,
        target: TaskStatus,
        now: datetime,
        updates: dict[str, Any],
        *,
        conditions: dict[str, Any] | None = None,
        increments: dict[str, int] | None = None,
        notification: dict[str, Any] | None = None,
    ) -> None:
        task_id = task["task_id"]
        committed = self._store.commit_transition(
            task_id,
            {"status": target.value, "updated_at": to_iso(now), **updates},
            expected_status=task["status"],
            conditions=conditions,
            increments=increments,
            notification=notification,
        )
        if not committed:
            current = self._store.get_task(task_id)
            current_status = "unknown" if current is None else current["status"]
            self._logger.warning(
                "Transition lost a concurrent update",
                extra={
                    "task_id": task_id,
                    "event": event.value,
                    "expected_status": task["status"],
                    "current_status": current_status,
                },
            )
            raise InvalidTransitionError(task_id, current_status, event.value)

        self._logger.info(
            "Task transitioned",
            extra={
                "task_id": task_id,
                "event": event.value,
                "from_status": task["status"],
                "to_status": target.value,
            },
        )

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def create_task(
        self,
        *,
        title: str,
        description: str,
        assigned_worker_id: str,
        created_by: str,
        task_type_id: str | None,
        checklist: list[str] | None,
        photo_minimum_override: int | None,
        requires_before_override: bool | None,
    ) -> dict[str, Any]:
        """
        Create a pending task.

        Without an explicit checklist, the task type's default checklist is
        copied onto the task.
        """
        if self._store.get_worker(assigned_worker_id) is None:
            raise ServiceError(
                "WORKER_NOT_FOUND",
                "Assigned worker is not registered",
                404,
                {"worker_id": assigned_worker_id},
            )

        task_type: dict[str, Any] | None = None
        if task_type_id is not None:
            task_type = self._store.get_task_type(task_type_id)
            if task_type is None:
                raise ServiceError(
                    "TASK_TYPE_NOT_FOUND",
                    "Task type not found",
                    404,
                    {"task_type_id": task_type_id},
                )

        if checklist is None:
            checklist = list(task_type["default_checklist"]) if task_type is not None else []

        now = now_utc()
        task_id = f"t-{uuid.uuid4()}"
        created_at = to_iso(now)
        self._store.insert_task(
            {
                "task_id": task_id,
                "title": title,
                "description": description,
                "status": TaskStatus.PENDING.value,
                "assigned_worker_id": assigned_worker_id,
                "created_by": created_by,
                "task_type_id": task_type_id,
                "created_at": created_at,
                "total_pause_duration_seconds": 0,
                "photo_minimum_override": photo_minimum_override,
                "requires_before_override": (
                    None if requires_before_override is None else int(requires_before_override)
                ),
                "updated_at": created_at,
            },
            [
                {"item_id": f"ci-{uuid.uuid4()}", "text": text, "position": position}
                for position, text in enumerate(checklist)
            ],
        )
        self._logger.info(
            "Task created",
            extra={"task_id": task_id, "worker_id": assigned_worker_id, "task_type_id": task_type_id},
        )
        return self._task_to_response(self._load_task(task_id), now)

    def get_task(self, task_id: str) -> dict[str, Any]:
        """Get full task details, including evidence and live elapsed time."""
        return self._task_to_response(self._load_task(task_id), now_utc())

    def list_tasks(
        self,
        status: str | None,
        worker_id: str | None,
        offset: int | None,
        limit: int | None,
    ) -> list[dict[str, Any]]:
        """List task summaries with optional filters."""
        if status is not None and status not in {member.value for member in TaskStatus}:
            raise ServiceError("INVALID_PAYLOAD", f"Unknown status: {status}", 400, {})
        now = now_utc()
        rows = self._store.list_tasks(status=status, worker_id=worker_id, limit=limit, offset=offset)
        return [self._task_to_summary(row, now) for row in rows]

    def get_elapsed(self, task_id: str) -> dict[str, Any]:
        """
        Effective working time as of now.

        Cheap enough to poll every second: one row read, no writes.
        """
        task = self._load_task(task_id)
        now = now_utc()
        return {
            "task_id": task_id,
            "status": task["status"],
            "elapsed_seconds": self._elapsed(task, now),
            "total_pause_duration_seconds": task["total_pause_duration_seconds"],
            "current_pause_seconds": open_pause_seconds(task, now),
            "as_of": to_iso(now),
        }

    def check_gate(self, task_id: str) -> GateResult:
        """Evaluate the photo/checklist gate without changing anything."""
        task = self._load_task(task_id)
        return self._gate.validate(
            task,
            self._task_type_for(task),
            self._store.get_photos(task_id),
            self._store.get_checklist(task_id),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        task_id: str,
        event: str,
        *,
        location: LocationProvider | None = None,
        proceed_without_location: bool = False,
    ) -> dict[str, Any]:
        """
        Apply a worker event to a task.

        Error precedence:
        1. INVALID_PAYLOAD: unknown event name
        2. TASK_NOT_FOUND
        3. INVALID_TRANSITION: approval events, or a pair outside the table
        4. PHOTO_REQUIREMENT_NOT_MET: submit with incomplete evidence
        5. LOCATION_UNAVAILABLE: start/submit without a location or confirmation
        6. INVALID_TRANSITION: the row changed before the write committed
        """
        try:
            task_event = TaskEvent(event)
        except ValueError as exc:
            raise ServiceError(
                "INVALID_PAYLOAD", f"Unknown event: {event}", 400, {"event": event}
            ) from exc

        task = self._load_task(task_id)
        status = TaskStatus(task["status"])
        target = next_status(status, task_event)
        if task_event in APPROVAL_EVENTS or target is None:
            self._logger.warning(
                "Rejected transition",
                extra={"task_id": task_id, "status": status.value, "event": task_event.value},
            )
            raise InvalidTransitionError(task_id, status.value, task_event.value)

        if task_event is TaskEvent.START:
            await self._start(task, location, proceed_without_location=proceed_without_location)
        elif task_event is TaskEvent.PAUSE:
            self._pause(task)
        elif task_event is TaskEvent.RESUME:
            self._resume(task)
        elif task_event is TaskEvent.SUBMIT:
            await self._submit(task, location, proceed_without_location=proceed_without_location)
        elif task_event is TaskEvent.REWORK:
            self._rework(task)
        else:
            self._add_photos(task)

        return self.get_task(task_id)

    async def _start(
        self,
        task: dict[str, Any],
        location: LocationProvider | None,
        *,
        proceed_without_location: bool,
    ) -> None:
        start_location = await self._capture(
            location, proceed_without_location=proceed_without_location
        )
        now = now_utc()
        self._commit(
            task,
            TaskEvent.START,
            TaskStatus.IN_PROGRESS,
            now,
            {"started_at": to_iso(now), "start_location": start_location},
            conditions={"started_at": None},
        )

    def _pause(self, task: dict[str, Any]) -> None:
        now = now_utc()
        self._commit(
            task,
            TaskEvent.PAUSE,
            TaskStatus.PAUSED,
            now,
            {"paused_at": to_iso(now)},
            conditions={"paused_at": None},
        )

    def _resume(self, task: dict[str, Any]) -> None:
        now = now_utc()
        segment = pause_segment_seconds(parse_iso(task["paused_at"]), now)
        self._commit(
            task,
            TaskEvent.RESUME,
            TaskStatus.IN_PROGRESS,
            now,
            {"paused_at": None},
            conditions={"paused_at": task["paused_at"]},
            increments={"total_pause_duration_seconds": segment},
        )

    async def _submit(
        self,
        task: dict[str, Any],
        location: LocationProvider | None,
        *,
        proceed_without_location: bool,
    ) -> None:
        task_id = task["task_id"]
        photos = self._store.get_photos(task_id)
        checklist = self._store.get_checklist(task_id)
        result = self._gate.validate(task, self._task_type_for(task), photos, checklist)
        if not result.is_valid:
            self._logger.warning(
                "Submission blocked by photo/checklist gate",
                extra={"task_id": task_id, **result.to_details()},
            )
            raise PhotoRequirementNotMetError(task_id, result.to_details())

        status = TaskStatus(task["status"])
        # Resubmitting photos does not reopen the working interval.
        resubmission = status is TaskStatus.AWAITING_PHOTOS and task["completed_at"] is not None

        updates: dict[str, Any] = {}
        conditions: dict[str, Any] = {}
        increments: dict[str, int] | None = None

        if resubmission:
            now = now_utc()
            completed_at = task["completed_at"]
            conditions["completed_at"] = completed_at
        else:
            end_location = await self._capture(
                location, proceed_without_location=proceed_without_location
            )
            now = now_utc()
            completed_at = to_iso(now)
            # The stored elapsed figure is derived from this pause total.
            conditions["total_pause_duration_seconds"] = task["total_pause_duration_seconds"]
            segment = 0
            if status is TaskStatus.PAUSED:
                segment = pause_segment_seconds(parse_iso(task["paused_at"]), now)
                conditions["paused_at"] = task["paused_at"]
                updates["paused_at"] = None
                increments = {"total_pause_duration_seconds": segment}
            finished = {
                **task,
                "status": TaskStatus.AWAITING_APPROVAL.value,
                "paused_at": None,
                "total_pause_duration_seconds": task["total_pause_duration_seconds"] + segment,
            }
            updates["completed_at"] = completed_at
            updates["end_location"] = end_location
            updates["effective_elapsed_seconds"] = effective_elapsed_seconds(finished, at=now)

        updates["submitted_at"] = to_iso(now)
        worker = self._store.get_worker(task["assigned_worker_id"])
        notification = {
            "notification_id": f"n-{uuid.uuid4()}",
            "kind": "manager",
            "task_id": task_id,
            "payload": manager_notification_payload(task, worker, completed_at, photos, checklist),
            "created_at": to_iso(now),
        }
        self._commit(
            task,
            TaskEvent.SUBMIT,
            TaskStatus.AWAITING_APPROVAL,
            now,
            updates,
            conditions=conditions,
            increments=increments,
            notification=notification,
        )

    def _rework(self, task: dict[str, Any]) -> None:
        now = now_utc()
        completed_at = task["completed_at"]
        # The task sat idle from submission until now.
        idle = 0 if completed_at is None else pause_segment_seconds(parse_iso(completed_at), now)
        self._commit(
            task,
            TaskEvent.REWORK,
            TaskStatus.IN_PROGRESS,
            now,
            {"completed_at": None, "effective_elapsed_seconds": None},
            conditions={"completed_at": completed_at},
            increments={"total_pause_duration_seconds": idle},
        )

    def _add_photos(self, task: dict[str, Any]) -> None:
        self._commit(task, TaskEvent.ADD_PHOTOS, TaskStatus.AWAITING_PHOTOS, now_utc(), {})

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def record_photo(self, task_id: str, kind: str, photo_url: str | None) -> dict[str, Any]:
        """Attach a photo record to a task that is being worked on."""
        task = self._load_task(task_id)
        photo = {
            "photo_id": f"ph-{uuid.uuid4()}",
            "task_id": task_id,
            "kind": kind,
            "photo_url": photo_url,
            "uploaded_at": to_iso(now_utc()),
        }
        allowed = [status.value for status in EVIDENCE_STATUSES]
        if not self._store.insert_photo(photo, allowed):
            current = self._store.get_task(task_id) or task
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot add photos to task in '{current['status']}' status",
                409,
                {"task_id": task_id, "status": current["status"]},
            )
        self._logger.info(
            "Photo recorded",
            extra={"task_id": task_id, "photo_id": photo["photo_id"], "kind": kind},
        )
        return photo

    def set_checklist_item(self, task_id: str, item_id: str, *, is_completed: bool) -> dict[str, Any]:
        """Mark a checklist item done or not done."""
        task = self._load_task(task_id)
        if self._store.get_checklist_item(task_id, item_id) is None:
            raise ServiceError(
                "CHECKLIST_ITEM_NOT_FOUND",
                "Checklist item not found",
                404,
                {"task_id": task_id, "item_id": item_id},
            )
        completed_at = to_iso(now_utc()) if is_completed else None
        allowed = [status.value for status in EVIDENCE_STATUSES]
        if not self._store.set_checklist_item(
            task_id,
            item_id,
            is_completed=is_completed,
            completed_at=completed_at,
            allowed_statuses=allowed,
        ):
            current = self._store.get_task(task_id) or task
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot change checklist of task in '{current['status']}' status",
                409,
                {"task_id": task_id, "status": current["status"]},
            )
        item = self._store.get_checklist_item(task_id, item_id)
        if item is None:
            msg = f"Checklist item {item_id} not found after update"
            raise RuntimeError(msg)
        return item

    # ------------------------------------------------------------------
    # Statistics (health endpoint)
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return aggregate task statistics for health reporting."""
        counts: dict[str, int] = dict.fromkeys((status.value for status in TaskStatus), 0)
        for status_val, count in self._store.count_tasks_by_status().items():
            if status_val in counts:
                counts[status_val] = int(count)
        return {"total_tasks": self._store.count_tasks(), "tasks_by_status": counts}
