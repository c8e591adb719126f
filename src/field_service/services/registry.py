"""Workers and task types."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import ServiceError
from field_service.logging import get_logger
from field_service.services.clock import now_iso
from field_service.services.field_store import DuplicateRecordError

if TYPE_CHECKING:
    from field_service.services.field_store import FieldStore

WORKER_ROLES = frozenset({"worker", "manager", "director", "admin"})


class Registry:
    """Registers workers (and deciders) and the task types tasks are created from."""

    def __init__(self, store: FieldStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    def register_worker(self, worker_id: str, full_name: str, role: str) -> dict[str, Any]:
        if role not in WORKER_ROLES:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"role must be one of {sorted(WORKER_ROLES)}",
                400,
                {"role": role},
            )
        worker = {
            "worker_id": worker_id,
            "full_name": full_name,
            "role": role,
            "created_at": now_iso(),
        }
        try:
            self._store.insert_worker(worker)
        except DuplicateRecordError as exc:
            raise ServiceError(
                "WORKER_EXISTS", "Worker already registered", 409, {"worker_id": worker_id}
            ) from exc
        self._logger.info("Worker registered", extra={"worker_id": worker_id, "role": role})
        return worker

    def get_worker(self, worker_id: str) -> dict[str, Any]:
        """Worker record plus reliability counters."""
        worker = self._store.get_worker(worker_id)
        if worker is None:
            raise ServiceError(
                "WORKER_NOT_FOUND", "Worker is not registered", 404, {"worker_id": worker_id}
            )
        reliability = self._store.get_reliability(worker_id)
        return {
            **worker,
            "tasks_completed": reliability["tasks_completed"],
            "tasks_returned": reliability["tasks_returned"],
        }

    def create_task_type(
        self,
        *,
        slug: str,
        display_name: str,
        photo_minimum: int | None,
        requires_before_photos: bool | None,
        default_checklist: list[str],
    ) -> dict[str, Any]:
        task_type = {
            "type_id": f"tt-{uuid.uuid4()}",
            "slug": slug,
            "display_name": display_name,
            "photo_minimum": photo_minimum,
            "requires_before_photos": (
                None if requires_before_photos is None else int(requires_before_photos)
            ),
            "default_checklist": default_checklist,
            "created_at": now_iso(),
        }
        try:
            self._store.insert_task_type(task_type)
        except DuplicateRecordError as exc:
            raise ServiceError(
                "TASK_TYPE_EXISTS", "Task type slug already in use", 409, {"slug": slug}
            ) from exc
        self._logger.info("Task type created", extra={"type_id": task_type["type_id"], "slug": slug})
        created = self._store.get_task_type(task_type["type_id"])
        if created is None:
            msg = f"Task type {task_type['type_id']} not found after insert"
            raise RuntimeError(msg)
        return created

    def list_task_types(self) -> list[dict[str, Any]]:
        return self._store.list_task_types()
