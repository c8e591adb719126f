"""Shared test helpers for building stores, tasks and evidence."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from field_service.services.clock import now_iso
from field_service.services.field_store import FieldStore
from field_service.services.location import Coordinates, ReportedLocation
from field_service.services.photo_gate import PhotoChecklistGate
from field_service.services.task_lifecycle import TaskLifecycle

if TYPE_CHECKING:
    from pathlib import Path

WORKER_ID = "w-ivan"
MANAGER_ID = "m-olga"

# Minsk city centre
MINSK = Coordinates(lat=53.9, lon=27.5667)


def here() -> ReportedLocation:
    """A device that reports a fix immediately."""
    return ReportedLocation(MINSK)


def make_store(tmp_path: Path) -> FieldStore:
    """Fresh store with a worker and a manager registered."""
    store = FieldStore(db_path=str(tmp_path / "field-service.db"))
    register_worker(store, WORKER_ID, "worker", "Ivan Petrov")
    register_worker(store, MANAGER_ID, "manager", "Olga Sidorova")
    return store


def register_worker(store: FieldStore, worker_id: str, role: str, full_name: str = "Test") -> None:
    store.insert_worker(
        {"worker_id": worker_id, "full_name": full_name, "role": role, "created_at": now_iso()}
    )


def make_lifecycle(store: FieldStore, location_timeout_seconds: float = 1.0) -> TaskLifecycle:
    return TaskLifecycle(
        store=store,
        gate=PhotoChecklistGate(),
        location_timeout_seconds=location_timeout_seconds,
    )


def create_task(
    lifecycle: TaskLifecycle,
    *,
    checklist: list[str] | None = None,
    task_type_id: str | None = None,
    photo_minimum_override: int | None = None,
    requires_before_override: bool | None = None,
) -> dict[str, Any]:
    return lifecycle.create_task(
        title="Replace meter",
        description="Apartment 12",
        assigned_worker_id=WORKER_ID,
        created_by=MANAGER_ID,
        task_type_id=task_type_id,
        checklist=checklist,
        photo_minimum_override=photo_minimum_override,
        requires_before_override=requires_before_override,
    )


def add_photos(lifecycle: TaskLifecycle, task_id: str, *kinds: str) -> None:
    for index, kind in enumerate(kinds):
        lifecycle.record_photo(task_id, kind, f"https://photos.example/{task_id}/{index}.jpg")


def complete_checklist(lifecycle: TaskLifecycle, task_id: str) -> None:
    for item in lifecycle.get_task(task_id)["checklist"]:
        lifecycle.set_checklist_item(task_id, item["item_id"], is_completed=True)


async def submitted_task(lifecycle: TaskLifecycle) -> dict[str, Any]:
    """A task with enough evidence that has been submitted for approval."""
    task = create_task(lifecycle)
    await lifecycle.transition(task["task_id"], "start", location=here())
    add_photos(lifecycle, task["task_id"], "before", "after")
    return await lifecycle.transition(task["task_id"], "submit", location=here())


def config_yaml(
    db_path: str,
    log_directory: str,
    *,
    max_body_size: int = 1048576,
    extra_service_field: str = "",
) -> str:
    """A complete service configuration pointing at temporary paths."""
    return f"""\
service:
  name: "field-service"
  version: "0.1.0"{extra_service_field}
server:
  host: "127.0.0.1"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{log_directory}"
database:
  path: "{db_path}"
request:
  max_body_size: {max_body_size}
location:
  timeout_seconds: 0.5
tariffs:
  timezone: "Europe/Minsk"
  currency: "BYN"
approvals:
  decider_roles:
    - "manager"
    - "director"
    - "admin"
chat_platform:
  base_url: "http://chat-platform.test"
  manager_notify_path: "/notify/manager"
  worker_notify_path: "/notify/worker"
  timeout_seconds: 5
  api_token: "secret-token"
notifications:
  dispatch_batch_size: 10
  max_attempts: 3
"""
