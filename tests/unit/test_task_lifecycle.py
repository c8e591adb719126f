"""Unit tests for TaskLifecycle: transitions, the gate, and elapsed time."""

from __future__ import annotations

from datetime import timedelta

import pytest
from freezegun import freeze_time

from field_service.core.exceptions import (
    InvalidTransitionError,
    LocationUnavailableError,
    PhotoRequirementNotMetError,
    ServiceError,
)
from field_service.services.clock import now_iso
from tests.helpers import (
    WORKER_ID,
    add_photos,
    complete_checklist,
    create_task,
    here,
    make_lifecycle,
    make_store,
    submitted_task,
)


@pytest.fixture
def store(tmp_path):
    field_store = make_store(tmp_path)
    yield field_store
    field_store.close()


@pytest.fixture
def lifecycle(store):
    return make_lifecycle(store)


def _insert_task_type(store, *, photo_minimum=2, requires_before=True, checklist=None) -> str:
    store.insert_task_type(
        {
            "type_id": "tt-meter",
            "slug": "meter-replacement",
            "display_name": "Meter replacement",
            "photo_minimum": photo_minimum,
            "requires_before_photos": requires_before,
            "default_checklist": checklist or [],
            "created_at": now_iso(),
        }
    )
    return "tt-meter"


class TestCreateAndRead:
    """Task creation and read models."""

    @pytest.mark.unit
    def test_new_task_is_pending(self, lifecycle) -> None:
        task = create_task(lifecycle, checklist=["Close valve", "Seal meter"])
        assert task["status"] == "pending"
        assert task["elapsed_seconds"] == 0
        assert task["allowed_events"] == ["start"]
        assert [item["text"] for item in task["checklist"]] == ["Close valve", "Seal meter"]
        assert task["photos"] == []

    @pytest.mark.unit
    def test_default_checklist_copied_from_task_type(self, store, lifecycle) -> None:
        type_id = _insert_task_type(store, checklist=["Photo of old meter", "Record reading"])
        task = create_task(lifecycle, task_type_id=type_id)
        assert [item["text"] for item in task["checklist"]] == [
            "Photo of old meter",
            "Record reading",
        ]

    @pytest.mark.unit
    def test_unknown_worker_rejected(self, lifecycle) -> None:
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.create_task(
                title="Replace meter",
                description="",
                assigned_worker_id="w-nobody",
                created_by="m-olga",
                task_type_id=None,
                checklist=None,
                photo_minimum_override=None,
                requires_before_override=None,
            )
        assert exc_info.value.error == "WORKER_NOT_FOUND"

    @pytest.mark.unit
    def test_unknown_task_type_rejected(self, lifecycle) -> None:
        with pytest.raises(ServiceError) as exc_info:
            create_task(lifecycle, task_type_id="tt-missing")
        assert exc_info.value.error == "TASK_TYPE_NOT_FOUND"
        assert exc_info.value.status_code == 404

    @pytest.mark.unit
    def test_missing_task(self, lifecycle) -> None:
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.get_task("t-missing")
        assert exc_info.value.error == "TASK_NOT_FOUND"

    @pytest.mark.unit
    def test_list_rejects_unknown_status(self, lifecycle) -> None:
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.list_tasks("archived", None, None, None)
        assert exc_info.value.error == "INVALID_PAYLOAD"

    @pytest.mark.unit
    async def test_list_filters_by_status(self, lifecycle) -> None:
        started = create_task(lifecycle)
        create_task(lifecycle)
        await lifecycle.transition(started["task_id"], "start", location=here())

        summaries = lifecycle.list_tasks("in_progress", WORKER_ID, None, None)
        assert [summary["task_id"] for summary in summaries] == [started["task_id"]]
        assert len(lifecycle.list_tasks(None, WORKER_ID, None, None)) == 2

    @pytest.mark.unit
    def test_stats_cover_every_status(self, lifecycle) -> None:
        create_task(lifecycle)
        stats = lifecycle.get_stats()
        assert stats["total_tasks"] == 1
        assert stats["tasks_by_status"] == {
            "pending": 1,
            "in_progress": 0,
            "paused": 0,
            "awaiting_photos": 0,
            "awaiting_approval": 0,
            "completed": 0,
            "returned": 0,
        }


class TestTransitions:
    """Worker-driven transitions and guard failures."""

    @pytest.mark.unit
    async def test_start_records_location(self, lifecycle) -> None:
        task = create_task(lifecycle)
        started = await lifecycle.transition(task["task_id"], "start", location=here())
        assert started["status"] == "in_progress"
        assert started["started_at"] is not None
        assert started["start_location"] == "53.900000, 27.566700"
        assert started["allowed_events"] == ["pause", "submit"]

    @pytest.mark.unit
    async def test_start_without_location_needs_confirmation(self, lifecycle) -> None:
        task = create_task(lifecycle)
        with pytest.raises(LocationUnavailableError) as exc_info:
            await lifecycle.transition(task["task_id"], "start")
        assert exc_info.value.status_code == 428
        assert lifecycle.get_task(task["task_id"])["status"] == "pending"

        started = await lifecycle.transition(
            task["task_id"], "start", proceed_without_location=True
        )
        assert started["status"] == "in_progress"
        assert started["start_location"] is None

    @pytest.mark.unit
    async def test_unknown_event(self, lifecycle) -> None:
        task = create_task(lifecycle)
        with pytest.raises(ServiceError) as exc_info:
            await lifecycle.transition(task["task_id"], "teleport")
        assert exc_info.value.error == "INVALID_PAYLOAD"

    @pytest.mark.unit
    async def test_pair_outside_table_rejected(self, lifecycle) -> None:
        task = create_task(lifecycle)
        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.transition(task["task_id"], "pause")
        assert exc_info.value.details == {
            "task_id": task["task_id"],
            "status": "pending",
            "event": "pause",
        }

    @pytest.mark.unit
    async def test_worker_cannot_fire_approval_events(self, lifecycle) -> None:
        task = await submitted_task(lifecycle)
        assert task["allowed_events"] == []
        with pytest.raises(InvalidTransitionError):
            await lifecycle.transition(task["task_id"], "approve")
        assert lifecycle.get_task(task["task_id"])["status"] == "awaiting_approval"

    @pytest.mark.unit
    async def test_second_start_rejected(self, lifecycle) -> None:
        task = create_task(lifecycle)
        await lifecycle.transition(task["task_id"], "start", location=here())
        with pytest.raises(InvalidTransitionError):
            await lifecycle.transition(task["task_id"], "start", location=here())


class TestPhotoGate:
    """Submission is blocked until evidence is complete."""

    @pytest.mark.unit
    async def test_one_after_photo_with_before_required(self, store, lifecycle) -> None:
        type_id = _insert_task_type(store, photo_minimum=2, requires_before=True)
        task = create_task(lifecycle, task_type_id=type_id)
        await lifecycle.transition(task["task_id"], "start", location=here())
        add_photos(lifecycle, task["task_id"], "after")

        with pytest.raises(PhotoRequirementNotMetError) as exc_info:
            await lifecycle.transition(task["task_id"], "submit", location=here())

        error = exc_info.value
        assert error.status_code == 422
        assert error.details["missing_before_photo"] is True
        assert error.details["missing_photo_count"] == 1
        assert lifecycle.get_task(task["task_id"])["status"] == "in_progress"
        assert store.list_notifications(task["task_id"]) == []

    @pytest.mark.unit
    async def test_incomplete_checklist_blocks_submit(self, lifecycle) -> None:
        task = create_task(lifecycle, checklist=["Seal meter"])
        await lifecycle.transition(task["task_id"], "start", location=here())
        add_photos(lifecycle, task["task_id"], "before", "after")

        with pytest.raises(PhotoRequirementNotMetError) as exc_info:
            await lifecycle.transition(task["task_id"], "submit", location=here())
        assert exc_info.value.details["incomplete_checklist_count"] == 1

        complete_checklist(lifecycle, task["task_id"])
        submitted = await lifecycle.transition(task["task_id"], "submit", location=here())
        assert submitted["status"] == "awaiting_approval"

    @pytest.mark.unit
    async def test_check_gate_reports_without_changing_task(self, lifecycle) -> None:
        task = create_task(lifecycle, photo_minimum_override=1)
        await lifecycle.transition(task["task_id"], "start", location=here())
        result = lifecycle.check_gate(task["task_id"])
        assert result.is_valid is False
        assert result.effective_photo_minimum == 1
        assert lifecycle.get_task(task["task_id"])["status"] == "in_progress"

    @pytest.mark.unit
    async def test_submit_writes_manager_notification(self, store, lifecycle) -> None:
        task = create_task(lifecycle, checklist=["Seal meter", "Record reading"])
        await lifecycle.transition(task["task_id"], "start", location=here())
        add_photos(lifecycle, task["task_id"], "before", "after")
        complete_checklist(lifecycle, task["task_id"])
        submitted = await lifecycle.transition(task["task_id"], "submit", location=here())

        notifications = store.list_notifications(task["task_id"])
        assert len(notifications) == 1
        notification = notifications[0]
        assert notification["kind"] == "manager"
        assert notification["status"] == "pending"
        payload = notification["payload"]
        assert payload["task_title"] == "Replace meter"
        assert payload["worker_name"] == "Ivan Petrov"
        assert payload["completed_at"] == submitted["completed_at"]
        assert sorted(photo["kind"] for photo in payload["photos"]) == ["after", "before"]
        assert payload["checklist_summary"] == {"total": 2, "completed": 2}


class TestElapsedTime:
    """Effective elapsed time through pauses, submission and rework."""

    @pytest.mark.unit
    async def test_pause_and_resume_accounting(self, lifecycle) -> None:
        """Start 09:00, pause 09:30, resume 09:40, submit 10:40."""
        task = create_task(lifecycle)
        task_id = task["task_id"]

        with freeze_time("2025-03-03 09:00:00") as frozen:
            await lifecycle.transition(task_id, "start", location=here())
            frozen.tick(timedelta(minutes=30))
            await lifecycle.transition(task_id, "pause")
            frozen.tick(timedelta(minutes=10))
            await lifecycle.transition(task_id, "resume")
            add_photos(lifecycle, task_id, "before", "after")
            frozen.tick(timedelta(minutes=60))
            submitted = await lifecycle.transition(task_id, "submit", location=here())

        assert submitted["total_pause_duration_seconds"] == 600
        assert submitted["effective_elapsed_seconds"] == 5400
        assert submitted["elapsed_seconds"] == 5400
        assert submitted["completed_at"] == "2025-03-03T10:40:00.000000Z"

    @pytest.mark.unit
    async def test_elapsed_frozen_while_paused(self, lifecycle) -> None:
        task = create_task(lifecycle)
        task_id = task["task_id"]

        with freeze_time("2025-03-03 09:00:00") as frozen:
            await lifecycle.transition(task_id, "start", location=here())
            frozen.tick(timedelta(minutes=20))
            await lifecycle.transition(task_id, "pause")
            frozen.tick(timedelta(minutes=15))
            elapsed = lifecycle.get_elapsed(task_id)

        assert elapsed["status"] == "paused"
        assert elapsed["elapsed_seconds"] == 1200
        assert elapsed["current_pause_seconds"] == 900
        assert elapsed["total_pause_duration_seconds"] == 0
        assert elapsed["as_of"] == "2025-03-03T09:35:00.000000Z"

    @pytest.mark.unit
    async def test_submit_from_paused_flushes_open_pause(self, lifecycle) -> None:
        task = create_task(lifecycle)
        task_id = task["task_id"]

        with freeze_time("2025-03-03 09:00:00") as frozen:
            await lifecycle.transition(task_id, "start", location=here())
            add_photos(lifecycle, task_id, "before", "after")
            frozen.tick(timedelta(minutes=30))
            await lifecycle.transition(task_id, "pause")
            frozen.tick(timedelta(minutes=20))
            submitted = await lifecycle.transition(task_id, "submit", location=here())

        assert submitted["status"] == "awaiting_approval"
        assert submitted["paused_at"] is None
        assert submitted["total_pause_duration_seconds"] == 1200
        assert submitted["effective_elapsed_seconds"] == 1800

    @pytest.mark.unit
    async def test_rework_excludes_time_spent_waiting(self, store, lifecycle) -> None:
        task = create_task(lifecycle)
        task_id = task["task_id"]

        with freeze_time("2025-03-03 09:00:00") as frozen:
            await lifecycle.transition(task_id, "start", location=here())
            add_photos(lifecycle, task_id, "before", "after")
            frozen.tick(timedelta(minutes=60))
            await lifecycle.transition(task_id, "submit", location=here())
            store.commit_transition(
                task_id, {"status": "returned"}, expected_status="awaiting_approval"
            )
            frozen.tick(timedelta(hours=2))
            reworked = await lifecycle.transition(task_id, "rework")
            frozen.tick(timedelta(minutes=15))
            elapsed = lifecycle.get_elapsed(task_id)

        assert reworked["status"] == "in_progress"
        assert reworked["completed_at"] is None
        assert reworked["effective_elapsed_seconds"] is None
        assert reworked["total_pause_duration_seconds"] == 7200
        assert elapsed["elapsed_seconds"] == 3600 + 900

    @pytest.mark.unit
    async def test_stale_resume_does_not_double_count(self, store, lifecycle) -> None:
        task = create_task(lifecycle)
        task_id = task["task_id"]

        with freeze_time("2025-03-03 09:00:00") as frozen:
            await lifecycle.transition(task_id, "start", location=here())
            await lifecycle.transition(task_id, "pause")
            snapshot = store.get_task(task_id)
            frozen.tick(timedelta(minutes=5))
            await lifecycle.transition(task_id, "resume")
            frozen.tick(timedelta(minutes=5))
            await lifecycle.transition(task_id, "pause")
            frozen.tick(timedelta(minutes=5))

            with pytest.raises(InvalidTransitionError) as exc_info:
                lifecycle._resume(snapshot)

        assert exc_info.value.details["status"] == "paused"
        assert store.get_task(task_id)["total_pause_duration_seconds"] == 300

    @pytest.mark.unit
    async def test_pause_during_location_wait_fails_submit(self, store, lifecycle) -> None:
        """A pause and resume that land while submit waits for the device."""

        class PausingDevice:
            def __init__(self, task_id, frozen) -> None:
                self.task_id = task_id
                self.frozen = frozen

            async def get_current_location(self):
                await lifecycle.transition(self.task_id, "pause")
                self.frozen.tick(timedelta(minutes=10))
                await lifecycle.transition(self.task_id, "resume")
                return await here().get_current_location()

        task = create_task(lifecycle)
        task_id = task["task_id"]

        with freeze_time("2025-03-03 09:00:00") as frozen:
            await lifecycle.transition(task_id, "start", location=here())
            add_photos(lifecycle, task_id, "before", "after")
            frozen.tick(timedelta(minutes=60))

            with pytest.raises(InvalidTransitionError) as exc_info:
                await lifecycle.transition(
                    task_id, "submit", location=PausingDevice(task_id, frozen)
                )

            row = store.get_task(task_id)
            assert exc_info.value.details["status"] == "in_progress"
            assert row["status"] == "in_progress"
            assert row["total_pause_duration_seconds"] == 600
            assert row["effective_elapsed_seconds"] is None
            assert store.list_notifications(task_id) == []

            submitted = await lifecycle.transition(task_id, "submit", location=here())

        assert submitted["total_pause_duration_seconds"] == 600
        assert submitted["effective_elapsed_seconds"] == 3600


class TestEvidence:
    """Photos and checklist items."""

    @pytest.mark.unit
    def test_photo_rejected_before_start(self, lifecycle) -> None:
        task = create_task(lifecycle)
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.record_photo(task["task_id"], "before", None)
        assert exc_info.value.error == "INVALID_STATUS"
        assert exc_info.value.status_code == 409

    @pytest.mark.unit
    async def test_photo_rejected_while_awaiting_approval(self, lifecycle) -> None:
        task = await submitted_task(lifecycle)
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.record_photo(task["task_id"], "after", None)
        assert exc_info.value.details["status"] == "awaiting_approval"

    @pytest.mark.unit
    async def test_checklist_toggle(self, lifecycle) -> None:
        task = create_task(lifecycle, checklist=["Seal meter"])
        await lifecycle.transition(task["task_id"], "start", location=here())
        item_id = task["checklist"][0]["item_id"]

        done = lifecycle.set_checklist_item(task["task_id"], item_id, is_completed=True)
        assert done["is_completed"] is True
        assert done["completed_at"] is not None

        undone = lifecycle.set_checklist_item(task["task_id"], item_id, is_completed=False)
        assert undone["is_completed"] is False
        assert undone["completed_at"] is None

    @pytest.mark.unit
    async def test_unknown_checklist_item(self, lifecycle) -> None:
        task = create_task(lifecycle)
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.set_checklist_item(task["task_id"], "ci-missing", is_completed=True)
        assert exc_info.value.error == "CHECKLIST_ITEM_NOT_FOUND"

    @pytest.mark.unit
    def test_checklist_locked_before_start(self, lifecycle) -> None:
        task = create_task(lifecycle, checklist=["Seal meter"])
        with pytest.raises(ServiceError) as exc_info:
            lifecycle.set_checklist_item(
                task["task_id"], task["checklist"][0]["item_id"], is_completed=True
            )
        assert exc_info.value.error == "INVALID_STATUS"
