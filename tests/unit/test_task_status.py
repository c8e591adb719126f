"""Unit tests for the task transition table."""

from __future__ import annotations

import pytest

from field_service.services.task_status import (
    APPROVAL_EVENTS,
    TRANSITIONS,
    TaskEvent,
    TaskStatus,
    allowed_events,
    next_status,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("status", "event", "expected"),
    [
        (TaskStatus.PENDING, TaskEvent.START, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskEvent.PAUSE, TaskStatus.PAUSED),
        (TaskStatus.PAUSED, TaskEvent.RESUME, TaskStatus.IN_PROGRESS),
        (TaskStatus.PAUSED, TaskEvent.SUBMIT, TaskStatus.AWAITING_APPROVAL),
        (TaskStatus.AWAITING_PHOTOS, TaskEvent.SUBMIT, TaskStatus.AWAITING_APPROVAL),
        (TaskStatus.AWAITING_APPROVAL, TaskEvent.APPROVE, TaskStatus.COMPLETED),
        (TaskStatus.AWAITING_APPROVAL, TaskEvent.RETURN, TaskStatus.RETURNED),
        (TaskStatus.AWAITING_APPROVAL, TaskEvent.REQUEST_PHOTOS, TaskStatus.AWAITING_PHOTOS),
        (TaskStatus.RETURNED, TaskEvent.REWORK, TaskStatus.IN_PROGRESS),
        (TaskStatus.RETURNED, TaskEvent.ADD_PHOTOS, TaskStatus.AWAITING_PHOTOS),
    ],
)
def test_allowed_transitions(status, event, expected) -> None:
    assert next_status(status, event) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("status", "event"),
    [
        (TaskStatus.PENDING, TaskEvent.PAUSE),
        (TaskStatus.PENDING, TaskEvent.SUBMIT),
        (TaskStatus.IN_PROGRESS, TaskEvent.START),
        (TaskStatus.IN_PROGRESS, TaskEvent.APPROVE),
        (TaskStatus.PAUSED, TaskEvent.PAUSE),
        (TaskStatus.COMPLETED, TaskEvent.REWORK),
        (TaskStatus.RETURNED, TaskEvent.SUBMIT),
    ],
)
def test_pairs_outside_table_are_rejected(status, event) -> None:
    assert next_status(status, event) is None


@pytest.mark.unit
def test_completed_is_terminal() -> None:
    assert allowed_events(TaskStatus.COMPLETED) == []


@pytest.mark.unit
def test_returned_is_not_terminal() -> None:
    assert allowed_events(TaskStatus.RETURNED) == [TaskEvent.REWORK, TaskEvent.ADD_PHOTOS]


@pytest.mark.unit
def test_completed_only_reachable_through_approval() -> None:
    into_completed = [
        event for (_, event), target in TRANSITIONS.items() if target is TaskStatus.COMPLETED
    ]
    assert into_completed == [TaskEvent.APPROVE]
    assert TaskEvent.APPROVE in APPROVAL_EVENTS
