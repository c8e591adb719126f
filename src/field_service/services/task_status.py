"""Task statuses, lifecycle events, and the transition table."""

from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    """Every status a task can be in."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    AWAITING_PHOTOS = "awaiting_photos"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    RETURNED = "returned"


class TaskEvent(StrEnum):
    """Events that move a task between statuses."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    SUBMIT = "submit"
    APPROVE = "approve"
    RETURN = "return"
    REQUEST_PHOTOS = "request_photos"
    REWORK = "rework"
    ADD_PHOTOS = "add_photos"


# (status, event) -> status. Pairs missing from this table are rejected.
TRANSITIONS: dict[tuple[TaskStatus, TaskEvent], TaskStatus] = {
    (TaskStatus.PENDING, TaskEvent.START): TaskStatus.IN_PROGRESS,
    (TaskStatus.IN_PROGRESS, TaskEvent.PAUSE): TaskStatus.PAUSED,
    (TaskStatus.PAUSED, TaskEvent.RESUME): TaskStatus.IN_PROGRESS,
    (TaskStatus.IN_PROGRESS, TaskEvent.SUBMIT): TaskStatus.AWAITING_APPROVAL,
    (TaskStatus.PAUSED, TaskEvent.SUBMIT): TaskStatus.AWAITING_APPROVAL,
    (TaskStatus.AWAITING_PHOTOS, TaskEvent.SUBMIT): TaskStatus.AWAITING_APPROVAL,
    (TaskStatus.AWAITING_APPROVAL, TaskEvent.APPROVE): TaskStatus.COMPLETED,
    (TaskStatus.AWAITING_APPROVAL, TaskEvent.RETURN): TaskStatus.RETURNED,
    (TaskStatus.AWAITING_APPROVAL, TaskEvent.REQUEST_PHOTOS): TaskStatus.AWAITING_PHOTOS,
    (TaskStatus.RETURNED, TaskEvent.REWORK): TaskStatus.IN_PROGRESS,
    (TaskStatus.RETURNED, TaskEvent.ADD_PHOTOS): TaskStatus.AWAITING_PHOTOS,
}

# Only the approval workflow may fire these.
APPROVAL_EVENTS = frozenset({TaskEvent.APPROVE, TaskEvent.RETURN, TaskEvent.REQUEST_PHOTOS})

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED})

# Statuses in which photos can be added and checklist items toggled.
EVIDENCE_STATUSES = frozenset(
    {
        TaskStatus.IN_PROGRESS,
        TaskStatus.PAUSED,
        TaskStatus.AWAITING_PHOTOS,
        TaskStatus.RETURNED,
    }
)


def next_status(status: TaskStatus, event: TaskEvent) -> TaskStatus | None:
    """Return the status reached by applying event, or None if the pair is not allowed."""
    return TRANSITIONS.get((status, event))


def allowed_events(status: TaskStatus) -> list[TaskEvent]:
    """List the events accepted in the given status, in declaration order."""
    return [event for (source, event) in TRANSITIONS if source is status]
