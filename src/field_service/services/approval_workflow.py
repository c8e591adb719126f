"""Turns an external approver's decision into a task transition."""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from field_service.core.exceptions import (
    PhotoRequirementNotMetError,
    ServiceError,
    StaleApprovalTargetError,
)
from field_service.logging import get_logger
from field_service.services.clock import now_utc, to_iso
from field_service.services.task_status import TaskEvent, TaskStatus, next_status

if TYPE_CHECKING:
    from collections.abc import Collection

    from field_service.services.field_store import FieldStore
    from field_service.services.photo_gate import PhotoChecklistGate


class DecisionAction(StrEnum):
    """Action names accepted from the chat platform."""

    APPROVE = "approve"
    RETURN = "return"
    REQUEST_PHOTOS = "request_photos"


class DecisionOutcome(StrEnum):
    """Recorded outcome of an approval decision."""

    APPROVED = "approved"
    RETURNED = "returned"
    PHOTOS_REQUESTED = "photos_requested"


_OUTCOMES: dict[DecisionAction, tuple[DecisionOutcome, TaskEvent]] = {
    DecisionAction.APPROVE: (DecisionOutcome.APPROVED, TaskEvent.APPROVE),
    DecisionAction.RETURN: (DecisionOutcome.RETURNED, TaskEvent.RETURN),
    DecisionAction.REQUEST_PHOTOS: (DecisionOutcome.PHOTOS_REQUESTED, TaskEvent.REQUEST_PHOTOS),
}


class ApprovalWorkflow:
    """
    Applies approve / return / request-photos decisions.

    The decision row, the task update, the worker's reliability counter and the
    worker notification are committed together, conditional on the task still
    awaiting approval. Whoever commits first wins; everyone else gets
    StaleApprovalTargetError.
    """

    def __init__(
        self,
        store: FieldStore,
        gate: PhotoChecklistGate,
        decider_roles: Collection[str],
    ) -> None:
        self._store = store
        self._gate = gate
        self._decider_roles = frozenset(decider_roles)
        self._logger = get_logger(__name__)

    def _check_decider(self, decider_id: str) -> None:
        decider = self._store.get_worker(decider_id)
        if decider is None or decider["role"] not in self._decider_roles:
            self._logger.warning(
                "Decision from unauthorized decider",
                extra={"decider_id": decider_id, "role": None if decider is None else decider["role"]},
            )
            raise ServiceError(
                "FORBIDDEN",
                "Decider is not allowed to approve tasks",
                403,
                {"decider_id": decider_id},
            )

    def _stale(self, task_id: str, status: str, action: DecisionAction) -> StaleApprovalTargetError:
        self._logger.warning(
            "Decision on task that is no longer awaiting approval",
            extra={"task_id": task_id, "status": status, "action": action.value},
        )
        return StaleApprovalTargetError(task_id, status)

    async def process_task_approval(
        self,
        task_id: str,
        action: str,
        decider_id: str,
        comment: str | None = None,
    ) -> dict[str, Any]:
        """
        Record a decision and move the task accordingly.

        Only ``approve`` re-runs the photo/checklist gate; returning a task or
        asking for more photos is allowed with incomplete evidence.

        Error precedence:
        1. INVALID_PAYLOAD: unknown action, or return without a comment
        2. FORBIDDEN: decider not registered with a deciding role
        3. TASK_NOT_FOUND
        4. STALE_APPROVAL_TARGET: task not awaiting approval
        5. PHOTO_REQUIREMENT_NOT_MET: approving a task with incomplete evidence
        6. STALE_APPROVAL_TARGET: another decision committed first
        """
        try:
            decision_action = DecisionAction(action)
        except ValueError as exc:
            raise ServiceError(
                "INVALID_PAYLOAD", f"Unknown action: {action}", 400, {"action": action}
            ) from exc

        comment = comment.strip() if comment is not None else None
        if comment == "":
            comment = None
        if decision_action is DecisionAction.RETURN and comment is None:
            raise ServiceError(
                "INVALID_PAYLOAD", "A comment is required to return a task", 400, {}
            )

        self._check_decider(decider_id)

        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {"task_id": task_id})

        if task["status"] != TaskStatus.AWAITING_APPROVAL:
            raise self._stale(task_id, task["status"], decision_action)

        outcome, event = _OUTCOMES[decision_action]
        if outcome is DecisionOutcome.APPROVED:
            task_type = None
            if task["task_type_id"] is not None:
                task_type = self._store.get_task_type(task["task_type_id"])
            result = self._gate.validate(
                task,
                task_type,
                self._store.get_photos(task_id),
                self._store.get_checklist(task_id),
            )
            if not result.is_valid:
                raise PhotoRequirementNotMetError(task_id, result.to_details())

        target = next_status(TaskStatus.AWAITING_APPROVAL, event)
        if target is None:
            msg = f"No transition for {event.value} from awaiting_approval"
            raise RuntimeError(msg)

        now_iso = to_iso(now_utc())
        worker_id = task["assigned_worker_id"]
        updates: dict[str, Any] = {"status": target.value, "updated_at": now_iso}
        reliability: dict[str, Any] | None = None
        if outcome is DecisionOutcome.APPROVED:
            updates.update(approved_at=now_iso, approved_by=decider_id, approval_comment=comment)
            reliability = {"worker_id": worker_id, "tasks_completed": 1, "updated_at": now_iso}
        elif outcome is DecisionOutcome.RETURNED:
            updates.update(returned_at=now_iso, revision_comment=comment)
            reliability = {"worker_id": worker_id, "tasks_returned": 1, "updated_at": now_iso}

        decision = {
            "decision_id": f"d-{uuid.uuid4()}",
            "task_id": task_id,
            "outcome": outcome.value,
            "comment": comment,
            "decider_id": decider_id,
            "decided_at": now_iso,
        }
        notification = {
            "notification_id": f"n-{uuid.uuid4()}",
            "kind": "worker",
            "task_id": task_id,
            "payload": {
                "task_id": task_id,
                "worker_id": worker_id,
                "outcome": outcome.value,
                "comment": comment,
            },
            "created_at": now_iso,
        }

        committed = self._store.commit_transition(
            task_id,
            updates,
            expected_status=TaskStatus.AWAITING_APPROVAL.value,
            decision=decision,
            reliability=reliability,
            notification=notification,
        )
        if not committed:
            current = self._store.get_task(task_id)
            raise self._stale(
                task_id, "unknown" if current is None else current["status"], decision_action
            )

        self._logger.info(
            "Approval decision applied",
            extra={
                "task_id": task_id,
                "outcome": outcome.value,
                "decider_id": decider_id,
                "to_status": target.value,
            },
        )

        updated = self._store.get_task(task_id)
        if updated is None:
            msg = f"Task {task_id} not found after update"
            raise RuntimeError(msg)
        return {"task": updated, "decision": decision}

    def list_decisions(self, task_id: str) -> list[dict[str, Any]]:
        """Decisions recorded for a task, oldest first."""
        if self._store.get_task(task_id) is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {"task_id": task_id})
        return self._store.list_decisions(task_id)
