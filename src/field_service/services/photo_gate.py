"""Evidence completeness check run before a task may be submitted or approved."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

DEFAULT_PHOTO_MINIMUM = 2


@dataclass(frozen=True)
class GateResult:
    """Outcome of a photo/checklist validation."""

    is_valid: bool
    missing_before_photo: bool
    missing_photo_count: int
    incomplete_checklist_count: int
    effective_photo_minimum: int
    requires_before_photo: bool

    def to_details(self) -> dict[str, Any]:
        """Serializable form used in error details and API responses."""
        return asdict(self)


class PhotoChecklistGate:
    """Validates photos and checklist items against a task's requirements."""

    @staticmethod
    def effective_photo_minimum(
        task: Mapping[str, Any],
        task_type: Mapping[str, Any] | None,
    ) -> int:
        """Task override, else task type minimum, else the default of 2."""
        if task.get("photo_minimum_override") is not None:
            return int(task["photo_minimum_override"])
        if task_type is not None and task_type.get("photo_minimum") is not None:
            return int(task_type["photo_minimum"])
        return DEFAULT_PHOTO_MINIMUM

    @staticmethod
    def effective_requires_before(
        task: Mapping[str, Any],
        task_type: Mapping[str, Any] | None,
    ) -> bool:
        """Task override, else task type flag, else False."""
        if task.get("requires_before_override") is not None:
            return bool(task["requires_before_override"])
        if task_type is not None and task_type.get("requires_before_photos") is not None:
            return bool(task_type["requires_before_photos"])
        return False

    def validate(
        self,
        task: Mapping[str, Any],
        task_type: Mapping[str, Any] | None,
        photos: Sequence[Mapping[str, Any]],
        checklist: Sequence[Mapping[str, Any]],
    ) -> GateResult:
        """
        Check photo count, the "before" photo requirement and checklist completion.

        Valid iff there are at least the effective minimum of photos, a "before"
        photo exists when one is required, and every checklist item is completed.
        """
        minimum = self.effective_photo_minimum(task, task_type)
        requires_before = self.effective_requires_before(task, task_type)

        missing_photo_count = max(0, minimum - len(photos))
        has_before = any(photo["kind"] == "before" for photo in photos)
        missing_before = requires_before and not has_before
        incomplete = sum(1 for item in checklist if not item["is_completed"])

        return GateResult(
            is_valid=missing_photo_count == 0 and not missing_before and incomplete == 0,
            missing_before_photo=missing_before,
            missing_photo_count=missing_photo_count,
            incomplete_checklist_count=incomplete,
            effective_photo_minimum=minimum,
            requires_before_photo=requires_before,
        )
