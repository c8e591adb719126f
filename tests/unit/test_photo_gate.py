"""Unit tests for the photo/checklist gate."""

from __future__ import annotations

import pytest

from field_service.services.photo_gate import DEFAULT_PHOTO_MINIMUM, PhotoChecklistGate


def _photos(*kinds: str) -> list[dict[str, str]]:
    return [{"photo_id": f"ph-{index}", "kind": kind} for index, kind in enumerate(kinds)]


def _checklist(*done: bool) -> list[dict[str, object]]:
    return [{"item_id": f"ci-{index}", "is_completed": flag} for index, flag in enumerate(done)]


_NO_OVERRIDES: dict[str, object] = {"photo_minimum_override": None, "requires_before_override": None}


@pytest.mark.unit
def test_default_minimum_is_two() -> None:
    gate = PhotoChecklistGate()
    result = gate.validate(_NO_OVERRIDES, None, _photos("after"), [])
    assert DEFAULT_PHOTO_MINIMUM == 2
    assert result.is_valid is False
    assert result.missing_photo_count == 1
    assert result.missing_before_photo is False


@pytest.mark.unit
def test_scenario_before_photo_required_and_too_few_photos() -> None:
    """photo_minimum=2, requires_before, one after photo."""
    gate = PhotoChecklistGate()
    task_type = {"photo_minimum": 2, "requires_before_photos": True}
    result = gate.validate(_NO_OVERRIDES, task_type, _photos("after"), [])
    assert result.is_valid is False
    assert result.missing_before_photo is True
    assert result.missing_photo_count == 1


@pytest.mark.unit
def test_task_override_beats_task_type() -> None:
    task = {"photo_minimum_override": 0, "requires_before_override": False}
    task_type = {"photo_minimum": 5, "requires_before_photos": True}
    result = PhotoChecklistGate().validate(task, task_type, [], [])
    assert result.is_valid is True
    assert result.effective_photo_minimum == 0
    assert result.requires_before_photo is False


@pytest.mark.unit
def test_task_type_used_when_no_override() -> None:
    task_type = {"photo_minimum": 3, "requires_before_photos": None}
    result = PhotoChecklistGate().validate(_NO_OVERRIDES, task_type, _photos("before", "after"), [])
    assert result.effective_photo_minimum == 3
    assert result.requires_before_photo is False
    assert result.missing_photo_count == 1


@pytest.mark.unit
def test_incomplete_checklist_blocks() -> None:
    result = PhotoChecklistGate().validate(
        _NO_OVERRIDES, None, _photos("before", "after"), _checklist(True, False, False)
    )
    assert result.is_valid is False
    assert result.incomplete_checklist_count == 2
    assert result.missing_photo_count == 0


@pytest.mark.unit
def test_all_requirements_met() -> None:
    task_type = {"photo_minimum": 2, "requires_before_photos": True}
    result = PhotoChecklistGate().validate(
        _NO_OVERRIDES, task_type, _photos("before", "after"), _checklist(True, True)
    )
    assert result.is_valid is True
    assert result.to_details() == {
        "is_valid": True,
        "missing_before_photo": False,
        "missing_photo_count": 0,
        "incomplete_checklist_count": 0,
        "effective_photo_minimum": 2,
        "requires_before_photo": True,
    }
