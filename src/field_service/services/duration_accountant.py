"""
Effective working time arithmetic.

Pure functions over the time fields of a task row:
``started_at``, ``paused_at``, ``total_pause_duration_seconds`` and ``status``.
Nothing here reads the clock or touches storage; callers capture the instant
once and pass it in, so the per-second display path and the persistence path
agree to the second.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from field_service.services.clock import parse_iso
from field_service.services.task_status import TaskStatus

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


def pause_segment_seconds(paused_at: datetime, now: datetime) -> int:
    """Whole seconds between paused_at and now, never negative."""
    return max(0, math.floor((now - paused_at).total_seconds()))


def open_pause_seconds(task: Mapping[str, Any], now: datetime) -> int:
    """Length of the pause currently in progress, 0 when the task is not paused."""
    if task["status"] != TaskStatus.PAUSED or task.get("paused_at") is None:
        return 0
    return pause_segment_seconds(parse_iso(task["paused_at"]), now)


def accumulate_pause(task: Mapping[str, Any], now: datetime) -> int:
    """
    Return the pause total after flushing the open pause segment.

    Does not modify ``task``. For a task that is not paused the stored total is
    returned unchanged.
    """
    total = int(task.get("total_pause_duration_seconds") or 0)
    return total + open_pause_seconds(task, now)


def effective_elapsed_seconds(
    task: Mapping[str, Any],
    at: datetime,
    now: datetime | None = None,
) -> int:
    """
    Working seconds from ``started_at`` to the reference instant ``at``.

    ``max(0, (at - started_at) - total_pause - open_pause(now))`` where the
    open pause term only applies to paused tasks. ``now`` defaults to ``at``.
    A task that never started has zero elapsed time.
    """
    started_at = task.get("started_at")
    if started_at is None:
        return 0
    if now is None:
        now = at

    wall_seconds = (at - parse_iso(started_at)).total_seconds()
    total_pause = int(task.get("total_pause_duration_seconds") or 0)
    elapsed = wall_seconds - total_pause - open_pause_seconds(task, now)
    return max(0, math.floor(elapsed))
