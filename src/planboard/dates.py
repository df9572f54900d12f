"""Calendar helpers and task/project status at an explicit reference date.

Nothing here reads the clock: every status function takes ``today`` so the
same snapshot always classifies the same way.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from enum import Enum

from planboard.tasks.model import ProjectStats, Task

DAYS_PER_UNIT: dict[str, int] = {
    "day": 1,
    "week": 7,
    "month": 30,
}

MIN_SPAN_DAYS = 30


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    ACTIVE = "active"  # parent with some progress, or a running leaf in tree views
    DONE = "done"


class ProjectStatus(str, Enum):
    NEW = "new"
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"


STATUS_LABELS: dict[str, str] = {
    TaskStatus.NOT_STARTED: "Planned",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.ACTIVE: "Active",
    TaskStatus.DONE: "Done",
    ProjectStatus.NEW: "New",
    ProjectStatus.PLANNING: "Planning",
    ProjectStatus.ACTIVE: "Active",
    ProjectStatus.COMPLETED: "Completed",
}


# ── parsing / arithmetic ─────────────────────────────────────────


def parse_date(value: str | date | None) -> date | None:
    """Return a ``date`` for an ISO string, or ``None`` when absent or malformed."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def end_date(start: str | date, duration: int) -> str | None:
    """Exclusive end date (``start + duration`` days) as an ISO string."""
    parsed = parse_date(start)
    if parsed is None:
        return None
    return (parsed + timedelta(days=duration)).isoformat()


def duration_to_days(amount: float, unit: str = "day") -> int:
    """Convert an amount of days/weeks/months to whole days, at least one."""
    try:
        per_unit = DAYS_PER_UNIT[unit]
    except KeyError:
        raise ValueError(f"Unknown duration unit: {unit}") from None
    return max(1, round(amount * per_unit))


# ── status ───────────────────────────────────────────────────────


def task_status(task: Task, today: date) -> TaskStatus:
    start = parse_date(task.start_date)
    if start is None:
        return TaskStatus.NOT_STARTED
    if start + timedelta(days=task.duration) <= today:
        return TaskStatus.DONE
    if start <= today:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.NOT_STARTED


def parent_status(task: Task, tasks: Iterable[Task], today: date) -> TaskStatus:
    """Status of a row in a tree view: parents summarize their direct children."""
    children = [t for t in tasks if t.parent_id == task.id and t.id != task.id]
    if not children:
        status = task_status(task, today)
        return TaskStatus.ACTIVE if status == TaskStatus.IN_PROGRESS else status
    statuses = [task_status(c, today) for c in children]
    if all(s == TaskStatus.DONE for s in statuses):
        return TaskStatus.DONE
    if any(s in (TaskStatus.DONE, TaskStatus.IN_PROGRESS) for s in statuses):
        return TaskStatus.ACTIVE
    return TaskStatus.NOT_STARTED


def status_updates(task: Task, status: TaskStatus | str, today: date) -> dict[str, str | None]:
    """Field updates that give *task* the requested status at *today*."""
    status = TaskStatus(status)
    if status == TaskStatus.NOT_STARTED:
        return {"start_date": None}
    if status == TaskStatus.DONE:
        # Ends exactly today, so it reads as done from today on.
        return {"start_date": (today - timedelta(days=task.duration)).isoformat()}
    if status == TaskStatus.IN_PROGRESS:
        start = parse_date(task.start_date)
        if start is not None and start <= today < start + timedelta(days=task.duration):
            return {"start_date": start.isoformat()}
        return {"start_date": today.isoformat()}
    raise ValueError(f"Cannot set status {status.value!r} directly")


# ── project level ────────────────────────────────────────────────


def summarize(project_id: str, tasks: Iterable[Task], today: date) -> ProjectStats:
    stats = ProjectStats(project_id=project_id)
    latest: date | None = None
    for task in tasks:
        stats.total_tasks += 1
        status = task_status(task, today)
        if status == TaskStatus.DONE:
            stats.done += 1
        elif status == TaskStatus.IN_PROGRESS:
            stats.in_progress += 1
        start = parse_date(task.start_date)
        if start is not None:
            end = start + timedelta(days=task.duration)
            if latest is None or end > latest:
                latest = end
    stats.latest_due = latest.isoformat() if latest else None
    return stats


def project_status(stats: ProjectStats | None) -> ProjectStatus:
    if stats is None or stats.total_tasks == 0:
        return ProjectStatus.NEW
    if stats.done == stats.total_tasks:
        return ProjectStatus.COMPLETED
    if stats.in_progress > 0 or stats.done > 0:
        return ProjectStatus.ACTIVE
    return ProjectStatus.PLANNING


def project_bounds(
    bounds: Iterable[tuple[str | None, int]],
    today: date,
) -> tuple[date, date]:
    """Visible date range for timeline views.

    Covers every scheduled ``(start, duration)`` pair and *today*, and is
    never narrower than ``MIN_SPAN_DAYS``.
    """
    lo: date | None = None
    hi: date | None = None
    for start_raw, duration in bounds:
        start = parse_date(start_raw)
        if start is None:
            continue
        end = start + timedelta(days=duration)
        lo = start if lo is None or start < lo else lo
        hi = end if hi is None or end > hi else hi

    if lo is None or hi is None:
        return today, today + timedelta(days=MIN_SPAN_DAYS)

    lo = min(lo, today)
    hi = max(hi, today)
    if (hi - lo).days < MIN_SPAN_DAYS:
        hi = lo + timedelta(days=MIN_SPAN_DAYS)
    return lo, hi
