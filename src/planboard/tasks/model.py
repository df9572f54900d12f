"""Project, Task and ProjectSnapshot data models shared by the engine, store and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _text(value: Any) -> str:
    """Stringify a JSON scalar; ``null`` becomes ``""`` while ``0`` stays ``"0"``."""
    return "" if value is None else str(value)


@dataclass
class Task:
    id: str
    title: str = ""
    start_date: str | None = None  # ISO date; None = not yet scheduled
    duration: int = 1  # days
    parent_id: str | None = None  # None = root
    dependency_ids: list[str] = field(default_factory=list)
    details: str = ""
    tags: list[str] = field(default_factory=list)
    project_id: str = ""
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used by snapshot files."""
        return {
            "id": self.id,
            "title": self.title,
            "startDate": self.start_date,
            "duration": self.duration,
            "parentId": self.parent_id,
            "dependencyIds": list(self.dependency_ids),
            "details": self.details,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], project_id: str = "") -> Task:
        start = data.get("startDate")
        return cls(
            id=_text(data.get("id")),
            title=_text(data.get("title")),
            start_date=str(start) if start else None,
            duration=int(data.get("duration", 1)),
            parent_id=_text(data.get("parentId")) or None,
            dependency_ids=[_text(d) for d in data.get("dependencyIds") or [] if d is not None],
            details=str(data.get("details") or ""),
            tags=[str(t) for t in data.get("tags") or []],
            project_id=project_id,
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass
class Project:
    id: str
    name: str
    created_at: str = ""


@dataclass
class ProjectStats:
    project_id: str
    total_tasks: int = 0
    done: int = 0
    in_progress: int = 0
    latest_due: str | None = None  # exclusive end of the latest scheduled task


@dataclass
class ProjectSnapshot:
    """One project's task list, in the order the store returned it."""

    project: str = ""
    tasks: list[Task] = field(default_factory=list)
    version: int = 1

    def ids(self) -> list[str]:
        return [t.id for t in self.tasks]

    def get_task(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None
