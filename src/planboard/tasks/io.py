"""Read and write project snapshots as JSON files."""

from __future__ import annotations

import json
from pathlib import Path

from planboard.errors import SnapshotError
from planboard.io_utils import read_json, write_json
from planboard.tasks.model import ProjectSnapshot, Task


def snapshot_from_dict(data: object) -> ProjectSnapshot:
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot must be a JSON object")
    raw_tasks = data.get("tasks", [])
    if not isinstance(raw_tasks, list):
        raise SnapshotError("'tasks' must be a list")

    tasks: list[Task] = []
    for i, raw in enumerate(raw_tasks, start=1):
        if not isinstance(raw, dict):
            raise SnapshotError(f"Task #{i} must be an object")
        try:
            tasks.append(Task.from_dict(raw))
        except (TypeError, ValueError) as exc:
            raise SnapshotError(f"Task #{i}: {exc}") from exc

    try:
        version = int(data.get("version", 1))
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"Invalid version: {data.get('version')!r}") from exc

    return ProjectSnapshot(
        project=str(data.get("project") or ""),
        tasks=tasks,
        version=version,
    )


def snapshot_to_dict(snapshot: ProjectSnapshot) -> dict:
    return {
        "version": snapshot.version,
        "project": snapshot.project,
        "tasks": [t.to_dict() for t in snapshot.tasks],
    }


def load_snapshot(path: Path) -> ProjectSnapshot:
    if not path.is_file():
        raise SnapshotError(f"Snapshot file not found: {path}")
    try:
        data = read_json(path)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    return snapshot_from_dict(data)


def save_snapshot(snapshot: ProjectSnapshot, path: Path) -> None:
    write_json(path, snapshot_to_dict(snapshot))
