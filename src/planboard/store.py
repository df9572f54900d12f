"""SQLite persistence for projects and tasks.

Every mutation runs in a single transaction. With ``enforce_acyclic`` on, the
store re-checks the same graph predicates the CLI uses before committing, so
a stale client cannot persist a dependency cycle or an ancestry loop.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from planboard import log
from planboard.dates import parse_date, summarize
from planboard.errors import CycleError, NotFoundError, ValidationError
from planboard.graph import TaskGraph
from planboard.tasks.model import Project, ProjectSnapshot, ProjectStats, Task
from planboard.tasks.validate import validate

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id              TEXT PRIMARY KEY,
    project_id      TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    title           TEXT NOT NULL,
    start_date      TEXT,
    duration        INTEGER NOT NULL CHECK (duration >= 1),
    parent_id       TEXT REFERENCES tasks(id) ON DELETE CASCADE,
    dependency_ids  TEXT NOT NULL DEFAULT '[]',
    details         TEXT NOT NULL DEFAULT '',
    tags            TEXT NOT NULL DEFAULT '[]',
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_project_id ON tasks(project_id);
CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks(parent_id);
"""

_TASK_COLUMNS = (
    "id, project_id, title, start_date, duration, parent_id, "
    "dependency_ids, details, tags, created_at"
)

UPDATABLE_FIELDS = frozenset(
    {"title", "start_date", "duration", "parent_id", "dependency_ids", "details", "tags"}
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        start_date=row["start_date"],
        duration=row["duration"],
        parent_id=row["parent_id"],
        dependency_ids=json.loads(row["dependency_ids"] or "[]"),
        details=row["details"] or "",
        tags=json.loads(row["tags"] or "[]"),
        project_id=row["project_id"],
        created_at=row["created_at"],
    )


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(id=row["id"], name=row["name"], created_at=row["created_at"])


# ── field checks ─────────────────────────────────────────────────


def _clean_title(title: str) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("title is required")
    return cleaned


def _clean_duration(duration: int) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
        raise ValidationError(f"duration must be a whole number of days >= 1 (got {duration!r})")
    return duration


def _clean_start(start_date: str | date | None) -> str | None:
    if start_date is None or start_date == "":
        return None
    parsed = parse_date(start_date)
    if parsed is None:
        raise ValidationError(f"invalid start date: {start_date!r}")
    return parsed.isoformat()


def _clean_tags(tags: list[str] | None) -> list[str]:
    out: list[str] = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in out:
            out.append(tag)
    return out


def _dedupe(ids: list[str]) -> list[str]:
    out: list[str] = []
    for i in ids:
        if i not in out:
            out.append(i)
    return out


class Store:
    """Projects and tasks in one SQLite file."""

    def __init__(self, path: Path | str, *, enforce_acyclic: bool = True) -> None:
        self.path = Path(path)
        self.enforce_acyclic = enforce_acyclic
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._conn.executescript(SCHEMA)
        log.debug(f"SQLite open {self.path}")

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── projects ─────────────────────────────────────────────────

    def list_projects(self) -> list[Project]:
        rows = self._conn.execute(
            "SELECT id, name, created_at FROM projects ORDER BY created_at, rowid"
        ).fetchall()
        return [_row_to_project(r) for r in rows]

    def get_project(self, project_id: str) -> Project | None:
        row = self._conn.execute(
            "SELECT id, name, created_at FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        return _row_to_project(row) if row else None

    def require_project(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def resolve_project(self, ref: str) -> Project:
        """Find a project by exact id, exact name, or unique id prefix."""
        project = self.get_project(ref)
        if project is not None:
            return project
        if not ref:
            raise NotFoundError("Project", ref)
        # "%" and "_" in a ref are literal characters, not wildcards
        rows = self._conn.execute(
            "SELECT id, name, created_at FROM projects "
            "WHERE name = ? OR substr(id, 1, ?) = ? ORDER BY rowid",
            (ref, len(ref), ref),
        ).fetchall()
        if not rows:
            raise NotFoundError("Project", ref)
        if len(rows) > 1:
            raise ValidationError(f"Project reference {ref!r} is ambiguous ({len(rows)} matches)")
        return _row_to_project(rows[0])

    def create_project(self, name: str) -> Project:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("name is required")
        project = Project(id=str(uuid.uuid4()), name=cleaned, created_at=_now())
        with self._conn:
            self._conn.execute(
                "INSERT INTO projects (id, name, created_at) VALUES (?, ?, ?)",
                (project.id, project.name, project.created_at),
            )
        log.debug(f"Project {project.id}: created ({project.name})")
        return project

    def delete_project(self, project_id: str) -> bool:
        with self._conn:
            cur = self._conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        if cur.rowcount:
            log.debug(f"Project {project_id}: deleted with its tasks")
        return cur.rowcount > 0

    def project_stats(self, today: date) -> list[ProjectStats]:
        return [
            summarize(p.id, self.list_tasks(p.id), today)
            for p in self.list_projects()
        ]

    # ── task reads ───────────────────────────────────────────────

    def list_tasks(self, project_id: str) -> list[Task]:
        rows = self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE project_id = ? ORDER BY rowid",
            (project_id,),
        ).fetchall()
        return [_row_to_task(r) for r in rows]

    def snapshot(self, project_id: str) -> ProjectSnapshot:
        project = self.require_project(project_id)
        return ProjectSnapshot(project=project.name, tasks=self.list_tasks(project_id))

    def get_task(self, task_id: str) -> Task | None:
        row = self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return _row_to_task(row) if row else None

    def require_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    def resolve_task(self, ref: str) -> Task:
        """Find a task by exact id or unique id prefix."""
        task = self.get_task(ref)
        if task is not None:
            return task
        if not ref:
            raise NotFoundError("Task", ref)
        rows = self._conn.execute(
            f"SELECT {_TASK_COLUMNS} FROM tasks WHERE substr(id, 1, ?) = ? ORDER BY rowid",
            (len(ref), ref),
        ).fetchall()
        if not rows:
            raise NotFoundError("Task", ref)
        if len(rows) > 1:
            raise ValidationError(f"Task reference {ref!r} is ambiguous ({len(rows)} matches)")
        return _row_to_task(rows[0])

    # ── task writes ──────────────────────────────────────────────

    def _check_references(
        self,
        project_id: str,
        tasks: list[Task],
        parent_id: str | None,
        dependency_ids: list[str],
    ) -> None:
        in_project = {t.id for t in tasks}
        if parent_id is not None and parent_id not in in_project:
            if self.get_task(parent_id) is None:
                raise NotFoundError("Task", parent_id)
            raise ValidationError(f"parent {parent_id} belongs to another project")
        for dep in dependency_ids:
            if dep not in in_project:
                if self.get_task(dep) is None:
                    raise NotFoundError("Task", dep)
                raise ValidationError(f"dependency {dep} belongs to another project")

    def create_task(
        self,
        project_id: str,
        title: str,
        *,
        start_date: str | date | None = None,
        duration: int = 1,
        parent_id: str | None = None,
        dependency_ids: list[str] | None = None,
        details: str = "",
        tags: list[str] | None = None,
    ) -> Task:
        self.require_project(project_id)
        deps = _dedupe(list(dependency_ids or []))
        self._check_references(project_id, self.list_tasks(project_id), parent_id, deps)

        task = Task(
            id=str(uuid.uuid4()),
            title=_clean_title(title),
            start_date=_clean_start(start_date),
            duration=_clean_duration(duration),
            parent_id=parent_id,
            dependency_ids=deps,
            details=details or "",
            tags=_clean_tags(tags),
            project_id=project_id,
            created_at=_now(),
        )
        with self._conn:
            self._insert(task)
        log.debug(f"Task {task.id}: created in project {project_id}")
        return task

    def _insert(self, task: Task) -> None:
        self._conn.execute(
            f"INSERT INTO tasks ({_TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task.id,
                task.project_id,
                task.title,
                task.start_date,
                task.duration,
                task.parent_id,
                json.dumps(task.dependency_ids),
                task.details,
                json.dumps(task.tags),
                task.created_at,
            ),
        )

    def update_task(self, task_id: str, **changes: Any) -> Task | None:
        """Apply a partial update. Returns ``None`` when the task does not exist.

        Only keys present in *changes* are written; ``start_date=None`` and
        ``parent_id=None`` clear those fields.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        task = self.get_task(task_id)
        if task is None:
            return None
        if not changes:
            return task

        siblings = self.list_tasks(task.project_id)
        fields: dict[str, Any] = {}

        if "title" in changes:
            fields["title"] = _clean_title(changes["title"])
        if "start_date" in changes:
            fields["start_date"] = _clean_start(changes["start_date"])
        if "duration" in changes:
            fields["duration"] = _clean_duration(changes["duration"])
        if "details" in changes:
            fields["details"] = changes["details"] or ""
        if "tags" in changes:
            fields["tags"] = json.dumps(_clean_tags(changes["tags"]))

        if "parent_id" in changes:
            parent_id = changes["parent_id"] or None
            self._check_references(task.project_id, siblings, parent_id, [])
            if self.enforce_acyclic and not TaskGraph(siblings).can_reparent(task_id, parent_id):
                raise CycleError(
                    f"Cannot move {task_id} under {parent_id}: it would become its own ancestor"
                )
            fields["parent_id"] = parent_id

        if "dependency_ids" in changes:
            deps = _dedupe(list(changes["dependency_ids"] or []))
            self._check_references(task.project_id, siblings, None, deps)
            if self.enforce_acyclic:
                self._check_acyclic(siblings, task_id, deps)
            fields["dependency_ids"] = json.dumps(deps)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._conn:
            self._conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*fields.values(), task_id),
            )
        log.debug(f"Task {task_id}: updated {', '.join(fields)}")
        return self.get_task(task_id)

    def _check_acyclic(self, tasks: list[Task], task_id: str, deps: list[str]) -> None:
        if task_id in deps:
            raise CycleError(f"Task {task_id} cannot depend on itself")
        proposed = [
            Task(id=t.id, dependency_ids=deps if t.id == task_id else t.dependency_ids)
            for t in tasks
        ]
        if TaskGraph(proposed).depends_on_transitive(task_id, task_id):
            raise CycleError(f"Dependencies of {task_id} would create a cycle")

    def delete_task(self, task_id: str) -> bool:
        """Delete a task and its descendants; strip them from every dependency list."""
        task = self.get_task(task_id)
        if task is None:
            return False
        tasks = self.list_tasks(task.project_id)
        removed = {task_id, *TaskGraph(tasks).descendant_ids(task_id)}

        with self._conn:
            self._conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            for other in tasks:
                if other.id in removed:
                    continue
                kept = [d for d in other.dependency_ids if d not in removed]
                if kept != other.dependency_ids:
                    self._conn.execute(
                        "UPDATE tasks SET dependency_ids = ? WHERE id = ?",
                        (json.dumps(kept), other.id),
                    )
        log.debug(f"Task {task_id}: deleted ({len(removed) - 1} descendant(s))")
        return True

    def add_dependency(self, task_id: str, depends_on_id: str) -> Task:
        """Record that *task_id* cannot start before *depends_on_id* completes."""
        task = self.require_task(task_id)
        if depends_on_id in task.dependency_ids:
            return task
        if task_id == depends_on_id:
            if self.enforce_acyclic:
                raise CycleError(f"Task {task_id} cannot depend on itself")
            return task

        tasks = self.list_tasks(task.project_id)
        self._check_references(task.project_id, tasks, None, [depends_on_id])
        if self.enforce_acyclic and not TaskGraph(tasks).can_add_dependency(task_id, depends_on_id):
            raise CycleError(
                f"{task_id} cannot depend on {depends_on_id}: "
                f"{depends_on_id} already depends on it"
            )

        deps = [*task.dependency_ids, depends_on_id]
        with self._conn:
            self._conn.execute(
                "UPDATE tasks SET dependency_ids = ? WHERE id = ?",
                (json.dumps(deps), task_id),
            )
        log.debug(f"Task {task_id}: now depends on {depends_on_id}")
        return self.require_task(task_id)

    def remove_dependency(self, task_id: str, depends_on_id: str) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            return None
        deps = [d for d in task.dependency_ids if d != depends_on_id]
        if deps != task.dependency_ids:
            with self._conn:
                self._conn.execute(
                    "UPDATE tasks SET dependency_ids = ? WHERE id = ?",
                    (json.dumps(deps), task_id),
                )
            log.debug(f"Task {task_id}: no longer depends on {depends_on_id}")
        return self.get_task(task_id)

    # ── bulk ─────────────────────────────────────────────────────

    def import_snapshot(self, snapshot: ProjectSnapshot, name: str = "") -> Project:
        """Create a new project from *snapshot* under fresh task ids."""
        errors = validate(snapshot)
        if errors:
            raise ValidationError("Snapshot is invalid: " + "; ".join(errors))

        project = Project(
            id=str(uuid.uuid4()),
            name=(name or snapshot.project or "Imported").strip(),
            created_at=_now(),
        )
        id_map = {t.id: str(uuid.uuid4()) for t in snapshot.tasks}
        with self._conn:
            self._conn.execute(
                "INSERT INTO projects (id, name, created_at) VALUES (?, ?, ?)",
                (project.id, project.name, project.created_at),
            )
            # Parents are linked after every row exists, so input order does not matter.
            for t in snapshot.tasks:
                self._insert(Task(
                    id=id_map[t.id],
                    title=t.title.strip(),
                    start_date=_clean_start(t.start_date),
                    duration=t.duration,
                    parent_id=None,
                    dependency_ids=[id_map[d] for d in t.dependency_ids],
                    details=t.details,
                    tags=_clean_tags(t.tags),
                    project_id=project.id,
                    created_at=_now(),
                ))
            for t in snapshot.tasks:
                if t.parent_id is not None:
                    self._conn.execute(
                        "UPDATE tasks SET parent_id = ? WHERE id = ?",
                        (id_map[t.parent_id], id_map[t.id]),
                    )
        log.debug(f"Project {project.id}: imported {len(snapshot.tasks)} task(s)")
        return project
