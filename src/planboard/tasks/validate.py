"""Snapshot validation: field checks, dangling references, cycle detection."""

from __future__ import annotations

from collections.abc import Iterator

from planboard import log
from planboard.dates import parse_date
from planboard.tasks.model import ProjectSnapshot

SUPPORTED_VERSIONS = (1,)


def _find_cycle(nodes: list[str], edges: dict[str, list[str]]) -> list[str]:
    """Return one cycle as ``[a, b, ..., a]``, or ``[]`` when the graph is acyclic.

    Edges to unknown nodes are ignored.
    """
    known = set(nodes)
    done: set[str] = set()
    for root in nodes:
        if root in done:
            continue
        path = [root]
        on_path = {root}
        stack: list[Iterator[str]] = [iter(edges.get(root, []))]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                continue
            if nxt not in known or nxt in done:
                continue
            if nxt in on_path:
                return path[path.index(nxt):] + [nxt]
            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(edges.get(nxt, [])))
    return []


def detect_cycles(snapshot: ProjectSnapshot) -> str:
    """Return a dependency cycle as ``"A -> B -> A"``, or ``""`` if there is none."""
    edges = {t.id: list(t.dependency_ids) for t in snapshot.tasks}
    cycle = _find_cycle(list(edges), edges)
    return " -> ".join(cycle)


def detect_parent_cycles(snapshot: ProjectSnapshot) -> str:
    """Return a parent loop as ``"A -> B -> A"`` (child -> parent), or ``""``."""
    edges = {t.id: [t.parent_id] if t.parent_id else [] for t in snapshot.tasks}
    cycle = _find_cycle(list(edges), edges)
    return " -> ".join(cycle)


def validate(snapshot: ProjectSnapshot) -> list[str]:
    """Return human-readable problems; an empty list means the snapshot is clean."""
    errors: list[str] = []

    if snapshot.version not in SUPPORTED_VERSIONS:
        errors.append(
            f"Unsupported version: {snapshot.version} "
            f"(expected {', '.join(str(v) for v in SUPPORTED_VERSIONS)})"
        )

    if not snapshot.tasks:
        errors.append("No tasks in snapshot")
        return errors

    seen: set[str] = set()
    for i, task in enumerate(snapshot.tasks, start=1):
        if not task.id:
            errors.append(f"Task #{i}: missing id")
            continue
        if task.id in seen:
            errors.append(f"Duplicate id: {task.id}")
        seen.add(task.id)
        if not task.title.strip():
            errors.append(f"Task {task.id}: missing title")
        if task.duration < 1:
            errors.append(f"Task {task.id}: duration must be >= 1 (got {task.duration})")
        if task.start_date is not None and parse_date(task.start_date) is None:
            errors.append(f"Task {task.id}: malformed start date {task.start_date!r}")

    ids = set(snapshot.ids())
    for task in snapshot.tasks:
        if not task.id:
            continue
        for dep in task.dependency_ids:
            if dep == task.id:
                errors.append(f"Task {task.id}: depends on itself")
            elif dep not in ids:
                errors.append(f"Task {task.id}: dependency {dep} not found")
        if task.parent_id is not None and task.parent_id not in ids:
            errors.append(f"Task {task.id}: parent {task.parent_id} not found")

    cycle = detect_cycles(snapshot)
    if cycle:
        errors.append(f"Cycle in dependencies: {cycle}")
    parent_cycle = detect_parent_cycles(snapshot)
    if parent_cycle:
        errors.append(f"Cycle in parents: {parent_cycle}")

    return errors


def validate_and_report(snapshot: ProjectSnapshot) -> bool:
    """Log every validation error. Returns ``True`` when the snapshot is clean."""
    errors = validate(snapshot)
    if not errors:
        log.success(f"Snapshot OK: {len(snapshot.tasks)} task(s)")
        return True
    for err in errors:
        log.error(err)
    log.error(f"{len(errors)} problem(s) found")
    return False
