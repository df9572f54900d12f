"""Task graph engine: display ordering, cycle predicates and parent bounds.

Everything here is a pure function of the task list handed to ``TaskGraph``.
Malformed snapshots (dangling references, cycles) never raise; the engine
returns a best-effort answer instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, timedelta
from typing import NamedTuple

from planboard import log
from planboard.dates import parse_date
from planboard.tasks.model import Task


class Bounds(NamedTuple):
    start_date: str | None
    duration: int


class TaskGraph:
    """Read-only view over one project's tasks.

    Usage::

        graph = TaskGraph(snapshot.tasks)
        graph.dependency_order()             # ids, dependencies first
        graph.can_add_dependency(a, b)       # gate before "a depends on b"
        graph.can_reparent(a, new_parent)    # gate before a move
        graph.effective_bounds(parent_id)    # span of the children
    """

    def __init__(self, tasks: Iterable[Task]) -> None:
        self._tasks: list[Task] = []
        self._by_id: dict[str, Task] = {}
        self._children: dict[str | None, list[str]] = {}
        self._order: list[str] | None = None

        for task in tasks:
            if task.id in self._by_id:
                continue  # first occurrence wins
            self._tasks.append(task)
            self._by_id[task.id] = task
            self._children.setdefault(task.parent_id, []).append(task.id)

    # ── lookups ──────────────────────────────────────────────────

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_id

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, task_id: str) -> Task | None:
        return self._by_id.get(task_id)

    def child_ids(self, task_id: str) -> list[str]:
        return list(self._children.get(task_id, []))

    # ── ordering ─────────────────────────────────────────────────

    def dependency_order(self) -> list[str]:
        """Order ids so every dependency precedes its dependents.

        Layered Kahn sort. Each layer is sorted by start date with
        unscheduled tasks first and input order breaking ties. Tasks that can
        never become ready (cycles) are appended in input order.
        """
        if self._order is not None:
            return list(self._order)

        remaining = set(self._by_id)
        order: list[str] = []
        while remaining:
            ready = [
                t for t in self._tasks
                if t.id in remaining
                and all(dep not in remaining for dep in t.dependency_ids)
            ]
            if not ready:
                stuck = [t.id for t in self._tasks if t.id in remaining]
                log.debug(f"Dependency cycle among {len(stuck)} task(s); appending in input order")
                order.extend(stuck)
                break
            ready.sort(key=lambda t: t.start_date or "")
            for t in ready:
                order.append(t.id)
                remaining.discard(t.id)

        self._order = order
        return list(order)

    def children(self, parent_id: str | None) -> list[Task]:
        """Direct children of *parent_id* (roots for ``None``) in dependency order."""
        index = {tid: i for i, tid in enumerate(self.dependency_order())}
        kids = [self._by_id[cid] for cid in self._children.get(parent_id, [])]
        return sorted(kids, key=lambda t: index.get(t.id, len(index)))

    def roots(self) -> list[Task]:
        """Top-level rows: no parent, or a parent missing from the snapshot."""
        index = {tid: i for i, tid in enumerate(self.dependency_order())}
        tops = [
            t for t in self._tasks
            if t.parent_id is None or t.parent_id not in self._by_id
        ]
        return sorted(tops, key=lambda t: index[t.id])

    # ── predicates ───────────────────────────────────────────────

    def is_descendant(self, ancestor_id: str, node_id: str) -> bool:
        """True if *node_id* sits below *ancestor_id* in the parent forest."""
        seen: set[str] = {ancestor_id}
        stack = list(self._children.get(ancestor_id, []))
        while stack:
            cid = stack.pop()
            if cid == node_id:
                return True
            if cid in seen:
                continue
            seen.add(cid)
            stack.extend(self._children.get(cid, []))
        return False

    def depends_on_transitive(self, task_id: str, target_id: str) -> bool:
        """True if *task_id* reaches *target_id* by one or more dependency hops."""
        task = self._by_id.get(task_id)
        if task is None:
            return False
        seen: set[str] = set()
        stack = list(task.dependency_ids)
        while stack:
            dep = stack.pop()
            if dep == target_id:
                return True
            if dep in seen:
                continue
            seen.add(dep)
            dep_task = self._by_id.get(dep)
            if dep_task is not None:
                stack.extend(dep_task.dependency_ids)
        return False

    def can_add_dependency(self, task_id: str, target_id: str) -> bool:
        """Whether "*task_id* depends on *target_id*" is new and keeps the graph acyclic."""
        if task_id == target_id:
            return False
        task = self._by_id.get(task_id)
        if task is not None and target_id in task.dependency_ids:
            return False
        return not self.depends_on_transitive(target_id, task_id)

    def can_reparent(self, task_id: str, new_parent_id: str | None) -> bool:
        if new_parent_id is None:
            return True
        if task_id == new_parent_id:
            return False
        return not self.is_descendant(task_id, new_parent_id)

    def descendant_ids(self, task_id: str) -> list[str]:
        """All tasks below *task_id*, parents before their children."""
        out: list[str] = []
        seen: set[str] = {task_id}
        queue = list(self._children.get(task_id, []))
        while queue:
            cid = queue.pop(0)
            if cid in seen:
                continue
            seen.add(cid)
            out.append(cid)
            queue.extend(self._children.get(cid, []))
        return out

    # ── bounds ───────────────────────────────────────────────────

    def effective_bounds(self, task_id: str) -> Bounds:
        """Display span of a task; parents stretch over their descendants."""
        return self._bounds(task_id, set())

    def _bounds(self, task_id: str, visiting: set[str]) -> Bounds:
        task = self._by_id.get(task_id)
        if task is None:
            return Bounds(None, 0)
        children = self._children.get(task_id, [])
        if not children:
            return Bounds(task.start_date, task.duration)

        visiting.add(task_id)
        min_start: date | None = None
        max_end: date | None = None
        for cid in children:
            if cid in visiting:
                continue
            child = self._bounds(cid, visiting)
            start = parse_date(child.start_date)
            if start is None:
                continue
            end = start + timedelta(days=child.duration)
            if min_start is None or start < min_start:
                min_start = start
            if max_end is None or end > max_end:
                max_end = end
        visiting.discard(task_id)

        if min_start is None or max_end is None:
            return Bounds(task.start_date, task.duration)
        return Bounds(min_start.isoformat(), max(1, (max_end - min_start).days))

    # ── dependency graph view ────────────────────────────────────

    def _deps_in_set(self, task_id: str) -> list[str]:
        return [d for d in self._by_id[task_id].dependency_ids if d in self._by_id]

    def edges(self) -> list[tuple[str, str]]:
        """``(from_id, to_id)`` pairs where *to_id* depends on *from_id*."""
        return [(dep, t.id) for t in self._tasks for dep in self._deps_in_set(t.id)]

    def dependency_levels(self) -> dict[str, int]:
        """Level 0 = no dependencies; otherwise one more than the deepest dependency.

        A back edge found while walking a cycle counts as level 0, so cyclic
        input still gets a level for every task.
        """
        levels: dict[str, int] = {}
        for root in self._by_id:
            if root in levels:
                continue
            best: dict[str, int] = {root: 0}
            on_path: set[str] = {root}
            stack: list[tuple[str, Iterator[str]]] = [(root, iter(self._deps_in_set(root)))]
            while stack:
                node, deps = stack[-1]
                dep = next(deps, None)
                if dep is None:
                    stack.pop()
                    on_path.discard(node)
                    levels[node] = best.pop(node)
                    if stack:
                        parent = stack[-1][0]
                        best[parent] = max(best[parent], levels[node] + 1)
                elif dep in levels:
                    best[node] = max(best[node], levels[dep] + 1)
                elif dep in on_path:
                    best[node] = max(best[node], 1)
                else:
                    best[dep] = 0
                    on_path.add(dep)
                    stack.append((dep, iter(self._deps_in_set(dep))))
        return levels

    def prerequisite_ids(self, task_id: str) -> set[str]:
        """Every task *task_id* transitively depends on."""
        out: set[str] = set()
        task = self._by_id.get(task_id)
        stack = list(task.dependency_ids) if task else []
        while stack:
            dep = stack.pop()
            if dep in out:
                continue
            out.add(dep)
            dep_task = self._by_id.get(dep)
            if dep_task is not None:
                stack.extend(dep_task.dependency_ids)
        return out

    def dependent_ids(self, task_id: str) -> set[str]:
        """Every task that transitively depends on *task_id*."""
        dependents: dict[str, list[str]] = {}
        for t in self._tasks:
            for dep in t.dependency_ids:
                dependents.setdefault(dep, []).append(t.id)
        out: set[str] = set()
        stack = list(dependents.get(task_id, []))
        while stack:
            tid = stack.pop()
            if tid in out:
                continue
            out.add(tid)
            stack.extend(dependents.get(tid, []))
        return out
