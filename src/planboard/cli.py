"""planboard CLI: manage projects and tasks, inspect the dependency graph.

Installed as the ``planboard`` console_script.
"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import click
from rich.markup import escape

from planboard import __version__
from planboard import log as glog
from planboard.config import Config
from planboard.dates import (
    DAYS_PER_UNIT,
    STATUS_LABELS,
    TaskStatus,
    duration_to_days,
    end_date,
    parent_status,
    project_bounds,
    project_status,
    status_updates,
    summarize,
)
from planboard.errors import PlanboardError
from planboard.graph import TaskGraph
from planboard.store import Store
from planboard.tasks.model import Task


# ── Custom Click group: short aliases + domain error reporting ───────

class PlanboardGroup(click.Group):
    """Resolve ``ls``/``rm``/``new`` aliases and report PlanboardError cleanly."""

    _ALIASES: dict[str, str] = {
        "ls": "list",
        "rm": "delete",
        "new": "create",
        "mv": "move",
    }

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        return super().get_command(ctx, self._ALIASES.get(cmd_name, cmd_name))

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        _, cmd, rest = super().resolve_command(ctx, args)
        return (cmd.name if cmd else None), cmd, rest

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except PlanboardError as exc:
            glog.error(escape(str(exc)))
            sys.exit(1)


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

UNIT_CHOICE = click.Choice(sorted(DAYS_PER_UNIT), case_sensitive=False)


def _parse_date_option(
    ctx: click.Context, param: click.Parameter, value: str | None
) -> date | None:
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not an ISO date (YYYY-MM-DD).") from None


def _open_store(ctx: click.Context) -> Store:
    cfg: Config = ctx.obj
    return ctx.with_resource(Store(cfg.db_path, enforce_acyclic=cfg.enforce_acyclic))


def _today(ctx: click.Context) -> date:
    cfg: Config = ctx.obj
    assert cfg.today is not None
    return cfg.today


def _short(task_id: str) -> str:
    return task_id[:8]


def _label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def _title(task: Task | None, fallback: str = "") -> str:
    return escape(task.title) if task else escape(fallback)


# ── Root group ───────────────────────────────────────────────────────


@click.group(cls=PlanboardGroup, context_settings=CONTEXT_SETTINGS)
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="SQLite database file (default: $PLANBOARD_DB or ~/.planboard/planboard.db)")
@click.option("--today", callback=_parse_date_option, default=None,
              help="Reference date for status (default: $PLANBOARD_TODAY or the local date)")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="planboard")
@click.pass_context
def main(ctx: click.Context, db_path: Path | None, today: date | None, verbose: bool) -> None:
    """planboard: projects, tasks and their dependency graph.

    \b
    EXAMPLES:
      planboard project create "Website relaunch"
      planboard task add "Website relaunch" "Design" --start 2024-03-01 -d 2 -u week
      planboard dep add <task> <prerequisite>
      planboard task list "Website relaunch"
      planboard bounds "Website relaunch"
    """
    glog.set_verbose(verbose)
    ctx.obj = Config(db_path=db_path, today=today, verbose=verbose)
    glog.debug(f"Database: {ctx.obj.db_path}  reference date: {ctx.obj.today}")


# ── project ──────────────────────────────────────────────────────────


@main.group(cls=PlanboardGroup)
def project() -> None:
    """Create, list and delete projects."""


@project.command("list")
@click.pass_context
def project_list(ctx: click.Context) -> None:
    """List projects with progress at the reference date."""
    store = _open_store(ctx)
    projects = store.list_projects()
    if not projects:
        glog.info("No projects yet. Create one with: planboard project create NAME")
        return
    stats = {s.project_id: s for s in store.project_stats(_today(ctx))}
    rows = []
    for p in projects:
        s = stats[p.id]
        pct = round(100 * s.done / s.total_tasks) if s.total_tasks else 0
        rows.append((
            _short(p.id), escape(p.name), _label(project_status(s)),
            s.total_tasks, s.in_progress, f"{pct}%", s.latest_due,
        ))
    glog.table("Projects", ["ID", "Name", "Status", "Tasks", "Running", "Done", "Due"], rows)


@project.command("create")
@click.argument("name")
@click.pass_context
def project_create(ctx: click.Context, name: str) -> None:
    """Create a project called NAME."""
    p = _open_store(ctx).create_project(name)
    glog.success(f"Created project {escape(p.name)} ({p.id})")


@project.command("show")
@click.argument("ref")
@click.pass_context
def project_show(ctx: click.Context, ref: str) -> None:
    """Summarize a project: progress and visible date range."""
    store = _open_store(ctx)
    p = store.resolve_project(ref)
    tasks = store.list_tasks(p.id)
    today = _today(ctx)
    s = summarize(p.id, tasks, today)
    graph = TaskGraph(tasks)
    lo, hi = project_bounds((graph.effective_bounds(t.id) for t in graph.roots()), today)

    glog.console.print(f"[bold]{escape(p.name)}[/bold] [dim]({p.id})[/dim]")
    glog.console.print(f"Status:   {_label(project_status(s))}")
    glog.console.print(f"Tasks:    {s.total_tasks} ({s.done} done, {s.in_progress} in progress)")
    glog.console.print(f"Due:      {s.latest_due or '-'}")
    glog.console.print(f"Range:    {lo.isoformat()} .. {hi.isoformat()}")


@project.command("delete")
@click.argument("ref")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def project_delete(ctx: click.Context, ref: str, yes: bool) -> None:
    """Delete a project and all of its tasks."""
    store = _open_store(ctx)
    p = store.resolve_project(ref)
    if not yes:
        click.confirm(f"Delete project '{p.name}' and all its tasks?", abort=True)
    store.delete_project(p.id)
    glog.success(f"Deleted project {escape(p.name)}")


# ── task ─────────────────────────────────────────────────────────────


@main.group(cls=PlanboardGroup)
def task() -> None:
    """Add, edit, move and delete tasks."""


def _tree_rows(graph: TaskGraph, tasks: list[Task], today: date) -> list[tuple]:
    rows: list[tuple] = []
    stack: list[tuple[Task, int]] = [(t, 0) for t in reversed(graph.roots())]
    seen: set[str] = set()
    while stack:
        t, depth = stack.pop()
        if t.id in seen:
            continue
        seen.add(t.id)
        b = graph.effective_bounds(t.id)
        rows.append((
            _short(t.id),
            "  " * depth + escape(t.title),
            _label(parent_status(t, tasks, today)),
            b.start_date,
            b.duration,
            ", ".join(_short(d) for d in t.dependency_ids) or None,
        ))
        for child in reversed(graph.children(t.id)):
            stack.append((child, depth + 1))
    return rows


@task.command("list")
@click.argument("project_ref")
@click.option("--flat", is_flag=True, help="Plain dependency order instead of a tree")
@click.pass_context
def task_list(ctx: click.Context, project_ref: str, flat: bool) -> None:
    """Show a project's tasks as a tree, siblings in dependency order."""
    store = _open_store(ctx)
    p = store.resolve_project(project_ref)
    tasks = store.list_tasks(p.id)
    if not tasks:
        glog.info(f"No tasks in {escape(p.name)}")
        return
    graph = TaskGraph(tasks)
    today = _today(ctx)
    if flat:
        rows = []
        for tid in graph.dependency_order():
            t = graph.get(tid)
            assert t is not None
            rows.append((
                _short(t.id), escape(t.title), _label(parent_status(t, tasks, today)),
                t.start_date, t.duration,
                ", ".join(_short(d) for d in t.dependency_ids) or None,
            ))
    else:
        rows = _tree_rows(graph, tasks, today)
    glog.table(escape(p.name), ["ID", "Title", "Status", "Start", "Days", "Depends on"], rows)


@task.command("add")
@click.argument("project_ref")
@click.argument("title")
@click.option("-s", "--start", callback=_parse_date_option, default=None, help="Start date (YYYY-MM-DD)")
@click.option("-d", "--duration", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Duration amount (default 1)")
@click.option("-u", "--unit", type=UNIT_CHOICE, default="day", show_default=True)
@click.option("-p", "--parent", "parent_ref", default=None, help="Parent task id")
@click.option("--depends-on", "dep_refs", multiple=True, help="Prerequisite task id (repeatable)")
@click.option("--details", default="", help="Free-text notes")
@click.option("-t", "--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.pass_context
def task_add(
    ctx: click.Context,
    project_ref: str,
    title: str,
    start: date | None,
    duration: float | None,
    unit: str,
    parent_ref: str | None,
    dep_refs: tuple[str, ...],
    details: str,
    tags: tuple[str, ...],
) -> None:
    """Add a task called TITLE to a project."""
    cfg: Config = ctx.obj
    store = _open_store(ctx)
    p = store.resolve_project(project_ref)
    parent_id = store.resolve_task(parent_ref).id if parent_ref else None
    dep_ids = [store.resolve_task(ref).id for ref in dep_refs]
    days = duration_to_days(duration, unit.lower()) if duration is not None else cfg.default_duration

    t = store.create_task(
        p.id,
        title,
        start_date=start,
        duration=days,
        parent_id=parent_id,
        dependency_ids=dep_ids,
        details=details,
        tags=list(tags),
    )
    glog.success(f"Added {escape(t.title)} ({t.id})")


@task.command("show")
@click.argument("ref")
@click.pass_context
def task_show(ctx: click.Context, ref: str) -> None:
    """Show one task with its effective schedule and links."""
    store = _open_store(ctx)
    t = store.resolve_task(ref)
    tasks = store.list_tasks(t.project_id)
    graph = TaskGraph(tasks)
    b = graph.effective_bounds(t.id)
    today = _today(ctx)

    glog.console.print(f"[bold]{escape(t.title)}[/bold] [dim]({t.id})[/dim]")
    glog.console.print(f"Status:    {_label(parent_status(t, tasks, today))}")
    if b.start_date:
        glog.console.print(f"Schedule:  {b.start_date} .. {end_date(b.start_date, b.duration)} ({b.duration}d)")
    else:
        glog.console.print(f"Schedule:  unscheduled ({b.duration}d)")
    if t.parent_id:
        glog.console.print(f"Parent:    {_title(graph.get(t.parent_id), t.parent_id)}")
    for dep in t.dependency_ids:
        glog.console.print(f"Needs:     {_title(graph.get(dep), dep)}")
    upstream = graph.prerequisite_ids(t.id)
    downstream = graph.dependent_ids(t.id)
    order = [tid for tid in graph.dependency_order() if tid != t.id]
    blocked_by = [_title(graph.get(tid)) for tid in order if tid in upstream]
    blocks = [_title(graph.get(tid)) for tid in order if tid in downstream]
    if blocked_by:
        glog.console.print(f"Blocked by: {', '.join(blocked_by)}")
    if blocks:
        glog.console.print(f"Blocks:    {', '.join(blocks)}")
    for child in graph.children(t.id):
        glog.console.print(f"Child:     {escape(child.title)}")
    if t.tags:
        glog.console.print(f"Tags:      {escape(', '.join(t.tags))}")
    if t.details:
        glog.console.print(escape(t.details))


@task.command("update")
@click.argument("ref")
@click.option("--title", default=None)
@click.option("-s", "--start", callback=_parse_date_option, default=None, help="Start date (YYYY-MM-DD)")
@click.option("--unschedule", is_flag=True, help="Clear the start date")
@click.option("-d", "--duration", type=click.FloatRange(min=0, min_open=True), default=None)
@click.option("-u", "--unit", type=UNIT_CHOICE, default="day", show_default=True)
@click.option("--details", default=None)
@click.option("-t", "--tag", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--clear-tags", is_flag=True)
@click.pass_context
def task_update(
    ctx: click.Context,
    ref: str,
    title: str | None,
    start: date | None,
    unschedule: bool,
    duration: float | None,
    unit: str,
    details: str | None,
    tags: tuple[str, ...],
    clear_tags: bool,
) -> None:
    """Change any subset of a task's fields."""
    if start is not None and unschedule:
        raise click.UsageError("--start and --unschedule are mutually exclusive.")
    store = _open_store(ctx)
    t = store.resolve_task(ref)

    changes: dict[str, object] = {}
    if title is not None:
        changes["title"] = title
    if start is not None:
        changes["start_date"] = start
    if unschedule:
        changes["start_date"] = None
    if duration is not None:
        changes["duration"] = duration_to_days(duration, unit.lower())
    if details is not None:
        changes["details"] = details
    if tags or clear_tags:
        changes["tags"] = list(tags)

    if not changes:
        glog.warn("Nothing to update.")
        return
    updated = store.update_task(t.id, **changes)
    assert updated is not None
    glog.success(f"Updated {escape(updated.title)}: {', '.join(changes)}")


@task.command("move")
@click.argument("ref")
@click.option("-p", "--parent", "parent_ref", default=None, help="New parent task id")
@click.option("--root", "to_root", is_flag=True, help="Make the task top-level")
@click.pass_context
def task_move(ctx: click.Context, ref: str, parent_ref: str | None, to_root: bool) -> None:
    """Move a task under another parent (or to the top level)."""
    if bool(parent_ref) == to_root:
        raise click.UsageError("Give exactly one of --parent or --root.")
    store = _open_store(ctx)
    t = store.resolve_task(ref)
    parent = store.resolve_task(parent_ref) if parent_ref else None
    new_parent_id = parent.id if parent else None

    graph = TaskGraph(store.list_tasks(t.project_id))
    if not graph.can_reparent(t.id, new_parent_id):
        glog.error(f"Cannot move {escape(t.title)} under one of its own descendants")
        sys.exit(1)

    store.update_task(t.id, parent_id=new_parent_id)
    where = escape(parent.title) if parent else "top level"
    glog.success(f"Moved {escape(t.title)} to {where}")


@task.command("status")
@click.argument("ref")
@click.argument(
    "status",
    type=click.Choice([TaskStatus.NOT_STARTED.value, TaskStatus.IN_PROGRESS.value, TaskStatus.DONE.value]),
)
@click.pass_context
def task_status_cmd(ctx: click.Context, ref: str, status: str) -> None:
    """Reschedule a task so it reads as STATUS at the reference date."""
    store = _open_store(ctx)
    t = store.resolve_task(ref)
    changes = status_updates(t, status, _today(ctx))
    store.update_task(t.id, **changes)
    glog.success(f"{escape(t.title)} is now {_label(status)}")


@task.command("delete")
@click.argument("ref")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def task_delete(ctx: click.Context, ref: str, yes: bool) -> None:
    """Delete a task together with all of its sub-tasks."""
    store = _open_store(ctx)
    t = store.resolve_task(ref)
    below = TaskGraph(store.list_tasks(t.project_id)).descendant_ids(t.id)
    if not yes:
        suffix = f" and {len(below)} sub-task(s)" if below else ""
        click.confirm(f"Delete '{t.title}'{suffix}?", abort=True)
    store.delete_task(t.id)
    glog.success(f"Deleted {escape(t.title)}" + (f" and {len(below)} sub-task(s)" if below else ""))


# ── dep ──────────────────────────────────────────────────────────────


@main.group(cls=PlanboardGroup)
def dep() -> None:
    """Link and unlink task dependencies."""


@dep.command("add")
@click.argument("task_ref")
@click.argument("prerequisite_ref")
@click.pass_context
def dep_add(ctx: click.Context, task_ref: str, prerequisite_ref: str) -> None:
    """Make TASK wait for PREREQUISITE to complete."""
    store = _open_store(ctx)
    t = store.resolve_task(task_ref)
    pre = store.resolve_task(prerequisite_ref)
    graph = TaskGraph(store.list_tasks(t.project_id))
    if not graph.can_add_dependency(t.id, pre.id):
        glog.error(
            f"{escape(t.title)} cannot depend on {escape(pre.title)}: "
            "would create a cycle or already exists"
        )
        sys.exit(1)
    store.add_dependency(t.id, pre.id)
    glog.success(f"{escape(t.title)} now depends on {escape(pre.title)}")


@dep.command("remove")
@click.argument("task_ref")
@click.argument("prerequisite_ref")
@click.pass_context
def dep_remove(ctx: click.Context, task_ref: str, prerequisite_ref: str) -> None:
    """Drop the dependency of TASK on PREREQUISITE."""
    store = _open_store(ctx)
    t = store.resolve_task(task_ref)
    pre = store.resolve_task(prerequisite_ref)
    if pre.id not in t.dependency_ids:
        glog.warn(f"{escape(t.title)} does not depend on {escape(pre.title)}")
        return
    store.remove_dependency(t.id, pre.id)
    glog.success(f"{escape(t.title)} no longer depends on {escape(pre.title)}")


# ── graph views ──────────────────────────────────────────────────────


@main.command()
@click.argument("project_ref")
@click.pass_context
def order(ctx: click.Context, project_ref: str) -> None:
    """Print tasks in dependency order."""
    store = _open_store(ctx)
    p = store.resolve_project(project_ref)
    graph = TaskGraph(store.list_tasks(p.id))
    for i, tid in enumerate(graph.dependency_order(), start=1):
        t = graph.get(tid)
        glog.console.print(f"{i:>3}. {_title(t)} [dim]{_short(tid)}[/dim]")


@main.command()
@click.argument("project_ref")
@click.pass_context
def bounds(ctx: click.Context, project_ref: str) -> None:
    """Print effective start/end of every task; parents span their children."""
    store = _open_store(ctx)
    p = store.resolve_project(project_ref)
    graph = TaskGraph(store.list_tasks(p.id))
    rows = []
    for tid in graph.dependency_order():
        t = graph.get(tid)
        assert t is not None
        b = graph.effective_bounds(tid)
        rows.append((
            _short(tid),
            escape(t.title),
            b.start_date,
            end_date(b.start_date, b.duration) if b.start_date else None,
            b.duration,
            "yes" if graph.child_ids(tid) else None,
        ))
    glog.table(escape(p.name), ["ID", "Title", "Start", "End", "Days", "Parent"], rows)
    lo, hi = project_bounds((graph.effective_bounds(t.id) for t in graph.roots()), _today(ctx))
    glog.info(f"Visible range: {lo.isoformat()} .. {hi.isoformat()}")


@main.command()
@click.argument("project_ref")
@click.pass_context
def levels(ctx: click.Context, project_ref: str) -> None:
    """Group tasks by dependency depth (level 0 has no prerequisites)."""
    store = _open_store(ctx)
    p = store.resolve_project(project_ref)
    graph = TaskGraph(store.list_tasks(p.id))
    by_level: dict[int, list[str]] = {}
    for tid, lvl in graph.dependency_levels().items():
        by_level.setdefault(lvl, []).append(tid)
    for lvl in sorted(by_level):
        titles = ", ".join(_title(graph.get(tid)) for tid in by_level[lvl])
        glog.console.print(f"[bold]Level {lvl}[/bold]: {titles}")
    glog.info(f"{len(graph.edges())} dependency link(s)")


# ── snapshots ────────────────────────────────────────────────────────


@main.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
def validate(path: Path) -> None:
    """Check a snapshot file for dangling references and cycles."""
    from planboard.tasks.io import load_snapshot
    from planboard.tasks.validate import validate_and_report

    if not validate_and_report(load_snapshot(path)):
        sys.exit(1)


@main.command("export")
@click.argument("project_ref")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export_cmd(ctx: click.Context, project_ref: str, path: Path) -> None:
    """Write a project's tasks to a JSON snapshot."""
    from planboard.tasks.io import save_snapshot

    store = _open_store(ctx)
    p = store.resolve_project(project_ref)
    snapshot = store.snapshot(p.id)
    save_snapshot(snapshot, path)
    glog.success(f"Exported {len(snapshot.tasks)} task(s) to {path}")


@main.command("import")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--name", default="", help="Project name (default: the snapshot's)")
@click.pass_context
def import_cmd(ctx: click.Context, path: Path, name: str) -> None:
    """Create a new project from a JSON snapshot."""
    from planboard.tasks.io import load_snapshot

    snapshot = load_snapshot(path)
    p = _open_store(ctx).import_snapshot(snapshot, name=name)
    glog.success(f"Imported {len(snapshot.tasks)} task(s) into {escape(p.name)} ({p.id})")
