"""CLI tests: every command runs in-process against a temporary database."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from planboard import __version__
from planboard.cli import main
from planboard.store import Store


@pytest.fixture
def cli_runner():
    """Click CliRunner for invoking the CLI in-process."""
    return CliRunner()


@pytest.fixture
def run(cli_runner, db_path):
    """Invoke planboard with a temp database and a fixed reference date."""

    def _run(*args: str):
        return cli_runner.invoke(main, ["--db", str(db_path), "--today", "2024-03-10", *args])

    return _run


def _tasks_by_title(db_path: Path, project: str = "Relaunch") -> dict:
    with Store(db_path) as s:
        p = s.resolve_project(project)
        return {t.title: t for t in s.list_tasks(p.id)}


@pytest.fixture
def seeded(run, db_path):
    """A project with Design -> Build and a Launch parent over Build."""
    assert run("project", "create", "Relaunch").exit_code == 0
    assert run("task", "add", "Relaunch", "Design", "--start", "2024-03-01", "-d", "1", "-u", "week").exit_code == 0
    design = _tasks_by_title(db_path)["Design"]
    assert run("task", "add", "Relaunch", "Launch").exit_code == 0
    launch = _tasks_by_title(db_path)["Launch"]
    r = run("task", "add", "Relaunch", "Build", "--depends-on", design.id[:8], "-p", launch.id, "-d", "3")
    assert r.exit_code == 0, r.output
    return _tasks_by_title(db_path)


# ── Main entry and help ────────────────────────────────────────────────


class TestCliHelpAndVersion:

    def test_help(self, cli_runner):
        r = cli_runner.invoke(main, ["-h"])
        assert r.exit_code == 0
        assert "planboard" in r.output

    def test_version(self, cli_runner):
        r = cli_runner.invoke(main, ["--version"])
        assert r.exit_code == 0
        assert __version__ in r.output

    def test_bad_today(self, cli_runner, db_path):
        r = cli_runner.invoke(main, ["--db", str(db_path), "--today", "tomorrow", "project", "list"])
        assert r.exit_code == 2
        assert "ISO date" in r.output


# ── project ────────────────────────────────────────────────────────────


class TestProjectCommands:

    def test_empty_list(self, run):
        r = run("project", "list")
        assert r.exit_code == 0
        assert "No projects yet" in r.output

    def test_create_and_alias_list(self, run, db_path):
        assert run("project", "new", "Relaunch").exit_code == 0
        r = run("project", "ls")
        assert r.exit_code == 0
        assert "Projects" in r.output
        with Store(db_path) as s:
            assert [p.name for p in s.list_projects()] == ["Relaunch"]

    def test_show(self, run, seeded):
        r = run("project", "show", "Relaunch")
        assert r.exit_code == 0
        assert "Tasks:" in r.output
        assert "Range:" in r.output

    def test_unknown_project(self, run):
        r = run("project", "show", "nope")
        assert r.exit_code == 1
        assert "not found" in r.output

    def test_delete(self, run, seeded, db_path):
        r = run("project", "rm", "Relaunch", "-y")
        assert r.exit_code == 0
        with Store(db_path) as s:
            assert s.list_projects() == []


# ── task ───────────────────────────────────────────────────────────────


class TestTaskCommands:

    def test_add_converts_units_and_links(self, seeded):
        assert seeded["Design"].duration == 7
        assert seeded["Design"].start_date == "2024-03-01"
        assert seeded["Build"].duration == 3
        assert seeded["Build"].dependency_ids == [seeded["Design"].id]
        assert seeded["Build"].parent_id == seeded["Launch"].id

    def test_add_missing_dependency(self, run, seeded):
        r = run("task", "add", "Relaunch", "Ghost", "--depends-on", "zzzzzzzz")
        assert r.exit_code == 1
        assert "not found" in r.output

    def test_list_tree_and_flat(self, run, seeded):
        for args in (("task", "list", "Relaunch"), ("task", "ls", "Relaunch", "--flat")):
            r = run(*args)
            assert r.exit_code == 0, r.output
            assert "Design" in r.output

    def test_show(self, run, seeded):
        r = run("task", "show", seeded["Launch"].id)
        assert r.exit_code == 0
        assert "Child:" in r.output

    def test_show_transitive_links(self, run, seeded):
        r = run("task", "show", seeded["Build"].id)
        assert r.exit_code == 0, r.output
        assert "Blocked by: Design" in r.output
        assert "Blocks:" not in r.output

        r = run("task", "show", seeded["Design"].id)
        assert r.exit_code == 0, r.output
        assert "Blocks:    Build" in r.output
        assert "Blocked by" not in r.output

    def test_update(self, run, seeded, db_path):
        r = run("task", "update", seeded["Design"].id, "--unschedule", "-d", "2", "-u", "day")
        assert r.exit_code == 0, r.output
        design = _tasks_by_title(db_path)["Design"]
        assert design.start_date is None
        assert design.duration == 2

    def test_update_nothing(self, run, seeded):
        r = run("task", "update", seeded["Design"].id)
        assert r.exit_code == 0
        assert "Nothing to update" in r.output

    def test_update_conflicting_flags(self, run, seeded):
        r = run("task", "update", seeded["Design"].id, "--start", "2024-03-01", "--unschedule")
        assert r.exit_code == 2

    def test_move(self, run, seeded, db_path):
        r = run("task", "mv", seeded["Build"].id, "--root")
        assert r.exit_code == 0, r.output
        assert _tasks_by_title(db_path)["Build"].parent_id is None

    def test_move_under_descendant_rejected(self, run, seeded, db_path):
        r = run("task", "move", seeded["Launch"].id, "--parent", seeded["Build"].id)
        assert r.exit_code == 1
        assert "Cannot move" in r.output
        assert _tasks_by_title(db_path)["Launch"].parent_id is None

    def test_move_needs_exactly_one_target(self, run, seeded):
        r = run("task", "move", seeded["Build"].id)
        assert r.exit_code == 2

    def test_status_done(self, run, seeded, db_path):
        r = run("task", "status", seeded["Build"].id, "done")
        assert r.exit_code == 0, r.output
        assert _tasks_by_title(db_path)["Build"].start_date == "2024-03-07"

    def test_delete_subtree(self, run, seeded, db_path):
        r = run("task", "delete", seeded["Launch"].id, "-y")
        assert r.exit_code == 0
        assert "1 sub-task" in r.output
        assert set(_tasks_by_title(db_path)) == {"Design"}


# ── dep ────────────────────────────────────────────────────────────────


class TestDepCommands:

    def test_cycle_rejected(self, run, seeded, db_path):
        r = run("dep", "add", seeded["Design"].id, seeded["Build"].id)
        assert r.exit_code == 1
        assert "cycle" in r.output
        assert _tasks_by_title(db_path)["Design"].dependency_ids == []

    def test_add_and_remove(self, run, seeded, db_path):
        r = run("dep", "add", seeded["Launch"].id, seeded["Design"].id)
        assert r.exit_code == 0, r.output
        assert _tasks_by_title(db_path)["Launch"].dependency_ids == [seeded["Design"].id]

        r = run("dep", "remove", seeded["Launch"].id, seeded["Design"].id)
        assert r.exit_code == 0
        assert _tasks_by_title(db_path)["Launch"].dependency_ids == []

    def test_remove_missing_link_warns(self, run, seeded):
        r = run("dep", "remove", seeded["Design"].id, seeded["Launch"].id)
        assert r.exit_code == 0
        assert "does not depend" in r.output


# ── graph views ────────────────────────────────────────────────────────


class TestGraphViews:

    def test_order(self, run, seeded):
        r = run("order", "Relaunch")
        assert r.exit_code == 0
        assert r.output.index("Design") < r.output.index("Build")

    def test_levels(self, run, seeded):
        r = run("levels", "Relaunch")
        assert r.exit_code == 0
        assert "Level 0" in r.output
        assert "Level 1" in r.output
        assert "1 dependency link(s)" in r.output

    def test_bounds(self, run, seeded):
        r = run("bounds", "Relaunch")
        assert r.exit_code == 0, r.output
        assert "Visible range: 2024-03-01" in r.output


# ── snapshots ──────────────────────────────────────────────────────────


class TestSnapshotCommands:

    def test_export_validate_import(self, run, seeded, db_path, tmp_path):
        path = tmp_path / "relaunch.json"
        assert run("export", "Relaunch", str(path)).exit_code == 0
        assert path.is_file()

        r = run("validate", str(path))
        assert r.exit_code == 0
        assert "Snapshot OK" in r.output

        r = run("import", str(path), "--name", "Copy")
        assert r.exit_code == 0, r.output
        copy = _tasks_by_title(db_path, "Copy")
        assert set(copy) == {"Design", "Launch", "Build"}
        assert copy["Build"].dependency_ids == [copy["Design"].id]

    def test_validate_reports_problems(self, run, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(
            '{"version": 1, "tasks": ['
            '{"id": "a", "title": "A", "dependencyIds": ["b"]},'
            '{"id": "b", "title": "B", "dependencyIds": ["a"]}]}',
            encoding="utf-8",
        )
        r = run("validate", str(path))
        assert r.exit_code == 1
        assert "Cycle in dependencies" in r.output

    def test_validate_missing_file(self, run, tmp_path):
        r = run("validate", str(tmp_path / "missing.json"))
        assert r.exit_code == 1
        assert "not found" in r.output
