"""Tests for snapshot JSON files (planboard.tasks.io)."""

from __future__ import annotations

import json

import pytest

from planboard.errors import SnapshotError
from planboard.io_utils import read_json, write_text
from planboard.tasks.io import load_snapshot, save_snapshot, snapshot_from_dict
from planboard.tasks.model import ProjectSnapshot, Task
from planboard.tasks.validate import validate


def test_save_then_load(tmp_path):
    snap = ProjectSnapshot(project="Relaunch", tasks=[
        Task(id="a", title="A", start_date="2024-03-01", duration=3, tags=["x"]),
        Task(id="b", title="B", parent_id="a", dependency_ids=["a"]),
    ])
    path = tmp_path / "out" / "snap.json"
    save_snapshot(snap, path)

    raw = read_json(path)
    assert raw["version"] == 1
    assert raw["tasks"][1]["dependencyIds"] == ["a"]
    assert load_snapshot(path) == snap


def test_file_ends_with_newline(tmp_path):
    path = tmp_path / "snap.json"
    save_snapshot(ProjectSnapshot(tasks=[Task(id="a", title="A")]), path)
    assert path.read_text(encoding="utf-8").endswith("}\n")


def test_missing_file(tmp_path):
    with pytest.raises(SnapshotError, match="not found"):
        load_snapshot(tmp_path / "nope.json")


def test_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    write_text(path, "{not json")
    with pytest.raises(SnapshotError, match="invalid JSON"):
        load_snapshot(path)


@pytest.mark.parametrize(
    "data, message",
    [
        ([], "JSON object"),
        ({"tasks": {}}, "must be a list"),
        ({"tasks": ["a"]}, "Task #1"),
        ({"tasks": [{"id": "a", "duration": "long"}]}, "Task #1"),
        ({"version": "two", "tasks": []}, "Invalid version"),
    ],
)
def test_bad_shapes(data, message):
    with pytest.raises(SnapshotError, match=message):
        snapshot_from_dict(data)


def test_missing_optional_keys():
    snap = snapshot_from_dict(json.loads('{"tasks": [{"id": "a", "title": "A"}]}'))
    assert snap.version == 1
    assert snap.project == ""
    assert snap.tasks[0].dependency_ids == []


def test_numeric_ids_are_stringified_consistently():
    snap = snapshot_from_dict({"tasks": [
        {"id": 1, "title": "Plan"},
        {"id": 2, "title": "Build", "parentId": 1, "dependencyIds": [1]},
        {"id": 0, "title": "Kickoff", "parentId": 0},
    ]})
    assert snap.tasks[1].parent_id == "1"
    assert snap.tasks[1].dependency_ids == ["1"]
    assert snap.tasks[2].id == "0"
    assert snap.tasks[2].parent_id == "0"

    errors = validate(snap)
    assert not any("not found" in e for e in errors)
    assert any("Cycle in parents" in e for e in errors)


def test_numeric_snapshot_imports(store):
    snap = snapshot_from_dict({"project": "Numbers", "tasks": [
        {"id": 1, "title": "Plan"},
        {"id": 2, "title": "Build", "parentId": 1, "dependencyIds": [1]},
    ]})
    project = store.import_snapshot(snap)
    tasks = {t.title: t for t in store.list_tasks(project.id)}
    assert tasks["Build"].parent_id == tasks["Plan"].id
    assert tasks["Build"].dependency_ids == [tasks["Plan"].id]
