"""Shared fixtures for planboard tests.

File handling in tests:
- Use tmp_path for databases and snapshot files so tests are isolated.
- Pass an explicit reference date wherever status is computed.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from planboard.store import Store
from planboard.tasks.model import ProjectSnapshot, Task

TODAY = date(2024, 3, 10)


def _make_task(
    id: str,
    title: str = "",
    start_date: str | None = None,
    duration: int = 1,
    parent_id: str | None = None,
    depends_on: list[str] | None = None,
) -> Task:
    return Task(
        id=id,
        title=title or f"Task {id}",
        start_date=start_date,
        duration=duration,
        parent_id=parent_id,
        dependency_ids=depends_on or [],
    )


def _make_snapshot(tasks: list[Task], project: str = "test") -> ProjectSnapshot:
    return ProjectSnapshot(project=project, tasks=tasks)


@pytest.fixture
def make_task():
    """Factory fixture that creates Task instances."""
    return _make_task


@pytest.fixture
def make_snapshot():
    """Factory fixture that creates ProjectSnapshot instances."""
    return _make_snapshot


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "planboard.db"


@pytest.fixture
def store(db_path: Path):
    """A fresh store with cycle enforcement on."""
    s = Store(db_path)
    yield s
    s.close()


@pytest.fixture
def project_id(store: Store) -> str:
    return store.create_project("Relaunch").id
