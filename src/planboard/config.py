"""Configuration defaults, env vars, and runtime options for planboard."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from planboard import log

DB_ENV = "PLANBOARD_DB"
TODAY_ENV = "PLANBOARD_TODAY"
ENFORCE_ACYCLIC_ENV = "PLANBOARD_ENFORCE_ACYCLIC"

_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def default_db_path() -> Path:
    return Path.home() / ".planboard" / "planboard.db"


@dataclass
class Config:
    """Runtime configuration; CLI flags override env vars override defaults."""

    db_path: Path | None = None
    # Reference date for status computations. Resolved once, then passed
    # explicitly to everything that classifies tasks.
    today: date | None = None

    # Store hardening: reject cyclic dependency writes and ancestry loops
    enforce_acyclic: bool | None = None

    default_duration: int = 1
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.db_path is None:
            raw = os.environ.get(DB_ENV, "")
            self.db_path = Path(raw).expanduser() if raw else default_db_path()
        else:
            self.db_path = Path(self.db_path)
        if self.today is None:
            self.today = parse_today(os.environ.get(TODAY_ENV, ""))
        if self.enforce_acyclic is None:
            raw = os.environ.get(ENFORCE_ACYCLIC_ENV, "")
            self.enforce_acyclic = raw.strip().lower() not in _FALSE_VALUES
        if self.default_duration < 1:
            self.default_duration = 1


def parse_today(raw: str) -> date:
    """Parse an ISO date override, falling back to the local calendar date."""
    raw = raw.strip()
    if raw:
        try:
            return date.fromisoformat(raw)
        except ValueError:
            log.warn(f"Ignoring {TODAY_ENV}={raw!r}: not an ISO date")
    return date.today()
