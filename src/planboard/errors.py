"""Exceptions raised by the store and snapshot I/O.

The graph engine itself never raises; these cover the write boundary.
"""

from __future__ import annotations


class PlanboardError(Exception):
    """Base class for every error planboard reports to the user."""


class NotFoundError(PlanboardError):
    """A project or task id does not exist."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class ValidationError(PlanboardError):
    """A write would leave a task or project in an invalid state."""


class CycleError(ValidationError):
    """A write would create a dependency cycle or an ancestry loop."""


class SnapshotError(PlanboardError):
    """A snapshot file could not be read or parsed."""
