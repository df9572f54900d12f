"""planboard: projects, tasks and the dependency graph between them."""

__version__ = "0.3.0"
