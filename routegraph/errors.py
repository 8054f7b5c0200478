"""Exception hierarchy for the route-impact engine.

Only :class:`RepositoryRootError` is meant to escape a run.  The other
errors are raised and caught at file scope: a file that fails to parse is
downgraded, a corrupt cache row is re-indexed.
"""

from __future__ import annotations


class RouteGraphError(Exception):
    """Base class for all engine errors."""


class ParseError(RouteGraphError):
    """A single file could not be turned into a structural fact sheet."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class CacheInconsistency(RouteGraphError):
    """A persisted cache entry is corrupt or does not match its fingerprint."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cache entry for {path}: {reason}")
        self.path = path
        self.reason = reason


class RepositoryRootError(RouteGraphError):
    """The repository root is missing or unreadable.  Fatal for the run."""
