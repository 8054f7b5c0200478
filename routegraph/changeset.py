"""Changesets: which files changed, and how."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Literal, Union

from .resolver import normalize_path

logger = logging.getLogger(__name__)

ChangeStatus = Literal["added", "modified", "deleted"]

ADDED: ChangeStatus = "added"
MODIFIED: ChangeStatus = "modified"
DELETED: ChangeStatus = "deleted"

_GIT_STATUS = {
    "A": ADDED,
    "M": MODIFIED,
    "T": MODIFIED,
    "D": DELETED,
}


@dataclass(frozen=True)
class Change:
    path: str
    status: ChangeStatus = MODIFIED

    @property
    def deleted(self) -> bool:
        return self.status == DELETED


def normalize_changes(items: Iterable[Union[str, Change]]) -> List[Change]:
    """Accept plain paths or :class:`Change` objects; later entries win."""
    changes: dict = {}
    for item in items:
        change = Change(item) if isinstance(item, str) else item
        path = normalize_path(change.path)
        if not path:
            continue
        changes.pop(path, None)
        changes[path] = Change(path, change.status)
    return list(changes.values())


def parse_name_status(text: str) -> List[Change]:
    """Parse ``git diff --name-status`` output.

    Fields are tab separated, so paths may contain spaces.  Renames and
    copies become a deletion of the old path (renames only) plus an
    addition of the new one.  Blank and malformed lines are skipped,
    unknown status letters are logged and treated as modifications.
    """
    changes: List[Change] = []
    for raw in text.splitlines():
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        parts = line.split("\t")
        code = parts[0].strip()[:1].upper()
        if len(parts) < 2 or not code or not parts[-1]:
            logger.warning("Skipping malformed name-status line: %r", line)
            continue
        if code in ("R", "C"):
            if len(parts) < 3:
                logger.warning("Skipping malformed name-status line: %r", line)
                continue
            if code == "R":
                changes.append(Change(parts[1], DELETED))
            changes.append(Change(parts[2], ADDED))
            continue
        status = _GIT_STATUS.get(code)
        if status is None:
            logger.warning("Unknown change status '%s' for %s", parts[0], parts[1])
            status = MODIFIED
        changes.append(Change(parts[1], status))
    return normalize_changes(changes)
