"""Persistence layer for per-repository analysis caches.

Each analysed repository gets a directory under ``CACHE_DIR`` holding a
SQLite database of :class:`~routegraph.models.FileFact` rows plus a small
JSON metadata file.  Facts are keyed by repo-relative path and carry their
content fingerprint, so a stale or corrupt row is detected on load and the
file is simply indexed again.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from .config import CACHE_DIR, ensure_base_dirs
from .errors import CacheInconsistency
from .models import FileFact

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


# ===================================================================
# ProjectManager  (one cache directory per repository)
# ===================================================================

class ProjectManager:
    """Manage cache directories for analysed repositories."""

    def __init__(self) -> None:
        ensure_base_dirs()

    def list_projects(self) -> List[str]:
        if not CACHE_DIR.exists():
            return []
        return sorted([p.name for p in CACHE_DIR.iterdir() if p.is_dir()])

    @staticmethod
    def project_name(repo_root: Path) -> str:
        """Stable directory name: repo folder name plus a digest of its path."""
        resolved = str(Path(repo_root).resolve())
        digest = hashlib.blake2b(resolved.encode("utf-8"), digest_size=4).hexdigest()
        return f"{Path(resolved).name or 'root'}-{digest}"

    def project_dir(self, project_name: str) -> Path:
        return CACHE_DIR / project_name

    def create_or_get_project(self, repo_root: Path) -> Path:
        path = self.project_dir(self.project_name(repo_root))
        path.mkdir(parents=True, exist_ok=True)
        return path

    def delete_project(self, project_name: str) -> bool:
        path = self.project_dir(project_name)
        if not path.exists():
            return False
        for child in sorted(path.glob("**/*"), reverse=True):
            if child.is_file():
                child.unlink()
            elif child.is_dir():
                child.rmdir()
        path.rmdir()
        return True


# ===================================================================
# FactStore  (SQLite)
# ===================================================================

class FactStore:
    """SQLite-backed store of per-file facts.

    The connection is shared across threads; callers serialise access
    (:class:`~routegraph.cache.AnalysisCache` holds a lock around every
    call).
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir
        self.db_path = project_dir / "facts.db"
        self.meta_path = project_dir / "project.json"
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS facts (
                path         TEXT PRIMARY KEY,
                content_hash TEXT NOT NULL,
                version      INTEGER NOT NULL,
                payload      TEXT NOT NULL
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------
    # Clear / metadata
    # ------------------------------------------------------------------

    def clear(self) -> None:
        self.conn.execute("DELETE FROM facts")
        self.conn.commit()

    def set_metadata(self, payload: Dict[str, Any]) -> None:
        self.meta_path.write_text(
            json.dumps(payload, indent=2), encoding="utf-8",
        )

    def get_metadata(self) -> Dict[str, Any]:
        if not self.meta_path.exists():
            return {}
        try:
            return json.loads(self.meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert(self, facts: Iterable[FileFact]) -> None:
        rows = [
            (fact.path, fact.content_hash, SCHEMA_VERSION, json.dumps(fact.to_dict()))
            for fact in facts
        ]
        if not rows:
            return
        self.conn.executemany(
            "INSERT OR REPLACE INTO facts (path, content_hash, version, payload) "
            "VALUES (?, ?, ?, ?)",
            rows,
        )
        self.conn.commit()

    def delete(self, paths: Iterable[str]) -> None:
        rows = [(path,) for path in paths]
        if not rows:
            return
        self.conn.executemany("DELETE FROM facts WHERE path = ?", rows)
        self.conn.commit()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS n FROM facts").fetchone()
        return int(row["n"])

    def load(self) -> Tuple[Dict[str, FileFact], List[str]]:
        """Return ``(facts, rejected_paths)``.

        Rejected rows are deleted so the next indexing pass rebuilds them.
        """
        facts: Dict[str, FileFact] = {}
        rejected: List[str] = []
        for row in self.conn.execute("SELECT * FROM facts ORDER BY path"):
            try:
                fact = self._row_to_fact(row)
            except CacheInconsistency as exc:
                logger.warning("Discarding cache entry: %s", exc)
                rejected.append(row["path"])
                continue
            facts[fact.path] = fact
        if rejected:
            self.delete(rejected)
        return facts, rejected

    @staticmethod
    def _row_to_fact(row: sqlite3.Row) -> FileFact:
        path = row["path"]
        if row["version"] != SCHEMA_VERSION:
            raise CacheInconsistency(path, f"schema version {row['version']}")
        try:
            payload = json.loads(row["payload"])
            fact = FileFact.from_dict(payload)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise CacheInconsistency(path, f"corrupt payload ({exc})") from exc
        if fact.path != path or fact.content_hash != row["content_hash"]:
            raise CacheInconsistency(path, "fingerprint mismatch")
        return fact
