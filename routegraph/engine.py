"""High-level entry point tying indexing, caching and propagation together."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .cache import AnalysisCache, IndexSnapshot
from .changeset import DELETED, Change, normalize_changes
from .config import AnalysisConfig, load_config
from .errors import RepositoryRootError
from .graph import ImportGraphBuilder
from .models import ImpactResult
from .parser import SourceIndexer, fingerprint, iter_source_files
from .routes import RouteExtractor
from .storage import FactStore

logger = logging.getLogger(__name__)


class ContentProvider(ABC):
    """Source of file bytes; ``None`` means the file does not exist."""

    @abstractmethod
    def read(self, path: str) -> Optional[bytes]:
        ...


class DiskContentProvider(ContentProvider):
    def __init__(self, root: Path) -> None:
        self.root = root

    def read(self, path: str) -> Optional[bytes]:
        try:
            return (self.root / path).read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return None


@dataclass
class IndexStats:
    files: int = 0
    reindexed: int = 0
    removed: int = 0
    edges: int = 0
    routes: int = 0
    failed: List[str] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)


class RouteImpactEngine:
    """Index a repository and answer "which routes does this change affect?"."""

    def __init__(
        self,
        root: Union[str, Path],
        config: Optional[AnalysisConfig] = None,
        cache: Optional[AnalysisCache] = None,
        store: Optional[FactStore] = None,
        content: Optional[ContentProvider] = None,
    ) -> None:
        self.root = Path(root)
        if not self.root.is_dir():
            raise RepositoryRootError(f"Repository root not found: {self.root}")
        self.config = config or load_config(self.root)
        self.indexer = SourceIndexer(self.config)
        self.cache = cache or AnalysisCache(
            builder=ImportGraphBuilder(self.config),
            extractor=RouteExtractor(
                framework=self.config.framework,
                router_file_stems=self.config.router_file_stems,
            ),
            store=store,
        )
        self.content = content or DiskContentProvider(self.root)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def index(self, workers: Optional[int] = None) -> IndexStats:
        """Bring the cache in line with the working tree.

        Unchanged files (same fingerprint) are served from the cache; only
        new or modified files are parsed.
        """
        try:
            paths = list(iter_source_files(self.root, self.config))
        except OSError as exc:
            raise RepositoryRootError(f"Cannot scan {self.root}: {exc}") from exc

        pending = []
        present = set()
        for path in paths:
            content = self.content.read(path)
            if content is None:
                continue
            present.add(path)
            if self.cache.get(path, fingerprint(content)) is None:
                pending.append((path, content))

        removed = [path for path in self.cache.paths() if path not in present]
        facts = self.indexer.index_many(pending, workers)
        self.cache.put_many(facts)
        self.cache.invalidate(removed)

        snapshot = self.cache.snapshot()
        stats = IndexStats(
            files=len(snapshot.graph),
            reindexed=len(facts),
            removed=len(removed),
            edges=snapshot.graph.edge_count,
            routes=len(snapshot.routes),
            failed=sorted(p for p, f in snapshot.facts.items() if f.parse_status == "failed"),
            degraded=sorted(p for p, f in snapshot.facts.items() if f.parse_status == "degraded"),
        )
        logger.info(
            "Indexed %s: %d files (%d parsed), %d edges, %d routes",
            self.root, stats.files, stats.reindexed, stats.edges, stats.routes,
        )
        return stats

    def apply_changes(self, changes: Iterable[Union[str, Change]], workers: Optional[int] = None) -> None:
        """Re-index only the files named in *changes*."""
        pending = []
        removed: List[str] = []
        for change in normalize_changes(changes):
            if change.status == DELETED:
                removed.append(change.path)
                continue
            if not self.config.is_indexable(change.path):
                continue
            content = self.content.read(change.path)
            if content is None:
                removed.append(change.path)
            elif self.cache.get(change.path, fingerprint(content)) is None:
                pending.append((change.path, content))
        self.cache.put_many(self.indexer.index_many(pending, workers))
        self.cache.invalidate(removed)

    def snapshot(self) -> IndexSnapshot:
        return self.cache.snapshot()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, changes: Iterable[Union[str, Change]]) -> ImpactResult:
        """Apply *changes* and report the routes each changed file affects.

        Deleted files no longer exist in the updated graph, so their impact
        is computed on the snapshot taken before the change was applied.
        """
        changes = normalize_changes(changes)
        before = self.cache.snapshot()
        self.apply_changes(changes)
        after = self.cache.snapshot()

        gone = [c.path for c in changes if c.path in before.graph and c.path not in after.graph]
        live = [c.path for c in changes if c.path not in gone]

        results = [after.propagate(live)]
        if gone:
            results.append(before.propagate(gone))
        return _merge([c.path for c in changes], results)


def _merge(order: List[str], results: List[ImpactResult]) -> ImpactResult:
    """Combine per-subset results, keeping the changeset's order."""
    if len(results) == 1:
        return results[0]
    merged = ImpactResult()
    for path in order:
        for result in results:
            if path in result.impacts:
                merged.impacts[path] = result.impacts[path]
            if path in result.shared_components:
                merged.shared_components[path] = result.shared_components[path]
            if path in result.reasons:
                merged.reasons[path] = result.reasons[path]
                merged.unresolved.append(path)
    for result in results:
        for path, status in result.parse_status.items():
            merged.parse_status.setdefault(path, status)
        for warning in result.warnings:
            if warning not in merged.warnings:
                merged.warnings.append(warning)
        for entry in result.unresolvable_routes:
            if entry not in merged.unresolvable_routes:
                merged.unresolvable_routes.append(entry)
    merged.unresolvable_routes.sort(key=lambda u: (u.defining_file, u.line, u.expression))
    return merged
