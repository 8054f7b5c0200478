"""In-memory analysis cache with lazily rebuilt, immutable snapshots.

Writers ``put`` and ``invalidate`` facts; readers call :meth:`snapshot`.
Pending changes are folded into the previous snapshot incrementally: only
files whose resolution may have changed are re-resolved and have their
routes re-extracted.  A snapshot handed out earlier is never modified.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .graph import ImportGraph, ImportGraphBuilder
from .impact import ImpactPropagator
from .models import FileFact, ImpactResult, RouteRecord, UnresolvedRoutePath
from .routes import RouteExtractor
from .storage import FactStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexSnapshot:
    """Consistent view of graph, routes and facts at one point in time."""

    graph: ImportGraph
    routes_by_file: Mapping[str, Tuple[RouteRecord, ...]] = field(default_factory=dict)
    unresolvable_by_file: Mapping[str, Tuple[UnresolvedRoutePath, ...]] = field(
        default_factory=dict
    )
    facts: Mapping[str, FileFact] = field(default_factory=dict)
    global_style: Optional[Callable[[str], bool]] = None

    @property
    def routes(self) -> List[RouteRecord]:
        return sorted(
            (route for routes in self.routes_by_file.values() for route in routes),
            key=lambda route: route.sort_key,
        )

    @property
    def unresolvable(self) -> List[UnresolvedRoutePath]:
        return sorted(
            (entry for entries in self.unresolvable_by_file.values() for entry in entries),
            key=lambda entry: (entry.defining_file, entry.line),
        )

    def propagator(self) -> ImpactPropagator:
        return ImpactPropagator(
            self.graph, self.routes, self.facts, self.unresolvable,
            global_style=self.global_style,
        )

    def propagate(self, changeset: Iterable[str]) -> ImpactResult:
        return self.propagator().propagate(changeset)


class AnalysisCache:
    """Thread-safe map of path -> :class:`FileFact` plus derived snapshots.

    With a :class:`FactStore` attached, every write goes through to SQLite
    and the cache starts from whatever the store holds.
    """

    def __init__(
        self,
        builder: Optional[ImportGraphBuilder] = None,
        extractor: Optional[RouteExtractor] = None,
        store: Optional[FactStore] = None,
    ) -> None:
        self.builder = builder or ImportGraphBuilder()
        self.extractor = extractor or RouteExtractor()
        self.store = store
        self._lock = threading.RLock()
        self._facts: Dict[str, FileFact] = {}
        self._pending_changed: Dict[str, FileFact] = {}
        self._pending_removed: Set[str] = set()
        self._snapshot: Optional[IndexSnapshot] = None
        self.hits = 0
        self.misses = 0
        if store is not None:
            self._load_from_store()

    def _load_from_store(self) -> None:
        facts, rejected = self.store.load()
        self._facts.update(facts)
        self._pending_changed.update(facts)
        logger.info(
            "Loaded %d cached facts (%d rejected for re-index)", len(facts), len(rejected),
        )

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._lock:
            return len(self._facts)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._facts

    def paths(self) -> List[str]:
        with self._lock:
            return sorted(self._facts)

    def get(self, path: str, content_hash: Optional[str] = None) -> Optional[FileFact]:
        """Cached fact for *path*; a fingerprint mismatch counts as a miss."""
        with self._lock:
            fact = self._facts.get(path)
            if fact is None or (content_hash is not None and fact.content_hash != content_hash):
                if fact is not None:
                    logger.debug("Stale cache entry for %s", path)
                self.misses += 1
                return None
            self.hits += 1
            return fact

    def put(self, fact: FileFact) -> None:
        self.put_many([fact])

    def put_many(self, facts: Iterable[FileFact]) -> None:
        with self._lock:
            fresh: List[FileFact] = []
            for fact in facts:
                if self._facts.get(fact.path) == fact:
                    continue
                self._facts[fact.path] = fact
                self._pending_changed[fact.path] = fact
                self._pending_removed.discard(fact.path)
                fresh.append(fact)
            if fresh and self.store is not None:
                self.store.upsert(fresh)

    def invalidate(self, paths: Iterable[str]) -> List[str]:
        """Forget *paths*; returns the ones that were actually cached."""
        with self._lock:
            dropped: List[str] = []
            for path in paths:
                self._pending_changed.pop(path, None)
                if self._facts.pop(path, None) is not None:
                    self._pending_removed.add(path)
                    dropped.append(path)
            if dropped and self.store is not None:
                self.store.delete(dropped)
            return dropped

    def clear(self) -> None:
        with self._lock:
            self._facts.clear()
            self._pending_changed.clear()
            self._pending_removed.clear()
            self._snapshot = None
            if self.store is not None:
                self.store.clear()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> IndexSnapshot:
        with self._lock:
            if self._snapshot is not None and not self._pending_changed and not self._pending_removed:
                return self._snapshot

            base = self._snapshot or IndexSnapshot(graph=self.builder.empty())
            changed = list(self._pending_changed.values())
            removed = set(self._pending_removed)
            graph = self.builder.update(base.graph, changed, removed)

            routes = dict(base.routes_by_file)
            unresolvable = dict(base.unresolvable_by_file)
            for path in removed:
                routes.pop(path, None)
                unresolvable.pop(path, None)
            for path in sorted(graph.touched):
                fact = self._facts[path]
                records = tuple(self.extractor.extract(fact, graph.resolve))
                pending = tuple(self.extractor.unresolvable(fact))
                if records:
                    routes[path] = records
                else:
                    routes.pop(path, None)
                if pending:
                    unresolvable[path] = pending
                else:
                    unresolvable.pop(path, None)

            self._snapshot = IndexSnapshot(
                graph=graph,
                routes_by_file=MappingProxyType(routes),
                unresolvable_by_file=MappingProxyType(unresolvable),
                facts=MappingProxyType(dict(self._facts)),
                global_style=self.builder.config.is_global_style,
            )
            self._pending_changed.clear()
            self._pending_removed.clear()
            logger.debug(
                "Snapshot rebuilt: %d files, %d re-extracted", len(graph), len(graph.touched),
            )
            return self._snapshot
