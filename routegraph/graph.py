"""Repository import graph with forward and reverse adjacency.

An :class:`ImportGraph` is never mutated after construction.
:meth:`ImportGraphBuilder.update` derives a new graph from an old one,
sharing every per-file entry that did not change, so readers holding the
old graph keep a consistent view while a new one is built.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .config import AnalysisConfig
from .models import (
    DEFERRED,
    STATIC,
    EdgeKind,
    FileFact,
    ImportEdge,
    ImportSpec,
    ResolutionAmbiguity,
)
from .resolver import ModuleResolver

logger = logging.getLogger(__name__)


class ImportGraph:
    """Immutable snapshot of resolved imports between repository files."""

    def __init__(
        self,
        nodes: FrozenSet[str],
        specs: Mapping[str, Tuple[ImportSpec, ...]],
        outgoing: Mapping[str, Mapping[str, EdgeKind]],
        incoming: Mapping[str, Mapping[str, EdgeKind]],
        lookups: Mapping[str, FrozenSet[str]],
        looked_up: Mapping[str, Tuple[str, ...]],
        warnings: Mapping[str, Tuple[ResolutionAmbiguity, ...]],
        resolver: ModuleResolver,
        touched: FrozenSet[str] = frozenset(),
        failed: FrozenSet[str] = frozenset(),
    ) -> None:
        self._nodes = nodes
        # failed files are isolated: no outgoing and no incoming edges
        self._failed = failed
        self._specs = specs
        self._out = outgoing
        self._in = incoming
        # lower-cased candidate path -> importers whose resolution tried it
        self._lookups = lookups
        self._looked_up = looked_up
        self._warnings = warnings
        self.resolver = resolver
        self.touched = touched

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Tuple[str, ...]:
        return tuple(sorted(self._nodes))

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def is_failed(self, path: str) -> bool:
        return path in self._failed

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._out.values())

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def imports_of(self, path: str) -> List[ImportEdge]:
        targets = self._out.get(path, {})
        return [ImportEdge(path, target, targets[target]) for target in sorted(targets)]

    def imported_by(self, path: str) -> List[ImportEdge]:
        sources = self._in.get(path, {})
        return [ImportEdge(source, path, sources[source]) for source in sorted(sources)]

    def edge_kind(self, from_path: str, to_path: str) -> Optional[EdgeKind]:
        return self._out.get(from_path, {}).get(to_path)

    def edges(self) -> List[ImportEdge]:
        return [edge for path in self.nodes for edge in self.imports_of(path)]

    def specs_of(self, path: str) -> Tuple[ImportSpec, ...]:
        return self._specs.get(path, ())

    def warnings(self, paths: Optional[Iterable[str]] = None) -> List[ResolutionAmbiguity]:
        keys = sorted(self._warnings) if paths is None else sorted(set(paths))
        return [warning for key in keys for warning in self._warnings.get(key, ())]

    def importers_looking_up(self, path: str) -> FrozenSet[str]:
        """Files whose resolution would change if *path* appeared or vanished."""
        return self._lookups.get(path.lower(), frozenset())

    def resolve(self, importer: str, specifier: str) -> Optional[str]:
        """Resolve *specifier* as written in *importer* against this snapshot."""
        target = self.resolver.resolve(importer, specifier).target
        return target if target != importer else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ImportGraph):
            return NotImplemented
        return (
            self._nodes == other._nodes
            and self._failed == other._failed
            and self.edges() == other.edges()
            and self.warnings() == other.warnings()
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ImportGraph(nodes={len(self._nodes)}, edges={self.edge_count})"


class ImportGraphBuilder:
    """Build and incrementally update :class:`ImportGraph` snapshots."""

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()

    def _resolver(self, paths: Iterable[str]) -> ModuleResolver:
        return ModuleResolver(
            paths,
            aliases=self.config.aliases,
            extensions=self.config.resolvable_extensions,
        )

    def empty(self) -> ImportGraph:
        return ImportGraph(
            nodes=frozenset(),
            specs={},
            outgoing={},
            incoming={},
            lookups={},
            looked_up={},
            warnings={},
            resolver=self._resolver(()),
        )

    def build(self, facts: Iterable[FileFact]) -> ImportGraph:
        """Full build; identical to updating an empty graph with every fact."""
        return self.update(self.empty(), facts)

    def update(
        self,
        graph: ImportGraph,
        changed: Iterable[FileFact] = (),
        removed: Iterable[str] = (),
    ) -> ImportGraph:
        """Derive a new graph after files were added, modified or removed.

        Besides the changed files themselves, every importer whose earlier
        resolution looked up a path that appeared or vanished, or whose
        target switched between parsed and failed, is re-resolved so the
        result equals a full rebuild over the same facts.
        """
        changed_facts: Dict[str, FileFact] = {fact.path: fact for fact in changed}
        removed_paths = set(removed) - set(changed_facts)

        nodes_before = graph._nodes
        nodes_after = frozenset((nodes_before - removed_paths) | set(changed_facts))
        added = nodes_after - nodes_before
        gone = nodes_before - nodes_after

        failed = frozenset(
            (graph._failed - removed_paths - set(changed_facts))
            | {path for path, fact in changed_facts.items() if fact.failed}
        )
        flipped = (graph._failed ^ failed) & nodes_before & nodes_after

        resolver = self._resolver(nodes_after) if (added or gone) else graph.resolver

        specs: Dict[str, Tuple[ImportSpec, ...]] = dict(graph._specs)
        for path in gone:
            specs.pop(path, None)
        for path, fact in changed_facts.items():
            specs[path] = fact.imports

        to_resolve: Set[str] = set(changed_facts)
        for path in added | gone | flipped:
            to_resolve |= graph.importers_looking_up(path)
        to_resolve &= nodes_after

        outgoing: Dict[str, Mapping[str, EdgeKind]] = dict(graph._out)
        incoming: Dict[str, Mapping[str, EdgeKind]] = dict(graph._in)
        lookups: Dict[str, FrozenSet[str]] = dict(graph._lookups)
        looked_up: Dict[str, Tuple[str, ...]] = dict(graph._looked_up)
        warnings: Dict[str, Tuple[ResolutionAmbiguity, ...]] = dict(graph._warnings)

        def detach(path: str) -> None:
            for target in outgoing.pop(path, {}):
                sources = dict(incoming.get(target, {}))
                sources.pop(path, None)
                if sources:
                    incoming[target] = sources
                else:
                    incoming.pop(target, None)
            for candidate in looked_up.pop(path, ()):
                importers = lookups.get(candidate, frozenset()) - {path}
                if importers:
                    lookups[candidate] = importers
                else:
                    lookups.pop(candidate, None)
            warnings.pop(path, None)

        for path in gone:
            detach(path)

        for path in sorted(to_resolve):
            detach(path)
            targets, file_lookups, file_warnings = self._resolve_file(
                path, specs.get(path, ()), resolver, failed,
            )
            if targets:
                outgoing[path] = targets
            for target, kind in targets.items():
                sources = dict(incoming.get(target, {}))
                sources[path] = kind
                incoming[target] = sources
            if file_lookups:
                looked_up[path] = file_lookups
            for candidate in file_lookups:
                lookups[candidate] = lookups.get(candidate, frozenset()) | {path}
            if file_warnings:
                warnings[path] = file_warnings

        for path in gone:
            incoming.pop(path, None)

        logger.debug(
            "Graph update: %d changed, %d removed, %d re-resolved",
            len(changed_facts), len(gone), len(to_resolve),
        )
        return ImportGraph(
            nodes=nodes_after,
            specs=specs,
            outgoing=outgoing,
            incoming=incoming,
            lookups=lookups,
            looked_up=looked_up,
            warnings=warnings,
            resolver=resolver,
            touched=frozenset(to_resolve),
            failed=failed,
        )

    @staticmethod
    def _resolve_file(
        path: str,
        specs: Iterable[ImportSpec],
        resolver: ModuleResolver,
        failed: FrozenSet[str] = frozenset(),
    ) -> Tuple[Dict[str, EdgeKind], Tuple[str, ...], Tuple[ResolutionAmbiguity, ...]]:
        targets: Dict[str, EdgeKind] = {}
        lookups: Set[str] = set()
        warnings: List[ResolutionAmbiguity] = []
        for spec in specs:
            resolution = resolver.resolve(path, spec.specifier)
            lookups.update(resolution.lookups)
            if resolution.ambiguity is not None and resolution.ambiguity not in warnings:
                warnings.append(resolution.ambiguity)
                logger.warning("Ambiguous import: %s", resolution.ambiguity)
            target = resolution.target
            if target is None or target == path or target in failed:
                continue
            # Duplicate edges collapse; static wins over deferred.
            if targets.get(target) == STATIC or spec.kind == STATIC:
                targets[target] = STATIC
            else:
                targets[target] = DEFERRED
        return targets, tuple(sorted(lookups)), tuple(warnings)
