"""Reverse-reachability from changed files to the routes they affect.

Traversal walks ``imported_by`` edges breadth-first.  A state is a
``(file, crossed_deferred)`` pair and each state is enqueued at most once,
which bounds the work on cyclic graphs and lets a route reachable both
through static and through lazy imports be reported with either chain.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .graph import ImportGraph
from .models import (
    DEFERRED,
    DIRECT,
    GLOBAL_STYLE,
    VIA_DEFERRED,
    VIA_STATIC,
    FileFact,
    ImpactResult,
    RouteImpact,
    RouteRecord,
    UnresolvedRoutePath,
)

logger = logging.getLogger(__name__)

NOT_INDEXED = "not-indexed"
PARSE_FAILED_REASON = "parse-failed"
NO_ROUTE = "no-route-reachable"

_State = Tuple[str, bool]


class ImpactPropagator:
    """Map changed files to the :class:`RouteRecord` s they can affect."""

    def __init__(
        self,
        graph: ImportGraph,
        routes: Iterable[RouteRecord],
        facts: Optional[Mapping[str, FileFact]] = None,
        unresolvable: Iterable[UnresolvedRoutePath] = (),
        global_style: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.graph = graph
        self.facts: Mapping[str, FileFact] = facts or {}
        self.global_style = global_style
        self._routes = sorted(set(routes), key=lambda r: r.sort_key)
        self._by_defining: Dict[str, List[RouteRecord]] = {}
        self._by_component: Dict[str, List[RouteRecord]] = {}
        self._component_files: Dict[str, Set[str]] = {}
        for route in self._routes:
            self._by_defining.setdefault(route.defining_file, []).append(route)
            if route.component_file != route.defining_file:
                self._by_component.setdefault(route.component_file, []).append(route)
                self._component_files.setdefault(route.defining_file, set()).add(
                    route.component_file
                )
        self._unresolvable: Dict[str, List[UnresolvedRoutePath]] = {}
        for entry in unresolvable:
            self._unresolvable.setdefault(entry.defining_file, []).append(entry)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def propagate(self, changeset: Iterable[str]) -> ImpactResult:
        result = ImpactResult()
        seen_warnings: Set[str] = set()
        unresolvable: Set[UnresolvedRoutePath] = set()

        for path in dict.fromkeys(changeset):
            fact = self.facts.get(path)
            if fact is not None:
                result.parse_status[path] = fact.parse_status

            if path not in self.graph:
                result.impacts[path] = []
                result.unresolved.append(path)
                result.reasons[path] = NOT_INDEXED
                continue

            parents = self._traverse(path)
            impacts = self._impacts_for(path, parents)
            if self.global_style is not None and self.global_style(path):
                impacts = self._with_global_routes(path, impacts)
            result.impacts[path] = impacts

            shared = self._shared_routes(fact, impacts)
            if shared:
                result.shared_components[path] = shared

            touched = {path}
            for impact in impacts:
                touched.update(impact.causal_chain)
                for chain in impact.alternate_chains:
                    touched.update(chain)
            for file in sorted(touched):
                other = self.facts.get(file)
                if other is not None:
                    result.parse_status.setdefault(file, other.parse_status)
            for warning in self.graph.warnings(touched):
                text = str(warning)
                if text not in seen_warnings:
                    seen_warnings.add(text)
                    result.warnings.append(text)
            for file, _ in parents:
                unresolvable.update(self._unresolvable.get(file, ()))

            if not impacts:
                result.unresolved.append(path)
                result.reasons[path] = (
                    PARSE_FAILED_REASON if fact is not None and fact.failed else NO_ROUTE
                )

        result.unresolvable_routes = sorted(
            unresolvable, key=lambda u: (u.defining_file, u.line, u.expression),
        )
        return result

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _traverse(self, start: str) -> Dict[_State, Optional[_State]]:
        origin: _State = (start, False)
        parents: Dict[_State, Optional[_State]] = {origin: None}
        queue = deque([origin])
        while queue:
            state = queue.popleft()
            file, crossed = state
            for edge in self.graph.imported_by(file):
                nxt = (edge.from_path, crossed or edge.kind == DEFERRED)
                if nxt in parents:
                    continue
                parents[nxt] = state
                queue.append(nxt)
        return parents

    @staticmethod
    def _chain(state: _State, parents: Mapping[_State, Optional[_State]]) -> List[str]:
        chain: List[str] = []
        current: Optional[_State] = state
        while current is not None:
            chain.append(current[0])
            current = parents[current]
        chain.reverse()
        return chain

    def _is_deferred(self, chain: List[str]) -> bool:
        """Whether any hop of *chain* (importee -> importer) is a lazy import."""
        return any(
            self.graph.edge_kind(importer, importee) == DEFERRED
            for importee, importer in zip(chain, chain[1:])
        )

    @staticmethod
    def _extend(chain: List[str], defining_file: str) -> List[str]:
        if defining_file in chain:
            return chain[: chain.index(defining_file) + 1]
        return chain + [defining_file]

    # ------------------------------------------------------------------
    # Route matching
    # ------------------------------------------------------------------

    def _impacts_for(
        self, start: str, parents: Mapping[_State, Optional[_State]],
    ) -> List[RouteImpact]:
        direct = self._by_defining.get(start, [])
        direct_set = set(direct)
        chains: Dict[RouteRecord, List[List[str]]] = {}

        reached: Dict[str, List[_State]] = {}
        for state in parents:
            reached.setdefault(state[0], []).append(state)

        # The changed file reaches a route's component file.
        for file, states in reached.items():
            for route in self._by_component.get(file, ()):
                if route in direct_set or self.graph.edge_kind(route.defining_file, file) is None:
                    continue
                for state in states:
                    chain = self._extend(self._chain(state, parents), route.defining_file)
                    chains.setdefault(route, []).append(chain)

        # The changed file reaches a route-defining file. Routes rendered by
        # the defining file itself are hit through any import; through a
        # helper import (loader, guard) every route declared there is.
        for defining_file, routes in self._by_defining.items():
            if defining_file == start or defining_file not in reached:
                continue
            components = self._component_files.get(defining_file, set())
            inline = [route for route in routes if route.component_file == defining_file]
            for edge in self.graph.imports_of(defining_file):
                if edge.to_path not in reached:
                    continue
                hit = inline if edge.to_path in components else routes
                if not hit:
                    continue
                for state in reached[edge.to_path]:
                    chain = self._extend(self._chain(state, parents), defining_file)
                    for route in hit:
                        chains.setdefault(route, []).append(chain)

        impacts = [RouteImpact(route, DIRECT, [], []) for route in direct]
        for route, candidates in chains.items():
            if route in direct_set:
                continue
            impacts.append(self._best(route, candidates))
        impacts.sort(key=lambda impact: impact.route.sort_key)
        return impacts

    def _with_global_routes(self, path: str, impacts: List[RouteImpact]) -> List[RouteImpact]:
        """A global style sheet restyles every route not already reached."""
        hit = {impact.route for impact in impacts}
        extra = [
            RouteImpact(route, GLOBAL_STYLE, [path], [])
            for route in self._routes
            if route not in hit
        ]
        if not extra:
            return impacts
        logger.debug("%s is a global style sheet: %d more routes", path, len(extra))
        return sorted(impacts + extra, key=lambda impact: impact.route.sort_key)

    @staticmethod
    def _shared_routes(fact: Optional[FileFact], impacts: List[RouteImpact]) -> List[str]:
        """Route patterns a changed component serves, when there are several."""
        if fact is not None and fact.language == "style":
            return []
        patterns = sorted({
            impact.route.route_path
            for impact in impacts
            if impact.reachability in (VIA_STATIC, VIA_DEFERRED)
        })
        return patterns if len(patterns) > 1 else []

    def _best(self, route: RouteRecord, candidates: List[List[str]]) -> RouteImpact:
        """Static chains beat deferred ones, then shorter, then lexicographic."""
        static = [c for c in candidates if not self._is_deferred(c)]
        deferred = [c for c in candidates if self._is_deferred(c)]

        def key(chain: List[str]) -> Tuple[int, List[str]]:
            return (len(chain), chain)

        if static:
            alternates = [min(deferred, key=key)] if deferred else []
            return RouteImpact(route, VIA_STATIC, min(static, key=key), alternates)
        return RouteImpact(route, VIA_DEFERRED, min(deferred, key=key), [])


def propagate(
    changeset: Iterable[str],
    graph: ImportGraph,
    routes: Iterable[RouteRecord],
    facts: Optional[Mapping[str, FileFact]] = None,
    global_style: Optional[Callable[[str], bool]] = None,
) -> ImpactResult:
    """Convenience wrapper around :class:`ImpactPropagator`."""
    return ImpactPropagator(graph, routes, facts, global_style=global_style).propagate(changeset)
