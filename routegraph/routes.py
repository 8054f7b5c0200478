"""Route extraction: turn raw route declarations into :class:`RouteRecord` s.

Conventions are tried in registration order and the first one that yields
records for a file wins, so a file declaring a route table is never also
scanned by the low-confidence string heuristic.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from .config import ROUTER_FILE_STEMS
from .models import (
    Confidence,
    FileFact,
    RouteDeclSpec,
    RouteElementDecl,
    RoutePatternDecl,
    RouteRecord,
    RouteTableDecl,
    UnresolvedRoutePath,
)

logger = logging.getLogger(__name__)

Resolve = Callable[[str, str], Optional[str]]


def _no_resolve(importer: str, specifier: str) -> Optional[str]:
    return None


@dataclass(frozen=True)
class ExtractionContext:
    resolve: Resolve
    framework: Optional[str] = None
    router_file_stems: Tuple[str, ...] = ROUTER_FILE_STEMS


# ===================================================================
# Conventions
# ===================================================================

class RouteConvention(ABC):
    """One way a codebase declares routes."""

    name: str = ""
    confidence: Confidence = "high"

    @abstractmethod
    def extract(self, fact: FileFact, context: ExtractionContext) -> List[RouteRecord]:
        ...


class _DeclarationConvention(RouteConvention):
    """Routes taken from declarations the indexer recorded."""

    decl_type: Type[RouteDeclSpec] = RouteTableDecl

    def extract(self, fact: FileFact, context: ExtractionContext) -> List[RouteRecord]:
        bindings = fact.bindings()
        records: List[RouteRecord] = []
        for decl in fact.route_candidates:
            if not isinstance(decl, self.decl_type) or decl.path is None:
                continue
            component_file, component = self._component_for(fact, decl, bindings, context)
            records.append(RouteRecord(
                route_path=decl.path,
                defining_file=fact.path,
                component_file=component_file,
                declaration_kind=self.name,
                confidence=self.confidence,
                line=decl.line,
                component=component,
            ))
        return records

    @staticmethod
    def _component_for(fact, decl, bindings, context) -> Tuple[str, str]:
        """First candidate bound to an in-repo import, else the defining file."""
        for name in decl.components:
            spec = bindings.get(name.split(".")[0])
            if spec is None:
                continue
            target = context.resolve(fact.path, spec.specifier)
            if target and target != fact.path:
                return target, name
        if decl.component_specifier:
            target = context.resolve(fact.path, decl.component_specifier)
            if target and target != fact.path:
                return target, decl.component_specifier
        return fact.path, decl.components[0] if decl.components else ""


class RouteTableConvention(_DeclarationConvention):
    """``createBrowserRouter([...])``, Vue / Angular route arrays."""

    name = "route-table"
    confidence = "high"
    decl_type = RouteTableDecl


class RouteElementConvention(_DeclarationConvention):
    """``<Routes><Route path=... element=... /></Routes>`` trees."""

    name = "route-element"
    confidence = "medium"
    decl_type = RouteElementDecl


_APP_ROUTER_RE = re.compile(
    r"(?:^|/)app/(?:(?P<dir>.*)/)?(?P<kind>page|layout)\.(?:tsx|ts|jsx|js|mdx|md)$"
)
_PAGES_ROUTER_RE = re.compile(r"(?:^|/)pages/(?P<route>.+)\.(?:tsx|ts|jsx|js|mdx|md)$")


def _segment_pattern(segment: str) -> Optional[str]:
    """Next.js directory segment -> route pattern segment, None to drop it."""
    if segment.startswith("(") and segment.endswith(")"):
        return None
    if segment.startswith("@"):
        return None
    if segment.startswith("[[...") and segment.endswith("]]"):
        return "*"
    if segment.startswith("[...") and segment.endswith("]"):
        return "*"
    if segment.startswith("[") and segment.endswith("]"):
        return ":" + segment[1:-1]
    return segment


def _pattern_from_segments(segments: Sequence[str]) -> str:
    parts = [p for p in (_segment_pattern(s) for s in segments if s) if p is not None]
    return "/" + "/".join(parts)


class FileSystemConvention(RouteConvention):
    """Next.js ``app/`` and ``pages/`` directory routing."""

    name = "file-system"
    confidence = "high"

    def extract(self, fact: FileFact, context: ExtractionContext) -> List[RouteRecord]:
        if "default" not in fact.exports:
            return []
        path = fact.path

        match = _APP_ROUTER_RE.search(path)
        if match and context.framework in (None, "nextjs"):
            directory = match.group("dir") or ""
            return [self._record(fact, _pattern_from_segments(directory.split("/")), match.group("kind"))]

        match = _PAGES_ROUTER_RE.search(path)
        if match and context.framework == "nextjs":
            segments = match.group("route").split("/")
            if segments[0] == "api" or any(s.startswith("_") for s in segments):
                return []
            if segments[-1] == "index":
                segments = segments[:-1]
            return [self._record(fact, _pattern_from_segments(segments), "page")]
        return []

    def _record(self, fact: FileFact, pattern: str, component: str) -> RouteRecord:
        return RouteRecord(
            route_path=pattern,
            defining_file=fact.path,
            component_file=fact.path,
            declaration_kind=self.name,
            confidence=self.confidence,
            line=1,
            component=component,
        )


class RouterFileHeuristic(RouteConvention):
    """Route-looking string literals, only inside files named like a router."""

    name = "router-file-heuristic"
    confidence = "low"

    def extract(self, fact: FileFact, context: ExtractionContext) -> List[RouteRecord]:
        if not self.is_router_file(fact.path, context.router_file_stems):
            return []
        return [
            RouteRecord(
                route_path=decl.path,
                defining_file=fact.path,
                component_file=fact.path,
                declaration_kind=self.name,
                confidence=self.confidence,
                line=decl.line,
            )
            for decl in fact.route_candidates
            if isinstance(decl, RoutePatternDecl) and decl.path
        ]

    @staticmethod
    def is_router_file(path: str, stems: Sequence[str]) -> bool:
        pure = PurePosixPath(path)
        stem = pure.name.split(".")[0].lower()
        if stem in stems:
            return True
        # src/router/index.ts
        return stem == "index" and pure.parent.name.lower() in stems


DEFAULT_CONVENTIONS: Tuple[Type[RouteConvention], ...] = (
    RouteTableConvention,
    RouteElementConvention,
    FileSystemConvention,
    RouterFileHeuristic,
)


# ===================================================================
# Extractor
# ===================================================================

class RouteExtractor:
    """Apply the registered conventions to one file at a time."""

    def __init__(
        self,
        conventions: Optional[Sequence[RouteConvention]] = None,
        framework: Optional[str] = None,
        router_file_stems: Tuple[str, ...] = ROUTER_FILE_STEMS,
    ) -> None:
        self.conventions: List[RouteConvention] = (
            list(conventions) if conventions is not None
            else [cls() for cls in DEFAULT_CONVENTIONS]
        )
        self.framework = framework
        self.router_file_stems = router_file_stems

    def register(self, convention: RouteConvention, before: Optional[str] = None) -> None:
        """Add a convention, optionally ahead of the one named *before*."""
        if before is not None:
            for index, existing in enumerate(self.conventions):
                if existing.name == before:
                    self.conventions.insert(index, convention)
                    return
            logger.warning("No convention named '%s'; appending '%s'", before, convention.name)
        self.conventions.append(convention)

    def extract(self, fact: FileFact, resolve: Optional[Resolve] = None) -> List[RouteRecord]:
        if fact.failed:
            return []
        context = ExtractionContext(
            resolve=resolve or _no_resolve,
            framework=self.framework,
            router_file_stems=self.router_file_stems,
        )
        for convention in self.conventions:
            records = convention.extract(fact, context)
            if records:
                unique: Dict[Tuple[str, int, str], RouteRecord] = {}
                for record in records:
                    unique.setdefault((record.route_path, record.line, record.component_file), record)
                return sorted(unique.values(), key=lambda r: r.sort_key)
        return []

    @staticmethod
    def unresolvable(fact: FileFact) -> List[UnresolvedRoutePath]:
        """Route declarations whose path could not be evaluated statically."""
        return [
            UnresolvedRoutePath(fact.path, decl.line, decl.expression)
            for decl in fact.route_candidates
            if decl.path is None
        ]
