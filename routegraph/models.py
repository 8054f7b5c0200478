"""Core data models shared by indexing, graph building, extraction and propagation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Union

ParseStatus = Literal["ok", "degraded", "failed"]
EdgeKind = Literal["static", "deferred"]
Reachability = Literal["direct", "via-static-import", "via-deferred-import", "global-style"]
Confidence = Literal["high", "medium", "low"]

PARSE_OK: ParseStatus = "ok"
PARSE_DEGRADED: ParseStatus = "degraded"
PARSE_FAILED: ParseStatus = "failed"

STATIC: EdgeKind = "static"
DEFERRED: EdgeKind = "deferred"

DIRECT: Reachability = "direct"
VIA_STATIC: Reachability = "via-static-import"
VIA_DEFERRED: Reachability = "via-deferred-import"
GLOBAL_STYLE: Reachability = "global-style"


# ---------------------------------------------------------------------------
# Raw facts produced by the indexer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportSpec:
    """An import as written in the source, before resolution."""
    specifier: str
    kind: EdgeKind = STATIC
    names: Tuple[str, ...] = ()
    line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specifier": self.specifier,
            "kind": self.kind,
            "names": list(self.names),
            "line": self.line,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ImportSpec":
        return cls(
            specifier=payload["specifier"],
            kind=payload.get("kind", STATIC),
            names=tuple(payload.get("names", ())),
            line=int(payload.get("line", 0)),
        )


@dataclass(frozen=True)
class RouteTableDecl:
    """``{ path: '/x', element: <X /> }`` inside a route table."""
    path: Optional[str]
    line: int
    components: Tuple[str, ...] = ()
    component_specifier: Optional[str] = None
    expression: str = ""
    kind: str = "route-table"


@dataclass(frozen=True)
class RouteElementDecl:
    """``<Route path="/x" element={<X />} />`` inside a JSX tree."""
    path: Optional[str]
    line: int
    components: Tuple[str, ...] = ()
    component_specifier: Optional[str] = None
    expression: str = ""
    kind: str = "route-element"


@dataclass(frozen=True)
class RoutePatternDecl:
    """A route-looking string literal, only trusted in router-named files."""
    path: Optional[str]
    line: int
    expression: str = ""
    kind: str = "router-file-heuristic"


RouteDeclSpec = Union[RouteTableDecl, RouteElementDecl, RoutePatternDecl]

_DECL_TYPES = {
    RouteTableDecl.kind: RouteTableDecl,
    RouteElementDecl.kind: RouteElementDecl,
    RoutePatternDecl.kind: RoutePatternDecl,
}


def decl_to_dict(decl: RouteDeclSpec) -> Dict[str, Any]:
    payload = asdict(decl)
    if "components" in payload:
        payload["components"] = list(payload["components"])
    return payload


def decl_from_dict(payload: Dict[str, Any]) -> RouteDeclSpec:
    data = dict(payload)
    cls = _DECL_TYPES.get(data.get("kind", ""))
    if cls is None:
        raise ValueError(f"Unknown route declaration kind: {data.get('kind')!r}")
    if "components" in data:
        data["components"] = tuple(data["components"])
    return cls(**data)


@dataclass(frozen=True)
class FileFact:
    path: str
    content_hash: str
    language: str = "unknown"
    imports: Tuple[ImportSpec, ...] = ()
    exports: FrozenSet[str] = frozenset()
    declarations: FrozenSet[str] = frozenset()
    route_candidates: Tuple[RouteDeclSpec, ...] = ()
    parse_status: ParseStatus = PARSE_OK
    error: str = ""

    @property
    def failed(self) -> bool:
        return self.parse_status == PARSE_FAILED

    def bindings(self) -> Dict[str, ImportSpec]:
        """Map each locally bound import name to the import that introduced it."""
        bound: Dict[str, ImportSpec] = {}
        for spec in self.imports:
            for name in spec.names:
                bound.setdefault(name, spec)
        return bound

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "content_hash": self.content_hash,
            "language": self.language,
            "imports": [spec.to_dict() for spec in self.imports],
            "exports": sorted(self.exports),
            "declarations": sorted(self.declarations),
            "route_candidates": [decl_to_dict(d) for d in self.route_candidates],
            "parse_status": self.parse_status,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FileFact":
        return cls(
            path=payload["path"],
            content_hash=payload["content_hash"],
            language=payload.get("language", "unknown"),
            imports=tuple(ImportSpec.from_dict(i) for i in payload.get("imports", ())),
            exports=frozenset(payload.get("exports", ())),
            declarations=frozenset(payload.get("declarations", ())),
            route_candidates=tuple(
                decl_from_dict(d) for d in payload.get("route_candidates", ())
            ),
            parse_status=payload.get("parse_status", PARSE_OK),
            error=payload.get("error", ""),
        )


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportEdge:
    from_path: str
    to_path: str
    kind: EdgeKind = STATIC


@dataclass(frozen=True)
class ResolutionAmbiguity:
    """A specifier that matched more than one file, or only case-insensitively."""
    importer: str
    specifier: str
    chosen: str
    candidates: Tuple[str, ...]
    reason: str

    def __str__(self) -> str:
        others = ", ".join(c for c in self.candidates if c != self.chosen)
        suffix = f" (also matched: {others})" if others else ""
        return (
            f"{self.importer}: '{self.specifier}' resolved to {self.chosen} "
            f"[{self.reason}]{suffix}"
        )


# ---------------------------------------------------------------------------
# Routes and impact
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RouteRecord:
    route_path: str
    defining_file: str
    component_file: str
    declaration_kind: str
    confidence: Confidence = "high"
    line: int = 0
    component: str = ""

    @property
    def sort_key(self) -> Tuple[str, str, int, str, str]:
        return (
            self.route_path, self.defining_file, self.line,
            self.component_file, self.declaration_kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routePath": self.route_path,
            "definingFile": self.defining_file,
            "componentFile": self.component_file,
            "declarationKind": self.declaration_kind,
            "confidence": self.confidence,
            "line": self.line,
            "component": self.component,
        }


@dataclass(frozen=True)
class UnresolvedRoutePath:
    """A route declaration whose path is computed at runtime."""
    defining_file: str
    line: int
    expression: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "definingFile": self.defining_file,
            "line": self.line,
            "expression": self.expression,
        }


@dataclass
class RouteImpact:
    route: RouteRecord
    reachability: Reachability
    causal_chain: List[str] = field(default_factory=list)
    alternate_chains: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.route.to_dict()
        payload["reachabilityKind"] = self.reachability
        payload["causalChain"] = list(self.causal_chain)
        if self.alternate_chains:
            payload["alternateChains"] = [list(c) for c in self.alternate_chains]
        return payload


@dataclass
class ImpactResult:
    impacts: Dict[str, List[RouteImpact]] = field(default_factory=dict)
    unresolved: List[str] = field(default_factory=list)
    reasons: Dict[str, str] = field(default_factory=dict)
    parse_status: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    unresolvable_routes: List[UnresolvedRoutePath] = field(default_factory=list)
    # changed file -> route patterns it reaches, when it reaches more than one
    shared_components: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def affected_routes(self) -> List[str]:
        """Distinct route patterns reached by any changed file, sorted."""
        return sorted({
            impact.route.route_path
            for impacts in self.impacts.values()
            for impact in impacts
        })

    def routes_for(self, path: str) -> List[RouteRecord]:
        return [impact.route for impact in self.impacts.get(path, [])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "impacts": {
                path: [impact.to_dict() for impact in impacts]
                for path, impacts in self.impacts.items()
            },
            "unresolved": list(self.unresolved),
            "reasons": dict(self.reasons),
            "parseStatus": dict(self.parse_status),
            "warnings": list(self.warnings),
            "unresolvableRoutes": [r.to_dict() for r in self.unresolvable_routes],
            "sharedComponents": {
                path: list(routes) for path, routes in self.shared_components.items()
            },
        }
