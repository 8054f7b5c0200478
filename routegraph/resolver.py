"""Module specifier resolution against a fixed set of repository paths."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import EXTENSION_PRIORITY, STYLE_EXTENSIONS
from .models import ResolutionAmbiguity

# ESM TypeScript sources import siblings with a .js suffix.
_TS_SWAPS: Dict[str, Tuple[str, ...]] = {
    ".js": (".ts", ".tsx"),
    ".jsx": (".tsx",),
    ".mjs": (".mts",),
    ".cjs": (".cts",),
}


@dataclass(frozen=True)
class Resolution:
    target: Optional[str]
    lookups: Tuple[str, ...] = ()
    ambiguity: Optional[ResolutionAmbiguity] = None


def normalize_path(path: str) -> str:
    """Repo-relative POSIX form: no leading ``./``, forward slashes only."""
    cleaned = posixpath.normpath(path.replace("\\", "/"))
    if cleaned == ".":
        return ""
    return cleaned.lstrip("/") if not cleaned.startswith("../") else cleaned


def _escapes_root(path: str) -> bool:
    return path == ".." or path.startswith("../")


class ModuleResolver:
    """Resolve import specifiers to repository files.

    Handles relative specifiers, extension inference, ``index.*`` fallback
    and alias patterns (``"@/*" -> ["src/*"]``).  When several files match,
    the first by priority wins and the match is reported as ambiguous.
    """

    def __init__(
        self,
        paths: Iterable[str],
        aliases: Optional[Dict[str, List[str]]] = None,
        extensions: Sequence[str] = EXTENSION_PRIORITY + STYLE_EXTENSIONS,
    ) -> None:
        self.paths = frozenset(paths)
        self.extensions = tuple(extensions)
        self._known_suffixes = frozenset(self.extensions)
        self._lower: Dict[str, List[str]] = {}
        for path in sorted(self.paths):
            self._lower.setdefault(path.lower(), []).append(path)
        # Exact patterns first, then longest wildcard prefix.
        self._aliases = sorted(
            (aliases or {}).items(),
            key=lambda item: ("*" in item[0], -len(item[0].split("*", 1)[0]), item[0]),
        )

    # ------------------------------------------------------------------
    # Candidate generation
    # ------------------------------------------------------------------

    def base_paths(self, importer: str, specifier: str) -> List[str]:
        """Extension-less targets a specifier may refer to."""
        spec = specifier.split("?", 1)[0]
        if not spec:
            return []

        if spec in (".", "..") or spec.startswith(("./", "../")):
            joined = posixpath.join(posixpath.dirname(importer), spec)
            base = posixpath.normpath(joined)
            if _escapes_root(base):
                return []
            return ["" if base == "." else base]

        if spec.startswith("/"):
            return [normalize_path(spec)]

        bases: List[str] = []
        for pattern, targets in self._aliases:
            if "*" in pattern:
                prefix, suffix = pattern.split("*", 1)
                if not spec.startswith(prefix) or not spec.endswith(suffix):
                    continue
                if len(spec) < len(prefix) + len(suffix):
                    continue
                token = spec[len(prefix): len(spec) - len(suffix)]
                expanded = [t.replace("*", token, 1) for t in targets]
            elif spec == pattern:
                expanded = list(targets)
            else:
                continue
            for target in expanded:
                base = posixpath.normpath(target.replace("\\", "/"))
                if _escapes_root(base):
                    continue
                base = "" if base == "." else base.lstrip("/")
                if base not in bases:
                    bases.append(base)
        return bases

    def candidates(self, base: str) -> List[str]:
        suffix = PurePosixPath(base).suffix.lower() if base else ""
        if suffix in self._known_suffixes:
            found = [base]
            stem = base[: -len(suffix)]
            found.extend(stem + ext for ext in _TS_SWAPS.get(suffix, ()))
            return found
        prefix = f"{base}/index" if base else "index"
        found = [base + ext for ext in self.extensions] if base else []
        found.extend(prefix + ext for ext in self.extensions)
        return found

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, importer: str, specifier: str) -> Resolution:
        tried: List[str] = []
        for base in self.base_paths(importer, specifier):
            for candidate in self.candidates(base):
                if candidate not in tried:
                    tried.append(candidate)
        if not tried:
            return Resolution(target=None)

        lookups = tuple(sorted({c.lower() for c in tried}))

        exact = [c for c in tried if c in self.paths]
        if exact:
            ambiguity = None
            if len(exact) > 1:
                ambiguity = ResolutionAmbiguity(
                    importer=importer,
                    specifier=specifier,
                    chosen=exact[0],
                    candidates=tuple(exact),
                    reason="multiple matches",
                )
            return Resolution(target=exact[0], lookups=lookups, ambiguity=ambiguity)

        folded: List[str] = []
        for candidate in tried:
            for match in self._lower.get(candidate.lower(), ()):
                if match not in folded:
                    folded.append(match)
        if not folded:
            return Resolution(target=None, lookups=lookups)

        reason = (
            "case-insensitive match" if len(folded) == 1
            else "multiple case-insensitive matches"
        )
        return Resolution(
            target=folded[0],
            lookups=lookups,
            ambiguity=ResolutionAmbiguity(
                importer=importer,
                specifier=specifier,
                chosen=folded[0],
                candidates=tuple(folded),
                reason=reason,
            ),
        )
