"""Configuration paths and analysis settings for routegraph.

Settings come from three layers, later ones winning:

1. built-in defaults (:class:`AnalysisConfig`),
2. the user file ``~/.routegraph/config.toml`` (section ``[analysis]``),
3. a repository file ``<repo>/.routegraph.toml`` (section ``[analysis]``).

Path aliases declared in ``tsconfig.json`` / ``jsconfig.json`` are merged in
underneath explicitly configured ones.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Set, Tuple

import toml

logger = logging.getLogger(__name__)

BASE_DIR = Path(os.environ.get("ROUTEGRAPH_HOME", str(Path.home() / ".routegraph"))).expanduser()
CACHE_DIR = BASE_DIR / "cache"
CONFIG_FILE = BASE_DIR / "config.toml"
REPO_CONFIG_NAME = ".routegraph.toml"

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
CODE_EXTENSIONS: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}

STYLE_EXTENSIONS: Tuple[str, ...] = (".css", ".scss", ".sass", ".less")

# Resolution order when a specifier omits its extension.
EXTENSION_PRIORITY: Tuple[str, ...] = (
    ".tsx", ".ts", ".jsx", ".js", ".mjs", ".cjs", ".mts", ".cts",
)

SKIP_DIRS: Set[str] = {
    "node_modules", ".git", ".hg", ".svn", "dist", "build", "out",
    ".next", ".nuxt", ".svelte-kit", ".turbo", ".cache", "coverage",
    ".venv", "venv", "__pycache__", ".routegraph",
}

DEFAULT_ALIASES: Dict[str, List[str]] = {
    "@/*": ["src/*"],
    "src/*": ["src/*"],
}

ROUTER_FILE_STEMS: Tuple[str, ...] = ("router", "routes", "routing")

# Style sheets named like these, or living in these directories, apply to
# every page. CSS modules (``*.module.css``) never do.
GLOBAL_STYLE_NAMES: Tuple[str, ...] = ("global", "globals", "app", "index", "main")
GLOBAL_STYLE_DIRS: Tuple[str, ...] = ("styles",)

FRAMEWORK_DEPENDENCIES: Tuple[Tuple[str, str], ...] = (
    ("react-router-dom", "react-router"),
    ("react-router", "react-router"),
    ("@tanstack/react-router", "react-router"),
    ("next", "nextjs"),
    ("vue-router", "vue"),
    ("@angular/router", "angular"),
)


@dataclass(frozen=True)
class AnalysisConfig:
    code_extensions: Dict[str, str] = field(default_factory=lambda: dict(CODE_EXTENSIONS))
    style_extensions: Tuple[str, ...] = STYLE_EXTENSIONS
    extension_priority: Tuple[str, ...] = EXTENSION_PRIORITY
    skip_dirs: Set[str] = field(default_factory=lambda: set(SKIP_DIRS))
    aliases: Dict[str, List[str]] = field(default_factory=lambda: dict(DEFAULT_ALIASES))
    router_file_stems: Tuple[str, ...] = ROUTER_FILE_STEMS
    max_file_size: int = 1024 * 1024
    workers: int = 0
    failed_error_ratio: float = 0.5
    framework: Optional[str] = None
    global_styles: bool = True
    global_style_names: Tuple[str, ...] = GLOBAL_STYLE_NAMES
    global_style_dirs: Tuple[str, ...] = GLOBAL_STYLE_DIRS

    @property
    def worker_count(self) -> int:
        if self.workers > 0:
            return self.workers
        return max(1, os.cpu_count() or 1)

    @property
    def resolvable_extensions(self) -> Tuple[str, ...]:
        """Extensions tried, in order, for an extension-less specifier."""
        ordered = list(self.extension_priority)
        for ext in list(self.code_extensions) + list(self.style_extensions):
            if ext not in ordered:
                ordered.append(ext)
        return tuple(ordered)

    def language_for(self, path: str) -> Optional[str]:
        suffix = PurePosixPath(path).suffix.lower()
        if suffix in self.code_extensions:
            return self.code_extensions[suffix]
        if suffix in self.style_extensions:
            return "style"
        return None

    def is_indexable(self, path: str) -> bool:
        parts = PurePosixPath(path).parts
        if any(part in self.skip_dirs for part in parts[:-1]):
            return False
        return self.language_for(path) is not None

    def is_global_style(self, path: str) -> bool:
        """Whether a change to *path* restyles every route."""
        if not self.global_styles or self.language_for(path) != "style":
            return False
        pure = PurePosixPath(path)
        name = pure.name.lower()
        if ".module." in name:
            return False
        tokens = set(re.split(r"[^a-z0-9]+", PurePosixPath(name).stem))
        if tokens & set(self.global_style_names):
            return True
        return any(part.lower() in self.global_style_dirs for part in pure.parts[:-1])


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    CACHE_DIR.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# TOML layers
# ---------------------------------------------------------------------------

def _read_toml_section(path: Path, section: str = "analysis") -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    value = payload.get(section, {})
    return value if isinstance(value, dict) else {}


def _normalize_aliases(raw: Dict[str, Any]) -> Dict[str, List[str]]:
    """Accept both ``"@/" = "src/"`` and ``"@/*" = ["src/*"]`` forms."""
    aliases: Dict[str, List[str]] = {}
    for key, value in raw.items():
        targets = [value] if isinstance(value, str) else [str(v) for v in value]
        if key.endswith("/") and "*" not in key:
            key = key + "*"
            targets = [t if t.endswith("*") else t.rstrip("/") + "/*" for t in targets]
        aliases[key] = targets
    return aliases


def _apply_overrides(config: AnalysisConfig, overrides: Dict[str, Any]) -> AnalysisConfig:
    known = {f.name for f in fields(AnalysisConfig)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            logger.warning("Unknown [analysis] setting '%s' ignored", key)
            continue
        if key == "aliases":
            merged = dict(config.aliases)
            merged.update(_normalize_aliases(value))
            changes[key] = merged
        elif key == "skip_dirs":
            changes[key] = set(value)
        elif key == "code_extensions":
            changes[key] = dict(value)
        elif key in (
            "style_extensions", "extension_priority", "router_file_stems",
            "global_style_names", "global_style_dirs",
        ):
            changes[key] = tuple(value)
        else:
            changes[key] = value
    return replace(config, **changes) if changes else config


# ---------------------------------------------------------------------------
# tsconfig / jsconfig aliases
# ---------------------------------------------------------------------------

_JSON_COMMENT_RE = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def _strip_json_comments(text: str) -> str:
    text = _JSON_COMMENT_RE.sub(
        lambda m: m.group(0) if m.group(0).startswith('"') else "", text,
    )
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def load_tsconfig_aliases(repo_root: Path) -> Dict[str, List[str]]:
    """Translate ``compilerOptions.paths`` into repo-relative alias patterns."""
    for name in ("tsconfig.json", "jsconfig.json"):
        path = repo_root / name
        if not path.is_file():
            continue
        try:
            payload = json.loads(_strip_json_comments(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            continue
        options = payload.get("compilerOptions") or {}
        base_url = str(options.get("baseUrl") or ".")
        paths = options.get("paths") or {}
        aliases: Dict[str, List[str]] = {}
        if isinstance(paths, dict):
            for pattern, targets in paths.items():
                if not isinstance(targets, list):
                    continue
                aliases[pattern] = [
                    os.path.normpath(os.path.join(base_url, str(t))).replace("\\", "/")
                    for t in targets
                ]
        if options.get("baseUrl") and "*" not in aliases:
            root = os.path.normpath(base_url).replace("\\", "/")
            aliases["*"] = ["*" if root == "." else f"{root}/*"]
        return aliases
    return {}


def detect_framework(repo_root: Path) -> Optional[str]:
    """Guess the routing framework from ``package.json`` dependencies."""
    package_json = repo_root / "package.json"
    if not package_json.is_file():
        return None
    try:
        payload = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read %s: %s", package_json, exc)
        return None
    deps: Dict[str, Any] = {}
    for key in ("dependencies", "devDependencies", "peerDependencies"):
        section = payload.get(key)
        if isinstance(section, dict):
            deps.update(section)
    for dep, framework in FRAMEWORK_DEPENDENCIES:
        if dep in deps:
            return framework
    return None


def load_config(repo_root: Optional[Path] = None) -> AnalysisConfig:
    """Build the effective :class:`AnalysisConfig` for *repo_root*."""
    user_layer = _read_toml_section(CONFIG_FILE)
    config = _apply_overrides(AnalysisConfig(), user_layer)
    if repo_root is None:
        return config

    repo_layer = _read_toml_section(repo_root / REPO_CONFIG_NAME)
    config = _apply_overrides(config, repo_layer)

    # defaults < tsconfig paths < explicitly configured aliases
    ts_aliases = load_tsconfig_aliases(repo_root)
    if ts_aliases:
        merged = dict(DEFAULT_ALIASES)
        merged.update(ts_aliases)
        for layer in (user_layer, repo_layer):
            explicit = layer.get("aliases")
            if isinstance(explicit, dict):
                merged.update(_normalize_aliases(explicit))
        config = replace(config, aliases=merged)

    if config.framework is None:
        framework = detect_framework(repo_root)
        if framework:
            logger.info("Detected framework: %s", framework)
            config = replace(config, framework=framework)
    return config
