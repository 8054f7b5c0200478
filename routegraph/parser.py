"""Structural indexer for JavaScript / TypeScript sources built on Tree-sitter.

Each file is reduced to a :class:`~routegraph.models.FileFact`:

- import specifiers (static, re-export, ``require``, dynamic ``import()``),
- exported and top-level declared names,
- raw route declarations (route tables, ``<Route>`` elements, route-looking
  string literals).

Tree-sitter is error tolerant, so files with small syntax errors still
yield best-effort facts (``degraded``).  Files that cannot be parsed at all
become ``failed`` facts with no imports and no routes; they never abort a
run.
"""

from __future__ import annotations

import hashlib
import importlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from tree_sitter import Language, Parser as TSParser

from .config import AnalysisConfig
from .errors import ParseError
from .models import (
    DEFERRED,
    PARSE_DEGRADED,
    PARSE_FAILED,
    PARSE_OK,
    STATIC,
    FileFact,
    ImportSpec,
    RouteDeclSpec,
    RouteElementDecl,
    RoutePatternDecl,
    RouteTableDecl,
)

logger = logging.getLogger(__name__)

# Keys of a route-table object that carry the rendered component.
COMPONENT_KEYS: Tuple[str, ...] = (
    "element", "component", "Component", "lazy", "loadComponent", "loadChildren",
)
# Attributes of a ``<Route>`` element that carry the rendered component.
COMPONENT_ATTRIBUTES: Tuple[str, ...] = (
    "element", "component", "Component", "render", "lazy",
)
PATTERN_KEYS: Tuple[str, ...] = ("path", "route", "url")

_DECLARATION_TYPES = {
    "function_declaration", "generator_function_declaration",
    "class_declaration", "abstract_class_declaration",
    "interface_declaration", "type_alias_declaration", "enum_declaration",
}
_VARIABLE_TYPES = {"lexical_declaration", "variable_declaration"}
_WRAPPER_TYPES = {
    "as_expression", "satisfies_expression", "parenthesized_expression",
    "non_null_expression",
}
# Nodes an ``import()`` / ``require()`` call may sit under while still
# being the value of a ``const X = ...`` declarator.
_CLIMB_THROUGH = {
    "arguments", "arrow_function", "call_expression", "member_expression",
    "parenthesized_expression", "await_expression", "statement_block",
    "return_statement", "function_expression", "function", "as_expression",
}
_JSX_TAGS = {"jsx_element", "jsx_self_closing_element"}
_EXPRESSION_PREVIEW = 120


def fingerprint(content: bytes) -> str:
    """Content hash used to detect stale facts."""
    return hashlib.blake2b(content, digest_size=16).hexdigest()


# ---------------------------------------------------------------------------
# Small node helpers
# ---------------------------------------------------------------------------

def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _preview(node: Any) -> str:
    return " ".join(_text(node).split())[:_EXPRESSION_PREVIEW]


def _unwrap(node: Any) -> Any:
    while node is not None and node.type in _WRAPPER_TYPES and node.named_children:
        node = node.named_children[0]
    return node


def _string_value(node: Any) -> Optional[str]:
    """Literal value of a string or substitution-free template, else None."""
    if node is None:
        return None
    if node.type == "string":
        raw = _text(node)
        return raw[1:-1] if len(raw) >= 2 else ""
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        raw = _text(node)
        return raw[1:-1] if len(raw) >= 2 else ""
    return None


def _key_name(node: Any) -> Optional[str]:
    if node is None:
        return None
    if node.type in ("property_identifier", "identifier", "number"):
        return _text(node)
    if node.type == "string":
        return _string_value(node)
    return None


def _pattern_names(node: Any) -> Tuple[str, ...]:
    """Names bound by a declarator target (identifier or destructuring)."""
    if node is None:
        return ()
    if node.type == "identifier":
        return (_text(node),)
    names: List[str] = []
    if node.type in ("object_pattern", "array_pattern"):
        for child in node.named_children:
            if child.type in ("identifier", "shorthand_property_identifier_pattern"):
                names.append(_text(child))
            elif child.type == "pair_pattern":
                names.extend(_pattern_names(child.child_by_field_name("value")))
            elif child.type == "object_assignment_pattern":
                names.extend(_pattern_names(child.child_by_field_name("left")))
            elif child.type in ("object_pattern", "array_pattern"):
                names.extend(_pattern_names(child))
    return tuple(names)


def _declaration_names(node: Any) -> Tuple[str, ...]:
    if node.type in _DECLARATION_TYPES:
        name = node.child_by_field_name("name")
        return (_text(name),) if name is not None else ()
    if node.type in _VARIABLE_TYPES:
        names: List[str] = []
        for child in node.named_children:
            if child.type == "variable_declarator":
                names.extend(_pattern_names(child.child_by_field_name("name")))
        return tuple(names)
    return ()


def _first_string_argument(call: Any) -> Optional[str]:
    args = call.child_by_field_name("arguments")
    if args is None or not args.named_children:
        return None
    return _string_value(args.named_children[0])


def _is_dynamic_import(node: Any) -> bool:
    if node.type != "call_expression":
        return False
    func = node.child_by_field_name("function")
    return func is not None and func.type == "import"


def _inline_import(node: Any) -> Optional[str]:
    """Specifier of the first literal ``import('...')`` under *node*."""
    stack = [node]
    while stack:
        current = stack.pop()
        if _is_dynamic_import(current):
            specifier = _first_string_argument(current)
            if specifier is not None:
                return specifier
        stack.extend(reversed(current.named_children))
    return None


def _error_coverage(root: Any, total: int) -> float:
    """Fraction of the source bytes that sit inside ERROR nodes."""
    covered = 0
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR":
            covered += node.end_byte - node.start_byte
            continue
        if node.has_error:
            stack.extend(node.children)
    return covered / max(total, 1)


def _walk(root: Any) -> Iterator[Any]:
    """Pre-order walk in source order that skips ERROR subtrees."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR":
            continue
        yield node
        stack.extend(reversed(node.children))


# ---------------------------------------------------------------------------
# JSX helpers
# ---------------------------------------------------------------------------

def _jsx_tag(node: Any) -> Optional[Any]:
    """The node holding name and attributes of a JSX element."""
    if node.type == "jsx_self_closing_element":
        return node
    if node.type == "jsx_element":
        for child in node.children:
            if child.type == "jsx_opening_element":
                return child
    return None


def _jsx_name(tag: Any) -> str:
    name = tag.child_by_field_name("name")
    return _text(name) if name is not None else ""


def _is_component_name(name: str) -> bool:
    return bool(name) and (name[0].isupper() or "." in name)


def _jsx_attributes(tag: Any) -> Dict[str, Optional[Any]]:
    attributes: Dict[str, Optional[Any]] = {}
    for child in tag.named_children:
        if child.type != "jsx_attribute" or not child.named_children:
            continue
        name = _text(child.named_children[0])
        value = child.named_children[1] if len(child.named_children) > 1 else None
        if value is not None and value.type == "jsx_expression":
            value = value.named_children[0] if value.named_children else None
        attributes.setdefault(name, value)
    return attributes


def _jsx_component_names(node: Any, depth: int = 0) -> List[str]:
    """Component names rendered under *node*, innermost first.

    ``<Suspense fallback={<Spinner />}><Settings /></Suspense>`` yields
    ``["Settings", "Suspense", "Spinner"]``: the wrapped page is usually the
    innermost element, attribute elements come last.
    """
    if depth > 64:
        return []
    names: List[str] = []
    tag = _jsx_tag(node)
    if tag is None:
        for child in node.named_children:
            names.extend(_jsx_component_names(child, depth + 1))
        return names

    if node.type == "jsx_element":
        for child in node.named_children:
            if child.type in ("jsx_opening_element", "jsx_closing_element"):
                continue
            names.extend(_jsx_component_names(child, depth + 1))
    name = _jsx_name(tag)
    if _is_component_name(name):
        names.append(name)
    for value in _jsx_attributes(tag).values():
        if value is not None:
            names.extend(_jsx_component_names(value, depth + 1))
    return names


def _dedupe(items: Iterable[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return tuple(seen)


# ===================================================================
# Fact extraction for one parsed tree
# ===================================================================

# (known prefix or None at top level, dynamic expression or "")
_Context = Tuple[Optional[str], str]
_TOP: _Context = (None, "")


def join_route_path(parent: Optional[str], path: str) -> str:
    """Join a nested route segment onto its parent pattern."""
    if not parent:
        return path or "/"
    if not path:
        return parent
    if path.startswith("/"):
        return path
    return parent.rstrip("/") + "/" + path


class _FactCollector:
    """Walks one syntax tree and accumulates the pieces of a FileFact."""

    def __init__(self) -> None:
        self.imports: List[ImportSpec] = []
        self.exports: set = set()
        self.declarations: set = set()
        self.constants: Dict[str, str] = {}
        self.routes: List[RouteDeclSpec] = []
        self._patterns: set = set()

    def collect(self, root: Any) -> None:
        self._collect_top_level(root)
        for node in _walk(root):
            if node.type == "import_statement":
                self._handle_import(node)
            elif node.type == "export_statement":
                self._handle_export(node)
            elif node.type == "call_expression":
                self._handle_call(node)
        self._collect_routes(root)

    # ------------------------------------------------------------------
    # Imports / exports
    # ------------------------------------------------------------------

    def _handle_import(self, node: Any) -> None:
        source = node.child_by_field_name("source")
        names: List[str] = []
        for child in node.named_children:
            if child.type == "import_clause":
                names.extend(self._import_clause_names(child))
            elif child.type == "import_require_clause":
                # import X = require('./x')
                for part in child.named_children:
                    if part.type == "identifier":
                        names.append(_text(part))
                    elif part.type == "string" and source is None:
                        source = part
        specifier = _string_value(source)
        if specifier:
            self.imports.append(
                ImportSpec(specifier, STATIC, tuple(names), _line(node))
            )

    @staticmethod
    def _import_clause_names(clause: Any) -> List[str]:
        names: List[str] = []
        for child in clause.named_children:
            if child.type == "identifier":
                names.append(_text(child))
            elif child.type == "namespace_import":
                names.extend(
                    _text(c) for c in child.named_children if c.type == "identifier"
                )
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    bound = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                    if bound is not None:
                        names.append(_text(bound))
        return names

    def _handle_export(self, node: Any) -> None:
        source = node.child_by_field_name("source")
        specifier = _string_value(source)
        if specifier:
            self.imports.append(ImportSpec(specifier, STATIC, (), _line(node)))

        is_default = False
        for child in node.children:
            if child.type == "default":
                is_default = True
                self.exports.add("default")
            elif child.type == "*":
                self.exports.add("*")
            elif child.type == "namespace_export":
                self.exports.update(
                    _text(c) for c in child.named_children if c.type == "identifier"
                )
            elif child.type == "export_clause":
                for spec in child.named_children:
                    if spec.type != "export_specifier":
                        continue
                    bound = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                    if bound is not None:
                        self.exports.add(_key_name(bound) or _text(bound))

        declaration = node.child_by_field_name("declaration")
        if declaration is not None and not is_default:
            self.exports.update(_declaration_names(declaration))

    def _handle_call(self, node: Any) -> None:
        func = node.child_by_field_name("function")
        if func is None:
            return
        if func.type == "import":
            kind = DEFERRED
        elif func.type == "identifier" and _text(func) == "require":
            kind = STATIC
        else:
            return
        specifier = _first_string_argument(node)
        if specifier:
            self.imports.append(
                ImportSpec(specifier, kind, self._bound_names(node), _line(node))
            )

    @staticmethod
    def _bound_names(call: Any) -> Tuple[str, ...]:
        """Names of the ``const X = ...`` that the call's value lands in."""
        current = call.parent
        for _ in range(12):
            if current is None:
                break
            if current.type == "variable_declarator":
                return _pattern_names(current.child_by_field_name("name"))
            if current.type not in _CLIMB_THROUGH:
                break
            current = current.parent
        return ()

    # ------------------------------------------------------------------
    # Top-level declarations and string constants
    # ------------------------------------------------------------------

    def _collect_top_level(self, root: Any) -> None:
        for child in root.named_children:
            declaration = child
            if child.type == "export_statement":
                declaration = child.child_by_field_name("declaration")
                if declaration is None:
                    continue
            self.declarations.update(_declaration_names(declaration))
            if declaration.type in _VARIABLE_TYPES:
                self._collect_constants(declaration)

    def _collect_constants(self, declaration: Any) -> None:
        for declarator in declaration.named_children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            value = _unwrap(declarator.child_by_field_name("value"))
            if name is None or name.type != "identifier" or value is None:
                continue
            literal = _string_value(value)
            if literal is not None:
                self.constants[_text(name)] = literal
            elif value.type == "object":
                # const ROUTES = { HOME: '/home' } as const
                for pair in value.named_children:
                    if pair.type != "pair":
                        continue
                    key = _key_name(pair.child_by_field_name("key"))
                    member = _string_value(_unwrap(pair.child_by_field_name("value")))
                    if key is not None and member is not None:
                        self.constants[f"{_text(name)}.{key}"] = member

    def _static_value(self, node: Any) -> Optional[str]:
        node = _unwrap(node)
        if node is None:
            return None
        literal = _string_value(node)
        if literal is not None:
            return literal
        if node.type in ("identifier", "member_expression", "shorthand_property_identifier"):
            return self.constants.get(_text(node))
        return None

    # ------------------------------------------------------------------
    # Route declarations
    # ------------------------------------------------------------------

    def _collect_routes(self, root: Any) -> None:
        stack: List[Tuple[Any, _Context]] = [(root, _TOP)]
        while stack:
            node, context = stack.pop()
            if node.type == "ERROR":
                continue
            if node.type == "object":
                pairs = self._route_object(node)
                if pairs is not None:
                    pushes = self._emit_table_route(node, pairs, context)
                    stack.extend(reversed(pushes))
                    continue
            elif node.type in _JSX_TAGS:
                tag = _jsx_tag(node)
                attributes = _jsx_attributes(tag) if tag is not None else {}
                if tag is not None and self._is_route_element(tag, attributes):
                    pushes = self._emit_element_route(node, attributes, context)
                    stack.extend(reversed(pushes))
                    continue
            elif node.type == "pair":
                self._maybe_pattern_pair(node)
            elif node.type == "call_expression":
                self._maybe_pattern_call(node)
            stack.extend((child, context) for child in reversed(node.children))

    def _resolve_path(self, value: Optional[Any], context: _Context) -> Tuple[Optional[str], str]:
        """Full pattern and, when it is computed at runtime, its expression."""
        prefix, dynamic = context
        own_path: Optional[str] = ""
        own_expr = ""
        if value is not None:
            own_path = self._static_value(value)
            if own_path is None:
                own_expr = _preview(value)
        if dynamic or own_expr:
            parent_text = dynamic or (prefix or "")
            own_text = own_expr or own_path or ""
            return None, "/".join(part for part in (parent_text, own_text) if part)
        return join_route_path(prefix, own_path or ""), ""

    def _component_refs(self, values: Iterable[Any]) -> Tuple[Tuple[str, ...], Optional[str]]:
        names: List[str] = []
        specifier: Optional[str] = None
        for value in values:
            value = _unwrap(value)
            if value is None:
                continue
            if value.type in _JSX_TAGS or value.type == "jsx_fragment":
                names.extend(_jsx_component_names(value))
            elif value.type in ("identifier", "shorthand_property_identifier", "member_expression"):
                names.append(_text(value))
            else:
                inline = _inline_import(value)
                if inline is not None:
                    if specifier is None:
                        specifier = inline
                else:
                    names.extend(_jsx_component_names(value))
        return _dedupe(names), specifier

    # -- route tables ----------------------------------------------------

    @staticmethod
    def _route_object(node: Any) -> Optional[Dict[str, Any]]:
        pairs: Dict[str, Any] = {}
        for child in node.named_children:
            if child.type == "pair":
                key = _key_name(child.child_by_field_name("key"))
                value = child.child_by_field_name("value")
                if key is not None and value is not None:
                    pairs.setdefault(key, value)
            elif child.type == "shorthand_property_identifier":
                pairs.setdefault(_text(child), child)

        has_path = "path" in pairs
        has_index = "index" in pairs and _text(pairs["index"]) == "true"
        has_component = any(key in pairs for key in COMPONENT_KEYS)
        has_children = "children" in pairs and _unwrap(pairs["children"]).type == "array"
        if (has_path or has_index) and (has_component or has_children):
            return pairs
        if has_component and has_children:
            return pairs
        return None

    def _emit_table_route(
        self, node: Any, pairs: Dict[str, Any], context: _Context,
    ) -> List[Tuple[Any, _Context]]:
        path, expression = self._resolve_path(pairs.get("path"), context)
        components, specifier = self._component_refs(
            pairs[key] for key in COMPONENT_KEYS if key in pairs
        )
        if components or specifier:
            self.routes.append(RouteTableDecl(
                path=path,
                line=_line(node),
                components=components,
                component_specifier=specifier,
                expression=expression,
            ))

        pushes: List[Tuple[Any, _Context]] = []
        for key, value in pairs.items():
            if key == "children":
                pushes.append((_unwrap(value), (path, expression)))
            elif key not in ("path", "index"):
                pushes.append((value, _TOP))
        return pushes

    # -- <Route> elements ------------------------------------------------

    @staticmethod
    def _is_route_element(tag: Any, attributes: Dict[str, Optional[Any]]) -> bool:
        name = _jsx_name(tag)
        if not name:
            return False
        has_path = "path" in attributes
        has_index = "index" in attributes
        has_component = any(attr in attributes for attr in COMPONENT_ATTRIBUTES)
        if name.split(".")[-1].endswith("Route"):
            return has_path or has_index or has_component
        return has_path and has_component

    def _emit_element_route(
        self, node: Any, attributes: Dict[str, Optional[Any]], context: _Context,
    ) -> List[Tuple[Any, _Context]]:
        path, expression = self._resolve_path(attributes.get("path"), context)
        components, specifier = self._component_refs(
            attributes[attr] for attr in COMPONENT_ATTRIBUTES
            if attributes.get(attr) is not None
        )

        nested: List[Any] = []
        if node.type == "jsx_element":
            nested = [
                child for child in node.named_children
                if child.type not in ("jsx_opening_element", "jsx_closing_element", "jsx_text")
            ]
        if not components and specifier is None:
            # <Route path="/x"><X /></Route>
            rendered: List[str] = []
            for child in nested:
                tag = _jsx_tag(child)
                if tag is not None and self._is_route_element(tag, _jsx_attributes(tag)):
                    continue
                rendered.extend(_jsx_component_names(child))
            components = _dedupe(rendered)

        if components or specifier:
            self.routes.append(RouteElementDecl(
                path=path,
                line=_line(node),
                components=components,
                component_specifier=specifier,
                expression=expression,
            ))
        return [(child, (path, expression)) for child in nested]

    # -- route-looking literals ------------------------------------------

    def _add_pattern(self, path: str, node: Any) -> None:
        key = (path, _line(node))
        if key in self._patterns:
            return
        self._patterns.add(key)
        self.routes.append(RoutePatternDecl(path=path, line=key[1], expression=_preview(node)))

    def _maybe_pattern_pair(self, node: Any) -> None:
        key = _key_name(node.child_by_field_name("key"))
        if key not in PATTERN_KEYS:
            return
        value = self._static_value(node.child_by_field_name("value"))
        if value and value.startswith("/"):
            self._add_pattern(value, node)

    def _maybe_pattern_call(self, node: Any) -> None:
        func = node.child_by_field_name("function")
        if func is None:
            return
        if func.type == "member_expression":
            func = func.child_by_field_name("property")
        if func is None or func.type not in ("identifier", "property_identifier"):
            return
        if not _text(func).lower().endswith("route"):
            return
        args = node.child_by_field_name("arguments")
        if args is None or not args.named_children:
            return
        value = self._static_value(args.named_children[0])
        if value and value.startswith("/"):
            self._add_pattern(value, node)


# ===================================================================
# Tree-sitter grammar loading
# ===================================================================

class TreeSitterParser:
    """Thin wrapper owning one Tree-sitter parser per loaded grammar.

    Tree-sitter parser objects are not thread safe; :class:`SourceIndexer`
    keeps one instance of this class per worker thread.
    """

    # language -> (module, function returning the Language capsule)
    _GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
        "javascript": ("tree_sitter_javascript", "language"),
        "typescript": ("tree_sitter_typescript", "language_typescript"),
        "tsx": ("tree_sitter_typescript", "language_tsx"),
    }

    def __init__(self, languages: Optional[List[str]] = None) -> None:
        self._parsers: Dict[str, Any] = {}
        self._requested_languages = languages or list(self._GRAMMAR_MODULES)
        self._init_parsers()

    def _init_parsers(self) -> None:
        for lang in self._requested_languages:
            entry = self._GRAMMAR_MODULES.get(lang)
            if entry is None:
                logger.warning("No grammar module mapped for language '%s'", lang)
                continue
            mod_name, func_name = entry
            try:
                mod = importlib.import_module(mod_name)
                ts_lang = Language(getattr(mod, func_name)())
                self._parsers[lang] = TSParser(ts_lang)
                logger.debug("Loaded tree-sitter parser for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )
            except Exception as exc:
                logger.warning("Could not load tree-sitter grammar for %s: %s", lang, exc)

    def supports_language(self, language: str) -> bool:
        return language in self._parsers

    def parse(self, path: str, language: str, source: bytes) -> Any:
        parser = self._parsers.get(language)
        if parser is None:
            raise ParseError(path, f"no grammar loaded for {language}")
        return parser.parse(source)


# ===================================================================
# Public indexer
# ===================================================================

class SourceIndexer:
    """Turn file contents into :class:`FileFact` records.

    ``index`` never raises for a bad file: oversized, binary or unparsable
    content comes back as a ``failed`` fact carrying the reason.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()
        self._local = threading.local()

    def _parser(self) -> TreeSitterParser:
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = TreeSitterParser()
            self._local.parser = parser
        return parser

    def index(self, path: str, content: bytes) -> FileFact:
        content_hash = fingerprint(content)
        language = self.config.language_for(path)
        if language == "style":
            # Style sheets are import leaves.
            return FileFact(path=path, content_hash=content_hash, language="style")

        try:
            if language is None:
                raise ParseError(path, "unsupported file type")
            if len(content) > self.config.max_file_size:
                raise ParseError(path, f"file exceeds {self.config.max_file_size} bytes")
            if b"\x00" in content:
                raise ParseError(path, "binary content")

            tree = self._parser().parse(path, language, content)
            root = tree.root_node
            coverage = _error_coverage(root, len(content))
            if root.type == "ERROR" or coverage >= self.config.failed_error_ratio:
                raise ParseError(path, f"syntax errors cover {coverage:.0%} of the file")

            collector = _FactCollector()
            collector.collect(root)
        except ParseError as exc:
            logger.warning("Parse failed for %s: %s", path, exc.reason)
            return FileFact(
                path=path,
                content_hash=content_hash,
                language=language or "unknown",
                parse_status=PARSE_FAILED,
                error=exc.reason,
            )
        except Exception as exc:
            logger.warning("Failed to index %s: %s", path, exc)
            return FileFact(
                path=path,
                content_hash=content_hash,
                language=language or "unknown",
                parse_status=PARSE_FAILED,
                error=str(exc),
            )

        status = PARSE_DEGRADED if root.has_error else PARSE_OK
        if status == PARSE_DEGRADED:
            logger.info("Partial parse for %s (%.0f%% in error regions)", path, coverage * 100)
        return FileFact(
            path=path,
            content_hash=content_hash,
            language=language,
            imports=tuple(collector.imports),
            exports=frozenset(collector.exports),
            declarations=frozenset(collector.declarations),
            route_candidates=tuple(collector.routes),
            parse_status=status,
        )

    def index_many(
        self,
        items: Iterable[Tuple[str, bytes]],
        workers: Optional[int] = None,
    ) -> List[FileFact]:
        """Index ``(path, content)`` pairs, in parallel when worthwhile.

        Results are returned sorted by path regardless of completion order.
        """
        items = list(items)
        workers = workers or self.config.worker_count
        if workers <= 1 or len(items) <= 1:
            facts = [self.index(path, content) for path, content in items]
        else:
            facts = []
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    pool.submit(self.index, path, content): path
                    for path, content in items
                }
                for future in as_completed(futures):
                    facts.append(future.result())
        return sorted(facts, key=lambda fact: fact.path)


def iter_source_files(root: Path, config: AnalysisConfig) -> Iterator[str]:
    """Yield repo-relative POSIX paths of indexable files, sorted."""
    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in config.skip_dirs)
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        for filename in filenames:
            rel = filename if rel_dir == "." else f"{rel_dir}/{filename}"
            if config.is_indexable(rel):
                found.append(rel)
    yield from sorted(found)
