"""Pytest configuration and fixtures for routegraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from routegraph.config import AnalysisConfig
from routegraph.graph import ImportGraphBuilder
from routegraph.models import DEFERRED, STATIC, FileFact, ImportSpec
from routegraph.parser import SourceIndexer
from routegraph.storage import FactStore, ProjectManager


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    """Keep every test away from the real ``~/.routegraph`` directory."""
    home = tmp_path_factory.mktemp("routegraph_home")
    cache_dir = home / "cache"
    monkeypatch.setattr("routegraph.config.BASE_DIR", home)
    monkeypatch.setattr("routegraph.config.CACHE_DIR", cache_dir)
    monkeypatch.setattr("routegraph.config.CONFIG_FILE", home / "config.toml")
    # storage imports CACHE_DIR at module load
    monkeypatch.setattr("routegraph.storage.CACHE_DIR", cache_dir)
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app_path() -> Path:
    """Path to the sample React application."""
    return Path(__file__).parent / "fixtures" / "sample_app"


@pytest.fixture
def sample_app_copy(temp_dir: Path, sample_app_path: Path) -> Path:
    """Writable copy of the sample application."""
    target = temp_dir / "sample_app"
    shutil.copytree(sample_app_path, target)
    return target


@pytest.fixture
def make_repo(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: source}`` into a fresh repository directory."""

    def _make(files: Dict[str, str]) -> Path:
        root = temp_dir / "repo"
        for rel, source in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return _make


@pytest.fixture
def indexer() -> SourceIndexer:
    return SourceIndexer(AnalysisConfig(workers=1))


@pytest.fixture
def index_source(indexer: SourceIndexer) -> Callable[[str, str], FileFact]:
    """Index a snippet of source text under a repo-relative path."""

    def _index(path: str, source: str) -> FileFact:
        return indexer.index(path, source.encode("utf-8"))

    return _index


@pytest.fixture
def builder() -> ImportGraphBuilder:
    return ImportGraphBuilder(AnalysisConfig())


@pytest.fixture
def make_fact() -> Callable[..., FileFact]:
    """Hand-built facts: ``make_fact("src/A.ts", "./B", ("./C", "deferred"))``."""

    def _fact(path: str, *imports, failed: bool = False) -> FileFact:
        specs = []
        for item in imports:
            if isinstance(item, tuple):
                specifier, kind = item
            else:
                specifier, kind = item, STATIC
            specs.append(ImportSpec(specifier, DEFERRED if kind == "deferred" else STATIC))
        return FileFact(
            path=path,
            content_hash=f"hash-{path}-{len(specs)}",
            language="tsx",
            imports=tuple(specs) if not failed else (),
            parse_status="failed" if failed else "ok",
            error="syntax errors cover 100% of the file" if failed else "",
        )

    return _fact


@pytest.fixture
def temp_project_manager() -> ProjectManager:
    """ProjectManager rooted in the isolated cache directory."""
    return ProjectManager()


@pytest.fixture
def temp_fact_store(temp_dir: Path) -> Generator[FactStore, None, None]:
    """Create a FactStore with temporary storage."""
    project_dir = temp_dir / "test_project"
    project_dir.mkdir(parents=True, exist_ok=True)
    store = FactStore(project_dir)
    yield store
    store.close()
