"""Shared pytest fixtures for outline-sync tests."""

import json
import shutil
from pathlib import Path

import pytest
from dotenv import load_dotenv

from outline_sync.config import Config
from outline_sync.store import MemoryRepository, ProjectLocks
from outline_sync.sync.engine import OutlineSync

load_dotenv()

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    """Directory of the checked-in source files."""
    return FIXTURES_DIR


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance pointing at a temporary state directory."""
    return Config(
        state_dir=str(tmp_path / "projects"),
        backend="json",
        lock_timeout=0.5,
    )


@pytest.fixture
def repository():
    """Fresh in-memory repository."""
    return MemoryRepository()


@pytest.fixture
def service(repository):
    """OutlineSync over the in-memory repository with a short lock timeout."""
    return OutlineSync(repository, locks=ProjectLocks(), lock_timeout=0.2)


@pytest.fixture
def copy_fixture(tmp_path):
    """Factory fixture copying a checked-in source into tmp_path."""

    def _copy(name: str, target_name: str | None = None) -> Path:
        target = tmp_path / (target_name or name)
        shutil.copyfile(FIXTURES_DIR / name, target)
        return target

    return _copy


@pytest.fixture
def hamlet_md(copy_fixture) -> Path:
    """Editable copy of the Hamlet Markdown outline."""
    return copy_fixture("hamlet.md")


@pytest.fixture
def hamlet_pltr(copy_fixture) -> Path:
    """Editable copy of the Hamlet Plottr project."""
    return copy_fixture("hamlet.pltr")


@pytest.fixture
def write_plottr(tmp_path):
    """Factory fixture writing a Plottr document to a ``.pltr`` file."""

    def _write(data: dict, name: str = "story.pltr") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_text(tmp_path):
    """Factory fixture writing a text file below tmp_path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write
