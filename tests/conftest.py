"""Common test fixtures for orgnote."""

import tempfile
import textwrap
from pathlib import Path

import pytest
from sqlalchemy import text

from orgnote.config import config
from orgnote.models.db_models import create_db_engine, init_db
from orgnote.services.orgnote_service import OrgnoteService
from orgnote.storage.node_repository import NodeRepository

_SCENARIO = """
:PROPERTIES:
:ID:       T1
:END:
#+title: Project
#+filetags: :proj:

* Heading one :urgent:
:PROPERTIES:
:ID:       H1
:END:
Some text.
"""


@pytest.fixture
def scenario_text():
    """Topic T1 tagged proj with one urgent heading H1."""
    return _SCENARIO


@pytest.fixture
def temp_dirs():
    """Create temporary directories for notes and database."""
    with tempfile.TemporaryDirectory() as notes_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(notes_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    notes_dir, db_dir = temp_dirs
    journal_dir = notes_dir / "journal"
    journal_dir.mkdir()
    monkeypatch.setattr(config, "notes_dir", notes_dir)
    monkeypatch.setattr(config, "journal_dir", journal_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_orgnote.db")
    monkeypatch.setattr(config, "current_file", None)
    yield config


@pytest.fixture
def engine(test_config):
    """Initialised engine on a file database in the temp directory."""
    engine = init_db(create_db_engine(test_config.get_db_url()))
    yield engine
    engine.dispose()


@pytest.fixture
def node_repository(engine):
    yield NodeRepository(engine=engine)


@pytest.fixture
def service(node_repository, test_config):
    yield OrgnoteService(repository=node_repository, settings=test_config)


@pytest.fixture
def write_org(test_config):
    """Write a dedented org file into the notes (or journal) directory."""

    def _write(name: str, content: str, journal: bool = False) -> Path:
        base = test_config.get_journal_dir() if journal else test_config.get_notes_dir()
        path = base / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def rows(engine):
    """Run a query and return all rows as tuples."""

    def _rows(sql: str, **params):
        with engine.connect() as conn:
            return [tuple(r) for r in conn.execute(text(sql), params).all()]

    return _rows
