"""Tests for schema creation, versioning and rebuild."""
import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from orgnote.exceptions import ErrorCode, SchemaVersionMismatch
from orgnote.models.db_models import (
    SCHEMA_VERSION,
    create_db_engine,
    get_schema_version,
    init_db,
)


def _execute(engine, *statements):
    with engine.begin() as conn:
        for statement in statements:
            conn.execute(text(statement))


class TestSchemaVersion:
    """PRAGMA user_version handling."""

    def test_fresh_database_is_stamped(self, engine):
        assert get_schema_version(engine) == SCHEMA_VERSION

    def test_all_tables_and_triggers_exist(self, rows):
        tables = {r[0] for r in rows("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"nodes", "journal", "tags", "node_tags", "links"} <= tables
        triggers = {r[0] for r in rows("SELECT name FROM sqlite_master WHERE type = 'trigger'")}
        assert triggers == {"nodes_ad", "journal_ad"}

    def test_matching_version_keeps_rows(self, engine, rows):
        _execute(engine, "INSERT INTO nodes (id, file, title, level, master) "
                         "VALUES ('A', 'a.org', 'A', 0, '0')")
        init_db(engine)
        assert rows("SELECT id FROM nodes") == [("A",)]

    def test_mismatch_rebuilds(self, engine, rows):
        _execute(
            engine,
            "INSERT INTO nodes (id, file, title, level, master) "
            "VALUES ('A', 'a.org', 'A', 0, '0')",
            f"PRAGMA user_version = {SCHEMA_VERSION - 1}",
        )

        init_db(engine)

        assert get_schema_version(engine) == SCHEMA_VERSION
        assert rows("SELECT count(*) FROM nodes") == [(0,)]

    def test_mismatch_without_rebuild_raises(self, engine):
        _execute(engine, "PRAGMA user_version = 1")

        with pytest.raises(SchemaVersionMismatch) as exc_info:
            init_db(engine, rebuild_on_mismatch=False)

        assert exc_info.value.code == ErrorCode.SCHEMA_VERSION_MISMATCH
        assert (exc_info.value.found, exc_info.value.expected) == (1, SCHEMA_VERSION)
        assert get_schema_version(engine) == 1

    def test_dropped_table_is_recreated(self, engine, rows):
        _execute(engine, "DROP TABLE links")
        init_db(engine)
        assert rows("SELECT count(*) FROM links") == [(0,)]


class TestConnectionPragmas:
    """Every pooled connection enforces foreign keys."""

    def test_foreign_keys_enabled(self, rows):
        assert rows("PRAGMA foreign_keys") == [(1,)]

    def test_tag_delete_cascades(self, engine, rows):
        _execute(
            engine,
            "INSERT INTO tags (id, name) VALUES (1, 'x')",
            "INSERT INTO node_tags (node_id, tag_id, position) VALUES ('A', 1, 0)",
            "DELETE FROM tags WHERE id = 1",
        )
        assert rows("SELECT count(*) FROM node_tags") == [(0,)]

    def test_unknown_tag_rejected(self, engine):
        with pytest.raises(IntegrityError):
            _execute(
                engine,
                "INSERT INTO node_tags (node_id, tag_id, position) VALUES ('A', 99, 0)",
            )

    def test_new_engine_on_existing_file(self, engine, test_config):
        _execute(engine, "INSERT INTO tags (name) VALUES ('kept')")
        other = init_db(create_db_engine(test_config.get_db_url()), rebuild_on_mismatch=False)
        try:
            with other.connect() as conn:
                assert conn.execute(text("SELECT name FROM tags")).scalar() == "kept"
        finally:
            other.dispose()


class TestTriggers:
    """Deleting a node row removes its tags and outgoing links."""

    @pytest.mark.parametrize("table", ["nodes", "journal"])
    def test_delete_cascades(self, engine, rows, table):
        _execute(
            engine,
            f"INSERT INTO {table} (id, file, title, level, master) "
            "VALUES ('A', 'a.org', 'A', 0, '0')",
            "INSERT INTO tags (id, name) VALUES (1, 'x')",
            "INSERT INTO node_tags (node_id, tag_id, position) VALUES ('A', 1, 0)",
            "INSERT INTO links (source, dest, link_type) VALUES ('A', 'B', 'body')",
            "INSERT INTO links (source, dest, link_type) VALUES ('C', 'A', 'body')",
            f"DELETE FROM {table} WHERE id = 'A'",
        )
        assert rows("SELECT count(*) FROM node_tags") == [(0,)]
        # Incoming links stay; the referencing file owns them
        assert rows("SELECT source, dest FROM links") == [("C", "A")]
