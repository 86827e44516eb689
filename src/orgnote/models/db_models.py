"""SQLAlchemy database models and schema lifecycle for orgnote.

Five tables mirror the note files: ``nodes`` and ``journal`` hold one row
per identified heading (or file topic), ``tags`` holds distinct tag names,
``node_tags`` joins the two and ``links`` holds directed edges. The schema
version lives in ``PRAGMA user_version``; on mismatch everything is dropped
and recreated, since all rows can be re-derived from the files.
"""
import logging
from typing import Optional

from sqlalchemy import (Column, ForeignKey, Integer, String, Table, Text,
                        UniqueConstraint, create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from orgnote.config import config
from orgnote.exceptions import SchemaVersionMismatch
from orgnote.models.schema import NO_MASTER

logger = logging.getLogger(__name__)

# Bump whenever a table, column, constraint or trigger changes.
SCHEMA_VERSION = 3

Base = declarative_base()

# node_id may point into either ``nodes`` or ``journal``, so it carries no
# foreign key; the delete triggers below provide the cascade instead.
node_tags = Table(
    "node_tags",
    Base.metadata,
    Column("node_id", String(255), primary_key=True, index=True),
    Column(
        "tag_id",
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("position", Integer, nullable=False, default=0),
)


class DBNode(Base):
    """Database model for a permanent note node."""
    __tablename__ = "nodes"
    id = Column(String(255), primary_key=True)
    file = Column(String(255), nullable=False, index=True)
    title = Column(Text, nullable=False, default="", index=True)
    level = Column(Integer, nullable=False, default=0)
    master = Column(String(255), nullable=False, default=NO_MASTER)

    def __repr__(self) -> str:
        return f"<Node(id='{self.id}', file='{self.file}', title='{self.title}')>"


class DBJournal(Base):
    """Database model for a journal entry; same shape as DBNode."""
    __tablename__ = "journal"
    id = Column(String(255), primary_key=True)
    file = Column(String(255), nullable=False, index=True)
    title = Column(Text, nullable=False, default="", index=True)
    level = Column(Integer, nullable=False, default=0)
    master = Column(String(255), nullable=False, default=NO_MASTER)

    def __repr__(self) -> str:
        return f"<Journal(id='{self.id}', file='{self.file}', title='{self.title}')>"


class DBTag(Base):
    """Database model for a tag."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBLink(Base):
    """Database model for a directed link: ``source`` references ``dest``.

    ``dest`` may name a node in a file that has not been synced yet, so it
    is not a foreign key.
    """
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(255), nullable=False, index=True)
    dest = Column(String(255), nullable=False, index=True)
    link_type = Column(String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint("source", "dest", name="unique_link_pair"),
    )

    def __repr__(self) -> str:
        return (
            f"<Link(source='{self.source}', dest='{self.dest}', "
            f"type='{self.link_type}')>"
        )


# Rows of ``node_tags`` and outgoing ``links`` go away with their node,
# whichever of the two node tables it lives in.
_CASCADE_TRIGGERS = {
    table: f"""
        CREATE TRIGGER IF NOT EXISTS {table}_ad AFTER DELETE ON {table} BEGIN
            DELETE FROM node_tags WHERE node_id = OLD.id;
            DELETE FROM links WHERE source = OLD.id;
        END
    """
    for table in ("nodes", "journal")
}


def create_db_engine(db_url: Optional[str] = None) -> Engine:
    """Create an engine with the pragmas every connection needs.

    - foreign_keys=ON so ``tags`` deletions cascade to ``node_tags``
    - WAL journal so readers are not blocked by a sync in progress
    """
    engine = create_engine(
        db_url or config.get_db_url(),
        poolclass=QueuePool,
        pool_size=2,
        max_overflow=2,
        pool_timeout=30,
        pool_pre_ping=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    return engine


def get_schema_version(engine: Engine) -> int:
    """Read the version stamped in ``PRAGMA user_version``."""
    with engine.connect() as conn:
        return conn.execute(text("PRAGMA user_version")).scalar() or 0


def _create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    with engine.begin() as conn:
        for ddl in _CASCADE_TRIGGERS.values():
            conn.execute(text(ddl))


def reset_schema(engine: Engine) -> None:
    """Drop all five tables, recreate them and stamp the current version.

    Destroys every indexed row; a full sync rebuilds them from the files.
    """
    Base.metadata.drop_all(engine)
    _create_schema(engine)
    with engine.begin() as conn:
        # PRAGMA does not accept bound parameters
        conn.execute(text(f"PRAGMA user_version = {int(SCHEMA_VERSION)}"))
    logger.info(f"Database schema created at version {SCHEMA_VERSION}")


def init_db(engine: Optional[Engine] = None, rebuild_on_mismatch: bool = True) -> Engine:
    """Open the database and make sure its schema is current.

    Args:
        engine: Existing engine to initialise. A new one is created from
            config when omitted.
        rebuild_on_mismatch: Drop and recreate the schema when the stored
            version differs. When False a mismatch raises instead.

    Returns:
        The initialised engine.

    Raises:
        SchemaVersionMismatch: Version differs and rebuild is disabled.
    """
    if engine is None:
        engine = create_db_engine()

    found = get_schema_version(engine)
    if found != SCHEMA_VERSION:
        if not rebuild_on_mismatch:
            raise SchemaVersionMismatch(found, SCHEMA_VERSION)
        if found:
            logger.warning(
                f"Schema version {found} != {SCHEMA_VERSION}; "
                "dropping all tables, run sync-all to repopulate"
            )
        reset_schema(engine)
    else:
        # Recreates anything dropped by hand; no-op otherwise
        _create_schema(engine)

    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = create_db_engine()
    return sessionmaker(bind=engine)
