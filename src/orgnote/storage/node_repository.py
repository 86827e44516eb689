"""Repository for nodes: per-file synchronisation and node lookups."""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Type, Union

from sqlalchemy import delete, func, insert, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from orgnote.exceptions import ConstraintViolation, ErrorCode, StorageError
from orgnote.models.db_models import (
    DBJournal,
    DBNode,
    DBTag,
    get_session_factory,
    init_db,
    node_tags,
)
from orgnote.models.schema import FileRecordSet, LinkKind, Node
from orgnote.services.file_processor import FileProcessor
from orgnote.utils import escape_like_pattern

logger = logging.getLogger(__name__)

NodeModel = Union[Type[DBNode], Type[DBJournal]]

_INSERT_LINK = text(
    "INSERT OR IGNORE INTO links (source, dest, link_type) "
    "VALUES (:source, :dest, :link_type)"
)


class NodeRepository:
    """Mirrors org files into the ``nodes`` / ``journal`` tables.

    The files are the source of truth. Every sync of a file deletes the
    rows it produced last time and inserts the freshly extracted ones in
    one transaction, so a file is either fully at its old state or fully
    at its new state. Tag associations and outgoing links are removed by
    the delete triggers.

    All writes are serialised by a process-wide lock; SQLite allows a
    single writer anyway.
    """

    _sync_lock = threading.RLock()

    def __init__(
        self,
        engine: Optional[Engine] = None,
        processor: Optional[FileProcessor] = None,
    ):
        """Initialize the repository.

        Args:
            engine: Initialised SQLAlchemy engine. When omitted, init_db()
                opens the configured database.
            processor: File processor used to extract records.
        """
        self.engine = engine if engine is not None else init_db()
        self.session_factory = get_session_factory(self.engine)
        self.processor = processor or FileProcessor()

    @staticmethod
    def _model(journal: bool) -> NodeModel:
        return DBJournal if journal else DBNode

    # ------------------------------------------------------------------
    # Synchronisation
    # ------------------------------------------------------------------

    def sync_file(self, path: Union[str, Path], journal: bool = False) -> FileRecordSet:
        """Replace every row derived from ``path`` with a fresh extraction.

        Args:
            path: The org file to process.
            journal: Store records in ``journal`` instead of ``nodes``.

        Returns:
            The record set that was persisted.

        Raises:
            ReadError: The file could not be read. Nothing was changed.
            ParseError: The file could not be parsed. Nothing was changed.
            ConstraintViolation: An insert violated a constraint (for
                example an ID already used by another file). Rolled back.
            StorageError: Any other database failure. Rolled back.
        """
        path = Path(path)
        model = self._model(journal)

        with self._sync_lock:
            with self.session_factory() as session:
                try:
                    with session.begin():
                        removed = self._delete_file_rows(session, model, path.name)
                        record_set = self.processor.process(path)
                        self._insert_record_set(session, model, record_set)
                except IntegrityError as e:
                    logger.error(f"Sync of {path.name} violated a constraint: {e.orig}")
                    raise ConstraintViolation(
                        f"Constraint violated while syncing '{path.name}'",
                        path=str(path),
                        original_error=e,
                    ) from e
                except SQLAlchemyError as e:
                    logger.error(f"Sync of {path.name} failed: {e}")
                    raise StorageError(
                        f"Database error while syncing '{path.name}'",
                        operation="sync",
                        path=str(path),
                        code=ErrorCode.STORAGE_WRITE_FAILED,
                        original_error=e,
                    ) from e

        logger.info(
            f"Synced {path.name}: removed {removed}, inserted "
            f"{len(record_set.records)} nodes and {len(record_set.links)} links"
        )
        return record_set

    def purge_file(self, file_name: str, journal: bool = False) -> int:
        """Delete every row derived from ``file_name`` in one transaction.

        Returns:
            Number of node rows deleted.
        """
        model = self._model(journal)
        with self._sync_lock:
            with self.session_factory() as session:
                try:
                    with session.begin():
                        removed = self._delete_file_rows(
                            session, model, Path(file_name).name
                        )
                except SQLAlchemyError as e:
                    raise StorageError(
                        f"Database error while purging '{file_name}'",
                        operation="purge",
                        path=str(file_name),
                        code=ErrorCode.STORAGE_DELETE_FAILED,
                        original_error=e,
                    ) from e
        logger.info(f"Purged {removed} nodes of {file_name}")
        return removed

    def _delete_file_rows(self, session: Session, model: NodeModel, file_name: str) -> int:
        ids = session.scalars(select(model.id).where(model.file == file_name)).all()
        if ids:
            session.execute(
                delete(model).where(model.id.in_(ids)),
                execution_options={"synchronize_session": False},
            )
        return len(ids)

    def _insert_record_set(
        self, session: Session, model: NodeModel, record_set: FileRecordSet
    ) -> None:
        for record in record_set.records:
            session.execute(
                insert(model).values(
                    id=record.id,
                    file=record.file,
                    title=record.title,
                    level=record.level,
                    master=record.master,
                )
            )
            for position, tag_name in enumerate(record.tags):
                tag_id = self._get_or_create_tag_id(session, tag_name)
                session.execute(
                    insert(node_tags).values(
                        node_id=record.id, tag_id=tag_id, position=position
                    )
                )
            if record.has_master:
                session.execute(
                    _INSERT_LINK,
                    {
                        "source": record.id,
                        "dest": record.master,
                        "link_type": LinkKind.MASTER.value,
                    },
                )

        for link in record_set.links:
            session.execute(
                _INSERT_LINK,
                {"source": link.source, "dest": link.dest, "link_type": link.kind.value},
            )

    @staticmethod
    def _get_or_create_tag_id(session: Session, tag_name: str) -> int:
        """Atomically get or create a tag.

        INSERT OR IGNORE followed by SELECT tolerates a tag created by a
        concurrent writer.
        """
        session.execute(
            text("INSERT OR IGNORE INTO tags (name) VALUES (:name)"), {"name": tag_name}
        )
        return session.scalar(select(DBTag.id).where(DBTag.name == tag_name))

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, node_id: str) -> Optional[Node]:
        """Get a node (permanent or journal) by ID."""
        with self.session_factory() as session:
            for journal in (False, True):
                model = self._model(journal)
                db_node = session.get(model, node_id)
                if db_node is not None:
                    return self._to_node(session, db_node, journal)
        return None

    def find_by_title(self, title: str, journal: bool = False) -> List[Node]:
        """Nodes whose title equals ``title``, ignoring case."""
        model = self._model(journal)
        with self.session_factory() as session:
            rows = session.scalars(
                select(model)
                .where(func.lower(model.title) == title.strip().lower())
                .order_by(model.file, model.level)
            ).all()
            return [self._to_node(session, row, journal) for row in rows]

    def search_titles(self, fragment: str, limit: int = 50) -> List[Node]:
        """Permanent nodes whose title contains ``fragment``."""
        pattern = f"%{escape_like_pattern(fragment)}%"
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBNode)
                .where(DBNode.title.like(pattern, escape="\\"))
                .order_by(DBNode.title)
                .limit(limit)
            ).all()
            return [self._to_node(session, row, False) for row in rows]

    def nodes_in_file(self, file_name: str, journal: bool = False) -> List[Node]:
        """Nodes stored for ``file_name``, topic first."""
        model = self._model(journal)
        with self.session_factory() as session:
            rows = session.scalars(
                select(model)
                .where(model.file == Path(file_name).name)
                .order_by(model.level, model.id)
            ).all()
            return [self._to_node(session, row, journal) for row in rows]

    def known_files(self, journal: bool = False) -> List[str]:
        """File names that currently have rows."""
        model = self._model(journal)
        with self.session_factory() as session:
            return list(
                session.scalars(select(model.file).distinct().order_by(model.file)).all()
            )

    def count_nodes(self) -> Dict[str, int]:
        """Row counts of both node tables."""
        with self.session_factory() as session:
            return {
                "nodes": session.scalar(select(func.count()).select_from(DBNode)) or 0,
                "journal": session.scalar(select(func.count()).select_from(DBJournal)) or 0,
            }

    @staticmethod
    def _to_node(session: Session, row, journal: bool) -> Node:
        tags = session.scalars(
            select(DBTag.name)
            .join(node_tags, DBTag.id == node_tags.c.tag_id)
            .where(node_tags.c.node_id == row.id)
            .order_by(node_tags.c.position)
        ).all()
        return Node(
            id=row.id,
            file=row.file,
            title=row.title,
            level=row.level,
            master=row.master,
            tags=list(tags),
            journal=journal,
        )
