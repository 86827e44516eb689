"""Repository for link and backlink queries."""
import logging
from typing import List

from sqlalchemy import func, or_, select

from orgnote.models.db_models import DBJournal, DBLink, DBNode
from orgnote.models.schema import LinkKind, LinkRecord

logger = logging.getLogger(__name__)


class LinkRepository:
    """Read access to the links table.

    A row ``(source, dest)`` means node ``source`` references ``dest``;
    the backlinks of a node are the rows whose ``dest`` is its ID.
    """

    def __init__(self, session_factory):
        """Initialize the link repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    @staticmethod
    def _to_record(db_link: DBLink) -> LinkRecord:
        return LinkRecord(
            source=db_link.source,
            dest=db_link.dest,
            kind=LinkKind(db_link.link_type),
        )

    def get_outgoing(self, node_id: str) -> List[LinkRecord]:
        """Links whose source is ``node_id``, in insertion order."""
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBLink).where(DBLink.source == node_id).order_by(DBLink.id)
            ).all()
            return [self._to_record(link) for link in db_links]

    def get_backlinks(self, node_id: str, include_master: bool = True) -> List[LinkRecord]:
        """Links pointing at ``node_id``.

        Args:
            node_id: The referenced node.
            include_master: Also return links from child nodes whose master
                is ``node_id``.
        """
        with self.session_factory() as session:
            query = select(DBLink).where(DBLink.dest == node_id)
            if not include_master:
                query = query.where(DBLink.link_type != LinkKind.MASTER.value)
            db_links = session.scalars(query.order_by(DBLink.source)).all()
            return [self._to_record(link) for link in db_links]

    def count_connections(self, node_id: str) -> int:
        """Count incoming plus outgoing links of a node."""
        with self.session_factory() as session:
            return session.scalar(
                select(func.count(DBLink.id)).where(
                    or_(DBLink.source == node_id, DBLink.dest == node_id)
                )
            ) or 0

    def find_dangling(self) -> List[LinkRecord]:
        """Links whose destination is not a known node or journal entry."""
        with self.session_factory() as session:
            db_links = session.scalars(
                select(DBLink)
                .where(
                    DBLink.dest.not_in(select(DBNode.id)),
                    DBLink.dest.not_in(select(DBJournal.id)),
                )
                .order_by(DBLink.source, DBLink.dest)
            ).all()
            return [self._to_record(link) for link in db_links]

    def find_orphaned_node_ids(self) -> List[str]:
        """IDs of permanent nodes with no links in either direction."""
        with self.session_factory() as session:
            all_ids = set(session.scalars(select(DBNode.id)).all())
            linked = set(session.scalars(select(DBLink.source).distinct()).all())
            linked |= set(session.scalars(select(DBLink.dest).distinct()).all())
            return sorted(all_ids - linked)
