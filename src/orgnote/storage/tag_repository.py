"""Repository for tag queries."""
import logging
from typing import Dict, List

from sqlalchemy import func, select

from orgnote.models.db_models import DBTag, node_tags

logger = logging.getLogger(__name__)


class TagRepository:
    """Read access to tags and their node associations.

    Tags are written only by NodeRepository during a file sync.
    """

    def __init__(self, session_factory):
        """Initialize the tag repository.

        Args:
            session_factory: SQLAlchemy session factory for database operations.
        """
        self.session_factory = session_factory

    def get_with_counts(self) -> Dict[str, int]:
        """Map each tag name to the number of nodes carrying it."""
        with self.session_factory() as session:
            result = session.execute(
                select(DBTag.name, func.count(node_tags.c.node_id))
                .select_from(DBTag)
                .outerjoin(node_tags, DBTag.id == node_tags.c.tag_id)
                .group_by(DBTag.name)
                .order_by(DBTag.name)
            ).all()
            return {name: count for name, count in result}

    def find_node_ids_by_tags(self, tag_names: List[str], match_all: bool = False) -> List[str]:
        """Find node IDs that have any or all of the specified tags.

        Args:
            tag_names: List of tag names.
            match_all: If True, only return nodes that have ALL tags.

        Returns:
            Sorted list of node IDs.
        """
        if not tag_names:
            return []
        with self.session_factory() as session:
            query = (
                select(node_tags.c.node_id)
                .join(DBTag, node_tags.c.tag_id == DBTag.id)
                .where(DBTag.name.in_(tag_names))
                .group_by(node_tags.c.node_id)
            )
            if match_all:
                query = query.having(
                    func.count(func.distinct(DBTag.name)) == len(set(tag_names))
                )
            result = session.execute(query.order_by(node_tags.c.node_id)).all()
            return [row[0] for row in result]

    def delete_unused(self) -> int:
        """Delete tags that are not associated with any node.

        Returns:
            Number of tags deleted.
        """
        with self.session_factory() as session:
            unused = session.scalars(
                select(DBTag)
                .outerjoin(node_tags, DBTag.id == node_tags.c.tag_id)
                .where(node_tags.c.node_id.is_(None))
            ).all()
            for tag in unused:
                session.delete(tag)
            session.commit()
            if unused:
                logger.info(f"Deleted {len(unused)} unused tags")
            return len(unused)
