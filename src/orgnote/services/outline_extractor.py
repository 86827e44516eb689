"""Derivation of node records from a parsed outline."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from orgnote.models.org_tree import Document, Headline
from orgnote.models.schema import NO_MASTER, LinkRecord, NodeRecord
from orgnote.services.link_extractor import LinkExtractor

logger = logging.getLogger(__name__)


@dataclass
class OutlineResult:
    """Records derived from one document's outline."""
    topic: Optional[NodeRecord] = None
    nodes: List[NodeRecord] = field(default_factory=list)
    title_links: List[LinkRecord] = field(default_factory=list)


def merge_tags(inherited: List[str], own: List[str]) -> List[str]:
    """Inherited tags first, then the node's own, without duplicates."""
    merged = list(inherited)
    for tag in own:
        if tag not in merged:
            merged.append(tag)
    return merged


class OutlineExtractor:
    """Turns a Document into topic and heading node records.

    Tags accumulate down the tree: every heading carries the file tags
    plus the own tags of each ancestor, identified or not. Only headings
    with an ID become records; the rest only pass tags and the current
    master down to their children.
    """

    def __init__(self, link_extractor: Optional[LinkExtractor] = None):
        self.link_extractor = link_extractor or LinkExtractor()

    def extract(self, document: Document, file_name: str) -> OutlineResult:
        """Extract the topic and heading records of ``document``.

        Args:
            document: Parsed org document.
            file_name: Name stored on every record (directory stripped).

        Returns:
            OutlineResult with records in document order and the links
            found by rewriting their titles.
        """
        file_name = Path(file_name).name
        result = OutlineResult()
        topic_id = document.id
        filetags = document.filetags

        title, links = self.link_extractor.title_links(
            topic_id, document.title or Path(file_name).stem
        )
        if topic_id:
            result.topic = NodeRecord(
                id=topic_id,
                file=file_name,
                title=title,
                level=0,
                tags=filetags,
                master=NO_MASTER,
            )
            result.title_links.extend(links)
        else:
            logger.debug(f"{file_name} has no document ID; no topic node")

        top_master = topic_id or NO_MASTER
        stack = [(h, filetags, top_master) for h in reversed(document.headlines)]
        while stack:
            headline, inherited, master = stack.pop()
            all_tags = merge_tags(inherited, headline.tags)
            child_master = master
            if headline.id:
                record, links = self._heading_record(headline, file_name, all_tags, master)
                result.nodes.append(record)
                result.title_links.extend(links)
                child_master = headline.id
            stack.extend(
                (child, all_tags, child_master) for child in reversed(headline.children)
            )

        return result

    def _heading_record(
        self, headline: Headline, file_name: str, tags: List[str], master: str
    ):
        title, links = self.link_extractor.title_links(headline.id, headline.raw_value)
        record = NodeRecord(
            id=headline.id,
            file=file_name,
            title=title,
            level=headline.level,
            tags=tags,
            master=master,
        )
        return record, links
