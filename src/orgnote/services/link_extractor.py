"""Extraction of ``id:`` links from org documents.

Two independent passes feed the same link set:

* title rewriting flattens ``[[id:X][Text]]`` inside a title to ``Text``
  and reports each target ``X`` for the titled node;
* body scanning finds every ``id:`` link in the raw file text and
  attributes it to the nearest enclosing headline that has an ID.

Both produce ``LinkRecord(source=<referencing node>, dest=<target>)``.
Duplicates between the passes are not removed here; the links table's
unique (source, dest) constraint drops them on insert.
"""
import bisect
import logging
import re
from typing import List, Optional, Tuple

from orgnote.models.org_tree import Document, Headline
from orgnote.models.schema import LinkKind, LinkRecord

logger = logging.getLogger(__name__)

ID_LINK_RE = re.compile(r"\[\[(?i:id):([^\[\]]+)\](?:\[([^\[\]]*)\])?\]")


def format_id_link(node_id: str, description: Optional[str] = None) -> str:
    """Render an ``id:`` link the way the rewriting pass reads it back."""
    if description:
        return f"[[id:{node_id}][{description}]]"
    return f"[[id:{node_id}]]"


class LinkExtractor:
    """Finds ``id:`` references in titles and file text."""

    def rewrite_title(self, title: str) -> Tuple[str, List[str]]:
        """Flatten embedded id links in ``title`` to their visible text.

        A link without a description is replaced by its target ID.

        Args:
            title: Raw title text.

        Returns:
            The flattened title and the link targets in left-to-right order.
        """
        targets: List[str] = []

        def _replace(match: "re.Match") -> str:
            target = match.group(1).strip()
            targets.append(target)
            description = match.group(2)
            return description if description is not None else target

        flattened = ID_LINK_RE.sub(_replace, title or "")
        return flattened.strip(), [t for t in targets if t]

    def title_links(self, node_id: Optional[str], title: str) -> Tuple[str, List[LinkRecord]]:
        """Rewrite ``title`` and build the links it contributes.

        When ``node_id`` is unknown the title is still rewritten but no
        links are returned.
        """
        flattened, targets = self.rewrite_title(title)
        if not node_id:
            return flattened, []
        return flattened, [
            LinkRecord(source=node_id, dest=target, kind=LinkKind.TITLE)
            for target in targets
        ]

    def scan_body(self, document: Document) -> List[LinkRecord]:
        """Scan the raw document text for ``id:`` links.

        The source of each link is the ID of the innermost headline whose
        section contains it, walking up the outline until an identified
        headline is found. Past the top-level headline the document's own
        ID is used; without one the link is dropped.

        Returns:
            Links in order of appearance in the file.
        """
        ordered = document.walk()
        starts = [headline.begin for headline in ordered]
        links: List[LinkRecord] = []

        for match in ID_LINK_RE.finditer(document.text):
            dest = match.group(1).strip()
            if not dest:
                continue
            idx = bisect.bisect_right(starts, match.start()) - 1
            enclosing = ordered[idx] if idx >= 0 else None
            source = self._nearest_id(enclosing) or document.id
            if source is None:
                logger.debug(
                    f"Dropping id link to {dest} at offset {match.start()}: "
                    "no identified node encloses it"
                )
                continue
            links.append(LinkRecord(source=source, dest=dest, kind=LinkKind.BODY))

        return links

    @staticmethod
    def _nearest_id(headline: Optional[Headline]) -> Optional[str]:
        while headline is not None:
            if headline.id:
                return headline.id
            headline = headline.parent
        return None
