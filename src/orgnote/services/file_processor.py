"""Reads one org file and extracts its complete record set."""
import logging
from pathlib import Path
from typing import Optional, Union

from orgnote.exceptions import ReadError
from orgnote.models.schema import FileRecordSet
from orgnote.services.link_extractor import LinkExtractor
from orgnote.services.outline_extractor import OutlineExtractor
from orgnote.storage.org_parser import OrgParser

logger = logging.getLogger(__name__)


class FileProcessor:
    """Composes the parser with the outline and link extractors.

    The file on disk is only read, never written.
    """

    def __init__(
        self,
        parser: Optional[OrgParser] = None,
        link_extractor: Optional[LinkExtractor] = None,
    ):
        self.parser = parser or OrgParser()
        self.link_extractor = link_extractor or LinkExtractor()
        self.outline_extractor = OutlineExtractor(self.link_extractor)

    def read(self, path: Union[str, Path]) -> str:
        """Read a file as UTF-8 text.

        Raises:
            ReadError: If the file is missing, unreadable or not UTF-8.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ReadError(str(path), original_error=e) from e

    def process(self, path: Union[str, Path]) -> FileRecordSet:
        """Extract nodes and links from the file at ``path``.

        Raises:
            ReadError: If the file cannot be read.
            ParseError: Propagated unchanged from the parser.
        """
        path = Path(path)
        return self.process_text(self.read(path), path.name, str(path))

    def process_text(
        self, text: str, file_name: str, path: Optional[str] = None
    ) -> FileRecordSet:
        """Extract nodes and links from already-loaded file text."""
        document = self.parser.parse(text, path=path or file_name)
        outline = self.outline_extractor.extract(document, file_name)

        links = list(outline.title_links)
        links.extend(self.link_extractor.scan_body(document))

        record_set = FileRecordSet(
            file=Path(file_name).name,
            topic=outline.topic,
            nodes=outline.nodes,
            links=links,
        )
        logger.debug(
            f"Processed {record_set.file}: {len(record_set.records)} nodes, "
            f"{len(links)} links"
        )
        return record_set
