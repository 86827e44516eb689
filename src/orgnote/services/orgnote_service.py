"""Service layer for the editor-facing commands."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from orgnote.config import OrgnoteConfig, config
from orgnote.exceptions import (
    ErrorCode,
    NodeNotFoundError,
    OrgnoteError,
    StorageError,
    ValidationError,
)
from orgnote.models.db_models import reset_schema
from orgnote.models.schema import (
    FileRecordSet,
    LinkRecord,
    Node,
    SyncReport,
    generate_id,
    utc_now,
)
from orgnote.services.link_extractor import format_id_link
from orgnote.storage.link_repository import LinkRepository
from orgnote.storage.node_repository import NodeRepository
from orgnote.storage.tag_repository import TagRepository
from orgnote.utils import slugify_title

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Upper bound on name suffixes tried when two nodes get the same file name
_MAX_NAME_ATTEMPTS = 100


class OrgnoteService:
    """Commands the editor binds to: sync, find, link, delete.

    Rows are keyed by bare file name, so only files directly inside
    ``notes_dir`` (permanent notes) or ``journal_dir`` (journal entries)
    are indexed. Subdirectories are not walked.
    """

    def __init__(
        self,
        repository: Optional[NodeRepository] = None,
        settings: Optional[OrgnoteConfig] = None,
    ):
        self.config = settings or config
        self.repository = repository or NodeRepository()
        self.tags = TagRepository(self.repository.session_factory)
        self.links = LinkRepository(self.repository.session_factory)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _resolve(self, path: PathLike) -> Path:
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        candidate = self.config.get_notes_dir() / path
        return candidate if candidate.exists() else self.config.get_absolute_path(path)

    def _home_dir(self, path: Path) -> Tuple[bool, Path]:
        """Classify ``path`` and check it sits directly in its directory.

        Returns:
            (journal, directory) for the file.

        Raises:
            ValidationError: The file is inside a subdirectory, where its
                name could clash with another file of the same name.
        """
        journal = self.config.is_journal_file(path)
        home = self.config.get_journal_dir() if journal else self.config.get_notes_dir()
        if path.resolve().parent != home.resolve():
            raise ValidationError(
                f"'{path.name}' is not directly inside {home}",
                field="path",
                value=str(path),
            )
        return journal, home

    def _list_dir(self, directory: Path) -> List[Path]:
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and self.config.is_note_file(p)
        )

    def eligible_files(self) -> Tuple[List[Path], List[Path]]:
        """Note files and journal files that a full sync processes."""
        notes = [
            p for p in self._list_dir(self.config.get_notes_dir())
            if not self.config.is_journal_file(p)
        ]
        return notes, self._list_dir(self.config.get_journal_dir())

    def locate(self, node: Node) -> Path:
        """Path of the file a node was extracted from."""
        base = self.config.get_journal_dir() if node.journal else self.config.get_notes_dir()
        return base / node.file

    def flatten_title(self, title: str) -> str:
        """The title as stored: id links replaced by their visible text."""
        flattened, _ = self.repository.processor.link_extractor.rewrite_title(title)
        return flattened

    # ------------------------------------------------------------------
    # Synchronisation
    # ------------------------------------------------------------------

    def sync_file(self, path: Optional[PathLike] = None) -> FileRecordSet:
        """Synchronise one file; defaults to the file being visited.

        Raises:
            ValidationError: No path given and no current file configured,
                or the file is not directly in the notes or journal directory.
            ReadError, ParseError, ConstraintViolation, StorageError: From
                the repository; the file's previous rows are left intact.
        """
        if path is None:
            path = self.config.current_file
        if path is None:
            raise ValidationError("No file given and no current file set", field="path")
        path = self._resolve(path)
        journal, _ = self._home_dir(path)
        return self.repository.sync_file(path, journal=journal)

    def sync_all(self) -> SyncReport:
        """Synchronise every note and journal file, one transaction each.

        A file that fails is reported and keeps its previous rows; the
        remaining files are still processed. Rows of files that no longer
        exist are purged.
        """
        report = SyncReport()
        notes, journal_files = self.eligible_files()

        for journal, files in ((False, notes), (True, journal_files)):
            seen = set()
            for path in files:
                seen.add(path.name)
                try:
                    self.repository.sync_file(path, journal=journal)
                    report.succeeded.append(str(path))
                except OrgnoteError as e:
                    logger.error(f"Skipping {path}: {e}")
                    report.failed[str(path)] = str(e)

            for stale in sorted(set(self.repository.known_files(journal)) - seen):
                self.repository.purge_file(stale, journal=journal)
                report.purged.append(stale)

        logger.info(
            f"Full sync: {len(report.succeeded)} synced, {len(report.failed)} failed, "
            f"{len(report.purged)} purged"
        )
        return report

    def rebuild(self) -> SyncReport:
        """Drop and recreate the schema, then run a full sync."""
        logger.warning("Rebuilding the database from scratch")
        reset_schema(self.repository.engine)
        return self.sync_all()

    def delete_file_and_purge(self, path: PathLike) -> int:
        """Remove a note file and every row derived from it.

        The rows are purged first so a failed purge leaves the file alone.

        Returns:
            Number of node rows removed.
        """
        path = self._resolve(path)
        journal, _ = self._home_dir(path)
        removed = self.repository.purge_file(path.name, journal=journal)
        if path.exists():
            try:
                path.unlink()
            except OSError as e:
                raise StorageError(
                    f"Failed to delete file '{path.name}'",
                    operation="delete",
                    path=str(path),
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e
        logger.info(f"Deleted {path.name} and {removed} nodes")
        return removed

    # ------------------------------------------------------------------
    # Node commands
    # ------------------------------------------------------------------

    def find_or_create_node(self, title: Optional[str]) -> Path:
        """Return the file of the node titled ``title``, creating it if needed.

        ``title`` may contain id links; it matches the stored title, in
        which they are flattened. A new node gets its own file in
        ``notes_dir`` rendered from ``new_node_template`` and is synced
        right away.
        """
        title = self._require_title(title)
        matches = self.repository.find_by_title(self.flatten_title(title))
        if matches:
            return self.locate(matches[0])
        path, _ = self._create_node(title)
        return path

    def _require_title(self, title: Optional[str]) -> str:
        title = (title or "").strip()
        if not title or not self.flatten_title(title):
            raise ValidationError(
                "A title is required", field="title", code=ErrorCode.NODE_TITLE_REQUIRED
            )
        return title

    def _create_node(self, title: str) -> Tuple[Path, str]:
        """Write and sync a new node file; returns its path and node ID."""
        now = utc_now()
        node_id = generate_id()
        notes_dir = self.config.get_notes_dir()
        notes_dir.mkdir(parents=True, exist_ok=True)
        content = self.config.new_node_template.format(
            id=node_id,
            title=title,
            created_at=now.strftime("[%Y-%m-%d %a %H:%M]"),
        )
        stem = f"{now:%Y%m%d%H%M%S}-{slugify_title(self.flatten_title(title)) or 'node'}"

        for attempt in range(1, _MAX_NAME_ATTEMPTS + 1):
            path = notes_dir / (f"{stem}.org" if attempt == 1 else f"{stem}-{attempt}.org")
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(content)
                break
            except FileExistsError:
                continue
            except OSError as e:
                raise StorageError(
                    f"Failed to create node file for '{title}'",
                    operation="create",
                    path=str(path),
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e
        else:
            raise StorageError(
                f"No free file name for '{title}'",
                operation="create",
                path=str(notes_dir / f"{stem}.org"),
                code=ErrorCode.STORAGE_WRITE_FAILED,
            )

        logger.info(f"Created node '{title}' in {path.name}")
        self.repository.sync_file(path)
        return path, node_id

    def insert_link_to_node(
        self,
        target: str,
        file: PathLike,
        position: Optional[int] = None,
        description: Optional[str] = None,
    ) -> str:
        """Insert an id link to ``target`` into ``file`` and re-sync it.

        The file is replaced atomically, so a failed write leaves the
        original untouched.

        Args:
            target: Node ID or title. An unknown title creates the node.
            file: The file to edit.
            position: Character offset to insert at; end of file if None.
            description: Visible link text; defaults to the node's title.

        Returns:
            The inserted link text.
        """
        path = self._resolve(file)
        self._home_dir(path)

        node = self.repository.get(target)
        if node is None:
            title = self._require_title(target)
            matches = self.repository.find_by_title(self.flatten_title(title))
            if matches:
                node = matches[0]
            else:
                _, node_id = self._create_node(title)
                node = self.get_node(node_id)

        text = self.repository.processor.read(path)
        if position is None:
            position = len(text)
        if not 0 <= position <= len(text):
            raise ValidationError(
                f"Position {position} is outside the file (0..{len(text)})",
                field="position",
                value=position,
            )

        link = format_id_link(node.id, description or node.title)
        temp_file = path.with_name(f".{path.name}.tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(text[:position] + link + text[position:])
            temp_file.replace(path)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise StorageError(
                f"Failed to write '{path.name}'",
                operation="insert_link",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        self.sync_file(path)
        return link

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Node:
        node = self.repository.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def backlinks(self, node_id: str, include_master: bool = True) -> List[LinkRecord]:
        return self.links.get_backlinks(node_id, include_master=include_master)

    def outgoing_links(self, node_id: str) -> List[LinkRecord]:
        return self.links.get_outgoing(node_id)

    def connection_count(self, node_id: str) -> int:
        return self.links.count_connections(node_id)

    def nodes_with_tags(self, tags: List[str], match_all: bool = False) -> List[Node]:
        """Nodes carrying any of ``tags``, or all of them with ``match_all``."""
        return self._nodes(self.tags.find_node_ids_by_tags(tags, match_all=match_all))

    def _nodes(self, node_ids: List[str]) -> List[Node]:
        nodes = []
        for node_id in node_ids:
            node = self.repository.get(node_id)
            if node is not None:
                nodes.append(node)
        return nodes

    def tags_with_counts(self) -> Dict[str, int]:
        return self.tags.get_with_counts()

    def search_titles(self, fragment: str) -> List[Node]:
        return self.repository.search_titles(fragment)

    def dangling_links(self) -> List[LinkRecord]:
        """Links to IDs that no synced file defines."""
        return self.links.find_dangling()

    def orphaned_nodes(self) -> List[Node]:
        """Permanent nodes with no links in either direction."""
        return self._nodes(self.links.find_orphaned_node_ids())

    def cleanup_tags(self) -> int:
        """Delete tags no node uses any more."""
        return self.tags.delete_unused()
