"""Configuration module for orgnote."""

import logging
import os
import re
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from orgnote import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default database
_USER_ENV = Path.home() / ".orgnote" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Org files that are real notes: not hidden, not autosave (#foo.org#),
# not lock files (.#foo.org) and not backups (foo.org~).
DEFAULT_FILE_PATTERN = r"^[^.#][^/]*\.org$"


class OrgnoteConfig(BaseModel):
    """Configuration for the note index."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ORGNOTE_BASE_DIR", "."))
    )
    # Permanent notes
    notes_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ORGNOTE_NOTES_DIR", "notes"))
    )
    # Date-stamped journal entries, stored in their own table
    journal_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ORGNOTE_JOURNAL_DIR", "notes/journal")
        )
    )
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ORGNOTE_DATABASE_PATH", "data/orgnote.db")
        )
    )
    # Regex matched against the file name (not the path) in batch sync
    file_pattern: str = Field(
        default_factory=lambda: os.getenv("ORGNOTE_FILE_PATTERN", DEFAULT_FILE_PATTERN)
    )
    # The file the editor is visiting; default target of ``sync``
    current_file: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("ORGNOTE_CURRENT_FILE"))
            if os.getenv("ORGNOTE_CURRENT_FILE")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("ORGNOTE_LOG_LEVEL", "INFO")
    )
    version: str = Field(default=__version__)

    # Template for files created by find_or_create_node
    new_node_template: str = Field(
        default=(
            ":PROPERTIES:\n"
            ":ID:       {id}\n"
            ":END:\n"
            "#+title: {title}\n"
            "#+created: {created_at}\n"
            "\n"
        )
    )

    @model_validator(mode="after")
    def _validate_file_pattern(self) -> "OrgnoteConfig":
        """Reject a file pattern that does not compile."""
        try:
            re.compile(self.file_pattern)
        except re.error as e:
            raise ValueError(f"file_pattern is not a valid regex: {e}")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_notes_dir(self) -> Path:
        """Get the absolute notes directory."""
        return self.get_absolute_path(self.notes_dir)

    def get_journal_dir(self) -> Path:
        """Get the absolute journal directory."""
        return self.get_absolute_path(self.journal_dir)

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def is_journal_file(self, path: Path) -> bool:
        """Whether ``path`` lives under the journal directory."""
        journal_dir = self.get_journal_dir().resolve()
        try:
            Path(path).resolve().relative_to(journal_dir)
        except ValueError:
            return False
        return True

    def is_note_file(self, path: Path) -> bool:
        """Whether ``path`` names a real note rather than a scratch file."""
        return re.match(self.file_pattern, Path(path).name) is not None


# Create a global config instance
config = OrgnoteConfig()
