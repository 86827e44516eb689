"""Data models for orgnote."""

import datetime
import os
import threading
from datetime import timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# Master value of a node with no identified ancestor (the topic itself,
# or a top-level heading in a file without a topic ID).
NO_MASTER = "0"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


# Thread-safe counter for uniqueness (seeded from PID for cross-process safety)
_id_lock = threading.Lock()
_last_timestamp = 0
_counter = (os.getpid() * 7) % 1_000_000


def generate_id() -> str:
    """Generate a timestamp-based ID for a newly created node.

    Returns:
        A string in format "YYYYMMDDTHHMMSSsssssscccccc": the UTC date, a
        ``T`` separator, the time, microseconds and a 6-digit counter that
        keeps IDs unique within the same microsecond.
    """
    global _last_timestamp, _counter

    with _id_lock:
        now = utc_now()
        current_timestamp = int(now.timestamp() * 1_000_000)

        if current_timestamp == _last_timestamp:
            _counter += 1
        else:
            _last_timestamp = current_timestamp
            _counter = (os.getpid() * 7) % 1_000_000

        _counter %= 1_000_000

        return f"{now.strftime('%Y%m%dT%H%M%S')}{now.microsecond:06d}{_counter:06d}"


class LinkKind(str, Enum):
    """Which extraction mechanism produced a link."""

    MASTER = "master"  # Child node -> nearest identified ancestor
    TITLE = "title"  # id link embedded in a node title
    BODY = "body"  # id link found in the file text


class NodeRecord(BaseModel):
    """A node extracted from one file, ready to be persisted."""

    id: str = Field(..., description="Globally unique node identifier")
    file: str = Field(..., description="File name (no directory)")
    title: str = Field(default="", description="Title with id links flattened")
    level: int = Field(default=0, ge=0, description="0 for the topic")
    tags: List[str] = Field(default_factory=list, description="Own + inherited tags")
    master: str = Field(default=NO_MASTER, description="Nearest identified ancestor")

    model_config = {"frozen": True}

    @field_validator("id")
    @classmethod
    def id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Node ID cannot be blank")
        return v.strip()

    @property
    def has_master(self) -> bool:
        return self.master != NO_MASTER


class LinkRecord(BaseModel):
    """A directed edge from the referencing node to the referenced one."""

    source: str = Field(..., description="ID of the node containing the reference")
    dest: str = Field(..., description="ID of the referenced node")
    kind: LinkKind = Field(default=LinkKind.BODY)

    model_config = {"frozen": True}


class FileRecordSet(BaseModel):
    """Everything extracted from one file."""

    file: str
    topic: Optional[NodeRecord] = None
    nodes: List[NodeRecord] = Field(default_factory=list)
    links: List[LinkRecord] = Field(default_factory=list)

    @property
    def records(self) -> List[NodeRecord]:
        """Topic (when present) followed by heading nodes in document order."""
        if self.topic is None:
            return list(self.nodes)
        return [self.topic, *self.nodes]


class Node(BaseModel):
    """A persisted node as returned by lookups."""

    id: str
    file: str
    title: str
    level: int
    master: str = NO_MASTER
    tags: List[str] = Field(default_factory=list)
    journal: bool = False

    def __str__(self) -> str:
        return f"{self.title} ({self.id})"


class SyncReport(BaseModel):
    """Outcome of a batch sync."""

    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)
    purged: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
