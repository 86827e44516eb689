"""Typed elements of a parsed org document.

The parser produces a ``Document`` holding keywords, an optional
file-level property drawer and a forest of ``Headline`` elements. Every
element is a plain record; traversal helpers return collected results
instead of mutating shared state.
"""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Keyword:
    """A ``#+KEY: value`` line. ``key`` is upper-cased."""
    key: str
    value: str


@dataclass
class NodeProperty:
    """One ``:KEY: value`` line of a property drawer."""
    key: str
    value: str


@dataclass
class PropertyDrawer:
    """A ``:PROPERTIES:`` ... ``:END:`` block."""
    properties: List[NodeProperty] = field(default_factory=list)

    def get(self, key: str) -> Optional[str]:
        """Value of ``key`` (case-insensitive), or None."""
        key = key.upper()
        for prop in self.properties:
            if prop.key.upper() == key:
                return prop.value
        return None


@dataclass
class Link:
    """A bracket link ``[[type:path][description]]``.

    ``begin`` and ``end`` are character offsets into the document text.
    """
    type: str
    path: str
    description: Optional[str] = None
    begin: int = 0
    end: int = 0


@dataclass(eq=False)
class Headline:
    """An outline heading and the section below it."""
    raw_value: str
    level: int
    tags: List[str] = field(default_factory=list)
    drawer: Optional[PropertyDrawer] = None
    parent: Optional["Headline"] = field(default=None, repr=False)
    children: List["Headline"] = field(default_factory=list, repr=False)
    links: List[Link] = field(default_factory=list, repr=False)
    begin: int = 0
    line: int = 0

    @property
    def id(self) -> Optional[str]:
        """The ``:ID:`` property, or None when absent or blank."""
        if self.drawer is None:
            return None
        return self.drawer.get("ID") or None


@dataclass
class Document:
    """A parsed org file."""
    text: str
    keywords: List[Keyword] = field(default_factory=list)
    drawer: Optional[PropertyDrawer] = None
    headlines: List[Headline] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)

    def keyword(self, key: str) -> Optional[str]:
        """Value of the first ``#+KEY:`` line, or None."""
        key = key.upper()
        for kw in self.keywords:
            if kw.key == key:
                return kw.value
        return None

    @property
    def id(self) -> Optional[str]:
        """The document-level ``:ID:`` property, or None."""
        if self.drawer is None:
            return None
        return self.drawer.get("ID") or None

    @property
    def title(self) -> Optional[str]:
        return self.keyword("TITLE")

    @property
    def filetags(self) -> List[str]:
        """Tags from ``#+FILETAGS``, accepting ``:a:b:`` or ``a b``."""
        value = self.keyword("FILETAGS")
        if not value:
            return []
        return split_tags(value)

    def walk(self) -> List[Headline]:
        """All headlines in document order (depth-first, top to bottom)."""
        result: List[Headline] = []
        stack = list(reversed(self.headlines))
        while stack:
            headline = stack.pop()
            result.append(headline)
            stack.extend(reversed(headline.children))
        return result


def split_tags(value: str) -> List[str]:
    """Split an org tag string into an ordered, de-duplicated list."""
    tags: List[str] = []
    for part in value.replace(":", " ").split():
        if part not in tags:
            tags.append(part)
    return tags
