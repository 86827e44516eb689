"""Parsing of org-mode outline files into a typed element tree.

Only the structure the index needs is recognised: ``#+KEY:`` keywords,
property drawers, headlines with tags, planning lines and bracket links.
Everything else is body text.
"""
import logging
import re
from typing import List, Optional

from orgnote.exceptions import ErrorCode, ParseError
from orgnote.models.org_tree import (
    Document,
    Headline,
    Keyword,
    Link,
    NodeProperty,
    PropertyDrawer,
    split_tags,
)

logger = logging.getLogger(__name__)

HEADLINE_RE = re.compile(r"^(\*+)(?:[ \t]+(.*?))?[ \t]*$")
HEADLINE_TAGS_RE = re.compile(r"(?:^|[ \t]+)(:(?:[\w@#%]+:)+)$")
KEYWORD_RE = re.compile(r"^[ \t]*#\+(\w+):[ \t]*(.*?)[ \t]*$")
DRAWER_BEGIN_RE = re.compile(r"^[ \t]*:PROPERTIES:[ \t]*$", re.IGNORECASE)
DRAWER_END_RE = re.compile(r"^[ \t]*:END:[ \t]*$", re.IGNORECASE)
PROPERTY_RE = re.compile(r"^[ \t]*:([^:\s]+):(?:[ \t]+(.*?))?[ \t]*$")
PLANNING_RE = re.compile(r"^[ \t]*(?:SCHEDULED|DEADLINE|CLOSED):")
BRACKET_LINK_RE = re.compile(r"\[\[([^\[\]]+)\](?:\[([^\[\]]*)\])?\]")
LINK_TYPE_RE = re.compile(r"^([A-Za-z][\w+-]*):(.*)$", re.DOTALL)


class OrgParser:
    """Parses org text into a ``Document``."""

    def parse(self, text: str, path: Optional[str] = None) -> Document:
        """Parse ``text`` into a document tree.

        Args:
            text: Full contents of an org file.
            path: File path used in error messages only.

        Returns:
            The parsed Document.

        Raises:
            ParseError: If a property drawer is malformed or never closed.
        """
        doc = Document(text=text)
        stack: List[Headline] = []
        current: Optional[Headline] = None
        # Headline whose property drawer may still follow
        drawer_owner: Optional[Headline] = None
        seen_planning = False

        lines = text.splitlines(keepends=True)
        offset = 0
        index = 0
        while index < len(lines):
            line = lines[index].rstrip("\r\n")
            line_start = offset
            offset += len(lines[index])
            index += 1
            lineno = index

            match = HEADLINE_RE.match(line)
            if match:
                headline = self._make_headline(match, line_start, lineno)
                while stack and stack[-1].level >= headline.level:
                    stack.pop()
                if stack:
                    headline.parent = stack[-1]
                    stack[-1].children.append(headline)
                else:
                    doc.headlines.append(headline)
                stack.append(headline)
                current = headline
                drawer_owner = headline
                seen_planning = False
                self._collect_links(line, line_start, headline.links)
                continue

            if DRAWER_BEGIN_RE.match(line):
                drawer, consumed, offset = self._read_drawer(
                    lines, index, offset, lineno, path
                )
                index += consumed
                if current is None:
                    if doc.drawer is None:
                        doc.drawer = drawer
                elif drawer_owner is current and current.drawer is None:
                    current.drawer = drawer
                drawer_owner = None
                continue

            if (
                drawer_owner is not None
                and not seen_planning
                and PLANNING_RE.match(line)
            ):
                seen_planning = True
                self._collect_links(line, line_start, current.links)
                continue
            drawer_owner = None

            if current is None:
                kw = KEYWORD_RE.match(line)
                if kw:
                    doc.keywords.append(Keyword(key=kw.group(1).upper(), value=kw.group(2)))
                self._collect_links(line, line_start, doc.links)
            else:
                self._collect_links(line, line_start, current.links)

        return doc

    @staticmethod
    def _make_headline(match: "re.Match", begin: int, lineno: int) -> Headline:
        rest = match.group(2) or ""
        tags: List[str] = []
        tag_match = HEADLINE_TAGS_RE.search(rest)
        if tag_match:
            tags = split_tags(tag_match.group(1))
            rest = rest[: tag_match.start()]
        return Headline(
            raw_value=rest.strip(),
            level=len(match.group(1)),
            tags=tags,
            begin=begin,
            line=lineno,
        )

    @staticmethod
    def _read_drawer(lines, index, offset, lineno, path):
        """Read property lines up to ``:END:``.

        Returns the drawer, the number of lines consumed after the
        ``:PROPERTIES:`` line, and the offset past ``:END:``.
        """
        drawer = PropertyDrawer()
        consumed = 0
        while index + consumed < len(lines):
            raw = lines[index + consumed]
            line = raw.rstrip("\r\n")
            offset += len(raw)
            consumed += 1
            if DRAWER_END_RE.match(line):
                return drawer, consumed, offset
            prop = PROPERTY_RE.match(line)
            if not prop:
                raise ParseError(
                    f"Malformed line in property drawer: {line.strip()[:60]!r}",
                    line=lineno + consumed,
                    path=path,
                    code=ErrorCode.PARSE_MALFORMED_PROPERTY,
                )
            drawer.properties.append(
                NodeProperty(key=prop.group(1), value=prop.group(2) or "")
            )
        raise ParseError(
            "Property drawer is never closed with :END:",
            line=lineno,
            path=path,
            code=ErrorCode.PARSE_UNTERMINATED_DRAWER,
        )

    @staticmethod
    def _collect_links(line: str, line_start: int, into: List[Link]) -> None:
        for m in BRACKET_LINK_RE.finditer(line):
            target = m.group(1)
            typed = LINK_TYPE_RE.match(target)
            if typed:
                link_type, link_path = typed.group(1).lower(), typed.group(2)
            else:
                link_type, link_path = "fuzzy", target
            into.append(
                Link(
                    type=link_type,
                    path=link_path,
                    description=m.group(2),
                    begin=line_start + m.start(),
                    end=line_start + m.end(),
                )
            )
