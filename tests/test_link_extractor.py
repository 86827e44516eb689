"""Tests for id link extraction (title rewriting and body scanning)."""
import textwrap

import pytest

from orgnote.models.schema import LinkKind, LinkRecord
from orgnote.services.link_extractor import LinkExtractor, format_id_link
from orgnote.storage.org_parser import OrgParser


@pytest.fixture
def extractor():
    return LinkExtractor()


def parse(text: str):
    return OrgParser().parse(textwrap.dedent(text).lstrip("\n"))


class TestTitleRewriting:
    """Embedded id links in titles are flattened to their text."""

    def test_plain_title_unchanged(self, extractor):
        assert extractor.rewrite_title("Just a title") == ("Just a title", [])

    def test_link_replaced_by_description(self, extractor):
        title, targets = extractor.rewrite_title("About [[id:abc][Alpha]] and more")
        assert title == "About Alpha and more"
        assert targets == ["abc"]

    def test_link_without_description_uses_target(self, extractor):
        title, targets = extractor.rewrite_title("See [[id:abc]]")
        assert title == "See abc"
        assert targets == ["abc"]

    def test_targets_in_left_to_right_order(self, extractor):
        title, targets = extractor.rewrite_title(
            "[[id:one][1]] then [[id:two][2]] then [[id:three][3]]"
        )
        assert title == "1 then 2 then 3"
        assert targets == ["one", "two", "three"]

    def test_other_link_types_untouched(self, extractor):
        title, targets = extractor.rewrite_title("[[https://x.org][site]]")
        assert title == "[[https://x.org][site]]"
        assert targets == []

    def test_title_links_need_node_id(self, extractor):
        title, links = extractor.title_links(None, "Ref [[id:abc][A]]")
        assert title == "Ref A"
        assert links == []

    def test_title_links_with_node_id(self, extractor):
        _, links = extractor.title_links("me", "Ref [[id:abc][A]] [[id:def][D]]")
        assert links == [
            LinkRecord(source="me", dest="abc", kind=LinkKind.TITLE),
            LinkRecord(source="me", dest="def", kind=LinkKind.TITLE),
        ]


class TestBodyScanning:
    """Body links are attributed to the nearest identified headline."""

    def test_link_inside_identified_heading(self, extractor):
        doc = parse("""
            * H
            :PROPERTIES:
            :ID: id-H
            :END:
            Points at [[id:id-T][target]].
            """)
        assert extractor.scan_body(doc) == [
            LinkRecord(source="id-H", dest="id-T", kind=LinkKind.BODY)
        ]

    def test_link_in_unidentified_child_goes_to_ancestor(self, extractor):
        doc = parse("""
            * Parent
            :PROPERTIES:
            :ID: P
            :END:
            ** No id here
            *** Deeper, still no id
            text [[id:X]]
            """)
        assert [(l.source, l.dest) for l in extractor.scan_body(doc)] == [("P", "X")]

    def test_link_in_sibling_is_not_attributed_to_previous_heading(self, extractor):
        doc = parse("""
            * First
            :PROPERTIES:
            :ID: F
            :END:
            * Second
            :PROPERTIES:
            :ID: S
            :END:
            [[id:X]]
            """)
        assert [l.source for l in extractor.scan_body(doc)] == ["S"]

    def test_preamble_link_uses_topic_id(self, extractor):
        doc = parse("""
            :PROPERTIES:
            :ID: TOPIC
            :END:
            Intro [[id:X]].
            * H
            """)
        assert [(l.source, l.dest) for l in extractor.scan_body(doc)] == [("TOPIC", "X")]

    def test_unattributable_link_is_dropped(self, extractor):
        doc = parse("""
            Intro [[id:X]].
            * No id
            Body [[id:Y]].
            """)
        assert extractor.scan_body(doc) == []

    def test_exactly_one_edge_amid_unrelated_links(self, extractor):
        doc = parse("""
            :PROPERTIES:
            :ID: TOPIC
            :END:
            [[id:other-1]]
            * H
            :PROPERTIES:
            :ID: id-H
            :END:
            Here: [[id:id-T][the target]].
            * Elsewhere
            :PROPERTIES:
            :ID: E
            :END:
            [[id:other-2]] [[id:other-3]]
            """)
        edges = [(l.source, l.dest) for l in extractor.scan_body(doc)]
        assert edges.count(("id-H", "id-T")) == 1
        assert all(dest != "id-T" for src, dest in edges if src != "id-H")

    def test_link_prefix_is_case_insensitive(self, extractor):
        doc = parse("""
            * H
            :PROPERTIES:
            :ID: H
            :END:
            Upper [[ID:A][a]] and mixed [[Id:B]].
            """)
        assert [l.dest for l in extractor.scan_body(doc)] == ["A", "B"]
        assert extractor.rewrite_title("See [[ID:A][a]]") == ("See a", ["A"])

    def test_title_links_are_also_seen_by_body_scan(self, extractor):
        doc = parse("""
            * About [[id:X][x]]
            :PROPERTIES:
            :ID: H
            :END:
            """)
        assert [(l.source, l.dest) for l in extractor.scan_body(doc)] == [("H", "X")]


def test_format_id_link():
    assert format_id_link("abc", "Alpha") == "[[id:abc][Alpha]]"
    assert format_id_link("abc") == "[[id:abc]]"
