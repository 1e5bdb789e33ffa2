#!/usr/bin/env python3
"""Tests for the element arena."""

import pytest

from xml_graph.services.domain.xml_to_graph.elements import NO_PARENT, parse_document, parse_ns, qname_from_tag


@pytest.fixture
def arena():
    xml = (
        '<TEI xmlns:tei="http://www.tei-c.org/ns/1.0">'
        '<p n="1">Hello <w xml:id="w1" lemma="world">world</w>!<w xml:id="w2">again</w></p>'
        '<note/>'
        '</TEI>'
    )
    return parse_document(xml)


class TestParseDocument:
    """Test document parsing into the arena."""

    def test_document_order_indices(self, arena):
        assert arena.tags == ["TEI", "p", "w", "w", "note"]
        assert arena.parents == [NO_PARENT, 0, 1, 1, 0]
        assert arena.children[0] == [1, 4]
        assert arena.children[1] == [2, 3]
        assert arena.depths == [0, 1, 2, 2, 1]

    def test_malformed_xml_returns_none(self):
        assert parse_document("<root><unclosed></root>") is None

    def test_empty_content_returns_none(self):
        assert parse_document("   ") is None

    def test_entity_declarations_refused(self):
        xml = '<!DOCTYPE r [<!ENTITY e "boom">]><r>&e;</r>'
        assert parse_document(xml) is None


class TestElementAccess:
    """Test per-element accessors."""

    def test_attributes_use_prefixed_names(self, arena):
        assert arena.attributes(2) == {"xml:id": "w1", "lemma": "world"}

    def test_text_content_includes_descendants(self, arena):
        assert arena.text_content(1) == "Hello world!again"

    def test_tail_excluded_from_outer_xml(self, arena):
        outer = arena.outer_xml(2)
        assert outer.endswith("</w>")
        assert "!" not in outer
        assert arena.elements[2].tail == "!"

    def test_inner_xml(self, arena):
        inner = arena.inner_xml(1)
        assert inner.startswith("Hello <w")
        assert "!" in inner

    def test_find_by_id_ignores_pointer_hash(self, arena):
        assert arena.find_by_id("#w2") == 3
        assert arena.find_by_id("w9") is None

    def test_id_index_built_at_parse(self, arena):
        assert arena.ids == {"w1": 2, "w2": 3}

    def test_first_element_wins_for_repeated_id(self):
        arena = parse_document('<r><a id="x"/><b xml:id="x"/><c id="" xml:id="y"/></r>')
        assert arena.find_by_id("x") == 1
        assert arena.find_by_id("y") == 3

    def test_attributes_are_copies(self, arena):
        arena.attributes(2)["lemma"] = "changed"
        assert arena.get_attribute(2, "lemma") == "world"

    def test_find_by_local_name_case_insensitive(self, arena):
        assert arena.find_by_local_name("NOTE") == 4

    def test_ancestors_and_siblings(self, arena):
        assert arena.ancestors(2) == [1, 0]
        assert arena.siblings(2) == [3]
        assert arena.siblings(0) == []


class TestNamespaces:
    """Test namespace prefix handling."""

    def test_parse_ns(self):
        ns = parse_ns('<a xmlns="urn:default" xmlns:x="urn:x"/>')
        assert ns[""] == "urn:default"
        assert ns["x"] == "urn:x"
        assert ns["xml"] == "http://www.w3.org/XML/1998/namespace"

    def test_qname_from_tag(self):
        ns = {"x": "urn:x", "": "urn:default"}
        assert qname_from_tag("{urn:x}item", ns) == "x:item"
        assert qname_from_tag("{urn:default}item", ns) == "item"
        assert qname_from_tag("plain", ns) == "plain"
