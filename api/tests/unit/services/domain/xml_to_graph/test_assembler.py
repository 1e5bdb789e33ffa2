#!/usr/bin/env python3
"""Tests for graph assembly: ids, labels and relationship typing."""

import pytest

from xml_graph.models.models import PropertyDefinition, RelationshipDefinition, SchemaJson
from xml_graph.services.domain.xml_to_graph.assembler import GraphAssembler
from xml_graph.services.domain.xml_to_graph.elements import parse_document

from utils.factories import BuilderNodeFactory


@pytest.fixture
def schema():
    return SchemaJson.model_validate({
        "nodes": {"Person": {"labels": ["Agent"], "domain": "Prosopography"}},
        "relations": {"knows": {"domain": "Person", "range": "Person"}},
    })


@pytest.fixture
def definitions():
    return [
        RelationshipDefinition(type="hasWord", from_node="b_s", to_node="b_w"),
        RelationshipDefinition(
            type="contains",
            properties=[PropertyDefinition(key="source", default_value="xml")],
        ),
    ]


class TestIdAllocation:
    """Test that node and relationship ids come from independent counters."""

    def test_independent_counters(self):
        assembler = GraphAssembler()
        a = assembler.create_node("A")
        b = assembler.create_node("B")
        rel = assembler.create_relationship(a.id, b.id, "links")

        assert (a.id, b.id) == (0, 1)
        assert rel.id == 0

    def test_ids_never_reused_after_removal(self):
        assembler = GraphAssembler()
        first = assembler.create_node("A")
        assembler.remove_node(first.id)
        second = assembler.create_node("A")

        assert second.id == 1
        assert [n.id for n in assembler.nodes] == [1]

    def test_removal_drops_incident_relationships(self):
        assembler = GraphAssembler()
        a, b, c = (assembler.create_node(label) for label in "ABC")
        assembler.create_relationship(a.id, b.id)
        assembler.create_relationship(b.id, c.id)
        assembler.create_relationship(a.id, c.id)

        assembler.remove_node(b.id)

        assert [(r.start, r.end) for r in assembler.rels] == [(a.id, c.id)]


class TestLabels:
    """Test schema-driven label composition."""

    def test_schema_labels_and_domain(self, schema):
        assembler = GraphAssembler(schema=schema)
        node = assembler.create_node("Person", extra_labels=["Agent", "Named"])
        assert node.labels == ["Person", "Agent", "Prosopography", "Named"]

    def test_schema_bypassed(self, schema):
        assembler = GraphAssembler(schema=schema)
        node = assembler.create_node("Person", use_schema=False)
        assert node.labels == ["Person"]

    def test_element_node_properties(self):
        arena = parse_document('<w lemma="li">li</w>')
        builder = BuilderNodeFactory(
            id="b_w",
            label="Word",
            properties=[PropertyDefinition(key="lang", default_value="la"), PropertyDefinition(key="lemma", default_value="x")],
        )
        node = GraphAssembler().create_node_for_element(builder, arena, 0)

        assert node.labels == ["Word"]
        assert node.properties == {"lang": "la", "lemma": "li"}


class TestRelationshipTyping:
    """Test relationship type resolution and defaults."""

    def test_definition_matching_builders_wins(self, definitions):
        assembler = GraphAssembler(definitions)
        parent = assembler.create_node("Sentence", builder_id="b_s")
        assert assembler.resolve_relationship_type(parent.id, "b_w") == "hasWord"

    def test_contains_definition_next(self, definitions):
        assembler = GraphAssembler(definitions)
        parent = assembler.create_node("Sentence", builder_id="b_other")
        assert assembler.resolve_relationship_type(parent.id, "b_w") == "contains"

    def test_first_definition_then_literal(self):
        assembler = GraphAssembler([RelationshipDefinition(type="partOf")])
        assert assembler.resolve_relationship_type(None, "b_w") == "partOf"
        assert GraphAssembler().resolve_relationship_type(None, "b_w") == "contains"

    def test_definition_defaults_overridden_by_properties(self, definitions):
        assembler = GraphAssembler(definitions)
        a, b = assembler.create_node("A"), assembler.create_node("B")

        plain = assembler.create_relationship(a.id, b.id, "contains")
        explicit = assembler.create_relationship(a.id, b.id, "contains", {"source": "tool"})

        assert plain.properties == {"source": "xml"}
        assert explicit.properties == {"source": "tool"}

    def test_unknown_type_created_as_given(self, schema):
        assembler = GraphAssembler(schema=schema)
        a, b = assembler.create_node("A"), assembler.create_node("B")
        rel = assembler.create_relationship(a.id, b.id, "mentions")

        assert rel.label == "mentions"
        assert not assembler.is_known_relationship_type("mentions")
        assert assembler.is_known_relationship_type("knows")


class TestLookupAndOutput:
    """Test node lookup and record output."""

    def test_find_node_by_identifier(self):
        assembler = GraphAssembler()
        assembler.create_node("A", {"xml:id": "p1"})
        target = assembler.create_node("B", {"_id": "p2"})

        assert assembler.find_node_by_identifier("#p2") is target
        assert assembler.find_node_by_identifier("p3") is None

    def test_absorb_node_repoints_relationships(self):
        assembler = GraphAssembler()
        a, b, c = (assembler.create_node(label) for label in "ABC")
        assembler.create_relationship(a.id, b.id)
        assembler.create_relationship(b.id, c.id)

        assert assembler.absorb_node(b.id, a.id)
        assert [(r.start, r.end) for r in assembler.rels] == [(a.id, a.id), (a.id, c.id)]

    def test_records_nodes_then_relationships(self):
        assembler = GraphAssembler()
        a, b = assembler.create_node("A", {"k": 1}), assembler.create_node("B")
        assembler.create_relationship(a.id, b.id, "links", {"w": 2})

        assert assembler.to_records() == [
            {"type": "node", "id": 0, "labels": ["A"], "properties": {"k": 1}},
            {"type": "node", "id": 1, "labels": ["B"], "properties": {}},
            {"type": "relationship", "id": 0, "label": "links", "start": 0, "end": 1, "properties": {"w": 2}},
        ]
