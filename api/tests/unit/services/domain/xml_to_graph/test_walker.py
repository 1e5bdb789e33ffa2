#!/usr/bin/env python3
"""
Tests for the document walker.

Covers traversal order, skip propagation, depth and start limits, tool
branching and deferred relationship resolution.
"""

import pytest

from xml_graph.models.models import ActionKind, ToolKind
from xml_graph.services.domain.xml_to_graph import execute_workflow
from xml_graph.services.domain.xml_to_graph.context import DeferredRelationship, ExecutionContext
from xml_graph.services.domain.xml_to_graph.walker import SkipState, edge_matches, resolve_deferred

from utils.factories import (
    ActionNodeFactory,
    BuilderNodeFactory,
    CanvasEdgeFactory,
    TestDataFactories,
    ToolNodeFactory,
    build_options,
    build_run,
)
from utils.graph_helpers import (
    assert_no_node_with_label,
    assert_node_exists,
    assert_relationship,
    assert_well_formed,
    graph_nodes,
    nodes_by_label,
    rels_of_type,
)


def builders(*tags):
    return [BuilderNodeFactory(id=f"b_{tag}", label=tag) for tag in tags]


def walk(xml, **fields):
    records = execute_workflow(build_options(xml, **fields))
    assert_well_formed(records)
    return records


# Fixtures


@pytest.fixture
def word_to_characters():
    """BuilderNode for <w> turning each word into a Word node with Character children."""
    word = ActionNodeFactory(id="a_word", type=ActionKind.CREATE_NODE, config={"labels": ["Word"]})
    tokens = ActionNodeFactory(
        id="a_tokens",
        type=ActionKind.CREATE_TOKEN_NODES,
        config={"splitBy": "", "tokenNodeLabel": "Character", "relationshipType": "contains"},
    )
    return {
        "nodes": [BuilderNodeFactory(id="b_w", label="w")],
        "action_nodes": [word, tokens],
        "action_edges": [
            CanvasEdgeFactory(source="b_w", target="a_word"),
            CanvasEdgeFactory(source="b_w", target="a_tokens"),
        ],
    }


# Tests


class TestEdgeMatching:
    """Test which edges fire for a tool output path."""

    def test_handle_must_equal_output_path(self):
        edge = CanvasEdgeFactory(source_handle="true")
        assert edge_matches(edge, "true")
        assert not edge_matches(edge, "false")

    def test_unlabelled_edge_fires_on_default_output(self):
        edge = CanvasEdgeFactory()
        assert edge_matches(edge, "output")
        assert not edge_matches(edge, "true")


class TestSkipState:
    """Test OR-combination of skip flags."""

    def test_flags_never_reset(self):
        state = SkipState()
        ctx = ExecutionContext(element=0, builder=BuilderNodeFactory())
        state.absorb(ctx.evolve(skip_main_node=True, skip_children_tags=("note",)))
        state.absorb(ctx.evolve(skip_main_node=False, skip_children=True, excluded_children=frozenset({3})))

        assert state.drops_node
        assert state.skip_children
        assert state.skip_children_tags == {"note"}
        assert state.excluded_children == {3}

    def test_latest_child_order_wins(self):
        state = SkipState()
        ctx = ExecutionContext(element=0, builder=BuilderNodeFactory())
        state.absorb(ctx.evolve(child_order=(2, 1)))
        state.absorb(ctx.evolve(child_order=(1, 2)))
        state.absorb(ctx)

        assert state.child_order == (1, 2)


class TestWordScenario:
    """Test the Word/Character tokenization scenario end to end."""

    def test_exact_graph(self, word_to_characters):
        records = walk('<root><w lemma="li">li</w></root>', **word_to_characters)
        assert records == [
            {"type": "node", "id": 0, "labels": ["Word"], "properties": {"lemma": "li"}},
            {"type": "node", "id": 1, "labels": ["Character"], "properties": {"text": "l", "index": 0}},
            {"type": "node", "id": 2, "labels": ["Character"], "properties": {"text": "i", "index": 1}},
            {"type": "relationship", "id": 0, "label": "contains", "start": 0, "end": 1, "properties": {}},
            {"type": "relationship", "id": 1, "label": "contains", "start": 0, "end": 2, "properties": {}},
        ]

    def test_runs_are_deterministic(self, word_to_characters):
        xml = "<root><w>ab</w><w>cd</w></root>"
        assert walk(xml, **word_to_characters) == walk(xml, **word_to_characters)

    def test_sample_workflow_is_deterministic(self):
        options = {**TestDataFactories.sample_workflow(), "xmlContent": TestDataFactories.sample_tei_document()}
        assert execute_workflow(options) == execute_workflow(options)


class TestTraversal:
    """Test document order and parent inheritance."""

    def test_unmapped_elements_pass_parent_through(self):
        records = walk("<root><div><p/></div></root>", nodes=builders("root", "p"))
        root, p = nodes_by_label(records, "root")[0], nodes_by_label(records, "p")[0]
        assert_no_node_with_label(records, "div")
        assert_relationship(records, "contains", root["id"], p["id"])

    def test_nodes_in_document_order(self):
        records = walk("<a><b><c/></b><d/></a>", nodes=builders("a", "b", "c", "d"))
        assert [n["labels"][0] for n in graph_nodes(records)] == ["a", "b", "c", "d"]

    def test_tag_matching_is_case_insensitive(self):
        records = walk("<Root><P/></Root>", nodes=builders("root", "p"))
        assert len(graph_nodes(records)) == 2

    def test_relationship_definition_types_default_links(self):
        records = walk(
            "<s><w/></s>",
            nodes=builders("s", "w"),
            relationships=[{"type": "hasWord", "from": "b_s", "to": "b_w"}],
        )
        assert len(rels_of_type(records, "hasWord")) == 1

    def test_max_depth_limits_visit(self):
        records = walk("<a><b><c/></b></a>", nodes=builders("a", "b", "c"), max_depth=1)
        assert [n["labels"][0] for n in graph_nodes(records)] == ["a", "b"]

    def test_max_depth_zero_visits_start_only(self):
        records = walk("<a><b/></a>", nodes=builders("a", "b"), max_depth=0)
        assert [n["labels"][0] for n in graph_nodes(records)] == ["a"]

    def test_start_node_id(self):
        records = walk(
            "<root><head/><body><p/></body></root>",
            nodes=builders("root", "head", "body", "p"),
            start_node_id="b_body",
        )
        assert [n["labels"][0] for n in graph_nodes(records)] == ["body", "p"]

    def test_unknown_start_node_walks_from_root(self):
        records = walk("<root><p/></root>", nodes=builders("root", "p"), start_node_id="b_missing")
        assert len(graph_nodes(records)) == 2

    def test_invalid_xml_gives_empty_graph(self):
        assert execute_workflow(build_options("<root>", nodes=builders("root"))) == []


class TestToolBranching:
    """Test that tool output paths select the actions that run."""

    def test_if_true_and_false_branches(self):
        to_word = ActionNodeFactory(id="a_word", type=ActionKind.CREATE_NODE, config={"labels": ["Word"]})
        skip = ActionNodeFactory(id="a_skip", type=ActionKind.SKIP)
        check = ToolNodeFactory(
            id="t_lemma",
            type=ToolKind.IF,
            target_node_id="b_w",
            config={"conditionGroups": [{"conditions": [{"type": "HasAttribute", "attributeName": "lemma"}]}]},
        )
        records = walk(
            '<p><w lemma="a">a</w><w>b</w></p>',
            nodes=builders("p", "w"),
            tool_nodes=[check],
            action_nodes=[to_word, skip],
            action_edges=[
                CanvasEdgeFactory(source="t_lemma", target="a_word", source_handle="true"),
                CanvasEdgeFactory(source="t_lemma", target="a_skip", source_handle="false"),
            ],
        )
        assert len(nodes_by_label(records, "Word")) == 1
        assert_no_node_with_label(records, "w")

    def test_limit_tool_restricts_children(self):
        limit = ToolNodeFactory(type=ToolKind.LIMIT, target_node_id="b_list", config={"limit": 2, "offset": 1})
        records = walk(
            '<list><item n="1"/><item n="2"/><item n="3"/><item n="4"/></list>',
            nodes=builders("list", "item"),
            tool_nodes=[limit],
        )
        assert [n["properties"]["n"] for n in nodes_by_label(records, "item")] == ["2", "3"]

    def test_sort_tool_orders_visits_only(self):
        sort = ToolNodeFactory(type=ToolKind.SORT, target_node_id="b_list", config={"sortBy": "attribute", "attributeName": "n"})
        list_node = ActionNodeFactory(id="a_list", type=ActionKind.CREATE_NODE)
        merged = ActionNodeFactory(id="a_text", type=ActionKind.MERGE_CHILDREN_TEXT, config={"separator": ","})
        records = walk(
            '<root><list><item n="3">c</item><item n="1">a</item><item n="2">b</item></list>'
            '<list><item n="9">z</item><item n="8">y</item></list></root>',
            nodes=builders("list", "item"),
            tool_nodes=[sort],
            action_nodes=[list_node, merged],
            action_edges=[
                CanvasEdgeFactory(source="b_list", target="a_list"),
                CanvasEdgeFactory(source="b_list", target="a_text"),
            ],
        )

        assert [n["properties"]["n"] for n in nodes_by_label(records, "item")] == ["1", "2", "3", "8", "9"]
        # Steps reading the document still see it in document order
        assert [n["properties"]["text"] for n in nodes_by_label(records, "list")] == ["c,a,b", "z,y"]

    def test_chained_tool_runs_its_actions(self):
        first = ToolNodeFactory(id="t_first", type=ToolKind.LOG, target_node_id="b_w")
        second = ToolNodeFactory(id="t_second", type=ToolKind.LOG)
        tag = ActionNodeFactory(id="a_tag", type=ActionKind.CREATE_NODE, config={"labels": ["Tagged"]})
        records = walk(
            "<w>x</w>",
            nodes=builders("w"),
            tool_nodes=[first, second],
            tool_edges=[CanvasEdgeFactory(source="t_first", target="t_second")],
            action_nodes=[tag],
            action_edges=[CanvasEdgeFactory(source="t_second", target="a_tag")],
        )
        assert_node_exists(records, "Tagged")


class TestSkipPropagation:
    """Test that skip flags from any step shape the walk."""

    def test_skipped_subtree_not_visited(self):
        skip = ActionNodeFactory(id="a_skip", type=ActionKind.SKIP)
        records = walk(
            "<root><a><b/></a><c/></root>",
            nodes=builders("root", "a", "b", "c"),
            action_nodes=[skip],
            action_edges=[CanvasEdgeFactory(source="b_a", target="a_skip")],
        )
        root = nodes_by_label(records, "root")[0]
        assert_no_node_with_label(records, "a")
        assert_no_node_with_label(records, "b")
        assert_relationship(records, "contains", root["id"], nodes_by_label(records, "c")[0]["id"])

    def test_failed_validation_drops_node_only(self):
        validate = ToolNodeFactory(
            type=ToolKind.VALIDATE,
            target_node_id="b_a",
            config={"rules": [{"type": "requiredAttribute", "attributeName": "n"}], "onFailure": "skip"},
        )
        records = walk("<root><a><b/></a></root>", nodes=builders("root", "a", "b"), tool_nodes=[validate])
        root, b = nodes_by_label(records, "root")[0], nodes_by_label(records, "b")[0]
        assert_no_node_with_label(records, "a")
        assert_relationship(records, "contains", root["id"], b["id"])

    def test_skip_after_node_creation_removes_node(self):
        create = ActionNodeFactory(id="a_create", type=ActionKind.CREATE_NODE)
        skip = ActionNodeFactory(id="a_skip", type=ActionKind.SKIP)
        records = walk(
            "<root><a/></root>",
            nodes=builders("root", "a"),
            action_nodes=[create, skip],
            action_edges=[
                CanvasEdgeFactory(source="b_a", target="a_create"),
                CanvasEdgeFactory(source="b_a", target="a_skip"),
            ],
        )
        assert_no_node_with_label(records, "a")
        assert rels_of_type(records, "contains") == []


class TestTokenization:
    """Test token counts for delimiter and character splitting."""

    @pytest.mark.parametrize("text,split_by,expected", [
        ("the big dog", " ", 3),
        ("a-b", "", 2),
        ("one,,two", ",", 2),
    ])
    def test_token_count(self, text, split_by, expected):
        tokens = ActionNodeFactory(id="a_tokens", type=ActionKind.CREATE_TOKEN_NODES, config={"splitBy": split_by})
        records = walk(
            f"<s>{text}</s>",
            nodes=builders("s"),
            action_nodes=[tokens],
            action_edges=[CanvasEdgeFactory(source="b_s", target="a_tokens")],
        )
        assert len(nodes_by_label(records, "Character")) == expected
        assert len(rels_of_type(records, "contains")) == expected


class TestDeferredResolution:
    """Test resolution of queued relationships after the walk."""

    def test_forward_reference(self):
        create = ActionNodeFactory(id="a_create", type=ActionKind.CREATE_NODE)
        defer = ActionNodeFactory(
            id="a_defer",
            type=ActionKind.DEFER_RELATIONSHIP,
            config={"targetAttribute": "target", "relationshipType": "refersTo"},
        )
        records = walk(
            '<root><ref target="#p1"/><person xml:id="p1"/></root>',
            nodes=builders("ref", "person"),
            action_nodes=[create, defer],
            action_edges=[
                CanvasEdgeFactory(source="b_ref", target="a_create"),
                CanvasEdgeFactory(source="b_ref", target="a_defer"),
            ],
        )
        assert rels_of_type(records, "refersTo") == [
            {"type": "relationship", "id": 0, "label": "refersTo", "start": 0, "end": 1, "properties": {}},
        ]

    def test_resolution_lookup_order(self):
        run = build_run('<root><a xml:id="x"/><b/></root>')
        source = run.assembler.create_node("Source")
        by_element = run.assembler.create_node("ByElement")
        by_identifier = run.assembler.create_node("ByIdentifier", {"xml:id": "y"})
        by_label = run.assembler.create_node("ByLabel")
        run.bind_element(1, by_element)
        run.deferred.extend([
            DeferredRelationship(from_id=source.id, type="one", target_element=1, target_id="x"),
            DeferredRelationship(from_id=source.id, type="two", target_id="#y"),
            DeferredRelationship(from_id=source.id, type="three", target_label="ByLabel"),
            DeferredRelationship(from_id=source.id, type="dropped", target_id="nowhere"),
        ])

        assert resolve_deferred(run) == 3
        assert [(r.label, r.end) for r in run.assembler.rels] == [
            ("one", by_element.id),
            ("two", by_identifier.id),
            ("three", by_label.id),
        ]
        assert run.deferred == []

    def test_source_removed_before_resolution(self):
        run = build_run("<root/>")
        source = run.assembler.create_node("Source")
        target = run.assembler.create_node("Target")
        run.deferred.append(DeferredRelationship(from_id=source.id, type="links", target_label="Target"))
        run.assembler.remove_node(source.id)

        assert resolve_deferred(run) == 0
        assert run.assembler.rels == []
        assert run.assembler.has_node(target.id)
