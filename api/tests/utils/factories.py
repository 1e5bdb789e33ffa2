#!/usr/bin/env python3

from typing import Any

import factory

from xml_graph.models.models import (
    ActionKind,
    ActionNode,
    BuilderNode,
    CanvasEdge,
    ExecuteOptions,
    ToolKind,
    ToolNode,
)
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.elements import parse_document
from xml_graph.services.domain.xml_to_graph.fetching import FetchDispatcher


class BuilderNodeFactory(factory.Factory):
    """Factory for BuilderNode objects"""

    class Meta:
        model = BuilderNode

    id = factory.Sequence(lambda n: f"builder_{n}")
    label = "Thing"


class ToolNodeFactory(factory.Factory):
    """Factory for ToolNode objects"""

    class Meta:
        model = ToolNode

    id = factory.Sequence(lambda n: f"tool_{n}")
    type = ToolKind.LOG
    target_node_id = None
    config = factory.LazyFunction(dict)


class ActionNodeFactory(factory.Factory):
    """Factory for ActionNode objects"""

    class Meta:
        model = ActionNode

    id = factory.Sequence(lambda n: f"action_{n}")
    type = ActionKind.CREATE_NODE
    config = factory.LazyFunction(dict)


class CanvasEdgeFactory(factory.Factory):
    """Factory for tool and action edges"""

    class Meta:
        model = CanvasEdge

    id = factory.Sequence(lambda n: f"edge_{n}")
    source = "tool_0"
    target = "action_0"
    source_handle = None


def build_options(xml: str, **fields: Any) -> ExecuteOptions:
    """ExecuteOptions for ``xml`` with the given snake_case fields."""
    return ExecuteOptions(xml_content=xml, **fields)


def build_run(xml: str, **fields: Any) -> RunState:
    """Run state over a parsed document, for driving single steps."""
    options = build_options(xml, **fields)
    return RunState(options, parse_document(xml), FetchDispatcher())


def context_for(element: int, builder: BuilderNode | None = None, **changes: Any) -> ExecutionContext:
    """Context for ``element`` under ``builder`` (a throwaway Thing builder by default)."""
    builder = builder or BuilderNodeFactory(id="b_ctx", label="Thing")
    return ExecutionContext(element=element, builder=builder, **changes)


class TestDataFactories:
    """Collection of test data factories"""

    @staticmethod
    def sample_tei_document() -> str:
        """Small TEI-like document with pointers between persons and mentions"""
        return '''<TEI>
            <text>
                <body>
                    <p n="1">
                        <persName ref="#p2">Anna</persName>
                        <w lemma="see">sees</w>
                    </p>
                    <listPerson>
                        <person xml:id="p1"><name>Ben</name></person>
                        <person xml:id="p2"><name>Anna</name></person>
                    </listPerson>
                </body>
            </text>
        </TEI>'''

    @staticmethod
    def sample_workflow() -> dict[str, Any]:
        """Workflow for sample_tei_document in the camelCase input format.

        ``w`` elements with a lemma become Word nodes split into Character
        nodes; ``persName`` links to the person its ``ref`` points at.
        """
        return {
            "nodes": [
                {"id": "b_p", "label": "p"},
                {"id": "b_w", "label": "w"},
                {"id": "b_pers", "label": "persName"},
                {"id": "b_person", "label": "person"},
            ],
            "relationships": [
                {"id": "r1", "type": "contains", "from": "b_p", "to": "b_w"},
            ],
            "toolNodes": [
                {"id": "t_if", "type": "tool:if", "targetNodeId": "b_w", "config": {
                    "conditionGroups": [{"conditions": [{"type": "HasAttribute", "attributeName": "lemma"}]}],
                }},
            ],
            "toolEdges": [],
            "actionNodes": [
                {"id": "a_word", "type": "action:create-node", "config": {"labels": ["Word"]}},
                {"id": "a_tokens", "type": "action:create-token-nodes", "config": {
                    "splitBy": "",
                    "tokenNodeLabel": "Character",
                    "relationshipType": "contains",
                }},
                {"id": "a_mention", "type": "action:create-node", "config": {}},
                {"id": "a_ref", "type": "action:create-reference", "config": {
                    "referenceAttribute": "ref",
                    "relationshipType": "mentions",
                }},
            ],
            "actionEdges": [
                {"id": "e1", "source": "t_if", "target": "a_word", "sourceHandle": "true"},
                {"id": "e2", "source": "t_if", "target": "a_tokens", "sourceHandle": "true"},
                {"id": "e3", "source": "b_pers", "target": "a_mention"},
                {"id": "e4", "source": "b_pers", "target": "a_ref"},
            ],
        }
