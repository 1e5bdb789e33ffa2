#!/usr/bin/env python3
"""Execution context and run-scoped state.

``ExecutionContext`` is a frozen value describing one (element, BuilderNode)
pairing. Steps never mutate it; they return an evolved copy and the walker
merges the skip flags of every copy it gets back. Everything that really is
shared across the run (the graph being built, the element table, deferred
relationships, fetched API data) lives on ``RunState``.
"""
import dataclasses
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

from xml_graph.models.models import (
    FETCH_TOOL_KINDS,
    ActionNode,
    BuilderNode,
    CanvasEdge,
    ExecuteOptions,
    ToolNode,
)
from xml_graph.services.domain.xml_to_graph.assembler import GraphAssembler, GraphNode
from xml_graph.services.domain.xml_to_graph.elements import ElementArena
from xml_graph.services.domain.xml_to_graph.fetching import FetchDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    element: int                                  # Arena index of the element being visited
    builder: BuilderNode                          # Matched BuilderNode
    parent_node_id: int | None = None             # Node created for the nearest mapped ancestor
    current_node_id: int | None = None            # Node created for this element, if any
    skipped: bool = False                         # Element and subtree dropped
    skip_main_node: bool | None = None            # None means "not set by any step"
    skip_children: bool | None = None
    skip_children_tags: tuple[str, ...] = ()      # Lower-cased child tags to leave out
    excluded_children: frozenset[int] = frozenset()  # Children the walker must not visit
    child_order: tuple[int, ...] | None = None    # Visit order set by a sort tool; None is document order

    def evolve(self, **changes: Any) -> "ExecutionContext":
        return dataclasses.replace(self, **changes)

    def with_node(self, node: GraphNode | None) -> "ExecutionContext":
        return self.evolve(current_node_id=node.id if node is not None else None)


@dataclass(frozen=True)
class ToolResult:
    result: Any
    context: ExecutionContext
    output_path: str | None = None


@dataclass
class DeferredRelationship:
    """Relationship queued until every node of the run exists."""

    from_id: int
    type: str
    properties: dict[str, Any] = field(default_factory=dict)
    target_element: int | None = None  # Arena index captured at queue time
    target_id: str | None = None       # id / xml:id value to match against node properties
    target_label: str | None = None    # Primary label of the target, when neither of the above is known


class RunState:
    """Mutable state shared by every step of one workflow run."""

    def __init__(
        self,
        options: ExecuteOptions,
        arena: ElementArena,
        fetcher: FetchDispatcher,
    ):
        self.options = options
        self.arena = arena
        self.assembler = GraphAssembler(options.relationships, options.graph_schema)
        self.fetcher = fetcher
        self.element_nodes: list[int | None] = [None] * len(arena)
        self.deferred: list[DeferredRelationship] = []
        self.api_data: dict[str, Any] = {}
        self.tool_responses: dict[str, Any] = {}  # Tool id -> payload of its latest fetch
        self.walk: Callable[[int, int | None], None] | None = None  # Sub-walk hook set by the walker

        self.builder_nodes = {n.id: n for n in options.nodes}
        self.label_map: dict[str, list[BuilderNode]] = defaultdict(list)
        for builder in options.nodes:
            self.label_map[builder.label.lower()].append(builder)

        self.tools_by_id: dict[str, ToolNode] = {t.id: t for t in options.tool_nodes}
        self.tools_by_target: dict[str, list[ToolNode]] = defaultdict(list)
        for tool in options.tool_nodes:
            if tool.target_node_id:
                self.tools_by_target[tool.target_node_id].append(tool)

        self.actions_by_id: dict[str, ActionNode] = {a.id: a for a in options.action_nodes}
        self.group_of: dict[str, str] = {}
        for action in options.action_nodes:
            if action.is_container:
                for child_id in action.children:
                    self.group_of.setdefault(child_id, action.id)

        self.tool_edges_by_source = _index_edges(options.tool_edges, "source")
        self.action_edges_by_source = _index_edges(options.action_edges, "source")
        self.action_edges_by_target = _index_edges(options.action_edges, "target")
        self.tool_edges_by_target = _index_edges(options.tool_edges, "target")

    @property
    def graph_nodes(self) -> list[GraphNode]:
        return self.assembler.nodes

    # Element table

    def node_for_element(self, index: int) -> GraphNode | None:
        return self.assembler.get_node(self.element_nodes[index])

    def bind_element(self, index: int, node: GraphNode) -> None:
        self.element_nodes[index] = node.id

    def unbind_element(self, index: int) -> int | None:
        node_id = self.element_nodes[index]
        self.element_nodes[index] = None
        return node_id

    def current_node(self, ctx: ExecutionContext) -> GraphNode | None:
        return self.assembler.get_node(ctx.current_node_id)

    def parent_node(self, ctx: ExecutionContext) -> GraphNode | None:
        return self.assembler.get_node(ctx.parent_node_id)

    def rebind_node(self, old_id: int, new_id: int) -> None:
        """Elements bound to ``old_id`` are bound to ``new_id`` instead."""
        for index, node_id in enumerate(self.element_nodes):
            if node_id == old_id:
                self.element_nodes[index] = new_id

    def unbind_node(self, node_id: int) -> None:
        for index, bound in enumerate(self.element_nodes):
            if bound == node_id:
                self.element_nodes[index] = None

    def drop_element_node(self, index: int) -> None:
        """Remove the element's node and its incident relationships from the graph."""
        node_id = self.unbind_element(index)
        if node_id is not None:
            self.assembler.remove_node(node_id)

    # Fetched data

    def _fetch_payload_from(self, target_id: str) -> Any:
        incoming = self.action_edges_by_target.get(target_id, []) + self.tool_edges_by_target.get(target_id, [])
        for edge in incoming:
            source_tool = self.tools_by_id.get(edge.source)
            if source_tool is not None and source_tool.type in FETCH_TOOL_KINDS:
                # A response captured when the workflow was authored stands in until a live one lands
                payload = self.tool_responses.get(source_tool.id, source_tool.config.get("executedResponse"))
                if payload is not None:
                    return payload
        return None

    def api_payload_for(self, step: ActionNode | ToolNode) -> Any:
        """Payload template expressions in ``step`` resolve against.

        Lookup order: a fetch tool wired straight into the step, a fetch
        tool wired into its enclosing group, then the first entry of apiData.
        """
        payload = self._fetch_payload_from(step.id)
        if payload is not None:
            return payload
        group_id = self.group_of.get(step.id)
        seen = {step.id}
        while group_id is not None and group_id not in seen:
            seen.add(group_id)
            payload = self._fetch_payload_from(group_id)
            if payload is not None:
                return payload
            group_id = self.group_of.get(group_id)
        # Background fetches may insert while this runs
        for value in list(self.api_data.values()):
            return value
        return None


def _index_edges(edges: list[CanvasEdge], attr: str) -> dict[str, list[CanvasEdge]]:
    index: dict[str, list[CanvasEdge]] = defaultdict(list)
    for edge in edges:
        index[getattr(edge, attr)].append(edge)
    return index
