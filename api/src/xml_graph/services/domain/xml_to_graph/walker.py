#!/usr/bin/env python3
"""
Document walker.

Visits the elements of a parsed document in document order, runs the tools
(and through their edges, the actions) attached to every BuilderNode the
element's tag maps to, and builds the graph through the run's assembler.

Per element:
1. Unmapped tags pass through; their children keep the inherited parent.
2. For each matching BuilderNode, tools run in declaration order. A tool's
   output path selects which of its edges fire.
3. Skip flags raised by any step are OR-combined over the element. A main
   node skip drops the element's node and stops further BuilderNodes.
4. Without a node from any step, a default node is synthesized from the
   BuilderNode and linked to the parent. A node created for the element
   before it was visited (by a reference action) counts as its node.
5. Children are visited under the new node (or the inherited parent),
   honouring skipChildren, skipChildrenTags and children already walked by
   an action.

Deferred relationships are resolved once the whole walk is done.
"""
import logging
from dataclasses import dataclass, field

from xml_graph.models.models import CanvasEdge, ToolNode
from xml_graph.services.domain.xml_to_graph.actions import run_action
from xml_graph.services.domain.xml_to_graph.assembler import GraphNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.tools import DEFAULT_OUTPUT_PATH, execute_tool

logger = logging.getLogger(__name__)


@dataclass
class SkipState:
    """Skip flags OR-combined over every step run for one element."""

    skip_main_node: bool = False
    skip_children: bool = False
    skipped: bool = False
    skip_children_tags: set[str] = field(default_factory=set)
    excluded_children: set[int] = field(default_factory=set)
    child_order: tuple[int, ...] | None = None  # Latest sort wins

    def absorb(self, ctx: ExecutionContext) -> None:
        self.skip_main_node = self.skip_main_node or bool(ctx.skip_main_node)
        self.skip_children = self.skip_children or bool(ctx.skip_children)
        self.skipped = self.skipped or ctx.skipped
        self.skip_children_tags.update(ctx.skip_children_tags)
        self.excluded_children.update(ctx.excluded_children)
        if ctx.child_order is not None:
            self.child_order = ctx.child_order

    @property
    def drops_node(self) -> bool:
        return self.skip_main_node or self.skipped


def edge_matches(edge: CanvasEdge, output_path: str) -> bool:
    """An edge fires when its handle equals the output path; unlabelled edges fire on ``output``."""
    if edge.source_handle:
        return edge.source_handle == output_path
    return output_path == DEFAULT_OUTPUT_PATH


class DocumentWalker:
    """Walks one document for one run.

    Args:
        run: Run state holding the arena, the assembler and the step indexes
        max_depth: Deepest level visited, relative to the start element
    """

    def __init__(self, run: RunState, max_depth: int):
        self.run = run
        self.max_depth = max_depth
        self._start_depth = 0
        run.walk = self.walk

    def start_element(self) -> int:
        """Element the walk begins at.

        With a ``startNodeId``, the first element whose local name equals that
        BuilderNode's label (case-insensitive); otherwise the document root.
        """
        start_id = self.run.options.start_node_id
        if start_id:
            builder = self.run.builder_nodes.get(start_id)
            if builder is None:
                logger.warning(f"Start node {start_id!r} is not a BuilderNode, walking from the root")
                return 0
            found = self.run.arena.find_by_local_name(builder.label)
            if found is not None:
                return found
            logger.warning(f"No <{builder.label}> element in the document, walking from the root")
        return 0

    def run_walk(self) -> None:
        """Walk from the start element, then resolve deferred relationships."""
        start = self.start_element()
        self._start_depth = self.run.arena.depths[start]
        self.walk(start, None)
        resolve_deferred(self.run)

    def walk(self, start: int, parent_node_id: int | None) -> None:
        """Visit ``start`` and its subtree with an explicit stack.

        Also used by actions that walk selected children themselves.
        """
        arena = self.run.arena
        stack: list[tuple[int, int | None]] = [(start, parent_node_id)]
        while stack:
            index, parent_id = stack.pop()
            if arena.depths[index] - self._start_depth > self.max_depth:
                continue
            next_visits = self.visit(index, parent_id)
            # Reversed so the first child is visited first
            stack.extend(reversed(next_visits))

    def visit(self, index: int, parent_id: int | None) -> list[tuple[int, int | None]]:
        """Process one element.

        Returns:
            (child index, parent node id) pairs still to visit, in document order
        """
        run = self.run
        arena = run.arena
        builders = run.label_map.get(arena.tag_key(index), [])
        if not builders:
            return [(child, parent_id) for child in arena.children[index]]

        state = SkipState()
        element_node_id: int | None = None
        # Node an earlier element's step already made for this one (reference targets)
        prebound = run.node_for_element(index)

        for builder in builders:
            ctx = ExecutionContext(element=index, builder=builder, parent_node_id=parent_id)
            if prebound is not None:
                ctx = ctx.with_node(prebound)
                prebound = None
            for tool in run.tools_by_target.get(builder.id, []):
                ctx = self.run_tool(tool, ctx, state)
            # Actions wired straight from the BuilderNode run after its tools
            for edge in run.action_edges_by_source.get(builder.id, []):
                action = run.actions_by_id.get(edge.target)
                if action is not None:
                    ctx = run_action(action, ctx, run, state.absorb)

            if state.drops_node:
                self.drop_node(index, ctx)
                logger.debug(f"Skipped <{arena.tags[index]}> for {builder.label}")
                break

            node = run.current_node(ctx)
            if node is None and ctx.current_node_id is None:
                node = self.synthesize_node(ctx)
            if node is not None:
                element_node_id = node.id

        if state.skipped:
            return []
        if element_node_id is not None and not run.assembler.has_node(element_node_id):
            element_node_id = None
        child_parent = element_node_id if element_node_id is not None else parent_id

        ordered = state.child_order if state.child_order is not None else arena.children[index]
        children = [c for c in ordered if c not in state.excluded_children]
        if state.skip_children:
            if not state.skip_children_tags:
                return []
            children = [c for c in children if arena.tag_key(c) not in state.skip_children_tags]
        return [(child, child_parent) for child in children]

    def run_tool(self, tool: ToolNode, ctx: ExecutionContext, state: SkipState) -> ExecutionContext:
        """Run a tool and everything its edges lead to.

        Actions on edges matching the output path run first (tool edges, then
        action edges). Tools on tool edges run next, and the actions wired
        after them run regardless of their output path.
        """
        run = self.run
        result = execute_tool(tool, ctx, run)
        ctx = result.context
        state.absorb(ctx)

        tool_edges = run.tool_edges_by_source.get(tool.id, [])
        for edge in tool_edges + run.action_edges_by_source.get(tool.id, []):
            action = run.actions_by_id.get(edge.target)
            if action is not None and edge_matches(edge, result.output_path):
                ctx = run_action(action, ctx, run, state.absorb)

        for edge in tool_edges:
            next_tool = run.tools_by_id.get(edge.target)
            if next_tool is None:
                continue
            ctx = execute_tool(next_tool, ctx, run).context
            state.absorb(ctx)
            for next_edge in run.tool_edges_by_source.get(next_tool.id, []) + run.action_edges_by_source.get(next_tool.id, []):
                action = run.actions_by_id.get(next_edge.target)
                if action is not None:
                    ctx = run_action(action, ctx, run, state.absorb)
        return ctx

    def synthesize_node(self, ctx: ExecutionContext) -> GraphNode:
        """Default node for an element no step created one for."""
        run = self.run
        node = run.assembler.create_node_for_element(ctx.builder, run.arena, ctx.element)
        run.bind_element(ctx.element, node)
        parent = run.parent_node(ctx)
        if parent is not None:
            rel_type = run.assembler.resolve_relationship_type(parent.id, ctx.builder.id)
            run.assembler.create_relationship(parent.id, node.id, rel_type)
        return node

    def drop_node(self, index: int, ctx: ExecutionContext) -> None:
        """Remove the element's node, and the context's node if a step created one unbound."""
        run = self.run
        run.drop_element_node(index)
        if ctx.current_node_id is not None and run.assembler.has_node(ctx.current_node_id):
            run.unbind_node(ctx.current_node_id)
            run.assembler.remove_node(ctx.current_node_id)


def resolve_deferred(run: RunState) -> int:
    """Materialize queued relationships against the finished graph.

    Target lookup order: the node bound to the captured element, a node whose
    ``id`` / ``xml:id`` / ``_id`` property equals the target id, the first
    node with the target label. Entries without both endpoints are dropped.

    Returns:
        Number of relationships created
    """
    assembler = run.assembler
    created = 0
    for entry in run.deferred:
        source = assembler.get_node(entry.from_id)
        target = None
        if entry.target_element is not None:
            target = run.node_for_element(entry.target_element)
        if target is None and entry.target_id:
            target = assembler.find_node_by_identifier(entry.target_id)
        if target is None and entry.target_label:
            target = next((n for n in assembler.find_nodes_by_label(entry.target_label) if n.id != entry.from_id), None)

        if source is None or target is None:
            logger.debug(f"Dropping deferred {entry.type} from node {entry.from_id}: endpoint not found")
            continue
        assembler.create_relationship(source.id, target.id, entry.type, entry.properties)
        created += 1

    logger.debug(f"Resolved {created} of {len(run.deferred)} deferred relationships")
    run.deferred.clear()
    return created
