#!/usr/bin/env python3
"""Shared helpers for action executors.

Executors take ``(action, ctx, run)`` and return the evolved context. Graph
changes go through the run's assembler; the context only records which node
is current and which skip flags were raised.
"""
import json
import logging
from typing import Any, Callable

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.assembler import DEFAULT_RELATIONSHIP_TYPE, GraphNode, GraphRelationship
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState

logger = logging.getLogger(__name__)

ActionExecutor = Callable[[ActionNode, ExecutionContext, RunState], ExecutionContext]


def config_str(action: ActionNode, key: str, default: str = "") -> str:
    value = action.config.get(key)
    if value is None or value == "":
        return default
    return str(value)


def config_list(action: ActionNode, key: str) -> list[Any]:
    value = action.config.get(key)
    return value if isinstance(value, list) else []


def config_bool(action: ActionNode, key: str, default: bool) -> bool:
    value = action.config.get(key)
    return default if value is None else bool(value)


def config_mapping(action: ActionNode, key: str) -> dict[str, Any]:
    """A mapping config field; JSON text is parsed, anything unusable gives ``{}``."""
    value = action.config.get(key)
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            logger.debug(f"Ignoring invalid JSON in {key!r} of action {action.id}")
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def lower_tags(values: list[Any]) -> list[str]:
    return [str(v).lower().strip() for v in values]


def filtered_children(run: RunState, ctx: ExecutionContext, include: list[Any], exclude: list[Any]) -> list[int]:
    """Children whose lower-cased tag passes an allow list and a deny list."""
    include_tags = lower_tags(include)
    exclude_tags = lower_tags(exclude)
    result = []
    for child in run.arena.children[ctx.element]:
        tag = run.arena.tag_key(child)
        if tag in exclude_tags:
            continue
        if include_tags and tag not in include_tags:
            continue
        result.append(child)
    return result


def link(
    run: RunState,
    start: GraphNode | int,
    end: GraphNode | int,
    rel_type: str | None = None,
    properties: dict[str, Any] | None = None,
) -> GraphRelationship:
    """Relationship between two nodes; a type with no definition is used as given."""
    start_id = start.id if isinstance(start, GraphNode) else start
    end_id = end.id if isinstance(end, GraphNode) else end
    return run.assembler.create_relationship(start_id, end_id, rel_type or DEFAULT_RELATIONSHIP_TYPE, properties)


def create_element_node(
    ctx: ExecutionContext,
    run: RunState,
    label: str | None = None,
    parent_rel_type: str | None = None,
) -> tuple[ExecutionContext, GraphNode]:
    """Create the node for the visited element, bind it and link it to the parent.

    Args:
        ctx: Current context
        run: Run state
        label: Replaces the BuilderNode label (and the schema labels) when given
        parent_rel_type: Relationship type to the parent node, default ``contains``

    Returns:
        The context pointing at the new node, and the node
    """
    node = run.assembler.create_node_for_element(ctx.builder, run.arena, ctx.element, label=label)
    run.bind_element(ctx.element, node)
    parent = run.parent_node(ctx)
    if parent is not None:
        link(run, parent, node, parent_rel_type)
    return ctx.with_node(node), node


def ensure_element_node(ctx: ExecutionContext, run: RunState) -> tuple[ExecutionContext, GraphNode]:
    """The current node, else the node already bound to the element, else a new one.

    A new node is linked to the parent with the relationship type the
    definitions give for the two BuilderNodes.
    """
    node = run.current_node(ctx) or run.node_for_element(ctx.element)
    if node is not None:
        return ctx.with_node(node), node
    parent_rel = run.assembler.resolve_relationship_type(ctx.parent_node_id, ctx.builder.id)
    return create_element_node(ctx, run, parent_rel_type=parent_rel)


def first_reference(value: str) -> str:
    """First pointer of a whitespace separated list, without the leading ``#``."""
    parts = value.replace("#", "", 1).split(" ")
    return parts[0]
