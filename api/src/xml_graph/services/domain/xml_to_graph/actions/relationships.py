#!/usr/bin/env python3
"""Relationship actions: create, defer, update, delete and reverse."""
import logging
from typing import Any

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.actions.base import (
    config_mapping,
    config_str,
    first_reference,
    link,
)
from xml_graph.services.domain.xml_to_graph.assembler import GraphRelationship
from xml_graph.services.domain.xml_to_graph.context import DeferredRelationship, ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.tools.base import parse_number

logger = logging.getLogger(__name__)

DEFAULT_LINK_TYPE = "relatedTo"


def _relationship_by_id(action: ActionNode, run: RunState) -> GraphRelationship | None:
    rel_id = parse_number(action.config.get("relationshipId"))
    if rel_id is None:
        return None
    return run.assembler.get_relationship(int(rel_id))


def properties_match(properties: dict[str, Any], expected: dict[str, Any]) -> bool:
    return all(properties.get(key) == value for key, value in expected.items())


def execute_create_relationship(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Link the current node to the parent node."""
    node = run.current_node(ctx)
    parent = run.parent_node(ctx)
    if node is None or parent is None:
        return ctx
    link(run, node, parent, config_str(action, "relationshipType", DEFAULT_LINK_TYPE))
    return ctx


def _defer_condition_met(condition: str, ctx: ExecutionContext, run: RunState) -> bool:
    if condition == "hasAttribute":
        return bool(run.arena.attributes(ctx.element))
    if condition == "hasText":
        return bool(run.arena.text_content(ctx.element).strip())
    return condition == "always"


def execute_defer_relationship(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Queue a relationship from the current node for resolution after the walk.

    The target is named by ``targetAttribute`` (a pointer such as ``#w2``
    read off the element), by ``targetId``, or by ``targetNodeLabel``. A
    label resolves to the nearest ancestor node with that primary label,
    else to the first node carrying it once the walk is over.
    """
    node = run.current_node(ctx)
    if node is None:
        return ctx
    if not _defer_condition_met(config_str(action, "condition", "always"), ctx, run):
        return ctx

    entry = DeferredRelationship(
        from_id=node.id,
        type=config_str(action, "relationshipType", DEFAULT_LINK_TYPE),
        properties=config_mapping(action, "properties"),
    )

    target_attribute = config_str(action, "targetAttribute")
    pointer = run.arena.get_attribute(ctx.element, target_attribute) if target_attribute else None
    target_id = first_reference(pointer) if pointer else config_str(action, "targetId")
    target_label = config_str(action, "targetNodeLabel")

    if target_id:
        entry.target_id = first_reference(target_id)
        entry.target_element = run.arena.find_by_id(entry.target_id)
    elif target_label:
        for ancestor in run.arena.ancestors(ctx.element):
            ancestor_node = run.node_for_element(ancestor)
            if ancestor_node is not None and ancestor_node.label == target_label:
                entry.target_element = ancestor
                break
        else:
            entry.target_label = target_label
    else:
        logger.debug(f"Defer action {action.id} names no target, nothing queued")
        return ctx

    run.deferred.append(entry)
    logger.debug(f"Deferred {entry.type} from node {node.id}")
    return ctx


def execute_update_relationship(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    rel = _relationship_by_id(action, run)
    if rel is not None:
        rel.properties.update(config_mapping(action, "properties"))
    return ctx


def execute_delete_relationship(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Remove every relationship of ``condition.type``, optionally filtered by ``condition.propertyMatch``."""
    condition = config_mapping(action, "condition")
    rel_type = condition.get("type")
    if not rel_type:
        return ctx

    expected = condition.get("propertyMatch")
    if not isinstance(expected, dict):
        expected = {}
    removed = run.assembler.remove_relationships(
        lambda rel: rel.label == rel_type and properties_match(rel.properties, expected)
    )
    logger.debug(f"Deleted {removed} {rel_type} relationships")
    return ctx


def execute_reverse_relationship(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    rel = _relationship_by_id(action, run)
    if rel is not None:
        rel.start, rel.end = rel.end, rel.start
    return ctx
