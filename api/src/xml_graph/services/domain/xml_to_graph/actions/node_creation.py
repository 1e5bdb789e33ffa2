#!/usr/bin/env python3
"""
Node creation actions.

Each action creates the node for the visited element (or reuses it, for the
token actions), binds it in the element table and links it to the parent
node. Token actions additionally split a text into one node per token.
"""
import logging
from typing import Any

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.actions.base import (
    config_list,
    config_str,
    create_element_node,
    link,
)
from xml_graph.services.domain.xml_to_graph.assembler import DEFAULT_RELATIONSHIP_TYPE, GraphNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.expression import is_json_path_expression
from xml_graph.services.domain.xml_to_graph.transforms import apply_transforms, compile_pattern

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LABEL = "Character"
DEFAULT_TOKEN_FILTER = "[a-zA-Z0-9]"
DEFAULT_NEXT_RELATIONSHIP = "next"


# Tokenization


def split_tokens(text: str, split_by: str | None, split_mode: str = "delimiter") -> list[str]:
    """Split text into raw tokens.

    An empty ``split_by`` splits into characters. ``split_mode='regex'``
    treats ``split_by`` as a pattern; a pattern that does not compile falls
    back to a literal split.
    """
    if not split_by:
        return list(text)
    if split_mode == "regex":
        pattern = compile_pattern(split_by)
        if pattern is not None:
            return pattern.split(text)
    return text.split(split_by)


def filter_tokens(tokens: list[str], filter_pattern: str | None) -> list[str]:
    """Trimmed, non-empty tokens that match the filter pattern."""
    pattern = compile_pattern(filter_pattern or DEFAULT_TOKEN_FILTER)
    result = []
    for token in tokens:
        token = token.strip()
        if not token:
            continue
        if pattern is not None and pattern.search(token) is None:
            continue
        result.append(token)
    return result


def token_properties(
    token: str,
    index: int,
    mappings: list[dict[str, Any]],
    run: RunState,
    element: int,
) -> dict[str, Any]:
    """Properties of one token node.

    Without mappings a token node gets ``{text, index}``. Mapping sources are
    ``token``, ``attribute`` (of the source element), ``index`` and ``static``.
    """
    if not mappings:
        return {"text": token, "index": index}

    properties: dict[str, Any] = {}
    for mapping in mappings:
        key = mapping.get("key")
        source = mapping.get("source")
        value: Any = None
        if source == "token":
            value = token
        elif source == "attribute" and mapping.get("attributeName"):
            value = run.arena.get_attribute(element, mapping["attributeName"]) or None
        elif source == "index":
            value = index
        elif source == "static":
            value = mapping.get("staticValue") or None
        if value is not None and key:
            properties[key] = value
    return properties


def create_token_nodes(
    run: RunState,
    ctx: ExecutionContext,
    owner: GraphNode,
    tokens: list[str],
    label: str,
    rel_type: str,
    mappings: list[dict[str, Any]],
    chained: bool = False,
    next_rel_type: str = DEFAULT_NEXT_RELATIONSHIP,
) -> list[GraphNode]:
    """One node per token, each linked from ``owner``.

    Chained structure also links every token node to the next one.
    """
    created: list[GraphNode] = []
    for index, token in enumerate(tokens):
        token_node = run.assembler.create_node(
            label,
            token_properties(token, index, mappings, run, ctx.element),
            use_schema=False,
        )
        link(run, owner, token_node, rel_type)
        if chained and created:
            link(run, created[-1], token_node, next_rel_type)
        created.append(token_node)
    logger.debug(f"Created {len(created)} {label} token nodes under node {owner.id}")
    return created


def _source_text(action: ActionNode, ctx: ExecutionContext, run: RunState) -> str:
    if config_str(action, "textSource", "textContent") == "attribute":
        attribute = config_str(action, "attributeName") or config_str(action, "textAttributeName")
        return run.arena.get_attribute(ctx.element, attribute) or ""
    return run.arena.text_content(ctx.element)


# Actions


def execute_create_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    labels = [str(label) for label in config_list(action, "labels") if label]
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    ctx, node = create_element_node(ctx, run, label=labels[0] if labels else None, parent_rel_type=parent_rel)
    if len(labels) > 1:
        node.labels = labels
    return ctx


def execute_create_node_text(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    ctx, _ = create_element_node(ctx, run, parent_rel_type=parent_rel)
    return ctx


def execute_create_node_tokens(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Token nodes from the element's text, creating the element node first if needed."""
    owner = run.current_node(ctx)
    if owner is None:
        parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
        ctx, owner = create_element_node(ctx, run, parent_rel_type=parent_rel)

    tokens = filter_tokens(
        split_tokens(run.arena.text_content(ctx.element), config_str(action, "splitBy")),
        config_str(action, "filterPattern", DEFAULT_TOKEN_FILTER),
    )
    create_token_nodes(
        run,
        ctx,
        owner,
        tokens,
        config_str(action, "targetLabel", DEFAULT_TOKEN_LABEL),
        config_str(action, "relationshipType", DEFAULT_RELATIONSHIP_TYPE),
        config_list(action, "properties"),
    )
    return ctx


def execute_create_text_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    label = config_str(action, "nodeLabel", ctx.builder.label)
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    ctx, node = create_element_node(ctx, run, label=label, parent_rel_type=parent_rel)
    text = apply_transforms(_source_text(action, ctx, run), config_list(action, "transforms"))
    node.properties[config_str(action, "propertyKey", "text")] = text
    return ctx


def execute_create_token_nodes(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Token nodes under the element's node.

    The owner is the current node, else the node already bound to the
    element, else a new node linked to the parent with ``contains``.

    Config:
        textSource: ``textContent`` (default) or ``attribute``
        splitBy / splitMode: empty splits into characters; ``regex`` mode splits on a pattern
        structure: ``flat`` (default) or ``chained``, which adds ``nextRelationship`` links
    """
    owner = run.current_node(ctx) or run.node_for_element(ctx.element)
    if owner is None:
        ctx, owner = create_element_node(ctx, run)
    else:
        ctx = ctx.with_node(owner)

    text = apply_transforms(_source_text(action, ctx, run), config_list(action, "transforms"))
    tokens = filter_tokens(
        split_tokens(text, config_str(action, "splitBy"), config_str(action, "splitMode", "delimiter")),
        config_str(action, "filterPattern", DEFAULT_TOKEN_FILTER),
    )
    create_token_nodes(
        run,
        ctx,
        owner,
        tokens,
        config_str(action, "tokenNodeLabel", DEFAULT_TOKEN_LABEL),
        config_str(action, "relationshipType", DEFAULT_RELATIONSHIP_TYPE),
        config_list(action, "properties"),
        chained=config_str(action, "structure", "flat") == "chained",
        next_rel_type=config_str(action, "nextRelationship", DEFAULT_NEXT_RELATIONSHIP),
    )
    return ctx


def execute_create_node_with_attributes(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    label = config_str(action, "nodeLabel", ctx.builder.label)
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    ctx, node = create_element_node(ctx, run, label=label, parent_rel_type=parent_rel)

    for mapping in config_list(action, "attributeMappings"):
        key = mapping.get("propertyKey")
        value = run.arena.get_attribute(ctx.element, mapping.get("attributeName"))
        if value is None:
            value = mapping.get("defaultValue") or ""
        if key and value != "":
            node.properties[str(key)] = value
    return ctx


def execute_create_node_complete(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Upsert a node by ``uniqueId``, map attributes onto it and link it.

    An existing node whose ``id`` or ``_id`` property equals the unique id is
    reused; otherwise a new node is created and its ``id`` property set. A
    mapping whose ``propertyKey`` is a template writes the resolved value
    under ``attributeName`` (or ``value``).
    """
    unique_id = action.config.get("uniqueId")
    node = None
    if unique_id not in (None, ""):
        node = next(
            (n for n in run.graph_nodes if unique_id in (n.properties.get("id"), n.properties.get("_id"))),
            None,
        )

    if node is None:
        label = config_str(action, "nodeLabel", ctx.builder.label)
        node = run.assembler.create_node_for_element(ctx.builder, run.arena, ctx.element, label=label)
        run.bind_element(ctx.element, node)
        if unique_id not in (None, ""):
            node.properties["id"] = unique_id
    else:
        logger.debug(f"Reusing node {node.id} for unique id {unique_id!r}")
    ctx = ctx.with_node(node)

    raw = run.actions_by_id.get(action.id, action)
    raw_mappings = config_list(raw, "attributeMappings")
    has_payload = run.api_payload_for(action) is not None
    for position, mapping in enumerate(config_list(action, "attributeMappings")):
        raw_key = raw_mappings[position].get("propertyKey") if position < len(raw_mappings) else None
        attribute = mapping.get("attributeName")
        if has_payload and is_json_path_expression(raw_key):
            key = attribute or "value"
            value = mapping.get("propertyKey")
        elif attribute:
            key = mapping.get("propertyKey") or attribute
            value = run.arena.get_attribute(ctx.element, attribute)
            if value is None:
                value = mapping.get("defaultValue") or ""
        elif mapping.get("propertyKey"):
            key = mapping["propertyKey"]
            value = run.arena.get_attribute(ctx.element, str(key))
            if value is None:
                value = mapping.get("defaultValue") or ""
        else:
            continue
        if key and value is not None:
            text = value if isinstance(value, str) else str(value)
            node.properties[str(key)] = apply_transforms(text, mapping.get("transforms"))

    relationship = action.config.get("relationship")
    if isinstance(relationship, dict) and relationship.get("targetNodeId"):
        target = run.assembler.find_node_by_identifier(str(relationship["targetNodeId"]))
        if target is None:
            logger.debug(f"Target node {relationship['targetNodeId']!r} not found for action {action.id}")
        elif relationship.get("direction") == "incoming":
            link(run, target, node, relationship.get("type") or "relatedTo")
        else:
            link(run, node, target, relationship.get("type") or "relatedTo")
    else:
        parent = run.parent_node(ctx)
        if parent is not None:
            link(run, parent, node, config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE))
    return ctx


def _condition_met(condition: dict[str, Any], ctx: ExecutionContext, run: RunState) -> bool:
    arena = run.arena
    kind = condition.get("type")
    if kind == "hasAttribute":
        if not condition.get("attributeName"):
            return False
        value = arena.get_attribute(ctx.element, condition["attributeName"])
        if condition.get("attributeValue"):
            return value == condition["attributeValue"]
        return value is not None
    if kind == "hasText":
        minimum = condition.get("minTextLength") or 1
        return len(arena.text_content(ctx.element).strip()) >= minimum
    if kind == "hasChildren":
        child_tag = str(condition.get("childTag") or "").lower()
        if not child_tag:
            return False
        return any(arena.tag_key(child) == child_tag for child in arena.children[ctx.element])
    return False


def execute_create_conditional_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    conditions = config_list(action, "conditions")
    if conditions:
        results = [_condition_met(c, ctx, run) for c in conditions]
        met = all(results) if config_str(action, "operator", "AND") == "AND" else any(results)
        if not met:
            logger.debug(f"Conditions of action {action.id} not met on {run.arena.tags[ctx.element]}")
            return ctx

    label = config_str(action, "nodeLabel", ctx.builder.label)
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    ctx, _ = create_element_node(ctx, run, label=label, parent_rel_type=parent_rel)
    return ctx


