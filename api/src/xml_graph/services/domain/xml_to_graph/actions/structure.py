#!/usr/bin/env python3
"""
Structural actions: skipping and explicit child processing.

Actions that walk children themselves go through ``run.walk`` and mark the
walked children as excluded, so the walker does not visit them a second time.
"""
import logging

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.actions.base import (
    config_bool,
    config_list,
    config_str,
    create_element_node,
    filtered_children,
    link,
    lower_tags,
)
from xml_graph.services.domain.xml_to_graph.assembler import DEFAULT_RELATIONSHIP_TYPE
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState

logger = logging.getLogger(__name__)


def walk_children(run: RunState, ctx: ExecutionContext, children: list[int], parent_node_id: int | None) -> ExecutionContext:
    """Walk ``children`` under ``parent_node_id`` and exclude them from the regular descent."""
    if not children:
        return ctx
    if run.walk is None:
        logger.debug(f"No walker attached, {len(children)} children of {run.arena.tags[ctx.element]} not walked")
        return ctx
    for child in children:
        run.walk(child, parent_node_id)
    return ctx.evolve(excluded_children=ctx.excluded_children | frozenset(children))


def execute_skip(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Raise skip flags.

    ``skipChildrenMode='selected'`` restricts child skipping to
    ``skipChildrenTags``; ``all`` (default) skips every child.
    """
    skip_main = config_bool(action, "skipMainNode", True)
    skip_children = config_bool(action, "skipChildren", True)
    mode = config_str(action, "skipChildrenMode", "all")

    tags = ctx.skip_children_tags
    if mode == "selected":
        tags = tuple(dict.fromkeys([*tags, *lower_tags(config_list(action, "skipChildrenTags"))]))

    logger.debug(f"Skip on {run.arena.tags[ctx.element]}: main={skip_main} children={skip_children} tags={list(tags)}")
    return ctx.evolve(
        skip_main_node=skip_main,
        skip_children=skip_children,
        skip_children_tags=tags,
        skipped=skip_main and skip_children,
    )


def execute_process_children(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Walk the filtered children under the current node when ``recursive`` is set."""
    if not config_bool(action, "recursive", False):
        return ctx
    children = filtered_children(run, ctx, config_list(action, "filterByTag"), config_list(action, "excludeTags"))
    parent_id = ctx.current_node_id if run.current_node(ctx) is not None else ctx.parent_node_id
    return walk_children(run, ctx, children, parent_id)


def execute_create_node_with_filtered_children(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Create the element node, then walk the filtered children under it.

    Without ``recursive`` only children whose tag maps to a BuilderNode are walked.
    """
    label = config_str(action, "nodeLabel", ctx.builder.label)
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    ctx, node = create_element_node(ctx, run, label=label, parent_rel_type=parent_rel)

    children = filtered_children(run, ctx, config_list(action, "filterByTag"), config_list(action, "excludeTags"))
    if not config_bool(action, "recursive", False):
        children = [c for c in children if run.label_map.get(run.arena.tag_key(c))]
    return walk_children(run, ctx, children, node.id)


def execute_create_hierarchical_nodes(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """A parent node for the element plus one ``childNodeLabel`` node per (filtered) child.

    With ``recursive`` each child element is walked under its own child node.
    """
    parent_label = config_str(action, "parentNodeLabel", ctx.builder.label)
    child_label = config_str(action, "childNodeLabel")
    parent_rel = config_str(action, "parentRelationship", DEFAULT_RELATIONSHIP_TYPE)
    child_rel = config_str(action, "childRelationship", DEFAULT_RELATIONSHIP_TYPE)

    node = run.assembler.create_node(parent_label, builder_id=ctx.builder.id, use_schema=False)
    run.bind_element(ctx.element, node)
    ctx = ctx.with_node(node)
    parent = run.parent_node(ctx)
    if parent is not None:
        link(run, parent, node, parent_rel)

    if not child_label:
        return ctx

    recursive = config_bool(action, "recursive", False)
    for child in filtered_children(run, ctx, config_list(action, "filterByTag"), []):
        child_node = run.assembler.create_node(child_label, use_schema=False)
        link(run, node, child_node, child_rel)
        if recursive:
            ctx = walk_children(run, ctx, [child], child_node.id)
    return ctx
