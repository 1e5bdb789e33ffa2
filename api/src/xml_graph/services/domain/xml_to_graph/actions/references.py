#!/usr/bin/env python3
"""
Reference and annotation actions.

Pointers in attribute values (``corresp="#w2 #w3"``, ``ana="#adj"``) are
resolved to the node bound to the referenced element. Targets that have no
node yet are queued as deferred relationships and resolved after the walk.
"""
import logging

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.actions.base import (
    config_bool,
    config_list,
    config_str,
    ensure_element_node,
    first_reference,
    link,
)
from xml_graph.services.domain.xml_to_graph.assembler import GraphNode
from xml_graph.services.domain.xml_to_graph.context import DeferredRelationship, ExecutionContext, RunState

logger = logging.getLogger(__name__)

ANNOTATION_LABELS = ["Thing", "Annotation"]


def link_or_defer(run: RunState, source: GraphNode, target_id: str, rel_type: str) -> None:
    """Link ``source`` to the node of the element with ``target_id``, or queue the link."""
    target_element = run.arena.find_by_id(target_id)
    target = run.node_for_element(target_element) if target_element is not None else None
    if target is not None:
        link(run, source, target, rel_type)
        return
    run.deferred.append(
        DeferredRelationship(from_id=source.id, type=rel_type, target_element=target_element, target_id=target_id)
    )
    logger.debug(f"Deferred {rel_type} from node {source.id} to #{target_id}")


def execute_create_annotation(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """One annotation node per configured attribute present on the element."""
    node = run.current_node(ctx)
    if node is None:
        return ctx

    for attribute in config_list(action, "annotationTypes"):
        value = run.arena.get_attribute(ctx.element, str(attribute))
        if not value:
            continue
        annotation = run.assembler.create_node(
            ANNOTATION_LABELS[0],
            {"content": value, "mimeType": "text/plain", "type": attribute},
            extra_labels=ANNOTATION_LABELS[1:],
            use_schema=False,
        )
        link(run, node, annotation, "annotates")
    return ctx


def execute_create_annotation_nodes(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Annotation nodes from ``targetAttributes``.

    A pointer value (``#id``) links the element node to the referenced node;
    any other value becomes an ``annotationNodeLabel`` node ``{type, value}``.
    """
    ctx, node = ensure_element_node(ctx, run)
    label = config_str(action, "annotationNodeLabel", "Annotation")
    literal_rel = config_str(action, "relationshipType", "annotatedBy")
    pointer_rel = config_str(action, "relationshipType", "annotates")

    for attribute in config_list(action, "targetAttributes"):
        value = run.arena.get_attribute(ctx.element, str(attribute))
        if not value:
            continue
        if value.startswith("#"):
            target_id = first_reference(value)
            if target_id:
                link_or_defer(run, node, target_id, pointer_rel)
            continue
        annotation = run.assembler.create_node(label, {"type": attribute, "value": value}, use_schema=False)
        link(run, node, annotation, literal_rel)
    return ctx


def execute_create_reference(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    value = run.arena.get_attribute(ctx.element, config_str(action, "referenceAttribute", "corresp"))
    if node is None or not value:
        return ctx
    target_id = first_reference(value)
    if target_id:
        link_or_defer(run, node, target_id, config_str(action, "relationshipType", "refersTo"))
    return ctx


def execute_create_reference_chain(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Like create-reference, optionally creating the target node when the
    referenced element has none yet (``createTargetIfMissing`` with ``targetNodeLabel``).
    """
    node = run.current_node(ctx)
    value = run.arena.get_attribute(ctx.element, config_str(action, "referenceAttribute", "corresp"))
    if node is None or not value:
        return ctx

    target_id = first_reference(value)
    target_element = run.arena.find_by_id(target_id)
    if target_element is None:
        logger.debug(f"Reference #{target_id} on {run.arena.tags[ctx.element]} points at no element")
        return ctx

    rel_type = config_str(action, "relationshipType", "refersTo")
    target_label = config_str(action, "targetNodeLabel")
    if run.node_for_element(target_element) is None and config_bool(action, "createTargetIfMissing", False) and target_label:
        target = run.assembler.create_node(target_label, {"id": target_id}, use_schema=False)
        run.bind_element(target_element, target)
        link(run, node, target, rel_type)
        return ctx

    link_or_defer(run, node, target_id, rel_type)
    return ctx
