"""
Action Interpreter

Actions mutate the graph for the element being visited and return the
evolved execution context. Every ActionKind other than ``group`` maps to
exactly one executor; a kind without one fails at import time. Groups are
containers expanded by ``run_action``.

Modules:
- node_creation: create-node and its text, token, attribute, complete and conditional variants
- structure: skip, process-children, create-node-with-filtered-children, create-hierarchical-nodes
- properties: set, extract, copy, merge, split, format and transform properties
- relationships: create, defer, update, delete, reverse relationships
- references: annotations and pointer references
- node_manipulation: update, delete, clone, merge, validate, report-error, metadata, tags, timestamps
"""

import logging

from xml_graph.models.models import ActionKind, ActionNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.expression import resolve_config

from . import node_creation, node_manipulation, properties, references, relationships, structure
from .base import ActionExecutor

logger = logging.getLogger(__name__)

ACTION_EXECUTORS: dict[ActionKind, ActionExecutor] = {
    ActionKind.CREATE_NODE: node_creation.execute_create_node,
    ActionKind.CREATE_NODE_TEXT: node_creation.execute_create_node_text,
    ActionKind.CREATE_NODE_TOKENS: node_creation.execute_create_node_tokens,
    ActionKind.CREATE_TEXT_NODE: node_creation.execute_create_text_node,
    ActionKind.CREATE_TOKEN_NODES: node_creation.execute_create_token_nodes,
    ActionKind.CREATE_NODE_WITH_ATTRIBUTES: node_creation.execute_create_node_with_attributes,
    ActionKind.CREATE_NODE_COMPLETE: node_creation.execute_create_node_complete,
    ActionKind.CREATE_CONDITIONAL_NODE: node_creation.execute_create_conditional_node,
    ActionKind.CREATE_HIERARCHICAL_NODES: structure.execute_create_hierarchical_nodes,
    ActionKind.CREATE_NODE_WITH_FILTERED_CHILDREN: structure.execute_create_node_with_filtered_children,
    ActionKind.PROCESS_CHILDREN: structure.execute_process_children,
    ActionKind.SET_PROPERTY: properties.execute_set_property,
    ActionKind.EXTRACT_TEXT: properties.execute_extract_text,
    ActionKind.EXTRACT_PROPERTY: properties.execute_extract_property,
    ActionKind.COPY_PROPERTY: properties.execute_copy_property,
    ActionKind.MERGE_PROPERTIES: properties.execute_merge_properties,
    ActionKind.SPLIT_PROPERTY: properties.execute_split_property,
    ActionKind.FORMAT_PROPERTY: properties.execute_format_property,
    ActionKind.TRANSFORM_TEXT: properties.execute_transform_text,
    ActionKind.EXTRACT_AND_NORMALIZE_ATTRIBUTES: properties.execute_extract_and_normalize_attributes,
    ActionKind.EXTRACT_AND_COMPUTE_PROPERTY: properties.execute_extract_and_compute_property,
    ActionKind.NORMALIZE_AND_DEDUPLICATE: properties.execute_normalize_and_deduplicate,
    ActionKind.MERGE_CHILDREN_TEXT: properties.execute_merge_children_text,
    ActionKind.EXTRACT_XML_CONTENT: properties.execute_extract_xml_content,
    ActionKind.CREATE_RELATIONSHIP: relationships.execute_create_relationship,
    ActionKind.DEFER_RELATIONSHIP: relationships.execute_defer_relationship,
    ActionKind.UPDATE_RELATIONSHIP: relationships.execute_update_relationship,
    ActionKind.DELETE_RELATIONSHIP: relationships.execute_delete_relationship,
    ActionKind.REVERSE_RELATIONSHIP: relationships.execute_reverse_relationship,
    ActionKind.CREATE_ANNOTATION: references.execute_create_annotation,
    ActionKind.CREATE_ANNOTATION_NODES: references.execute_create_annotation_nodes,
    ActionKind.CREATE_REFERENCE: references.execute_create_reference,
    ActionKind.CREATE_REFERENCE_CHAIN: references.execute_create_reference_chain,
    ActionKind.UPDATE_NODE: node_manipulation.execute_update_node,
    ActionKind.DELETE_NODE: node_manipulation.execute_delete_node,
    ActionKind.CLONE_NODE: node_manipulation.execute_clone_node,
    ActionKind.MERGE_NODES: node_manipulation.execute_merge_nodes,
    ActionKind.VALIDATE_NODE: node_manipulation.execute_validate_node,
    ActionKind.VALIDATE_RELATIONSHIP: node_manipulation.execute_validate_relationship,
    ActionKind.REPORT_ERROR: node_manipulation.execute_report_error,
    ActionKind.ADD_METADATA: node_manipulation.execute_add_metadata,
    ActionKind.TAG_NODE: node_manipulation.execute_tag_node,
    ActionKind.SET_TIMESTAMP: node_manipulation.execute_set_timestamp,
    ActionKind.SKIP: structure.execute_skip,
}

_missing = [kind.value for kind in ActionKind if kind != ActionKind.GROUP and kind not in ACTION_EXECUTORS]
if _missing:
    raise RuntimeError(f"Action kinds without an executor: {', '.join(_missing)}")


def run_action(
    action: ActionNode,
    ctx: ExecutionContext,
    run: RunState,
    on_result=None,
    _active: frozenset[str] = frozenset(),
) -> ExecutionContext:
    """Run one action, expanding groups into their children in order.

    A group with ``enabled`` False runs nothing. A group that contains
    itself (directly or through nested groups) is not expanded again.

    Args:
        action: Action or group to run
        ctx: Context the action starts from
        run: Run state
        on_result: Called with the context each executed action returns

    Returns:
        Context after the last executed action
    """
    if action.is_container:
        if action.enabled is False:
            logger.debug(f"Group {action.id} disabled")
            return ctx
        if action.id in _active:
            logger.warning(f"Group {action.id} contains itself, not expanded again")
            return ctx
        active = _active | {action.id}
        for child_id in action.children:
            child = run.actions_by_id.get(child_id)
            if child is None:
                logger.debug(f"Group {action.id} references unknown action {child_id}")
                continue
            ctx = run_action(child, ctx, run, on_result, active)
        return ctx

    payload = run.api_payload_for(action)
    if payload is not None:
        action = action.model_copy(update={"config": resolve_config(action.config, payload)})

    ctx = ACTION_EXECUTORS[action.type](action, ctx, run)
    logger.debug(f"Action {action.id} ({action.type.value}) ran on {run.arena.tags[ctx.element]}")
    if on_result is not None:
        on_result(ctx)
    return ctx


__all__ = [
    'ACTION_EXECUTORS',
    'ActionExecutor',
    'run_action',
]
