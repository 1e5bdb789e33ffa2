#!/usr/bin/env python3
"""Node manipulation actions: update, delete, clone, merge, validate and annotate nodes."""
import logging
from datetime import datetime, timezone

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.actions.base import (
    config_list,
    config_mapping,
    config_str,
)
from xml_graph.services.domain.xml_to_graph.actions.relationships import properties_match
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.tools.base import parse_number

logger = logging.getLogger(__name__)

MERGE_STRATEGIES = ("union", "preferSource", "preferTarget")


def utc_timestamp() -> str:
    """Current time as ISO 8601 UTC with milliseconds (``2024-01-31T12:00:00.000Z``)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def execute_update_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx
    node.properties.update(config_mapping(action, "properties"))
    labels = [str(label) for label in config_list(action, "labels") if label]
    if labels:
        node.labels = labels
    return ctx


def execute_delete_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Remove the current node when it matches ``condition.propertyMatch``.

    Without a match condition nothing is deleted. The context keeps the
    removed id so the walker can tell a deleted node from a missing one.
    """
    node = run.current_node(ctx)
    expected = config_mapping(action, "condition").get("propertyMatch")
    if node is None or not isinstance(expected, dict):
        return ctx
    if not properties_match(node.properties, expected):
        return ctx

    run.unbind_node(node.id)
    run.assembler.remove_node(node.id)
    logger.debug(f"Deleted node {node.id} on {run.arena.tags[ctx.element]}")
    return ctx


def execute_clone_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Append a copy of the current node; the current node stays current."""
    node = run.current_node(ctx)
    if node is None:
        return ctx

    new_labels = action.config.get("newLabels")
    labels = [str(label) for label in new_labels] if isinstance(new_labels, list) else list(node.labels)
    properties = {**node.properties, **config_mapping(action, "modifications")}
    clone = run.assembler.create_node(
        labels[0] if labels else "",
        properties,
        extra_labels=labels[1:],
        use_schema=False,
    )
    logger.debug(f"Cloned node {node.id} as {clone.id}")
    return ctx


def execute_merge_nodes(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Fold the ``targetNodeIds`` nodes into the current node.

    Strategies: ``union`` (labels unioned, target properties win),
    ``preferSource`` (current node's properties win), ``preferTarget``
    (target properties win, labels unchanged). Relationships of a merged
    node move to the current node.
    """
    node = run.current_node(ctx)
    if node is None:
        return ctx

    strategy = config_str(action, "mergeStrategy", "union")
    if strategy not in MERGE_STRATEGIES:
        logger.debug(f"Unknown merge strategy {strategy!r}, using union")
        strategy = "union"

    for raw_id in config_list(action, "targetNodeIds"):
        number = parse_number(raw_id)
        target = run.assembler.get_node(int(number)) if number is not None else None
        if target is None or target.id == node.id:
            continue
        if strategy == "union":
            node.labels = list(dict.fromkeys([*node.labels, *target.labels]))
            node.properties = {**node.properties, **target.properties}
        elif strategy == "preferSource":
            node.properties = {**target.properties, **node.properties}
        else:
            node.properties = {**node.properties, **target.properties}
        run.assembler.absorb_node(target.id, node.id)
        run.rebind_node(target.id, node.id)
        logger.debug(f"Merged node {target.id} into {node.id} ({strategy})")
    return ctx


def execute_validate_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Record missing required properties as ``_validated`` / ``_validationErrors``."""
    node = run.current_node(ctx)
    if node is None:
        return ctx

    errors = [
        f"Missing required property: {key}"
        for key in config_list(action, "requiredProperties")
        if key not in node.properties
    ]
    node.properties["_validated"] = not errors
    if errors:
        node.properties["_validationErrors"] = errors
    return ctx


def execute_validate_relationship(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Check one relationship against ``constraints``.

    Constraints: ``type`` (expected label) and ``requiredProperties``. The
    outcome is written to the relationship's ``_validated`` property.
    """
    number = parse_number(action.config.get("relationshipId"))
    rel = run.assembler.get_relationship(int(number)) if number is not None else None
    constraints = config_mapping(action, "constraints")
    if rel is None or not constraints:
        return ctx

    errors = []
    expected_type = constraints.get("type")
    if expected_type and rel.label != expected_type:
        errors.append(f"Expected type {expected_type}, found {rel.label}")
    for key in constraints.get("requiredProperties") or []:
        if key not in rel.properties:
            errors.append(f"Missing required property: {key}")

    rel.properties["_validated"] = not errors
    if errors:
        rel.properties["_validationErrors"] = errors
    return ctx


def execute_report_error(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx
    node.properties["_error"] = {
        "message": config_str(action, "errorMessage", "Validation error"),
        "code": config_str(action, "errorCode", "ERROR"),
        "severity": config_str(action, "severity", "error"),
    }
    return ctx


def execute_add_metadata(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx
    for key, value in config_mapping(action, "metadata").items():
        node.properties[f"_meta_{key}"] = value
    return ctx


def execute_tag_node(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx
    existing = node.properties.get("_tags")
    if not isinstance(existing, list):
        existing = []
    node.properties["_tags"] = list(dict.fromkeys([*existing, *config_list(action, "tags")]))
    return ctx


def execute_set_timestamp(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """``_createdAt`` (kept once set) and/or ``_modifiedAt``; ``timestampType`` created, modified or both."""
    node = run.current_node(ctx)
    if node is None:
        return ctx

    kind = config_str(action, "timestampType", "both")
    now = utc_timestamp()
    if kind in ("created", "both") and not node.properties.get("_createdAt"):
        node.properties["_createdAt"] = now
    if kind in ("modified", "both"):
        node.properties["_modifiedAt"] = now
    return ctx
