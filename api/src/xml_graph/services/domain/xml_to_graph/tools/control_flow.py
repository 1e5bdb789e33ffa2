#!/usr/bin/env python3
"""Control flow tools: if, switch, loop."""
import logging
from typing import Any

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.elements import local_from_qname
from xml_graph.services.domain.xml_to_graph.tools.base import (
    child_elements,
    config_list,
    element_value,
    lower_tags,
    ok,
    parse_number,
    tag_of,
    text_of,
    write_property,
)

logger = logging.getLogger(__name__)


def _condition_values(condition: dict[str, Any]) -> list[str]:
    values = condition.get("values")
    if isinstance(values, list):
        return lower_tags(values)
    value = condition.get("value")
    return [str(value).lower().strip()] if value else []


def _combine(flags: list[bool], operator: str) -> bool:
    return all(flags) if operator == "AND" else any(flags)


def evaluate_condition(condition: dict[str, Any], index: int, run: RunState) -> bool:
    """Evaluate one condition against an element; unknown types are false."""
    arena = run.arena
    kind = condition.get("type")
    operator = condition.get("internalOperator") or "OR"

    if kind == "HasChildren":
        names = {local_from_qname(tag_of(run, c)) for c in arena.children[index]}
        return _combine([v in names for v in _condition_values(condition)], operator)
    if kind == "HasNoChildren":
        names = {tag_of(run, c) for c in arena.children[index]}
        return _combine([v not in names for v in _condition_values(condition)], operator)
    if kind == "HasAncestor":
        ancestors = set()
        for ancestor in arena.ancestors(index):
            ancestors.add(tag_of(run, ancestor))
            ancestors.add(arena.local_name(ancestor))
        return _combine([v in ancestors for v in _condition_values(condition)], operator)
    if kind == "HasParent":
        parent = arena.parent(index)
        if parent < 0:
            return False
        return tag_of(run, parent) == str(condition.get("value") or "").lower().strip()
    if kind == "HasAttribute":
        return arena.has_attribute(index, condition.get("attributeName") or condition.get("value"))
    if kind == "HasTextContent":
        return bool(text_of(run, index))
    if kind == "ElementNameEquals":
        return tag_of(run, index) == str(condition.get("value") or "").lower().strip()
    if kind == "AttributeValueEquals":
        return arena.get_attribute(index, condition.get("attributeName")) == (condition.get("value") or "")
    if kind == "ChildCount":
        minimum = parse_number(condition.get("minCount")) or 0
        maximum = parse_number(condition.get("maxCount")) or float("inf")
        count = len(arena.children[index])
        return minimum <= count <= maximum

    logger.debug(f"Unknown condition type {kind!r}, treated as false")
    return False


def evaluate_condition_groups(groups: list[dict[str, Any]], index: int, run: RunState) -> bool:
    """Combine condition groups left to right; an empty group is true."""

    def evaluate_group(group: dict[str, Any]) -> bool:
        conditions = group.get("conditions") or []
        if not conditions:
            return True
        flags = [evaluate_condition(c, index, run) for c in conditions]
        return _combine(flags, group.get("internalOperator") or "AND")

    result = evaluate_group(groups[0])
    for group in groups[1:]:
        group_result = evaluate_group(group)
        if (group.get("operator") or "AND") == "AND":
            result = result and group_result
        else:
            result = result or group_result
    return result


def execute_if(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    groups = config_list(tool.config, "conditionGroups")
    if not groups:
        return ok(ctx, True, "true")
    result = evaluate_condition_groups(groups, ctx.element, run)
    return ok(ctx, result, "true" if result else "false")


def execute_switch(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    source = tool.config.get("switchSource") or "attribute"
    if source == "elementName":
        value = run.arena.tags[ctx.element]
    else:
        value = element_value(run, ctx.element, source, tool.config.get("switchAttributeName"))

    cases = config_list(tool.config, "switchCases")
    wanted = value.lower().strip()
    output_path = "default"
    matched = next((c for c in cases if str(c.get("value") or "").lower().strip() == wanted), None)
    if matched is not None:
        output_path = matched.get("id") or output_path
    else:
        default_case = next((c for c in cases if str(c.get("label") or "").lower() == "default"), None)
        if default_case is not None:
            output_path = default_case.get("id") or output_path

    logger.debug(f"Switch {tool.id} on {value!r} -> {output_path}")
    return ok(ctx, value, output_path)


def execute_loop(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Count the (optionally tag-filtered) children the loop iterates over."""
    tags = lower_tags(config_list(tool.config, "filterByTag"))
    children = [c for c in child_elements(run, ctx) if not tags or tag_of(run, c) in tags]
    write_property(run, ctx, "_loopCount", len(children))
    return ok(ctx, True)
