#!/usr/bin/env python3
"""Set operation tools over an element's children, attributes and text."""
import logging
from typing import Any

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.tools.base import (
    child_elements,
    config_int,
    config_list,
    element_value,
    exclude_children,
    fail,
    ok,
    parse_number,
    tag_of,
    text_of,
    write_property,
)

logger = logging.getLogger(__name__)


def _child_keys(run: RunState, ctx: ExecutionContext, match_by: str, attribute_name: str | None) -> list[str]:
    """Distinct non-empty keys of the children, in document order."""
    keys: list[str] = []
    for child in child_elements(run, ctx):
        key = element_value(run, child, match_by, attribute_name)
        if key and key not in keys:
            keys.append(key)
    return keys


def _source_keys(source: dict[str, Any], run: RunState, ctx: ExecutionContext, match_by: str, attribute_name: str | None) -> list[str]:
    if source.get("type") == "attribute":
        value = run.arena.get_attribute(ctx.element, source.get("value"))
        return [value] if value else []
    if source.get("type") == "children":
        return _child_keys(run, ctx, match_by, attribute_name)
    logger.debug(f"Unsupported set source type {source.get('type')!r}")
    return []


def _chunks(items: list[Any], size: int) -> list[list[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def execute_partition(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Split the children into partitions, written as lists of child texts.

    ``size`` cuts fixed-size chunks; ``condition`` starts a new partition at
    every child that matches.
    """
    children = child_elements(run, ctx)
    if (tool.config.get("partitionBy") or "size") == "size":
        partitions = _chunks(children, config_int(tool.config, "size", 10))
    else:
        condition = tool.config.get("condition") or "hasAttribute"
        condition_value = tool.config.get("conditionValue") or ""
        partitions, current = [], []
        for child in children:
            if condition == "hasAttribute":
                matches = run.arena.has_attribute(child, condition_value)
            else:
                matches = bool(text_of(run, child))
            if matches and current:
                partitions.append(current)
                current = []
            current.append(child)
        if current:
            partitions.append(current)

    texts = [[text_of(run, c) for c in part] for part in partitions]
    write_property(run, ctx, tool.config.get("targetProperty") or "partitions", texts)
    return ok(ctx, True)


def execute_distinct(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Hide children whose key repeats an earlier sibling's (or is empty)."""
    if (tool.config.get("target") or "children") != "children":
        return ok(ctx, True)

    distinct_by = tool.config.get("distinctBy") or "attribute"
    attribute_name = tool.config.get("attributeName")
    seen: set[str] = set()
    dropped = []
    for child in child_elements(run, ctx):
        key = element_value(run, child, distinct_by, attribute_name)
        if key and key not in seen:
            seen.add(key)
        else:
            dropped.append(child)
    return ok(exclude_children(ctx, dropped), True)


def execute_window(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    size = config_int(tool.config, "windowSize", 3)
    step = max(config_int(tool.config, "step", 1), 1)
    operation = tool.config.get("operation") or "collect"
    texts = [text_of(run, c) for c in child_elements(run, ctx)]

    windows: list[Any] = []
    for start in range(0, len(texts) - size + 1, step):
        window = texts[start:start + size]
        if operation == "collect":
            windows.append(window)
        else:
            windows.append(" ".join(t for t in window if t))

    write_property(run, ctx, tool.config.get("targetProperty") or "window", windows)
    return ok(ctx, True)


def execute_join(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    join_with = tool.config.get("joinWith") or "siblings"
    join_by = tool.config.get("joinBy") or "textContent"
    separator = tool.config.get("separator") or " "
    parent = run.arena.parent(ctx.element)

    if join_with == "children":
        elements = child_elements(run, ctx)
    elif parent < 0:
        elements = []
    elif join_with == "parent":
        elements = [parent]
    else:
        # Siblings includes the element itself
        elements = list(run.arena.children[parent])

    values = [element_value(run, e, join_by, tool.config.get("attributeName")) for e in elements]
    write_property(run, ctx, "joined", separator.join(v for v in values if v))
    return ok(ctx, True)


def execute_union(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    union: list[str] = []
    for source in config_list(tool.config, "sources"):
        for key in _source_keys(source, run, ctx, "textContent", None):
            if key not in union:
                union.append(key)
    write_property(run, ctx, tool.config.get("targetProperty") or "union", union)
    return ok(ctx, True)


def execute_intersect(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    sources = config_list(tool.config, "sources")
    if len(sources) < 2:
        return fail(ctx)

    match_by = tool.config.get("matchBy") or "elementName"
    attribute_name = tool.config.get("attributeName")
    key_sets = [_source_keys(s, run, ctx, match_by, attribute_name) for s in sources]
    intersection = [k for k in key_sets[0] if all(k in other for other in key_sets[1:])]
    write_property(run, ctx, tool.config.get("targetProperty") or "intersect", intersection)
    return ok(ctx, True)


def execute_diff(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    match_by = tool.config.get("matchBy") or "elementName"
    attribute_name = tool.config.get("attributeName")
    source_a = tool.config.get("sourceA") or {"type": "children", "value": ""}
    source_b = tool.config.get("sourceB") or {"type": "children", "value": ""}
    keys_a = _source_keys(source_a, run, ctx, match_by, attribute_name)
    keys_b = set(_source_keys(source_b, run, ctx, match_by, attribute_name))
    write_property(run, ctx, tool.config.get("targetProperty") or "diff", [k for k in keys_a if k not in keys_b])
    return ok(ctx, True)


def execute_exists(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    check_type = tool.config.get("checkType") or "element"
    if check_type == "element":
        wanted = str(tool.config.get("elementName") or "").lower()
        exists = any(tag_of(run, c) == wanted for c in child_elements(run, ctx))
    elif check_type == "attribute":
        exists = run.arena.has_attribute(ctx.element, tool.config.get("attributeName"))
    else:
        exists = bool(text_of(run, ctx.element))

    write_property(run, ctx, tool.config.get("targetProperty") or "exists", exists)
    return ok(ctx, True)


def execute_range(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Leave only the children at positions start, start+step, ... below end."""
    if (tool.config.get("target") or "children") != "children":
        return ok(ctx, True)

    start = int(parse_number(tool.config.get("start")) or 0)
    end = config_int(tool.config, "end", 10)
    step = max(config_int(tool.config, "step", 1), 1)
    children = child_elements(run, ctx)
    kept = set(children[max(start, 0):min(end, len(children)):step])
    return ok(exclude_children(ctx, [c for c in children if c not in kept]), True)


def execute_batch(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Record how many batches of ``batchSize`` children the element holds."""
    if (tool.config.get("target") or "children") != "children":
        return ok(ctx, True)

    batches = _chunks(child_elements(run, ctx), config_int(tool.config, "batchSize", 10))
    write_property(run, ctx, tool.config.get("targetProperty") or "_batchCount", len(batches))
    return ok(ctx, True)
