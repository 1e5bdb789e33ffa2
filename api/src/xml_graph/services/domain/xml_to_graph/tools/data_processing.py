#!/usr/bin/env python3
"""Data processing tools.

aggregate, collect, lookup and traverse write onto the current node. sort,
limit reorder or hide the children the walker visits next, through the
returned context; group picks an output path from the element.
"""
import logging
import re

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.tools.base import (
    child_elements,
    config_int,
    config_list,
    element_value,
    exclude_children,
    fail,
    lower_tags,
    number_or_text,
    ok,
    parse_number,
    tag_of,
    text_of,
    tidy_number,
    write_property,
)

logger = logging.getLogger(__name__)

_COMPUTED_ATTRIBUTE = re.compile(r"\$\{(\w+)\}")


def execute_aggregate(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    operation = tool.config.get("operation") or "count"
    source = tool.config.get("source") or "children"
    attribute_name = tool.config.get("attributeName") or ""
    tags = lower_tags(config_list(tool.config, "filterByTag"))

    raw: list[str] = []
    if source == "children":
        for child in child_elements(run, ctx):
            if tags and tag_of(run, child) not in tags:
                continue
            raw.append(run.arena.get_attribute(child, attribute_name) or "" if attribute_name else text_of(run, child))
    elif source == "attribute":
        raw.append(run.arena.get_attribute(ctx.element, attribute_name) or "")
    else:
        raw.append(text_of(run, ctx.element))

    values = [number_or_text(v) for v in raw if v]
    numbers = [v for v in values if not isinstance(v, str)]

    if operation == "sum":
        result = sum(numbers)
    elif operation == "avg":
        result = sum(numbers) / len(numbers) if numbers else 0
    elif operation == "min":
        result = min(numbers) if numbers else 0
    elif operation == "max":
        result = max(numbers) if numbers else 0
    else:
        result = len(values)

    write_property(run, ctx, tool.config.get("targetProperty") or "aggregate", tidy_number(result))
    return ok(ctx, True)


def execute_sort(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Reorder the element's children for this visit only.

    The order travels on the returned context; the document itself keeps
    its order for every other step and element.
    """
    if (tool.config.get("target") or "children") != "children":
        return ok(ctx, True)

    sort_by = tool.config.get("sortBy") or "attribute"
    attribute_name = tool.config.get("attributeName")
    descending = tool.config.get("order") == "desc"

    # sorted() is stable, so equal keys keep document order
    ordered = sorted(
        child_elements(run, ctx),
        key=lambda c: element_value(run, c, sort_by, attribute_name).casefold(),
        reverse=descending,
    )
    return ok(ctx.evolve(child_order=tuple(ordered)), True)


def execute_limit(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Leave only ``limit`` children starting at ``offset`` for the walker."""
    if (tool.config.get("target") or "children") != "children":
        return ok(ctx, True)

    limit = config_int(tool.config, "limit", 10)
    offset = max(config_int(tool.config, "offset", 0), 0)
    children = child_elements(run, ctx)
    kept = set(children[offset:offset + limit])
    return ok(exclude_children(ctx, [c for c in children if c not in kept]), True)


def execute_collect(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    source = tool.config.get("source") or "children"
    tags = lower_tags(config_list(tool.config, "filterByTag"))
    as_array = tool.config.get("asArray")
    as_array = True if as_array is None else bool(as_array)

    collected: list[str] = []
    if source == "children":
        for child in child_elements(run, ctx):
            if tags and tag_of(run, child) not in tags:
                continue
            text = text_of(run, child)
            if text:
                collected.append(text)
    else:
        value = element_value(run, ctx.element, source, tool.config.get("attributeName"))
        if value:
            collected.append(value)

    value = collected if as_array else (collected[0] if collected else "")
    write_property(run, ctx, tool.config.get("targetProperty") or "collected", value)
    return ok(ctx, True)


def execute_group(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Route by a group value; an empty value takes the ``default`` path."""
    group_by = tool.config.get("groupBy") or "attribute"
    if group_by == "computed":
        expression = tool.config.get("computedExpression") or ""
        value = _COMPUTED_ATTRIBUTE.sub(
            lambda m: run.arena.get_attribute(ctx.element, m.group(1)) or "", expression
        )
    else:
        value = element_value(run, ctx.element, group_by, tool.config.get("groupKey"))
    return ok(ctx, True, value or "default")


def execute_lookup(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Translate an element value through a static ``table``.

    Misses take the ``notFound`` path and write ``defaultValue`` when one is set.
    """
    table = tool.config.get("table")
    if not isinstance(table, dict):
        table = {}
    key = element_value(run, ctx.element, tool.config.get("source") or "attribute", tool.config.get("attributeName"))
    target = tool.config.get("targetProperty") or "lookup"

    if key in table:
        write_property(run, ctx, target, table[key])
        return ok(ctx, True, "found")
    if tool.config.get("defaultValue") is not None:
        write_property(run, ctx, target, tool.config["defaultValue"])
    return ok(ctx, False, "notFound")


def execute_traverse(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Record the tag names met walking ancestors, siblings or descendants."""
    if run.current_node(ctx) is None:
        return fail(ctx)

    direction = tool.config.get("direction") or "descendants"
    tags = lower_tags(config_list(tool.config, "filterByTag"))
    arena = run.arena

    if direction == "ancestors":
        visited = arena.ancestors(ctx.element)
    elif direction == "siblings":
        visited = arena.siblings(ctx.element)
    else:
        visited = []
        stack = list(reversed(arena.children[ctx.element]))
        while stack:
            index = stack.pop()
            visited.append(index)
            stack.extend(reversed(arena.children[index]))

    names = [arena.tags[i] for i in visited if not tags or tag_of(run, i) in tags]
    write_property(run, ctx, tool.config.get("targetProperty") or "traversed", names)
    return ok(ctx, True)


def execute_delay(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Delays are accepted but never slow the walk down."""
    duration = parse_number(tool.config.get("duration")) or 0
    logger.debug(f"Delay tool {tool.id} ({duration:g} ms) not applied during a synchronous walk")
    return ok(ctx, True)
