#!/usr/bin/env python3
"""Data transformation tools: filter, transform, map, reduce, merge, split."""
import logging

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.tools.base import (
    child_elements,
    config_int,
    config_list,
    element_value,
    fail,
    lower_tags,
    ok,
    parse_number,
    tag_of,
    text_of,
    tidy_number,
    write_property,
)

logger = logging.getLogger(__name__)

FILTERED_PATH = "filtered"


def execute_filter(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Route listed element names to the ``filtered`` path."""
    names = lower_tags(config_list(tool.config, "elementNames"))
    if tag_of(run, ctx.element) in names:
        return ok(ctx, False, FILTERED_PATH)
    return ok(ctx, True)


def execute_transform(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Copy attributes onto properties, falling back to each mapping's default."""
    if run.current_node(ctx) is None:
        return ok(ctx, True)
    for mapping in config_list(tool.config, "mappings"):
        value = run.arena.get_attribute(ctx.element, mapping.get("source")) or mapping.get("defaultValue") or ""
        if mapping.get("target") and value:
            write_property(run, ctx, mapping["target"], value)
    return ok(ctx, True)


def execute_map(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    for mapping in config_list(tool.config, "mappings"):
        source = mapping.get("source") or "elementName"
        value = element_value(run, ctx.element, source, mapping.get("sourceName"))
        transform = mapping.get("transform")
        if transform == "lowercase":
            value = value.lower()
        elif transform == "uppercase":
            value = value.upper()
        elif transform == "trim":
            value = value.strip()
        if mapping.get("target") == "property" and mapping.get("targetName"):
            write_property(run, ctx, mapping["targetName"], value)
    return ok(ctx, True)


def _source_values(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> list[str]:
    """Non-empty strings read from the children, an attribute or the text."""
    source = tool.config.get("source") or "children"
    attribute_name = tool.config.get("attributeName") or ""
    if source == "children":
        values = []
        for child in child_elements(run, ctx):
            if attribute_name:
                value = run.arena.get_attribute(child, attribute_name) or ""
            else:
                value = text_of(run, child)
            if value:
                values.append(value)
        return values
    if source == "attribute":
        value = run.arena.get_attribute(ctx.element, attribute_name) or ""
    else:
        value = text_of(run, ctx.element)
    return [value] if value else []


def execute_reduce(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return fail(ctx)

    operation = tool.config.get("operation") or "concat"
    separator = tool.config.get("separator") or " "
    values = _source_values(tool, ctx, run)

    if operation == "join":
        result = separator.join(values)
    elif operation == "sum":
        numbers = [n for n in (parse_number(v) for v in values) if n is not None]
        result = tidy_number(sum(numbers))
    else:
        result = "".join(values)

    write_property(run, ctx, tool.config.get("targetProperty") or "reduced", result)
    return ok(ctx, True)


def execute_merge(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Join the listed properties of the current node into one value."""
    node = run.current_node(ctx)
    sources = config_list(tool.config, "sourceProperties")
    if node is None or not sources:
        return ok(ctx, True)
    separator = tool.config.get("separator") or " "
    parts = [str(node.properties[key]) for key in sources if node.properties.get(key) not in (None, "")]
    node.properties[tool.config.get("targetProperty") or "merged"] = separator.join(parts)
    return ok(ctx, True)


def execute_split(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Split the element text by a delimiter, or its children into fixed-size chunks."""
    split_by = tool.config.get("splitBy") or "delimiter"
    target = tool.config.get("targetProperty") or "split"

    if split_by == "delimiter":
        delimiter = tool.config.get("delimiter") or " "
        parts = [p.strip() for p in text_of(run, ctx.element).split(delimiter) if p.strip()]
        write_property(run, ctx, target, parts)
    elif split_by == "size":
        size = config_int(tool.config, "size", 10)
        texts = [text_of(run, c) for c in child_elements(run, ctx)]
        write_property(run, ctx, target, [texts[i:i + size] for i in range(0, len(texts), size)])
    else:
        logger.debug(f"Split mode {split_by!r} writes nothing")
    return ok(ctx, True)
