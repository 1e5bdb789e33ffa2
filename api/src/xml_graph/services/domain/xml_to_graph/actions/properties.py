#!/usr/bin/env python3
"""Property actions: set, extract, copy, combine and reformat node properties."""
import logging
from datetime import datetime, timezone
from typing import Any

from xml_graph.models.models import ActionNode
from xml_graph.services.domain.xml_to_graph.actions.base import (
    config_bool,
    config_list,
    config_str,
    filtered_children,
)
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState
from xml_graph.services.domain.xml_to_graph.expression import stringify_value
from xml_graph.services.domain.xml_to_graph.tools.base import parse_number, tidy_number
from xml_graph.services.domain.xml_to_graph.transforms import apply_transforms

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "CAD": "CA$", "AUD": "A$"}
ZERO_DECIMAL_CURRENCIES = {"JPY"}


# Formatting


def format_date(value: Any, format_string: str = "") -> str | None:
    """ISO 8601 UTC timestamp, or ``M/D/YYYY`` when a format string is given."""
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    if format_string:
        return f"{parsed.month}/{parsed.day}/{parsed.year}"
    return parsed.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_currency(number: float, code: str) -> str:
    code = (code or "USD").upper()
    decimals = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    sign = "-" if number < 0 else ""
    return f"{sign}{symbol}{abs(number):,.{decimals}f}"


def format_value(value: Any, value_format: str, format_string: str = "") -> str:
    """Render a property value as date, number, currency or percentage text.

    Values that do not parse for the requested format are returned as text.
    """
    text = stringify_value(value)
    if value_format == "date":
        return format_date(value, format_string) or text

    number = parse_number(value)
    if number is None:
        return text
    if value_format == "number":
        return f"{number:,.2f}" if format_string else stringify_value(tidy_number(number))
    if value_format == "currency":
        return format_currency(number, format_string)
    if value_format == "percentage":
        return f"{number * 100:.2f}%"
    return text


# Actions


def execute_set_property(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Set ``propertyKey`` on the current node, else on the parent node.

    An empty value falls back to the node's ``transformedText``, then ``textContent``.
    """
    node = run.current_node(ctx) or run.parent_node(ctx)
    key = action.config.get("propertyKey")
    if node is None or not key:
        return ctx

    value = action.config.get("propertyValue")
    if value is None:
        value = ""
    if value == "":
        if node.properties.get("transformedText") is not None:
            value = stringify_value(node.properties["transformedText"])
        elif node.properties.get("textContent") is not None:
            value = stringify_value(node.properties["textContent"])
    node.properties[str(key)] = value
    return ctx


def execute_extract_text(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Copy element text onto the current node.

    Modes: ``text`` (text content), ``tail`` (text following the element),
    ``xmlContent`` (serialized element).
    """
    node = run.current_node(ctx)
    if node is None:
        return ctx

    mode = config_str(action, "extractionMode", "text")
    if mode == "tail":
        text = run.arena.elements[ctx.element].tail or ""
    elif mode == "xmlContent":
        text = run.arena.outer_xml(ctx.element)
    else:
        text = run.arena.text_content(ctx.element)
    if text:
        node.properties[config_str(action, "propertyKey", "textContent")] = text
    return ctx


def execute_extract_property(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    source = config_str(action, "sourceProperty")
    if node is None or not source:
        return ctx
    if node.properties.get(source):
        node.properties[config_str(action, "targetProperty", source)] = node.properties[source]
    return ctx


def execute_copy_property(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Copy a property from ``sourceNodeId`` (a graph node id), else from the parent node."""
    node = run.current_node(ctx)
    if node is None:
        return ctx

    number = parse_number(action.config.get("sourceNodeId"))
    if number is not None and number.is_integer():
        source_node = run.assembler.get_node(int(number))
    else:
        source_node = run.parent_node(ctx)
    source_key = config_str(action, "sourceProperty")
    if source_node is not None and source_node.properties.get(source_key):
        node.properties[config_str(action, "targetProperty")] = source_node.properties[source_key]
    return ctx


def execute_merge_properties(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Combine properties with strategy ``object`` (default), ``array`` or ``concat``."""
    node = run.current_node(ctx)
    if node is None:
        return ctx

    sources = [str(key) for key in config_list(action, "sourceProperties")]
    present = {key: node.properties[key] for key in sources if node.properties.get(key) is not None}
    strategy = config_str(action, "mergeStrategy", "object")
    target = config_str(action, "targetProperty", "merged")

    if strategy == "concat":
        node.properties[target] = " ".join(stringify_value(v) for v in present.values())
    elif strategy == "array":
        node.properties[target] = list(present.values())
    else:
        node.properties[target] = present
    return ctx


def execute_split_property(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx

    source = node.properties.get(config_str(action, "sourceProperty"))
    parts = (stringify_value(source) if source else "").split(config_str(action, "separator", " "))
    for target, part in zip(config_list(action, "targetProperties"), parts):
        node.properties[str(target)] = part.strip()
    return ctx


def execute_format_property(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    key = config_str(action, "propertyKey")
    if node is None or key not in node.properties:
        return ctx
    node.properties[key] = format_value(
        node.properties[key],
        config_str(action, "format", "text"),
        config_str(action, "formatString"),
    )
    return ctx


def execute_transform_text(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Run the transform pipeline over a text and store it on the current node.

    The input is ``targetProperty`` when updating in place, else the node's
    ``textContent`` property, else the element's text.
    """
    node = run.current_node(ctx)
    if node is None:
        return ctx

    target = config_str(action, "targetProperty")
    text = run.arena.text_content(ctx.element)
    if config_bool(action, "updateInPlace", False) and target and node.properties.get(target):
        text = stringify_value(node.properties[target])
    elif node.properties.get("textContent"):
        text = stringify_value(node.properties["textContent"])

    node.properties[target or "transformedText"] = apply_transforms(text, config_list(action, "transforms"))
    return ctx


def execute_extract_and_normalize_attributes(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx

    for mapping in config_list(action, "attributeMappings"):
        key = mapping.get("propertyKey")
        value = run.arena.get_attribute(ctx.element, mapping.get("attributeName"))
        if value is None:
            value = mapping.get("defaultValue") or ""
        if key and value:
            node.properties[str(key)] = apply_transforms(stringify_value(value), mapping.get("transforms"))
    return ctx


def _source_value(source: dict[str, Any], ctx: ExecutionContext, run: RunState) -> str:
    kind = source.get("type")
    if kind == "textContent":
        return run.arena.text_content(ctx.element)
    if kind == "attribute" and source.get("attributeName"):
        return run.arena.get_attribute(ctx.element, str(source["attributeName"])) or ""
    if kind == "static":
        return stringify_value(source.get("staticValue"))
    return ""


def execute_extract_and_compute_property(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Combine text, attribute and static values with ``concat``, ``join`` or ``sum``."""
    node = run.current_node(ctx)
    key = config_str(action, "propertyKey")
    sources = config_list(action, "sources")
    if node is None or not key or not sources:
        return ctx

    values = [v for v in (_source_value(s, ctx, run) for s in sources) if v]
    computation = config_str(action, "computation", "concat")
    if computation == "join":
        computed: Any = config_str(action, "separator", " ").join(values)
    elif computation == "sum":
        numbers = [n for n in (parse_number(v) for v in values) if n is not None]
        computed = tidy_number(sum(numbers, 0.0))
    else:
        computed = "".join(values)
    node.properties[key] = computed
    return ctx


def execute_normalize_and_deduplicate(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Split a property on commas, transform each value and drop repeats.

    A single remaining value is stored as a scalar.
    """
    node = run.current_node(ctx)
    source = config_str(action, "sourceProperty")
    target = config_str(action, "targetProperty")
    if node is None or not source or not target or source not in node.properties:
        return ctx

    value = node.properties[source]
    if isinstance(value, list):
        values = [stringify_value(v) for v in value]
    else:
        text = stringify_value(value)
        values = [v.strip() for v in text.split(",")] if "," in text else [text]

    normalized = [apply_transforms(v, config_list(action, "transforms")) for v in values]
    if config_bool(action, "deduplicate", True):
        normalized = list(dict.fromkeys(normalized))
    node.properties[target] = normalized[0] if len(normalized) == 1 else normalized
    return ctx


def execute_merge_children_text(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    node = run.current_node(ctx)
    if node is None:
        return ctx

    children = filtered_children(run, ctx, config_list(action, "filterByTag"), config_list(action, "excludeTags"))
    texts = [t for t in (run.arena.text_content(c).strip() for c in children) if t]
    merged = config_str(action, "separator", " ").join(texts)
    node.properties[config_str(action, "propertyKey", "text")] = apply_transforms(merged, config_list(action, "transforms"))
    return ctx


def execute_extract_xml_content(action: ActionNode, ctx: ExecutionContext, run: RunState) -> ExecutionContext:
    """Store serialized XML under ``xmlContent``.

    Attributes and children gives the full element; attributes only gives an
    empty element tag carrying the attributes.
    """
    node = run.current_node(ctx)
    if node is None:
        return ctx

    include_attributes = config_bool(action, "includeAttributes", True)
    include_children = config_bool(action, "includeChildren", True)
    if include_attributes and include_children:
        node.properties["xmlContent"] = run.arena.outer_xml(ctx.element)
    elif include_attributes:
        attributes = " ".join(f'{name}="{value}"' for name, value in run.arena.attributes(ctx.element).items())
        node.properties["xmlContent"] = f"<{run.arena.tags[ctx.element]} {attributes} />"
    return ctx
