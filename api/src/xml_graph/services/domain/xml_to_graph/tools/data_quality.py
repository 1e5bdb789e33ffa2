#!/usr/bin/env python3
"""Data quality tools: validation, normalization, cleaning and enrichment."""
import logging
import re
from datetime import datetime, timezone
from typing import Any

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.errors import ToolExecutionError
from xml_graph.services.domain.xml_to_graph.tools.base import (
    config_list,
    fail,
    ok,
    parse_number,
    text_of,
    tidy_number,
    write_property,
)
from xml_graph.services.domain.xml_to_graph.transforms import compile_pattern

logger = logging.getLogger(__name__)

SCHEMA_TYPES = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def to_iso_datetime(value: str) -> str | None:
    """ISO 8601 timestamp in UTC with milliseconds, or None when unparseable."""
    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def check_rule(rule: dict[str, Any], index: int, run: RunState) -> bool:
    """Evaluate one validation rule against an element."""
    kind = rule.get("type")
    arena = run.arena

    if kind == "requiredAttribute":
        return arena.has_attribute(index, rule.get("attributeName"))
    if kind == "requiredText":
        return bool(text_of(run, index))
    if kind == "attributeFormat":
        if not rule.get("format"):
            return True
        pattern = compile_pattern(rule["format"])
        # A pattern that does not compile fails the rule
        return pattern is not None and pattern.search(arena.get_attribute(index, rule.get("attributeName")) or "") is not None
    if kind == "textLength":
        length = len(text_of(run, index))
        minimum = parse_number(rule.get("minLength"))
        maximum = parse_number(rule.get("maxLength"))
        if minimum is not None and length < minimum:
            return False
        if maximum is not None and length > maximum:
            return False
        return True

    logger.debug(f"Unknown validation rule {kind!r} ignored")
    return True


def execute_validate(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Check rules in order; the first failure decides.

    ``onFailure``: ``skip`` drops the element's node, ``error`` raises
    ToolExecutionError, anything else only reports the result.
    """
    on_failure = tool.config.get("onFailure") or "skip"
    for rule in config_list(tool.config, "rules"):
        if check_rule(rule, ctx.element, run):
            continue
        if on_failure == "skip":
            logger.debug(f"Validation rule {rule.get('type')} failed on {run.arena.tags[ctx.element]}, skipping node")
            return fail(ctx.evolve(skip_main_node=True))
        if on_failure == "error":
            raise ToolExecutionError(tool.id, f"Validation failed: {rule.get('type')}")
    return ok(ctx, True)


def execute_normalize(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return ok(ctx, True)

    value_format = tool.config.get("format") or "text"
    arena = run.arena
    text = arena.text_content(ctx.element)

    if value_format == "date":
        raw = text or arena.get_attribute(ctx.element, "date") or ""
        normalized: Any = to_iso_datetime(raw) or raw
    elif value_format == "number":
        raw = text or arena.get_attribute(ctx.element, "value") or "0"
        normalized = tidy_number(parse_number(raw) or 0)
    elif value_format == "url":
        raw = text or arena.get_attribute(ctx.element, "url") or ""
        normalized = raw.strip().lower()
    else:
        normalized = text.strip()

    write_property(run, ctx, tool.config.get("targetProperty") or "normalized", normalized)
    return ok(ctx, True)


def execute_enrich(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Copy the named apiData entries onto the current node."""
    if run.current_node(ctx) is None:
        return ok(ctx, True)
    enriched = {key: run.api_data[key] for key in config_list(tool.config, "sources") if run.api_data.get(key)}
    write_property(run, ctx, tool.config.get("targetProperty") or "enriched", enriched)
    return ok(ctx, True)


def execute_deduplicate(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Flag the current node and point it at an earlier node sharing its key.

    Earlier nodes count as duplicates when they share the primary label and
    the value of ``property``.
    """
    node = run.current_node(ctx)
    if node is None:
        return ok(ctx, True)

    key = tool.config.get("property") or "id"
    node.properties[f"{key}_deduplicated"] = True
    value = node.properties.get(key)
    if value is None:
        return ok(ctx, True)

    for other in run.graph_nodes:
        if other.id != node.id and other.label == node.label and other.properties.get(key) == value:
            node.properties["_duplicateOf"] = other.id
            return ok(ctx, True, "duplicate")
    return ok(ctx, True)


def execute_validate_schema(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Type-check node properties against a ``{property: type}`` map."""
    node = run.current_node(ctx)
    schema = tool.config.get("schema")
    if node is None or not isinstance(schema, dict):
        return ok(ctx, True)

    errors = []
    for key, expected in schema.items():
        value = node.properties.get(key)
        if value is None:
            continue
        types = SCHEMA_TYPES.get(str(expected))
        if types is None:
            continue
        if isinstance(value, bool) and bool not in types:
            errors.append(f"{key}: expected {expected}")
        elif not isinstance(value, types):
            errors.append(f"{key}: expected {expected}")

    node.properties["_validated"] = not errors
    if errors:
        node.properties["_validationErrors"] = errors
        if tool.config.get("strict"):
            return fail(ctx)
    return ok(ctx, True)


def execute_clean(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return ok(ctx, True)

    operations = tool.config.get("operations") or ["trim"]
    cleaned = text_of(run, ctx.element)
    if "removeSpecialChars" in operations:
        cleaned = re.sub(r"[^\w\s]", "", cleaned)
    if "normalizeWhitespace" in operations:
        cleaned = re.sub(r"\s+", " ", cleaned)
    if "lowercase" in operations:
        cleaned = cleaned.lower()
    if "uppercase" in operations:
        cleaned = cleaned.upper()

    write_property(run, ctx, tool.config.get("targetProperty") or "cleaned", cleaned)
    return ok(ctx, True)


def execute_standardize(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if run.current_node(ctx) is None:
        return ok(ctx, True)

    value_format = tool.config.get("format") or "text"
    value = text_of(run, ctx.element)
    if value_format == "email":
        value = value.lower()
    elif value_format == "phone":
        value = re.sub(r"\D", "", value)
    elif value_format == "name":
        value = " ".join(w[:1].upper() + w[1:].lower() for w in value.split(" "))

    write_property(run, ctx, tool.config.get("targetProperty") or "standardized", value)
    return ok(ctx, True)


def execute_verify(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    node = run.current_node(ctx)
    if node is None:
        return ok(ctx, True)

    checks = tool.config.get("checks") or ["required"]
    valid = True
    if "required" in checks:
        valid = all(node.properties.get(key) not in (None, "", 0, False) for key in config_list(tool.config, "properties"))
    node.properties["_verified"] = valid
    return ok(ctx, valid)
