#!/usr/bin/env python3
"""Shared helpers for tool executors.

Executors take ``(tool, ctx, run)`` and return a ``ToolResult``. Element
access goes through the run's arena; computed values land on the node the
current context points at.
"""
import logging
import math
import re
from typing import Any, Callable

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[ToolNode, ExecutionContext, RunState], ToolResult]

_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(value: Any) -> float | None:
    """Leading numeric prefix of a string ("12px" -> 12.0), or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return None
    match = _NUMBER_PREFIX.match(str(value))
    if not match:
        return None
    return float(match.group(0))


def tidy_number(value: float) -> int | float:
    """Integral floats become ints so 3.0 is written as 3."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def number_or_text(text: str) -> int | float | str:
    number = parse_number(text)
    return text if number is None else tidy_number(number)


def config_int(config: dict[str, Any], key: str, default: int) -> int:
    """Integer config value; missing, zero or non-numeric values give ``default``."""
    number = parse_number(config.get(key))
    if not number:
        return default
    return int(number)


def config_list(config: dict[str, Any], key: str) -> list[Any]:
    value = config.get(key)
    return value if isinstance(value, list) else []


def lower_tags(values: list[Any]) -> list[str]:
    return [str(v).lower().strip() for v in values]


def child_elements(run: RunState, ctx: ExecutionContext) -> list[int]:
    """Children of the context element, in the order an earlier sort left them."""
    if ctx.child_order is not None:
        return list(ctx.child_order)
    return list(run.arena.children[ctx.element])


def tag_of(run: RunState, index: int) -> str:
    """Lower-cased prefixed tag name."""
    return run.arena.tag_key(index)


def text_of(run: RunState, index: int) -> str:
    return run.arena.text_content(index).strip()


def element_value(run: RunState, index: int, source: str, attribute_name: str | None) -> str:
    """Value of an element read as an attribute, its text or its tag name."""
    if source == "attribute":
        return run.arena.get_attribute(index, attribute_name) or ""
    if source == "textContent":
        return text_of(run, index)
    if source == "elementName":
        return tag_of(run, index)
    return ""


def write_property(run: RunState, ctx: ExecutionContext, key: str, value: Any) -> bool:
    """Set a property on the context's current node.

    Returns:
        False when the context has no current node
    """
    node = run.current_node(ctx)
    if node is None:
        return False
    node.properties[key] = value
    return True


def exclude_children(ctx: ExecutionContext, indices: list[int] | set[int]) -> ExecutionContext:
    if not indices:
        return ctx
    return ctx.evolve(excluded_children=ctx.excluded_children | frozenset(indices))


def ok(ctx: ExecutionContext, result: Any = True, output_path: str | None = None) -> ToolResult:
    return ToolResult(result=result, context=ctx, output_path=output_path)


def fail(ctx: ExecutionContext) -> ToolResult:
    return ToolResult(result=False, context=ctx)
