#!/usr/bin/env python3
"""Template expression evaluation against fetched JSON payloads.

Supports ``{{ $json.title }}``, ``{{ $json.labels.ar.value }}`` and
``{{ $json.items[0].name }}``. A path that cannot be followed evaluates to
None; nothing here raises on bad input.
"""
import json
import re
from typing import Any

EXPRESSION_PATTERN = re.compile(r"\{\{\s*\$json\.([^}]+)\s*\}\}")
FULL_EXPRESSION_PATTERN = re.compile(r"^\s*\{\{\s*\$json\.([^}]+?)\s*\}\}\s*$")

JSON_PREFIX = "$json."


def parse_json_path(expression: str) -> list[str] | None:
    """Parse ``$json.a.b[0]`` (optionally wrapped in ``{{ }}``) into segments.

    Object keys are kept as-is, array indices as ``"[i]"``.

    Args:
        expression: Expression text

    Returns:
        List of segments, ``[""]`` for the bare ``$json.`` root, or None when
        the text is not a ``$json`` expression
    """
    cleaned = re.sub(r"^\{\{\s*", "", expression)
    cleaned = re.sub(r"\s*\}\}$", "", cleaned).strip()

    if not cleaned.startswith(JSON_PREFIX):
        return None

    path = cleaned[len(JSON_PREFIX):]
    if not path:
        return [""]

    parts: list[str] = []
    current = ""
    in_brackets = False

    for char in path:
        if char == "[":
            if current:
                parts.append(current)
            current = ""
            in_brackets = True
        elif char == "]":
            if in_brackets and current:
                index = re.sub(r"^[\"']|[\"']$", "", current)
                parts.append(f"[{index}]")
                current = ""
            in_brackets = False
        elif char == "." and not in_brackets:
            if current:
                parts.append(current)
                current = ""
        else:
            current += char

    if current:
        parts.append(current)

    return parts or None


def evaluate_json_path(data: Any, path: list[str]) -> Any:
    """Follow parsed path segments through nested dicts and lists.

    Returns None on any type mismatch or out-of-range index.
    """
    current = data

    for part in path:
        if current is None:
            return None

        if part.startswith("[") and part.endswith("]"):
            try:
                index = int(part[1:-1])
            except ValueError:
                return None
            if not isinstance(current, list) or index < 0 or index >= len(current):
                return None
            current = current[index]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(part)

    return current


def evaluate_expression(expression: str, data: Any) -> Any:
    """Evaluate a single expression and return the raw resolved value.

    Text that is not a ``$json`` expression is returned unchanged.
    """
    path = parse_json_path(expression)
    if path is None:
        return expression
    return evaluate_json_path(data, path)


def stringify_value(value: Any) -> str:
    """Render a resolved value for substitution into a larger string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def replace_expressions(template: str, data: Any) -> str:
    """Replace every ``{{ $json.path }}`` occurrence inside ``template``."""

    def _substitute(match: re.Match) -> str:
        path = parse_json_path(f"{JSON_PREFIX}{match.group(1)}")
        if path is None:
            return match.group(0)
        return stringify_value(evaluate_json_path(data, path))

    return EXPRESSION_PATTERN.sub(_substitute, template)


def is_json_path_expression(value: Any) -> bool:
    return isinstance(value, str) and EXPRESSION_PATTERN.search(value) is not None


def evaluate_template(template: Any, data: Any) -> Any:
    """Resolve a config value against a payload.

    A string that is exactly one expression yields the raw value (so lists
    and numbers survive), a string with embedded expressions yields the
    substituted string, and anything else is returned unchanged.
    """
    if data is None or not is_json_path_expression(template):
        return template
    if FULL_EXPRESSION_PATTERN.match(template):
        return evaluate_expression(template, data)
    return replace_expressions(template, data)


def resolve_config(config: Any, data: Any) -> Any:
    """Deep-resolve template expressions in a step configuration.

    Returns a new structure; the input is left untouched.
    """
    if data is None:
        return config
    if isinstance(config, dict):
        return {key: resolve_config(value, data) for key, value in config.items()}
    if isinstance(config, list):
        return [resolve_config(item, data) for item in config]
    return evaluate_template(config, data)


def get_available_paths(data: Any, prefix: str = "") -> list[str]:
    """List the paths that can be used after ``$json.`` for this payload."""
    paths: list[str] = []

    if data is None:
        return paths

    if isinstance(data, list):
        for index, item in enumerate(data):
            paths.extend(get_available_paths(item, f"{prefix}[{index}]"))
        if data:
            paths.append(prefix or "[]")
    elif isinstance(data, dict):
        for key, value in data.items():
            current_path = f"{prefix}.{key}" if prefix else key
            paths.append(current_path)
            if isinstance(value, (dict, list)):
                paths.extend(get_available_paths(value, current_path))

    return paths
