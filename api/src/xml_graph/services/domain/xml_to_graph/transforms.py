#!/usr/bin/env python3
"""Ordered string transform pipeline.

A pipeline is a list of transforms applied left to right. Each transform is a
mapping with a ``type`` and its parameters either inline::

    {"type": "replace", "replaceFrom": "-", "replaceTo": " "}

or nested under ``params``::

    {"type": "regex", "params": {"regexPattern": "\\s+", "regexReplacement": " "}}
"""
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}

# $1, $<name>, $& and $$ in replacement strings
_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|\d+|<[A-Za-z_][A-Za-z0-9_]*>)")


def _params(transform: dict[str, Any]) -> dict[str, Any]:
    params = transform.get("params")
    if isinstance(params, dict):
        return {**transform, **params}
    return transform


def convert_replacement(replacement: str) -> str:
    """Convert a ``$1``-style replacement string into ``re.sub`` syntax."""
    escaped = replacement.replace("\\", "\\\\")

    def _token(match: re.Match) -> str:
        token = match.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return r"\g<0>"
        if token.startswith("<"):
            return rf"\g{token}"
        return rf"\g<{token}>"

    return _REPLACEMENT_TOKEN.sub(_token, escaped)


def compile_pattern(pattern: str, flags: str = "") -> re.Pattern | None:
    """Compile a user supplied pattern, returning None when it is malformed."""
    compiled_flags = 0
    for flag in flags or "":
        compiled_flags |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.compile(pattern, compiled_flags)
    except re.error as e:
        logger.debug(f"Ignoring malformed regex {pattern!r}: {e}")
        return None


def apply_transform(text: str, transform: dict[str, Any]) -> str:
    """Apply one transform. Unknown types and malformed patterns pass the text through."""
    params = _params(transform)
    kind = params.get("type")

    if kind == "lowercase":
        return text.lower()
    if kind == "uppercase":
        return text.upper()
    if kind == "trim":
        return text.strip()
    if kind == "replace":
        replace_from = params.get("replaceFrom")
        if not replace_from:
            return text
        replace_to = params.get("replaceTo") or ""
        return re.sub(re.escape(str(replace_from)), lambda _: str(replace_to), text)
    if kind == "regex":
        pattern = params.get("regexPattern")
        if not pattern:
            return text
        compiled = compile_pattern(str(pattern), params.get("regexFlags", ""))
        if compiled is None:
            return text
        replacement = convert_replacement(str(params.get("regexReplacement") or ""))
        try:
            return compiled.sub(replacement, text)
        except (re.error, IndexError) as e:
            # Replacement referencing a group the pattern does not have
            logger.debug(f"Regex replacement failed for {pattern!r}: {e}")
            return text

    logger.debug(f"Unknown transform type {kind!r} ignored")
    return text


def apply_transforms(text: str, transforms: list[dict[str, Any]] | None) -> str:
    """Apply transforms to ``text`` in order."""
    result = text
    for transform in transforms or []:
        if isinstance(transform, dict):
            result = apply_transform(result, transform)
    return result
