#!/usr/bin/env python3
"""Flow control and notification tools.

The walk is synchronous and runs every step exactly once, so try-catch,
retry, timeout, cache, parallel and throttle only pass control through.
webhook and email check their configuration and never send anything.
"""
import logging

from xml_graph.models.models import ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.tools.base import config_int, fail, ok

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def execute_try_catch(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    # fallbackPath is taken only when a step raises, which tools here never do
    return ok(ctx, True)


def execute_retry(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    max_retries = config_int(tool.config, "maxRetries", 3)
    logger.debug(f"Retry tool {tool.id} allows {max_retries} attempts, first attempt succeeded")
    return ok(ctx, True)


def execute_passthrough(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """timeout, cache, parallel and throttle."""
    return ok(ctx, True)


def execute_webhook(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    url = tool.config.get("url") or ""
    if not url:
        return fail(ctx)
    logger.info(f"Webhook {tool.config.get('method') or 'POST'} {url} recorded for {run.arena.tags[ctx.element]}")
    return ok(ctx, True)


def execute_email(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    if not tool.config.get("to") or not tool.config.get("subject"):
        return fail(ctx)
    logger.info(f"Email to {tool.config['to']} ({tool.config['subject']!r}) recorded")
    return ok(ctx, True)


def execute_log(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    level = LOG_LEVELS.get(str(tool.config.get("level") or "info").lower(), logging.INFO)
    node = run.current_node(ctx)
    data = tool.config.get("data") or (node.properties if node is not None else None)
    logger.log(level, f"{tool.config.get('message') or ''} {data if data is not None else ''}".rstrip())
    return ok(ctx, True)
