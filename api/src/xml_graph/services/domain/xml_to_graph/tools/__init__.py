"""
Tool Interpreter

Tools run against the element being visited and pick the output path that
decides which downstream steps run next. Every ToolKind maps to exactly one
executor; a kind without one fails at import time.

Modules:
- control_flow: if, switch, loop
- data_transformation: filter, transform, map, reduce, merge, split
- data_processing: aggregate, sort, limit, collect, group, lookup, traverse, delay
- set_operations: partition, distinct, window, join, union, intersect, diff, exists, range, batch
- data_quality: validate, normalize, enrich, deduplicate, validate-schema, clean, standardize, verify
- api_tools: fetch-api, authenticated provider fetches, http
- flow_control: try-catch, retry, timeout, cache, parallel, throttle, webhook, email, log
"""

import logging

from xml_graph.models.models import ToolKind, ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.expression import resolve_config

from . import api_tools, control_flow, data_processing, data_quality, data_transformation, flow_control, set_operations
from .base import ToolExecutor

logger = logging.getLogger(__name__)

TOOL_EXECUTORS: dict[ToolKind, ToolExecutor] = {
    ToolKind.IF: control_flow.execute_if,
    ToolKind.SWITCH: control_flow.execute_switch,
    ToolKind.LOOP: control_flow.execute_loop,
    ToolKind.FILTER: data_transformation.execute_filter,
    ToolKind.TRANSFORM: data_transformation.execute_transform,
    ToolKind.MAP: data_transformation.execute_map,
    ToolKind.REDUCE: data_transformation.execute_reduce,
    ToolKind.MERGE: data_transformation.execute_merge,
    ToolKind.SPLIT: data_transformation.execute_split,
    ToolKind.AGGREGATE: data_processing.execute_aggregate,
    ToolKind.SORT: data_processing.execute_sort,
    ToolKind.LIMIT: data_processing.execute_limit,
    ToolKind.COLLECT: data_processing.execute_collect,
    ToolKind.GROUP: data_processing.execute_group,
    ToolKind.LOOKUP: data_processing.execute_lookup,
    ToolKind.TRAVERSE: data_processing.execute_traverse,
    ToolKind.DELAY: data_processing.execute_delay,
    ToolKind.PARTITION: set_operations.execute_partition,
    ToolKind.DISTINCT: set_operations.execute_distinct,
    ToolKind.WINDOW: set_operations.execute_window,
    ToolKind.JOIN: set_operations.execute_join,
    ToolKind.UNION: set_operations.execute_union,
    ToolKind.INTERSECT: set_operations.execute_intersect,
    ToolKind.DIFF: set_operations.execute_diff,
    ToolKind.EXISTS: set_operations.execute_exists,
    ToolKind.RANGE: set_operations.execute_range,
    ToolKind.BATCH: set_operations.execute_batch,
    ToolKind.FETCH_API: api_tools.execute_fetch_api,
    ToolKind.FETCH_ORCID: api_tools.execute_authenticated_fetch,
    ToolKind.FETCH_GEONAMES: api_tools.execute_authenticated_fetch,
    ToolKind.FETCH_EUROPEANA: api_tools.execute_authenticated_fetch,
    ToolKind.FETCH_GETTY: api_tools.execute_authenticated_fetch,
    ToolKind.HTTP: api_tools.execute_http,
    ToolKind.VALIDATE: data_quality.execute_validate,
    ToolKind.NORMALIZE: data_quality.execute_normalize,
    ToolKind.ENRICH: data_quality.execute_enrich,
    ToolKind.DEDUPLICATE: data_quality.execute_deduplicate,
    ToolKind.VALIDATE_SCHEMA: data_quality.execute_validate_schema,
    ToolKind.CLEAN: data_quality.execute_clean,
    ToolKind.STANDARDIZE: data_quality.execute_standardize,
    ToolKind.VERIFY: data_quality.execute_verify,
    ToolKind.TRY_CATCH: flow_control.execute_try_catch,
    ToolKind.RETRY: flow_control.execute_retry,
    ToolKind.TIMEOUT: flow_control.execute_passthrough,
    ToolKind.CACHE: flow_control.execute_passthrough,
    ToolKind.PARALLEL: flow_control.execute_passthrough,
    ToolKind.THROTTLE: flow_control.execute_passthrough,
    ToolKind.WEBHOOK: flow_control.execute_webhook,
    ToolKind.EMAIL: flow_control.execute_email,
    ToolKind.LOG: flow_control.execute_log,
}

_missing = [kind.value for kind in ToolKind if kind not in TOOL_EXECUTORS]
if _missing:
    raise RuntimeError(f"Tool kinds without an executor: {', '.join(_missing)}")

DEFAULT_OUTPUT_PATH = "output"


def execute_tool(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Run one tool with its config templates resolved.

    Returns:
        ToolResult whose output_path is never None
    """
    payload = run.api_payload_for(tool)
    if payload is not None:
        tool = tool.model_copy(update={"config": resolve_config(tool.config, payload)})

    result = TOOL_EXECUTORS[tool.type](tool, ctx, run)
    logger.debug(f"Tool {tool.id} ({tool.type.value}) -> {result.result!r} via {result.output_path or DEFAULT_OUTPUT_PATH}")
    if result.output_path is None:
        return ToolResult(result=result.result, context=result.context, output_path=DEFAULT_OUTPUT_PATH)
    return result


__all__ = [
    'DEFAULT_OUTPUT_PATH',
    'TOOL_EXECUTORS',
    'ToolExecutor',
    'execute_tool',
]
