#!/usr/bin/env python3
"""
Workflow execution entry points.

``execute_workflow`` runs one XML document through a workflow and returns the
flat graph array. ``load_workflow`` reads a workflow definition from a YAML
or JSON file, and ``main`` is the ``xml-graph`` command line.
"""
import argparse
import json
import logging
import uuid
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from xml_graph.core.config import FETCH_MODES, workflow_config
from xml_graph.core.logging import setup_logging
from xml_graph.models.models import FETCH_TOOL_KINDS, ExecuteOptions
from xml_graph.services.domain.xml_to_graph.context import RunState
from xml_graph.services.domain.xml_to_graph.elements import parse_document
from xml_graph.services.domain.xml_to_graph.errors import WorkflowConfigError
from xml_graph.services.domain.xml_to_graph.expression import get_available_paths
from xml_graph.services.domain.xml_to_graph.fetching import FetchDispatcher
from xml_graph.services.domain.xml_to_graph.walker import DocumentWalker

logger = logging.getLogger(__name__)


def _validate_options(options: ExecuteOptions | dict[str, Any]) -> ExecuteOptions:
    if isinstance(options, ExecuteOptions):
        return options
    try:
        return ExecuteOptions.model_validate(options)
    except ValidationError as e:
        raise WorkflowConfigError(f"Invalid workflow definition: {e}") from e


def execute_workflow(options: ExecuteOptions | dict[str, Any]) -> list[dict[str, Any]]:
    """Transform an XML document into a property graph.

    Args:
        options: ExecuteOptions, or a mapping in the camelCase input format

    Returns:
        Node records in creation order followed by relationship records in
        creation order. Unparseable XML gives an empty list.

    Raises:
        WorkflowConfigError: If the options fail validation
        ToolExecutionError: If a validate tool is configured to fail hard
    """
    options = _validate_options(options)
    run_id = uuid.uuid4().hex[:12]

    arena = parse_document(options.xml_content)
    if arena is None:
        return []

    fetch_mode = workflow_config.resolve_fetch_mode(options.fetch_mode)
    max_depth = workflow_config.resolve_max_depth(options.max_depth)
    fetcher = FetchDispatcher(fetch_mode, workflow_config.FETCH_MAX_WORKERS)
    run = RunState(options, arena, fetcher)

    logger.info(
        f"Walking {len(arena)} elements with {len(options.nodes)} BuilderNodes, "
        f"{len(options.tool_nodes)} tools, {len(options.action_nodes)} actions (fetch={fetch_mode})",
        extra={"run_id": run_id},
    )
    try:
        DocumentWalker(run, max_depth).run_walk()
    finally:
        fetcher.shutdown()

    records = run.assembler.to_records()
    logger.info(
        f"Produced {len(run.assembler.nodes)} nodes and {len(run.assembler.rels)} relationships",
        extra={"run_id": run_id},
    )
    return records


def load_workflow(path: str | Path) -> ExecuteOptions:
    """Read a workflow definition (everything but the XML) from a YAML or JSON file.

    Raises:
        WorkflowConfigError: If the file cannot be read or does not validate
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise WorkflowConfigError(f"Cannot read workflow file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise WorkflowConfigError(f"Malformed workflow file {path}: {e}") from e

    if not isinstance(data, dict):
        raise WorkflowConfigError(f"Workflow file {path} must contain a mapping")
    data.pop("xmlContent", None)
    return _validate_options(data)


def fetch_payload_paths(options: ExecuteOptions) -> dict[str, list[str]]:
    """Expression paths available from each fetch tool's captured response."""
    paths = {}
    for tool in options.tool_nodes:
        if tool.type not in FETCH_TOOL_KINDS:
            continue
        payload = tool.config.get("executedResponse")
        if payload is not None:
            paths[tool.id] = get_available_paths(payload)
    return paths


def main():
    """Command-line interface for running a workflow over XML files."""
    parser = argparse.ArgumentParser(description="Transform XML documents into a property graph with a workflow definition")
    parser.add_argument("--workflow", required=True, help="Path to the workflow definition (YAML or JSON)")
    parser.add_argument("--xml", nargs="+", help="One or more XML files to transform")
    parser.add_argument("--out", help="Output JSON file (default: stdout)")
    parser.add_argument("--start-node", help="BuilderNode id to start the walk at")
    parser.add_argument("--max-depth", type=int, help="Deepest element level to visit")
    parser.add_argument("--fetch-mode", choices=FETCH_MODES, help="How fetch tools wait for responses")
    parser.add_argument("--list-paths", action="store_true", help="List expression paths of captured fetch responses and exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args()

    setup_logging(args.log_level.upper())
    workflow = load_workflow(args.workflow)

    if args.list_paths:
        for tool_id, paths in fetch_payload_paths(workflow).items():
            print(f"{tool_id}:")  # noqa: T201
            for path in paths:
                print(f"  {{{{ $json.{path} }}}}")  # noqa: T201
        return
    if not args.xml:
        parser.error("--xml is required unless --list-paths is given")

    overrides: dict[str, Any] = {}
    if args.start_node:
        overrides["start_node_id"] = args.start_node
    if args.max_depth is not None:
        overrides["max_depth"] = args.max_depth
    if args.fetch_mode:
        overrides["fetch_mode"] = args.fetch_mode

    graphs = {}
    for xml_file in args.xml:
        xml_path = Path(xml_file)
        options = workflow.model_copy(update={**overrides, "xml_content": xml_path.read_text(encoding="utf-8")})
        graphs[xml_path.name] = execute_workflow(options)

    output = json.dumps(graphs, indent=2, ensure_ascii=False)
    if args.out:
        Path(args.out).write_text(output, encoding="utf-8")
        print(f"OK: wrote graph to {args.out}")  # noqa: T201
    else:
        print(output)  # noqa: T201


if __name__ == "__main__":
    main()
