#!/usr/bin/env python3
"""
External fetch tools.

Each tool reads an identifier (or a URL) off the element, issues the request
through the research API client and stores the payload under a caller-chosen
key in the run's apiData. Whether the walk waits for the payload depends on
the run's fetch mode, see ``fetching.FetchDispatcher``.
"""
import base64
import logging
from typing import Any
from urllib.parse import urlencode

from xml_graph.clients.research_api_client import extract_id_from_element, fetch_from_api, http_request
from xml_graph.core.config import workflow_config
from xml_graph.models.models import ApiResponse, ToolKind, ToolNode
from xml_graph.services.domain.xml_to_graph.context import ExecutionContext, RunState, ToolResult
from xml_graph.services.domain.xml_to_graph.tools.base import config_int, config_list, fail, ok

logger = logging.getLogger(__name__)

AUTHENTICATED_PROVIDERS = {
    ToolKind.FETCH_ORCID: "orcid",
    ToolKind.FETCH_GEONAMES: "geonames",
    ToolKind.FETCH_EUROPEANA: "europeana",
    ToolKind.FETCH_GETTY: "getty",
}

BODY_CONTENT_TYPES = {
    "json": "application/json",
    "text": "text/plain",
    "x-www-form-urlencoded": "application/x-www-form-urlencoded",
}


def _element_id(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> str | None:
    return extract_id_from_element(
        run.arena.elements[ctx.element],
        tool.config.get("idSource") or "attribute",
        tool.config.get("idAttribute"),
        tool.config.get("idXpath"),
        run.arena.ns_map,
    )


def _store_response(tool: ToolNode, run: RunState, store_key: str):
    def store(response: ApiResponse) -> None:
        if response.success and response.data is not None:
            run.api_data[store_key] = response.data
            run.tool_responses[tool.id] = response.data
            logger.debug(f"Stored {response.provider} payload under {store_key!r}")
        else:
            logger.warning(f"API request failed for tool {tool.id}: {response.error}")

    return store


def _dispatch_lookup(
    tool: ToolNode,
    ctx: ExecutionContext,
    run: RunState,
    provider: str,
    identifier: str,
    store_key: str,
    **request: Any,
) -> ToolResult:
    timeout_ms = config_int(tool.config, "timeout", workflow_config.FETCH_TIMEOUT_MS)

    def lookup() -> ApiResponse:
        return fetch_from_api(provider, identifier, timeout_ms=timeout_ms, **request)

    response = run.fetcher.dispatch(lookup, _store_response(tool, run, store_key))
    if response is None:
        # Background mode: the payload lands whenever the request completes
        return ok(ctx, True)
    return ok(ctx, response.success)


def execute_fetch_api(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    provider = tool.config.get("apiProvider") or "wikidata"
    if not workflow_config.FETCH_ENABLED:
        logger.debug(f"Fetching disabled, tool {tool.id} skipped")
        return fail(ctx)

    identifier = _element_id(tool, ctx, run)
    if not identifier:
        logger.warning(f"No ID found for provider {provider} on tool {tool.id}")
        return fail(ctx)

    return _dispatch_lookup(
        tool,
        ctx,
        run,
        provider,
        identifier,
        tool.config.get("storeInContext") or provider,
        api_key=tool.config.get("apiKey"),
        custom_endpoint=tool.config.get("customEndpoint"),
        custom_headers=tool.config.get("customHeaders") or None,
    )


def execute_authenticated_fetch(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    """Provider lookups that need a stored credential (ORCID, GeoNames, Europeana, Getty)."""
    provider = AUTHENTICATED_PROVIDERS[tool.type]
    if not workflow_config.FETCH_ENABLED:
        logger.debug(f"Fetching disabled, tool {tool.id} skipped")
        return fail(ctx)

    credential_id = tool.config.get("credentialId")
    if not credential_id:
        logger.warning(f"No credential ID configured for {provider} on tool {tool.id}")
        return fail(ctx)
    credential = run.options.credentials.get(credential_id)
    if credential is None:
        logger.warning(f"Credential {credential_id!r} was not supplied with the run")
        return fail(ctx)

    identifier = _element_id(tool, ctx, run)
    if not identifier:
        logger.warning(f"No ID found for provider {provider} on tool {tool.id}")
        return fail(ctx)

    return _dispatch_lookup(
        tool,
        ctx,
        run,
        provider,
        identifier,
        tool.config.get("storeInContext") or provider,
        credential=credential,
    )


def build_auth_headers(config: dict[str, Any], credential: dict[str, str] | None = None) -> dict[str, str]:
    """Authorization headers for the http tool.

    Secrets come from the stored credential when one is given, otherwise from
    the tool config itself.
    """
    source = credential if credential is not None else config
    auth_type = config.get("authType") or "none"
    headers: dict[str, str] = {}

    if auth_type == "bearer":
        token = source.get("bearerToken") or source.get("token")
        if token:
            headers["Authorization"] = f"Bearer {token}"
    elif auth_type == "basic":
        username = source.get("basicUsername") or source.get("username")
        if username:
            password = source.get("basicPassword") or source.get("password") or ""
            encoded = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
    elif auth_type == "apiKey":
        api_key = source.get("apiKey")
        if api_key:
            headers[config.get("apiKeyHeader") or "X-API-Key"] = api_key
    elif auth_type == "custom":
        name = source.get("customHeaderName") or source.get("headerName")
        if name:
            headers[name] = source.get("customHeaderValue") or source.get("headerValue") or ""

    return headers


def execute_http(tool: ToolNode, ctx: ExecutionContext, run: RunState) -> ToolResult:
    config = tool.config
    url = str(config.get("url") or "").strip()
    if not url:
        logger.warning(f"No URL configured on http tool {tool.id}")
        return fail(ctx)
    if not workflow_config.FETCH_ENABLED:
        logger.debug(f"Fetching disabled, tool {tool.id} skipped")
        return fail(ctx)

    method = str(config.get("method") or "GET").upper()
    credential = None
    if config.get("useCredential") and config.get("credentialId"):
        credential = run.options.credentials.get(config["credentialId"])
        if credential is None:
            logger.warning(f"Credential {config['credentialId']!r} was not supplied with the run")

    headers = {"Accept": "application/json", **build_auth_headers(config, credential)}
    for header in config_list(config, "headers"):
        if header.get("key") and header.get("value"):
            headers[header["key"]] = header["value"]
    params = {p["key"]: p["value"] for p in config_list(config, "queryParams") if p.get("key") and p.get("value")}

    body = None
    if method in ("POST", "PUT", "PATCH") and config.get("body"):
        body_type = config.get("bodyType") or "json"
        body = config["body"]
        # Mappings and lists go out as JSON unless a form body is asked for
        if body_type == "x-www-form-urlencoded" and isinstance(body, dict):
            body = urlencode(body, doseq=True)
        elif not isinstance(body, (str, dict, list)):
            body = str(body)
        content_type = BODY_CONTENT_TYPES.get(body_type)
        if content_type:
            headers["Content-Type"] = content_type

    store_key = config.get("storeInContext") or "httpResponse"
    timeout_ms = config_int(config, "timeout", workflow_config.FETCH_TIMEOUT_MS)

    def request() -> dict[str, Any]:
        return http_request(method, url, headers=headers, params=params, body=body, timeout_ms=timeout_ms)

    def store(response: dict[str, Any]) -> None:
        run.api_data[store_key] = response
        run.tool_responses[tool.id] = response

    response = run.fetcher.dispatch(request, store)
    if response is None:
        return ok(ctx, True)
    return ok(ctx, "error" not in response)
