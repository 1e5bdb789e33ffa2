#!/usr/bin/env python3
"""
Research API Client

A low-level client for the research authority APIs (Wikidata, GND, VIAF,
ORCID, GeoNames, DBLP, Crossref, Europeana, Getty, Library of Congress) and
for plain HTTP requests issued by workflow fetch tools.

This client is pure infrastructure - it contains no workflow logic.
Failures are reported in the returned value and never raised.
"""

import logging
import re
from typing import Any
from urllib.parse import quote
from xml.etree.ElementTree import Element

import httpx

from xml_graph.core.config import workflow_config
from xml_graph.models.models import ApiResponse

logger = logging.getLogger(__name__)

PROVIDERS = (
    "wikidata",
    "gnd",
    "viaf",
    "orcid",
    "geonames",
    "dblp",
    "crossref",
    "europeana",
    "getty",
    "loc",
    "custom",
)

CROSSREF_USER_AGENT = "xml-graph-workflow/1.0 (mailto:metadata@example.org)"

XML_NOTE = "XML response - parsing not yet implemented"

# Trailing attribute step of an id path: "./idno/@when" or "@ref"
_ATTRIBUTE_STEP = re.compile(r"(?:^|/)@([\w:.-]+)$")


def build_api_url(provider: str, identifier: str, api_key: str | None = None) -> str:
    """Build the lookup URL for a provider.

    Args:
        provider: One of PROVIDERS except "custom"
        identifier: Provider-specific identifier (Q42, 0000-0002-1825-0097, ...)
        api_key: API key, or the username for GeoNames

    Returns:
        Request URL

    Raises:
        ValueError: If the provider is not supported
    """
    clean_id = identifier.strip()

    if provider == "wikidata":
        return f"https://www.wikidata.org/wiki/Special:EntityData/{clean_id}.json"
    if provider == "gnd":
        return (
            "https://services.dnb.de/sru/gnd?version=1.1&operation=searchRetrieve"
            f"&query=pica.gnd%3D{clean_id}&recordSchema=ONIX"
        )
    if provider == "viaf":
        # VIAF JSON endpoint is gone; RDF/XML comes back wrapped, not parsed
        return f"https://viaf.org/viaf/{clean_id}.rdf"
    if provider == "orcid":
        return f"https://pub.orcid.org/v3.0/{clean_id}"
    if provider == "geonames":
        username = api_key or workflow_config.GEONAMES_USERNAME
        return f"https://secure.geonames.org/getJSON?geonameId={clean_id}&username={username}"
    if provider == "dblp":
        return f"https://dblp.org/search/publ/api?q={quote(clean_id, safe='')}&format=json"
    if provider == "crossref":
        return f"https://api.crossref.org/works/{clean_id}"
    if provider == "europeana":
        return f"https://api.europeana.eu/record{clean_id}.json?wskey={api_key or ''}"
    if provider == "getty":
        return f"https://vocab.getty.edu/{clean_id}.json"
    if provider == "loc":
        return f"https://id.loc.gov/authorities/{clean_id}.jsonld"

    raise ValueError(f"Unsupported API provider: {provider}")


def normalize_response(provider: str, raw_data: Any) -> Any:
    """Reduce a provider payload to the record the lookup was about."""
    if not isinstance(raw_data, dict):
        return raw_data

    if provider == "wikidata":
        entities = raw_data.get("entities")
        if isinstance(entities, dict) and entities:
            return next(iter(entities.values()))
    elif provider == "dblp":
        hits = (raw_data.get("result") or {}).get("hits") or {}
        hit = hits.get("hit") if isinstance(hits, dict) else None
        if isinstance(hit, list) and hit:
            return hit[0]
    elif provider == "crossref":
        return raw_data.get("message") or raw_data
    elif provider == "europeana":
        return raw_data.get("object") or raw_data

    return raw_data


def apply_credential(
    provider: str,
    credential: dict[str, str] | None,
    api_key: str | None,
    custom_endpoint: str | None,
    custom_headers: dict[str, str] | None,
) -> tuple[str | None, str | None, dict[str, str]]:
    """Map stored credential fields onto the request settings of a provider.

    Returns:
        Tuple of (api_key, custom_endpoint, headers)
    """
    headers = dict(custom_headers or {})
    if not credential:
        return api_key, custom_endpoint, headers

    if provider in ("orcid", "getty", "europeana"):
        api_key = credential.get("apiKey", api_key)
    elif provider == "geonames":
        # GeoNames uses the account username in place of a key
        api_key = credential.get("username", api_key)
    elif provider == "custom":
        custom_endpoint = credential.get("endpoint", custom_endpoint)
        if credential.get("apiKey"):
            api_key = credential["apiKey"]
        if credential.get("headerName") and credential.get("headerValue"):
            headers[credential["headerName"]] = credential["headerValue"]

    return api_key, custom_endpoint, headers


def extract_id_from_element(
    element: Element,
    id_source: str,
    id_attribute: str | None = None,
    id_xpath: str | None = None,
    namespaces: dict[str, str] | None = None,
) -> str | None:
    """Read the lookup identifier off an XML element.

    Args:
        element: Element the fetch tool runs against
        id_source: 'attribute', 'textContent' or 'xpath'
        id_attribute: Attribute name for the 'attribute' source
        id_xpath: ElementTree path relative to the element; a trailing
            ``/@name`` (or a bare ``@name``) selects an attribute
        namespaces: Prefix to URI map for prefixed names in the path

    Returns:
        The identifier, or None when nothing usable was found
    """
    namespaces = {k: v for k, v in (namespaces or {}).items() if k}

    if id_source == "attribute":
        if not id_attribute:
            return None
        return element.get(_clark_name(id_attribute, namespaces)) or None

    if id_source == "textContent":
        return "".join(element.itertext()).strip() or None

    if id_source == "xpath":
        if not id_xpath:
            return None
        path, attribute = id_xpath, None
        match = _ATTRIBUTE_STEP.search(id_xpath)
        if match:
            path, attribute = id_xpath[:match.start()], match.group(1)
        path = path or "."
        try:
            target = element.find(path, namespaces)
        except (SyntaxError, KeyError) as e:
            logger.debug(f"Unsupported id path {id_xpath!r}: {e}")
            return None
        if target is None:
            return None
        if attribute:
            return target.get(_clark_name(attribute, namespaces)) or None
        return "".join(target.itertext()).strip() or None

    return None


def _clark_name(name: str, namespaces: dict[str, str]) -> str:
    """``prefix:local`` to ElementTree's ``{uri}local`` form."""
    prefix, sep, local = name.partition(":")
    if sep and prefix in namespaces:
        return f"{{{namespaces[prefix]}}}{local}"
    return name


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        return response.json()
    if "xml" in content_type or "rdf" in content_type:
        return {"_raw": response.text, "_format": "xml", "_note": XML_NOTE}
    return response.text


def fetch_from_api(
    provider: str,
    identifier: str | None,
    api_key: str | None = None,
    credential: dict[str, str] | None = None,
    custom_endpoint: str | None = None,
    custom_headers: dict[str, str] | None = None,
    timeout_ms: int | None = None,
    client: httpx.Client | None = None,
) -> ApiResponse:
    """Look up an identifier at a research API.

    Args:
        provider: Provider name, see PROVIDERS
        identifier: Identifier to look up
        api_key: API key (GeoNames: username)
        credential: Stored credential fields (apiKey, username, endpoint, headerName, headerValue)
        custom_endpoint: Full URL used instead of the provider URL
        custom_headers: Extra request headers
        timeout_ms: Request timeout in milliseconds
        client: Optional httpx client to reuse

    Returns:
        ApiResponse with the normalized payload or an error message
    """
    if not identifier or not identifier.strip():
        return ApiResponse(success=False, error="ID is required", provider=provider)

    api_key, custom_endpoint, extra_headers = apply_credential(
        provider, credential, api_key, custom_endpoint, custom_headers
    )

    try:
        url = custom_endpoint or build_api_url(provider, identifier, api_key)
    except ValueError as e:
        return ApiResponse(success=False, error=str(e), provider=provider)

    headers = {"Accept": "application/json", **extra_headers}
    if provider == "crossref":
        headers["User-Agent"] = CROSSREF_USER_AGENT
    if provider == "orcid":
        headers["Accept"] = "application/vnd.orcid+json"

    timeout = (timeout_ms or workflow_config.FETCH_TIMEOUT_MS) / 1000
    logger.debug(f"Fetching {provider} record {identifier} from {url}")

    try:
        if client is not None:
            response = client.get(url, headers=headers, timeout=timeout)
        else:
            with httpx.Client(follow_redirects=True) as own_client:
                response = own_client.get(url, headers=headers, timeout=timeout)
        response.raise_for_status()
    except httpx.TimeoutException:
        return ApiResponse(success=False, error="Request timeout", provider=provider)
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        return ApiResponse(
            success=False,
            error=f"API request failed: {status} {e.response.reason_phrase}",
            provider=provider,
        )
    except (httpx.RequestError, httpx.InvalidURL, TypeError, ValueError) as e:
        # Connection failures and requests httpx refuses to build (bad URL or header values)
        logger.warning(f"{provider} request to {url} failed: {e}")
        return ApiResponse(success=False, error=str(e) or type(e).__name__, provider=provider)

    try:
        raw_data = _decode_body(response)
    except ValueError as e:
        # JSON content type with an undecodable body
        return ApiResponse(success=False, error=f"Invalid response body: {e}", provider=provider)

    return ApiResponse(success=True, data=normalize_response(provider, raw_data), provider=provider)


def http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    body: str | bytes | dict[str, Any] | list[Any] | None = None,
    timeout_ms: int | None = None,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    """Issue a generic HTTP request.

    Text and bytes bodies are sent as they are; mappings and lists are
    serialized as JSON.

    Returns:
        ``{status, statusText, headers, data}`` where data is parsed JSON when
        possible and text otherwise, or ``{error}`` when no response came back
    """
    timeout = (timeout_ms or workflow_config.FETCH_TIMEOUT_MS) / 1000
    request_kwargs: dict[str, Any] = {"headers": headers or {}, "params": params or None, "timeout": timeout}
    if isinstance(body, (dict, list)):
        request_kwargs["json"] = body
    elif body is not None:
        request_kwargs["content"] = body

    try:
        if client is not None:
            response = client.request(method, url, **request_kwargs)
        else:
            with httpx.Client(follow_redirects=True) as own_client:
                response = own_client.request(method, url, **request_kwargs)
    except (httpx.RequestError, httpx.InvalidURL, TypeError, ValueError) as e:
        logger.warning(f"HTTP {method} {url} failed: {e}")
        return {"error": str(e) or type(e).__name__}

    try:
        data: Any = response.json()
    except ValueError:
        data = response.text

    return {
        "status": response.status_code,
        "statusText": response.reason_phrase,
        "headers": dict(response.headers),
        "data": data,
    }
