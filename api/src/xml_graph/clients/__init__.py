"""
Client Layer

This package contains low-level client wrappers for external services.
Clients handle communication with external systems but contain no business logic.

Modules:
- research_api_client: research authority APIs and generic HTTP requests
"""

from .research_api_client import (
    PROVIDERS,
    build_api_url,
    extract_id_from_element,
    fetch_from_api,
    http_request,
    normalize_response,
)

__all__ = [
    'PROVIDERS',
    'build_api_url',
    'extract_id_from_element',
    'fetch_from_api',
    'http_request',
    'normalize_response',
]
