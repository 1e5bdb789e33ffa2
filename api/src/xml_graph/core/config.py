#!/usr/bin/env python3
"""
Configuration settings for workflow execution.

These settings can be overridden via environment variables. Values passed
explicitly to execute_workflow() take precedence over them.
"""

import logging

from .env_utils import getenv_bool, getenv_choice, getenv_clean, getenv_int

logger = logging.getLogger(__name__)

FETCH_MODES = ("await", "background")


class WorkflowConfig:
    """Workflow execution configuration.

    All values can be overridden via environment variables.
    """

    # Walk depth ceiling; deeper elements are silently not visited
    MAX_DEPTH = getenv_int("WORKFLOW_MAX_DEPTH", 10000, minimum=0)

    # "await": fetch tools block until the response arrives
    # "background": fetches run in a thread pool and land in apiData whenever they finish
    FETCH_MODE = getenv_choice("WORKFLOW_FETCH_MODE", FETCH_MODES, "await")

    # Default request timeout for fetch tools that do not set one (milliseconds)
    FETCH_TIMEOUT_MS = getenv_int("WORKFLOW_FETCH_TIMEOUT_MS", 10000, minimum=1)

    # Thread pool size for background fetches
    FETCH_MAX_WORKERS = getenv_int("WORKFLOW_FETCH_MAX_WORKERS", 4, minimum=1)

    # Kill switch for all network access from fetch tools
    FETCH_ENABLED = getenv_bool("WORKFLOW_FETCH_ENABLED", True)

    # GeoNames requires a username even for anonymous lookups
    GEONAMES_USERNAME = getenv_clean("GEONAMES_USERNAME", "demo")

    @classmethod
    def resolve_fetch_mode(cls, requested: str | None) -> str:
        """Return the fetch mode for a run.

        Args:
            requested: Mode passed by the caller, or None to use the environment

        Returns:
            "await" or "background"
        """
        if requested is None:
            return cls.FETCH_MODE
        if requested not in FETCH_MODES:
            logger.warning(f"Unknown fetch mode {requested!r}, using {cls.FETCH_MODE}")
            return cls.FETCH_MODE
        return requested

    @classmethod
    def resolve_max_depth(cls, requested: int | None) -> int:
        return cls.MAX_DEPTH if requested is None else requested


# Singleton instance
workflow_config = WorkflowConfig()
