#!/usr/bin/env python3
"""
Utility functions for reading workflow settings from environment variables.

Values copied out of .env files edited on Windows often carry CRLF line
endings or stray whitespace, so every helper cleans the raw value first.
"""

import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def getenv_clean(key: str, default: str = None, strip: bool = True) -> Optional[str]:
    """Get environment variable with automatic cleaning of line endings and whitespace.

    Args:
        key: Environment variable name
        default: Default value if variable is not set
        strip: If True, strip whitespace and line endings (default: True)

    Returns:
        Cleaned environment variable value, or default if not set

    Example:
        >>> # .env file has: WORKFLOW_FETCH_MODE=await\r\n
        >>> value = getenv_clean("WORKFLOW_FETCH_MODE", "await")
        >>> # Returns: "await" (without \r\n)
    """
    raw_value = os.getenv(key, default)

    if raw_value is None:
        return None

    if not strip:
        return raw_value

    cleaned = raw_value.strip().rstrip("\r\n")

    # A changed value points at line ending problems in the .env file
    if raw_value != cleaned:
        logger.warning(
            f"Environment variable {key} had trailing whitespace/line endings: "
            f"raw={repr(raw_value)}, cleaned={repr(cleaned)}"
        )

    return cleaned


def getenv_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean.

    "true", "1", "yes", "on" map to True and "false", "0", "no", "off" or an
    empty string map to False. Anything else logs a warning and falls back to
    the default.

    Args:
        key: Environment variable name
        default: Default boolean value if variable is not set

    Returns:
        Boolean value
    """
    raw_value = getenv_clean(key, None)

    if raw_value is None:
        return default

    cleaned_lower = raw_value.lower()
    if cleaned_lower in ("true", "1", "yes", "on"):
        return True
    elif cleaned_lower in ("false", "0", "no", "off", ""):
        return False
    else:
        logger.warning(
            f"Environment variable {key} has unexpected boolean value: {repr(raw_value)}. "
            f"Using default: {default}"
        )
        return default


def getenv_int(key: str, default: int, minimum: int | None = None) -> int:
    """Get environment variable as integer.

    Args:
        key: Environment variable name
        default: Default integer value if variable is not set or invalid
        minimum: Optional lower bound; smaller values fall back to the default

    Returns:
        Integer value

    Example:
        >>> # .env file has: WORKFLOW_MAX_DEPTH=500\r\n
        >>> value = getenv_int("WORKFLOW_MAX_DEPTH", 10000)
        >>> # Returns: 500
    """
    raw_value = getenv_clean(key, None)

    if raw_value is None:
        return default

    try:
        value = int(raw_value)
    except ValueError:
        logger.warning(
            f"Environment variable {key} is not a valid integer: {repr(raw_value)}. "
            f"Using default: {default}"
        )
        return default

    if minimum is not None and value < minimum:
        logger.warning(f"Environment variable {key}={value} is below {minimum}. Using default: {default}")
        return default

    return value


def getenv_choice(key: str, choices: tuple[str, ...], default: str) -> str:
    """Get environment variable restricted to a fixed set of lower-case values.

    Args:
        key: Environment variable name
        choices: Accepted values
        default: Value used when the variable is unset or not one of the choices

    Returns:
        One of ``choices``
    """
    raw_value = getenv_clean(key, None)

    if raw_value is None or raw_value == "":
        return default

    value = raw_value.lower()
    if value not in choices:
        logger.warning(
            f"Environment variable {key} must be one of {', '.join(choices)}, got {repr(raw_value)}. "
            f"Using default: {default}"
        )
        return default
    return value
