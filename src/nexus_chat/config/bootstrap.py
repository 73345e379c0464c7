"""Bootstrap configuration helpers (pre-settings).

These helpers exist for "chicken-and-egg" situations where we need a small amount
of configuration before the full Pydantic settings singleton can be imported.

Constraints:
- Keep this module dependency-light (no telemetry imports) to avoid circular imports.
- Prefer validating values using existing config validators.
"""

from __future__ import annotations

import os
from pathlib import Path

from nexus_chat.config.validators import resolve_path, validate_log_format, validate_log_level


def get_bootstrap_log_level(default: str = "INFO") -> str:
    """Get logging level from environment without importing settings.

    Args:
        default: Default log level if not set or invalid.

    Returns:
        Uppercased, validated log level string.
    """
    value = os.getenv("NEXUS_LOG_LEVEL", default)
    try:
        return validate_log_level(value)
    except ValueError:
        return validate_log_level(default)


def get_bootstrap_log_dir(default: str = "telemetry/logs") -> Path:
    """Get the log directory from environment without importing settings.

    Args:
        default: Directory used when NEXUS_LOG_DIR is unset.

    Returns:
        Absolute log directory path.
    """
    return resolve_path(os.getenv("NEXUS_LOG_DIR", default))


def get_bootstrap_log_format(default: str = "console") -> str:
    """Get the console log format from environment without importing settings.

    Args:
        default: Format used when NEXUS_LOG_FORMAT is unset or invalid.

    Returns:
        "json" or "console".
    """
    value = os.getenv("NEXUS_LOG_FORMAT", default)
    try:
        return validate_log_format(value)
    except ValueError:
        return validate_log_format(default)
