"""Unified configuration management for Nexus Chat.

This module provides a single source of truth for all configuration,
integrating environment variables, .env files, and defaults.
"""

from nexus_chat.config.env_loader import Environment, get_environment
from nexus_chat.config.settings import AppConfig, get_settings, load_app_config

# Singleton instance
settings = get_settings()

__all__ = [
    "settings",
    "AppConfig",
    "get_settings",
    "load_app_config",
    "Environment",
    "get_environment",
]
