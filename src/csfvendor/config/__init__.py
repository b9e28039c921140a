"""
Configuration management for csfvendor.

This module handles loading, validating, and saving configuration settings.
"""

from csfvendor.config.settings import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    ConfigurationError,
    Settings,
    load_config,
    save_config,
)

__all__ = [
    "Settings",
    "load_config",
    "save_config",
    "ConfigurationError",
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
]
