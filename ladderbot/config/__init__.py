"""
Configuration package.

This package contains configuration loading, validation, and YAML overrides.
"""

from ladderbot.config.config import ConfigurationError, Settings
from ladderbot.config.config_validator import ConfigValidator, validate_and_log
from ladderbot.config.overrides import load_overrides

__all__ = [
    "ConfigurationError",
    "Settings",
    "ConfigValidator",
    "validate_and_log",
    "load_overrides",
]
