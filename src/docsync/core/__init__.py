"""Core utilities shared across :mod:`docsync` components.

The core namespace provides configuration loading, logging setup, and the
shared error taxonomy so feature packages remain lightweight.
"""

from __future__ import annotations

from .config import AppConfig, SourceConfig, load_app_config, load_config
from .errors import ConfigurationError, DocsyncError
from .logging import configure_logging, get_logger

__all__ = [
    "AppConfig",
    "ConfigurationError",
    "DocsyncError",
    "SourceConfig",
    "configure_logging",
    "get_logger",
    "load_app_config",
    "load_config",
]
