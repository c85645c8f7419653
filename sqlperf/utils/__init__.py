"""Shared helper functions."""

from sqlperf.utils.config import (
    ConnectionConfig,
    RunSettings,
    load_connection_config,
    load_settings,
    parse_properties,
)
from sqlperf.utils.logging_setup import close_logging, setup_logging
from sqlperf.utils.paths import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_LOG_FILE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_QUERIES_FILE,
    DEFAULT_SETTINGS_FILE,
    ensure_dir,
    output_paths,
)

__all__ = [
    "ConnectionConfig",
    "RunSettings",
    "load_connection_config",
    "load_settings",
    "parse_properties",
    "close_logging",
    "setup_logging",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_LOG_FILE",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_QUERIES_FILE",
    "DEFAULT_SETTINGS_FILE",
    "ensure_dir",
    "output_paths",
]
