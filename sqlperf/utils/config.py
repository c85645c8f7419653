"""Configuration management for the benchmark."""

import logging
import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional

import yaml

from sqlperf.errors import ConfigError
from sqlperf.utils.paths import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_LOG_FILE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_QUERIES_FILE,
)

logger = logging.getLogger(__name__)

# Property keys kept compatible with existing config.properties files
URL_KEY = "jdbc.url"
USERNAME_KEY = "jdbc.username"
PASSWORD_KEY = "jdbc.password"
DRIVER_KEY = "jdbc.driver.class"
REQUIRED_KEYS = (URL_KEY, USERNAME_KEY, PASSWORD_KEY, DRIVER_KEY)

FAILURE_POLICIES = ("skip", "advance")


@dataclass(frozen=True)
class ConnectionConfig:
    """Database connection parameters and DB-API driver module name."""

    url: str
    username: str
    password: str
    driver: str


@dataclass(frozen=True)
class RunSettings:
    """Run settings with defaults, optionally overridden from YAML."""

    config_file: Path = DEFAULT_CONFIG_FILE
    queries_file: Path = DEFAULT_QUERIES_FILE
    log_file: Path = DEFAULT_LOG_FILE
    output_dir: Path = DEFAULT_OUTPUT_DIR
    file_prefix: str = "performance_results_"

    # Application log format
    start_marker: str = "Request completed in "
    end_marker: str = "ms"
    timestamp_format: Optional[str] = None

    failure_policy: str = "skip"
    incremental_log_scan: bool = False
    reset_log: bool = False
    skip_existing_log: bool = False
    validate_statements: bool = True

    def __post_init__(self) -> None:
        """Normalize path fields and validate enumerations."""
        for name in ("config_file", "queries_file", "log_file", "output_dir"):
            object.__setattr__(self, name, Path(getattr(self, name)))
        if self.failure_policy not in FAILURE_POLICIES:
            raise ConfigError(
                f"failure_policy must be one of {FAILURE_POLICIES}, "
                f"got '{self.failure_policy}'"
            )
        if not self.start_marker or not self.end_marker:
            raise ConfigError("start_marker and end_marker must not be empty")

    def with_overrides(self, **overrides) -> "RunSettings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


# Whitespace as understood by java.util.Properties
PROPERTY_WHITESPACE = " \t\f"
# Key runs up to the first unescaped separator; one '=' or ':' may follow
PROPERTY_LINE = re.compile(r"((?:\\.|[^\\=: \t\f])*)[ \t\f]*[=:]?[ \t\f]*(.*)", re.DOTALL)
PROPERTY_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
PROPERTY_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def _logical_lines(text: str):
    """Join continued lines and drop blank lines and comments."""
    pending = None
    for raw_line in text.splitlines():
        line = raw_line.lstrip(PROPERTY_WHITESPACE)
        if pending is None:
            if not line or line[0] in "#!":
                continue
        else:
            line = pending + line
        # An odd run of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending = line[:-1]
            continue
        pending = None
        yield line
    if pending:
        yield pending


def _unescape(text: str) -> str:
    def decode(match):
        seq = match.group(1)
        if len(seq) == 5:
            return chr(int(seq[1:], 16))
        if seq == "u":
            raise ConfigError(f"Malformed \\uxxxx escape in properties: {text!r}")
        return PROPERTY_ESCAPES.get(seq, seq)

    return PROPERTY_ESCAPE.sub(decode, text)


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse Java-style properties text.

    Follows ``java.util.Properties.load``: the key ends at the first unescaped
    ``=``, ``:`` or whitespace; ``#`` and ``!`` start comments; an odd number
    of trailing backslashes continues the line; ``\\:``, ``\\=``, ``\\ ``,
    ``\\\\`` and ``\\uXXXX`` escapes are decoded in keys and values.

    Raises
    ------
    ConfigError
        On a malformed ``\\uXXXX`` escape.
    """
    props: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = PROPERTY_LINE.fullmatch(line).groups()
        props[_unescape(key)] = _unescape(value)
    return props


def load_connection_config(path: str | Path) -> ConnectionConfig:
    """
    Load connection parameters from a properties file.

    Parameters
    ----------
    path : str | Path
        Path to the properties file.

    Returns
    -------
    ConnectionConfig
        Parsed connection parameters.

    Raises
    ------
    ConfigError
        If the file cannot be read or a required key is missing.
    """
    path = Path(path)
    logger.info(f"Loading configuration from {path}...")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            f"Could not read {path}. Ensure it exists and is correctly formatted."
        ) from e

    props = parse_properties(text)
    missing = [key for key in REQUIRED_KEYS if key not in props]
    if missing:
        raise ConfigError(f"Missing required properties in {path}: {', '.join(missing)}")

    return ConnectionConfig(
        url=props[URL_KEY],
        username=props[USERNAME_KEY],
        password=props[PASSWORD_KEY],
        driver=props[DRIVER_KEY],
    )


def load_settings(path: Optional[str | Path] = None) -> RunSettings:
    """Load run settings, overlaying a YAML file on the defaults if given."""
    if path is None:
        return RunSettings()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")

    known = {f.name for f in fields(RunSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")

    logger.info(f"Loaded run settings from {path}")
    return RunSettings(**data)
