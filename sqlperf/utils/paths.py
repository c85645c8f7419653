"""Path management utilities for the project."""

from pathlib import Path

# Defaults are relative to the directory the tool runs in
DEFAULT_CONFIG_FILE = Path("config.properties")
DEFAULT_QUERIES_FILE = Path("queries.sql")
DEFAULT_LOG_FILE = Path("fullLogs.log")
DEFAULT_SETTINGS_FILE = Path("sqlperf.yaml")
DEFAULT_OUTPUT_DIR = Path(".")


def ensure_dir(path: Path) -> Path:
    """Create directory if it does not exist and return the path."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def output_paths(output_dir: Path, prefix: str, stamp: str) -> tuple[Path, Path]:
    """Return the (csv, log) paths for one run."""
    output_dir = Path(output_dir)
    return output_dir / f"{prefix}{stamp}.csv", output_dir / f"{prefix}{stamp}.log"
