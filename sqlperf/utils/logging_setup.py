"""Run log configuration."""

import logging
from pathlib import Path

from sqlperf.utils.paths import ensure_dir

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_path: Path, console_level: int = logging.WARNING) -> logging.Logger:
    """
    Route the package logger to a run log file and the console.

    The file receives every record down to DEBUG so it carries the
    per-iteration trace; the console only shows warnings and errors, since
    progress is printed directly.

    Parameters
    ----------
    log_path : Path
        Run log file, opened in append mode.
    console_level : int, default logging.WARNING
        Minimum level echoed to stderr.

    Returns
    -------
    logging.Logger
        The configured ``sqlperf`` logger.
    """
    log_path = Path(log_path)
    ensure_dir(log_path.parent)

    root = logging.getLogger("sqlperf")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    root.propagate = False
    return root


def close_logging() -> None:
    """Flush and detach the handlers installed by setup_logging."""
    root = logging.getLogger("sqlperf")
    for handler in list(root.handlers):
        handler.flush()
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
