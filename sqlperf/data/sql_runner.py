"""SQL execution helpers on top of DB-API drivers."""

import importlib
import logging
import time
from typing import Any, Callable, Tuple

from sqlperf.errors import (
    DatabaseConnectionError,
    QueryExecutionError,
    StatementPrepareError,
)
from sqlperf.utils.config import ConnectionConfig

logger = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 1000

# Drivers that take a filesystem path (or :memory:) instead of a DSN
EMBEDDED_DRIVERS = {"duckdb", "sqlite3"}
EMBEDDED_SCHEMES = {"duckdb", "sqlite"}


def normalize_url(url: str) -> str:
    """Strip a ``jdbc:`` prefix so JDBC-style URLs can be reused."""
    if url.lower().startswith("jdbc:"):
        return url[len("jdbc:") :]
    return url


def database_path(url: str) -> str:
    """
    Database path for an embedded driver.

    Accepts ``sqlite://path`` / ``duckdb://path`` as well as the JDBC forms
    ``sqlite:path`` / ``duckdb:path`` (after ``normalize_url``). Anything else
    is passed through as a plain path.
    """
    _, sep, path = url.partition("://")
    if sep:
        return path
    scheme, sep, path = url.partition(":")
    if sep and scheme.lower() in EMBEDDED_SCHEMES:
        return path
    return url


def load_driver(name: str):
    """Import the DB-API module named by the configuration."""
    logger.info(f"Attempting to load database driver: {name}")
    try:
        return importlib.import_module(name)
    except ImportError as e:
        raise DatabaseConnectionError(
            f"Database driver '{name}' not found. Check that it is installed."
        ) from e


def open_connection(config: ConnectionConfig) -> Any:
    """
    Open a DB-API connection for the configured driver.

    Parameters
    ----------
    config : ConnectionConfig
        Connection parameters. ``driver`` is a DB-API module name.

    Returns
    -------
    DB-API connection.

    Raises
    ------
    DatabaseConnectionError
        If the driver is missing or the database cannot be reached.
    """
    driver = load_driver(config.driver)
    url = normalize_url(config.url)

    try:
        if config.driver in EMBEDDED_DRIVERS:
            conn = driver.connect(database_path(url))
        else:
            conn = driver.connect(
                url,
                user=config.username or None,
                password=config.password or None,
            )
    except Exception as e:
        raise DatabaseConnectionError(
            f"Could not establish connection to {url}: {e}"
        ) from e

    logger.info(f"Connection established successfully to: {url}")
    return conn


def prepare_statement(conn: Any, sql: str, validate: bool = True) -> Any:
    """
    Open a cursor for a statement, optionally checking it with EXPLAIN.

    DB-API has no portable prepare call, so an ``EXPLAIN`` round-trip stands in
    for it: syntax errors and unknown relations surface here, before timing.
    """
    try:
        cur = conn.cursor()
    except Exception as e:
        raise StatementPrepareError(f"Could not open cursor: {e}") from e

    if validate:
        try:
            cur.execute(f"EXPLAIN {sql}")
            cur.fetchall()
        except Exception as e:
            rollback_quietly(conn)
            close_quietly(cur)
            raise StatementPrepareError(str(e)) from e
    return cur


def execute_and_drain(
    cur: Any, sql: str, clock: Callable[[], int] = time.perf_counter_ns
) -> Tuple[int, int, int]:
    """
    Execute a statement and read every row and column of its result.

    Returns
    -------
    Tuple[int, int, int]
        Monotonic ns when the result was obtained, monotonic ns when the
        result was fully drained, and the number of rows read.
    """
    try:
        cur.execute(sql)
        result_ns = clock()

        row_count = 0
        if cur.description is not None:
            while True:
                rows = cur.fetchmany(FETCH_BATCH_SIZE)
                if not rows:
                    break
                for row in rows:
                    for _ in row:
                        pass
                row_count += len(rows)
        drained_ns = clock()
    except Exception as e:
        raise QueryExecutionError(str(e)) from e

    return result_ns, drained_ns, row_count


def rollback_quietly(conn: Any) -> None:
    """Roll back after a failed statement so the session stays usable."""
    rollback = getattr(conn, "rollback", None)
    if rollback is None:
        return
    try:
        rollback()
    except Exception as e:
        logger.debug(f"Rollback failed: {e}")


def close_quietly(resource: Any) -> None:
    try:
        resource.close()
    except Exception as e:
        logger.debug(f"Close failed: {e}")
