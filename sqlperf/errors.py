"""Exception hierarchy for the benchmark."""

from typing import Iterable


class SqlPerfError(Exception):
    """Base class for all benchmark errors."""


class ConfigError(SqlPerfError):
    """Connection properties or run settings are unreadable or incomplete."""


class QueryFileError(SqlPerfError):
    """Query file is unreadable or yields no usable queries."""


class QueryNotFoundError(SqlPerfError):
    """Requested query name or index does not match any loaded query."""

    def __init__(self, identifier: str, available: Iterable[str]):
        self.identifier = identifier
        self.available = list(available)
        super().__init__(
            f"Query identifier '{identifier}' not found. "
            f"Available queries: {', '.join(self.available)}"
        )


class DatabaseConnectionError(SqlPerfError):
    """Driver could not be loaded or the database could not be reached."""


class StatementPrepareError(SqlPerfError):
    """A statement failed to prepare; only that query is skipped."""


class QueryExecutionError(SqlPerfError):
    """A statement failed while executing; only that iteration is skipped."""


class LogReadError(SqlPerfError, OSError):
    """Application log could not be read during correlation."""
