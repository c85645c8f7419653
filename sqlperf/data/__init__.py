"""Query definitions and database access."""

from sqlperf.data.query_source import (
    QueryDefinition,
    load_queries,
    parse_queries,
    resolve_query,
    select_queries,
)
from sqlperf.data.sql_runner import execute_and_drain, open_connection, prepare_statement

__all__ = [
    "QueryDefinition",
    "load_queries",
    "parse_queries",
    "resolve_query",
    "select_queries",
    "execute_and_drain",
    "open_connection",
    "prepare_statement",
]
