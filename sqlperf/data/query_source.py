"""Load named SQL statements from a ``$$name$$`` delimited file."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from sqlperf.errors import QueryFileError, QueryNotFoundError

logger = logging.getLogger(__name__)

# Marker block, tolerant of surrounding whitespace and line breaks
MARKER_PATTERN = re.compile(r"\s*\$\$\s*([^$]*?)\s*\$\$\s*", re.DOTALL)

ALL_QUERIES = "all"


@dataclass(frozen=True)
class QueryDefinition:
    """A named SQL statement."""

    name: str
    sql: str


def parse_queries(text: str) -> Dict[str, str]:
    """
    Parse ``$$name$$`` delimited text into an ordered name -> SQL mapping.

    Each body runs from the end of its marker to the start of the next marker
    (or end of input) and is stripped. Whitespace-only bodies are dropped.
    Text before the first marker is ignored.

    Parameters
    ----------
    text : str
        Contents of a query file.

    Returns
    -------
    Dict[str, str]
        Query bodies keyed by name, in source order.
    """
    queries: Dict[str, str] = {}
    previous_name = None
    last_end = 0

    logger.debug("Starting query parsing...")
    for match in MARKER_PATTERN.finditer(text):
        if previous_name is not None:
            _add_query(queries, previous_name, text[last_end : match.start()])
        previous_name = match.group(1).strip()
        last_end = match.end()

    if previous_name is not None:
        _add_query(queries, previous_name, text[last_end:])

    logger.info(f"Successfully parsed {len(queries)} queries.")
    return queries


def _add_query(queries: Dict[str, str], name: str, body: str) -> None:
    body = body.strip()
    if not body:
        logger.debug(f"Dropping empty query body for '{name}'")
        return
    queries[name] = body
    logger.debug(f"Parsed Query: {name} (Length: {len(body)})")


def load_queries(path: str | Path) -> Dict[str, str]:
    """Read and parse a query file; raises QueryFileError if nothing usable."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise QueryFileError(f"Error reading queries file: {path}") from e

    queries = parse_queries(text)
    if not queries:
        raise QueryFileError(f"Could not load queries from {path}.")
    return queries


def resolve_query(queries: Dict[str, str], identifier: str) -> QueryDefinition:
    """
    Resolve a query by exact name, then by 1-based position.

    An exact name always wins, so a query named ``"2"`` is chosen for
    identifier ``"2"`` even when a second query exists.
    """
    if identifier in queries:
        return QueryDefinition(identifier, queries[identifier])

    try:
        index = int(identifier)
    except ValueError:
        index = 0

    names = list(queries)
    if 0 < index <= len(names):
        name = names[index - 1]
        return QueryDefinition(name, queries[name])

    raise QueryNotFoundError(identifier, names)


def select_queries(queries: Dict[str, str], target: str) -> List[QueryDefinition]:
    """Return every query for ``"all"``, otherwise the single resolved query."""
    if target.lower() == ALL_QUERIES:
        return [QueryDefinition(name, sql) for name, sql in queries.items()]
    return [resolve_query(queries, target)]
