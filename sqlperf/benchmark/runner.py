"""Sequential benchmark loop correlating query timings with the application log."""

import logging
import sys
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Optional, Sequence

from sqlperf.benchmark.results import ExecutionRecord, QuerySummary, ResultWriter
from sqlperf.correlation.log_cursor import LogCursor, Sample
from sqlperf.data.query_source import QueryDefinition
from sqlperf.data.sql_runner import (
    close_quietly,
    execute_and_drain,
    prepare_statement,
    rollback_quietly,
)
from sqlperf.errors import LogReadError, QueryExecutionError, StatementPrepareError

logger = logging.getLogger(__name__)

NS_PER_MS = 1_000_000


class FailurePolicy(str, Enum):
    """What a failed iteration does to the log cursor.

    SKIP leaves the cursor untouched, so the next successful iteration also
    picks up anything the service logged for the failed one. ADVANCE scans the
    log anyway and discards the result, which keeps later iterations aligned
    when the service still logs requests that failed client-side.
    """

    SKIP = "skip"
    ADVANCE = "advance"


class Clock:
    """Monotonic and wall-clock time sources."""

    def monotonic_ns(self) -> int:
        return time.perf_counter_ns()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def to_ms(nanos: int) -> int:
    return nanos // NS_PER_MS


def delta_ms(later: datetime, earlier: datetime) -> int:
    """Signed difference in whole milliseconds, floored."""
    return (later - earlier) // timedelta(milliseconds=1)


class BenchmarkRunner:
    """
    Run each query for a fixed number of iterations, one at a time.

    Each iteration is executed, fully drained, and then matched with the next
    unconsumed entry in the application log. Execution and log scan always
    alternate in dispatch order; nothing here runs concurrently.

    Parameters
    ----------
    connection : DB-API connection
        Open connection shared by every query.
    log_cursor : LogCursor
        Cursor into the application log, shared across all queries of a run.
    writer : ResultWriter
        Open writer receiving one record per successful iteration.
    iterations : int
        Iterations per query, must be positive.
    failure_policy : FailurePolicy, default FailurePolicy.SKIP
        Log cursor handling for failed iterations.
    validate_statements : bool, default True
        Check each statement with EXPLAIN before timing it. Log content
        written up to that point is consumed and discarded, so the first
        iteration only sees its own request.
    clock : Clock, optional
        Time source, replaceable in tests.
    """

    def __init__(
        self,
        connection: Any,
        log_cursor: LogCursor,
        writer: ResultWriter,
        iterations: int,
        failure_policy: FailurePolicy = FailurePolicy.SKIP,
        validate_statements: bool = True,
        clock: Optional[Clock] = None,
    ):
        if iterations <= 0:
            raise ValueError("iterations must be a positive integer")
        self.connection = connection
        self.log_cursor = log_cursor
        self.writer = writer
        self.iterations = iterations
        self.failure_policy = FailurePolicy(failure_policy)
        self.validate_statements = validate_statements
        self.clock = clock or Clock()

    def run(self, queries: Sequence[QueryDefinition]) -> List[QuerySummary]:
        """Benchmark every query in order and return their summaries."""
        summaries = []
        for query in queries:
            summary = self.run_query(query)
            if summary is not None:
                summaries.append(summary)
        return summaries

    def run_query(self, query: QueryDefinition) -> Optional[QuerySummary]:
        """
        Benchmark one query.

        Returns None when the statement fails to prepare or no iteration
        succeeded.
        """
        print(f"\n--- Starting Test for Query: {query.name} ---")
        logger.info(f"Starting run for query: {query.name}")

        try:
            cur = prepare_statement(self.connection, query.sql, self.validate_statements)
        except StatementPrepareError as e:
            logger.error(f"Fatal Error Preparing Query {query.name}: {e}", exc_info=True)
            print(f"\n--- Fatal Error Preparing Query {query.name} ---", file=sys.stderr)
            print(f"  Message: {e}", file=sys.stderr)
            return None
        logger.debug(f"Prepared statement for query: {query.name}")

        if self.validate_statements:
            # The EXPLAIN round-trip may be logged by the service like any
            # other request; it must not count towards iteration 1.
            discarded = self._next_sample()
            logger.debug(
                f"Discarded log sample after validating {query.name}: "
                f"sum={discarded.duration_sum}"
            )

        durations: List[int] = []
        total_ns = 0
        try:
            for i in range(1, self.iterations + 1):
                record, elapsed_ns = self._run_iteration(cur, query, i)
                if record is None:
                    continue
                durations.append(record.total_ms)
                total_ns += elapsed_ns
        finally:
            close_quietly(cur)

        if not durations:
            logger.warning(f"No successful iterations for query {query.name}")
            return None

        summary = QuerySummary(
            query_name=query.name,
            iterations=self.iterations,
            successful=len(durations),
            avg_ms=total_ns / len(durations) / NS_PER_MS,
            min_ms=min(durations),
            max_ms=max(durations),
        )
        logger.info(f"Summary for {query.name}: {summary.format()}")
        return summary

    def _run_iteration(self, cur: Any, query: QueryDefinition, i: int):
        print(f"  Executing (Run {i}/{self.iterations})... ", end="", flush=True)
        logger.debug(f"Executing run {i} of {self.iterations}")

        start_ns = self.clock.monotonic_ns()
        wall_start = self.clock.now()
        try:
            result_ns, drained_ns, row_count = execute_and_drain(
                cur, query.sql, self.clock.monotonic_ns
            )
        except QueryExecutionError as e:
            logger.warning(
                f"SQL Execution Error in Run {i} for query {query.name}: {e}",
                exc_info=True,
            )
            print(f"\n  --- SQL ERROR in Run {i} ---", file=sys.stderr)
            print(f"  Message: {e}", file=sys.stderr)
            rollback_quietly(self.connection)
            if self.failure_policy is FailurePolicy.ADVANCE:
                discarded = self._next_sample()
                logger.debug(
                    f"Discarded log sample for failed run {i}: "
                    f"sum={discarded.duration_sum}"
                )
            return None, 0

        elapsed_ns = drained_ns - start_ns
        total_ms = to_ms(elapsed_ns)
        logger.debug(f"Run {i} returned {row_count} rows.")
        print(f"Time: {total_ms} ms")
        logger.debug(f"Run {i} duration: {total_ms} ms")

        sample = self._next_sample()
        start_to_http = None
        if sample.timestamp is not None:
            start_to_http = delta_ms(sample.timestamp, wall_start)
        else:
            logger.debug(f"Run {i}: no log timestamp, start-HTTPStart left empty")

        record = ExecutionRecord(
            query_name=query.name,
            iteration=i,
            start_to_result_ms=to_ms(result_ns - start_ns),
            result_to_parsed_ms=to_ms(drained_ns - result_ns),
            total_ms=total_ms,
            http_log_duration_sum=sample.duration_sum,
            start_to_http_start_ms=start_to_http,
        )
        self.writer.write(record)
        return record, elapsed_ns

    def _next_sample(self) -> Sample:
        try:
            return self.log_cursor.next_sample()
        except LogReadError as e:
            logger.warning(f"{e}; log-derived fields left empty")
            logger.debug("Log read failure", exc_info=True)
            return Sample(timestamp=None, duration_sum=0)


def format_final_summary(
    csv_path, query_count: int, iterations: int, summaries: Sequence[QuerySummary]
) -> str:
    """Render the end-of-run console block."""
    lines = [
        "",
        "==================================",
        "--- ALL TESTS COMPLETED SUMMARY ---",
        f"Results exported to {csv_path}",
        f"Total queries run: {query_count}",
        f"Iterations per query: {iterations}",
        "----------------------------------",
    ]
    lines.extend(summary.format() for summary in summaries)
    lines.append("==================================")
    return "\n".join(lines)
