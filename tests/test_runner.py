"""Tests for the benchmark loop against an in-memory database and a fake service log."""

import csv
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from sqlperf.benchmark.results import ResultWriter
from sqlperf.benchmark.runner import (
    BenchmarkRunner,
    FailurePolicy,
    delta_ms,
    format_final_summary,
)
from sqlperf.correlation.log_cursor import LogCursor
from sqlperf.data.query_source import QueryDefinition

START = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock advancing 1 ms per reading; wall clock fixed (START by default)."""

    def __init__(self, wall=START):
        self.ns = 0
        self.wall = wall

    def monotonic_ns(self):
        self.ns += 1_000_000
        return self.ns

    def now(self):
        return self.wall


class FakeService:
    """Stands in for the application that logs one line per request."""

    def __init__(self, log_path, log_failures=False):
        self.log_path = log_path
        self.log_failures = log_failures
        self.requests = 0
        self.attempts = 0
        self.fail_on = set()

    def record(self):
        self.requests += 1
        ts = (START + timedelta(milliseconds=250)).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(f"{ts}+0000\tINFO GET /query\n")
            f.write(f"{ts}+0000\tINFO Request completed in {self.requests * 10}ms\n")


class ServiceCursor:
    """sqlite3 cursor whose executions are logged by the fake service."""

    def __init__(self, cursor, service):
        self._cursor = cursor
        self._service = service

    @property
    def description(self):
        return self._cursor.description

    def execute(self, sql):
        if sql.startswith("EXPLAIN"):
            # Validation requests are served and logged like any other
            result = self._cursor.execute(sql)
            self._service.record()
            return result
        self._service.attempts += 1
        if self._service.attempts in self._service.fail_on:
            if self._service.log_failures:
                self._service.record()
            raise sqlite3.OperationalError("simulated failure")
        result = self._cursor.execute(sql)
        self._service.record()
        return result

    def fetchmany(self, size):
        return self._cursor.fetchmany(size)

    def fetchall(self):
        return self._cursor.fetchall()

    def close(self):
        self._cursor.close()


class ServiceConnection:
    def __init__(self, service):
        self._conn = sqlite3.connect(":memory:")
        self._conn.execute("CREATE TABLE items (id INTEGER, name TEXT)")
        self._conn.executemany(
            "INSERT INTO items VALUES (?, ?)", [(i, f"item{i}") for i in range(2500)]
        )
        self._conn.commit()
        self.service = service

    def cursor(self):
        return ServiceCursor(self._conn.cursor(), self.service)

    def rollback(self):
        self._conn.rollback()


QUERIES = [
    QueryDefinition("Q1", "SELECT id, name FROM items"),
    QueryDefinition("Q2", "SELECT count(*) FROM items"),
]


def read_rows(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


def run(tmp_path, queries, iterations, service, clock=None, **kwargs):
    csv_path = tmp_path / "results.csv"
    cursor = LogCursor(service.log_path)
    with ResultWriter(csv_path) as writer:
        runner = BenchmarkRunner(
            ServiceConnection(service),
            cursor,
            writer,
            iterations,
            clock=clock or FakeClock(),
            **kwargs,
        )
        summaries = runner.run(queries)
    return summaries, read_rows(csv_path)


def test_rows_for_every_iteration(tmp_path):
    """Test that N queries x M iterations produce N*M correlated rows."""
    service = FakeService(tmp_path / "app.log")

    summaries, rows = run(tmp_path, QUERIES, 3, service)

    assert len(rows) == 6
    assert [r["Query Name"] for r in rows] == ["Q1"] * 3 + ["Q2"] * 3
    assert [int(r["Iteration"]) for r in rows] == [1, 2, 3, 1, 2, 3]
    # Each row picks up exactly the request the service logged for it; the
    # EXPLAIN requests (10 and 50) are dropped
    assert [int(r["HTTPLogTime"]) for r in rows] == [20, 30, 40, 60, 70, 80]
    assert service.requests == 8
    assert all(r["start-HTTPStart"] == "250" for r in rows)
    assert all(r["start-res"] == "1" and r["res-read"] == "1" for r in rows)
    assert all(r["total"] == "2" for r in rows)

    assert [s.query_name for s in summaries] == ["Q1", "Q2"]
    assert summaries[0].format() == "Query Q1: Avg=2.00 ms, Min=2 ms, Max=2 ms"


def test_prepare_failure_skips_only_that_query(tmp_path, capsys):
    """Test that a statement failing to prepare does not stop the batch."""
    service = FakeService(tmp_path / "app.log")
    queries = [QueryDefinition("bad", "SELEC nonsense FROM"), QUERIES[1]]

    summaries, rows = run(tmp_path, queries, 2, service)

    assert [r["Query Name"] for r in rows] == ["Q2", "Q2"]
    assert [s.query_name for s in summaries] == ["Q2"]
    assert "Fatal Error Preparing Query bad" in capsys.readouterr().err


def test_execution_failure_skips_iteration(tmp_path):
    """Test that a failed iteration writes no row and the loop continues."""
    service = FakeService(tmp_path / "app.log")
    service.fail_on = {2}

    summaries, rows = run(tmp_path, QUERIES[:1], 3, service)

    assert [int(r["Iteration"]) for r in rows] == [1, 3]
    assert [int(r["HTTPLogTime"]) for r in rows] == [20, 30]
    assert summaries[0].successful == 2


def test_skip_policy_merges_logged_failure(tmp_path):
    """Test that with SKIP a failure the service still logged folds into the next row."""
    service = FakeService(tmp_path / "app.log", log_failures=True)
    service.fail_on = {2}

    _, rows = run(tmp_path, QUERIES[:1], 3, service, failure_policy=FailurePolicy.SKIP)

    # Run 3 gets the failed request (30) plus its own (40)
    assert [int(r["HTTPLogTime"]) for r in rows] == [20, 70]


def test_advance_policy_discards_logged_failure(tmp_path):
    """Test that with ADVANCE the failed request's log entry is consumed and dropped."""
    service = FakeService(tmp_path / "app.log", log_failures=True)
    service.fail_on = {2}

    _, rows = run(tmp_path, QUERIES[:1], 3, service, failure_policy="advance")

    assert [int(r["HTTPLogTime"]) for r in rows] == [20, 40]


def test_validation_request_not_attributed_to_first_iteration(tmp_path):
    """Test that a logged EXPLAIN round-trip is not added to iteration 1."""
    service = FakeService(tmp_path / "app.log")

    _, rows = run(tmp_path, [QueryDefinition("one", "SELECT 1")], 2, service)

    assert service.requests == 3
    assert [int(r["HTTPLogTime"]) for r in rows] == [20, 30]


def test_without_validation_every_entry_is_attributed(tmp_path):
    """Test that with validation off nothing is discarded before iteration 1."""
    service = FakeService(tmp_path / "app.log")

    _, rows = run(tmp_path, QUERIES[:1], 2, service, validate_statements=False)

    assert service.requests == 2
    assert [int(r["HTTPLogTime"]) for r in rows] == [10, 20]


def test_log_timestamp_before_wall_start_is_negative(tmp_path):
    """Test that start-HTTPStart is negative and floored when the log entry predates the start."""
    service = FakeService(tmp_path / "app.log")
    # Service logs START + 250 ms; the wall clock reads START + 300.5 ms
    clock = FakeClock(wall=START + timedelta(milliseconds=300, microseconds=500))

    _, rows = run(tmp_path, QUERIES[1:], 1, service, clock=clock)

    assert rows[0]["start-HTTPStart"] == "-51"


def test_delta_ms_floors_towards_negative_infinity():
    """Test whole-millisecond flooring on both sides of zero."""
    assert delta_ms(START + timedelta(microseconds=1500), START) == 1
    assert delta_ms(START, START + timedelta(microseconds=500)) == -1
    assert delta_ms(START, START) == 0


def test_all_iterations_failing_gives_no_summary(tmp_path):
    """Test that a query with zero successful iterations has no summary."""
    service = FakeService(tmp_path / "app.log")
    service.fail_on = {1, 2}

    summaries, rows = run(tmp_path, QUERIES[:1], 2, service)

    assert rows == []
    assert summaries == []


def test_unreadable_log_leaves_log_fields_empty(tmp_path):
    """Test that a missing application log does not abort the run."""
    service = FakeService(tmp_path / "app.log")
    cursor_path = tmp_path / "never-written.log"
    csv_path = tmp_path / "results.csv"

    with ResultWriter(csv_path) as writer:
        runner = BenchmarkRunner(
            ServiceConnection(service),
            LogCursor(cursor_path),
            writer,
            2,
            clock=FakeClock(),
        )
        summaries = runner.run(QUERIES[1:])

    rows = read_rows(csv_path)
    assert len(rows) == 2
    assert all(r["HTTPLogTime"] == "0" for r in rows)
    assert all(r["start-HTTPStart"] == "" for r in rows)
    assert summaries[0].successful == 2


def test_iterations_must_be_positive(tmp_path):
    """Test that a non-positive iteration count is rejected."""
    with pytest.raises(ValueError):
        BenchmarkRunner(None, LogCursor(tmp_path / "app.log"), None, 0)


def test_final_summary_block():
    """Test the end-of-run console block."""
    text = format_final_summary("out.csv", 2, 5, [])

    assert "--- ALL TESTS COMPLETED SUMMARY ---" in text
    assert "Results exported to out.csv" in text
    assert "Iterations per query: 5" in text
