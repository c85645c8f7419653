"""Benchmark loop and result handling."""

from sqlperf.benchmark.results import (
    CSV_HEADER,
    ExecutionRecord,
    QuerySummary,
    ResultWriter,
    load_results,
    summarize_results,
)
from sqlperf.benchmark.runner import BenchmarkRunner, Clock, FailurePolicy

__all__ = [
    "CSV_HEADER",
    "ExecutionRecord",
    "QuerySummary",
    "ResultWriter",
    "load_results",
    "summarize_results",
    "BenchmarkRunner",
    "Clock",
    "FailurePolicy",
]
