"""Result records, CSV output, and post-run analysis."""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from sqlperf.utils.paths import ensure_dir

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Query Name",
    "Iteration",
    "start-res",
    "res-read",
    "total",
    "HTTPLogTime",
    "start-HTTPStart",
]


@dataclass(frozen=True)
class ExecutionRecord:
    """One timed iteration; all durations are integer milliseconds."""

    query_name: str
    iteration: int
    start_to_result_ms: int
    result_to_parsed_ms: int
    total_ms: int
    http_log_duration_sum: int
    # None when the log gave no usable timestamp for this iteration
    start_to_http_start_ms: Optional[int]

    def as_row(self) -> List[object]:
        delta = "" if self.start_to_http_start_ms is None else self.start_to_http_start_ms
        return [
            self.query_name,
            self.iteration,
            self.start_to_result_ms,
            self.result_to_parsed_ms,
            self.total_ms,
            self.http_log_duration_sum,
            delta,
        ]


@dataclass(frozen=True)
class QuerySummary:
    """Aggregate timing over the successful iterations of one query."""

    query_name: str
    iterations: int
    successful: int
    avg_ms: float
    min_ms: int
    max_ms: int

    def format(self) -> str:
        return (
            f"Query {self.query_name}: Avg={self.avg_ms:.2f} ms, "
            f"Min={self.min_ms} ms, Max={self.max_ms} ms"
        )


class ResultWriter:
    """Write ExecutionRecords to CSV, one flushed row per record."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._file = None
        self._writer = None
        self.rows_written = 0

    def open(self) -> "ResultWriter":
        ensure_dir(self.path.parent)
        self._file = open(self.path, "w", encoding="utf-8", newline="")
        self._writer = csv.writer(self._file, lineterminator="\n")
        self._writer.writerow(CSV_HEADER)
        self._file.flush()
        logger.info(f"CSV output path: {self.path}")
        return self

    def write(self, record: ExecutionRecord) -> None:
        if self._writer is None:
            raise RuntimeError("ResultWriter is not open")
        self._writer.writerow(record.as_row())
        self._file.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None

    def __enter__(self) -> "ResultWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def load_results(csv_path: str | Path) -> pd.DataFrame:
    """Load a results CSV written by ResultWriter."""
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Results file not found: {csv_path}")

    df = pd.read_csv(csv_path, dtype={"Query Name": str})
    missing = [col for col in CSV_HEADER if col not in df.columns]
    if missing:
        raise ValueError(f"Results file {csv_path} is missing columns: {missing}")
    return df


def summarize_results(csv_path: str | Path) -> pd.DataFrame:
    """
    Summarize a results CSV per query.

    Splits the observed request latency into the part spent getting the
    result set from the database and the overhead the application log
    attributes to everything else.

    Parameters
    ----------
    csv_path : str | Path
        Results CSV.

    Returns
    -------
    pd.DataFrame
        One row per query, in order of first appearance, with run count,
        mean/min/max/p50/p95 of ``total``, mean ``HTTPLogTime``, mean
        ``start-HTTPStart``, and mean overhead (``HTTPLogTime - total``).
    """
    df = load_results(csv_path)
    if df.empty:
        return pd.DataFrame(
            columns=[
                "runs",
                "mean_ms",
                "min_ms",
                "max_ms",
                "p50_ms",
                "p95_ms",
                "http_log_mean_ms",
                "start_to_http_mean_ms",
                "overhead_mean_ms",
            ]
        )

    df["overhead"] = df["HTTPLogTime"] - df["total"]
    grouped = df.groupby("Query Name", sort=False)

    summary = pd.DataFrame(
        {
            "runs": grouped["total"].count(),
            "mean_ms": grouped["total"].mean(),
            "min_ms": grouped["total"].min(),
            "max_ms": grouped["total"].max(),
            "p50_ms": grouped["total"].agg(lambda s: np.percentile(s, 50)),
            "p95_ms": grouped["total"].agg(lambda s: np.percentile(s, 95)),
            "http_log_mean_ms": grouped["HTTPLogTime"].mean(),
            "start_to_http_mean_ms": grouped["start-HTTPStart"].mean(),
            "overhead_mean_ms": grouped["overhead"].mean(),
        }
    )
    summary.index.name = "query"
    logger.info(f"Summarized {len(df)} rows for {len(summary)} queries from {csv_path}")
    return summary
