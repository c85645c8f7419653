"""Correlate benchmark iterations with entries in a growing application log.

Every executed query is expected to produce exactly one "Request completed
in <n>ms" line in the application log, in the order the queries were sent.
The cursor remembers how many lines and how many duration values it has
already seen, so each call attributes only the newly appended values to the
current iteration and reads the start timestamp from the first new line.
"""

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlperf.correlation.timestamps import DefaultTimestampExtractor, TimestampExtractor
from sqlperf.errors import LogReadError

logger = logging.getLogger(__name__)

DEFAULT_START_MARKER = "Request completed in "
DEFAULT_END_MARKER = "ms"

_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Sample:
    """Log-derived measurements for one iteration."""

    timestamp: Optional[datetime]
    duration_sum: int
    raw_timestamp: Optional[str] = None
    values_observed: int = 0


class LogCursor:
    """
    Read position into one append-only application log.

    Parameters
    ----------
    log_path : str | Path
        Application log file. It is reopened on every call.
    start_marker, end_marker : str
        Text surrounding the reported duration on a log line.
    timestamp_extractor : TimestampExtractor, optional
        Turns the first new line into a request-start timestamp.
    incremental : bool, default False
        Read only bytes appended since the previous call instead of rescanning
        the whole file. Only newline-terminated lines are consumed in this mode.
    """

    def __init__(
        self,
        log_path: str | Path,
        start_marker: str = DEFAULT_START_MARKER,
        end_marker: str = DEFAULT_END_MARKER,
        timestamp_extractor: Optional[TimestampExtractor] = None,
        incremental: bool = False,
    ):
        self.log_path = Path(log_path)
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.timestamp_extractor = timestamp_extractor or DefaultTimestampExtractor()
        self.incremental = incremental

        self.line_position = 0
        self.value_offset = 0

        # Incremental mode only
        self._byte_offset = 0
        self._values: List[int] = []

        self._lock = threading.Lock()

    def extract_duration(self, line: str) -> Optional[int]:
        """Return the duration reported on a line, or None if there is none."""
        start = line.find(self.start_marker)
        if start == -1:
            return None
        number_start = start + len(self.start_marker)
        number_end = line.find(self.end_marker, number_start)
        if number_end == -1:
            return None

        number = line[number_start:number_end].strip()
        if not _INTEGER.fullmatch(number):
            logger.debug(f"Skipping malformed duration {number!r} in log line")
            return None
        return int(number)

    def next_sample(self, consumed_value_count: Optional[int] = None) -> Sample:
        """
        Scan the log and return the values appended since the previous call.

        Parameters
        ----------
        consumed_value_count : int, optional
            Number of leading values already attributed to earlier iterations.
            Defaults to the cursor's own ``value_offset``.

        Returns
        -------
        Sample
            Timestamp of the first line not seen by the previous call, and the
            sum of the unconsumed duration values.

        Raises
        ------
        LogReadError
            If the log cannot be read. The cursor state is left unchanged.
        """
        with self._lock:
            if consumed_value_count is None:
                consumed_value_count = self.value_offset

            if self.incremental:
                values, lines_scanned, raw_timestamp = self._scan_incremental()
            else:
                values, lines_scanned, raw_timestamp = self._scan_full()

            remaining = values[consumed_value_count:] if consumed_value_count > 0 else values
            duration_sum = sum(remaining)

            timestamp = None
            if raw_timestamp is not None:
                timestamp = self.timestamp_extractor.parse(raw_timestamp)

            logger.debug(
                f"Log scan: lines={lines_scanned} (was {self.line_position}), "
                f"values={len(values)} (consumed {consumed_value_count}), "
                f"sum={duration_sum}, timestamp={raw_timestamp!r}"
            )

            self.value_offset = len(values)
            self.line_position = lines_scanned
            return Sample(timestamp, duration_sum, raw_timestamp, len(values))

    def prime(self) -> None:
        """Skip everything currently in the log without attributing it."""
        with self._lock:
            if self.incremental:
                values, lines_scanned, _ = self._scan_incremental()
            else:
                values, lines_scanned, _ = self._scan_full()
            self.value_offset = len(values)
            self.line_position = lines_scanned
            logger.info(
                f"Skipped {lines_scanned} existing log lines "
                f"({len(values)} duration values) in {self.log_path}"
            )

    def _inspect(self, line: str, line_number: int, values: List[int]) -> Optional[str]:
        value = self.extract_duration(line)
        if value is not None:
            values.append(value)
        if line_number == self.line_position:
            return self.timestamp_extractor.token(line)
        return None

    def _scan_full(self):
        values: List[int] = []
        raw_timestamp = None
        line_number = 0
        try:
            with open(self.log_path, "r", encoding="utf-8", errors="replace") as f:
                for line in f:
                    token = self._inspect(line.rstrip("\n"), line_number, values)
                    if token is not None:
                        raw_timestamp = token
                    line_number += 1
        except OSError as e:
            raise LogReadError(f"Error reading source file: {self.log_path}") from e
        return values, line_number, raw_timestamp

    def _scan_incremental(self):
        try:
            with open(self.log_path, "rb") as f:
                f.seek(self._byte_offset)
                chunk = f.read()
        except OSError as e:
            raise LogReadError(f"Error reading source file: {self.log_path}") from e

        # Hold back a trailing partial line until its newline arrives
        complete = chunk[: chunk.rfind(b"\n") + 1]

        values = list(self._values)
        raw_timestamp = None
        line_number = self.line_position
        for raw_line in complete.splitlines():
            line = raw_line.decode("utf-8", errors="replace")
            token = self._inspect(line, line_number, values)
            if token is not None:
                raw_timestamp = token
            line_number += 1

        self._byte_offset += len(complete)
        self._values = values
        return values, line_number, raw_timestamp
