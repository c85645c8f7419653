"""Log-to-query correlation."""

from sqlperf.correlation.log_cursor import LogCursor, Sample
from sqlperf.correlation.timestamps import (
    DefaultTimestampExtractor,
    PatternTimestampExtractor,
    TimestampExtractor,
    make_extractor,
)

__all__ = [
    "LogCursor",
    "Sample",
    "DefaultTimestampExtractor",
    "PatternTimestampExtractor",
    "TimestampExtractor",
    "make_extractor",
]
