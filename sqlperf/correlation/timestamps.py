"""Timestamp extraction from application log lines."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

# e.g. 2024-05-01T10:15:30.123+0000
DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"


class TimestampExtractor(ABC):
    """Pull the request-start timestamp out of a log line.

    The token is everything before the first tab. Subclasses decide how the
    token is turned into a datetime.
    """

    separator = "\t"

    def token(self, line: str) -> Optional[str]:
        """Return the text before the first tab, or None if there is no tab."""
        end = line.find(self.separator)
        if end == -1:
            return None
        return line[:end]

    @abstractmethod
    def parse(self, token: str) -> Optional[datetime]:
        """Turn a timestamp token into an aware datetime, or None."""

    def extract(self, line: str) -> Optional[datetime]:
        token = self.token(line)
        if token is None:
            return None
        return self.parse(token)


class PatternTimestampExtractor(TimestampExtractor):
    """Parse tokens with a fixed ``strptime`` format.

    Single quotes are stripped first, since some appenders quote the
    timestamp. Naive results are taken as UTC.
    """

    def __init__(self, fmt: str = DEFAULT_TIMESTAMP_FORMAT):
        self.fmt = fmt

    def _clean(self, token: str) -> str:
        return token.replace("'", "").strip()

    def parse(self, token: str) -> Optional[datetime]:
        cleaned = self._clean(token)
        try:
            parsed = datetime.strptime(cleaned, self.fmt)
        except ValueError:
            logger.debug(f"Unparseable log timestamp: {token!r}")
            return None
        return _as_aware(parsed)


class DefaultTimestampExtractor(PatternTimestampExtractor):
    """Fixed log format first, ISO-8601 as a fallback."""

    def parse(self, token: str) -> Optional[datetime]:
        cleaned = self._clean(token)
        try:
            return _as_aware(datetime.strptime(cleaned, self.fmt))
        except ValueError:
            pass
        try:
            return _as_aware(datetime.fromisoformat(cleaned))
        except ValueError:
            logger.debug(f"Unparseable log timestamp: {token!r}")
            return None


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def make_extractor(fmt: Optional[str] = None) -> TimestampExtractor:
    """Build the extractor for an optional custom format."""
    if fmt:
        return PatternTimestampExtractor(fmt)
    return DefaultTimestampExtractor()
