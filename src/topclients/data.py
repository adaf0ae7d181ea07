"""Data classes for the topclients package."""

import time
from dataclasses import dataclass, field
from typing import Any, Generator, NamedTuple, NewType


@dataclass
class LogRecord:
    """Raw log line going through the first stages of the pipeline

    Args:
        text: str
            the raw log line. Its prefix up to the first space is the client IP
        id: str
            a unique id (string) for this record
        metadata: dict[str, Any]
            additional info, such as the event `timestamp` (epoch ms) or the `file_path` it was read from
    """

    text: str
    id: str
    metadata: dict[str, Any] = field(default_factory=dict)


class KeyCount(NamedTuple):
    key: str
    count: int


class TopEntry(NamedTuple):
    key: str
    count: int

    def to_dict(self) -> dict:
        # field order is part of the snapshot format
        return {"key": self.key, "count": self.count}


@dataclass(frozen=True)
class TimeWindow:
    """Half-open `[start, end)` range of event timestamps, in epoch milliseconds."""

    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Window start ({self.start}) is after its end ({self.end})")

    def __contains__(self, timestamp: int) -> bool:
        return self.start <= timestamp < self.end

    @classmethod
    def last(cls, minutes: int = 60, end: int | None = None) -> "TimeWindow":
        """The window of the last `minutes` minutes before `end` (defaults to now)."""
        end = end if end is not None else int(time.time() * 1000)
        return cls(start=end - minutes * 60 * 1000, end=end)


RecordsPipeline = NewType("RecordsPipeline", Generator[LogRecord, None, None] | None)
KeyCountsPipeline = NewType("KeyCountsPipeline", Generator[KeyCount, None, None] | None)
