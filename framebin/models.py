from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

import numpy as np

RecordStatus = Literal["INITIAL", "CHANGE", "END"]


class CacheMode(str, Enum):
    """Where newly computed summaries are written."""

    EXPORT = "export"
    LOCAL = "local"


@dataclass(slots=True, frozen=True)
class FileSummary:
    """Timestamp summary of one frame file, exact or constant-cadence."""

    is_constant_cadence: bool
    count: int
    start: float = 0.0
    end: float = 0.0
    timestamps: tuple[float, ...] = ()

    @property
    def cadence(self) -> float:
        return (self.end - self.start) / max(self.count - 1, 1)

    @property
    def first_timestamp(self) -> float:
        """Time of the first frame in file order, which differs from ``start`` for unordered files."""

        return self.timestamps[0] if self.timestamps else self.start


EMPTY_SUMMARY = FileSummary(is_constant_cadence=False, count=0)


@dataclass(slots=True)
class TimeWindow:
    """Inclusive scan window in epoch seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def contains(self, timestamp: float) -> bool:
        return self.start <= timestamp <= self.end


@dataclass(slots=True)
class FrameFile:
    path: Path
    stream: str
    timestamp: float | None


@dataclass(slots=True)
class Stream:
    """Per-stream binning state for one run."""

    name: str
    bins: np.ndarray
    total_frames: int = 0
    max_bin_count: int = 0
    files: list[FrameFile] = field(default_factory=list)


@dataclass(slots=True)
class TrackedKey:
    stream: str
    keyword: str
    last_value: str | None = None
    run_length: int = 0
    has_value: bool = False


@dataclass(slots=True)
class CountMarker:
    """Number of consecutive files that carried the previous value."""

    stream: str
    keyword: str
    run_length: int


@dataclass(slots=True)
class ValueRecord:
    stream: str
    keyword: str
    timestamp: float
    status: RecordStatus
    value: str
    source_file: str = ""


ReportLine = CountMarker | ValueRecord


@dataclass(slots=True)
class CacheCounters:
    searched: int = 0
    found: int = 0
    created: int = 0
