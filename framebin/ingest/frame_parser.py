from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path

DEFAULT_COMMENT_MARKER = "#"
DEFAULT_TIMESTAMP_COLUMN = 4


def read_frame_timestamps(
    path: Path,
    comment_marker: str = DEFAULT_COMMENT_MARKER,
    timestamp_column: int = DEFAULT_TIMESTAMP_COLUMN,
) -> list[float]:
    """Read per-frame timestamps in file order.

    Comment lines and lines without a finite numeric value in the timestamp column
    are skipped.
    Raises ``OSError`` when the file cannot be read.
    """

    timestamps: list[float] = []
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            if line.startswith(comment_marker):
                continue
            fields = line.split()
            if len(fields) <= timestamp_column:
                continue
            try:
                value = float(fields[timestamp_column])
            except ValueError:
                continue
            if math.isfinite(value):
                timestamps.append(value)
    return timestamps


def filename_timestamp(name: str, day: datetime, suffix: str = ".txt") -> float | None:
    """Derive an approximate timestamp from ``<stream>_HH:MM:SS.fraction<suffix>``."""

    if not name.endswith(suffix):
        return None
    stem = name[: len(name) - len(suffix)]
    _, sep, time_part = stem.rpartition("_")
    if not sep:
        return None

    parts = time_part.split(":")
    if len(parts) != 3:
        return None
    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds < 61):
        return None

    return day.timestamp() + hours * 3600 + minutes * 60 + seconds
