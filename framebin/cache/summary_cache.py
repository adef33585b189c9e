from __future__ import annotations

import logging
import math
from collections.abc import Callable
from pathlib import Path

import numpy as np

from framebin.ingest.frame_parser import (
    DEFAULT_COMMENT_MARKER,
    DEFAULT_TIMESTAMP_COLUMN,
    read_frame_timestamps,
)
from framebin.models import EMPTY_SUMMARY, CacheCounters, CacheMode, FileSummary

logger = logging.getLogger(__name__)

CACHE_SUFFIX = ".summary"
CONSTANT_TAG = "CONSTANT"
RAW_TAG = "RAW"
DEFAULT_CADENCE_TOLERANCE = 0.05

class FrameSummaryCache:
    """Two-tier on-disk cache of per-file timestamp summaries.

    Entries are looked up next to the frame file first (``export``) and then under
    the working-directory cache (``local``). Newly computed summaries are written to
    the location selected by ``mode``.
    """

    def __init__(
        self,
        mode: CacheMode | str = CacheMode.LOCAL,
        *,
        dirname: str = "cache",
        local_root: str | Path | None = None,
        cadence_tolerance: float = DEFAULT_CADENCE_TOLERANCE,
        comment_marker: str = DEFAULT_COMMENT_MARKER,
        timestamp_column: int = DEFAULT_TIMESTAMP_COLUMN,
    ) -> None:
        try:
            self.mode = CacheMode(mode)
        except ValueError as exc:
            raise ValueError(f"Unsupported cache mode '{mode}'. Expected one of: export, local.") from exc
        self.dirname = dirname
        self.local_root = Path(local_root) if local_root is not None else None
        self.cadence_tolerance = cadence_tolerance
        self.comment_marker = comment_marker
        self.timestamp_column = timestamp_column
        self.counters = CacheCounters()

    def export_entry_path(self, source: Path) -> Path:
        return source.parent / self.dirname / f"{source.name}{CACHE_SUFFIX}"

    def local_entry_path(self, source: Path) -> Path:
        root = self.local_root if self.local_root is not None else Path.cwd() / self.dirname
        # day/stream keep entries from different stream-days apart
        return root / source.parent.parent.name / source.parent.name / f"{source.name}{CACHE_SUFFIX}"

    def destination_for(self, source: Path) -> Path:
        if self.mode is CacheMode.EXPORT:
            return self.export_entry_path(source)
        return self.local_entry_path(source)

    def lookup_strategies(self) -> list[tuple[str, Callable[[Path], FileSummary | None]]]:
        return [
            ("export", lambda source: load_cache_entry(self.export_entry_path(source), source)),
            ("local", lambda source: load_cache_entry(self.local_entry_path(source), source)),
        ]

    def get_summary(self, path: str | Path) -> FileSummary:
        source = Path(path)
        self.counters.searched += 1

        for label, lookup in self.lookup_strategies():
            summary = lookup(source)
            if summary is not None:
                self.counters.found += 1
                logger.debug("Cache hit (%s) for %s", label, source)
                return summary

        try:
            timestamps = read_frame_timestamps(
                source,
                comment_marker=self.comment_marker,
                timestamp_column=self.timestamp_column,
            )
        except OSError as exc:
            logger.warning("Unable to read frame file %s (%s); counting it as empty.", source, exc)
            return EMPTY_SUMMARY

        summary = summarize_timestamps(timestamps, tolerance=self.cadence_tolerance)
        if write_cache_entry(self.destination_for(source), summary):
            self.counters.created += 1
        return summary


def summarize_timestamps(
    timestamps: list[float],
    tolerance: float = DEFAULT_CADENCE_TOLERANCE,
) -> FileSummary:
    """Build a summary, collapsing constant-cadence sequences to start/end/count."""

    if not timestamps:
        return EMPTY_SUMMARY

    values = np.asarray(timestamps, dtype=np.float64)
    start = float(values.min())
    end = float(values.max())
    if is_constant_cadence(values, tolerance=tolerance):
        return FileSummary(is_constant_cadence=True, count=len(values), start=start, end=end)

    return FileSummary(
        is_constant_cadence=False,
        count=len(values),
        start=start,
        end=end,
        timestamps=tuple(float(value) for value in values),
    )


def is_constant_cadence(values: np.ndarray, tolerance: float = DEFAULT_CADENCE_TOLERANCE) -> bool:
    """True when every successive delta lies within ``tolerance`` of the mean delta."""

    if len(values) < 2:
        return False

    deltas = np.diff(values)
    mean_delta = float(np.mean(deltas))
    if mean_delta <= 0:
        return False
    return bool(np.all(np.abs(deltas - mean_delta) <= tolerance * mean_delta))


def format_cache_text(summary: FileSummary) -> str:
    if summary.is_constant_cadence:
        return f"{CONSTANT_TAG} {summary.count} {summary.start!r} {summary.end!r}\n"

    lines = [f"{RAW_TAG} {summary.count}"]
    lines.extend(repr(value) for value in summary.timestamps)
    return "\n".join(lines) + "\n"


def parse_cache_text(text: str) -> FileSummary:
    """Parse cache file content; raises ``ValueError`` on malformed or partial content."""

    tokens = text.split()
    if not tokens:
        raise ValueError("empty cache entry")

    tag = tokens[0]
    if tag == CONSTANT_TAG:
        if len(tokens) != 4:
            raise ValueError(f"{CONSTANT_TAG} entry needs count, start and end")
        count = int(tokens[1])
        if count < 0:
            raise ValueError("negative frame count")
        start, end = _finite_values(tokens[2:])
        return FileSummary(is_constant_cadence=True, count=count, start=start, end=end)

    if tag == RAW_TAG:
        if len(tokens) < 2:
            raise ValueError(f"{RAW_TAG} entry needs a count")
        count = int(tokens[1])
        values = tokens[2:]
        if count < 0 or len(values) != count:
            raise ValueError(f"{RAW_TAG} entry declares {count} timestamps but holds {len(values)}")
        if count == 0:
            return EMPTY_SUMMARY
        timestamps = _finite_values(values)
        return FileSummary(
            is_constant_cadence=False,
            count=count,
            start=min(timestamps),
            end=max(timestamps),
            timestamps=timestamps,
        )

    raise ValueError(f"unknown cache tag '{tag}'")


def load_cache_entry(entry_path: Path, source: Path | None = None) -> FileSummary | None:
    """Read one cache entry; missing, stale or malformed entries return ``None``."""

    if not entry_path.is_file():
        return None

    if source is not None and _is_stale(entry_path, source):
        logger.debug("Ignoring stale cache entry %s", entry_path)
        return None

    try:
        return parse_cache_text(entry_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        logger.warning("Ignoring unreadable cache entry %s (%s); re-parsing source.", entry_path, exc)
        return None


def write_cache_entry(entry_path: Path, summary: FileSummary) -> bool:
    """Fully rewrite a cache entry, creating its directory first. Returns success."""

    staging_path = entry_path.with_name(f"{entry_path.name}.tmp")
    try:
        entry_path.parent.mkdir(parents=True, exist_ok=True)
        staging_path.write_text(format_cache_text(summary), encoding="utf-8")
        staging_path.replace(entry_path)
    except OSError as exc:
        if staging_path.exists():
            staging_path.unlink()
        logger.warning("Failed to write cache entry %s (%s); continuing without cache.", entry_path, exc)
        return False
    return True


def _finite_values(tokens: list[str]) -> tuple[float, ...]:
    values = tuple(float(token) for token in tokens)
    if not all(math.isfinite(value) for value in values):
        raise ValueError("non-finite timestamp in cache entry")
    return values


def _is_stale(entry_path: Path, source: Path) -> bool:
    try:
        return entry_path.stat().st_mtime < source.stat().st_mtime
    except OSError:
        return False
