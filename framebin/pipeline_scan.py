from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from framebin.aggregate.binning import bin_summary, new_stream
from framebin.cache.summary_cache import FrameSummaryCache
from framebin.config import Settings
from framebin.ingest.discovery import discover_frame_files
from framebin.keywords.header import DEFAULT_HEADER_SUFFIX
from framebin.keywords.tracker import KeywordChangeTracker, KeywordFilter
from framebin.models import (
    EMPTY_SUMMARY,
    CacheCounters,
    CacheMode,
    FileSummary,
    FrameFile,
    ReportLine,
    Stream,
    TimeWindow,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScanContext:
    """Aggregation state of one run, passed through both scan passes."""

    window: TimeWindow
    num_bins: int
    cache: FrameSummaryCache
    tracker: KeywordChangeTracker | None = None
    streams: dict[str, Stream] = field(default_factory=dict)
    summaries: dict[Path, FileSummary] = field(default_factory=dict)


@dataclass(slots=True)
class ScanResult:
    """Engine output handed to exporters and renderers."""

    window: TimeWindow
    num_bins: int
    streams: list[Stream]
    report: list[ReportLine]
    counters: CacheCounters


def build_summary_cache(settings: Settings, mode: CacheMode | None = None) -> FrameSummaryCache:
    return FrameSummaryCache(
        mode or settings.cache.mode,
        dirname=settings.cache.dirname,
        cadence_tolerance=settings.cache.cadence_tolerance,
        comment_marker=settings.scan.comment_marker,
        timestamp_column=settings.scan.timestamp_column,
    )


def validate_root(root: str | Path) -> Path:
    root_path = Path(root).expanduser()
    if not root_path.is_dir():
        raise ValueError(f"Data root directory not found: {root_path}")
    return root_path


def discover_and_cache(context: ScanContext, root: str | Path, *, frame_suffix: str = ".txt") -> int:
    """First pass: discover candidate files and load or populate their summaries."""

    discovered = discover_frame_files(root, context.window, frame_suffix=frame_suffix)
    file_count = 0
    for name, frames in discovered.items():
        stream = context.streams.get(name)
        if stream is None:
            stream = new_stream(name, context.num_bins)
            context.streams[name] = stream

        for frame in frames:
            stream.files.append(frame)
            context.summaries[frame.path] = context.cache.get_summary(frame.path)
            file_count += 1

    return file_count


def bin_and_track(context: ScanContext) -> None:
    """Second pass: bin every summary and feed header sidecars to the tracker."""

    tracker = context.tracker
    for stream in context.streams.values():
        scan_headers = tracker is not None and tracker.wants_stream(stream.name)
        for frame in stream.files:
            summary = context.summaries.get(frame.path, EMPTY_SUMMARY)
            bin_summary(stream, summary, context.window)

            if not scan_headers:
                continue
            timestamp = header_timestamp(frame, summary)
            if timestamp is not None and context.window.contains(timestamp):
                tracker.scan_frame(frame.path, stream.name, timestamp)

    if tracker is not None:
        tracker.finish(context.window.end)


def header_timestamp(frame: FrameFile, summary: FileSummary) -> float | None:
    """First frame time of the file, falling back to the filename time for empty files."""

    if summary.count > 0:
        return summary.first_timestamp
    return frame.timestamp


def run_scan(
    root: str | Path,
    window: TimeWindow,
    *,
    num_bins: int,
    cache: FrameSummaryCache | None = None,
    keyword_filter: KeywordFilter | None = None,
    frame_suffix: str = ".txt",
    header_suffix: str = DEFAULT_HEADER_SUFFIX,
) -> ScanResult:
    root_path = validate_root(root)
    context = ScanContext(
        window=window,
        num_bins=num_bins,
        cache=cache or FrameSummaryCache(),
        tracker=KeywordChangeTracker(keyword_filter, header_suffix=header_suffix) if keyword_filter else None,
    )

    discover_and_cache(context, root_path, frame_suffix=frame_suffix)
    bin_and_track(context)
    return finalize_scan(context)


def finalize_scan(context: ScanContext) -> ScanResult:
    counters = context.cache.counters
    logger.info(
        "Summary cache: searched=%d found=%d created=%d",
        counters.searched,
        counters.found,
        counters.created,
    )
    return ScanResult(
        window=context.window,
        num_bins=context.num_bins,
        streams=list(context.streams.values()),
        report=context.tracker.report() if context.tracker is not None else [],
        counters=CacheCounters(counters.searched, counters.found, counters.created),
    )
