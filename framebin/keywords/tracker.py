from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from framebin.keywords.header import DEFAULT_HEADER_SUFFIX, header_path_for, read_header_pairs
from framebin.models import CountMarker, ReportLine, TrackedKey, ValueRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class KeywordFilter:
    """Compiled keyword pattern, optionally restricted to one stream."""

    pattern: re.Pattern[str]
    stream: str | None = None

    def matches_stream(self, stream: str) -> bool:
        return self.stream is None or stream == self.stream

    def matches_key(self, key: str) -> bool:
        return self.pattern.search(key) is not None


def parse_keyword_filter(text: str) -> KeywordFilter:
    """Parse ``pattern`` or ``stream:pattern`` into a ``KeywordFilter``."""

    stream, sep, pattern = text.partition(":")
    if not sep:
        stream, pattern = "", text
    if not pattern:
        raise ValueError(f"Keyword pattern must not be empty (got '{text}').")

    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"Invalid keyword pattern '{pattern}': {exc}") from exc
    return KeywordFilter(pattern=compiled, stream=stream or None)


class KeywordChangeTracker:
    """Run-length compressed change log of header keyword values per stream."""

    def __init__(self, keyword_filter: KeywordFilter, header_suffix: str = DEFAULT_HEADER_SUFFIX) -> None:
        self.keyword_filter = keyword_filter
        self.header_suffix = header_suffix
        self.tracked: dict[tuple[str, str], TrackedKey] = {}
        self._groups: list[tuple[float, int, tuple[ReportLine, ...]]] = []
        self._finished = False

    def wants_stream(self, stream: str) -> bool:
        return self.keyword_filter.matches_stream(stream)

    def scan_frame(self, frame_path: Path, stream: str, timestamp: float) -> int:
        return self.scan_header(header_path_for(frame_path, self.header_suffix), stream, timestamp)

    def scan_header(self, path: str | Path, stream: str, timestamp: float) -> int:
        """Feed every matching record of one header sidecar. Returns records observed."""

        if not self.wants_stream(stream):
            return 0

        header_path = Path(path)
        try:
            pairs = read_header_pairs(header_path)
        except OSError as exc:
            logger.debug("Skipping header %s (%s)", header_path, exc)
            return 0

        observed = 0
        for key, value in pairs:
            if not self.keyword_filter.matches_key(key):
                continue
            self.observe(stream, key, value, timestamp, source_file=header_path.name)
            observed += 1
        return observed

    def observe(self, stream: str, keyword: str, value: str, timestamp: float, source_file: str = "") -> None:
        tracked = self.tracked.get((stream, keyword))
        if tracked is None:
            tracked = TrackedKey(stream=stream, keyword=keyword)
            self.tracked[(stream, keyword)] = tracked

        if not tracked.has_value:
            self._emit(ValueRecord(stream, keyword, timestamp, "INITIAL", value, source_file))
            tracked.last_value = value
            tracked.run_length = 1
            tracked.has_value = True
            return

        if value == tracked.last_value:
            tracked.run_length += 1
            return

        self._emit(
            ValueRecord(stream, keyword, timestamp, "CHANGE", value, source_file),
            marker=CountMarker(stream, keyword, tracked.run_length),
        )
        tracked.last_value = value
        tracked.run_length = 1

    def finish(self, end_timestamp: float) -> None:
        """Close every pending run with a count marker and an END record, once."""

        if self._finished:
            return
        for tracked in self.tracked.values():
            if not tracked.has_value:
                continue
            self._emit(
                ValueRecord(tracked.stream, tracked.keyword, end_timestamp, "END", tracked.last_value or ""),
                marker=CountMarker(tracked.stream, tracked.keyword, tracked.run_length),
            )
        self._finished = True

    def report(self) -> list[ReportLine]:
        """Chronological report; each count marker stays directly before its record."""

        ordered = sorted(self._groups, key=lambda group: (group[0], group[1]))
        return [line for _, _, lines in ordered for line in lines]

    def _emit(self, record: ValueRecord, marker: CountMarker | None = None) -> None:
        lines: tuple[ReportLine, ...] = (record,) if marker is None else (marker, record)
        self._groups.append((record.timestamp, len(self._groups), lines))
