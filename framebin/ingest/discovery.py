from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from framebin.ingest.frame_parser import filename_timestamp
from framebin.ingest.time_window import iter_days
from framebin.models import FrameFile, TimeWindow

logger = logging.getLogger(__name__)


def list_children(path: Path) -> list[Path]:
    """Immediate children of ``path`` in lexicographic order, dot entries excluded."""

    try:
        entries = [entry for entry in path.iterdir() if not entry.name.startswith(".")]
    except OSError:
        return []
    return sorted(entries, key=lambda entry: entry.name)


def discover_frame_files(
    root: str | Path,
    window: TimeWindow,
    frame_suffix: str = ".txt",
) -> dict[str, list[FrameFile]]:
    """Walk ``root/YYYYMMDD/<stream>/`` for every day overlapping the window.

    Streams appear in day then name order; every stream directory seen gets an
    entry, even when all of its files are pruned.
    """

    root_path = Path(root)
    discovered: dict[str, list[FrameFile]] = {}

    for day in iter_days(window):
        day_dir = root_path / day.strftime("%Y%m%d")
        if not day_dir.is_dir():
            logger.debug("No data directory for %s", day_dir)
            continue

        for stream_dir in list_children(day_dir):
            if not stream_dir.is_dir():
                continue
            selected = select_stream_files(stream_dir, day, window, frame_suffix=frame_suffix)
            discovered.setdefault(stream_dir.name, []).extend(selected)
            logger.debug("Stream %s on %s: %d candidate files", stream_dir.name, day_dir.name, len(selected))

    return discovered


def select_stream_files(
    stream_dir: Path,
    day: datetime,
    window: TimeWindow,
    *,
    frame_suffix: str = ".txt",
) -> list[FrameFile]:
    stream = stream_dir.name
    candidates = [
        FrameFile(
            path=entry,
            stream=stream,
            timestamp=filename_timestamp(entry.name, day, suffix=frame_suffix),
        )
        for entry in list_children(stream_dir)
        if entry.name.endswith(frame_suffix) and entry.is_file()
    ]

    selected: list[FrameFile] = []
    for index, frame in enumerate(candidates):
        if frame.timestamp is not None and frame.timestamp > window.end:
            continue

        # a file whose successor starts before the window ends before it as well
        following = candidates[index + 1].timestamp if index + 1 < len(candidates) else None
        if following is not None and following < window.start:
            continue

        selected.append(frame)

    return selected
