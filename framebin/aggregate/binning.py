from __future__ import annotations

import math

import numpy as np

from framebin.models import FileSummary, Stream, TimeWindow


def new_stream(name: str, num_bins: int) -> Stream:
    if num_bins < 1:
        raise ValueError(f"Timeline width must be at least 1 bin, got {num_bins}.")
    return Stream(name=name, bins=np.zeros(num_bins, dtype=np.int64))


def bin_indices(timestamps: np.ndarray, window: TimeWindow, num_bins: int) -> np.ndarray:
    """Project timestamps onto ``[0, num_bins)``; the window end lands in the last bin."""

    scaled = np.floor((timestamps - window.start) / window.duration * num_bins)
    return np.clip(scaled.astype(np.int64), 0, num_bins - 1)


def bin_summary(stream: Stream, summary: FileSummary, window: TimeWindow) -> int:
    """Add the in-window frames of one file summary to the stream bins.

    Returns the number of frames added.
    """

    if summary.count <= 0:
        return 0

    if not summary.is_constant_cadence:
        return _add_samples(stream, np.asarray(summary.timestamps, dtype=np.float64), window)

    samples, inside = reconstruct_in_window(summary, window)
    return _add_samples(stream, samples, window, filter_window=not inside)


def reconstruct_in_window(summary: FileSummary, window: TimeWindow) -> tuple[np.ndarray, bool]:
    """Rebuild only the constant-cadence samples that can fall inside the window.

    The flag reports whether the whole file lies inside the window, in which case
    every sample is kept without re-testing it against the window bounds.
    """

    dt = summary.cadence
    if summary.count <= 1 or dt <= 0:
        return np.array([summary.start], dtype=np.float64), False

    if summary.start >= window.start and summary.end <= window.end:
        samples = summary.start + np.arange(summary.count, dtype=np.float64) * dt
        samples[-1] = summary.end
        return samples, True

    first = max(math.ceil((window.start - summary.start) / dt), 0)
    last = min(math.floor((window.end - summary.start) / dt), summary.count - 1)
    if first > last:
        return np.empty(0, dtype=np.float64), False
    return summary.start + np.arange(first, last + 1, dtype=np.float64) * dt, False


def _add_samples(
    stream: Stream,
    timestamps: np.ndarray,
    window: TimeWindow,
    *,
    filter_window: bool = True,
) -> int:
    if filter_window:
        timestamps = timestamps[(timestamps >= window.start) & (timestamps <= window.end)]
    if timestamps.size == 0:
        return 0

    np.add.at(stream.bins, bin_indices(timestamps, window, len(stream.bins)), 1)
    stream.total_frames += int(timestamps.size)
    stream.max_bin_count = int(stream.bins.max())
    return int(timestamps.size)
