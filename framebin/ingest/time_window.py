from __future__ import annotations

import math
import re
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

from framebin.models import TimeWindow

UT_PATTERN = re.compile(
    r"^UT(\d{4})(\d{2})(\d{2})"
    r"(?:T(\d{1,2})(?::(\d{1,2})(?::(\d{1,2}(?:\.\d*)?))?)?)?$"
)


def parse_time_arg(text: str) -> float:
    """Parse epoch seconds or a ``UTYYYYMMDD[THH[:MM[:SS]]]`` string into epoch seconds."""

    raw = text.strip()
    if raw.upper().startswith("UT"):
        match = UT_PATTERN.match(raw.upper())
        if match is None:
            raise ValueError(
                f"Unparsable UT time '{text}'. Expected UTYYYYMMDD[THH[:MM[:SS]]]."
            )
        year, month, day, hour, minute, second = match.groups()
        try:
            moment = datetime(
                int(year),
                int(month),
                int(day),
                int(hour or 0),
                int(minute or 0),
                tzinfo=timezone.utc,
            )
        except ValueError as exc:
            raise ValueError(f"Invalid UT date-time '{text}': {exc}") from exc
        return moment.timestamp() + float(second or 0.0)

    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Unparsable time '{text}'. Expected epoch seconds or UT string.") from exc
    if not math.isfinite(value):
        raise ValueError(f"Time must be finite, got '{text}'.")
    return value


def build_window(tstart: float, tend: float) -> TimeWindow:
    if tstart >= tend:
        raise ValueError(f"Start time must be less than end time (got {tstart} >= {tend}).")
    return TimeWindow(start=float(tstart), end=float(tend))


def format_ut(timestamp: float) -> str:
    moment = datetime.fromtimestamp(int(math.floor(timestamp)), tz=timezone.utc)
    return moment.strftime("UT%Y%m%dT%H:%M:%S")


def day_start(timestamp: float) -> datetime:
    moment = datetime.fromtimestamp(math.floor(timestamp), tz=timezone.utc)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def iter_days(window: TimeWindow) -> Iterator[datetime]:
    """Yield the UTC midnight of every calendar day overlapping the window."""

    current = day_start(window.start)
    last = day_start(window.end)
    while current <= last:
        yield current
        current += timedelta(days=1)
