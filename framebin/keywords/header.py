from __future__ import annotations

from pathlib import Path

DEFAULT_HEADER_SUFFIX = ".fits.header"
QUOTE_CHARS = ("'", '"')


def header_path_for(frame_path: str | Path, header_suffix: str = DEFAULT_HEADER_SUFFIX) -> Path:
    """Sidecar path: the frame file path with its extension replaced by ``header_suffix``."""

    path = Path(frame_path)
    return path.with_name(f"{path.with_suffix('').name}{header_suffix}")


def parse_header_line(line: str) -> tuple[str, str] | None:
    """Split a ``KEY = value / comment`` record into key and cleaned value."""

    key, sep, remainder = line.partition("=")
    if not sep:
        return None
    key = key.strip()
    if not key:
        return None
    return key, extract_value(remainder)


def extract_value(raw: str) -> str:
    text = raw.strip()
    closing = _closing_quote_index(text)
    if closing is not None:
        value = text[: closing + 1]
    else:
        value = text.split("/", 1)[0]
    value = value.strip()

    if len(value) >= 2 and value[0] in QUOTE_CHARS and value[-1] == value[0]:
        value = value[1:-1].strip()
    return value


def read_header_pairs(path: Path) -> list[tuple[str, str]]:
    """All key/value records of a header sidecar in file order. Raises ``OSError``."""

    pairs: list[tuple[str, str]] = []
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            parsed = parse_header_line(line)
            if parsed is not None:
                pairs.append(parsed)
    return pairs


def _closing_quote_index(text: str) -> int | None:
    if not text or text[0] not in QUOTE_CHARS:
        return None

    quote = text[0]
    index = 1
    while index < len(text):
        if text[index] == quote:
            # doubled quote is an escaped quote inside the string
            if index + 1 < len(text) and text[index + 1] == quote:
                index += 2
                continue
            return index
        index += 1
    return None
