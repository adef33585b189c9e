from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

from framebin.ingest.time_window import format_ut
from framebin.models import CountMarker, ReportLine, Stream
from framebin.pipeline_scan import ScanResult


def build_scan_payload(result: ScanResult) -> dict[str, Any]:
    """JSON-ready view of one scan: window, per-stream bins, keyword report, cache counters."""

    bin_seconds = result.window.duration / result.num_bins
    return {
        "status": "ok",
        "window": {
            "start": result.window.start,
            "end": result.window.end,
            "start_ut": format_ut(result.window.start),
            "end_ut": format_ut(result.window.end),
            "duration_seconds": round(result.window.duration, 6),
            "bin_seconds": round(bin_seconds, 6),
            "bin_count": result.num_bins,
        },
        "streams": [_stream_row(stream, bin_seconds) for stream in result.streams],
        "keyword_report": [report_line_row(line) for line in result.report],
        "cache": {
            "searched": result.counters.searched,
            "found": result.counters.found,
            "created": result.counters.created,
        },
    }


def report_line_row(line: ReportLine) -> dict[str, Any]:
    if isinstance(line, CountMarker):
        return {
            "kind": "count",
            "stream": line.stream,
            "keyword": line.keyword,
            "run_length": line.run_length,
        }
    return {
        "kind": "value",
        "stream": line.stream,
        "keyword": line.keyword,
        "timestamp": line.timestamp,
        "time_ut": format_ut(line.timestamp),
        "status": line.status,
        "value": line.value,
        "source_file": line.source_file,
    }


def export_scan_outputs(
    result: ScanResult,
    output_dir: str | Path,
    *,
    basename: str = "frame_density",
) -> dict[str, Path]:
    """Write the scan payload as JSON plus stream and keyword CSV tables."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)

    json_path = resolved_output_dir / f"{basename}.json"
    streams_path = resolved_output_dir / f"{basename}_streams.csv"
    keywords_path = resolved_output_dir / f"{basename}_keywords.csv"

    json_path.write_text(json.dumps(build_scan_payload(result), indent=2), encoding="utf-8")
    _write_streams_csv(result, streams_path)
    _write_keywords_csv(result.report, keywords_path)

    return {
        "json": json_path,
        "streams": streams_path,
        "keywords": keywords_path,
    }


def _stream_row(stream: Stream, bin_seconds: float) -> dict[str, Any]:
    return {
        "name": stream.name,
        "total_frames": stream.total_frames,
        "max_bin_count": stream.max_bin_count,
        "peak_rate_hz": round(stream.max_bin_count / bin_seconds, 3) if bin_seconds > 0 else 0.0,
        "file_count": len(stream.files),
        "bins": [int(count) for count in stream.bins],
    }


def _write_streams_csv(result: ScanResult, path: Path) -> None:
    bin_seconds = result.window.duration / result.num_bins
    fields = ["name", "total_frames", "max_bin_count", "peak_rate_hz", "file_count", "bins"]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for stream in result.streams:
            row = _stream_row(stream, bin_seconds)
            row["bins"] = " ".join(str(count) for count in row["bins"])
            writer.writerow(row)


def _write_keywords_csv(report: list[ReportLine], path: Path) -> None:
    fields = ["kind", "stream", "keyword", "run_length", "timestamp", "time_ut", "status", "value", "source_file"]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields, restval="")
        writer.writeheader()
        for line in report:
            writer.writerow(report_line_row(line))
