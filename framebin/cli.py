from __future__ import annotations

import json
import logging
from pathlib import Path
from time import perf_counter
from typing import Callable, TypeVar

import typer

from framebin.config import Settings, load_settings
from framebin.ingest.time_window import build_window, parse_time_arg
from framebin.keywords.tracker import KeywordChangeTracker, parse_keyword_filter
from framebin.logging_config import configure_logging
from framebin.models import CacheMode
from framebin.pipeline_scan import (
    ScanContext,
    bin_and_track,
    build_summary_cache,
    discover_and_cache,
    finalize_scan,
    validate_root,
)
from framebin.report.exporter import build_scan_payload, export_scan_outputs

app = typer.Typer(help="Telemetry frame density summaries and keyword change reports.")
config_app = typer.Typer(help="Configuration commands.")
cache_app = typer.Typer(help="Frame summary cache commands.")

app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_OPTION_HELP = "Path to YAML configuration file."


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path | None, verbose: bool = False) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging, verbose=verbose)
    logger.debug("Loaded runtime settings from %s", config_path or "defaults")
    return settings


def _settings_or_exit(config_path: Path | None, verbose: bool = False) -> Settings:
    try:
        return _bootstrap(config_path, verbose=verbose)
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@config_app.command("show")
def show_config(
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="FRAMEBIN_CONFIG",
        help=CONFIG_OPTION_HELP,
    )
) -> None:
    """Print resolved runtime configuration."""

    settings = _settings_or_exit(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@cache_app.command("show")
def show_cache_entry(
    frame_path: Path = typer.Argument(..., help="Frame data file to summarize."),
    cache_mode: CacheMode | None = typer.Option(None, help="Cache write destination."),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="FRAMEBIN_CONFIG",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Look up (or build and store) the timestamp summary of one frame file."""

    settings = _settings_or_exit(config_path)
    cache = build_summary_cache(settings, mode=cache_mode)
    summary = cache.get_summary(frame_path)
    typer.echo(
        json.dumps(
            {
                "frame_path": str(frame_path),
                "is_constant_cadence": summary.is_constant_cadence,
                "count": summary.count,
                "start": summary.start,
                "end": summary.end,
                "cadence_seconds": summary.cadence if summary.count > 1 else None,
                "cache_hit": cache.counters.found > 0,
                "cache_created": cache.counters.created > 0,
            },
            indent=2,
        )
    )


@app.command("scan")
def scan(
    root: Path = typer.Argument(..., help="Data root holding YYYYMMDD/<stream>/ directories."),
    tstart: str = typer.Argument(..., help="Window start: epoch seconds or UTYYYYMMDDTHH[:MM[:SS]]."),
    tend: str = typer.Argument(..., help="Window end: epoch seconds or UTYYYYMMDDTHH[:MM[:SS]]."),
    keyword: str | None = typer.Option(
        None,
        "--keyword",
        "-k",
        help="Header keyword regex to track, optionally scoped as STREAM:PATTERN.",
    ),
    cache_mode: CacheMode | None = typer.Option(None, help="Cache write destination."),
    width: int | None = typer.Option(None, help="Number of timeline bins (defaults to scan.timeline_width)."),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Also write JSON/CSV exports here."),
    basename: str = typer.Option("frame_density", help="Base filename for exported artifacts."),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="FRAMEBIN_CONFIG",
        help=CONFIG_OPTION_HELP,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Bin frame timestamps per stream over a time window and report keyword changes."""

    settings = _settings_or_exit(config_path, verbose=verbose)
    total_steps = 2

    try:
        window = build_window(parse_time_arg(tstart), parse_time_arg(tend))
        keyword_filter = parse_keyword_filter(keyword) if keyword else None
        root_path = validate_root(root)
        num_bins = width if width is not None else settings.scan.timeline_width
        if num_bins < 1:
            raise ValueError(f"Timeline width must be at least 1 bin, got {num_bins}.")

        context = ScanContext(
            window=window,
            num_bins=num_bins,
            cache=build_summary_cache(settings, mode=cache_mode),
            tracker=KeywordChangeTracker(keyword_filter, header_suffix=settings.scan.header_suffix)
            if keyword_filter
            else None,
        )

        file_count = _run_with_progress(
            1,
            total_steps,
            "Discover frame files and load summaries",
            lambda: discover_and_cache(context, root_path, frame_suffix=settings.scan.frame_suffix),
        )
        logger.info("Discovered %d frame files in %d streams", file_count, len(context.streams))

        _run_with_progress(2, total_steps, "Bin frames and scan headers", lambda: bin_and_track(context))
        result = finalize_scan(context)

        exported = export_scan_outputs(result, output_dir, basename=basename) if output_dir else {}
    except (RuntimeError, ValueError) as exc:
        logger.error("Scan failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    payload = build_scan_payload(result)
    if exported:
        payload["outputs"] = {key: str(path) for key, path in exported.items()}
    typer.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    app()
