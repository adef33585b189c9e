from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

import framebin.cli as cli
from framebin.config import Settings

DAY = 1704067200.0  # 2024-01-01T00:00:00Z


def _write_frames(stream_dir: Path, time_of_day: str, timestamps: list[float]) -> Path:
    stream_dir.mkdir(parents=True, exist_ok=True)
    path = stream_dir / f"{stream_dir.name}_{time_of_day}.txt"
    path.write_text("".join(f"{idx} 0 0 0 {ts!r}\n" for idx, ts in enumerate(timestamps)), encoding="utf-8")
    return path


def _patch_settings(monkeypatch) -> None:
    monkeypatch.setattr(cli, "_bootstrap", lambda *args, **kwargs: Settings())


def test_scan_prints_progress_and_writes_exports(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _patch_settings(monkeypatch)
    root = tmp_path / "data"
    _write_frames(root / "20240101" / "cam", "00:00:00.000000", [DAY + 10.0 + k for k in range(10)])

    result = CliRunner().invoke(
        cli.app,
        ["scan", str(root), str(DAY), str(DAY + 400), "--width", "4", "--output-dir", str(tmp_path / "out")],
    )

    assert result.exit_code == 0, result.output
    assert "[1/2] Discover frame files and load summaries..." in result.output
    assert "[2/2] Bin frames and scan headers done" in result.output
    assert '"status": "ok"' in result.output

    payload = json.loads((tmp_path / "out" / "frame_density.json").read_text(encoding="utf-8"))
    assert payload["streams"][0]["bins"] == [10, 0, 0, 0]
    assert payload["cache"]["created"] == 1
    assert (tmp_path / "cache" / "20240101" / "cam" / "cam_00:00:00.000000.txt.summary").exists()


def test_scan_accepts_ut_window_and_keyword_filter(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _patch_settings(monkeypatch)
    root = tmp_path / "data"
    frame = _write_frames(root / "20240101" / "cam", "00:00:00.000000", [DAY + 1.0, DAY + 2.0])
    frame.with_name("cam_00:00:00.000000.fits.header").write_text("EXPTIME = 0.5 / s\n", encoding="utf-8")

    result = CliRunner().invoke(
        cli.app,
        ["scan", str(root), "UT20240101T00", "UT20240101T01", "-k", "cam:EXPTIME", "-o", str(tmp_path / "out")],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads((tmp_path / "out" / "frame_density.json").read_text(encoding="utf-8"))
    statuses = [row.get("status") for row in payload["keyword_report"] if row["kind"] == "value"]
    assert statuses == ["INITIAL", "END"]
    assert (tmp_path / "out" / "frame_density_keywords.csv").exists()


def test_scan_rejects_inverted_window_without_traceback(tmp_path: Path, monkeypatch) -> None:
    _patch_settings(monkeypatch)
    (tmp_path / "data").mkdir()

    result = CliRunner().invoke(cli.app, ["scan", str(tmp_path / "data"), str(DAY + 10), str(DAY)])

    assert result.exit_code == 1
    assert "Error: Start time must be less than end time" in result.output
    assert "Traceback" not in result.output
    assert "[1/2]" not in result.output


def test_scan_rejects_invalid_keyword_pattern(tmp_path: Path, monkeypatch) -> None:
    _patch_settings(monkeypatch)
    (tmp_path / "data").mkdir()

    result = CliRunner().invoke(cli.app, ["scan", str(tmp_path / "data"), str(DAY), str(DAY + 10), "-k", "EXP("])

    assert result.exit_code == 1
    assert "Error: Invalid keyword pattern" in result.output


def test_scan_rejects_unparsable_time_and_missing_root(tmp_path: Path, monkeypatch) -> None:
    _patch_settings(monkeypatch)

    bad_time = CliRunner().invoke(cli.app, ["scan", str(tmp_path), "soon", str(DAY)])
    missing_root = CliRunner().invoke(cli.app, ["scan", str(tmp_path / "absent"), str(DAY), str(DAY + 10)])

    assert bad_time.exit_code == 1
    assert "Error: Unparsable time" in bad_time.output
    assert missing_root.exit_code == 1
    assert "Error: Data root directory not found" in missing_root.output


def test_cache_show_reports_summary(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _patch_settings(monkeypatch)
    frame = _write_frames(tmp_path / "data" / "20240101" / "cam", "00:00:00.000000", [DAY + k * 0.5 for k in range(8)])

    result = CliRunner().invoke(cli.app, ["cache", "show", str(frame), "--cache-mode", "export"])

    assert result.exit_code == 0, result.output
    assert '"is_constant_cadence": true' in result.output
    assert '"count": 8' in result.output
    assert (frame.parent / "cache" / f"{frame.name}.summary").exists()


def test_config_show_prints_resolved_settings(monkeypatch) -> None:
    _patch_settings(monkeypatch)

    result = CliRunner().invoke(cli.app, ["config", "show"])

    assert result.exit_code == 0
    assert '"timeline_width": 60' in result.output


def test_scan_reports_bad_environment_override(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FRAMEBIN_CONFIG", raising=False)
    monkeypatch.setenv("FRAMEBIN_SCAN__TIMELINE_WIDTH", "wide")
    (tmp_path / "data").mkdir()

    result = CliRunner().invoke(cli.app, ["scan", str(tmp_path / "data"), str(DAY), str(DAY + 10)])

    assert result.exit_code == 1
    assert "Error: Invalid configuration" in result.output
    assert "FRAMEBIN_SCAN__TIMELINE_WIDTH" in result.output
    assert "[1/2]" not in result.output


def test_config_commands_report_missing_or_invalid_config_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("FRAMEBIN_CONFIG", raising=False)
    invalid = tmp_path / "framebin.yaml"
    invalid.write_text("cache:\n  mode: remote\n", encoding="utf-8")
    frame = _write_frames(tmp_path / "data" / "20240101" / "cam", "00:00:00.000000", [DAY, DAY + 1.0])

    missing = CliRunner().invoke(cli.app, ["config", "show", "--config", str(tmp_path / "absent.yaml")])
    rejected = CliRunner().invoke(cli.app, ["cache", "show", str(frame), "--config", str(invalid)])

    assert missing.exit_code == 1
    assert "Error: Invalid configuration" in missing.output
    assert rejected.exit_code == 1
    assert "Error: Invalid configuration" in rejected.output


def test_scan_rejects_unknown_cache_mode(tmp_path: Path, monkeypatch) -> None:
    _patch_settings(monkeypatch)
    (tmp_path / "data").mkdir()

    result = CliRunner().invoke(
        cli.app,
        ["scan", str(tmp_path / "data"), str(DAY), str(DAY + 10), "--cache-mode", "remote"],
    )

    assert result.exit_code == 2
    assert "[1/2]" not in result.output
