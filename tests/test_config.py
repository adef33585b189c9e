from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from framebin.config import load_settings
from framebin.models import CacheMode


def test_load_settings_reads_yaml_sections(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("FRAMEBIN_CONFIG", raising=False)
    config = tmp_path / "framebin.yaml"
    config.write_text(
        "scan:\n  timeline_width: 120\ncache:\n  mode: export\n  cadence_tolerance: 0.02\n",
        encoding="utf-8",
    )

    settings = load_settings(config)

    assert settings.scan.timeline_width == 120
    assert settings.scan.header_suffix == ".fits.header"
    assert settings.cache.mode == "export"
    assert settings.cache.cadence_tolerance == pytest.approx(0.02)


def test_environment_overrides_are_coerced(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "framebin.yaml"
    config.write_text("{}\n", encoding="utf-8")
    monkeypatch.setenv("FRAMEBIN_SCAN__TIMELINE_WIDTH", "33")
    monkeypatch.setenv("FRAMEBIN_CACHE__CADENCE_TOLERANCE", "0.1")
    monkeypatch.setenv("FRAMEBIN_LOGGING__LEVEL", "DEBUG")
    monkeypatch.setenv("FRAMEBIN_UNKNOWN__KEY", "ignored")

    settings = load_settings(config)

    assert settings.scan.timeline_width == 33
    assert settings.cache.cadence_tolerance == pytest.approx(0.1)
    assert settings.logging.level == "DEBUG"


def test_missing_default_config_falls_back_to_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FRAMEBIN_CONFIG", raising=False)

    settings = load_settings()

    assert settings.cache.mode == "local"
    assert settings.scan.timeline_width == 60


def test_explicit_missing_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yaml")


def test_invalid_cache_mode_in_yaml_is_rejected(tmp_path: Path) -> None:
    config = tmp_path / "framebin.yaml"
    config.write_text("cache:\n  mode: remote\n", encoding="utf-8")

    with pytest.raises(ValidationError):
        load_settings(config)


def test_non_numeric_environment_override_names_the_variable(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "framebin.yaml"
    config.write_text("{}\n", encoding="utf-8")
    monkeypatch.setenv("FRAMEBIN_SCAN__TIMELINE_WIDTH", "wide")

    with pytest.raises(ValueError, match="FRAMEBIN_SCAN__TIMELINE_WIDTH"):
        load_settings(config)


def test_cache_mode_override_is_validated_into_enum(tmp_path: Path, monkeypatch) -> None:
    config = tmp_path / "framebin.yaml"
    config.write_text("{}\n", encoding="utf-8")
    monkeypatch.setenv("FRAMEBIN_CACHE__MODE", "export")

    settings = load_settings(config)

    assert settings.cache.mode is CacheMode.EXPORT


def test_broken_yaml_is_reported_as_value_error(tmp_path: Path) -> None:
    config = tmp_path / "framebin.yaml"
    config.write_text("scan: [unterminated\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML"):
        load_settings(config)
