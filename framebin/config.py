from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from framebin.models import CacheMode

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "FRAMEBIN_"


class ScanSettings(BaseModel):
    timeline_width: int = Field(default=60, ge=1)
    frame_suffix: str = ".txt"
    header_suffix: str = ".fits.header"
    comment_marker: str = "#"
    timestamp_column: int = Field(default=4, ge=0)


class CacheSettings(BaseModel):
    mode: CacheMode = CacheMode.LOCAL
    dirname: str = "cache"
    cadence_tolerance: float = Field(default=0.05, ge=0.0)


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    scan: ScanSettings = Field(default_factory=ScanSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides.

    The default config file is optional; a path given explicitly must exist.
    """

    explicit = config_path or os.getenv(f"{ENV_PREFIX}CONFIG")
    resolved_path = Path(explicit or DEFAULT_CONFIG_PATH)
    if resolved_path.exists() or explicit:
        try:
            raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in config file {resolved_path}: {exc}") from exc
    else:
        raw_config = {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        try:
            _apply_override(data, path, raw_value)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {key}: {raw_value!r}") from exc

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    return raw_value
