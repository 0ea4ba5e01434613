from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import load_json


@dataclass(frozen=True)
class EngineConfig:
    raster: dict[str, Any] = field(default_factory=dict)
    slice: dict[str, Any] = field(default_factory=dict)
    segment: dict[str, Any] = field(default_factory=dict)
    html: dict[str, Any] = field(default_factory=dict)
    limits: dict[str, Any] = field(default_factory=dict)


def default_config() -> EngineConfig:
    # Every knob has an in-code default; an empty config is valid.
    return EngineConfig()


def load_config(config_path: str | Path | None) -> EngineConfig:
    if config_path is None or not Path(config_path).exists():
        return default_config()
    data = load_json(config_path)
    return EngineConfig(
        raster=data.get("raster", {}),
        slice=data.get("slice", {}),
        segment=data.get("segment", {}),
        html=data.get("html", {}),
        limits=data.get("limits", {}),
    )
