"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from geo_correlation.common.errors import ConfigError
from geo_correlation.common.fs import read_yaml
from geo_correlation.common.schema import validate_correlation_config


@dataclass(frozen=True)
class CorrelationConfig:
    dataset_store: dict
    boundaries: dict
    index: dict
    relationships: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> Any:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_config(
    path: Path,
    *,
    overlay_path: Path | None = None,
    allow_unknown: bool = False,
) -> CorrelationConfig:
    cfg = validate_correlation_config(_load_yaml_with_overlay(path, overlay_path), allow_unknown=allow_unknown)
    return CorrelationConfig(
        dataset_store=cfg["dataset_store"],
        boundaries=cfg["boundaries"],
        index=cfg["index"],
        relationships=cfg["relationships"],
    )
