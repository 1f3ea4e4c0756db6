"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from valuation_pipeline.common.columns import ColumnSpec, build_column_specs
from valuation_pipeline.common.fs import read_yaml
from valuation_pipeline.common.schema import validate_columns_config, validate_pipeline_config


@dataclass(frozen=True)
class ConfigBundle:
    config_dir: Path
    settings: dict
    columns: list[ColumnSpec]

    @property
    def authorities_path(self) -> Path:
        return self.config_dir / self.settings["authorities"]["filename"]


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


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    settings = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / "pipeline.yml", _overlay("pipeline.yml")),
        allow_unknown=allow_unknown,
    )
    columns = validate_columns_config(
        _load_yaml_with_overlay(config_dir / "columns.yml", _overlay("columns.yml"))
    )
    return ConfigBundle(config_dir=config_dir, settings=settings, columns=build_column_specs(columns))
