"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from valuation_pipeline.common.errors import ConfigError

COLUMN_TYPES = {"string", "integer", "float"}
CONFLICT_POLICIES = {"report", "error"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"api", "fetch", "authorities", "filters", "aggregation", "crs", "output"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required, "pipeline config", allow_unknown)

    _assert_required_keys(cfg["api"], {"base_url", "fields", "format", "download", "categories"}, "api")
    if not isinstance(cfg["api"]["categories"], list) or not cfg["api"]["categories"]:
        raise ConfigError("api.categories must be a non-empty list")

    _assert_required_keys(cfg["fetch"], {"max_workers", "rate_per_sec", "timeout", "retry"}, "fetch")
    _assert_required_keys(cfg["fetch"]["timeout"], {"connect", "read"}, "fetch.timeout")
    _assert_required_keys(cfg["fetch"]["retry"], {"max_attempts"}, "fetch.retry")
    if int(cfg["fetch"]["max_workers"]) < 1:
        raise ConfigError("fetch.max_workers must be at least 1")

    _assert_required_keys(cfg["authorities"], {"filename", "column", "corrections"}, "authorities")
    _assert_required_keys(cfg["filters"], {"redacted_category", "max_total_area"}, "filters")
    if float(cfg["filters"]["max_total_area"]) <= 0:
        raise ConfigError("filters.max_total_area must be positive")

    _assert_required_keys(cfg["aggregation"], {"on_conflict"}, "aggregation")
    if cfg["aggregation"]["on_conflict"] not in CONFLICT_POLICIES:
        raise ConfigError(f"aggregation.on_conflict must be one of {sorted(CONFLICT_POLICIES)}")

    _assert_required_keys(cfg["crs"], {"source_epsg", "target_epsg", "bbox_wgs84"}, "crs")
    _assert_required_keys(
        cfg["crs"]["bbox_wgs84"],
        {"min_lat", "max_lat", "min_lon", "max_lon"},
        "crs.bbox_wgs84",
    )
    _assert_required_keys(
        cfg["output"],
        {"national_filename", "floors_filename", "properties_filename", "geometry_filename", "charts_dir"},
        "output",
    )

    return cfg


def validate_columns_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"version", "columns"}, "columns")
    if not isinstance(cfg["columns"], list) or not cfg["columns"]:
        raise ConfigError("columns.columns must be a non-empty list")

    names: list[str] = []
    sources: list[str] = []
    for idx, col in enumerate(cfg["columns"]):
        _assert_required_keys(col, {"name", "source", "type", "nullable"}, f"columns[{idx}]")
        if col["type"] not in COLUMN_TYPES:
            raise ConfigError(f"columns[{idx}].type must be one of {sorted(COLUMN_TYPES)}")
        names.append(col["name"])
        sources.append(col["source"])

    for label, values in (("names", names), ("sources", sources)):
        dupes = {value for value in values if values.count(value) > 1}
        if dupes:
            raise ConfigError(f"Duplicate column {label}: {', '.join(sorted(dupes))}")

    return cfg
