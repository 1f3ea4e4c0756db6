"""Floors, properties and point geometry exports."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from valuation_pipeline.common.columns import serialize_row
from valuation_pipeline.common.config_loader import ConfigBundle
from valuation_pipeline.common.errors import ContractError
from valuation_pipeline.common.fs import write_csv, write_json
from valuation_pipeline.common.logging import get_logger, log_event, log_warning
from valuation_pipeline.pipeline.aggregate import COORDINATE_FIELDS, FLOOR_FIELDS, PROPERTY_HEADERS
from valuation_pipeline.pipeline.analysis import AnalysisTables, load_analysis_tables
from valuation_pipeline.pipeline.coordinates import build_points, build_transformer, points_to_feature_collection

# Descriptive and coordinate columns live in the properties and geometry exports only.
FLOORS_HEADERS = list(FLOOR_FIELDS)
PROPERTIES_HEADERS = [field for field in PROPERTY_HEADERS if field not in COORDINATE_FIELDS]


def export_paths(bundle: ConfigBundle, data_dir: Path) -> dict[str, Path]:
    output = bundle.settings["output"]
    out_dir = data_dir / "out"
    return {
        "floors": out_dir / output["floors_filename"],
        "properties": out_dir / output["properties_filename"],
        "geometry": out_dir / output["geometry_filename"],
    }


def _verify_header(path: Path, expected_header: list[str]) -> None:
    with path.open("r", encoding="utf-8", newline="") as f:
        actual = next(csv.reader(f))
    if actual != expected_header:
        raise ContractError(f"{path.name} header mismatch: {actual} != {expected_header}")


def write_floors(path: Path, floors: list[dict]) -> Path:
    write_csv(path, FLOORS_HEADERS, (serialize_row(row, FLOORS_HEADERS) for row in floors))
    _verify_header(path, FLOORS_HEADERS)
    return path


def write_properties(path: Path, properties: list[dict]) -> Path:
    write_csv(path, PROPERTIES_HEADERS, (serialize_row(row, PROPERTIES_HEADERS) for row in properties))
    _verify_header(path, PROPERTIES_HEADERS)
    return path


def write_geometry(path: Path, properties: list[dict], crs_config: dict) -> dict:
    transformer = build_transformer(int(crs_config["source_epsg"]), int(crs_config["target_epsg"]))
    points, stats = build_points(properties, transformer, bbox=crs_config.get("bbox_wgs84"))
    write_json(path, points_to_feature_collection(points))
    return stats


def write_exports(bundle: ConfigBundle, data_dir: Path, tables: AnalysisTables) -> dict:
    paths = export_paths(bundle, data_dir)
    write_floors(paths["floors"], tables.floors)
    write_properties(paths["properties"], tables.properties)
    geometry_stats = write_geometry(paths["geometry"], tables.properties, bundle.settings["crs"])
    return {
        "paths": {name: str(path) for name, path in paths.items()},
        "floors_rows": len(tables.floors),
        "properties_rows": len(tables.properties),
        "geometry": geometry_stats,
    }


def run_export(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    *,
    logger: logging.Logger | None = None,
) -> dict:
    logger = logger or get_logger("export")
    tables = load_analysis_tables(bundle, data_dir)
    summary = write_exports(bundle, data_dir, tables)

    failures = summary["geometry"]["transform_failures"]
    if failures:
        log_warning(
            logger,
            f"{failures} point(s) could not be reprojected and were left out of the geometry export",
            run_id=run_id,
            stage="export",
            event="GEOMETRY_SKIP",
        )

    payload = {"run_id": run_id, **summary}
    write_json(data_dir / "out" / "reports" / "export_report.json", payload)
    log_event(
        logger,
        "exports written",
        run_id=run_id,
        stage="export",
        event="EXPORT_END",
        status="ok",
        rows_in=len(tables.properties),
        rows_out=summary["geometry"]["points"],
    )
    return payload
