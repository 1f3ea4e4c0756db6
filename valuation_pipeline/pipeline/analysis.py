"""Derive the cleaned floor, property and scatter tables from the national table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from valuation_pipeline.common.columns import serialize_row
from valuation_pipeline.common.config_loader import ConfigBundle
from valuation_pipeline.common.errors import DataQualityError
from valuation_pipeline.common.fs import write_csv, write_json
from valuation_pipeline.common.logging import get_logger, log_event, log_warning
from valuation_pipeline.fetch.runner import national_table_path
from valuation_pipeline.pipeline.aggregate import PROPERTY_HEADERS, aggregate_properties
from valuation_pipeline.pipeline.filters import exclude_area_outliers, exclude_category
from valuation_pipeline.pipeline.unify import read_national_table

PROPERTIES_CHECKPOINT = "properties_aggregate.csv"


@dataclass(frozen=True)
class AnalysisTables:
    floors: list[dict]
    properties: list[dict]
    scatter: list[dict]
    conflicts: list[dict] = field(default_factory=list)
    stats: dict = field(default_factory=dict)


def _absolute_area(row: dict) -> dict:
    area = row.get("area")
    if area is None or area >= 0:
        return row
    fixed = dict(row)
    fixed["area"] = abs(area)
    return fixed


def build_analysis_tables(national_rows: list[dict], settings: dict) -> AnalysisTables:
    redacted = settings["filters"]["redacted_category"]
    max_total_area = float(settings["filters"]["max_total_area"])

    aggregates, conflicts = aggregate_properties(national_rows)
    floors = [_absolute_area(row) for row in exclude_category(national_rows, redacted)]
    properties = exclude_category(aggregates, redacted)
    scatter, outliers = exclude_area_outliers(properties, max_total_area)

    stats = {
        "floor_rows": len(national_rows),
        "floor_rows_kept": len(floors),
        "properties": len(aggregates),
        "properties_kept": len(properties),
        "redacted_category": redacted,
        "redacted_floor_rows": len(national_rows) - len(floors),
        "redacted_properties": len(aggregates) - len(properties),
        "max_total_area": max_total_area,
        "scatter_rows": len(scatter),
        "area_outliers": len(outliers),
        "area_outlier_property_numbers": [row.get("property_number") for row in outliers if row.get("total_area") is not None],
        "conflicting_properties": len(conflicts),
    }
    return AnalysisTables(
        floors=floors,
        properties=properties,
        scatter=scatter,
        conflicts=conflicts,
        stats=stats,
    )


def load_analysis_tables(bundle: ConfigBundle, data_dir: Path) -> AnalysisTables:
    national_rows = read_national_table(national_table_path(bundle, data_dir), bundle.columns)
    return build_analysis_tables(national_rows, bundle.settings)


def run_aggregate(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    *,
    logger: logging.Logger | None = None,
) -> dict:
    logger = logger or get_logger("aggregate")
    tables = load_analysis_tables(bundle, data_dir)

    if tables.conflicts:
        message = f"{len(tables.conflicts)} property number(s) have inconsistent descriptive fields"
        if bundle.settings["aggregation"]["on_conflict"] == "error":
            raise DataQualityError(message)
        log_warning(logger, message, run_id=run_id, stage="aggregate", event="PROPERTY_CONFLICT")

    out_path = data_dir / "intermediate" / PROPERTIES_CHECKPOINT
    write_csv(out_path, PROPERTY_HEADERS, (serialize_row(row, PROPERTY_HEADERS) for row in tables.properties))

    payload = {
        "run_id": run_id,
        "properties_table": str(out_path),
        "counts": tables.stats,
        "conflicts": tables.conflicts[:200],
    }
    write_json(data_dir / "out" / "reports" / "aggregate_report.json", payload)
    log_event(
        logger,
        "property aggregation complete",
        run_id=run_id,
        stage="aggregate",
        event="AGGREGATE_END",
        status="ok",
        rows_in=tables.stats["floor_rows"],
        rows_out=tables.stats["properties_kept"],
    )
    return payload
