"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from valuation_pipeline.common.fs import read_json, write_json

STAGE_REPORTS = {
    "fetch": "fetch_report.json",
    "aggregate": "aggregate_report.json",
    "export": "export_report.json",
}


def write_run_summary(data_dir: Path, run_id: str, stage_status: dict[str, str]) -> Path:
    reports_dir = data_dir / "out" / "reports"
    reports: dict[str, dict] = {}
    for stage, filename in STAGE_REPORTS.items():
        path = reports_dir / filename
        reports[stage] = read_json(path) if path.exists() else {}

    fetch = reports["fetch"]
    aggregate_counts = reports["aggregate"].get("counts", {})
    geometry = reports["export"].get("geometry", {})

    totals = {
        "authorities_requested": int(fetch.get("authorities_requested", 0)),
        "authorities_failed": int(fetch.get("authorities_failed", 0)),
        "floor_rows": int(fetch.get("row_count", 0)),
        "rejected_rows": int(fetch.get("coercion", {}).get("rejected_rows", 0)),
        "properties": int(aggregate_counts.get("properties_kept", 0)),
        "conflicting_properties": int(aggregate_counts.get("conflicting_properties", 0)),
        "area_outliers": int(aggregate_counts.get("area_outliers", 0)),
        "points": int(geometry.get("points", 0)),
        "transform_failures": int(geometry.get("transform_failures", 0)),
    }
    failed_authorities = [row["authority"] for row in fetch.get("results", []) if not row.get("ok")]

    warnings: list[str] = []
    if totals["authorities_failed"]:
        warnings.append("AUTHORITY_FETCH_FAILED")
    if totals["rejected_rows"]:
        warnings.append("FLOOR_ROWS_REJECTED")
    if totals["conflicting_properties"]:
        warnings.append("PROPERTY_DESCRIPTIVE_CONFLICT")
    if totals["transform_failures"]:
        warnings.append("COORDINATE_TRANSFORM_FAILED")

    status = "success"
    if any(value == "error" for value in stage_status.values()):
        status = "error"
    elif warnings:
        status = "partial"

    payload = {
        "run_id": run_id,
        "status": status,
        "stages": stage_status,
        "totals": totals,
        "failed_authorities": failed_authorities,
        "warnings": warnings,
    }
    summary_path = reports_dir / "run_summary.json"
    write_json(summary_path, payload)
    return summary_path
