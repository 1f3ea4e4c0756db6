"""Combine per-authority extracts into the national table."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from valuation_pipeline.common.columns import (
    CoercionStats,
    ColumnSpec,
    coerce_rows,
    column_names,
    serialize_row,
)
from valuation_pipeline.common.errors import StageError
from valuation_pipeline.common.fs import read_csv, write_csv
from valuation_pipeline.common.logging import get_logger, log_warning
from valuation_pipeline.common.models import FetchResult

SCHEMA_MISSING = "SCHEMA_MISSING"


def require_columns(
    results: Iterable[FetchResult],
    specs: list[ColumnSpec],
    *,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> list[FetchResult]:
    """Turn extracts lacking a non-nullable column into failed results.

    Every row of such an extract would be rejected, so the authority is
    reported as failed instead of silently contributing nothing.
    """
    logger = logger or get_logger("unify")
    required = [spec.source for spec in specs if not spec.nullable]
    checked: list[FetchResult] = []
    for result in results:
        missing = [column for column in required if column not in result.headers] if result.ok else []
        if missing:
            message = f"extract lacks required columns: {', '.join(missing)}"
            log_warning(
                logger,
                message,
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="SCHEMA_MISSING",
                status="error",
                error_code=SCHEMA_MISSING,
            )
            result = replace(result, rows=None, error_code=SCHEMA_MISSING, error_message=message)
        checked.append(result)
    return checked


def unify_tables(
    results: Iterable[FetchResult],
    specs: list[ColumnSpec],
    *,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
) -> tuple[list[dict], dict]:
    logger = logger or get_logger("unify")
    rows: list[dict] = []
    totals = CoercionStats()
    per_authority: dict[str, dict] = {}
    skipped: list[str] = []

    for result in require_columns(results, specs, logger=logger, run_id=run_id):
        if not result.ok:
            skipped.append(result.authority)
            continue
        coerced, stats = coerce_rows(result.rows or [], result.headers, specs, key="source")
        for column, count in sorted(stats.invalid_values.items()):
            log_warning(
                logger,
                f"{count} value(s) in {column} could not be coerced and were nulled",
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="COERCE_WARN",
            )
        if stats.rejected_rows:
            log_warning(
                logger,
                f"{stats.rejected_rows} row(s) rejected for missing required values",
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="ROW_REJECT",
                rows_in=stats.rows_in,
                rows_out=stats.rows_out,
            )
        if stats.missing_columns:
            log_warning(
                logger,
                f"declared columns absent and filled with nulls: {', '.join(sorted(stats.missing_columns))}",
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="SCHEMA_MISSING",
            )
        if stats.unknown_columns:
            log_warning(
                logger,
                f"dropping undeclared columns: {', '.join(sorted(stats.unknown_columns))}",
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="SCHEMA_DRIFT",
            )
        rows.extend(coerced)
        totals.merge(stats)
        per_authority[result.authority] = stats.to_dict()

    return rows, {
        "skipped_authorities": skipped,
        "coercion": totals.to_dict(),
        "by_authority": per_authority,
    }


def write_national_table(path: Path, rows: list[dict], specs: list[ColumnSpec]) -> Path:
    headers = column_names(specs)
    write_csv(path, headers, (serialize_row(row, headers) for row in rows))
    return path


def read_national_table(path: Path, specs: list[ColumnSpec]) -> list[dict]:
    if not path.exists():
        raise StageError(f"Missing national table: {path}")
    headers, raw_rows = read_csv(path)
    rows, stats = coerce_rows(raw_rows, headers, specs, key="name")
    if stats.missing_columns:
        raise StageError(f"National table {path} lacks columns: {', '.join(sorted(stats.missing_columns))}")
    return rows
