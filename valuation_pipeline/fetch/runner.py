"""Fetch stage orchestration: authorities in, national table out."""

from __future__ import annotations

import logging
from pathlib import Path

from valuation_pipeline.common.authorities import load_authorities, normalise_authority
from valuation_pipeline.common.config_loader import ConfigBundle
from valuation_pipeline.common.errors import ConfigError, StageError
from valuation_pipeline.common.fs import write_json
from valuation_pipeline.common.http import HttpClient
from valuation_pipeline.common.logging import get_logger, log_event
from valuation_pipeline.fetch.bulk_fetch import fetch_all
from valuation_pipeline.pipeline.unify import require_columns, unify_tables, write_national_table


def national_table_path(bundle: ConfigBundle, data_dir: Path) -> Path:
    return data_dir / "intermediate" / bundle.settings["output"]["national_filename"]


def run_fetch(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    *,
    only: list[str] | None = None,
    http_client: HttpClient | None = None,
    logger: logging.Logger | None = None,
) -> dict:
    logger = logger or get_logger("fetch")
    settings = bundle.settings
    corrections = settings["authorities"].get("corrections") or {}
    authorities = load_authorities(
        bundle.authorities_path,
        column=settings["authorities"]["column"],
        corrections=corrections,
    )
    if only:
        wanted = {(normalise_authority(name, corrections) or "").upper() for name in only}
        unknown = wanted - {name.upper() for name in authorities}
        if unknown:
            raise ConfigError(f"Unknown local authorities: {', '.join(sorted(unknown))}")
        authorities = [name for name in authorities if name.upper() in wanted]
    log_event(
        logger,
        f"fetching {len(authorities)} authorities",
        run_id=run_id,
        stage="fetch",
        event="FETCH_START",
        status="ok",
        rows_in=len(authorities),
    )

    results = fetch_all(
        authorities,
        settings["api"],
        settings["fetch"],
        http_client=http_client,
        logger=logger,
        run_id=run_id,
    )
    results = require_columns(results, bundle.columns, logger=logger, run_id=run_id)
    succeeded = [result for result in results if result.ok]
    if authorities and not succeeded:
        raise StageError("Every authority fetch failed; national table not written")

    rows, unify_stats = unify_tables(results, bundle.columns, logger=logger, run_id=run_id)
    out_path = write_national_table(national_table_path(bundle, data_dir), rows, bundle.columns)

    payload = {
        "run_id": run_id,
        "authorities_requested": len(authorities),
        "authorities_succeeded": len(succeeded),
        "authorities_failed": len(results) - len(succeeded),
        "row_count": len(rows),
        "national_table": str(out_path),
        "results": [result.summary() for result in results],
        **unify_stats,
    }
    write_json(data_dir / "out" / "reports" / "fetch_report.json", payload)
    log_event(
        logger,
        f"national table written with {len(rows)} rows",
        run_id=run_id,
        stage="fetch",
        event="FETCH_END",
        status="ok" if len(succeeded) == len(results) else "partial",
        rows_out=len(rows),
    )
    return payload
