"""CLI entrypoint for the Irish commercial valuation pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from valuation_pipeline.common.config_loader import ConfigBundle, load_all_configs
from valuation_pipeline.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from valuation_pipeline.common.errors import PipelineError
from valuation_pipeline.common.fs import read_json
from valuation_pipeline.common.logging import build_logger, close_logger, log_event
from valuation_pipeline.common.time_utils import generate_run_id
from valuation_pipeline.fetch.runner import national_table_path, run_fetch
from valuation_pipeline.pipeline.analysis import PROPERTIES_CHECKPOINT, run_aggregate
from valuation_pipeline.pipeline.export import export_paths, run_export
from valuation_pipeline.pipeline.plots import CHART_FILES, charts_dir_for, run_plots
from valuation_pipeline.pipeline.reports import write_run_summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all"])
    parser.add_argument("--authority", action="append", default=None, help="limit fetch to this authority (repeatable)")
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--force", action="store_true", help="rerun stages whose outputs already exist")
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def stage_outputs(stage: str, bundle: ConfigBundle, data_dir: Path) -> list[Path]:
    if stage == "fetch":
        return [national_table_path(bundle, data_dir)]
    if stage == "aggregate":
        return [
            data_dir / "intermediate" / PROPERTIES_CHECKPOINT,
            data_dir / "out" / "reports" / "aggregate_report.json",
        ]
    if stage == "export":
        return list(export_paths(bundle, data_dir).values())
    if stage == "plot":
        charts_dir = charts_dir_for(bundle, data_dir)
        return [charts_dir / name for name in CHART_FILES.values()]
    raise ValueError(f"Unknown stage: {stage}")


def execute_stage(stage: str, bundle: ConfigBundle, data_dir: Path, run_id: str, args, logger: logging.Logger):
    if stage == "fetch":
        run_fetch(bundle, data_dir, run_id, only=args.authority, logger=logger)
    elif stage == "aggregate":
        run_aggregate(bundle, data_dir, run_id, logger=logger)
    elif stage == "export":
        run_export(bundle, data_dir, run_id, logger=logger)
    elif stage == "plot":
        run_plots(bundle, data_dir, run_id, logger=logger)
    else:
        raise ValueError(f"Unknown stage: {stage}")


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
        stages = STAGES if args.command == "all" else (args.command,)
        return _run_stages(stages, bundle, data_dir, run_id, args, logger)
    finally:
        close_logger(logger)


def _run_stages(stages, bundle: ConfigBundle, data_dir: Path, run_id: str, args, logger: logging.Logger) -> int:
    stage_status: dict[str, str] = {}
    exit_code = EXIT_SUCCESS
    upstream_ran = False

    for stage in stages:
        outputs = stage_outputs(stage, bundle, data_dir)
        # Fresh upstream outputs invalidate every downstream checkpoint.
        if not (args.force or upstream_ran) and all(path.exists() for path in outputs):
            stage_status[stage] = "skipped"
            log_event(logger, "stage outputs present, skipping", run_id=run_id, stage=stage, event="STAGE_SKIP", status="ok")
            continue

        log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
        try:
            execute_stage(stage, bundle, data_dir, run_id, args, logger)
        except PipelineError as exc:
            stage_status[stage] = "error"
            log_event(
                logger,
                f"stage failed: {exc}",
                run_id=run_id,
                stage=stage,
                event="STAGE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            if exc.error_code == "CONTRACT_ERROR" or args.strict:
                exit_code = EXIT_HARD_FAIL
            else:
                exit_code = EXIT_PARTIAL
            # Later stages read this stage's outputs.
            break
        except Exception:
            stage_status[stage] = "error"
            logger.exception(
                "unexpected stage failure",
                extra={"run_id": run_id, "stage": stage, "event": "STAGE_FAIL", "status": "error", "error_code": "UNEXPECTED_ERROR"},
            )
            exit_code = EXIT_HARD_FAIL
            break
        stage_status[stage] = "ok"
        upstream_ran = True
        log_event(logger, "stage end", run_id=run_id, stage=stage, event="STAGE_END", status="ok")

    summary_path = write_run_summary(data_dir, run_id=run_id, stage_status=stage_status)
    log_event(logger, f"run summary written to {summary_path}", run_id=run_id, event="RUN_END", status="ok")
    if exit_code == EXIT_SUCCESS and read_json(summary_path).get("status") == "partial":
        return EXIT_PARTIAL
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
