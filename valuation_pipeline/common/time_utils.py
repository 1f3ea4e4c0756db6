"""UTC-focused helpers for run metadata."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_timestamp_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds")


def generate_run_id() -> str:
    # Sortable by start time, which is all the run_meta directory needs.
    return utc_now().strftime("run-%Y%m%dT%H%M%S%fZ")


def elapsed_ms(started: float, finished: float) -> int:
    return int(round((finished - started) * 1000))
