"""Local authority reference list loading and query encoding."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping
from urllib.parse import quote

from valuation_pipeline.common.errors import ConfigError
from valuation_pipeline.common.fs import read_csv


def normalise_authority(raw: str | None, corrections: Mapping[str, str] | None = None) -> str | None:
    if raw is None:
        return None
    cleaned = " ".join(raw.split())
    if not cleaned:
        return None
    if corrections:
        # Reference names and API names differ only in spelling, never in case.
        by_upper = {str(k).upper(): str(v) for k, v in corrections.items()}
        cleaned = by_upper.get(cleaned.upper(), cleaned)
    return cleaned


def encode_authority(name: str) -> str:
    return quote(name, safe="")


def load_authorities(path: Path, *, column: str, corrections: Mapping[str, str] | None = None) -> list[str]:
    if not path.exists():
        raise ConfigError(f"Missing local authority list: {path}")
    headers, rows = read_csv(path)
    if column not in headers:
        raise ConfigError(f"Local authority list {path} has no column {column!r}")

    names: list[str] = []
    seen: set[str] = set()
    for row in rows:
        name = normalise_authority(row.get(column), corrections)
        if name is None or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return names
