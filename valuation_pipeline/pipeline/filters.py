"""Row filters applied after aggregation."""

from __future__ import annotations

from typing import Iterable


def _normalise_category(value: object) -> str:
    return str(value).strip().upper() if value is not None else ""


def exclude_category(rows: Iterable[dict], category: str) -> list[dict]:
    target = _normalise_category(category)
    return [row for row in rows if _normalise_category(row.get("category")) != target]


def is_area_outlier(row: dict, max_total_area: float) -> bool:
    total_area = row.get("total_area")
    return total_area is None or float(total_area) > max_total_area


def exclude_area_outliers(aggregates: Iterable[dict], max_total_area: float) -> tuple[list[dict], list[dict]]:
    """Split aggregates into ``(kept, outliers)``.

    The cutoff came from eyeballing the total area distribution; it trims the
    handful of extreme sites that flatten the area/valuation scatter and is not
    a statement about the underlying records.
    """
    kept: list[dict] = []
    outliers: list[dict] = []
    for row in aggregates:
        (outliers if is_area_outlier(row, max_total_area) else kept).append(row)
    return kept, outliers
