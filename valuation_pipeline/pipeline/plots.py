"""Exploratory charts over the cleaned property table."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402

from valuation_pipeline.common.config_loader import ConfigBundle  # noqa: E402
from valuation_pipeline.common.fs import ensure_dir  # noqa: E402
from valuation_pipeline.common.logging import get_logger, log_event  # noqa: E402
from valuation_pipeline.pipeline.analysis import AnalysisTables, load_analysis_tables  # noqa: E402

CHART_FILES = {
    "categories": "01_properties_by_category.png",
    "area_vs_valuation": "02_area_vs_valuation.png",
    "area_distribution": "03_total_area_distribution.png",
}


def _save(fig, path: Path) -> Path:
    fig.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return path


def plot_category_counts(properties: list[dict], path: Path) -> Path:
    counts = Counter(row.get("category") or "UNKNOWN" for row in properties)
    labels = [label for label, _ in counts.most_common()]
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.barh(labels[::-1], [counts[label] for label in labels[::-1]], color="#3b6e8f")
    ax.set_xlabel("Properties")
    ax.set_title("Valued properties by category")
    return _save(fig, path)


def plot_area_vs_valuation(scatter: list[dict], path: Path, *, max_total_area: float) -> Path:
    points = [
        (row["total_area"], row["valuation"])
        for row in scatter
        if row.get("total_area") is not None and row.get("valuation") is not None
    ]
    fig, ax = plt.subplots(figsize=(10, 6))
    if points:
        areas, valuations = zip(*points)
        ax.scatter(areas, valuations, s=6, alpha=0.4, color="#c05746")
    ax.set_xlabel("Total floor area (m²)")
    ax.set_ylabel("Valuation (€)")
    ax.set_title(f"Total area vs valuation (total area ≤ {max_total_area:,.0f})")
    return _save(fig, path)


def plot_area_distribution(properties: list[dict], path: Path) -> Path:
    areas = [row["total_area"] for row in properties if row.get("total_area")]
    fig, ax = plt.subplots(figsize=(10, 6))
    if areas:
        ax.hist(areas, bins=60, color="#6a8d73", log=True)
    ax.set_xlabel("Total floor area (m²)")
    ax.set_ylabel("Properties (log scale)")
    ax.set_title("Distribution of total floor area")
    return _save(fig, path)


def write_charts(tables: AnalysisTables, charts_dir: Path, *, max_total_area: float) -> dict[str, str]:
    ensure_dir(charts_dir)
    return {
        "categories": str(plot_category_counts(tables.properties, charts_dir / CHART_FILES["categories"])),
        "area_vs_valuation": str(
            plot_area_vs_valuation(
                tables.scatter,
                charts_dir / CHART_FILES["area_vs_valuation"],
                max_total_area=max_total_area,
            )
        ),
        "area_distribution": str(
            plot_area_distribution(tables.properties, charts_dir / CHART_FILES["area_distribution"])
        ),
    }


def charts_dir_for(bundle: ConfigBundle, data_dir: Path) -> Path:
    return data_dir / "out" / bundle.settings["output"]["charts_dir"]


def run_plots(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    *,
    logger: logging.Logger | None = None,
) -> dict[str, str]:
    logger = logger or get_logger("plot")
    tables = load_analysis_tables(bundle, data_dir)
    charts = write_charts(
        tables,
        charts_dir_for(bundle, data_dir),
        max_total_area=float(bundle.settings["filters"]["max_total_area"]),
    )
    log_event(logger, f"{len(charts)} charts rendered", run_id=run_id, stage="plot", event="PLOT_END", status="ok")
    return charts
