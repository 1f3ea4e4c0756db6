"""Coordinate reprojection from Irish Transverse Mercator to WGS84."""

from __future__ import annotations

import math
from typing import Any, Iterable

from pyproj import CRS, Transformer
from pyproj.exceptions import ProjError

from valuation_pipeline.pipeline.aggregate import PROPERTY_ID_FIELD

ITM_EPSG = 2157
WGS84_EPSG = 4326


def _safe_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _valid_lat_lon(lat: float, lon: float) -> bool:
    return math.isfinite(lat) and math.isfinite(lon) and -90 <= lat <= 90 and -180 <= lon <= 180


def _within_bbox(lat: float, lon: float, bbox: dict) -> bool:
    return (
        bbox["min_lat"] <= lat <= bbox["max_lat"]
        and bbox["min_lon"] <= lon <= bbox["max_lon"]
    )


def build_transformer(source_epsg: int = ITM_EPSG, target_epsg: int = WGS84_EPSG) -> Transformer:
    # always_xy keeps (easting, northing) -> (lon, lat) regardless of CRS axis order.
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(target_epsg), always_xy=True)


def reproject_point(
    transformer: Transformer,
    x: Any,
    y: Any,
    bbox: dict | None = None,
) -> tuple[float, float] | None:
    """Return ``(lon, lat)`` or ``None`` when the point cannot be placed."""
    easting = _safe_float(x)
    northing = _safe_float(y)
    if easting is None or northing is None:
        return None
    try:
        lon, lat = transformer.transform(easting, northing)
    except ProjError:
        return None
    if not _valid_lat_lon(lat, lon):
        return None
    if bbox is not None and not _within_bbox(lat, lon, bbox):
        return None
    return lon, lat


def has_coordinates(row: dict) -> bool:
    return row.get("x_itm") is not None and row.get("y_itm") is not None


def build_points(
    rows: Iterable[dict],
    transformer: Transformer,
    *,
    bbox: dict | None = None,
) -> tuple[list[dict], dict]:
    points: list[dict] = []
    failed: list[dict] = []
    missing = 0

    for row in rows:
        if not has_coordinates(row):
            missing += 1
            continue
        transformed = reproject_point(transformer, row["x_itm"], row["y_itm"], bbox)
        if transformed is None:
            failed.append({PROPERTY_ID_FIELD: row.get(PROPERTY_ID_FIELD), "x_itm": row["x_itm"], "y_itm": row["y_itm"]})
            continue
        lon, lat = transformed
        points.append({PROPERTY_ID_FIELD: row.get(PROPERTY_ID_FIELD), "lon": lon, "lat": lat})

    stats = {
        "points": len(points),
        "missing_coordinates": missing,
        "transform_failures": len(failed),
        "failed_rows": failed[:50],
    }
    return points, stats


def points_to_feature_collection(points: Iterable[dict], *, precision: int = 7) -> dict:
    return {
        "type": "FeatureCollection",
        "crs": {"type": "name", "properties": {"name": "urn:ogc:def:crs:OGC:1.3:CRS84"}},
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [round(point["lon"], precision), round(point["lat"], precision)],
                },
                "properties": {PROPERTY_ID_FIELD: point[PROPERTY_ID_FIELD]},
            }
            for point in points
        ],
    }
