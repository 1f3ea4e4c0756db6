"""Group floor-level rows into property-level aggregates."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

PROPERTY_ID_FIELD = "property_number"
COORDINATE_FIELDS = ("x_itm", "y_itm")
DESCRIPTIVE_FIELDS = (
    "county",
    "local_authority",
    "valuation",
    "category",
    "uses",
    "address_1",
    "address_2",
    "address_3",
    "address_4",
    "address_5",
)
PROPERTY_KEY_FIELDS = (PROPERTY_ID_FIELD, *DESCRIPTIVE_FIELDS, *COORDINATE_FIELDS)
FLOOR_FIELDS = (PROPERTY_ID_FIELD, "level", "floor_use", "area", "nav_per_m2", "nav")
AGGREGATE_FIELDS = ("total_area", "level_count", "min_level", "max_level")
PROPERTY_HEADERS = [*PROPERTY_KEY_FIELDS, *AGGREGATE_FIELDS]


def _level_sort_key(level: object) -> tuple[int, float, str]:
    # Numeric levels (basement -1, ground 0, ...) sort numerically ahead of labels like "MEZZ".
    text = str(level).strip()
    try:
        return (0, float(text), text)
    except ValueError:
        return (1, 0.0, text.upper())


def summarise_floors(floors: list[dict]) -> dict:
    areas = [abs(float(row["area"])) for row in floors if row.get("area") is not None]
    levels = {row.get("level") for row in floors}
    known_levels = sorted((level for level in levels if level is not None), key=_level_sort_key)
    return {
        "total_area": sum(areas) if areas else None,
        # A floor with no recorded level is still a floor.
        "level_count": len(levels),
        "min_level": known_levels[0] if known_levels else None,
        "max_level": known_levels[-1] if known_levels else None,
    }


def aggregate_properties(rows: Iterable[dict]) -> tuple[list[dict], list[dict]]:
    """Return ``(aggregates, conflicts)``.

    Rows are grouped on the property number together with every descriptive
    field. Descriptive fields are expected to be constant per property number;
    a property number that lands in more than one group is returned in
    ``conflicts`` with the differing fields, and each of its groups still
    produces its own aggregate row.
    """
    groups: dict[tuple, list[dict]] = defaultdict(list)
    for row in rows:
        key = tuple(row.get(field) for field in PROPERTY_KEY_FIELDS)
        groups[key].append(row)

    aggregates: list[dict] = []
    keys_by_property: dict[object, list[tuple]] = defaultdict(list)
    for key in sorted(groups, key=_group_sort_key):
        record = dict(zip(PROPERTY_KEY_FIELDS, key))
        record.update(summarise_floors(groups[key]))
        aggregates.append(record)
        keys_by_property[key[0]].append(key)

    conflicts = []
    for property_number, keys in keys_by_property.items():
        if len(keys) < 2:
            continue
        differing = [
            field
            for idx, field in enumerate(PROPERTY_KEY_FIELDS)
            if len({key[idx] for key in keys}) > 1
        ]
        conflicts.append(
            {
                PROPERTY_ID_FIELD: property_number,
                "variants": len(keys),
                "differing_fields": differing,
            }
        )
    return aggregates, conflicts


def _sort_value(value: object) -> tuple[int, float, str]:
    if value is None:
        return (2, 0.0, "")
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    return (1, 0.0, str(value))


def _group_sort_key(key: tuple) -> tuple:
    return tuple(_sort_value(value) for value in key)
