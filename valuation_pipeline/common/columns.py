"""Typed column schema for valuation extracts.

Every column the API returns is declared up front with its canonical name and
type. Values are coerced on the way in; a value that cannot be coerced becomes
null and is counted, and a row that loses a non-nullable value is rejected.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Mapping

# Placeholders the extracts use for empty numeric cells.
NULL_TOKENS = {"", "null", "none", "nan", "n/a", "na"}


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    source: str
    type: str
    nullable: bool = True


@dataclass
class CoercionStats:
    rows_in: int = 0
    rows_out: int = 0
    rejected_rows: int = 0
    invalid_values: Counter = field(default_factory=Counter)
    missing_columns: set[str] = field(default_factory=set)
    unknown_columns: set[str] = field(default_factory=set)

    def merge(self, other: "CoercionStats") -> None:
        self.rows_in += other.rows_in
        self.rows_out += other.rows_out
        self.rejected_rows += other.rejected_rows
        self.invalid_values.update(other.invalid_values)
        self.missing_columns |= other.missing_columns
        self.unknown_columns |= other.unknown_columns

    def to_dict(self) -> dict:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "rejected_rows": self.rejected_rows,
            "invalid_values": dict(sorted(self.invalid_values.items())),
            "missing_columns": sorted(self.missing_columns),
            "unknown_columns": sorted(self.unknown_columns),
        }


def build_column_specs(columns_config: dict) -> list[ColumnSpec]:
    return [
        ColumnSpec(
            name=str(col["name"]),
            source=str(col["source"]),
            type=str(col["type"]),
            nullable=bool(col["nullable"]),
        )
        for col in columns_config["columns"]
    ]


def column_names(specs: Iterable[ColumnSpec]) -> list[str]:
    return [spec.name for spec in specs]


def _is_null(value: object, column_type: str) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if not isinstance(value, str):
        return False
    # Address lines and level labels may legitimately read "NA" or "None".
    if column_type == "string":
        return not value.strip()
    return value.strip().lower() in NULL_TOKENS


def coerce_value(value: object, column_type: str) -> object | None:
    """Coerce a raw cell to ``column_type``; raises ``ValueError`` when it cannot."""
    if _is_null(value, column_type):
        return None

    if column_type == "string":
        return str(value).strip()

    if column_type == "float":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            number = float(value)
        else:
            number = float(str(value).strip().replace(",", ""))
        if not math.isfinite(number):
            raise ValueError(f"non-finite float: {value!r}")
        return number

    if column_type == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        text = str(value).strip().replace(",", "")
        try:
            return int(text)
        except ValueError:
            number = float(text)
            if not number.is_integer():
                raise ValueError(f"non-integral value: {value!r}") from None
            return int(number)

    raise ValueError(f"unsupported column type: {column_type}")


def coerce_rows(
    rows: Iterable[Mapping[str, object]],
    headers: Iterable[str],
    specs: list[ColumnSpec],
    *,
    key: str = "source",
) -> tuple[list[dict], CoercionStats]:
    """Coerce rows keyed by source headers (``key="source"``) or canonical names."""
    stats = CoercionStats()
    lookup = {getattr(spec, key): spec for spec in specs}
    header_set = set(headers)
    stats.missing_columns = set(lookup) - header_set
    stats.unknown_columns = header_set - set(lookup)

    out: list[dict] = []
    for row in rows:
        stats.rows_in += 1
        coerced: dict[str, object] = {}
        rejected = False
        for spec in specs:
            raw = row.get(getattr(spec, key))
            try:
                value = coerce_value(raw, spec.type)
            except ValueError:
                stats.invalid_values[spec.name] += 1
                value = None
            if value is None and not spec.nullable:
                rejected = True
            coerced[spec.name] = value
        if rejected:
            stats.rejected_rows += 1
            continue
        out.append(coerced)

    stats.rows_out = len(out)
    return out, stats


def serialize_value(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def serialize_row(row: Mapping[str, object], headers: list[str]) -> dict:
    return {name: serialize_value(row.get(name)) for name in headers}
