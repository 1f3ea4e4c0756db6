import logging
from pathlib import Path

import pytest

from valuation_pipeline.common.columns import ColumnSpec
from valuation_pipeline.common.errors import StageError
from valuation_pipeline.common.models import FetchResult
from valuation_pipeline.pipeline.unify import read_national_table, require_columns, unify_tables, write_national_table

SPECS = [
    ColumnSpec(name="property_number", source="PropertyNumber", type="integer", nullable=False),
    ColumnSpec(name="valuation", source="Valuation", type="float"),
    ColumnSpec(name="area", source="Area", type="float"),
]


def _ok(authority: str, rows: list[dict], headers=("PropertyNumber", "Valuation", "Area")) -> FetchResult:
    return FetchResult(authority=authority, url=f"https://x/{authority}", headers=list(headers), rows=rows)


def test_unify_skips_failures_and_types_mixed_columns():
    results = [
        _ok("A", [{"PropertyNumber": "1", "Valuation": "1000", "Area": "50.5"}]),
        FetchResult(authority="B", url="https://x/B", error_code="HTTP_ERROR", error_message="boom"),
        # Numeric columns that came back as integers in one extract and decimals in another.
        _ok("C", [{"PropertyNumber": "2.0", "Valuation": "2500.75", "Area": "12"}]),
    ]

    rows, stats = unify_tables(results, SPECS)

    assert rows == [
        {"property_number": 1, "valuation": 1000.0, "area": 50.5},
        {"property_number": 2, "valuation": 2500.75, "area": 12.0},
    ]
    assert stats["skipped_authorities"] == ["B"]
    assert stats["coercion"]["rows_out"] == 2
    assert set(stats["by_authority"]) == {"A", "C"}


def test_unify_fills_missing_columns_with_nulls():
    results = [_ok("A", [{"PropertyNumber": "7"}], headers=("PropertyNumber",))]

    rows, stats = unify_tables(results, SPECS)

    assert rows == [{"property_number": 7, "valuation": None, "area": None}]
    assert stats["by_authority"]["A"]["missing_columns"] == ["Area", "Valuation"]


def test_national_table_round_trip_preserves_rows(tmp_path: Path):
    rows = [
        {"property_number": 1, "valuation": 1000.0, "area": None},
        {"property_number": 2, "valuation": None, "area": -12.5},
    ]
    path = write_national_table(tmp_path / "intermediate" / "national.csv", rows, SPECS)

    assert path.read_text(encoding="utf-8").splitlines()[0] == "property_number,valuation,area"
    assert read_national_table(path, SPECS) == rows


def test_read_national_table_requires_file(tmp_path: Path):
    with pytest.raises(StageError):
        read_national_table(tmp_path / "missing.csv", SPECS)


def _events(caplog) -> list[str]:
    return [getattr(record, "event", None) for record in caplog.records]


def test_unify_logs_rows_rejected_for_blank_property_number(caplog):
    results = [
        _ok(
            "A",
            [
                {"PropertyNumber": "", "Valuation": "100", "Area": "10"},
                {"PropertyNumber": "2", "Valuation": "200", "Area": "20"},
            ],
        )
    ]

    with caplog.at_level(logging.WARNING):
        rows, stats = unify_tables(results, SPECS)

    assert [row["property_number"] for row in rows] == [2]
    assert stats["coercion"]["rejected_rows"] == 1
    assert _events(caplog) == ["ROW_REJECT"]
    record = caplog.records[0]
    assert record.authority == "A"
    assert record.rows_in == 2
    assert record.rows_out == 1


def test_unify_logs_absent_nullable_columns(caplog):
    results = [_ok("A", [{"PropertyNumber": "7"}], headers=("PropertyNumber",))]

    with caplog.at_level(logging.WARNING):
        unify_tables(results, SPECS)

    assert _events(caplog) == ["SCHEMA_MISSING"]
    assert "Area, Valuation" in caplog.records[0].getMessage()


def test_extract_without_required_column_fails_its_authority(caplog):
    renamed = _ok(
        "A",
        [{"Property Number": "1", "Valuation": "100", "Area": "10"}],
        headers=("Property Number", "Valuation", "Area"),
    )
    healthy = _ok("B", [{"PropertyNumber": "5", "Valuation": "50", "Area": "5"}])

    with caplog.at_level(logging.WARNING):
        rows, stats = unify_tables([renamed, healthy], SPECS)

    assert rows == [{"property_number": 5, "valuation": 50.0, "area": 5.0}]
    assert stats["skipped_authorities"] == ["A"]
    assert "A" not in stats["by_authority"]
    schema_records = [record for record in caplog.records if record.event == "SCHEMA_MISSING"]
    assert len(schema_records) == 1
    assert schema_records[0].error_code == "SCHEMA_MISSING"
    assert "PropertyNumber" in schema_records[0].getMessage()


def test_require_columns_marks_result_failed_and_is_idempotent():
    renamed = _ok("A", [{"Property Number": "1"}], headers=("Property Number",))

    checked = require_columns([renamed], SPECS)
    rechecked = require_columns(checked, SPECS)

    assert not checked[0].ok
    assert checked[0].error_code == "SCHEMA_MISSING"
    assert checked[0].summary()["rows"] == 0
    assert rechecked == checked
