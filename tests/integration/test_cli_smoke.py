from __future__ import annotations

import csv
import io
import json
import zlib
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest

from valuation_pipeline.cli import parse_args, run_command
from valuation_pipeline.common.constants import EXIT_PARTIAL, EXIT_SUCCESS
from valuation_pipeline.common.http import HttpClient, HttpRequestError

HEADER = ["PropertyNumber", "County", "LocalAuthority", "Valuation", "Category", "Uses", "Address1", "Xitm", "Yitm", "Level", "FloorUse", "Area"]
CATEGORIES = ["OFFICE", "HOSPITALITY", "RETAIL (SHOPS)"]


def _fake_get_text(failing: set[str]):
    def _get_text(self, url: str, **_kwargs) -> str:
        authority = parse_qs(urlparse(url).query)["LocalAuthority"][0]
        if authority in failing:
            raise HttpRequestError("HTTP status: 500")
        seed = zlib.crc32(authority.encode("utf-8"))
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(HEADER)
        for n in range(3):
            property_number = seed * 10 + n
            for level in ("0", "1"):
                writer.writerow(
                    [
                        property_number,
                        "COUNTY",
                        authority,
                        1000 * (n + 1),
                        CATEGORIES[n],
                        CATEGORIES[n],
                        f"{n} STREET",
                        560000 + n * 100,
                        700000 + n * 100,
                        level,
                        CATEGORIES[n],
                        25.5,
                    ]
                )
        return buffer.getvalue()

    return _get_text


def _args(data_dir: Path, *extra: str):
    return parse_args(["all", "--config-dir", "config", "--data-dir", str(data_dir), "--run-id", "run-test", *extra])


@pytest.mark.integration
def test_cli_all_generates_expected_artifacts(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(HttpClient, "get_text", _fake_get_text(set()))
    data_dir = tmp_path / "data"

    exit_code = run_command(_args(data_dir))

    assert exit_code == EXIT_SUCCESS
    assert (data_dir / "intermediate" / "national_valuations.csv").exists()
    assert (data_dir / "out" / "floors.csv").exists()
    assert (data_dir / "out" / "properties.csv").exists()
    assert (data_dir / "out" / "property_points.geojson").exists()
    assert (data_dir / "out" / "charts" / "02_area_vs_valuation.png").exists()
    assert (data_dir / "run_meta" / "run-test.log.jsonl").exists()

    summary = json.loads((data_dir / "out" / "reports" / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["status"] == "success"
    assert summary["totals"]["authorities_requested"] == 31
    assert summary["totals"]["floor_rows"] == 31 * 6
    # One of the three properties per authority is HOSPITALITY.
    assert summary["totals"]["properties"] == 31 * 2
    assert summary["totals"]["points"] == 31 * 2


@pytest.mark.integration
def test_cli_rerun_skips_completed_stages(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(HttpClient, "get_text", _fake_get_text(set()))
    data_dir = tmp_path / "data"
    assert run_command(_args(data_dir)) == EXIT_SUCCESS

    def _no_network(self, url: str, **_kwargs) -> str:
        raise AssertionError("fetch should have been skipped")

    monkeypatch.setattr(HttpClient, "get_text", _no_network)

    assert run_command(_args(data_dir)) == EXIT_SUCCESS
    summary = json.loads((data_dir / "out" / "reports" / "run_summary.json").read_text(encoding="utf-8"))
    assert set(summary["stages"].values()) == {"skipped"}


@pytest.mark.integration
def test_cli_reports_partial_when_an_authority_fails(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(HttpClient, "get_text", _fake_get_text({"CARLOW COUNTY COUNCIL"}))
    data_dir = tmp_path / "data"

    exit_code = run_command(_args(data_dir))

    assert exit_code == EXIT_PARTIAL
    summary = json.loads((data_dir / "out" / "reports" / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["failed_authorities"] == ["CARLOW COUNTY COUNCIL"]
    assert summary["totals"]["floor_rows"] == 30 * 6
    assert (data_dir / "out" / "property_points.geojson").exists()
