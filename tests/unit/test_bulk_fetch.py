from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from valuation_pipeline.common.errors import EmptyResultError, FetchError
from valuation_pipeline.common.http import HttpRequestError
from valuation_pipeline.fetch.bulk_fetch import build_query_url, fetch_all, fetch_authority, parse_csv_payload

API = {
    "base_url": "https://api.example.test/api/Property/GetProperties",
    "fields": "*",
    "format": "csv",
    "download": True,
    "categories": ["OFFICE", "FUEL/DEPOT", "RETAIL (SHOPS)"],
}
FETCH = {"max_workers": 3, "rate_per_sec": 100.0, "timeout": {"connect": 1, "read": 1}, "retry": {"max_attempts": 1}}


class FakeClient:
    def __init__(self, bodies: dict[str, str | Exception]):
        self.bodies = bodies
        self.urls: list[str] = []

    def get_text(self, url: str) -> str:
        self.urls.append(url)
        authority = parse_qs(urlparse(url).query)["LocalAuthority"][0]
        body = self.bodies[authority]
        if isinstance(body, Exception):
            raise body
        return body

    def close(self) -> None:
        pass


def test_build_query_url_encodes_authority_and_categories():
    url = build_query_url(API, "LIMERICK%20CITY%20%26%20COUNTY%20COUNCIL")

    assert url == (
        "https://api.example.test/api/Property/GetProperties?Fields=*"
        "&LocalAuthority=LIMERICK%20CITY%20%26%20COUNTY%20COUNCIL"
        "&CategorySelected=OFFICE,FUEL%2FDEPOT,RETAIL%20%28SHOPS%29"
        "&Format=csv&Download=true"
    )
    query = parse_qs(urlparse(url).query)
    assert query["LocalAuthority"] == ["LIMERICK CITY & COUNTY COUNCIL"]
    assert query["CategorySelected"] == ["OFFICE,FUEL/DEPOT,RETAIL (SHOPS)"]


def test_parse_csv_payload_returns_headers_and_rows():
    headers, rows = parse_csv_payload("PropertyNumber, Area\n1,10\n2,20\n", authority="A")

    assert headers == ["PropertyNumber", "Area"]
    assert rows == [{"PropertyNumber": "1", "Area": "10"}, {"PropertyNumber": "2", "Area": "20"}]


@pytest.mark.parametrize(
    "text,error",
    [
        ("", EmptyResultError),
        ("PropertyNumber,Area\n", EmptyResultError),
        ('{"message": "An error has occurred."}', FetchError),
        ("<html>Service unavailable</html>", FetchError),
        ("PropertyNumber,Area\n1,10,99\n", FetchError),
    ],
)
def test_parse_csv_payload_rejects_bad_bodies(text, error):
    with pytest.raises(error):
        parse_csv_payload(text, authority="A")


def test_fetch_authority_turns_errors_into_markers():
    client = FakeClient({"A": HttpRequestError("HTTP status: 500")})

    result = fetch_authority(client, API, "A")

    assert result.ok is False
    assert result.rows is None
    assert result.error_code == "HTTP_ERROR"
    assert "LocalAuthority=A" in result.url


def test_fetch_all_keeps_input_order_and_isolates_failures():
    client = FakeClient(
        {
            "A": "PropertyNumber,Area\n1,10\n",
            "B": HttpRequestError("HTTP status: 404"),
            "C": "",
            "D": "PropertyNumber,Area\n2,20\n3,30\n",
        }
    )

    results = fetch_all(["A", "B", "C", "D"], API, FETCH, http_client=client)

    assert [result.authority for result in results] == ["A", "B", "C", "D"]
    assert [result.ok for result in results] == [True, False, False, True]
    assert results[2].error_code == "EMPTY_RESULT"
    assert len(results[3].rows) == 2
    assert len(client.urls) == 4
