"""Per-authority extract download with fail-soft semantics."""

from __future__ import annotations

import csv
import io
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence
from urllib.parse import quote

from valuation_pipeline.common.authorities import encode_authority
from valuation_pipeline.common.errors import EmptyResultError, FetchError, PipelineError
from valuation_pipeline.common.http import HttpClient, RetryConfig, TimeoutConfig
from valuation_pipeline.common.logging import get_logger, log_event, log_warning
from valuation_pipeline.common.models import FetchResult
from valuation_pipeline.common.time_utils import elapsed_ms

QUERY_TEMPLATE = (
    "{base_url}?Fields={fields}&LocalAuthority={authority}"
    "&CategorySelected={categories}&Format={format}&Download={download}"
)


def build_query_url(api_config: dict, encoded_authority: str) -> str:
    categories = ",".join(quote(str(category), safe="") for category in api_config["categories"])
    download = api_config["download"]
    if isinstance(download, bool):
        download = "true" if download else "false"
    return QUERY_TEMPLATE.format(
        base_url=api_config["base_url"].rstrip("?"),
        fields=quote(str(api_config["fields"]), safe="*"),
        authority=encoded_authority,
        categories=categories,
        format=quote(str(api_config["format"]), safe=""),
        download=download,
    )


def parse_csv_payload(text: str, *, authority: str) -> tuple[list[str], list[dict]]:
    stripped = text.strip()
    if not stripped:
        raise EmptyResultError(f"Empty response for {authority}")
    if stripped[0] in "{[<":
        # JSON or HTML error page served with a 200.
        raise FetchError(f"Non-CSV response for {authority}: {stripped[:80]!r}")

    try:
        reader = csv.DictReader(io.StringIO(text))
        headers = [h.strip() for h in (reader.fieldnames or [])]
        rows = []
        for raw in reader:
            if None in raw:
                raise FetchError(f"Malformed CSV row for {authority}: extra cells beyond header")
            rows.append({k.strip(): v for k, v in raw.items() if k is not None})
    except csv.Error as exc:
        raise FetchError(f"Malformed CSV for {authority}: {exc}") from exc

    if not rows:
        raise EmptyResultError(f"No rows returned for {authority}")
    return headers, rows


def fetch_authority(client: HttpClient, api_config: dict, authority: str) -> FetchResult:
    url = build_query_url(api_config, encode_authority(authority))
    started = time.monotonic()
    try:
        text = client.get_text(url)
        headers, rows = parse_csv_payload(text, authority=authority)
    except PipelineError as exc:
        return FetchResult(
            authority=authority,
            url=url,
            error_code=exc.error_code,
            error_message=str(exc),
            duration_ms=elapsed_ms(started, time.monotonic()),
        )
    return FetchResult(
        authority=authority,
        url=url,
        headers=headers,
        rows=rows,
        duration_ms=elapsed_ms(started, time.monotonic()),
    )


def client_from_config(fetch_config: dict) -> HttpClient:
    return HttpClient(
        timeout=TimeoutConfig(
            connect=float(fetch_config["timeout"]["connect"]),
            read=float(fetch_config["timeout"]["read"]),
        ),
        retry=RetryConfig(max_attempts=int(fetch_config["retry"]["max_attempts"])),
        rate_per_sec=float(fetch_config["rate_per_sec"]),
    )


def fetch_all(
    authorities: Sequence[str],
    api_config: dict,
    fetch_config: dict,
    *,
    http_client: HttpClient | None = None,
    logger: logging.Logger | None = None,
    run_id: str | None = None,
    fetch_one: Callable[[HttpClient, dict, str], FetchResult] = fetch_authority,
) -> list[FetchResult]:
    """Fetch every authority; the returned list matches ``authorities`` order."""
    logger = logger or get_logger("fetch")
    max_workers = max(1, min(int(fetch_config.get("max_workers", 1)), len(authorities) or 1))

    owns_client = http_client is None
    client = http_client or client_from_config(fetch_config)
    try:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(lambda name: fetch_one(client, api_config, name), authorities))
    finally:
        if owns_client:
            client.close()

    for result in results:
        if result.ok:
            log_event(
                logger,
                f"fetched {result.authority}",
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="FETCH_OK",
                status="ok",
                rows_out=len(result.rows or []),
                duration_ms=result.duration_ms,
            )
        else:
            log_warning(
                logger,
                f"fetch failed for {result.authority}: {result.error_message}",
                run_id=run_id,
                stage="fetch",
                authority=result.authority,
                event="FETCH_FAIL",
                error_code=result.error_code,
                duration_ms=result.duration_ms,
            )
    return results
