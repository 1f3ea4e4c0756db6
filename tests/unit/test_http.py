from __future__ import annotations

import threading

import pytest
import requests

from valuation_pipeline.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError


class FakeResponse:
    def __init__(self, status_code: int, body: bytes = b""):
        self.status_code = status_code
        self.content = body


def test_http_get_text_success_strips_bom(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(
        client.session,
        "request",
        lambda **_kwargs: FakeResponse(200, "\ufeffPropertyNumber,Area\n1,10\n".encode("utf-8")),
    )

    text = client.get_text("https://example.com/props")

    assert text == "PropertyNumber,Area\n1,10\n"


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503))

    with pytest.raises(RetryableHttpError):
        client.get_text("https://example.com/props")


def test_http_retries_retryable_status_when_configured(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=2, multiplier=0.0, max_wait=0.0))
    responses = iter([FakeResponse(502), FakeResponse(200, b"a,b\n1,2\n")])
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: next(responses))
    monkeypatch.setattr("time.sleep", lambda _seconds: None)

    assert client.get_text("https://example.com/props") == "a,b\n1,2\n"


def test_http_non_200_status_is_not_retried(monkeypatch):
    calls = []
    client = HttpClient(retry=RetryConfig(max_attempts=3))

    def _request(**_kwargs):
        calls.append(1)
        return FakeResponse(404)

    monkeypatch.setattr(client.session, "request", _request)

    with pytest.raises(HttpRequestError):
        client.get_text("https://example.com/props")
    assert len(calls) == 1


def test_http_connection_error_is_wrapped(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))

    def _boom(**_kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(client.session, "request", _boom)

    with pytest.raises(HttpRequestError):
        client.get_text("https://example.com/props")


def test_http_undecodable_payload_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, b"\xff\xfe\xfa"))

    with pytest.raises(HttpRequestError):
        client.get_text("https://example.com/props")


def test_http_client_gives_each_thread_its_own_session():
    client = HttpClient()
    seen: list[requests.Session] = []
    worker = threading.Thread(target=lambda: seen.append(client.session))
    worker.start()
    worker.join()

    assert client.session is client.session
    assert seen[0] is not client.session

    client.close()
    assert client.session is not seen[0]
