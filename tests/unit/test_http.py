from __future__ import annotations

import pytest
import requests

from geo_correlation.common.http import HttpClient, HttpRequestError, RetryConfig, RetryableHttpError, TokenBucket


class FakeResponse:
    def __init__(self, status_code: int, payload=None, raises_json: bool = False):
        self.status_code = status_code
        self._payload = payload
        self._raises_json = raises_json

    def json(self):
        if self._raises_json:
            raise ValueError("bad json")
        return self._payload


def test_http_get_json_success_sends_headers_and_params(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    seen = {}

    def fake_request(**kwargs):
        seen.update(kwargs)
        return FakeResponse(200, [{"id": "ds-1"}])

    monkeypatch.setattr(client.session, "request", fake_request)
    payload = client.get_json("https://example.com/rest/v1/public_datasets", params={"select": "*"}, headers={"apikey": "k"})

    assert payload == [{"id": "ds-1"}]
    assert seen["method"] == "GET"
    assert seen["params"] == {"select": "*"}
    assert seen["headers"] == {"apikey": "k"}
    assert client.session.headers["Accept"] == "application/json"
    assert seen["timeout"] == (10.0, 60.0)


def test_http_retryable_status_raises_retryable_error(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(503, {"x": 1}))

    with pytest.raises(RetryableHttpError):
        client.get_json("https://example.com")


def test_http_client_error_is_not_retried(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.01, max_wait=0.01))
    calls = []

    def fake_request(**_kwargs):
        calls.append(1)
        return FakeResponse(404)

    monkeypatch.setattr(client.session, "request", fake_request)

    with pytest.raises(HttpRequestError) as excinfo:
        client.get_json("https://example.com")
    assert not isinstance(excinfo.value, RetryableHttpError)
    assert excinfo.value.error_code == "HTTP_ERROR"
    assert excinfo.value.status_code == 404
    assert excinfo.value.url == "https://example.com"
    assert len(calls) == 1


def test_http_retries_transport_errors_then_succeeds(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=3, multiplier=0.01, max_wait=0.01))
    responses = [requests.ConnectionError("reset"), FakeResponse(200, {"ok": True})]

    def fake_request(**_kwargs):
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr("geo_correlation.common.http.time.sleep", lambda _seconds: None)
    monkeypatch.setattr(client.session, "request", fake_request)

    assert client.get_json("https://example.com") == {"ok": True}


def test_http_invalid_json_raises(monkeypatch):
    client = HttpClient(retry=RetryConfig(max_attempts=1))
    monkeypatch.setattr(client.session, "request", lambda **_kwargs: FakeResponse(200, raises_json=True))

    with pytest.raises(HttpRequestError):
        client.get_json("https://example.com")


def test_token_bucket_spends_available_tokens():
    bucket = TokenBucket(rate_per_sec=5)
    bucket.acquire()
    assert bucket.tokens < 5


def test_host_rate_overrides():
    client = HttpClient(rate_per_sec=10, host_rates={"slow.example": 1})
    assert client.limiter.bucket_for("slow.example").rate_per_sec == 1
    assert client.limiter.bucket_for("fast.example").rate_per_sec == 10
