"""Blocking JSON-over-HTTP client used by the collaborator adapters.

Requests are throttled per host, bounded by connect/read timeouts and retried
with jittered exponential backoff when the failure is transient (transport
errors, 408/425/429 and 5xx). Any other error status fails immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlparse

import requests
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from geo_correlation.common.constants import USER_AGENT
from geo_correlation.common.errors import CollaboratorError
from geo_correlation.common.logging import get_logger, log_event

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 60.0

    def as_tuple(self) -> tuple[float, float]:
        return (self.connect, self.read)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 4
    multiplier: float = 0.5
    max_wait: float = 10.0


class HttpRequestError(CollaboratorError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RetryableHttpError(HttpRequestError):
    pass


class TokenBucket:
    """Token bucket refilled continuously at ``rate_per_sec``."""

    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else max(rate_per_sec, 1.0)
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated_at) * self.rate_per_sec)
        self.updated_at = now

    def _take(self, tokens: float) -> float:
        """Spend ``tokens`` if available; otherwise return how long to wait."""
        with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0
            return max((tokens - self.tokens) / self.rate_per_sec, 0.01)

    def acquire(self, tokens: float = 1.0) -> None:
        wait_for = self._take(tokens)
        while wait_for > 0:
            time.sleep(wait_for)
            wait_for = self._take(tokens)


class HostRateLimiter:
    def __init__(self, default_rate_per_sec: float, host_rates: dict[str, float] | None = None) -> None:
        self.default_rate_per_sec = default_rate_per_sec
        self.host_rates = dict(host_rates or {})
        self.buckets: dict[str, TokenBucket] = {}
        self.lock = threading.Lock()

    def bucket_for(self, host: str) -> TokenBucket:
        with self.lock:
            bucket = self.buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=self.host_rates.get(host, self.default_rate_per_sec))
                self.buckets[host] = bucket
            return bucket

    def acquire(self, host: str) -> None:
        self.bucket_for(host).acquire()


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        rate_per_sec: float = 10.0,
        host_rates: dict[str, float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.limiter = HostRateLimiter(rate_per_sec, host_rates)
        self.logger = logger or get_logger("http")
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _check_status(self, url: str, response: requests.Response) -> None:
        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"{url} answered {status}", url=url, status_code=status)
        if status >= 400:
            raise HttpRequestError(f"{url} answered {status}", url=url, status_code=status)

    def _send(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        timeout: TimeoutConfig,
    ) -> Any:
        self.limiter.acquire(urlparse(url).netloc)
        try:
            response = self.session.request(
                method="GET",
                url=url,
                params=params,
                headers=headers,
                timeout=timeout.as_tuple(),
            )
        except requests.RequestException as exc:
            raise RetryableHttpError(f"GET {url} failed: {exc}", url=url) from exc

        self._check_status(url, response)
        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"{url} did not return JSON", url=url, status_code=response.status_code) from exc

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        log_event(
            self.logger,
            f"retrying after attempt {state.attempt_number}: {exc}",
            level=logging.WARNING,
            stage="http",
            source=getattr(exc, "url", None),
            event="HTTP_RETRY",
            status="retry",
            error_code=getattr(exc, "error_code", None),
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(initial=self.retry.multiplier, max=self.retry.max_wait, jitter=1.0),
            retry=retry_if_exception_type(RetryableHttpError),
            before_sleep=self._log_retry,
            reraise=True,
        )

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> Any:
        """GET ``url`` and decode the JSON body, retrying transient failures."""
        return self._retrying()(self._send, url, params, headers, timeout or self.timeout)
