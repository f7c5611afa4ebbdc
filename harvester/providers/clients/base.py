"""Shared HTTP plumbing for catalog clients: retries, timeouts and error mapping."""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import requests
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "User-Agent": "literature-harvester/0.1",
    "Accept": "application/json",
}

DEFAULT_TIMEOUT_S = 30.0

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

MAX_ATTEMPTS = 3

_backoff = wait_exponential(multiplier=0.5, min=0.5, max=8)
_rate_limit_backoff = wait_exponential(multiplier=1.0, min=1.0, max=16)

_EXCERPT_LIMIT = 200


class ClientError(Exception):
    """Base exception for HTTP client errors."""


class NotFoundError(ClientError):
    """HTTP 404 from the catalog."""


class RateLimitedError(ClientError):
    """HTTP 429 that survived the retry budget."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RequestRejectedError(ClientError):
    """Any other 4xx response."""

    def __init__(self, status: int, message: str, body_excerpt: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body_excerpt = body_excerpt


class UpstreamError(ClientError):
    """5xx responses or transport failures after retries."""


class RetryableResponseError(Exception):
    """Internal signal used to retry a response with a retryable status."""

    def __init__(self, response: requests.Response) -> None:
        super().__init__(f"Retryable response ({response.status_code})")
        self.response = response


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Return the delay in seconds encoded by a ``Retry-After`` header."""

    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)


def _wait(retry_state: RetryCallState) -> float:
    outcome = retry_state.outcome
    strategy = _backoff
    if outcome is not None and outcome.failed:
        exception = outcome.exception()
        if isinstance(exception, RetryableResponseError):
            hinted = parse_retry_after(exception.response.headers.get("Retry-After"))
            if hinted is not None:
                return hinted
            if exception.response.status_code == 429:
                strategy = _rate_limit_backoff
    base = strategy(retry_state)
    return random.uniform(base * 0.5, base * 1.5)


def _log_retry(retry_state: RetryCallState) -> None:
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    url = retry_state.args[2] if len(retry_state.args) > 2 else ""
    logger.debug("Retrying %s (attempt %s): %s", url, retry_state.attempt_number, exception)


def _excerpt(response: requests.Response) -> Optional[str]:
    try:
        text = response.text
    except Exception:
        return None
    if not text:
        return None
    return " ".join(text.split())[:_EXCERPT_LIMIT]


def expect_object(value: Any, where: str) -> Dict[str, Any]:
    """Return ``value`` if it is a JSON object, raising :class:`UpstreamError` otherwise."""

    if not isinstance(value, dict):
        raise UpstreamError(f"Unexpected payload shape from {where}: {type(value).__name__}")
    return value


class BaseHttpClient:
    """Base class for catalog clients.

    Transport failures and responses with a status in
    :data:`RETRYABLE_STATUS_CODES` share one retry budget of
    :data:`MAX_ATTEMPTS`. Once it is spent the final response is mapped onto the
    :class:`ClientError` hierarchy so adapters can handle one family of errors.
    """

    BASE_URL = ""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.session = session or requests.Session()
        for key, value in DEFAULT_HEADERS.items():
            self.session.headers.setdefault(key, value)
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout

    @retry(
        reraise=True,
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=_wait,
        retry=retry_if_exception_type((requests.RequestException, RetryableResponseError)),
        before_sleep=_log_retry,
    )
    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableResponseError(response)
        return response

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._send(method, url, params=params, headers=headers, **kwargs)
        except RetryableResponseError as exc:
            response = exc.response
        except requests.RequestException as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}") from exc
        return self._handle_response(response)

    def _get_json(self, path: str, **kwargs: Any) -> Any:
        response = self._request("GET", path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"Invalid JSON from {self.base_url}{path}") from exc

    def _get_json_object(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        payload = self._get_json(path, **kwargs)
        return expect_object(payload, f"{self.base_url}{path}")

    def _get_text(self, path: str, **kwargs: Any) -> str:
        return self._request("GET", path, **kwargs).text

    def _handle_response(self, response: requests.Response) -> requests.Response:
        status = response.status_code
        if status < 400:
            return response
        if status == 404:
            raise NotFoundError("Resource not found")
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitedError("Rate limit exceeded", retry_after=retry_after)

        excerpt = _excerpt(response)
        if status >= 500:
            message = f"Upstream service error ({status})"
            raise UpstreamError(f"{message}: {excerpt}" if excerpt else message)
        message = f"Client request rejected ({status})"
        raise RequestRejectedError(
            status, f"{message}: {excerpt}" if excerpt else message, body_excerpt=excerpt
        )
