"""
Outbound HTTP fetch with bounded concurrency and retry/backoff.

Every request walks a small state machine:

    PENDING -> IN_FLIGHT -> SUCCESS
                         -> RETRYABLE_FAILURE -> (backoff) -> IN_FLIGHT
                         -> PERMANENT_FAILURE

Timeouts, connection errors, HTTP 429 and 5xx are retryable. Other 4xx
responses and an exhausted retry budget are permanent. A limiter slot is held
only while the request is on the wire, never across backoff sleeps.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import httpx

from live.errors import (
    ProviderError,
    ProviderHttpError,
    ProviderParseError,
    ProviderTimeout,
)
from live.limiter import ConcurrencyLimiter
from plugin_base.common import ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; LiveEnricher/1.0; +https://github.com/live-enricher)"
)


class FetchState(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass
class FetchResult:
    """Outcome of one logical request (all attempts)."""

    url: str
    state: FetchState = FetchState.PENDING
    status_code: Optional[int] = None
    text: str = ""
    headers: dict = field(default_factory=dict)
    attempts: int = 0
    elapsed: float = 0.0
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    history: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == FetchState.SUCCESS

    def json(self) -> Any:
        """Decode the body as JSON, raising ProviderParseError on bad input."""
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise ProviderParseError(f"Invalid JSON from {self.url}: {e}", url=self.url)

    def to_error(self) -> ProviderError:
        """Exception form of a failed fetch."""
        message = self.error or f"Request to {self.url} failed"
        if self.error_kind == ErrorKind.TIMEOUT:
            return ProviderTimeout(message, url=self.url)
        if self.error_kind == ErrorKind.HTTP_ERROR:
            return ProviderHttpError(message, status=self.status_code, url=self.url)
        error = ProviderError(message, url=self.url)
        error.kind = self.error_kind or ErrorKind.UNKNOWN
        return error

    def _move(self, state: FetchState) -> None:
        self.state = state
        self.history.append(state)


class HttpFetcher:
    """
    The single fetch primitive used by providers and search backends.

    A fresh httpx.AsyncClient is opened per attempt. Pass ``transport`` (for
    example httpx.MockTransport) to route requests elsewhere.
    """

    def __init__(
        self,
        limiter: Optional[ConcurrencyLimiter] = None,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.limiter = limiter or ConcurrencyLimiter()
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.user_agent = user_agent
        self._transport = transport

    async def get(
        self,
        url: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> FetchResult:
        return await self.request(
            "GET",
            url,
            params=params,
            headers=headers,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    async def post_json(
        self,
        url: str,
        payload: dict,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> FetchResult:
        return await self.request(
            "POST",
            url,
            json_body=payload,
            headers=headers,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> FetchResult:
        """
        Perform a request with retries.

        Never raises for network or HTTP problems; the returned FetchResult
        carries the final state and a typed error kind.
        """
        result = FetchResult(url=url)
        result.history.append(FetchState.PENDING)
        budget = max_attempts or self.max_attempts
        started = time.monotonic()

        while result.attempts < budget:
            result.attempts += 1
            result._move(FetchState.IN_FLIGHT)
            try:
                async with self.limiter.slot():
                    response = await self._send(
                        method, url, params, json_body, headers, timeout
                    )
            except httpx.TimeoutException:
                logger.warning(
                    f"Timeout fetching {url} (attempt {result.attempts}/{budget})"
                )
                result.error_kind = ErrorKind.TIMEOUT
                result.error = "Request timed out"
                result._move(FetchState.RETRYABLE_FAILURE)
            except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
                logger.error(f"Invalid request URL {url}: {e}")
                result.error_kind = ErrorKind.HTTP_ERROR
                result.error = str(e)
                result._move(FetchState.PERMANENT_FAILURE)
                break
            except httpx.TransportError as e:
                logger.warning(
                    f"Connection error fetching {url} "
                    f"(attempt {result.attempts}/{budget}): {e}"
                )
                result.error_kind = ErrorKind.UNAVAILABLE
                result.error = str(e) or e.__class__.__name__
                result._move(FetchState.RETRYABLE_FAILURE)
            else:
                result.status_code = response.status_code
                status = response.status_code
                if status < 400:
                    result.text = response.text
                    result.headers = dict(response.headers)
                    result.error_kind = None
                    result.error = None
                    result._move(FetchState.SUCCESS)
                    break
                result.error_kind = ErrorKind.HTTP_ERROR
                result.error = f"HTTP {status}"
                if status == 429 or status >= 500:
                    logger.warning(
                        f"HTTP {status} from {url} (attempt {result.attempts}/{budget})"
                    )
                    result._move(FetchState.RETRYABLE_FAILURE)
                else:
                    logger.warning(f"HTTP {status} from {url}, not retrying")
                    result._move(FetchState.PERMANENT_FAILURE)
                    break

            if result.attempts < budget:
                await asyncio.sleep(self.backoff_base * result.attempts)

        if result.state == FetchState.RETRYABLE_FAILURE:
            logger.error(f"Giving up on {url} after {result.attempts} attempts")
            result._move(FetchState.PERMANENT_FAILURE)

        result.elapsed = time.monotonic() - started
        return result

    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[dict],
        json_body: Optional[dict],
        headers: Optional[dict],
        timeout: Optional[float],
    ) -> httpx.Response:
        request_headers = {"User-Agent": self.user_agent}
        if headers:
            request_headers.update(headers)
        async with httpx.AsyncClient(
            timeout=timeout or self.timeout,
            follow_redirects=True,
            headers=request_headers,
            transport=self._transport,
        ) as client:
            return await client.request(method, url, params=params, json=json_body)
