"""Service for executing upstream API calls with automatic retries.

Every physical request passes through the shared RateGate and is bounded
by a per-attempt timeout. Throttling responses (HTTP 429) are retried with
a linear backoff plus random jitter; transport failures and any other
error status are surfaced immediately.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from pollnotify.domain.errors import RateLimited, RetryExhausted, TransportError, UpstreamError
from pollnotify.domain.events.api_events import (
    ApiCallDeferred, ApiCallFailed, ApiCallInitiated, ApiCallSucceeded,
    RetryScheduled, dispatch_event,
)
from pollnotify.infrastructure.resilience.rate_gate import RateGate

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 12
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_MAX_JITTER_S = 2.0
DEFAULT_TIMEOUT_S = 5.0

HTTP_OK = 200
HTTP_TOO_MANY_REQUESTS = 429
ALLOWED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})


def _truncate(s: str, n: int = 200) -> str:
    s = s or ""
    return s if len(s) <= n else s[:n] + "..."


@dataclass
class CallAttempt:
    """State of one physical attempt of a request."""
    url: str
    method: str
    body: Optional[bytes]
    attempt: int


class ResilientCallExecutor:
    """Executes HTTP requests with a rate gate, retries and timeouts."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        rate_gate: RateGate,
        headers: Optional[Dict[str, str]] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_s: float = DEFAULT_BASE_DELAY_S,
        max_jitter_s: float = DEFAULT_MAX_JITTER_S,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        """Initializes the executor.

        Args:
            client: The HTTP client used for physical requests.
            rate_gate: Shared gate bounding concurrent physical requests.
            headers: Headers sent with every request (e.g. the API key).
            max_retries: Maximum number of attempts per request.
            base_delay_s: Backoff unit; attempt ``n`` waits ``n * base_delay_s``.
            max_jitter_s: Upper bound of the random delay added to each backoff.
            timeout_s: Timeout applied to each physical attempt.
        """
        if max_retries <= 0:
            raise ValueError("max_retries must be positive.")
        self.client = client
        self.rate_gate = rate_gate
        self.headers = dict(headers or {})
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.max_jitter_s = max_jitter_s
        self.timeout_s = timeout_s

        logger.info(
            f"ResilientCallExecutor initialized: max_retries={max_retries}, "
            f"base_delay={base_delay_s}s, jitter<={max_jitter_s}s, timeout={timeout_s}s"
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) throttled attempt."""
        return attempt * self.base_delay_s + random.uniform(0, self.max_jitter_s)

    async def execute(self, url: str, method: str = "GET", body: Optional[bytes] = None) -> bytes:
        """Executes a request, retrying while the upstream is throttling.

        Args:
            url: Absolute URL of the endpoint.
            method: One of GET, POST, PUT, DELETE.
            body: Optional raw request payload.

        Returns:
            The raw body of the successful response.

        Raises:
            ValueError: If the URL or method is invalid.
            TransportError: If the network call fails or times out.
            UpstreamError: If the upstream answers with a non-success status.
            RetryExhausted: If every attempt was throttled.
        """
        method = method.upper()
        self._validate(url, method)

        for attempt in range(1, self.max_retries + 1):
            call = CallAttempt(url=url, method=method, body=body, attempt=attempt)
            try:
                return await self._attempt(call)
            except RateLimited:
                if attempt == self.max_retries:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Rate limited calling {method} {url} on attempt {attempt}/{self.max_retries}. "
                    f"Waiting {delay:.2f}s..."
                )
                dispatch_event(RetryScheduled(method=method, url=url, attempt_number=attempt, delay_seconds=delay))
                await asyncio.sleep(delay)
            except (TransportError, UpstreamError) as e:
                logger.error(f"Request {method} {url} failed on attempt {attempt}: {e}")
                dispatch_event(ApiCallFailed(method=method, url=url, error_type=type(e).__name__, error_message=str(e)))
                raise

        error = RetryExhausted(method, url, self.max_retries)
        logger.error(str(error))
        dispatch_event(ApiCallFailed(method=method, url=url, error_type=type(error).__name__, error_message=str(error)))
        raise error

    async def _attempt(self, call: CallAttempt) -> bytes:
        """Performs one physical request holding a rate gate token."""
        headers = dict(self.headers)
        if call.body is not None:
            headers.setdefault("content-type", "application/json")

        if self.rate_gate.is_saturated():
            dispatch_event(ApiCallDeferred(
                method=call.method, url=call.url,
                in_flight=self.rate_gate.in_flight, capacity=self.rate_gate.capacity,
            ))

        async with self.rate_gate.slot():
            dispatch_event(ApiCallInitiated(method=call.method, url=call.url, attempt=call.attempt))
            start_time = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    self.client.request(call.method, call.url, content=call.body, headers=headers),
                    timeout=self.timeout_s,
                )
            except asyncio.TimeoutError as e:
                raise TransportError(call.method, call.url, f"timed out after {self.timeout_s}s") from e
            except httpx.RequestError as e:
                raise TransportError(call.method, call.url, f"{type(e).__name__}: {e}") from e
        latency_ms = (time.perf_counter() - start_time) * 1000

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise RateLimited(call.method, call.url, call.attempt)
        if response.status_code != HTTP_OK:
            raise UpstreamError(call.method, call.url, response.status_code, _truncate(response.text))

        dispatch_event(ApiCallSucceeded(method=call.method, url=call.url, attempt=call.attempt, latency_ms=latency_ms))
        logger.debug(f"{call.method} {call.url} succeeded on attempt {call.attempt} in {latency_ms:.1f}ms")
        return response.content

    @staticmethod
    def _validate(url: str, method: str) -> None:
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise ValueError(f"Malformed URL: {url}") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValueError(f"Malformed URL: {url}")
