"""httpx transport with retry on 429/503 and transient transport errors."""

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

log = structlog.get_logger(__name__)

_DEFAULT_RETRYABLE = frozenset({429, 503})


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    """Parse ``Retry-After`` (seconds form only). None if missing or invalid."""
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except (ValueError, TypeError):
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx transport and retries failed attempts.

    Retries on retryable status codes (429, 503 by default) and on
    ``httpx.TransportError`` (connect errors, read timeouts, ...), up to
    *max_retries* times after the first attempt. Delays grow
    exponentially with jitter and honour ``Retry-After`` when present.
    Cancellation is never retried.
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        max_backoff: float = 30.0,
        retryable_status_codes: frozenset[int] = _DEFAULT_RETRYABLE,
    ) -> None:
        self._wrapped = wrapped
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._retryable = retryable_status_codes

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._wrapped.handle_async_request(request)
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    raise
                delay = self._backoff(attempt)
                log.info(
                    "http_retry",
                    url=str(request.url),
                    error=type(exc).__name__,
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                )
            else:
                if response.status_code not in self._retryable or attempt >= self._max_retries:
                    return response
                await response.aread()
                await response.aclose()
                delay = self._compute_delay(response, attempt)
                log.info(
                    "http_retry",
                    url=str(request.url),
                    status=response.status_code,
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                )

            await asyncio.sleep(delay)
            attempt += 1

    def _compute_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = _parse_retry_after(response.headers)
        if retry_after is not None:
            return min(retry_after, self._max_backoff)
        return self._backoff(attempt)

    def _backoff(self, attempt: int) -> float:
        delay = self._backoff_base * (2**attempt)
        jitter = random.uniform(0, self._backoff_base)  # noqa: S311
        return min(delay + jitter, self._max_backoff)

    async def aclose(self) -> None:
        await self._wrapped.aclose()
