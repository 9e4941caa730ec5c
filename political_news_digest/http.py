from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int
    base_delay_seconds: float
    max_delay_seconds: float
    retry_statuses: set[int] = field(default_factory=set)

    def delay_for(self, attempt: int) -> float:
        delay = min(self.max_delay_seconds, self.base_delay_seconds * (2 ** (attempt - 1)))
        # jitter to avoid thundering herd
        return delay * random.uniform(0.7, 1.3)


class RateLimiter:
    """Token bucket over a rolling window, one bucket per key, asyncio primitives.

    Callers that find the bucket full sleep until the oldest token expires.
    """

    def __init__(self, max_requests_per_period: int, period_seconds: float) -> None:
        self._max = max_requests_per_period
        self._period = period_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._times: dict[str, list[float]] = {}

    async def acquire(self, key: str = "default") -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        loop = asyncio.get_running_loop()

        while True:
            async with lock:
                now = loop.time()
                times = self._times.setdefault(key, [])
                cutoff = now - self._period
                while times and times[0] <= cutoff:
                    times.pop(0)

                if len(times) < self._max:
                    times.append(now)
                    return

                # wait until the oldest token expires
                wait_for = (times[0] + self._period) - now

            await asyncio.sleep(max(0.0, wait_for))


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    retry: RetryPolicy,
    *,
    limiter: Optional[RateLimiter] = None,
    limiter_key: str = "default",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    label: str = "call",
) -> T:
    """Run ``fn`` under the limiter, retrying transient failures with backoff.

    The last failure is re-raised once ``max_attempts`` is exhausted; errors
    outside ``retry_on`` are raised immediately.
    """

    attempts = max(1, retry.max_attempts)
    for attempt in range(1, attempts + 1):
        if limiter is not None:
            await limiter.acquire(limiter_key)
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", label, attempt, exc)
                raise
            delay = retry.delay_for(attempt)
            logger.warning("Retry %d/%d for %s after error: %s", attempt, attempts, label, exc)
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")


class HttpClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        limiter: RateLimiter,
        retry: RetryPolicy,
        semaphore: asyncio.Semaphore,
        user_agent: str,
        timeout_seconds: int,
    ) -> None:
        self._session = session
        self._limiter = limiter
        self._retry = retry
        self._sem = semaphore
        self._ua = user_agent
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _get_once(self, url: str) -> Optional[str]:
        headers = {
            "User-Agent": self._ua,
            "Accept": "application/rss+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "ro-RO,ro;q=0.9,en;q=0.8",
        }
        async with self._sem:
            async with self._session.get(url, headers=headers, timeout=self._timeout) as r:
                status = r.status
                if status in self._retry.retry_statuses:
                    raise aiohttp.ClientResponseError(
                        request_info=r.request_info,
                        history=r.history,
                        status=status,
                        message=f"retryable status {status}",
                        headers=r.headers,
                    )
                if status >= 400:
                    logger.warning("GET %s returned %d", url, status)
                    return None
                return await r.text(errors="ignore")

    async def get_text(self, url: str) -> Optional[str]:
        try:
            return await call_with_retry(
                lambda: self._get_once(url),
                self._retry,
                limiter=self._limiter,
                limiter_key="http",
                retry_on=(aiohttp.ClientError, asyncio.TimeoutError),
                label=f"GET {url}",
            )
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return None
