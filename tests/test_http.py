"""Tests for political_news_digest.http module."""

import asyncio
from types import SimpleNamespace

import pytest

from political_news_digest.http import HttpClient, RateLimiter, RetryPolicy, call_with_retry


def _no_wait(attempts: int = 3, statuses: set[int] | None = None) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=attempts,
        base_delay_seconds=0,
        max_delay_seconds=0,
        retry_statuses=statuses or set(),
    )


class CountingLimiter:
    def __init__(self) -> None:
        self.keys: list[str] = []

    async def acquire(self, key: str = "default") -> None:
        self.keys.append(key)


class TestRetryPolicy:
    def test_delay_grows_and_is_capped(self) -> None:
        p = RetryPolicy(max_attempts=5, base_delay_seconds=1, max_delay_seconds=10)
        assert 0.7 <= p.delay_for(1) <= 1.3
        assert 2.8 <= p.delay_for(3) <= 5.2
        assert p.delay_for(10) <= 13.0


class TestCallWithRetry:
    def test_retries_transient_failures(self) -> None:
        calls = []

        async def flaky() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        result = asyncio.run(call_with_retry(flaky, _no_wait(), retry_on=(ConnectionError,)))
        assert result == "ok"
        assert len(calls) == 3

    def test_reraises_after_last_attempt(self) -> None:
        calls = []

        async def broken() -> str:
            calls.append(1)
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            asyncio.run(call_with_retry(broken, _no_wait(3), retry_on=(ConnectionError,)))
        assert len(calls) == 3

    def test_other_errors_not_retried(self) -> None:
        calls = []

        async def wrong() -> str:
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            asyncio.run(call_with_retry(wrong, _no_wait(3), retry_on=(ConnectionError,)))
        assert len(calls) == 1

    def test_limiter_acquired_per_attempt(self) -> None:
        limiter = CountingLimiter()
        calls = []

        async def flaky() -> str:
            calls.append(1)
            if len(calls) < 2:
                raise ConnectionError("reset")
            return "ok"

        asyncio.run(
            call_with_retry(flaky, _no_wait(), limiter=limiter, limiter_key="openai", retry_on=(ConnectionError,))
        )
        assert limiter.keys == ["openai", "openai"]


class TestRateLimiter:
    def test_blocks_when_bucket_full(self) -> None:
        async def scenario() -> None:
            limiter = RateLimiter(max_requests_per_period=2, period_seconds=60)
            await limiter.acquire()
            await limiter.acquire()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(limiter.acquire(), timeout=0.05)

        asyncio.run(scenario())

    def test_keys_have_separate_buckets(self) -> None:
        async def scenario() -> None:
            limiter = RateLimiter(max_requests_per_period=1, period_seconds=60)
            await limiter.acquire("http")
            await asyncio.wait_for(limiter.acquire("openai"), timeout=0.5)

        asyncio.run(scenario())

    def test_capacity_returns_after_period(self) -> None:
        async def scenario() -> None:
            limiter = RateLimiter(max_requests_per_period=1, period_seconds=0.05)
            await limiter.acquire()
            await asyncio.wait_for(limiter.acquire(), timeout=1.0)

        asyncio.run(scenario())


class FakeResponse:
    def __init__(self, status: int, body: str = "") -> None:
        self.status = status
        self._body = body
        self.request_info = SimpleNamespace(real_url="https://x.ro/rss")
        self.history = ()
        self.headers = {}

    async def text(self, errors: str = "strict") -> str:
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc) -> None:
        return None


class FakeSession:
    def __init__(self, statuses: list[int], body: str = "<rss/>") -> None:
        self._statuses = list(statuses)
        self._body = body
        self.requests: list[tuple[str, dict]] = []

    def get(self, url: str, headers: dict, timeout) -> FakeResponse:
        self.requests.append((url, headers))
        status = self._statuses.pop(0) if len(self._statuses) > 1 else self._statuses[0]
        return FakeResponse(status, self._body)


def _client(session: FakeSession) -> HttpClient:
    return HttpClient(
        session=session,
        limiter=RateLimiter(100, 60),
        retry=_no_wait(3, {503}),
        semaphore=asyncio.Semaphore(2),
        user_agent="test-agent",
        timeout_seconds=5,
    )


class TestHttpClient:
    def test_returns_body_and_sends_user_agent(self) -> None:
        session = FakeSession([200], "<rss>ok</rss>")

        async def scenario() -> str | None:
            return await _client(session).get_text("https://x.ro/rss")

        assert asyncio.run(scenario()) == "<rss>ok</rss>"
        assert session.requests[0][1]["User-Agent"] == "test-agent"

    def test_client_error_status_returns_none_without_retry(self) -> None:
        session = FakeSession([404])

        async def scenario() -> str | None:
            return await _client(session).get_text("https://x.ro/rss")

        assert asyncio.run(scenario()) is None
        assert len(session.requests) == 1

    def test_retryable_status_retried_then_gives_up(self) -> None:
        session = FakeSession([503])

        async def scenario() -> str | None:
            return await _client(session).get_text("https://x.ro/rss")

        assert asyncio.run(scenario()) is None
        assert len(session.requests) == 3

    def test_retryable_status_recovers(self) -> None:
        session = FakeSession([503, 200], "<rss/>")

        async def scenario() -> str | None:
            return await _client(session).get_text("https://x.ro/rss")

        assert asyncio.run(scenario()) == "<rss/>"
        assert len(session.requests) == 2
