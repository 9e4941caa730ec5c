"""OpenAI-backed collaborator client.

Every call goes through the shared rate limiter and the retry policy; the
client itself never swallows errors. Component wrappers (dedup, cluster,
summarize, collapse) decide the fallback value.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Optional

import aiohttp
import openai
from openai import AsyncOpenAI

from political_news_digest.cache import ResponseCache, embedding_key
from political_news_digest.http import RateLimiter, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
    asyncio.TimeoutError,
    aiohttp.ClientError,
)


class CollaboratorError(RuntimeError):
    """A collaborator answered, but with nothing usable."""


_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def extract_json_array(text: Optional[str]) -> Optional[list[Any]]:
    """Parse a JSON array out of a model reply, tolerating prose or code fences around it."""

    if not text:
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        m = _JSON_ARRAY_RE.search(text)
        if not m:
            return None
        try:
            parsed = json.loads(m.group(0))
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, list) else None


def valid_indices(raw: Any, size: int) -> list[int]:
    """Keep integer indices inside ``[0, size)``, first occurrence only."""

    if not isinstance(raw, list):
        return []
    out: list[int] = []
    for x in raw:
        if isinstance(x, bool) or not isinstance(x, int):
            continue
        if 0 <= x < size and x not in out:
            out.append(x)
    return out


class LlmClient:
    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        embedding_model: str,
        limiter: RateLimiter,
        retry: RetryPolicy,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        self._client = client
        self.model = model
        self.embedding_model = embedding_model
        self._limiter = limiter
        self._retry = retry
        self._cache = cache

    async def complete(self, system: str, user: str, *, label: str = "chat") -> str:
        async def _call() -> str:
            r = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            )
            content = r.choices[0].message.content if r.choices else None
            if not content:
                raise CollaboratorError(f"{label}: empty completion")
            return content.strip()

        return await call_with_retry(
            _call,
            self._retry,
            limiter=self._limiter,
            limiter_key="openai",
            retry_on=TRANSIENT_ERRORS,
            label=label,
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """One vector per input text, same order. Raises if the batch fails."""

        if not texts:
            return []

        vectors: list[Optional[list[float]]] = [None] * len(texts)
        missing: list[int] = []
        for i, t in enumerate(texts):
            cached = self._cache.get(embedding_key(self.embedding_model, t)) if self._cache else None
            if cached is not None:
                vectors[i] = cached
            else:
                missing.append(i)

        if missing:
            async def _call() -> list[list[float]]:
                r = await self._client.embeddings.create(
                    model=self.embedding_model,
                    input=[texts[i] for i in missing],
                )
                data = sorted(r.data, key=lambda d: d.index)
                if len(data) != len(missing):
                    raise CollaboratorError(
                        f"embeddings: expected {len(missing)} vectors, got {len(data)}"
                    )
                return [list(d.embedding) for d in data]

            fresh = await call_with_retry(
                _call,
                self._retry,
                limiter=self._limiter,
                limiter_key="openai",
                retry_on=TRANSIENT_ERRORS,
                label="embeddings",
            )
            for i, vec in zip(missing, fresh, strict=True):
                vectors[i] = vec
                if self._cache is not None:
                    self._cache.set(embedding_key(self.embedding_model, texts[i]), vec)

        return [v for v in vectors if v is not None]


def make_llm_client(
    api_key: str,
    *,
    model: str,
    embedding_model: str,
    limiter: RateLimiter,
    retry: RetryPolicy,
    cache: Optional[ResponseCache] = None,
    timeout_seconds: float = 20.0,
) -> LlmClient:
    # retries are ours; the SDK's own would multiply attempts
    client = AsyncOpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
    return LlmClient(
        client,
        model=model,
        embedding_model=embedding_model,
        limiter=limiter,
        retry=retry,
        cache=cache,
    )
