from __future__ import annotations

import hashlib
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from political_news_digest.types import Article

logger = logging.getLogger(__name__)


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:24]


# Collaborator answers refer to positions in the submitted list, so keys keep
# the submission order of the links.
def links_key(articles: Iterable[Article]) -> str:
    return _digest("|".join(a.link for a in articles))


def cluster_key(entity: str, articles: Iterable[Article]) -> str:
    return f"cluster:{entity}:{links_key(articles)}"


def filter_key(entity: str, articles: Iterable[Article]) -> str:
    return f"filter:{entity}:{links_key(articles)}"


def title_key(articles: Iterable[Article]) -> str:
    return f"title:{links_key(articles)}"


def merge_key(articles: Iterable[Article]) -> str:
    return f"merge:{links_key(articles)}"


def collapse_key(payload: str) -> str:
    return f"collapse:{_digest(payload)}"


def embedding_key(model: str, text: str) -> str:
    return f"emb:{model}:{_digest(text)}"


class ResponseCache:
    """In-memory store of collaborator results, passed explicitly to each stage.

    Only successful results are stored: a factory that raises leaves no entry,
    so the next identical request tries the collaborator again.
    """

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def get_or_compute(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        if key in self._data:
            self.hits += 1
            logger.debug("Using cached collaborator response for %s", key[:60])
            return self._data[key]
        self.misses += 1
        value = await factory()
        self._data[key] = value
        return value
