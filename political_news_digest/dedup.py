from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np

from political_news_digest.cache import ResponseCache, merge_key
from political_news_digest.llm import extract_json_array, valid_indices
from political_news_digest.nlp import normalize_title, title_similarity
from political_news_digest.prompts import JSON_ONLY_SYSTEM, TITLE_MERGE_USER
from political_news_digest.types import Article
from political_news_digest.urls import canonicalize_url, domain_of

logger = logging.getLogger(__name__)


@dataclass
class DedupStats:
    input: int = 0
    after_exact: int = 0
    after_vector: int = 0
    after_fuzzy: int = 0
    after_title_merge: int = 0
    vector_pass: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "afterExact": self.after_exact,
            "afterVector": self.after_vector,
            "afterFuzzy": self.after_fuzzy,
            "afterTitleMerge": self.after_title_merge,
            "vectorPass": self.vector_pass,
        }


def dedupe_exact(articles: Sequence[Article]) -> list[Article]:
    """First occurrence per canonical URL, input order kept."""

    seen: set[str] = set()
    out: list[Article] = []
    for a in articles:
        key = canonicalize_url(a.link)
        if key in seen:
            continue
        seen.add(key)
        out.append(a)
    return out


# --- pass A: vectors -------------------------------------------------------

def embedding_text(article: Article, max_chars: int = 3000) -> str:
    return f"{article.title}\n{article.snippet}"[:max_chars]


def _unit(vec: Optional[Sequence[float]]) -> Optional[np.ndarray]:
    if vec is None:
        return None
    arr = np.asarray(vec, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        return None
    norm = float(np.linalg.norm(arr))
    if not np.isfinite(norm) or norm == 0.0:
        return None
    return arr / norm


async def embed_articles(
    articles: Sequence[Article],
    llm: Any,
    *,
    batch_size: int = 100,
    max_chars: int = 3000,
) -> list[Optional[list[float]]]:
    """One vector per article, ``None`` where its batch failed."""

    vectors: list[Optional[list[float]]] = [None] * len(articles)
    if llm is None:
        return vectors

    step = max(1, batch_size)
    for start in range(0, len(articles), step):
        batch = articles[start:start + step]
        try:
            got = await llm.embed([embedding_text(a, max_chars) for a in batch])
        except Exception as exc:
            logger.warning(
                "Embedding batch %d-%d failed, keeping those articles unvectored: %s",
                start,
                start + len(batch) - 1,
                exc,
            )
            continue
        if len(got) != len(batch):
            logger.warning(
                "Embedding batch %d-%d returned %d vectors for %d texts",
                start,
                start + len(batch) - 1,
                len(got),
                len(batch),
            )
            continue
        vectors[start:start + len(batch)] = got
    return vectors


def dedupe_by_vectors(
    articles: Sequence[Article],
    vectors: Sequence[Optional[Sequence[float]]],
    threshold: float = 0.90,
) -> list[Article]:
    """Greedy first-wins cosine dedup against already kept vectors.

    Articles without a usable vector are kept and never compared.
    """

    kept: list[Article] = []
    kept_vecs: list[np.ndarray] = []
    for a, raw in zip(articles, vectors, strict=True):
        vec = _unit(raw)
        if vec is None:
            kept.append(a)
            continue
        if kept_vecs:
            sims = np.vstack(kept_vecs) @ vec
            if float(sims.max()) >= threshold:
                continue
        kept.append(a)
        kept_vecs.append(vec)
    return kept


# --- pass B: same-domain titles --------------------------------------------

def dedupe_same_domain_titles(
    articles: Sequence[Article],
    threshold: float = 0.92,
    *,
    fold_diacritics: bool = True,
) -> list[Article]:
    kept: list[Article] = []
    by_domain: dict[str, list[str]] = {}
    for a in articles:
        title = normalize_title(a.title, fold_diacritics=fold_diacritics)
        previous = by_domain.setdefault(domain_of(a.link), [])
        if any(title_similarity(title, p) > threshold for p in previous):
            continue
        previous.append(title)
        kept.append(a)
    return kept


# --- optional title-merge pass ---------------------------------------------

def _merge_groups(raw: Optional[list[Any]], size: int) -> list[list[int]]:
    groups: list[list[int]] = []
    for g in raw or []:
        idx = valid_indices(g.get("indices") if isinstance(g, dict) else g, size)
        if len(idx) > 1:
            groups.append(idx)
    return groups


async def merge_similar_titles(
    articles: Sequence[Article],
    llm: Any,
    cache: Optional[ResponseCache] = None,
    *,
    max_items: int = 60,
) -> list[Article]:
    """Drop reworded copies of the same story among the first ``max_items`` articles.

    Each group reported by the collaborator keeps its lowest index. Any failure
    leaves the list unchanged.
    """

    head = list(articles[:max_items])
    if llm is None or len(head) < 2:
        return list(articles)

    payload = json.dumps(
        [{"index": i, "title": a.title, "url": a.link} for i, a in enumerate(head)],
        ensure_ascii=False,
    )

    async def _ask() -> list[list[int]]:
        text = await llm.complete(
            JSON_ONLY_SYSTEM, TITLE_MERGE_USER.format(items=payload), label="title merge"
        )
        parsed = extract_json_array(text)
        if parsed is None:
            raise ValueError("title merge: reply is not a JSON array")
        return _merge_groups(parsed, len(head))

    try:
        if cache is None:
            groups = await _ask()
        else:
            groups = await cache.get_or_compute(merge_key(head), _ask)
    except Exception as exc:
        logger.warning("Title merge skipped: %s", exc)
        return list(articles)

    drop: set[int] = set()
    for g in groups:
        drop.update(i for i in g if i != min(g))
    out = [a for i, a in enumerate(head) if i not in drop]
    return out + list(articles[max_items:])


async def dedupe(
    articles: Sequence[Article],
    llm: Any = None,
    cache: Optional[ResponseCache] = None,
    *,
    embedding_similarity: float = 0.90,
    jw_similarity: float = 0.92,
    fold_diacritics: bool = True,
    batch_size: int = 100,
    max_input_chars: int = 3000,
    title_merge: bool = False,
    title_merge_max: int = 60,
    label: str = "",
) -> tuple[list[Article], DedupStats]:
    stats = DedupStats(input=len(articles))

    out = dedupe_exact(articles)
    stats.after_exact = len(out)

    if llm is not None and out:
        vectors = await embed_articles(out, llm, batch_size=batch_size, max_chars=max_input_chars)
        if any(v is not None for v in vectors):
            stats.vector_pass = True
            out = dedupe_by_vectors(out, vectors, embedding_similarity)
        else:
            logger.warning("%sno embeddings available, vector dedup skipped", f"{label}: " if label else "")
    stats.after_vector = len(out)

    out = dedupe_same_domain_titles(out, jw_similarity, fold_diacritics=fold_diacritics)
    stats.after_fuzzy = len(out)

    if title_merge and llm is not None:
        out = await merge_similar_titles(out, llm, cache, max_items=title_merge_max)
    stats.after_title_merge = len(out)

    logger.info(
        "%sdedup %d -> exact %d -> vector %d -> fuzzy %d -> merged %d",
        f"{label}: " if label else "",
        stats.input,
        stats.after_exact,
        stats.after_vector,
        stats.after_fuzzy,
        stats.after_title_merge,
    )
    return out, stats
