from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from political_news_digest.cache import ResponseCache, cluster_key, filter_key
from political_news_digest.llm import extract_json_array, valid_indices
from political_news_digest.prompts import CLUSTER_SYSTEM, RELEVANCE_SYSTEM, RELEVANCE_USER
from political_news_digest.summarize import title_and_summary
from political_news_digest.types import Article, Subject, pick_thumbnail
from political_news_digest.urls import item_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopicGroup:
    label: str
    indices: tuple[int, ...]


async def filter_for_entity(
    entity: str,
    articles: Sequence[Article],
    llm: Any,
    cache: Optional[ResponseCache] = None,
) -> list[Article]:
    """Articles the relevance collaborator keeps; the input list unchanged on any failure."""

    items = list(articles)
    if llm is None or not items:
        return items

    slim = [{"index": i, "title": a.title, "snippet": a.snippet[:200]} for i, a in enumerate(items)]
    user = RELEVANCE_USER.format(entity=entity, items=json.dumps(slim, ensure_ascii=False, indent=2))

    async def _ask() -> list[int]:
        text = await llm.complete(RELEVANCE_SYSTEM, user, label=f"relevance {entity}")
        parsed = extract_json_array(text)
        if parsed is None:
            raise ValueError("relevance reply is not a JSON array")
        return valid_indices(parsed, len(items))

    try:
        if cache is None:
            keep = await _ask()
        else:
            keep = await cache.get_or_compute(filter_key(entity, items), _ask)
    except Exception as exc:
        logger.warning("Relevance filter for %s failed, keeping all %d: %s", entity, len(items), exc)
        return items

    logger.info("Relevance filter for %s kept %d/%d", entity, len(keep), len(items))
    return [items[i] for i in keep]


def parse_groups(
    raw: Any,
    size: int,
    entity: str,
    *,
    max_groups: int = 3,
    max_items: int = 5,
) -> list[TopicGroup]:
    """Validate a clustering reply: bad indices dropped, empty groups dropped, bounds applied."""

    if not isinstance(raw, list):
        return []
    groups: list[TopicGroup] = []
    for g in raw:
        if len(groups) >= max_groups:
            break
        if not isinstance(g, dict):
            continue
        idx = valid_indices(g.get("indices"), size)[:max_items]
        if not idx:
            continue
        label = g.get("label")
        label = str(label).strip() if label is not None else ""
        groups.append(TopicGroup(label=label or f"Subiect {entity}", indices=tuple(idx)))
    return groups


async def cluster_for_entity(
    entity: str,
    articles: Sequence[Article],
    llm: Any,
    cache: Optional[ResponseCache] = None,
    *,
    max_groups: int = 3,
    max_items: int = 5,
) -> list[TopicGroup]:
    """Ask the clustering collaborator for topic groups. Never raises; failure means no topics."""

    items = list(articles)
    if llm is None or not items:
        return []

    system = CLUSTER_SYSTEM.format(max_groups=max_groups, max_items=max_items)
    user = json.dumps(
        {
            "entity": entity,
            "items": [
                {"index": i, "title": a.title, "source": a.source, "link": a.link, "date": a.date}
                for i, a in enumerate(items)
            ],
        },
        ensure_ascii=False,
        indent=2,
    )

    async def _ask() -> list[TopicGroup]:
        text = await llm.complete(system, user, label=f"cluster {entity}")
        parsed = extract_json_array(text)
        if parsed is None:
            raise ValueError("clustering reply is not a JSON array")
        return parse_groups(parsed, len(items), entity, max_groups=max_groups, max_items=max_items)

    try:
        if cache is None:
            groups = await _ask()
        else:
            groups = await cache.get_or_compute(cluster_key(entity, items), _ask)
    except Exception as exc:
        logger.error("Clustering failed for %s: %s", entity, exc)
        return []

    logger.info("Found %d clusters for %s", len(groups), entity)
    return groups


def unique_items(items: Sequence[Article], limit: int = 5) -> list[Article]:
    """First article per URL signature, at most ``limit``."""

    seen: set[str] = set()
    out: list[Article] = []
    for a in items:
        sig = item_signature(a)
        if sig in seen:
            continue
        seen.add(sig)
        out.append(a)
        if len(out) >= limit:
            break
    return out


async def build_subjects(
    entity: str,
    articles: Sequence[Article],
    groups: Sequence[TopicGroup],
    llm: Any = None,
    cache: Optional[ResponseCache] = None,
    *,
    max_items: int = 5,
) -> list[Subject]:
    subjects: list[Subject] = []
    for g in groups:
        subset = unique_items([articles[i] for i in g.indices if 0 <= i < len(articles)], max_items)
        if not subset:
            continue
        ts = await title_and_summary(subset, llm, cache)
        subjects.append(
            Subject(
                label=g.label or ts.title or f"Subiect {len(subjects) + 1}",
                titlu_ro=ts.title,
                sumar_ro=ts.summary,
                items=subset,
                thumbnail=pick_thumbnail(subset),
            )
        )
    logger.debug("%s: built %d subjects", entity, len(subjects))
    return subjects
