"""Cross-entity topic collapsing.

Per-entity clustering runs independently, so the same story often shows up
under several entities. This module merges such topics into one, filed under
the entity whose keywords dominate the merged text:

1. topics with an identical article-set signature are grouped;
2. signature groups sharing at least ``min_overlap`` article signatures are
   joined with a disjoint-set structure;
3. every joined bucket with more than one topic is absorbed into the owner's
   topic and the other members are deleted;
4. an optional collaborator pass groups topics that tell the same story
   through disjoint article sets.

Steps 1-3 repeat until nothing merges, and run once more after step 4, so no
two surviving topics share ``min_overlap`` or more articles.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from political_news_digest.cache import ResponseCache, collapse_key
from political_news_digest.entities import ENTITY_ORDER, priority_index, resolve_owner
from political_news_digest.llm import extract_json_array, valid_indices
from political_news_digest.prompts import CROSS_ENTITY_USER, JSON_ONLY_SYSTEM
from political_news_digest.types import Article, EntityBucket, Subject, pick_thumbnail
from political_news_digest.urls import domain_of, item_signature, signature_set, topic_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopicRef:
    entity_index: int
    subject_index: int
    entity: str
    subject: Subject
    signatures: frozenset[str]
    key: str

    @property
    def position(self) -> tuple[int, int]:
        return (self.entity_index, self.subject_index)


@dataclass
class CollapseStats:
    topics_in: int = 0
    topics_out: int = 0
    overlap_rounds: int = 0
    overlap_merges: int = 0
    llm_groups: int = 0
    llm_removed: int = 0
    duplicates_removed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "topicsIn": self.topics_in,
            "topicsOut": self.topics_out,
            "overlapRounds": self.overlap_rounds,
            "overlapMerges": self.overlap_merges,
            "llmGroups": self.llm_groups,
            "llmRemoved": self.llm_removed,
            "duplicatesRemoved": self.duplicates_removed,
        }


class DisjointSet:
    """Union-find over string keys with path compression."""

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._parent: dict[str, str] = {}
        for k in keys:
            self.add(k)

    def add(self, key: str) -> None:
        self._parent.setdefault(key, key)

    def find(self, key: str) -> str:
        root = key
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[key] != root:
            self._parent[key], key = root, self._parent[key]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self._parent[rb] = ra

    def groups(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for k in self._parent:
            out.setdefault(self.find(k), []).append(k)
        return out


def collect_refs(buckets: Sequence[EntityBucket]) -> list[TopicRef]:
    refs: list[TopicRef] = []
    for ei, bucket in enumerate(buckets):
        for si, s in enumerate(bucket.subjects):
            refs.append(
                TopicRef(
                    entity_index=ei,
                    subject_index=si,
                    entity=bucket.name,
                    subject=s,
                    signatures=signature_set(s.items),
                    key=topic_signature(s.items),
                )
            )
    return refs


def subject_text(subject: Subject) -> str:
    titles = " • ".join(a.title for a in subject.items)
    return f"{subject.titlu_ro} {subject.sumar_ro} {titles}"


def merge_items(subjects: Iterable[Subject], max_items: int = 5) -> list[Article]:
    """Union of the subjects' articles by signature, first-seen order, truncated."""

    seen: set[str] = set()
    out: list[Article] = []
    for s in subjects:
        for a in s.items:
            sig = item_signature(a)
            if sig in seen:
                continue
            seen.add(sig)
            out.append(a)
    return out[:max_items]


def _absorb(members: Sequence[TopicRef], max_items: int, priority: Sequence[str]) -> TopicRef:
    """Move the members' articles into the owner's subject and return the owner ref."""

    members = sorted(members, key=lambda r: r.position)
    text = " /// ".join(subject_text(r.subject) for r in members)
    owner = resolve_owner(text, [r.entity for r in members], priority)
    owner_ref = next((r for r in members if r.entity == owner), members[0])

    owner_ref.subject.items = merge_items([r.subject for r in members], max_items)
    if owner_ref.subject.thumbnail is None:
        owner_ref.subject.thumbnail = pick_thumbnail(owner_ref.subject.items)
    logger.debug(
        "Merged %d topics into %s: %s",
        len(members),
        owner_ref.entity,
        owner_ref.subject.titlu_ro or owner_ref.subject.label,
    )
    return owner_ref


def _remove(buckets: Sequence[EntityBucket], doomed: set[tuple[int, int]]) -> int:
    removed = 0
    for ei, bucket in enumerate(buckets):
        kept = [s for si, s in enumerate(bucket.subjects) if (ei, si) not in doomed]
        removed += len(bucket.subjects) - len(kept)
        bucket.subjects = kept
    return removed


def drop_duplicate_signatures(buckets: Sequence[EntityBucket]) -> int:
    """Keep the first subject per topic signature within each bucket."""

    removed = 0
    for bucket in buckets:
        seen: set[str] = set()
        kept: list[Subject] = []
        for s in bucket.subjects:
            key = topic_signature(s.items)
            if key in seen:
                removed += 1
                continue
            seen.add(key)
            kept.append(s)
        bucket.subjects = kept
    return removed


def _overlap_round(
    buckets: Sequence[EntityBucket],
    *,
    min_overlap: int,
    max_items: int,
    priority: Sequence[str],
) -> int:
    refs = collect_refs(buckets)

    by_key: dict[str, list[TopicRef]] = {}
    for r in refs:
        by_key.setdefault(r.key, []).append(r)

    keys = list(by_key)
    ds = DisjointSet(keys)
    for i, ka in enumerate(keys):
        sa = by_key[ka][0].signatures
        for kb in keys[i + 1:]:
            if len(sa & by_key[kb][0].signatures) >= min_overlap:
                ds.union(ka, kb)

    doomed: set[tuple[int, int]] = set()
    merges = 0
    for members_keys in ds.groups().values():
        members = [r for k in members_keys for r in by_key[k]]
        if len(members) <= 1:
            continue
        owner_ref = _absorb(members, max_items, priority)
        doomed.update(r.position for r in members if r is not owner_ref)
        merges += 1

    _remove(buckets, doomed)
    return merges


def collapse_by_overlap(
    buckets: Sequence[EntityBucket],
    *,
    min_overlap: int = 2,
    max_items: int = 5,
    priority: Sequence[str] = ENTITY_ORDER,
    stats: Optional[CollapseStats] = None,
) -> CollapseStats:
    """Signature grouping plus union-find merge, repeated until nothing merges."""

    stats = stats if stats is not None else CollapseStats()
    min_overlap = max(1, min_overlap)
    # every merge removes at least one topic, so this terminates
    while True:
        merges = _overlap_round(buckets, min_overlap=min_overlap, max_items=max_items, priority=priority)
        stats.overlap_rounds += 1
        stats.overlap_merges += merges
        if merges == 0:
            break
    stats.duplicates_removed += drop_duplicate_signatures(buckets)
    return stats


def _llm_payload(sample: Sequence[TopicRef], max_items: int, max_domains: int) -> str:
    rows: list[dict[str, Any]] = []
    for i, r in enumerate(sample):
        s = r.subject
        domains: list[str] = []
        for a in s.items:
            d = domain_of(a.link)
            if d and d not in domains:
                domains.append(d)
        rows.append(
            {
                "index": i,
                "entity": r.entity,
                "title": s.titlu_ro or s.label,
                "summary": s.sumar_ro,
                "items": [a.title for a in s.items[:max_items]],
                "domains": domains[:max_domains],
            }
        )
    return json.dumps(rows, ensure_ascii=False, indent=2)


async def collapse_with_llm(
    buckets: Sequence[EntityBucket],
    llm: Any,
    cache: Optional[ResponseCache] = None,
    *,
    max_subjects: int = 80,
    max_domains: int = 6,
    max_items: int = 5,
    priority: Sequence[str] = ENTITY_ORDER,
    stats: Optional[CollapseStats] = None,
) -> CollapseStats:
    """Collaborator pass for same-story topics with disjoint articles. Never raises."""

    stats = stats if stats is not None else CollapseStats()
    refs = collect_refs(buckets)
    if llm is None or len(refs) < 2:
        return stats

    sample = refs[:max_subjects]
    payload = _llm_payload(sample, max_items, max_domains)

    async def _ask() -> list[Any]:
        text = await llm.complete(
            JSON_ONLY_SYSTEM, CROSS_ENTITY_USER.format(items=payload), label="cross-entity merge"
        )
        parsed = extract_json_array(text)
        if parsed is None:
            raise ValueError("cross-entity reply is not a JSON array")
        return parsed

    try:
        if cache is None:
            groups = await _ask()
        else:
            groups = await cache.get_or_compute(collapse_key(payload), _ask)
    except Exception as exc:
        logger.warning("Cross-entity collaborator pass skipped: %s", exc)
        return stats

    consumed: set[int] = set()
    doomed: set[tuple[int, int]] = set()
    for g in groups:
        raw = g.get("indices") if isinstance(g, dict) else None
        idx = [i for i in valid_indices(raw, len(sample)) if i not in consumed]
        if len(idx) <= 1:
            continue
        members = [sample[i] for i in idx]
        owner_ref = _absorb(members, max_items, priority)
        consumed.update(idx)
        doomed.update(r.position for r in members if r is not owner_ref)
        stats.llm_groups += 1

    stats.llm_removed += _remove(buckets, doomed)
    logger.info(
        "Cross-entity collaborator pass: %d groups, %d topics removed",
        stats.llm_groups,
        stats.llm_removed,
    )
    return stats


async def collapse_cross_entity(
    buckets: list[EntityBucket],
    llm: Any = None,
    cache: Optional[ResponseCache] = None,
    *,
    min_overlap: int = 2,
    max_items: int = 5,
    llm_enabled: bool = True,
    max_subjects: int = 80,
    max_domains: int = 6,
    priority: Sequence[str] = ENTITY_ORDER,
) -> CollapseStats:
    """Collapse ``buckets`` in place and sort them by entity priority."""

    stats = CollapseStats(topics_in=sum(len(b.subjects) for b in buckets))

    collapse_by_overlap(buckets, min_overlap=min_overlap, max_items=max_items, priority=priority, stats=stats)

    if llm_enabled and llm is not None:
        await collapse_with_llm(
            buckets,
            llm,
            cache,
            max_subjects=max_subjects,
            max_domains=max_domains,
            max_items=max_items,
            priority=priority,
            stats=stats,
        )
        # absorbed unions can overlap a third topic
        collapse_by_overlap(buckets, min_overlap=min_overlap, max_items=max_items, priority=priority, stats=stats)

    buckets.sort(key=lambda b: priority_index(b.name, priority))
    stats.topics_out = sum(len(b.subjects) for b in buckets)
    logger.info(
        "Cross-entity collapse: %d -> %d topics (%d overlap merges, %d collaborator groups)",
        stats.topics_in,
        stats.topics_out,
        stats.overlap_merges,
        stats.llm_groups,
    )
    return stats
