"""Tests for political_news_digest.collapse module."""

import asyncio
from itertools import combinations

from political_news_digest.collapse import (
    DisjointSet,
    collapse_by_overlap,
    collapse_cross_entity,
    collapse_with_llm,
    merge_items,
)
from political_news_digest.entities import COALITION, GOVERNMENT, LOCAL, PARLIAMENT, PRESIDENCY
from political_news_digest.types import Article, EntityBucket, Subject
from political_news_digest.urls import domain_of, signature_set


def art(domain: str, slug: str, title: str = "Bugetul pe 2027", thumbnail: str | None = None) -> Article:
    return Article(title=title, link=f"https://{domain}/{slug}", source=domain, thumbnail=thumbnail)


def subject(titlu: str, *items: Article) -> Subject:
    return Subject(label=titlu, titlu_ro=titlu, items=list(items))


def assert_no_overlap(buckets: list[EntityBucket], min_overlap: int = 2) -> None:
    subjects = [s for b in buckets for s in b.subjects]
    for s1, s2 in combinations(subjects, 2):
        assert len(signature_set(s1.items) & signature_set(s2.items)) < min_overlap


class FakeLlm:
    def __init__(self, reply: str | Exception) -> None:
        self.reply = reply
        self.users: list[str] = []

    async def complete(self, system: str, user: str, *, label: str = "chat") -> str:
        self.users.append(user)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


A1, B1, B2, C1 = art("a.ro", "1"), art("b.ro", "1"), art("b.ro", "2"), art("c.ro", "1")


class TestDisjointSet:
    def test_union_and_find(self) -> None:
        ds = DisjointSet(["a", "b", "c", "d"])
        ds.union("a", "b")
        ds.union("b", "c")
        assert ds.find("c") == ds.find("a") == "a"
        assert ds.find("d") == "d"
        assert ds.groups() == {"a": ["a", "b", "c"], "d": ["d"]}


class TestMergeItems:
    def test_first_seen_order_and_truncation(self) -> None:
        s1 = subject("x", A1, B1)
        s2 = subject("y", B1, *(art("d.ro", str(i)) for i in range(6)))
        merged = merge_items([s1, s2], 5)
        assert merged[:2] == [A1, B1]
        assert len(merged) == 5


class TestCollapseByOverlap:
    def test_two_shared_articles_merge_under_higher_score(self) -> None:
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul și premierul aprobă bugetul", A1, B1, B2)]),
            EntityBucket(PARLIAMENT, [subject("Bugetul ajunge în Parlament", B1, B2, C1)]),
        ]
        collapse_by_overlap(buckets)
        assert len(buckets[0].subjects) == 1
        assert buckets[1].subjects == []
        merged = buckets[0].subjects[0]
        assert merged.items == [A1, B1, B2, C1]
        assert {domain_of(a.link) for a in merged.items} == {"a.ro", "b.ro", "c.ro"}

    def test_owner_follows_keywords_not_order(self) -> None:
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Bugetul pe 2027", A1, B1, B2)]),
            EntityBucket(PARLIAMENT, [subject("Parlamentul și Senatul votează bugetul", B1, B2, C1)]),
        ]
        collapse_by_overlap(buckets)
        assert buckets[0].subjects == []
        assert len(buckets[1].subjects) == 1
        assert len(buckets[1].subjects[0].items) == 4

    def test_single_shared_article_is_not_a_merge(self) -> None:
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul", A1, B1)]),
            EntityBucket(PARLIAMENT, [subject("Parlamentul", B1, C1)]),
        ]
        collapse_by_overlap(buckets)
        assert [len(b.subjects) for b in buckets] == [1, 1]

    def test_min_overlap_is_configurable(self) -> None:
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul", A1, B1)]),
            EntityBucket(PARLIAMENT, [subject("Parlamentul", B1, C1)]),
        ]
        collapse_by_overlap(buckets, min_overlap=1)
        assert sum(len(b.subjects) for b in buckets) == 1

    def test_tie_break_is_deterministic(self) -> None:
        def run() -> list[int]:
            buckets = [
                EntityBucket(GOVERNMENT, [subject("Guvernul trimite legea", A1, B1, B2)]),
                EntityBucket(PARLIAMENT, [subject("Legea ajunge în Parlament", B1, B2, C1)]),
            ]
            collapse_by_overlap(buckets)
            return [len(b.subjects) for b in buckets]

        assert all(run() == [1, 0] for _ in range(5))

    def test_owner_falls_back_to_member_in_priority_order(self) -> None:
        buckets = [
            EntityBucket(COALITION, [subject("Guvernul și premierul", A1, B1, B2)]),
            EntityBucket(LOCAL, [subject("Ministrul vine la Cluj", B1, B2, C1)]),
        ]
        collapse_by_overlap(buckets)
        assert len(buckets[0].subjects) == 1
        assert buckets[1].subjects == []

    def test_identical_topics_collapse_even_with_one_item(self) -> None:
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul", A1)]),
            EntityBucket(PARLIAMENT, [subject("Guvernul", art("a.ro", "1?utm_source=x"))]),
        ]
        stats = collapse_by_overlap(buckets)
        assert sum(len(b.subjects) for b in buckets) == 1
        assert stats.overlap_merges == 1

    def test_duplicates_within_a_bucket_removed(self) -> None:
        buckets = [EntityBucket(GOVERNMENT, [subject("Guvernul", A1, B1), subject("Guvernul bis", B1, A1)])]
        collapse_by_overlap(buckets)
        assert len(buckets[0].subjects) == 1

    def test_merged_union_overlapping_third_topic(self) -> None:
        p, q, r = art("p.ro", "1"), art("q.ro", "1"), art("r.ro", "1")
        x1, x2 = art("x.ro", "1"), art("x.ro", "2")
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul", x1, x2, p)]),
            EntityBucket(PARLIAMENT, [subject("Parlamentul", x1, x2, q)]),
            EntityBucket(COALITION, [subject("PSD", p, q, r)]),
        ]
        stats = collapse_by_overlap(buckets)
        assert_no_overlap(buckets)
        assert sum(len(b.subjects) for b in buckets) == 1
        assert stats.overlap_rounds >= 2

    def test_invariant_on_a_busy_day(self) -> None:
        pool = [art(f"s{i % 4}.ro", str(i)) for i in range(12)]
        buckets = [
            EntityBucket(PRESIDENCY, [subject("Cotroceni", *pool[0:4]), subject("Președintele", *pool[8:11])]),
            EntityBucket(GOVERNMENT, [subject("Guvernul", *pool[2:6]), subject("Ministrul", pool[11], pool[0])]),
            EntityBucket(PARLIAMENT, [subject("Senatul", *pool[5:9])]),
            EntityBucket(COALITION, [subject("PNL", pool[11], pool[7], pool[1])]),
        ]
        collapse_by_overlap(buckets)
        assert_no_overlap(buckets)
        for b in buckets:
            for s in b.subjects:
                assert len(s.items) <= 5

    def test_thumbnail_filled_from_merged_items(self) -> None:
        pic = art("b.ro", "2", thumbnail="https://b.ro/p.jpg")
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul și premierul", A1, B1, pic)]),
            EntityBucket(PARLIAMENT, [subject("Parlament", B1, pic, C1)]),
        ]
        collapse_by_overlap(buckets)
        assert buckets[0].subjects[0].thumbnail == "https://b.ro/p.jpg"


class TestCollapseWithLlm:
    def _buckets(self) -> list[EntityBucket]:
        return [
            EntityBucket(PRESIDENCY, [subject("Președintele la Bruxelles", A1)]),
            EntityBucket(GOVERNMENT, [subject("Vizita președintelui", B1), subject("Bugetul", B2)]),
            EntityBucket(PARLIAMENT, [subject("Senatul", C1)]),
        ]

    def test_groups_disjoint_topics(self) -> None:
        buckets = self._buckets()
        llm = FakeLlm('[{"indices": [0, 1]}]')
        stats = asyncio.run(collapse_with_llm(buckets, llm))
        assert stats.llm_groups == 1
        assert [len(b.subjects) for b in buckets] == [1, 1, 1]
        assert buckets[0].subjects[0].items == [A1, B1]
        assert buckets[1].subjects[0].titlu_ro == "Bugetul"

    def test_index_used_once(self) -> None:
        buckets = self._buckets()
        llm = FakeLlm('[{"indices": [0, 1]}, {"indices": [1, 3]}]')
        asyncio.run(collapse_with_llm(buckets, llm))
        assert [len(b.subjects) for b in buckets] == [1, 1, 1]

    def test_failures_leave_buckets_alone(self) -> None:
        for reply in (ConnectionError("down"), "nu", "[]", '[{"indices": [42]}]'):
            buckets = self._buckets()
            stats = asyncio.run(collapse_with_llm(buckets, FakeLlm(reply)))
            assert [len(b.subjects) for b in buckets] == [1, 2, 1]
            assert stats.llm_removed == 0

    def test_payload_is_bounded(self) -> None:
        items = [art(f"d{i}.ro", str(i)) for i in range(8)]
        buckets = [EntityBucket(GOVERNMENT, [subject(f"S{i}", *items) if i == 0 else subject(f"S{i}", items[i]) for i in range(5)])]
        llm = FakeLlm("[]")
        asyncio.run(collapse_with_llm(buckets, llm, max_subjects=3, max_domains=6))
        user = llm.users[0]
        assert '"S2"' in user and '"S3"' not in user
        assert '"d6.ro"' not in user
        assert '"d5.ro"' in user


class TestCollapseCrossEntity:
    def test_buckets_sorted_by_priority(self) -> None:
        buckets = [
            EntityBucket(LOCAL, [subject("Primăria", art("l.ro", "1"))]),
            EntityBucket(PARLIAMENT, [subject("Senatul", C1)]),
            EntityBucket(PRESIDENCY, [subject("Cotroceni", A1)]),
        ]
        asyncio.run(collapse_cross_entity(buckets))
        assert [b.name for b in buckets] == [PRESIDENCY, PARLIAMENT, LOCAL]

    def test_collaborator_failure_keeps_overlap_result(self) -> None:
        buckets = [
            EntityBucket(GOVERNMENT, [subject("Guvernul și premierul", A1, B1, B2)]),
            EntityBucket(PARLIAMENT, [subject("Parlament", B1, B2, C1)]),
        ]
        stats = asyncio.run(collapse_cross_entity(buckets, FakeLlm(ConnectionError("down"))))
        assert (stats.topics_in, stats.topics_out) == (2, 1)

    def test_collaborator_merge_followed_by_overlap_pass(self) -> None:
        p, q = art("p.ro", "1"), art("q.ro", "1")
        buckets = [
            EntityBucket(PRESIDENCY, [subject("Cotroceni", A1, p)]),
            EntityBucket(GOVERNMENT, [subject("Guvernul", B1, q)]),
            EntityBucket(PARLIAMENT, [subject("Parlamentul", p, q, C1)]),
        ]
        llm = FakeLlm('[{"indices": [0, 1]}]')
        stats = asyncio.run(collapse_cross_entity(buckets, llm))
        assert stats.llm_groups == 1
        assert_no_overlap(buckets)
        assert stats.topics_out == 1

    def test_llm_stage_can_be_disabled(self) -> None:
        buckets = [
            EntityBucket(PRESIDENCY, [subject("Cotroceni", A1)]),
            EntityBucket(GOVERNMENT, [subject("Guvernul", B1)]),
        ]
        llm = FakeLlm('[{"indices": [0, 1]}]')
        asyncio.run(collapse_cross_entity(buckets, llm, llm_enabled=False))
        assert llm.users == []
        assert [len(b.subjects) for b in buckets] == [1, 1]
