from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from zoneinfo import ZoneInfo

import aiohttp

from political_news_digest.cache import ResponseCache
from political_news_digest.cluster import build_subjects, cluster_for_entity, filter_for_entity
from political_news_digest.collapse import collapse_cross_entity
from political_news_digest.config import Config
from political_news_digest.dedup import dedupe, dedupe_exact
from political_news_digest.entities import ENTITY_ORDER, entity_pool, passes_entity_rules
from political_news_digest.http import HttpClient, RateLimiter, RetryPolicy
from political_news_digest.llm import LlmClient, make_llm_client
from political_news_digest.rss import parse_feed
from political_news_digest.storage import report_to_frame, upsert_file, write_report, write_run_log
from political_news_digest.timefilter import within_window
from political_news_digest.types import Article, EntityBucket, Report

logger = logging.getLogger(__name__)


def make_retry(cfg: Config) -> RetryPolicy:
    return RetryPolicy(**cfg.retry)


def make_limiter(cfg: Config) -> RateLimiter:
    requests, period = cfg.rate_limit
    return RateLimiter(max_requests_per_period=requests, period_seconds=period)


def build_llm(
    cfg: Config,
    api_key: Optional[str],
    limiter: RateLimiter,
    retry: RetryPolicy,
    cache: Optional[ResponseCache] = None,
) -> Optional[LlmClient]:
    llm_cfg = cfg.llm
    if not llm_cfg["enabled"]:
        logger.info("Text-understanding collaborators disabled by configuration")
        return None
    if not api_key:
        logger.warning("No OpenAI key found; running without collaborators")
        return None
    return make_llm_client(
        api_key,
        model=llm_cfg["model"],
        embedding_model=llm_cfg["embedding_model"],
        limiter=limiter,
        retry=retry,
        cache=cache,
        timeout_seconds=llm_cfg["timeout_seconds"],
    )


async def fetch_articles(client: HttpClient, feeds: Sequence[str]) -> list[Article]:
    """All feeds fetched concurrently; result keeps feed order, one article per link."""

    texts = await asyncio.gather(*(client.get_text(u) for u in feeds))
    articles: list[Article] = []
    for url, text in zip(feeds, texts, strict=True):
        if not text:
            logger.warning("Feed %s returned nothing", url)
            continue
        articles.extend(parse_feed(text, url))
    unique = dedupe_exact(articles)
    logger.info("Fetched %d articles (%d unique) from %d feeds", len(articles), len(unique), len(feeds))
    return unique


async def process_entity(
    name: str,
    articles: Sequence[Article],
    cfg: Config,
    *,
    now: datetime,
    llm: Any = None,
    cache: Optional[ResponseCache] = None,
) -> tuple[EntityBucket, dict[str, Any]]:
    """Pool, filter, dedup and cluster one entity's articles."""

    filters = cfg.filters
    llm_cfg = cfg.llm
    clustering = cfg.clustering
    tz = ZoneInfo(cfg.timezone)

    pool = entity_pool(name, articles)
    recent = [a for a in pool if within_window(a.date, now, filters["time_window_hours"], tz)]
    ruled = [a for a in recent if passes_entity_rules(name, a)]
    relevant = await filter_for_entity(name, ruled, llm, cache)

    deduped, stats = await dedupe(
        relevant,
        llm,
        cache,
        embedding_similarity=filters["embedding_similarity"],
        jw_similarity=filters["jw_similarity"],
        fold_diacritics=filters["fold_diacritics"],
        batch_size=llm_cfg["embedding_batch_size"],
        max_input_chars=llm_cfg["max_input_chars"],
        title_merge=filters["title_merge_enabled"],
        title_merge_max=filters["title_merge_max"],
        label=name,
    )
    capped = deduped[: filters["max_articles_per_entity"]]

    groups = await cluster_for_entity(
        name,
        capped,
        llm,
        cache,
        max_groups=clustering["max_groups"],
        max_items=clustering["max_items"],
    )
    subjects = await build_subjects(name, capped, groups, llm, cache, max_items=clustering["max_items"])

    logger.info(
        "%s: %d pooled -> %d recent -> %d ruled -> %d relevant -> %d deduped -> %d subjects",
        name,
        len(pool),
        len(recent),
        len(ruled),
        len(relevant),
        len(deduped),
        len(subjects),
    )
    log = {
        "pooled": len(pool),
        "recent": len(recent),
        "filtered": len(ruled),
        "relevant": len(relevant),
        "dedup": stats.as_dict(),
        "clustered": len(capped),
        "subjects": len(subjects),
    }
    return EntityBucket(name=name, subjects=subjects), log


async def build_report(
    articles: Sequence[Article],
    cfg: Config,
    *,
    llm: Any = None,
    cache: Optional[ResponseCache] = None,
    now: Optional[datetime] = None,
    entities: Sequence[str] = ENTITY_ORDER,
) -> tuple[Report, dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    cache = cache if cache is not None else ResponseCache()

    results = await asyncio.gather(
        *(process_entity(name, articles, cfg, now=now, llm=llm, cache=cache) for name in entities),
        return_exceptions=True,
    )

    buckets: list[EntityBucket] = []
    entity_logs: dict[str, Any] = {}
    for name, result in zip(entities, results, strict=True):
        if isinstance(result, BaseException):
            logger.error("Entity %s failed, reporting it empty: %s", name, result)
            buckets.append(EntityBucket(name=name))
            entity_logs[name] = {"error": str(result)}
            continue
        bucket, log = result
        buckets.append(bucket)
        entity_logs[name] = log

    collapse = cfg.collapse
    stats = await collapse_cross_entity(
        buckets,
        llm,
        cache,
        min_overlap=collapse["min_overlap"],
        max_items=collapse["max_items"],
        llm_enabled=collapse["llm_enabled"],
        max_subjects=collapse["llm_max_subjects"],
        max_domains=collapse["llm_max_domains"],
        priority=list(entities),
    )

    report = Report(
        generated_at=now.astimezone(timezone.utc).isoformat(),
        timezone=cfg.timezone,
        entities=buckets,
    )
    logs = {
        "generatedAt": report.generated_at,
        "articles": len(articles),
        "entities": entity_logs,
        "collapse": stats.as_dict(),
        "cache": {"entries": len(cache), "hits": cache.hits, "misses": cache.misses},
    }
    return report, logs


def persist(cfg: Config, report: Report, logs: dict[str, Any]) -> None:
    write_report(cfg.report_file, report)
    write_run_log(cfg.log_file, logs)
    archive = cfg.archive_file
    if archive is not None:
        frame = report_to_frame(report)
        if not frame.empty:
            upsert_file(archive, frame, key="link")


async def run_pipeline(
    cfg: Config,
    *,
    api_key: Optional[str] = None,
    use_llm: bool = True,
    save: bool = True,
    now: Optional[datetime] = None,
) -> Report:
    limiter = make_limiter(cfg)
    retry = make_retry(cfg)
    cache = ResponseCache()
    llm = build_llm(cfg, api_key, limiter, retry, cache) if use_llm else None

    sem = asyncio.Semaphore(cfg.max_in_flight_requests)
    connector = aiohttp.TCPConnector(limit=cfg.max_connections)

    async with aiohttp.ClientSession(connector=connector) as session:
        client = HttpClient(
            session=session,
            limiter=limiter,
            retry=retry,
            semaphore=sem,
            user_agent=cfg.user_agent,
            timeout_seconds=cfg.timeout_seconds,
        )
        articles = await fetch_articles(client, cfg.feeds)

    report, logs = await build_report(articles, cfg, llm=llm, cache=cache, now=now)

    if save:
        persist(cfg, report, logs)

    total = sum(len(e.subjects) for e in report.entities)
    logger.info("Report ready: %d subjects across %d entities", total, len(report.entities))
    return report
