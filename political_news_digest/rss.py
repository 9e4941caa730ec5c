from __future__ import annotations

import logging
from typing import Any

import feedparser

from political_news_digest.extract import extract_text_from_html_fragment, thumbnail_from_entry
from political_news_digest.nlp import normalize_text
from political_news_digest.types import Article
from political_news_digest.urls import canonicalize_url, domain_of, is_absolute_url

logger = logging.getLogger(__name__)


def validate_article(article: Article) -> list[str]:
    errors: list[str] = []
    if not (article.title or "").strip():
        errors.append("Missing title")
    if not (article.link or "").strip():
        errors.append("Missing link")
    elif not is_absolute_url(article.link):
        errors.append("Invalid URL")
    return errors


def entry_to_article(entry: Any, feed_url: str) -> Article:
    title = normalize_text(getattr(entry, "title", None) or "")
    raw_link = (getattr(entry, "link", None) or "").strip()
    summary_html = getattr(entry, "summary", None) or getattr(entry, "description", None) or ""

    date = getattr(entry, "published", None) or getattr(entry, "updated", None) or ""

    return Article(
        title=title,
        link=canonicalize_url(raw_link),
        source=domain_of(raw_link) or domain_of(feed_url),
        date=str(date),
        snippet=extract_text_from_html_fragment(summary_html),
        thumbnail=thumbnail_from_entry(entry, summary_html),
    )


def parse_feed(feed_text: str, feed_url: str) -> list[Article]:
    """Parse a feed document; entries that fail validation are logged and skipped."""

    feed = feedparser.parse(feed_text)
    articles: list[Article] = []
    for e in feed.entries or []:
        a = entry_to_article(e, feed_url)
        errors = validate_article(a)
        if errors:
            logger.warning("Rejected feed entry from %s: %s", feed_url, ", ".join(errors))
            continue
        articles.append(a)

    logger.info("Parsed %d items from %s", len(articles), feed_url)
    return articles
