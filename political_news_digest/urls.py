from __future__ import annotations

import hashlib
from typing import Iterable
from urllib.parse import unquote_plus, urlsplit, urlunsplit

from political_news_digest.types import Article


TRACKING_PARAM_PREFIXES = (
    "utm_",
    "gclid",
    "fbclid",
    "yclid",
    "mc_cid",
    "mc_eid",
)


def _is_tracking_param(pair: str) -> bool:
    key = unquote_plus(pair.split("=", 1)[0]).lower()
    return any(key.startswith(prefix) for prefix in TRACKING_PARAM_PREFIXES)


def canonicalize_url(url: str) -> str:
    """Remove the fragment and tracking params; other params keep their order and encoding.

    Anything that is not an absolute URL comes back unchanged.
    """

    if not isinstance(url, str) or not url:
        return url
    try:
        p = urlsplit(url.strip())
    except ValueError:
        return url
    if not p.scheme or not p.netloc:
        return url

    kept = [pair for pair in p.query.split("&") if pair and not _is_tracking_param(pair)]
    return urlunsplit(p._replace(query="&".join(kept), fragment=""))


def is_absolute_url(url: str) -> bool:
    try:
        p = urlsplit(url)
        return p.scheme.lower() in {"http", "https"} and bool(p.hostname)
    except (ValueError, AttributeError):
        return False


def domain_of(url: str) -> str:
    try:
        host = urlsplit(url).hostname or ""
    except (ValueError, AttributeError):
        return ""
    return host.lower().removeprefix("www.")


def item_signature(article: Article) -> str:
    """Identity key of an article: origin + path of its canonical link."""

    u = canonicalize_url(article.link or "")
    try:
        p = urlsplit(u)
        host = (p.hostname or "").lower()
        if not p.scheme or not host:
            return u
        if p.port is not None:
            host = f"{host}:{p.port}"
        return f"{p.scheme.lower()}://{host}{p.path or '/'}"
    except ValueError:
        return u


def signature_set(items: Iterable[Article]) -> frozenset[str]:
    return frozenset(item_signature(a) for a in items)


def topic_signature(items: Iterable[Article]) -> str:
    """Order-independent, run-stable key of a topic's article set."""

    joined = "|".join(sorted(signature_set(items)))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]
