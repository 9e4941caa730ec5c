from __future__ import annotations

import re
from typing import Any, Optional

from bs4 import BeautifulSoup

from political_news_digest.nlp import normalize_text
from political_news_digest.urls import is_absolute_url


_NOT_A_PHOTO_RE = re.compile(r"logo|sprite|icon|avatar|pixel|spacer", re.IGNORECASE)


def extract_text_from_html_fragment(html_fragment: str) -> str:
    """Convert an HTML snippet (e.g., RSS description) to plain text."""

    soup = BeautifulSoup(html_fragment or "", "lxml")
    return normalize_text(soup.get_text(" ", strip=True))


def _usable_image(url: Any) -> Optional[str]:
    if not url or not isinstance(url, str):
        return None
    url = url.strip()
    if not is_absolute_url(url) or _NOT_A_PHOTO_RE.search(url):
        return None
    return url


def first_image_src(html_fragment: str) -> Optional[str]:
    if not html_fragment or "<img" not in html_fragment.lower():
        return None
    soup = BeautifulSoup(html_fragment, "lxml")
    for img in soup.find_all("img"):
        src = _usable_image(img.get("src") or img.get("data-src"))
        if src:
            return src
    return None


def thumbnail_from_entry(entry: Any, summary_html: str = "") -> Optional[str]:
    """Best-effort thumbnail lookup on a feedparser entry.

    Order: media:thumbnail, media:content images, image enclosures, then the
    first <img> inside the description.
    """

    for media in getattr(entry, "media_thumbnail", None) or []:
        src = _usable_image(media.get("url"))
        if src:
            return src

    for media in getattr(entry, "media_content", None) or []:
        medium = str(media.get("medium") or "")
        mime = str(media.get("type") or "")
        if medium == "image" or mime.startswith("image/"):
            src = _usable_image(media.get("url"))
            if src:
                return src

    for enc in getattr(entry, "enclosures", None) or []:
        if str(enc.get("type") or "").startswith("image/"):
            src = _usable_image(enc.get("href") or enc.get("url"))
            if src:
                return src

    return first_image_src(summary_html)
