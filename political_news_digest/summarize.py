from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from political_news_digest.cache import ResponseCache, title_key
from political_news_digest.prompts import TITLE_SUMMARY_SYSTEM
from political_news_digest.types import Article

logger = logging.getLogger(__name__)


_TITLE_RE = re.compile(r"TITLU_RO:\s*([^\n]+)")
_SUMMARY_RE = re.compile(r"SUMAR_RO:\s*([\s\S]+)")


@dataclass(frozen=True)
class TitleSummary:
    title: str = ""
    summary: str = ""


def parse_title_summary(text: Optional[str]) -> TitleSummary:
    """Read the ``TITLU_RO:`` / ``SUMAR_RO:`` lines; a missing label yields ""."""

    text = text or ""
    t = _TITLE_RE.search(text)
    s = _SUMMARY_RE.search(text)
    title = t.group(1).strip() if t else ""
    summary = s.group(1).strip() if s else ""
    # the summary runs to the end; cut a trailing title line if the model swapped the order
    summary = _TITLE_RE.sub("", summary).strip()
    return TitleSummary(title=title, summary=summary)


def _payload(items: list[Article]) -> str:
    rows = [{"titlu": a.title, "lead": a.snippet, "fragment": a.snippet} for a in items[:5]]
    return json.dumps(rows, ensure_ascii=False, indent=2)


async def title_and_summary(
    items: list[Article],
    llm: Any,
    cache: Optional[ResponseCache] = None,
) -> TitleSummary:
    if llm is None or not items:
        return TitleSummary()

    async def _generate() -> TitleSummary:
        text = await llm.complete(TITLE_SUMMARY_SYSTEM, _payload(items), label="title/summary")
        return parse_title_summary(text)

    try:
        if cache is None:
            return await _generate()
        return await cache.get_or_compute(title_key(items[:5]), _generate)
    except Exception as exc:
        logger.error("Title/summary generation failed: %s", exc)
        return TitleSummary()
