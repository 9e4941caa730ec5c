from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pandas as pd

from political_news_digest.types import Report

logger = logging.getLogger(__name__)


def write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    return path


def write_report(path: Path, report: Report) -> Path:
    write_json(path, report.to_dict())
    logger.info("Saved report to %s", path)
    return path


def write_run_log(path: Path, logs: dict[str, Any]) -> Path:
    write_json(path, logs)
    logger.info("Saved run log to %s", path)
    return path


def report_to_frame(report: Report) -> pd.DataFrame:
    """One row per reported article, tagged with its entity and topic."""

    rows = []
    for e in report.entities:
        for s in e.subjects:
            for a in s.items:
                rows.append(
                    {
                        "generated_at": report.generated_at,
                        "entity": e.name,
                        "topic": s.titlu_ro or s.label,
                        "title": a.title,
                        "link": a.link,
                        "source": a.source,
                        "date": a.date,
                        "snippet": a.snippet,
                        "thumbnail": a.thumbnail,
                    }
                )
    columns = ["generated_at", "entity", "topic", "title", "link", "source", "date", "snippet", "thumbnail"]
    return pd.DataFrame(rows, columns=columns)


def read_existing(path: Path) -> pd.DataFrame | None:
    if not path.exists():
        return None

    if path.suffix.lower() == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def write_frame(path: Path, df: pd.DataFrame) -> None:
    if path.suffix.lower() == ".parquet":
        df.to_parquet(path, index=False)
        return
    # default to csv
    df.to_csv(path, index=False, encoding="utf-8")


def upsert_file(path: Path, new_df: pd.DataFrame, key: str = "link") -> pd.DataFrame:
    path.parent.mkdir(parents=True, exist_ok=True)

    old_df = read_existing(path)
    if old_df is not None:
        combined = pd.concat([old_df, new_df], ignore_index=True)
        combined = combined.drop_duplicates(subset=[key], keep="last")
    else:
        combined = new_df.drop_duplicates(subset=[key], keep="last")

    write_frame(path, combined)
    logger.info("Archive %s now holds %d rows", path, len(combined))
    return combined
