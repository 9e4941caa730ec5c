from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from dotenv import load_dotenv


class ConfigError(ValueError):
    """Invalid or incomplete configuration; fatal before any stage runs."""


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"section '{name}' must be a mapping")
    return value


@dataclass(frozen=True)
class Config:
    raw: dict[str, Any]

    # --- feeds / http ---
    @property
    def feeds(self) -> list[str]:
        return [str(u) for u in (_section(self.raw, "rss").get("feeds") or []) if u]

    @property
    def user_agent(self) -> str:
        return str(_section(self.raw, "http").get("user_agent", "political-news-digest/0.1"))

    @property
    def timeout_seconds(self) -> int:
        return int(_section(self.raw, "http").get("timeout_seconds", 20))

    @property
    def max_connections(self) -> int:
        return int(_section(self.raw, "http").get("max_connections", 20))

    @property
    def max_in_flight_requests(self) -> int:
        return int(_section(self.raw, "concurrency").get("max_in_flight_requests", 8))

    @property
    def rate_limit(self) -> tuple[int, float]:
        rl = _section(self.raw, "rate_limit")
        return int(rl.get("max_requests_per_period", 50)), float(rl.get("period_seconds", 60))

    @property
    def retry(self) -> dict[str, Any]:
        rt = _section(self.raw, "retry")
        return {
            "max_attempts": int(rt.get("max_attempts", 3)),
            "base_delay_seconds": float(rt.get("base_delay_seconds", 1)),
            "max_delay_seconds": float(rt.get("max_delay_seconds", 10)),
            "retry_statuses": {int(x) for x in rt.get("retry_statuses", [429, 500, 502, 503, 504])},
        }

    # --- llm ---
    @property
    def llm(self) -> dict[str, Any]:
        c = _section(self.raw, "llm")
        return {
            "enabled": bool(c.get("enabled", True)),
            "required": bool(c.get("required", True)),
            "model": str(c.get("model", "gpt-4o-mini")),
            "embedding_model": str(c.get("embedding_model", "text-embedding-3-small")),
            "embedding_batch_size": int(c.get("embedding_batch_size", 100)),
            "max_input_chars": int(c.get("max_input_chars", 3000)),
            "timeout_seconds": float(c.get("timeout_seconds", 20)),
        }

    # --- pipeline stages ---
    @property
    def filters(self) -> dict[str, Any]:
        f = _section(self.raw, "filters")
        return {
            "embedding_similarity": float(f.get("embedding_similarity", 0.90)),
            "jw_similarity": float(f.get("jw_similarity", 0.92)),
            "fold_diacritics": bool(f.get("fold_diacritics", True)),
            "max_articles_per_entity": int(f.get("max_articles_per_entity", 120)),
            "time_window_hours": float(f.get("time_window_hours", 24)),
            "title_merge_enabled": bool(f.get("title_merge_enabled", False)),
            "title_merge_max": int(f.get("title_merge_max", 60)),
        }

    @property
    def clustering(self) -> dict[str, int]:
        c = _section(self.raw, "clustering")
        return {"max_groups": int(c.get("max_groups", 3)), "max_items": int(c.get("max_items", 5))}

    @property
    def collapse(self) -> dict[str, Any]:
        c = _section(self.raw, "collapse")
        return {
            "min_overlap": int(c.get("min_overlap", 2)),
            "max_items": int(c.get("max_items", 5)),
            "llm_enabled": bool(c.get("llm_enabled", True)),
            "llm_max_subjects": int(c.get("llm_max_subjects", 80)),
            "llm_max_domains": int(c.get("llm_max_domains", 6)),
        }

    # --- output ---
    @property
    def output_dir(self) -> Path:
        return Path(str(_section(self.raw, "storage").get("output_dir", "out")))

    @property
    def report_file(self) -> Path:
        return self.output_dir / str(_section(self.raw, "storage").get("report_file", "data.json"))

    @property
    def log_file(self) -> Path:
        return self.output_dir / str(_section(self.raw, "storage").get("log_file", "logs.json"))

    @property
    def archive_file(self) -> Path | None:
        name = _section(self.raw, "storage").get("archive_file")
        return self.output_dir / str(name) if name else None

    @property
    def timezone(self) -> str:
        return str(_section(self.raw, "misc").get("timezone", "Europe/Bucharest"))


def load_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(path: str | Path) -> Config:
    try:
        return Config(raw=load_yaml(path))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read config {path}: {exc}") from exc


def api_key_from_env() -> str | None:
    load_dotenv()
    return os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_KEY") or None


def validate_config(cfg: Config, api_key: str | None, *, use_llm: bool = True) -> None:
    """Raise ``ConfigError`` for settings no stage could work with."""

    llm = cfg.llm
    if use_llm and llm["enabled"] and llm["required"] and not api_key:
        raise ConfigError("llm.required is set but neither OPENAI_API_KEY nor OPENAI_KEY is defined")

    f = cfg.filters
    for name in ("embedding_similarity", "jw_similarity"):
        if not 0.0 < f[name] <= 1.0:
            raise ConfigError(f"filters.{name} must be in (0, 1], got {f[name]}")
    if f["time_window_hours"] <= 0:
        raise ConfigError("filters.time_window_hours must be positive")
    if cfg.collapse["min_overlap"] < 1:
        raise ConfigError("collapse.min_overlap must be at least 1")
    if cfg.retry["max_attempts"] < 1:
        raise ConfigError("retry.max_attempts must be at least 1")
    requests, period = cfg.rate_limit
    if requests < 1 or period <= 0:
        raise ConfigError("rate_limit needs a positive request count and period")

    try:
        ZoneInfo(cfg.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"unknown timezone {cfg.timezone!r}") from exc
