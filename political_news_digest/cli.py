"""Command-line entry point: fetch feeds, build the daily digest, save it."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from political_news_digest.config import Config, ConfigError, api_key_from_env, load_config, validate_config
from political_news_digest.pipeline import run_pipeline

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="political-digest",
        description="Build the deduplicated political news digest",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    parser.add_argument("--out-dir", help="Override storage.output_dir")
    parser.add_argument("--no-llm", action="store_true", help="Run without text-understanding collaborators")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def with_output_dir(cfg: Config, out_dir: Optional[str]) -> Config:
    if not out_dir:
        return cfg
    raw = dict(cfg.raw)
    raw["storage"] = {**(raw.get("storage") or {}), "output_dir": out_dir}
    return Config(raw=raw)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        cfg = with_output_dir(load_config(args.config), args.out_dir)
        api_key = None if args.no_llm else api_key_from_env()
        validate_config(cfg, api_key, use_llm=not args.no_llm)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    report = asyncio.run(run_pipeline(cfg, api_key=api_key, use_llm=not args.no_llm))
    logger.info("Saved %s (%d entities)", cfg.report_file, len(report.entities))
    return 0


if __name__ == "__main__":
    sys.exit(main())
