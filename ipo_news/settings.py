"""
Centralised settings for the IPO news pipeline (env-first, code-light).

``.env`` is loaded through python-dotenv before the environment is read, so
local runs and deployments share the same keys.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "공모주"
DEFAULT_SOURCE_ORDER = ["naver_search", "naver_finance", "google_news"]


@dataclass
class IpoNewsSettings:
    gemini_api_key: str
    gemini_model: str
    database_url: str
    default_query: str
    fetch_limit: int
    schedule_fetch_limit: int
    sufficiency_threshold: int
    source_order: List[str]
    source_timeout: float
    article_timeout: float
    extract_timeout: float
    body_budget: int
    inter_source_delay: float
    fetch_workers: int
    article_workers: int
    fetch_deadline: float
    cache_ttl_seconds: int
    cache_max_entries: int
    cache_path: Optional[Path]
    error_report_limit: int
    sources_config_path: Path
    log_level: str


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = float(raw)
        return value if value >= 0 else default
    except ValueError:
        logger.warning("Invalid float value for %s=%s; using default %s", key, raw, default)
        return default


def _parse_source_order(raw: str | None) -> List[str]:
    if not raw:
        return list(DEFAULT_SOURCE_ORDER)
    order = [token.strip().lower() for token in raw.split(",") if token.strip()]
    return order or list(DEFAULT_SOURCE_ORDER)


def load_settings(dotenv_path: str | None = None) -> IpoNewsSettings:
    load_dotenv(dotenv_path or os.getenv("IPO_NEWS_DOTENV", ".env"))
    return IpoNewsSettings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
        database_url=os.getenv("IPO_NEWS_DATABASE_URL", "sqlite:///ipo_news.db"),
        default_query=os.getenv("IPO_NEWS_DEFAULT_QUERY", DEFAULT_QUERY),
        fetch_limit=_int_from_env("IPO_NEWS_FETCH_LIMIT", 10),
        schedule_fetch_limit=_int_from_env("IPO_NEWS_SCHEDULE_FETCH_LIMIT", 30),
        sufficiency_threshold=_int_from_env("IPO_NEWS_SUFFICIENCY", 5),
        source_order=_parse_source_order(os.getenv("IPO_NEWS_SOURCE_ORDER")),
        source_timeout=_float_from_env("IPO_NEWS_SOURCE_TIMEOUT", 15.0),
        article_timeout=_float_from_env("IPO_NEWS_ARTICLE_TIMEOUT", 10.0),
        extract_timeout=_float_from_env("IPO_NEWS_EXTRACT_TIMEOUT", 30.0),
        body_budget=_int_from_env("IPO_NEWS_BODY_BUDGET", 8000),
        inter_source_delay=_float_from_env("IPO_NEWS_INTER_SOURCE_DELAY", 1.0),
        fetch_workers=_int_from_env("IPO_NEWS_FETCH_WORKERS", 3),
        article_workers=_int_from_env("IPO_NEWS_ARTICLE_WORKERS", 4),
        fetch_deadline=_float_from_env("IPO_NEWS_FETCH_DEADLINE", 30.0),
        cache_ttl_seconds=_int_from_env("IPO_NEWS_CACHE_TTL", 1800),
        cache_max_entries=_int_from_env("IPO_NEWS_CACHE_MAX_ENTRIES", 10),
        cache_path=Path(os.environ["IPO_NEWS_CACHE_PATH"]) if os.getenv("IPO_NEWS_CACHE_PATH") else None,
        error_report_limit=_int_from_env("IPO_NEWS_ERROR_REPORT_LIMIT", 5),
        sources_config_path=Path(os.getenv("IPO_NEWS_SOURCES_CONFIG", "config/sources.yaml")),
        log_level=os.getenv("IPO_NEWS_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
