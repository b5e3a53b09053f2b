"""
Public API for the IPO news acquisition pipeline.

The coordinator is built on first use so importing the package does not
touch the network, the database or the environment.
"""
from __future__ import annotations

import threading
from datetime import date
from typing import Any, Dict, Optional

from ipo_news.models import CrawlResult, HeadlinesResult

_lock = threading.Lock()
_coordinator = None


def _get_coordinator():
    global _coordinator
    with _lock:
        if _coordinator is None:
            from ipo_news.pipeline import PipelineCoordinator
            from ipo_news.settings import load_settings

            _coordinator = PipelineCoordinator(load_settings())
        return _coordinator


def run_crawl(query: Optional[str] = None) -> CrawlResult:
    """Collect, summarize and store articles for ``query``; never raises."""
    return _get_coordinator().run_crawl(query)


def crawl_schedules(today: Optional[date] = None) -> CrawlResult:
    """Store this month's offering schedules found in the news."""
    return _get_coordinator().crawl_schedules(today)


def get_headlines(query: Optional[str] = None, refresh: bool = False) -> HeadlinesResult:
    return _get_coordinator().headlines(query, refresh=refresh)


def get_pipeline_status() -> Dict[str, Any]:
    """Expose a structured status payload for health dashboards."""
    from ipo_news.status import build_status

    return build_status(_get_coordinator())
