"""
Run the source adapters in priority order and merge their results.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from crawler.pipelines.dedupe import ArticleAccumulator
from crawler.schemas.models import Article
from ipo_news.adapters.base import SourceAdapter
from ipo_news.models import HealthStatus

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """
    Collect articles from every adapter, capped at ``limit``.

    With ``max_workers > 1`` the adapters are queried concurrently under one
    shared ``deadline``; adapters still running when it expires contribute
    nothing. With a single worker they are called one after another with
    ``inter_source_delay`` between calls, stopping once the ceiling is met.
    Either way the merge walks the adapters in priority order, so the
    first source keeps an article that several sources returned.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        limit: int = 10,
        inter_source_delay: float = 1.0,
        max_workers: int = 1,
        deadline: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.adapters = list(adapters)
        self.limit = limit
        self.inter_source_delay = inter_source_delay
        self.max_workers = max(1, max_workers)
        self.deadline = deadline
        self._sleep = sleep
        self._health: Dict[str, HealthStatus] = {}

    def collect(self, query: str, limit: Optional[int] = None) -> List[Article]:
        ceiling = limit if limit is not None else self.limit
        if not self.adapters:
            logger.warning("No source adapters configured")
            return []
        if self.max_workers > 1 and len(self.adapters) > 1:
            return self._collect_concurrent(query, ceiling)
        return self._collect_sequential(query, ceiling)

    def accumulate(self, query: str, accumulator: ArticleAccumulator) -> int:
        """Merge one more collection pass into an existing accumulator; returns the number added."""
        if accumulator.full:
            return 0
        return accumulator.extend(self.collect(query, limit=accumulator.limit))

    def _collect_sequential(self, query: str, ceiling: int) -> List[Article]:
        accepted = ArticleAccumulator(limit=ceiling)
        for index, adapter in enumerate(self.adapters):
            if accepted.full:
                logger.debug("Ceiling of %d reached; skipping remaining sources", ceiling)
                break
            if index and self.inter_source_delay > 0:
                self._sleep(self.inter_source_delay)
            articles, status = self._search(adapter, query)
            self._record_health(adapter, status)
            added = accepted.extend(articles)
            logger.info("%s contributed %d new articles (%d/%d)", adapter.name, added, len(accepted), ceiling)
        return accepted.articles

    def _collect_concurrent(self, query: str, ceiling: int) -> List[Article]:
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(self.adapters)))
        try:
            futures = [executor.submit(self._search, adapter, query) for adapter in self.adapters]
            done, pending = wait(futures, timeout=self.deadline)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        accepted = ArticleAccumulator(limit=ceiling)
        for adapter, future in zip(self.adapters, futures):
            if future not in done:
                logger.warning("%s did not finish within %.0fs; skipping", adapter.name, self.deadline)
                self._health[adapter.name] = HealthStatus(
                    name=adapter.name,
                    healthy=False,
                    last_error=f"deadline of {self.deadline:.0f}s exceeded",
                )
                continue
            articles, status = future.result()
            self._record_health(adapter, status)
            added = accepted.extend(articles)
            logger.info("%s contributed %d new articles (%d/%d)", adapter.name, added, len(accepted), ceiling)
        if pending:
            logger.debug("%d source fetches abandoned at deadline", len(pending))
        return accepted.articles

    @staticmethod
    def _search(adapter: SourceAdapter, query: str) -> Tuple[List[Article], Optional[HealthStatus]]:
        """Runs on worker threads; the caller records the returned health."""
        try:
            articles = adapter.search(query)
        except Exception as exc:  # adapters should not raise; keep one bad source local
            logger.error("%s raised during search: %s", adapter.name, exc)
            return [], HealthStatus(name=adapter.name, healthy=False, last_error=str(exc))
        status = getattr(adapter, "last_health", None)
        return articles, status if isinstance(status, HealthStatus) else None

    def _record_health(self, adapter: SourceAdapter, status: Optional[HealthStatus]) -> None:
        if status is not None:
            self._health[adapter.name] = status

    def get_health(self) -> List[HealthStatus]:
        return list(self._health.values())
