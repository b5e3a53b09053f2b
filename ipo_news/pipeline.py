"""
End-to-end orchestration: collect -> extract -> classify -> persist.

``PipelineCoordinator`` is the only component that knows the whole sequence.
Every trigger returns a result object; per-article failures are recorded as
short diagnostics and never abort the rest of the batch.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from crawler.extractors.content import ArticleBodyFetcher
from crawler.infra.security import redact_secrets
from crawler.pipelines.dedupe import ArticleAccumulator
from crawler.pipelines.store import RecordRejectedError, Store, StoreUnavailableError
from crawler.schemas.models import Article
from ipo_news.adapters.base import AdapterFactory, AdapterRegistry, SourceAdapter
from ipo_news.adapters.google_news import GoogleNewsAdapter
from ipo_news.adapters.naver_finance import NaverFinanceAdapter
from ipo_news.adapters.naver_search import NaverSearchAdapter
from ipo_news.cache import ResultCache
from ipo_news.classifier import classify, is_current_month
from ipo_news.config_loader import load_sources_config
from ipo_news.models import (
    SCHEDULE_SENTINEL,
    CrawlResult,
    CrawlStatus,
    ExtractedSummary,
    HeadlinesResult,
    HealthStatus,
    NormalizedRecord,
    PipelineState,
    RecordInput,
    ScheduleStatus,
)
from ipo_news.orchestrator import FetchOrchestrator
from ipo_news.settings import IpoNewsSettings
from ipo_news.summarizer import ExtractionError, GeminiClient, StructuredExtractor

logger = logging.getLogger(__name__)

TOPIC_MARKERS = ("공모주", "IPO")
BROADENED_QUERIES = ("공모주 뉴스", "공모주 주식", "IPO 뉴스")
SCHEDULE_QUERY_TEMPLATES = ("{year}년 {month}월 공모주", "{year}년 {month}월 공모주 일정", "{year}년 {month}월 공모주 청약")
HEADLINE_SOURCE = "naver_finance"
TITLE_MAX_LENGTH = 200

ADAPTER_CLASSES = {
    NaverSearchAdapter.name: NaverSearchAdapter,
    NaverFinanceAdapter.name: NaverFinanceAdapter,
    GoogleNewsAdapter.name: GoogleNewsAdapter,
}


def build_registry(settings: IpoNewsSettings, config: Dict[str, Any]) -> AdapterRegistry:
    """Register every known adapter with its YAML overrides layered over the env defaults."""
    registry = AdapterRegistry()
    global_settings = config.get("global_settings") or {}
    sources = config.get("sources") or {}
    for key, adapter_cls in ADAPTER_CLASSES.items():
        options: Dict[str, Any] = {"timeout": settings.source_timeout}
        if global_settings.get("user_agent"):
            options["user_agent"] = global_settings["user_agent"]
        overrides = sources.get(key) or {}
        if not isinstance(overrides, dict):
            logger.warning("Ignoring non-mapping config for source '%s'", key)
            overrides = {}
        options.update(overrides)
        registry.register(key, AdapterFactory(build_fn=adapter_cls, config=options))
    return registry


def normalize_topic(query: Optional[str], default_query: str) -> str:
    query = " ".join((query or "").split())
    if not query:
        return default_query
    if not any(marker in query for marker in TOPIC_MARKERS):
        return f"{query} 공모주"
    return query


@dataclass
class _Enriched:
    article: Article
    summary: Optional[ExtractedSummary]
    status: Optional[ScheduleStatus] = None
    error: Optional[str] = None


class PipelineCoordinator:
    def __init__(
        self,
        settings: IpoNewsSettings,
        store: Optional[Store] = None,
        registry: Optional[AdapterRegistry] = None,
        extractor: Optional[StructuredExtractor] = None,
        body_fetcher: Optional[ArticleBodyFetcher] = None,
        cache: Optional[ResultCache] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.registry = registry or build_registry(settings, load_sources_config(settings.sources_config_path))
        self.adapters: List[SourceAdapter] = self.registry.build(settings.source_order)
        self.orchestrator = FetchOrchestrator(
            self.adapters,
            limit=settings.fetch_limit,
            inter_source_delay=settings.inter_source_delay,
            max_workers=settings.fetch_workers,
            deadline=settings.fetch_deadline,
            sleep=sleep,
        )
        headline_adapters = self.registry.build([HEADLINE_SOURCE])
        self.headline_adapter: Optional[SourceAdapter] = headline_adapters[0] if headline_adapters else None
        self.store = store or Store(settings.database_url)
        self.extractor = extractor or StructuredExtractor(
            GeminiClient(settings.gemini_api_key, model=settings.gemini_model, timeout=settings.extract_timeout),
            body_budget=settings.body_budget,
            clock=clock,
        )
        self.body_fetcher = body_fetcher or ArticleBodyFetcher(timeout=settings.article_timeout)
        self.cache = cache or ResultCache(
            ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
            storage_path=settings.cache_path,
        )
        self.state = PipelineState.IDLE
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------ triggers

    def run_crawl(self, query: Optional[str] = None) -> CrawlResult:
        topic = normalize_topic(query, self.settings.default_query)
        logger.info("Crawl started for %r", topic)
        aborted = self._check_store(topic)
        if aborted is not None:
            return aborted

        self._enter(PipelineState.FETCHING)
        accepted = ArticleAccumulator(limit=self.settings.fetch_limit)
        self.orchestrator.accumulate(topic, accepted)
        if len(accepted) < self.settings.sufficiency_threshold:
            logger.info("Only %d articles for %r; retrying with broader queries", len(accepted), topic)
            for broadened in BROADENED_QUERIES:
                if accepted.full:
                    break
                self._sleep(self.settings.inter_source_delay)
                self.orchestrator.accumulate(broadened, accepted)

        articles = accepted.articles
        if not articles:
            return self._empty_result(topic)

        errors: List[str] = []
        enriched = self._enrich_all(articles, topic, strict=False)
        saved, store_lost = self._persist(enriched, errors)
        return self._finish(topic, len(articles), saved, len(enriched), errors, store_lost)

    def crawl_schedules(self, today: Optional[date] = None) -> CrawlResult:
        today = today or self._clock()
        queries = [template.format(year=today.year, month=today.month) for template in SCHEDULE_QUERY_TEMPLATES][:3]
        topic = queries[0]
        logger.info("Schedule crawl started for %d-%02d", today.year, today.month)
        aborted = self._check_store(topic)
        if aborted is not None:
            return aborted

        self._enter(PipelineState.FETCHING)
        accepted = ArticleAccumulator(limit=self.settings.schedule_fetch_limit)
        # each article is summarized with the query that first found it as its topic hint
        hints: Dict[str, str] = {}
        for index, query in enumerate(queries):
            if accepted.full:
                break
            if index:
                self._sleep(self.settings.inter_source_delay)
            before = len(accepted)
            self.orchestrator.accumulate(query, accepted)
            for article in accepted.articles[before:]:
                hints[article.url] = query

        articles = accepted.articles
        if not articles:
            return self._empty_result(topic)

        errors: List[str] = []
        retained: List[_Enriched] = []
        for item in self._enrich_all(articles, topic, strict=True, hints=hints):
            if item.summary is None:
                errors.append(item.error or f"extraction failed: {item.article.title[:50]}")
                continue
            if not item.summary.has_schedule:
                logger.debug("No schedule in %r; skipping", item.article.title[:60])
                continue
            if not is_current_month(item.summary.schedule, today.year, today.month):
                logger.debug("Schedule %r is outside %d-%02d; skipping", item.summary.schedule, today.year, today.month)
                continue
            retained.append(item)

        saved, store_lost = self._persist(retained, errors)
        return self._finish(topic, len(articles), saved, len(articles), errors, store_lost)

    def headlines(self, query: Optional[str] = None, refresh: bool = False) -> HeadlinesResult:
        key = f"headlines:{query or ''}"
        if not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return HeadlinesResult(articles=cached.articles, cached=True, fetched_at=cached.fetched_at)

        now = datetime.now(timezone.utc)
        articles: List[Article] = []
        error: Optional[str] = None
        if self.headline_adapter is None:
            error = f"source '{HEADLINE_SOURCE}' is not configured"
        else:
            articles = self.headline_adapter.search(query or "")
            health = getattr(self.headline_adapter, "last_health", None)
            if not articles:
                error = (health.last_error if isinstance(health, HealthStatus) else None) or "no articles found"

        if articles:
            result = HeadlinesResult(articles=articles, cached=False, fetched_at=now)
            self.cache.set(key, result)
            return result

        stale = self.cache.get(key, allow_stale=True)
        if stale is not None:
            logger.warning("Headline fetch failed (%s); serving cached listing from %s", error, stale.fetched_at)
            return HeadlinesResult(articles=stale.articles, cached=True, fetched_at=stale.fetched_at, error=error)
        return HeadlinesResult(articles=[], cached=False, fetched_at=now, error=error)

    # ------------------------------------------------------------------ read side

    def calendar(self, kind: Optional[str] = None, today: Optional[date] = None) -> List[Tuple[NormalizedRecord, ScheduleStatus]]:
        today = today or self._clock()
        return [(record, classify(record.schedule, today=today)) for record in self.store.scheduled(kind)]

    def get_health(self) -> List[HealthStatus]:
        health = {status.name: status for status in self.orchestrator.get_health()}
        headline_health = getattr(self.headline_adapter, "last_health", None)
        if isinstance(headline_health, HealthStatus) and headline_health.name not in health:
            health[headline_health.name] = headline_health
        return list(health.values())

    # ------------------------------------------------------------------ stages

    def _check_store(self, topic: str) -> Optional[CrawlResult]:
        self._enter(PipelineState.IDLE)
        try:
            self.store.ping()
        except StoreUnavailableError as exc:
            self._enter(PipelineState.FATAL_ABORTED)
            logger.error("Store unavailable; aborting batch: %s", exc)
            return CrawlResult(
                status=CrawlStatus.CONFIG_ERROR,
                query=topic,
                errors=[str(exc)][: self.settings.error_report_limit],
                message="Persistence store is unavailable or misconfigured",
                state=PipelineState.FATAL_ABORTED,
            )
        return None

    def _empty_result(self, topic: str) -> CrawlResult:
        health = self.orchestrator.get_health()
        if health and not any(status.healthy for status in health):
            self._enter(PipelineState.FATAL_ABORTED)
            reasons = [f"{status.name}: {status.last_error}" for status in health]
            logger.error("Every source failed for %r", topic)
            return CrawlResult(
                status=CrawlStatus.FETCH_FAILED,
                query=topic,
                errors=reasons[: self.settings.error_report_limit],
                message="All news sources failed",
                state=PipelineState.FATAL_ABORTED,
            )
        self._enter(PipelineState.DONE)
        logger.info("No articles found for %r", topic)
        return CrawlResult(
            status=CrawlStatus.NO_RESULTS,
            query=topic,
            message="No articles found",
            state=PipelineState.DONE,
        )

    def _enrich_all(
        self,
        articles: Sequence[Article],
        topic_hint: str,
        strict: bool,
        hints: Optional[Dict[str, str]] = None,
    ) -> List[_Enriched]:
        self._enter(PipelineState.EXTRACTING)
        workers = max(1, min(self.settings.article_workers, len(articles)))
        total = len(articles)

        def run(indexed: Tuple[int, Article]) -> _Enriched:
            index, article = indexed
            logger.info("[%d/%d] processing %s", index + 1, total, article.title[:60])
            return self._enrich(article, (hints or {}).get(article.url, topic_hint), strict)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            enriched = list(executor.map(run, enumerate(articles)))

        self._enter(PipelineState.CLASSIFYING)
        today = self._clock()
        for item in enriched:
            if item.summary is None:
                continue
            item.status = classify(item.summary.schedule, today=today)
            logger.debug("%s -> %s (%s)", item.article.title[:60], item.status.label, item.status.urgency.value)
        return enriched

    def _enrich(self, article: Article, topic_hint: str, strict: bool) -> _Enriched:
        try:
            body = self.body_fetcher.fetch(article.url) or article.snippet
            try:
                summary = self.extractor.extract_strict(article.title, body, topic_hint)
            except ExtractionError as exc:
                reason = f"extraction failed for '{article.title[:50]}': {redact_secrets(str(exc))}"
                if strict:
                    logger.warning(reason)
                    return _Enriched(article=article, summary=None, error=reason)
                logger.warning("%s; using fallback summary", reason)
                return _Enriched(
                    article=article,
                    summary=self.extractor.fallback(article.title, article.snippet, topic_hint),
                    error=reason,
                )
            return _Enriched(article=article, summary=summary)
        except Exception as exc:  # pragma: no cover - one bad article must not sink the batch
            reason = f"processing failed for '{article.title[:50]}': {redact_secrets(str(exc))}"
            logger.error(reason)
            if strict:
                return _Enriched(article=article, summary=None, error=reason)
            return _Enriched(
                article=article,
                summary=self.extractor.fallback(article.title, article.snippet, topic_hint),
                error=reason,
            )

    def _persist(self, items: Sequence[_Enriched], errors: List[str]) -> Tuple[int, bool]:
        """Upsert in article order; returns (saved count, whether the store went away)."""
        self._enter(PipelineState.PERSISTING)
        saved = 0
        for item in items:
            if item.error:
                errors.append(item.error)
            if item.summary is None:
                continue
            try:
                self.store.upsert(self._to_record(item.article, item.summary))
                saved += 1
            except RecordRejectedError as exc:
                self._enter(PipelineState.ARTICLE_FAILED)
                logger.error("Write rejected for %s: %s", item.article.url, exc)
                errors.append(f"save failed for '{item.article.title[:50]}': {exc}")
                self._enter(PipelineState.PERSISTING)
            except StoreUnavailableError as exc:
                logger.error("Store became unavailable mid-batch; stopping: %s", exc)
                errors.append(f"store unavailable: {exc}")
                return saved, True
        return saved, False

    @staticmethod
    def _to_record(article: Article, summary: ExtractedSummary) -> RecordInput:
        title = summary.stock_name if summary.stock_name and summary.stock_name != SCHEDULE_SENTINEL else ""
        return RecordInput(
            title=title or article.title[:TITLE_MAX_LENGTH],
            summary=summary.summary,
            link=article.url,
            schedule=summary.schedule,
            keywords=summary.keywords,
        )

    def _finish(
        self,
        topic: str,
        total: int,
        saved: int,
        processed: int,
        errors: List[str],
        store_lost: bool,
    ) -> CrawlResult:
        if store_lost and saved == 0:
            self._enter(PipelineState.FATAL_ABORTED)
            status = CrawlStatus.CONFIG_ERROR
            message = "Persistence store became unavailable"
        else:
            self._enter(PipelineState.DONE)
            status = CrawlStatus.DONE
            message = f"Saved {saved} of {total} articles"
        logger.info("Crawl for %r finished: %s (%d diagnostics)", topic, message, len(errors))
        return CrawlResult(
            status=status,
            query=topic,
            total_fetched=total,
            saved_count=saved,
            processed_count=processed,
            errors=errors[: self.settings.error_report_limit],
            message=message,
            state=self.state,
        )

    def _enter(self, state: PipelineState) -> None:
        if state != self.state:
            logger.debug("Pipeline state %s -> %s", self.state.value, state.value)
        self.state = state
