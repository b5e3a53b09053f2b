"""
Core data structures shared by the IPO news pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from crawler.schemas.models import SCHEDULE_SENTINEL, Article, NormalizedRecord, RecordInput

__all__ = [
    "Article",
    "CrawlResult",
    "CrawlStatus",
    "ExtractedSummary",
    "HeadlinesResult",
    "HealthStatus",
    "NormalizedRecord",
    "PipelineState",
    "RecordInput",
    "SCHEDULE_SENTINEL",
    "ScheduleStatus",
    "Urgency",
]


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    PERSISTING = "persisting"
    ARTICLE_FAILED = "article_failed"
    DONE = "done"
    FATAL_ABORTED = "fatal_aborted"


class CrawlStatus(str, Enum):
    DONE = "done"
    NO_RESULTS = "no_results"
    CONFIG_ERROR = "config_error"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class ExtractedSummary:
    """
    Structured fields derived from one article. Always present, even when the
    text-understanding call failed (see ``StructuredExtractor.fallback``).
    """

    stock_name: str
    schedule: str
    summary: str
    keywords: str
    offer_price: Optional[str] = None
    subscription_period: Optional[str] = None
    listing_date: Optional[str] = None

    @property
    def has_schedule(self) -> bool:
        return bool(self.schedule) and self.schedule != SCHEDULE_SENTINEL


@dataclass(frozen=True)
class ScheduleStatus:
    label: str
    urgency: Urgency


@dataclass
class HealthStatus:
    name: str
    healthy: bool
    last_error: Optional[str] = None
    last_success: Optional[datetime] = None
    items_last_fetch: int = 0
    latency_ms: Optional[float] = None
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass
class CrawlResult:
    """Outcome of one trigger call; returned instead of raising."""

    status: CrawlStatus
    query: str
    total_fetched: int = 0
    saved_count: int = 0
    processed_count: int = 0
    errors: List[str] = field(default_factory=list)
    message: str = ""
    state: PipelineState = PipelineState.IDLE

    @property
    def success(self) -> bool:
        return self.status in (CrawlStatus.DONE, CrawlStatus.NO_RESULTS)

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": self.success,
            "status": self.status.value,
            "searchQuery": self.query,
            "savedCount": self.saved_count,
            "totalCrawled": self.total_fetched,
            "processedCount": self.processed_count,
            "errors": list(self.errors),
            "message": self.message,
        }


@dataclass
class HeadlinesResult:
    articles: List[Article]
    cached: bool
    fetched_at: datetime
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "success": bool(self.articles) or self.error is None,
            "data": [article.model_dump() for article in self.articles],
            "count": len(self.articles),
            "cached": self.cached,
            "timestamp": self.fetched_at.isoformat(),
            "error": self.error,
        }
