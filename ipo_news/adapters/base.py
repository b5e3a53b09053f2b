"""
Adapter protocol, registry and the shared HTML result-list scraper.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from crawler.extractors.encoding import EncodingNormalizer
from crawler.infra.http import FetchError, HttpFetcher
from crawler.infra.security import redact_secrets
from crawler.pipelines.dedupe import ArticleAccumulator
from crawler.schemas.models import Article
from ipo_news.models import HealthStatus

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 5
_WHITESPACE = re.compile(r"\s+")


class SourceAdapter(Protocol):
    name: str

    def search(self, query: str) -> List[Article]:
        ...


@dataclass
class AdapterFactory:
    build_fn: Callable[..., SourceAdapter]
    config: Dict[str, Any]

    def build(self) -> SourceAdapter:
        return self.build_fn(**self.config)


class AdapterRegistry:
    """
    Keeps track of the available adapters; ``build`` returns them in priority order.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, key: str, factory: AdapterFactory) -> None:
        if key in self._factories:
            raise ValueError(f"Adapter '{key}' already registered")
        self._factories[key] = factory

    def build(self, order: Sequence[str]) -> List[SourceAdapter]:
        adapters: List[SourceAdapter] = []
        for key in order:
            factory = self._factories.get(key)
            if factory is None:
                logger.warning("Unknown source '%s' in source order; skipping", key)
                continue
            try:
                adapters.append(factory.build())
            except (TypeError, ValueError) as exc:
                logger.warning("Failed to configure source '%s': %s", key, exc)
        return adapters

    def keys(self) -> Iterable[str]:
        return self._factories.keys()


@dataclass(frozen=True)
class SelectorSpec:
    """CSS selectors describing one layout of a result list."""

    items: str
    title: str = ""
    link: str = ""
    snippet: str = ""
    source: str = ""
    date: str = ""


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def select_text(element: Tag, selector: str) -> str:
    if not selector:
        return ""
    found = element.select_one(selector)
    return collapse_whitespace(found.get_text(" ")) if found else ""


class ListingAdapter:
    """
    Fetch a source's search/listing page and parse its result list.

    The primary selector is tried first; alternates are consulted only while
    fewer than ``min_items`` articles were accepted. ``search`` never raises:
    failures are logged, recorded in ``last_health`` and yield ``[]``.
    """

    name = "listing"
    base_url = ""
    selectors: Sequence[SelectorSpec] = ()
    encodings: Sequence[str] = ("euc-kr", "utf-8")

    def __init__(
        self,
        max_items: int = 10,
        min_items: int = 5,
        timeout: float = 15,
        qualifier: str = "",
        user_agent: Optional[str] = None,
        fetcher: Optional[HttpFetcher] = None,
        enabled: bool = True,
    ) -> None:
        self.max_items = max_items
        self.min_items = min_items
        self.qualifier = qualifier.strip()
        self.enabled = enabled
        self.fetcher = fetcher or HttpFetcher(user_agent=user_agent, timeout=timeout)
        self.normalizer = EncodingNormalizer(encodings=self.encodings)
        self.last_health = HealthStatus(name=self.name, healthy=True)

    def search(self, query: str) -> List[Article]:
        if not self.enabled:
            return []
        start = time.time()
        now = datetime.now(timezone.utc)
        try:
            articles = self.collect(query)[: self.max_items]
        except Exception as exc:
            reason = redact_secrets(str(exc))
            logger.warning("%s search failed for %r: %s", self.name, query, reason)
            self.last_health = HealthStatus(
                name=self.name,
                healthy=False,
                last_error=reason,
                latency_ms=(time.time() - start) * 1000,
            )
            return []

        self.last_health = HealthStatus(
            name=self.name,
            healthy=True,
            last_success=now,
            items_last_fetch=len(articles),
            latency_ms=(time.time() - start) * 1000,
        )
        logger.info("%s returned %d articles for %r", self.name, len(articles), query)
        return articles

    def compose_query(self, query: str) -> str:
        query = collapse_whitespace(query)
        if self.qualifier and self.qualifier not in query:
            return f"{query} {self.qualifier}".strip()
        return query

    def build_url(self, query: str) -> str:
        raise NotImplementedError

    def collect(self, query: str) -> List[Article]:
        html = self.fetch_html(self.build_url(query))
        return self.parse(html, query)

    def fetch_html(self, url: str) -> str:
        response = self.fetcher.fetch(url)
        html = self.normalizer.decode(response.content, default_text=lambda: response.text)
        if len(html) < 100:
            raise FetchError(url, "response body empty or too short")
        return html

    def parse(self, html: str, query: str = "") -> List[Article]:
        soup = BeautifulSoup(html, "lxml")
        accepted = ArticleAccumulator(limit=self.max_items)
        for index, spec in enumerate(self.selectors):
            if index and len(accepted) >= self.min_items:
                break
            if index:
                logger.debug("%s: only %d items from primary selector, trying %s", self.name, len(accepted), spec.items)
            for element in soup.select(spec.items):
                if accepted.full:
                    break
                article = self.parse_item(element, spec)
                if article is not None and self.accept(article, query):
                    accepted.add(article)
        return accepted.articles

    def parse_item(self, element: Tag, spec: SelectorSpec) -> Optional[Article]:
        title_el = element.select_one(spec.title) if spec.title else element
        if title_el is None:
            return None
        link_el = element.select_one(spec.link) if spec.link else title_el
        href = link_el.get("href") if link_el is not None else None
        return self.make_article(
            title=title_el.get_text(" "),
            href=href,
            snippet=select_text(element, spec.snippet),
            source=select_text(element, spec.source),
            published_at=select_text(element, spec.date) or None,
        )

    def make_article(
        self,
        title: str,
        href: Optional[str],
        snippet: str = "",
        source: str = "",
        published_at: Optional[str] = None,
    ) -> Optional[Article]:
        title = self.clean_text(title)
        url = self.absolutize(href)
        if len(title) <= MIN_TITLE_LENGTH or not url:
            return None
        try:
            return Article(
                title=title,
                url=url,
                snippet=self.clean_text(snippet),
                source=source or self.default_source_label(),
                published_at=published_at,
                provider=self.name,
            )
        except ValidationError:
            return None

    def clean_text(self, text: str) -> str:
        return collapse_whitespace(text)

    def default_source_label(self) -> str:
        return self.name

    def absolutize(self, href: Optional[str]) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if href.startswith(("javascript:", "#", "mailto:")):
            return None
        return urljoin(self.base_url, href)

    def accept(self, article: Article, query: str) -> bool:
        return self.is_article_link(article.url)

    def is_article_link(self, url: str) -> bool:
        parts = urlsplit(url)
        return parts.scheme in ("http", "https") and bool(parts.netloc) and parts.path not in ("", "/")
