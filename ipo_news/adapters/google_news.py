"""
Google News adapter: the Korean RSS search feed first, the HTML search page as fallback.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import quote_plus, urlencode

import feedparser
from bs4 import BeautifulSoup, Tag

from crawler.infra.http import FetchError
from crawler.pipelines.dedupe import ArticleAccumulator
from crawler.schemas.models import Article
from ipo_news.adapters.base import ListingAdapter, SelectorSpec, collapse_whitespace

logger = logging.getLogger(__name__)

RSS_URL = "https://news.google.com/rss/search"
SEARCH_URL = "https://news.google.com/search"
LOCALE_PARAMS = {"hl": "ko", "gl": "KR", "ceid": "KR:ko"}


class GoogleNewsAdapter(ListingAdapter):
    name = "google_news"
    base_url = "https://news.google.com/"
    encodings = ("utf-8",)
    selectors = (
        SelectorSpec(items="article", title="h3, h4, a.JtKRv", link="a[href]", source="div.vr1PYe, .wEwyrc", date="time"),
    )

    def __init__(self, recency: str = "1d", max_items: int = 20, use_rss: bool = True, **kwargs) -> None:
        super().__init__(max_items=max_items, **kwargs)
        self.recency = recency
        self.use_rss = use_rss

    def compose_query(self, query: str) -> str:
        query = super().compose_query(query)
        if self.recency and "when:" not in query:
            query = f"{query} when:{self.recency}"
        return query

    def build_url(self, query: str) -> str:
        return f"{SEARCH_URL}?{urlencode({'q': self.compose_query(query), **LOCALE_PARAMS})}"

    def build_rss_url(self, query: str) -> str:
        return f"{RSS_URL}?q={quote_plus(self.compose_query(query))}&{urlencode(LOCALE_PARAMS)}"

    def collect(self, query: str) -> List[Article]:
        if self.use_rss:
            try:
                articles = self.parse_feed(self.fetcher.fetch(self.build_rss_url(query)).content)
            except FetchError as exc:
                logger.info("google_news RSS unavailable, falling back to HTML: %s", exc)
            else:
                if articles:
                    return articles
        return super().collect(query)

    def parse_feed(self, content: bytes) -> List[Article]:
        feed = feedparser.parse(content)
        accepted = ArticleAccumulator(limit=self.max_items)
        for entry in getattr(feed, "entries", []):
            if accepted.full:
                break
            source = ""
            source_info = entry.get("source")
            if source_info is not None:
                source = source_info.get("title", "")
            title = _strip_source_suffix(entry.get("title", ""), source)
            summary = entry.get("summary") or entry.get("description") or ""
            article = self.make_article(
                title=title,
                href=entry.get("link"),
                snippet=BeautifulSoup(summary, "lxml").get_text(" ") if summary else "",
                source=source,
                published_at=_struct_to_iso(entry.get("published_parsed")),
            )
            if article is not None and self.is_article_link(article.url):
                accepted.add(article)
        return accepted.articles

    def parse_item(self, element: Tag, spec: SelectorSpec) -> Optional[Article]:
        title_el = element.select_one(spec.title)
        link_el = element.select_one(spec.link)
        if title_el is None or link_el is None:
            return None
        time_el = element.select_one(spec.date)
        source_el = element.select_one(spec.source)
        return self.make_article(
            title=title_el.get_text(" "),
            href=link_el.get("href"),
            source=collapse_whitespace(source_el.get_text(" ")) if source_el else "",
            published_at=time_el.get("datetime") if time_el is not None else None,
        )

    def absolutize(self, href: Optional[str]) -> Optional[str]:
        if href and href.startswith("./"):
            href = href[1:]
        return super().absolutize(href)

    def default_source_label(self) -> str:
        return "Google News"


def _strip_source_suffix(title: str, source: str) -> str:
    # Feed titles read "headline - Publisher".
    title = collapse_whitespace(title)
    if source and title.endswith(f" - {source}"):
        return title[: -len(source) - 3]
    head, sep, _ = title.rpartition(" - ")
    return head if sep and head else title


def _struct_to_iso(struct_time) -> Optional[str]:
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc).isoformat()
