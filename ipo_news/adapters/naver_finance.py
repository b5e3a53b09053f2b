"""
Adapter for the Naver Finance market-news listing (EUC-KR, not query-driven).
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from bs4 import Tag

from crawler.schemas.models import Article
from ipo_news.adapters.base import ListingAdapter, SelectorSpec, collapse_whitespace, select_text

_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?()\[\]{}:;'\"\-]")
_ARTICLE_MARKERS = ("news.naver.com", "/news/", "article")

LISTING_URL = "https://finance.naver.com/news/news_list.naver?mode=LSS2D&section_id=101&section_id2=258"
# Listing links share one path and differ only by query; the mobile article
# URL carries the same ids in its path, so query-stripping dedup keeps them apart.
ARTICLE_URL = "https://n.news.naver.com/mnews/article/{office_id}/{article_id}"


class NaverFinanceAdapter(ListingAdapter):
    """
    The listing is a fixed market-news page, so the query is applied as a
    relevance filter: an item is kept when any query term appears in its
    title or summary. An empty query keeps everything.
    """

    name = "naver_finance"
    base_url = "https://finance.naver.com/"
    encodings = ("euc-kr", "utf-8")
    selectors = (
        SelectorSpec(items=".articleSubject", title="a"),
        SelectorSpec(items="dl dt a"),
    )

    def __init__(self, listing_url: str = LISTING_URL, match_query: bool = True, **kwargs) -> None:
        super().__init__(**kwargs)
        self.listing_url = listing_url
        self.match_query = match_query
        self.fetcher.session.headers["Referer"] = self.base_url

    def build_url(self, query: str) -> str:
        return self.listing_url

    def parse_item(self, element: Tag, spec: SelectorSpec) -> Optional[Article]:
        anchor = element.select_one(spec.title) if spec.title else element
        if anchor is None:
            return None

        container = element.find_parent(["dl", "li"]) or element.parent
        if spec.title:
            summary_el = element.find_next_sibling(class_="articleSummary")
            snippet = summary_el.get_text(" ") if summary_el else ""
        else:
            dd = container.find("dd") if container is not None else None
            snippet = dd.get_text(" ") if dd else ""

        source = date = ""
        if container is not None:
            source = select_text(container, ".press, .press_name")
            date = select_text(container, ".date, .wdate")

        return self.make_article(
            title=anchor.get_text(" "),
            href=anchor.get("href"),
            snippet=snippet,
            source=source,
            published_at=date or None,
        )

    def clean_text(self, text: str) -> str:
        return collapse_whitespace(_DISALLOWED_CHARS.sub("", collapse_whitespace(text)))

    def default_source_label(self) -> str:
        return "네이버 금융"

    def absolutize(self, href: Optional[str]) -> Optional[str]:
        url = super().absolutize(href)
        if url is None or not urlsplit(url).path.endswith("news_read.naver"):
            return url
        params = parse_qs(urlsplit(url).query)
        article_id = (params.get("article_id") or [""])[0]
        office_id = (params.get("office_id") or [""])[0]
        if article_id and office_id:
            return ARTICLE_URL.format(office_id=office_id, article_id=article_id)
        return url

    def is_article_link(self, url: str) -> bool:
        return super().is_article_link(url) and any(marker in url for marker in _ARTICLE_MARKERS)

    def accept(self, article: Article, query: str) -> bool:
        if not self.is_article_link(article.url):
            return False
        terms = [term for term in query.split() if term]
        if not self.match_query or not terms:
            return True
        haystack = f"{article.title} {article.snippet}".lower()
        return any(term.lower() in haystack for term in terms)
