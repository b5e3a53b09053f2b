"""
Adapter for the Naver news search result page (recency-sorted).
"""
from __future__ import annotations

from urllib.parse import urlencode, urlsplit

from ipo_news.adapters.base import ListingAdapter, SelectorSpec


class NaverSearchAdapter(ListingAdapter):
    name = "naver_search"
    base_url = "https://search.naver.com/search.naver"
    encodings = ("utf-8", "euc-kr")
    selectors = (
        SelectorSpec(
            items=".news_area",
            title="a.news_tit",
            snippet=".news_dsc, .dsc_wrap",
            source=".info_group .press, .press",
            date=".info_group span.info",
        ),
        SelectorSpec(
            items=".news_wrap",
            title=".news_tit, a.news_tit",
            snippet=".news_dsc, .dsc_wrap",
            source=".press",
        ),
        SelectorSpec(items="a.news_tit"),
    )

    def build_url(self, query: str) -> str:
        params = {
            "where": "news",
            "query": self.compose_query(query),
            "sm": "tab_jum",
            "sort": "1",
        }
        return f"{self.base_url}?{urlencode(params)}"

    def default_source_label(self) -> str:
        return "네이버 뉴스"

    def is_article_link(self, url: str) -> bool:
        if not super().is_article_link(url):
            return False
        parts = urlsplit(url)
        # Links back into the search UI are pagination/filters, not articles.
        return not (parts.netloc == "search.naver.com" and parts.path.startswith("/search"))
