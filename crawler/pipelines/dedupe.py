"""
Deduplication helpers for crawler outputs.
"""
from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Set, TypeVar
from urllib.parse import urlsplit, urlunsplit

from crawler.schemas.models import Article

T = TypeVar("T")


def normalize_url(url: str) -> str:
    """Drop the query string and fragment so tracking variants compare equal."""
    if not url:
        return url
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))


def dedupe_by_key(items: Iterable[T], key_fn: Callable[[T], object]) -> List[T]:
    seen = set()
    result: List[T] = []
    for item in items:
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


class ArticleAccumulator:
    """
    Ordered, capped set of articles with no repeated normalized URL or exact title.

    Earlier additions win: feeding sources in priority order makes the
    highest-priority source keep a contested article.
    """

    def __init__(self, limit: Optional[int] = None) -> None:
        self.limit = limit
        self._articles: List[Article] = []
        self._urls: Set[str] = set()
        self._titles: Set[str] = set()

    def __len__(self) -> int:
        return len(self._articles)

    @property
    def full(self) -> bool:
        return self.limit is not None and len(self._articles) >= self.limit

    @property
    def articles(self) -> List[Article]:
        return list(self._articles)

    def contains(self, article: Article) -> bool:
        return normalize_url(article.url) in self._urls or article.title in self._titles

    def add(self, article: Article) -> bool:
        if self.full or self.contains(article):
            return False
        self._articles.append(article)
        self._urls.add(normalize_url(article.url))
        self._titles.add(article.title)
        return True

    def extend(self, articles: Iterable[Article]) -> int:
        added = 0
        for article in articles:
            if self.full:
                break
            if self.add(article):
                added += 1
        return added
