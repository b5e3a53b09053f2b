"""
Main-body extraction for news article pages.
"""
from __future__ import annotations

import logging
import re
from typing import Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from crawler.extractors.encoding import EncodingNormalizer
from crawler.infra.http import FetchError, HttpFetcher

logger = logging.getLogger(__name__)

MIN_BODY_LENGTH = 50
_WHITESPACE = re.compile(r"\s+")

# Ordered from most to least specific; the first group yielding enough text wins.
SELECTOR_GROUPS: Tuple[Tuple[str, Sequence[str]], ...] = (
    (
        "known-source",
        (
            ".go_trans._article_content",
            "#dic_area",
            "#articleBodyContents",
            "#newsct_article",
            "#articeBody",
            "#articleBody",
            ".article_body",
        ),
    ),
    (
        "generic-class",
        (
            "article .article-body",
            "article .post-content",
            ".article-body",
            ".post-content",
            ".news-content",
            ".article_view",
            ".content",
        ),
    ),
    ("structural", ("article", "main")),
)
NOISE_SELECTORS = "script, style, noscript, nav, header, footer, aside, iframe, .ad, .ads, .advertisement"


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


class ContentExtractor:
    """
    Best-effort article text from decoded HTML.

    Returns an empty string when nothing qualifies; callers treat that as
    "no content", never as an error.
    """

    def __init__(self, min_length: int = MIN_BODY_LENGTH) -> None:
        self.min_length = min_length

    def extract(self, html: str) -> str:
        if not html or not html.strip():
            return ""
        try:
            soup = BeautifulSoup(html, "lxml")
        except Exception as exc:
            logger.debug("HTML parse failed: %s", exc)
            return ""

        for tag in soup.select("script, style, noscript"):
            tag.decompose()

        for group_name, selectors in SELECTOR_GROUPS:
            text = self._first_qualifying(soup, selectors)
            if text:
                logger.debug("Body extracted via %s selectors (%d chars)", group_name, len(text))
                return text

        for tag in soup.select(NOISE_SELECTORS):
            tag.decompose()
        root = soup.body or soup
        text = normalize_whitespace(root.get_text(" "))
        if len(text) > self.min_length:
            logger.debug("Body extracted from stripped document (%d chars)", len(text))
            return text
        return ""

    def _first_qualifying(self, soup: BeautifulSoup, selectors: Sequence[str]) -> str:
        for selector in selectors:
            for element in soup.select(selector):
                text = normalize_whitespace(element.get_text(" "))
                if len(text) > self.min_length:
                    return text
        return ""


class ArticleBodyFetcher:
    """Fetch an article page and return its main text, or "" on any failure."""

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        normalizer: Optional[EncodingNormalizer] = None,
        extractor: Optional[ContentExtractor] = None,
        timeout: float = 10,
    ) -> None:
        self.fetcher = fetcher or HttpFetcher(timeout=timeout)
        self.normalizer = normalizer or EncodingNormalizer()
        self.extractor = extractor or ContentExtractor()

    def fetch(self, url: str) -> str:
        try:
            response = self.fetcher.fetch(url)
        except FetchError as exc:
            logger.warning("Article body fetch failed: %s", exc)
            return ""
        html = self.normalizer.decode(response.content, default_text=lambda: response.text)
        return self.extractor.extract(html)
