"""
Reusable HTTP fetching utilities with polite defaults (per-domain delay, bounded retries).
"""
from __future__ import annotations

import logging
import random
import threading
import time
from typing import Dict, Optional

import requests

from crawler.infra.security import redact_secrets

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 IpoNewsCrawler/1.0"
)
RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class FetchError(Exception):
    """Raised when a URL could not be fetched within the retry budget."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} ({redact_secrets(url)})")
        self.url = url
        self.reason = reason


class FetchTimeoutError(FetchError):
    """The upstream did not answer within the per-call timeout."""


class HttpFetcher:
    """
    Thin wrapper over requests.Session with polite per-domain throttling.

    Every call is bounded by ``timeout`` seconds per attempt; failures surface as
    :class:`FetchError` (or :class:`FetchTimeoutError`) so callers can degrade locally.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        min_delay: float = 0.0,
        max_retries: int = 1,
        timeout: float = 15,
        accept_language: str = "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
        referer: Optional[str] = None,
    ) -> None:
        self.session = requests.Session()
        self.session.headers.update(
            {
                "User-Agent": user_agent or DEFAULT_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": accept_language,
            }
        )
        if referer:
            self.session.headers["Referer"] = referer
        self.min_delay = min_delay
        self.max_retries = max(1, max_retries)
        self.timeout = timeout
        self._last_hit: Dict[str, float] = {}
        self._lock = threading.RLock()

    def fetch(self, url: str) -> requests.Response:
        """
        Fetch ``url`` and return the response (raw bytes in ``.content``).

        Raises:
            FetchTimeoutError: the last attempt timed out.
            FetchError: any other transport or HTTP failure after retries.
        """
        last_error: FetchError = FetchError(url, "no attempt made")
        for attempt in range(self.max_retries):
            self._respect_delay(url)
            try:
                response = self.session.get(url, timeout=self.timeout)
            except requests.Timeout:
                last_error = FetchTimeoutError(url, f"timed out after {self.timeout}s")
            except requests.RequestException as exc:
                last_error = FetchError(url, f"{type(exc).__name__}: {exc}")
            else:
                if response.status_code < 400:
                    return response
                last_error = FetchError(url, f"HTTP {response.status_code}")
                if response.status_code not in RETRYABLE_STATUS:
                    break

            if attempt + 1 < self.max_retries:
                backoff = min(10.0, max(self.min_delay, 0.5) * (2 ** attempt))
                logger.debug("Retrying %s in %.1fs: %s", redact_secrets(url), backoff, last_error.reason)
                time.sleep(backoff + random.random())
        raise last_error

    def _respect_delay(self, url: str) -> None:
        if self.min_delay <= 0:
            return
        domain = self._extract_domain(url)
        with self._lock:
            last = self._last_hit.get(domain)
            now = time.time()
            if last and now - last < self.min_delay:
                time.sleep(self.min_delay - (now - last))
            self._last_hit[domain] = time.time()

    @staticmethod
    def _extract_domain(url: str) -> str:
        return url.split("/")[2] if "://" in url else url
