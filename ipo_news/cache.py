"""
TTL cache for headline listings, owned by the pipeline coordinator.

Entries live in memory and, when ``storage_path`` is given, are mirrored to a
JSON file so a restarted process can serve the last listing.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from crawler.schemas.models import Article
from ipo_news.models import HeadlinesResult

logger = logging.getLogger(__name__)


class ResultCache:
    def __init__(
        self,
        ttl_seconds: int = 1800,
        max_entries: int = 10,
        clock: Callable[[], float] = time.time,
        storage_path: Optional[Path] = None,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.storage_path = storage_path
        self._clock = clock
        self._lock = threading.Lock()
        self._memory: Dict[str, Tuple[HeadlinesResult, float]] = {}
        if storage_path is not None:
            self._memory.update(self._load_disk_entries())

    @staticmethod
    def _key(topic: str) -> str:
        return " ".join((topic or "").split()).lower()

    def get(self, topic: str, allow_stale: bool = False) -> Optional[HeadlinesResult]:
        key = self._key(topic)
        with self._lock:
            entry = self._memory.get(key)
        if entry is None:
            return None
        result, ts = entry
        if allow_stale or self._clock() - ts < self.ttl_seconds:
            return result
        return None

    def set(self, topic: str, result: HeadlinesResult) -> None:
        now = self._clock()
        with self._lock:
            self._memory[self._key(topic)] = (result, now)
            # Pruning only kicks in past the size bound.
            if len(self._memory) > self.max_entries:
                self._evict_expired_locked(now)
            entries = dict(self._memory)
        self._write_disk_entries(entries)

    def evict_expired(self) -> int:
        with self._lock:
            removed = self._evict_expired_locked(self._clock())
            entries = dict(self._memory)
        if removed:
            self._write_disk_entries(entries)
        return removed

    def _evict_expired_locked(self, now: float) -> int:
        expired = [key for key, (_, ts) in self._memory.items() if now - ts >= self.ttl_seconds]
        for key in expired:
            del self._memory[key]
        return len(expired)

    def snapshot(self) -> Dict[str, object]:
        """Lightweight view for the status payload; no article content."""
        now = self._clock()
        with self._lock:
            entries = [
                {
                    "key": key,
                    "age_seconds": round(now - ts, 2),
                    "items": len(result.articles),
                    "fresh": now - ts < self.ttl_seconds,
                }
                for key, (result, ts) in self._memory.items()
            ]
        return {
            "ttl_seconds": self.ttl_seconds,
            "max_entries": self.max_entries,
            "storage_path": str(self.storage_path) if self.storage_path else None,
            "entries": entries,
        }

    def _load_disk_entries(self) -> Dict[str, Tuple[HeadlinesResult, float]]:
        if self.storage_path is None or not self.storage_path.exists():
            return {}
        try:
            blob = json.loads(self.storage_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable cache file %s: %s", self.storage_path, exc)
            return {}

        entries: Dict[str, Tuple[HeadlinesResult, float]] = {}
        for key, payload in (blob.get("entries") or {}).items():
            try:
                articles: List[Article] = [Article.model_validate(item) for item in payload.get("articles", [])]
                result = HeadlinesResult(
                    articles=articles,
                    cached=True,
                    fetched_at=datetime.fromisoformat(payload["fetched_at"]),
                )
                entries[key] = (result, float(payload.get("ts", 0)))
            except (KeyError, TypeError, ValueError, ValidationError) as exc:
                logger.debug("Failed to hydrate cache entry %s: %s", key, exc)
        return entries

    def _write_disk_entries(self, entries: Dict[str, Tuple[HeadlinesResult, float]]) -> None:
        if self.storage_path is None:
            return
        payload = {
            "entries": {
                key: {
                    "fetched_at": result.fetched_at.isoformat(),
                    "articles": [article.model_dump() for article in result.articles],
                    "ts": ts,
                }
                for key, (result, ts) in entries.items()
            },
            "version": 1,
        }
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            self.storage_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            logger.debug("Persisting cache failed: %s", exc)
