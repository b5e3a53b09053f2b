import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from crawler.schemas.models import Article
from ipo_news.cache import ResultCache
from ipo_news.models import HeadlinesResult


class _Clock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result(title: str) -> HeadlinesResult:
    article = Article(title=title, url=f"https://finance.example.com/news/{len(title)}", source="unit")
    return HeadlinesResult(articles=[article], cached=False, fetched_at=datetime.now(timezone.utc))


class ResultCacheTests(unittest.TestCase):
    def test_entries_expire_after_ttl(self):
        clock = _Clock()
        cache = ResultCache(ttl_seconds=1800, clock=clock)
        cache.set("공모주", _result("공모주 헤드라인 기사"))

        clock.now = 1799
        self.assertIsNotNone(cache.get("공모주"))
        clock.now = 1800
        self.assertIsNone(cache.get("공모주"))
        self.assertIsNotNone(cache.get("공모주", allow_stale=True))

    def test_prunes_expired_entries_past_size_bound(self):
        clock = _Clock()
        cache = ResultCache(ttl_seconds=100, max_entries=2, clock=clock)
        cache.set("a", _result("첫 번째 헤드라인"))
        clock.now = 200
        cache.set("b", _result("두 번째 헤드라인"))
        self.assertEqual(len(cache.snapshot()["entries"]), 2)

        cache.set("c", _result("세 번째 헤드라인"))

        keys = {entry["key"] for entry in cache.snapshot()["entries"]}
        self.assertEqual(keys, {"b", "c"})

    def test_evict_expired(self):
        clock = _Clock()
        cache = ResultCache(ttl_seconds=10, clock=clock)
        cache.set("a", _result("첫 번째 헤드라인"))
        clock.now = 11

        self.assertEqual(cache.evict_expired(), 1)
        self.assertIsNone(cache.get("a", allow_stale=True))

    def test_persists_to_disk(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "headlines.json"
            clock = _Clock(1000.0)
            ResultCache(clock=clock, storage_path=path).set("공모주", _result("디스크에 저장된 헤드라인"))

            restored = ResultCache(clock=clock, storage_path=path).get("공모주")

        self.assertIsNotNone(restored)
        self.assertEqual(restored.articles[0].title, "디스크에 저장된 헤드라인")


if __name__ == "__main__":
    unittest.main()
