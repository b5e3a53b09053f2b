import unittest
from datetime import date
from unittest.mock import MagicMock

from crawler.pipelines.store import Store, StoreUnavailableError
from ipo_news.api import create_app
from ipo_news.classifier import classify
from ipo_news.models import CrawlResult, CrawlStatus, PipelineState, RecordInput


class ApiRoutesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = Store("sqlite://")
        self.store.upsert(
            RecordInput(
                title="에이비씨바이오",
                summary="3월 청약 예정",
                link="https://news.example.com/article/1",
                schedule="2025년 3월 12일 청약",
                keywords="공모주, 청약",
            )
        )
        self.coordinator = MagicMock()
        self.coordinator.store = self.store
        self.coordinator.calendar.side_effect = lambda kind=None: [
            (record, classify(record.schedule, today=date(2025, 3, 10))) for record in self.store.scheduled(kind)
        ]
        self.client = create_app(self.coordinator).test_client()

    def test_crawl_reports_saved_count(self):
        self.coordinator.run_crawl.return_value = CrawlResult(
            status=CrawlStatus.DONE,
            query="에이비씨 공모주",
            total_fetched=5,
            saved_count=5,
            processed_count=5,
            message="Saved 5 of 5 articles",
            state=PipelineState.DONE,
        )

        response = self.client.post("/api/crawl", json={"searchQuery": "에이비씨"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["savedCount"], 5)
        self.coordinator.run_crawl.assert_called_once_with("에이비씨")

    def test_crawl_failure_is_server_error(self):
        self.coordinator.run_crawl.return_value = CrawlResult(
            status=CrawlStatus.CONFIG_ERROR,
            query="공모주",
            errors=["store unreachable"],
            message="Persistence store is unavailable or misconfigured",
            state=PipelineState.FATAL_ABORTED,
        )

        response = self.client.post("/api/crawl")

        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.get_json()["success"])
        self.coordinator.run_crawl.assert_called_once_with(None)

    def test_articles_lists_recent_records(self):
        payload = self.client.get("/api/articles?limit=5").get_json()

        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["data"][0]["title"], "에이비씨바이오")

    def test_calendar_includes_status(self):
        payload = self.client.get("/api/calendar?filter=subscription").get_json()

        self.assertEqual(payload["data"][0]["status"], "subscribing")
        self.assertEqual(payload["data"][0]["urgency"], "medium")

    def test_calendar_rejects_unknown_filter(self):
        response = self.client.get("/api/calendar?filter=bogus")

        self.assertEqual(response.status_code, 400)

    def test_detail_and_missing_record(self):
        record = self.store.get_by_link("https://news.example.com/article/1")

        found = self.client.get(f"/api/ipo/{record.id}")
        missing = self.client.get("/api/ipo/999")

        self.assertEqual(found.status_code, 200)
        self.assertEqual(found.get_json()["data"]["status"], "subscribing")
        self.assertEqual(missing.status_code, 404)

    def test_autocomplete(self):
        payload = self.client.get("/api/autocomplete", query_string={"q": "에이비"}).get_json()

        self.assertEqual(payload["suggestions"], ["에이비씨바이오"])

    def test_store_outage_maps_to_service_unavailable(self):
        self.coordinator.store = MagicMock()
        self.coordinator.store.recent.side_effect = StoreUnavailableError("store unreachable")

        response = self.client.get("/api/articles")

        self.assertEqual(response.status_code, 503)


if __name__ == "__main__":
    unittest.main()
