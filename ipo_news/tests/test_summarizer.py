import unittest
from datetime import date
from unittest.mock import MagicMock, patch

from ipo_news.models import SCHEDULE_SENTINEL
from ipo_news.summarizer import (
    ExtractionMalformedError,
    ExtractionUnavailableError,
    GeminiClient,
    StructuredExtractor,
    first_json_object,
    strip_code_fences,
)

FENCED_REPLY = """분석 결과입니다.
```json
{"stock_name": "에이비씨바이오", "schedule": "2025년 3월 10일 청약", "summary": "청약 {흥행} 예상", "keywords": ["공모주", "바이오"], "offer_price": 15000}
```
참고하세요."""


class _FakeClient:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def _extractor(client):
    return StructuredExtractor(client, clock=lambda: date(2025, 3, 1))


class JsonHelpersTests(unittest.TestCase):
    def test_first_json_object_ignores_braces_in_strings(self):
        text = 'prefix {"a": "x}y", "b": {"c": 1}} trailing {"d": 2}'
        self.assertEqual(first_json_object(text), '{"a": "x}y", "b": {"c": 1}}')

    def test_first_json_object_without_object_is_malformed(self):
        with self.assertRaises(ExtractionMalformedError):
            first_json_object("no json here")

    def test_strip_code_fences(self):
        self.assertEqual(strip_code_fences('```json\n{"a": 1}\n```'), '{"a": 1}')


class StructuredExtractorTests(unittest.TestCase):
    def test_parses_fenced_reply_with_prose(self):
        summary = _extractor(_FakeClient(FENCED_REPLY)).extract("제목", "본문", "공모주")

        self.assertEqual(summary.stock_name, "에이비씨바이오")
        self.assertEqual(summary.schedule, "2025년 3월 10일 청약")
        self.assertEqual(summary.summary, "청약 {흥행} 예상")
        self.assertEqual(summary.keywords, "공모주, 바이오")
        self.assertEqual(summary.offer_price, "15000")
        self.assertTrue(summary.has_schedule)

    def test_missing_schedule_becomes_sentinel(self):
        summary = _extractor(_FakeClient('{"summary": "요약", "schedule": "no information"}')).extract_strict(
            "제목", "본문", "공모주"
        )
        self.assertEqual(summary.schedule, SCHEDULE_SENTINEL)
        self.assertEqual(summary.keywords, "공모주")
        self.assertFalse(summary.has_schedule)

    def test_missing_summary_is_malformed(self):
        extractor = _extractor(_FakeClient('{"stock_name": "에이비씨", "schedule": "3월"}'))
        with self.assertRaises(ExtractionMalformedError):
            extractor.extract_strict("제목", "본문", "공모주")

    def test_invalid_json_is_malformed(self):
        extractor = _extractor(_FakeClient('{"summary": }'))
        with self.assertRaises(ExtractionMalformedError):
            extractor.extract_strict("제목", "본문", "공모주")

    def test_fallback_for_every_failure_mode(self):
        title = "에이비씨바이오 다음 주 공모주 청약 시작, 공모가 밴드 상단 확정으로 기대감 커져 투자자 관심 집중되는 모습"
        clients = [
            _FakeClient(error=ExtractionUnavailableError("timed out")),
            _FakeClient(error=RuntimeError("unexpected")),
            _FakeClient("I cannot help with that."),
            _FakeClient('{"summary": ""}'),
        ]
        for client in clients:
            summary = _extractor(client).extract(title, "본문", "공모주", snippet="스니펫 요약")
            self.assertEqual(summary.stock_name, title[:50])
            self.assertEqual(summary.schedule, SCHEDULE_SENTINEL)
            self.assertEqual(summary.summary, "스니펫 요약")
            self.assertEqual(summary.keywords, "공모주")

    def test_fallback_summary_uses_title_without_snippet(self):
        summary = StructuredExtractor.fallback("가" * 150, "", "IPO")
        self.assertEqual(summary.summary, "가" * 100)

    def test_body_is_truncated_to_budget(self):
        client = _FakeClient('{"summary": "요약"}')
        _extractor(client).extract("제목", "ㅋ" * 1_000_000, "공모주")

        self.assertEqual(client.prompts[0].count("ㅋ"), 8000)

    def test_prompt_carries_current_year_and_month(self):
        client = _FakeClient('{"summary": "요약"}')
        _extractor(client).extract("에이비씨 청약", "본문", "공모주")

        prompt = client.prompts[0]
        self.assertIn("현재 날짜는 2025년 3월입니다.", prompt)
        self.assertIn("뉴스 제목: 에이비씨 청약", prompt)


class GeminiClientTests(unittest.TestCase):
    def test_missing_key_is_unavailable(self):
        with self.assertRaises(ExtractionUnavailableError):
            GeminiClient(api_key="").generate("prompt")
        with self.assertRaises(ExtractionUnavailableError):
            GeminiClient(api_key="YOUR_GEMINI_API_KEY").generate("prompt")

    @patch("ipo_news.summarizer.genai.Client")
    def test_generate_returns_reply_text(self, mock_client_cls):
        mock_client = MagicMock()
        mock_client.models.generate_content.return_value = MagicMock(text=' {"summary": "요약"} ')
        mock_client_cls.return_value = mock_client

        text = GeminiClient(api_key="real-key", model="gemini-1.5-flash").generate("prompt")

        self.assertEqual(text, '{"summary": "요약"}')
        kwargs = mock_client.models.generate_content.call_args.kwargs
        self.assertEqual(kwargs["model"], "gemini-1.5-flash")
        self.assertEqual(kwargs["config"].response_mime_type, "application/json")

    @patch("ipo_news.summarizer.genai.Client")
    def test_transport_errors_are_unavailable(self, mock_client_cls):
        mock_client_cls.return_value.models.generate_content.side_effect = ConnectionError("reset")

        with self.assertRaises(ExtractionUnavailableError):
            GeminiClient(api_key="real-key").generate("prompt")


if __name__ == "__main__":
    unittest.main()
