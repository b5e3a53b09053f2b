import unittest
from unittest.mock import MagicMock

from crawler.extractors.content import ArticleBodyFetcher, ContentExtractor
from crawler.infra.http import FetchError

BODY = "하이브리드 공모주가 다음 주 청약을 시작하며 공모가 밴드 상단이 확정되었다는 소식이다. 기관 수요예측 경쟁률은 1000대 1을 넘었다."


class ContentExtractorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.extractor = ContentExtractor()

    def test_known_source_container_wins(self):
        html = f"""
        <html><body>
          <div class="content">{"generic text " * 10}</div>
          <div id="dic_area">{BODY}  {BODY}</div>
        </body></html>
        """
        self.assertEqual(self.extractor.extract(html), f"{BODY} {BODY}")

    def test_falls_back_to_article_element(self):
        html = f"<html><body><nav>menu</nav><article><p>{BODY}</p>\n<p>{BODY}</p></article></body></html>"
        self.assertEqual(self.extractor.extract(html), f"{BODY} {BODY}")

    def test_generic_class_container_beats_structural_elements(self):
        lead = "오늘 증시 마감 시황과 함께 주요 종목의 등락을 정리한 기사 목록입니다. 외국인은 순매수로 돌아섰다."
        html = f"""
        <html><body><main>
          <p>{lead}</p>
          <div class="article-body">{BODY}</div>
        </main></body></html>
        """
        self.assertEqual(self.extractor.extract(html), BODY)

    def test_whole_document_strips_noise(self):
        html = f"""
        <html><head><script>var tracking = 1;</script></head>
        <body><nav>navigation links</nav><div>{BODY}</div><footer>copyright</footer></body></html>
        """
        text = self.extractor.extract(html)
        self.assertIn(BODY, text)
        self.assertNotIn("navigation", text)
        self.assertNotIn("tracking", text)

    def test_short_pages_yield_empty_string(self):
        self.assertEqual(self.extractor.extract("<html><body><p>too short</p></body></html>"), "")
        self.assertEqual(self.extractor.extract(""), "")


class ArticleBodyFetcherTests(unittest.TestCase):
    def test_fetch_failure_returns_empty_string(self):
        fetcher = MagicMock()
        fetcher.fetch.side_effect = FetchError("https://example.com/a", "HTTP 500")

        self.assertEqual(ArticleBodyFetcher(fetcher=fetcher).fetch("https://example.com/a"), "")

    def test_decodes_and_extracts(self):
        html = f"<html><body><div id='dic_area'>{BODY}</div>{'padding ' * 20}</body></html>"
        response = MagicMock()
        response.content = html.encode("euc-kr")
        fetcher = MagicMock()
        fetcher.fetch.return_value = response

        self.assertEqual(ArticleBodyFetcher(fetcher=fetcher).fetch("https://example.com/a"), BODY)


if __name__ == "__main__":
    unittest.main()
