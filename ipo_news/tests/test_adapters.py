import unittest
from unittest.mock import MagicMock

from crawler.infra.http import FetchError
from ipo_news.adapters.google_news import GoogleNewsAdapter
from ipo_news.adapters.naver_finance import NaverFinanceAdapter
from ipo_news.adapters.naver_search import NaverSearchAdapter

NAVER_SEARCH_HTML = """
<html><body><ul class="list_news">
<li class="bx"><div class="news_wrap api_ani_send"><div class="news_area">
  <div class="news_info"><div class="info_group"><a class="info press">한국경제</a><span class="info">1시간 전</span></div></div>
  <a href="https://www.hankyung.com/article/202503100001" class="news_tit">에이비씨바이오, 3월 공모주 청약 돌입</a>
  <div class="news_dsc"><div class="dsc_wrap">기관 수요예측 경쟁률이 1000대 1을 넘었다.</div></div>
</div></div></li>
<li class="bx"><div class="news_wrap api_ani_send"><div class="news_area">
  <div class="news_info"><div class="info_group"><a class="info press">머니투데이</a></div></div>
  <a href="https://news.mt.co.kr/mtview.php?no=2025031000002" class="news_tit">디이에프전자 코스닥 상장 첫날 강세</a>
  <div class="news_dsc"><div class="dsc_wrap">상장 첫날 공모가 대비 두 배.</div></div>
</div></div></li>
<li class="bx"><div class="news_wrap"><div class="news_area">
  <a href="https://www.example.com/" class="news_tit">홈페이지로 가는 링크 제목</a>
</div></div></li>
<li class="bx"><div class="news_wrap"><div class="news_area">
  <a href="https://search.naver.com/search.naver?where=news&amp;query=next" class="news_tit">검색 결과 다음 페이지 링크</a>
</div></div></li>
<li class="bx"><div class="news_wrap"><div class="news_area">
  <a href="https://www.example.com/article/short" class="news_tit">짧은제목</a>
</div></div></li>
</ul></body></html>
"""

NAVER_FINANCE_HTML = """
<html><body><ul class="realtimeNewsList">
<li class="newsList top"><dl>
  <dt class="thumb"><a href="/news/news_read.naver?article_id=0001&amp;office_id=015"><img src="x.jpg"></a></dt>
  <dd class="articleSubject"><a href="/news/news_read.naver?article_id=0001&amp;office_id=015">에이비씨바이오 공모주 청약 경쟁률 최고치★</a></dd>
  <dd class="articleSummary">기관 수요예측에서 흥행한 에이비씨바이오가 일반 청약에 나선다.
    <span class="press">한국경제</span><span class="wdate">2025-03-10 09:00:00</span></dd>
</dl></li>
<li class="newsList"><dl>
  <dd class="articleSubject"><a href="/news/news_read.naver?article_id=0002&amp;office_id=008">코스피 마감 시황 외국인 순매수 전환</a></dd>
  <dd class="articleSummary">코스피가 외국인 매수에 상승 마감했다.</dd>
</dl></li>
</ul></body></html>
"""

GOOGLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel>
<title>"공모주" - Google 뉴스</title>
<link>https://news.google.com/search?q=%EA%B3%B5%EB%AA%A8%EC%A3%BC</link>
<item>
  <title>에이비씨바이오 청약 흥행 - 한국경제</title>
  <link>https://news.google.com/rss/articles/CBMiAbc123?oc=5</link>
  <pubDate>Mon, 10 Mar 2025 01:00:00 GMT</pubDate>
  <description>&lt;a href="https://news.google.com/rss/articles/CBMiAbc123"&gt;에이비씨바이오 청약 흥행&lt;/a&gt;&amp;nbsp;&lt;font color="#6f6f6f"&gt;한국경제&lt;/font&gt;</description>
  <source url="https://www.hankyung.com">한국경제</source>
</item>
</channel></rss>
""".encode("utf-8")

GOOGLE_HTML = """
<html><body><main><c-wiz>
<article>
  <a href="./articles/CBMiXyz789?hl=ko&amp;gl=KR" class="WwrzSb"></a>
  <h4>디이에프전자 상장 첫날 급등 마감</h4>
  <div class="vr1PYe">머니투데이</div>
  <time datetime="2025-03-10T01:00:00Z">1시간 전</time>
</article>
</c-wiz></main></body></html>
"""


def _response(content: bytes) -> MagicMock:
    response = MagicMock()
    response.content = content
    response.text = content.decode("utf-8", errors="replace")
    return response


class NaverSearchAdapterTests(unittest.TestCase):
    def test_parses_primary_selector_and_filters_links(self):
        fetcher = MagicMock()
        fetcher.fetch.return_value = _response(NAVER_SEARCH_HTML.encode("utf-8"))
        adapter = NaverSearchAdapter(fetcher=fetcher, qualifier="공모주")

        articles = adapter.search("에이비씨")

        self.assertEqual(
            [a.title for a in articles],
            ["에이비씨바이오, 3월 공모주 청약 돌입", "디이에프전자 코스닥 상장 첫날 강세"],
        )
        self.assertEqual(articles[0].source, "한국경제")
        self.assertEqual(articles[0].snippet, "기관 수요예측 경쟁률이 1000대 1을 넘었다.")
        self.assertEqual(articles[0].provider, "naver_search")
        self.assertTrue(adapter.last_health.healthy)
        self.assertEqual(adapter.last_health.items_last_fetch, 2)

        url = fetcher.fetch.call_args[0][0]
        self.assertTrue(url.startswith("https://search.naver.com/search.naver?where=news&query="))
        self.assertIn("sort=1", url)

    def test_compose_query_appends_qualifier_once(self):
        adapter = NaverSearchAdapter(fetcher=MagicMock(), qualifier="공모주")
        self.assertEqual(adapter.compose_query("에이비씨"), "에이비씨 공모주")
        self.assertEqual(adapter.compose_query("에이비씨 공모주"), "에이비씨 공모주")

    def test_fetch_failure_returns_empty_list(self):
        fetcher = MagicMock()
        fetcher.fetch.side_effect = FetchError("https://search.naver.com/search.naver", "HTTP 503")
        adapter = NaverSearchAdapter(fetcher=fetcher)

        self.assertEqual(adapter.search("공모주"), [])
        self.assertFalse(adapter.last_health.healthy)
        self.assertIn("HTTP 503", adapter.last_health.last_error)

    def test_too_short_body_counts_as_failure(self):
        fetcher = MagicMock()
        fetcher.fetch.return_value = _response(b"<html></html>")
        adapter = NaverSearchAdapter(fetcher=fetcher)

        self.assertEqual(adapter.search("공모주"), [])
        self.assertFalse(adapter.last_health.healthy)

    def test_disabled_adapter_does_not_fetch(self):
        fetcher = MagicMock()
        adapter = NaverSearchAdapter(fetcher=fetcher, enabled=False)

        self.assertEqual(adapter.search("공모주"), [])
        fetcher.fetch.assert_not_called()


class NaverFinanceAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.fetcher = MagicMock()
        self.fetcher.fetch.return_value = _response(NAVER_FINANCE_HTML.encode("euc-kr"))
        self.adapter = NaverFinanceAdapter(fetcher=self.fetcher)

    def test_decodes_euc_kr_listing_and_cleans_titles(self):
        articles = self.adapter.search("")

        self.assertEqual(len(articles), 2)
        first = articles[0]
        self.assertEqual(first.title, "에이비씨바이오 공모주 청약 경쟁률 최고치")
        self.assertEqual(first.url, "https://n.news.naver.com/mnews/article/015/0001")
        self.assertIn("기관 수요예측", first.snippet)
        self.assertEqual(first.source, "한국경제")
        self.assertEqual(first.published_at, "2025-03-10 09:00:00")
        self.assertEqual(articles[1].source, "네이버 금융")

    def test_links_differing_only_by_query_stay_distinct(self):
        items = "".join(
            f'<li><dl><dd class="articleSubject">'
            f'<a href="/news/news_read.naver?article_id=000{i}&amp;office_id=015&amp;mode=LSS2D">공모주 시장 동향 기사 {i}번</a>'
            f"</dd></dl></li>"
            for i in range(1, 8)
        )
        html = f'<html><body><ul class="realtimeNewsList">{items}</ul></body></html>'
        self.fetcher.fetch.return_value = _response(html.encode("euc-kr"))

        articles = self.adapter.search("")

        self.assertEqual(len(articles), 7)
        self.assertEqual(
            [a.url for a in articles[:2]],
            [
                "https://n.news.naver.com/mnews/article/015/0001",
                "https://n.news.naver.com/mnews/article/015/0002",
            ],
        )

    def test_query_terms_filter_the_listing(self):
        articles = self.adapter.search("공모주")
        self.assertEqual([a.title for a in articles], ["에이비씨바이오 공모주 청약 경쟁률 최고치"])

    def test_requests_fixed_listing_url(self):
        self.adapter.search("아무 검색어")
        self.assertIn("news_list.naver?mode=LSS2D", self.fetcher.fetch.call_args[0][0])


class GoogleNewsAdapterTests(unittest.TestCase):
    def test_reads_rss_feed(self):
        fetcher = MagicMock()
        fetcher.fetch.return_value = _response(GOOGLE_RSS)
        adapter = GoogleNewsAdapter(fetcher=fetcher)

        articles = adapter.search("공모주")

        self.assertEqual(len(articles), 1)
        article = articles[0]
        self.assertEqual(article.title, "에이비씨바이오 청약 흥행")
        self.assertEqual(article.source, "한국경제")
        self.assertEqual(article.url, "https://news.google.com/rss/articles/CBMiAbc123?oc=5")
        self.assertTrue(article.published_at.startswith("2025-03-10T01:00:00"))
        self.assertNotIn("<a", article.snippet)

        url = fetcher.fetch.call_args[0][0]
        self.assertTrue(url.startswith("https://news.google.com/rss/search?q="))
        self.assertIn("when%3A1d", url)
        self.assertIn("ceid=KR%3Ako", url)

    def test_falls_back_to_html_search(self):
        fetcher = MagicMock()
        fetcher.fetch.side_effect = [
            FetchError("https://news.google.com/rss/search", "HTTP 503"),
            _response(GOOGLE_HTML.encode("utf-8")),
        ]
        adapter = GoogleNewsAdapter(fetcher=fetcher)

        articles = adapter.search("공모주")

        self.assertEqual(len(articles), 1)
        self.assertEqual(articles[0].title, "디이에프전자 상장 첫날 급등 마감")
        self.assertEqual(articles[0].url, "https://news.google.com/articles/CBMiXyz789?hl=ko&gl=KR")
        self.assertEqual(articles[0].source, "머니투데이")
        self.assertEqual(articles[0].published_at, "2025-03-10T01:00:00Z")


if __name__ == "__main__":
    unittest.main()
