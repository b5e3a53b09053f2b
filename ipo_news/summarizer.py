"""
Structured field extraction from article text through Gemini.

The model is asked for a single JSON object; the reply is unwrapped from any
markdown fences or surrounding prose, then validated against
:class:`SummaryPayload`. ``StructuredExtractor.extract`` never raises: any
failure yields the fallback summary built from the article itself.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Callable, List, Optional, Protocol, Union

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from crawler.infra.security import is_configured_key, redact_secrets
from ipo_news.models import SCHEDULE_SENTINEL, ExtractedSummary

logger = logging.getLogger(__name__)

DEFAULT_BODY_BUDGET = 8000
STOCK_NAME_FALLBACK_LENGTH = 50
SUMMARY_FALLBACK_LENGTH = 100
_SENTINEL_ALIASES = {SCHEDULE_SENTINEL, "no information", "없음", "n/a"}
_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?")


class ExtractionError(Exception):
    """The text-understanding step produced no usable summary."""


class ExtractionUnavailableError(ExtractionError):
    """Service not configured, unreachable, timed out or returned nothing."""


class ExtractionMalformedError(ExtractionError):
    """The reply held no JSON object, invalid JSON, or violated the schema."""


class TextUnderstandingClient(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class GeminiClient:
    """Minimal google-genai wrapper returning the reply text."""

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash", timeout: float = 30.0, temperature: float = 0.2) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self._client = None

    @property
    def configured(self) -> bool:
        return is_configured_key(self.api_key)

    def _get_client(self):
        if self._client is None:
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def generate(self, prompt: str) -> str:
        if not self.configured:
            raise ExtractionUnavailableError("GEMINI_API_KEY is not configured")

        try:
            response = self._get_client().models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=self.temperature,
                    response_mime_type="application/json",
                ),
            )
        except Exception as exc:
            raise ExtractionUnavailableError(redact_secrets(f"{type(exc).__name__}: {exc}")) from exc
        text = (getattr(response, "text", None) or "").strip()
        if not text:
            raise ExtractionUnavailableError("empty response from model")
        return text


class SummaryPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stock_name: Optional[str] = None
    schedule: Optional[str] = None
    summary: str
    keywords: Optional[Union[str, List[str]]] = None
    offer_price: Optional[str] = None
    subscription_period: Optional[str] = None
    listing_date: Optional[str] = None

    @field_validator("stock_name", "schedule", "offer_price", "subscription_period", "listing_date", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("summary")
    @classmethod
    def _require_summary(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("summary must not be empty")
        return value

    def keywords_text(self) -> str:
        if isinstance(self.keywords, list):
            return ", ".join(str(item).strip() for item in self.keywords if str(item).strip())
        return (self.keywords or "").strip()


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text).replace("```", "").strip()


def first_json_object(text: str) -> str:
    """Return the first balanced ``{...}`` block, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    raise ExtractionMalformedError("no JSON object in response")


def parse_summary(text: str) -> SummaryPayload:
    block = first_json_object(strip_code_fences(text))
    try:
        data = json.loads(block)
    except json.JSONDecodeError as exc:
        raise ExtractionMalformedError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ExtractionMalformedError("response JSON is not an object")
    try:
        return SummaryPayload.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ExtractionMalformedError(f"schema violation: {fields}") from exc


def _normalize_schedule(value: Optional[str]) -> str:
    if not value or value.strip().lower() in _SENTINEL_ALIASES:
        return SCHEDULE_SENTINEL
    return value.strip()


class StructuredExtractor:
    def __init__(
        self,
        client: TextUnderstandingClient,
        body_budget: int = DEFAULT_BODY_BUDGET,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.client = client
        self.body_budget = body_budget
        self._clock = clock

    def build_prompt(self, title: str, body: str, topic_hint: str) -> str:
        today = self._clock()
        year, month = today.year, today.month
        body = (body or "")[: self.body_budget]
        return f"""다음 뉴스 기사를 분석하여 "{topic_hint}" 관련 핵심 정보를 추출해주세요.

**중요**: 반드시 아래 형식의 JSON 객체 하나만 응답하고, 다른 설명은 포함하지 마세요.

**일정 정보 추출 시 주의사항:**
- 현재 날짜는 {year}년 {month}월입니다.
- 일정이 명시되어 있으면 정확한 날짜를 추출하세요 (예: "{year}년 {month}월 15일 청약", "{month}월 20일 상장")
- 년도가 없으면 {year}년을 기본값으로 사용하세요
- 월이 없으면 {month}월을 기본값으로 사용하세요
- 청약일, 상장일, 수요예측일 등 구체적인 일정을 추출하세요

{{
  "stock_name": "종목명 또는 주요 키워드 (없으면 '{SCHEDULE_SENTINEL}')",
  "schedule": "일정 정보 (예: {year}년 {month}월 15일 청약, {year}년 {month}월 20일 상장, 없으면 '{SCHEDULE_SENTINEL}')",
  "summary": "핵심 내용 요약 (100자 이내, {topic_hint} 관련 핵심 정보 포함)",
  "keywords": "핵심 키워드 3-5개 (쉼표로 구분)",
  "offer_price": "공모가 (없으면 null)",
  "subscription_period": "청약 기간 (없으면 null)",
  "listing_date": "상장일 (없으면 null)"
}}

뉴스 제목: {title}

뉴스 내용:
{body}
"""

    def extract_strict(self, title: str, body: str, topic_hint: str) -> ExtractedSummary:
        """
        Call the model and validate its reply.

        Raises:
            ExtractionUnavailableError: the service could not be reached or returned nothing.
            ExtractionMalformedError: the reply could not be parsed into a summary.
        """
        reply = self.client.generate(self.build_prompt(title, body, topic_hint))
        payload = parse_summary(reply)
        return ExtractedSummary(
            stock_name=payload.stock_name or SCHEDULE_SENTINEL,
            schedule=_normalize_schedule(payload.schedule),
            summary=payload.summary,
            keywords=payload.keywords_text() or topic_hint,
            offer_price=payload.offer_price,
            subscription_period=payload.subscription_period,
            listing_date=payload.listing_date,
        )

    def extract(self, title: str, body: str, topic_hint: str, snippet: str = "") -> ExtractedSummary:
        try:
            return self.extract_strict(title, body, topic_hint)
        except ExtractionError as exc:
            logger.warning("Extraction failed for %r, using fallback: %s", title[:60], exc)
        except Exception as exc:
            logger.error("Unexpected extraction error for %r, using fallback: %s", title[:60], redact_secrets(str(exc)))
        return self.fallback(title, snippet, topic_hint)

    @staticmethod
    def fallback(title: str, snippet: str, topic_hint: str) -> ExtractedSummary:
        title = (title or "").strip()
        return ExtractedSummary(
            stock_name=title[:STOCK_NAME_FALLBACK_LENGTH] or SCHEDULE_SENTINEL,
            schedule=SCHEDULE_SENTINEL,
            summary=(snippet or "").strip() or title[:SUMMARY_FALLBACK_LENGTH] or SCHEDULE_SENTINEL,
            keywords=topic_hint,
        )
