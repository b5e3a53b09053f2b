"""
Pydantic models for crawler outputs.
Search results carry only metadata (title, snippet, URL); bodies are fetched separately.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Article(BaseModel):
    """One search-result item, immutable for the lifetime of a pipeline run."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    snippet: str = ""
    source: str = ""
    published_at: Optional[str] = None
    provider: str = ""

    @field_validator("title", "snippet", "source", mode="before")
    @classmethod
    def _trim(cls, value: Optional[str]) -> str:
        return " ".join((value or "").split())

    @field_validator("url", mode="before")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        value = (value or "").strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value


SCHEDULE_SENTINEL = "정보 없음"


class RecordInput(BaseModel):
    """Fields written by one upsert; ``link`` is the business key."""

    title: str
    summary: str
    link: str
    schedule: Optional[str] = None
    keywords: Optional[str] = None

    @field_validator("schedule", "keywords", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        if not value or value == SCHEDULE_SENTINEL:
            return None
        return value


class NormalizedRecord(RecordInput):
    """A persisted row; ``id`` and ``created_at`` are assigned by the store."""

    id: int
    created_at: Optional[datetime] = None
