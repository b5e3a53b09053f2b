"""
Map free-text schedule strings to a status label and urgency tier.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from ipo_news.models import ScheduleStatus, Urgency

SUBSCRIBING = "subscribing"
LISTING_TODAY = "listing today"
BOOK_BUILDING = "book-building"
LISTING_SCHEDULED = "listing scheduled"
CHECK_SCHEDULE = "check schedule"

_ACTIVE_SUBSCRIPTION = ("청약중", "청약 중", "청약 진행", "subscribing")
_SUBSCRIPTION = ("청약", "subscription")
_LISTING = ("상장", "listing")
_DEMAND_FORECAST = ("수요예측", "수요", "book-building", "demand forecast")
_TODAY = ("오늘", "today")


def _today_tokens(today: date) -> tuple:
    # "2025. 3. 10." is the ko-KR short date format.
    return _TODAY + (
        f"{today.year}. {today.month}. {today.day}.",
        f"{today.year}년 {today.month}월 {today.day}일",
    )


def _contains(text: str, needles) -> bool:
    return any(needle in text for needle in needles)


def classify(schedule_text: Optional[str], today: Optional[date] = None) -> ScheduleStatus:
    """
    Rules are checked in order, first match wins:

    1. an open subscription window -> subscribing / high
    2. a listing dated today -> listing today / high
    3. any other subscription mention -> subscribing / medium
    4. demand forecast -> book-building / medium
    5. any other listing mention -> listing scheduled / medium
    6. anything else, including the no-information sentinel -> check schedule / low
    """
    text = (schedule_text or "").strip().lower()
    if not text:
        return ScheduleStatus(CHECK_SCHEDULE, Urgency.LOW)
    today = today or date.today()

    if _contains(text, _ACTIVE_SUBSCRIPTION):
        return ScheduleStatus(SUBSCRIBING, Urgency.HIGH)
    if _contains(text, _LISTING) and _contains(text, _today_tokens(today)):
        return ScheduleStatus(LISTING_TODAY, Urgency.HIGH)
    if _contains(text, _SUBSCRIPTION):
        return ScheduleStatus(SUBSCRIBING, Urgency.MEDIUM)
    if _contains(text, _DEMAND_FORECAST):
        return ScheduleStatus(BOOK_BUILDING, Urgency.MEDIUM)
    if _contains(text, _LISTING):
        return ScheduleStatus(LISTING_SCHEDULED, Urgency.MEDIUM)
    return ScheduleStatus(CHECK_SCHEDULE, Urgency.LOW)


def is_current_month(schedule_text: Optional[str], year: int, month: int) -> bool:
    return f"{year}년 {month}월" in (schedule_text or "")
