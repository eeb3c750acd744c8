"""Timeframe parsing: "2 weeks", "3 tháng", "about a year" -> day count."""

import re
from typing import Optional

from config import settings

# Longest alternatives first so "weeks" wins over "week"
_UNIT_DAYS = {
    "days": 1, "day": 1, "ngày": 1,
    "weeks": 7, "week": 7, "tuần": 7,
    "months": 30, "month": 30, "tháng": 30,
    "years": 365, "year": 365, "năm": 365,
}

_TIMEFRAME_RE = re.compile(
    r"(?:(\d+)\s*)?(?<![^\W\d])(" + "|".join(sorted(_UNIT_DAYS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)

# "1.5 months", "2,5 tuần": fractional counts are not supported
_DECIMAL_COUNT_RE = re.compile(r"\d+[.,]\d")


def parse_timeframe(text: Optional[str], default: Optional[int] = None) -> int:
    """Convert a human timeframe into a number of days.

    The first recognised unit wins; a missing count means 1. Empty,
    unrecognised or fractional input returns the default (30 days unless
    configured). The result lies between 1 and MAX_TIMEFRAME_DAYS.
    """
    fallback = default if default is not None else settings.DEFAULT_TIMEFRAME_DAYS
    if not text or not text.strip():
        return fallback

    text = text.strip().lower()
    if _DECIMAL_COUNT_RE.search(text):
        return fallback

    match = _TIMEFRAME_RE.search(text)
    if not match:
        return fallback

    count = int(match.group(1)) if match.group(1) else 1
    days = max(count, 1) * _UNIT_DAYS[match.group(2).lower()]
    return min(days, settings.MAX_TIMEFRAME_DAYS)
