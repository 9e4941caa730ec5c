"""Recency filter for raw feed dates.

Two paths, tried in order:

* relative phrases ("3 ore în urmă", "45 min ago") are measured as a
  rolling duration against the window;
* absolute dates are accepted only when they fall on the current
  calendar day in the configured timezone, whatever the window says.

Empty or unparseable input is never within the window.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from dateutil import parser as dateparser


_RELATIVE_RE = re.compile(
    r"(?<!\d)(\d{1,3})\s*"
    r"(minutes|minute|minut|mins|min|hours|hour|hrs|ore|ora|oră|h|zile|zi|days|day)\b"
    r"\s*(?:în urmă|in urma|ago)?",
    re.IGNORECASE,
)

# "19 oct 2026 ora 10:30": the hour connector is not a date token
_AT_HOUR_RE = re.compile(r"\b(?:ora|oră)\b", re.IGNORECASE)

_MINUTE_UNITS = {"minutes", "minute", "minut", "mins", "min"}
_HOUR_UNITS = {"hours", "hour", "hrs", "ore", "ora", "oră", "h"}


def parse_relative_age(text: str) -> Optional[timedelta]:
    m = _RELATIVE_RE.search((text or "").lower())
    if not m:
        return None
    value = int(m.group(1))
    unit = m.group(2)
    if unit in _MINUTE_UNITS:
        return timedelta(minutes=value)
    if unit in _HOUR_UNITS:
        return timedelta(hours=value)
    return timedelta(days=value)


def parse_absolute(text: str, tz: tzinfo) -> Optional[datetime]:
    try:
        dt = dateparser.parse(_AT_HOUR_RE.sub(" ", text))
    except (ValueError, OverflowError):
        return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def within_window(raw_date: str, now: datetime, window_hours: float, tz: tzinfo) -> bool:
    if not raw_date or not str(raw_date).strip():
        return False
    text = str(raw_date).strip()

    age = parse_relative_age(text)
    if age is not None:
        return age <= timedelta(hours=window_hours)

    dt = parse_absolute(text, tz)
    if dt is None:
        return False
    local_now = now.astimezone(tz) if now.tzinfo else now.replace(tzinfo=tz)
    return dt.date() == local_now.date()
