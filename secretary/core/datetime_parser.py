"""
Group Secretary Bot — Japanese Date/Time Extractor.

Pure functions turning Japanese date/time fragments into absolute instants.
Patterns are tried in fixed precedence; the first match wins:

    1. explicit year-month-day          2026/2/15, 2026-2-15, 2026年2月15日
    2. month/day                        2/15            (next year if past)
    3. Japanese month/day               2月15日         (next year if past)
    4. relative day + hour              明日15時
    5. period word + hour               午後3時         (next day if past)
    6. N hours from now                 3時間後         (rounded to :00/:30)
    7. bare hour                        15時            (next day if past)

Date-only matches resolve to 23:59:59.999 local on that date; an hour
written alongside the date sets the time instead.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

# Fixed UTC offsets for the supported display zones (hours)
_FIXED_OFFSETS: dict[str, int] = {
    "Asia/Manila": 8,
    "Asia/Tokyo": 9,
    "Asia/Singapore": 8,
    "Asia/Hong_Kong": 8,
    "America/New_York": -5,
    "America/Los_Angeles": -8,
    "Europe/London": 0,
    "UTC": 0,
}

_TIMEZONE_LABELS: dict[str, str] = {
    "Asia/Manila": "フィリピン時間",
    "Asia/Tokyo": "日本時間",
    "Asia/Singapore": "シンガポール時間",
    "Asia/Hong_Kong": "香港時間",
    "America/New_York": "ニューヨーク時間",
    "America/Los_Angeles": "ロサンゼルス時間",
    "Europe/London": "ロンドン時間",
    "UTC": "UTC",
}

_FULLWIDTH = str.maketrans("０１２３４５６７８９：／", "0123456789:/")

_RELATIVE_DAYS = {"今日": 0, "明日": 1, "明後日": 2}
_PM_PERIODS = {"午後", "夕方", "夜"}

# Hour with optional minutes: 15時, 15時30分, 15時半
_HOUR = r"(\d{1,2})時(?!間)(?:(\d{1,2})分|(半))?"
_PERIOD = r"(朝|午前|午後|夕方|夜|深夜)"

_YMD_RE = re.compile(r"(\d{4})\s*[/\-年]\s*(\d{1,2})\s*[/\-月]\s*(\d{1,2})日?")
_MD_SLASH_RE = re.compile(r"(?<!\d)(\d{1,2})[/\-](\d{1,2})(?!\d)")
_MD_JP_RE = re.compile(r"(\d{1,2})月(\d{1,2})日")
_RELATIVE_RE = re.compile(r"(今日|明日|明後日)\s*" + _PERIOD + r"?\s*" + _HOUR)
_PERIOD_RE = re.compile(_PERIOD + r"\s*" + _HOUR)
_HOURS_LATER_RE = re.compile(r"(\d{1,2})時間後")
_BARE_HOUR_RE = re.compile(_HOUR)
_COLON_TIME_RE = re.compile(r"(?<!\d)(\d{1,2}):(\d{2})(?!\d)")


# ---------------------------------------------------------------------------
# Timezone helpers
# ---------------------------------------------------------------------------


def zone_for(name: str) -> tzinfo:
    """Resolve a display timezone name, preferring the fixed-offset table."""
    if name in _FIXED_OFFSETS:
        return timezone(timedelta(hours=_FIXED_OFFSETS[name]), name)
    return ZoneInfo(name)


def timezone_label(name: str) -> str:
    return _TIMEZONE_LABELS.get(name, name)


def normalize_digits(text: str) -> str:
    """Convert full-width digits, colon and slash to half-width."""
    return text.translate(_FULLWIDTH)


def end_of_day(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)


def round_to_half_hour(moment: datetime) -> datetime:
    """Round to the nearest :00 or :30 (<15 → :00, <45 → :30, else next hour)."""
    base = moment.replace(minute=0, second=0, microsecond=0)
    if moment.minute < 15:
        return base
    if moment.minute < 45:
        return base.replace(minute=30)
    return base + timedelta(hours=1)


def format_datetime(moment: datetime, tz: tzinfo) -> str:
    """Render as 'M月D日 HH:MM' in the given zone."""
    local = moment.astimezone(tz)
    return f"{local.month}月{local.day}日 {local.hour:02d}:{local.minute:02d}"


def format_date(moment: datetime, tz: tzinfo) -> str:
    """Render as 'YYYY/M/D' in the given zone."""
    local = moment.astimezone(tz)
    return f"{local.year}/{local.month}/{local.day}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _apply_period(period: str | None, hour: int) -> int:
    if period in _PM_PERIODS and hour < 12:
        return hour + 12
    return hour


def _hour_minute(hour_s: str, minute_s: str | None, half: str | None,
                 period: str | None = None) -> tuple[int, int] | None:
    hour = _apply_period(period, int(hour_s))
    minute = 30 if half else int(minute_s or 0)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def _time_in(text: str) -> tuple[int, int] | None | bool:
    """Find an explicit time of day in text.

    Returns (hour, minute), None when a time is present but invalid,
    or False when no time is written at all.
    """
    match = _PERIOD_RE.search(text)
    if match:
        return _hour_minute(match.group(2), match.group(3), match.group(4), match.group(1))
    match = _BARE_HOUR_RE.search(text)
    if match:
        return _hour_minute(match.group(1), match.group(2), match.group(3))
    match = _COLON_TIME_RE.search(text)
    if match:
        return _hour_minute(match.group(1), match.group(2), None)
    return False


def _on_date(day: date, rest: str, tz: tzinfo) -> datetime | None:
    found = _time_in(rest)
    if found is None:
        return None
    if found is False:
        return end_of_day(day, tz)
    hour, minute = found
    return datetime.combine(day, time(hour, minute), tzinfo=tz)


def _with_year_rollover(month: int, day: int, rest: str, now_local: datetime,
                        tz: tzinfo) -> datetime | None:
    target = _safe_date(now_local.year, month, day)
    if target is None:
        return None
    result = _on_date(target, rest, tz)
    if result is not None and result < now_local:
        next_year = _safe_date(now_local.year + 1, month, day)
        if next_year is None:
            return None
        result = result.replace(year=next_year.year)
    return result


def _at_hour_rolling(now_local: datetime, hour: int, minute: int) -> datetime:
    target = now_local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now_local:
        target += timedelta(days=1)
    return target


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse(text: str, now: datetime, tz_name: str = "Asia/Manila") -> datetime | None:
    """Extract an absolute instant from Japanese text, or None.

    `now` must be timezone-aware. The result is expressed in the display zone.
    """
    tz = zone_for(tz_name)
    now_local = now.astimezone(tz)
    text = normalize_digits(text)

    # 1. explicit year-month-day
    match = _YMD_RE.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        target = _safe_date(year, month, day)
        if target is None:
            return None
        return _on_date(target, text[match.end():], tz)

    # 2. month/day
    match = _MD_SLASH_RE.search(text)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        return _with_year_rollover(month, day, text[match.end():], now_local, tz)

    # 3. Japanese month/day
    match = _MD_JP_RE.search(text)
    if match:
        month, day = int(match.group(1)), int(match.group(2))
        return _with_year_rollover(month, day, text[match.end():], now_local, tz)

    # 4. relative day + hour
    match = _RELATIVE_RE.search(text)
    if match:
        hm = _hour_minute(match.group(3), match.group(4), match.group(5), match.group(2))
        if hm is None:
            return None
        target = now_local.date() + timedelta(days=_RELATIVE_DAYS[match.group(1)])
        return datetime.combine(target, time(*hm), tzinfo=tz)

    # 5. period word + hour
    match = _PERIOD_RE.search(text)
    if match:
        hm = _hour_minute(match.group(2), match.group(3), match.group(4), match.group(1))
        if hm is None:
            return None
        return _at_hour_rolling(now_local, *hm)

    # 6. N hours from now
    match = _HOURS_LATER_RE.search(text)
    if match:
        return round_to_half_hour(now_local + timedelta(hours=int(match.group(1))))

    # 7. bare hour
    match = _BARE_HOUR_RE.search(text)
    if match:
        hm = _hour_minute(match.group(1), match.group(2), match.group(3))
        if hm is None:
            return None
        return _at_hour_rolling(now_local, *hm)

    return None


def parse_deadline(text: str, now: datetime, tz_name: str = "Asia/Manila") -> datetime | None:
    """Parse a deadline date (patterns 1-3 only) as end of day local."""
    tz = zone_for(tz_name)
    now_local = now.astimezone(tz)
    text = normalize_digits(text)

    match = _YMD_RE.search(text)
    if match:
        target = _safe_date(*(int(g) for g in match.groups()))
        return end_of_day(target, tz) if target else None

    for pattern in (_MD_SLASH_RE, _MD_JP_RE):
        match = pattern.search(text)
        if match:
            return _with_year_rollover(
                int(match.group(1)), int(match.group(2)), "", now_local, tz,
            )
    return None
