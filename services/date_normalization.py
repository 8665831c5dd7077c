"""
Publish-date normalization.

Feeds in the wild encode dates in many ways. ``normalize_date`` tries, in
order, and returns on the first success:

1. RFC 2822 (after rewriting a trailing literal ``GMT`` to ``+0000``)
2. RFC 3339 / ISO 8601
3. explicit weekday/day/month/year/time patterns with ``GMT``, a numeric
   offset or a named zone abbreviation (zero- and space-padded days)
4. date-only patterns, defaulting to midnight UTC

English tokens only; never consults the process locale or a tz database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Sequence

from dateutil import parser as date_parser

from harvester.core.logging import get_logger

logger = get_logger()

_TRAILING_GMT_RE = re.compile(r"\s*\bGMT$")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

# Offsets in hours; only zones actually seen in feeds.
_NAMED_ZONES = {
    "GMT": 0, "UTC": 0, "UT": 0, "Z": 0,
    "EST": -5, "EDT": -4,
    "CST": -6, "CDT": -5,
    "MST": -7, "MDT": -6,
    "PST": -8, "PDT": -7,
}

_WEEKDAY = r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun)[a-z]*"
_MONTH = r"(?P<mon>Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*"
_ZERO_PADDED_DAY = r"(?P<day>\d{2})"
_SPACE_PADDED_DAY = r"\s?(?P<day>\d{1,2})"
_TIME = r"(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?"
_YEAR = r"(?P<year>\d{4})"


@dataclass(frozen=True)
class _DatePattern:
    name: str
    regex: re.Pattern
    has_time: bool


def _compile(body: str) -> re.Pattern:
    return re.compile(r"^" + body + r"$", re.IGNORECASE)


def _with_time(day: str, zone: str) -> str:
    return rf"{_WEEKDAY},?\s+{day}\s+{_MONTH}\s+{_YEAR}\s+{_TIME}\s*{zone}"


_GMT = r"(?P<zone>GMT)"
_OFFSET = r"(?P<offset>[+-]\d{2}:?\d{2})"
_NAMED = r"(?P<zone>[A-Z]{1,4})"

FALLBACK_PATTERNS: Sequence[_DatePattern] = (
    _DatePattern("weekday_day_month_year_time_gmt", _compile(_with_time(_ZERO_PADDED_DAY, _GMT)), True),
    _DatePattern("weekday_day_month_year_time_offset", _compile(_with_time(_ZERO_PADDED_DAY, _OFFSET)), True),
    _DatePattern("weekday_day_month_year_time_zone", _compile(_with_time(_ZERO_PADDED_DAY, _NAMED)), True),
    _DatePattern("weekday_sday_month_year_time_gmt", _compile(_with_time(_SPACE_PADDED_DAY, _GMT)), True),
    _DatePattern("weekday_sday_month_year_time_offset", _compile(_with_time(_SPACE_PADDED_DAY, _OFFSET)), True),
    _DatePattern("weekday_sday_month_year_time_zone", _compile(_with_time(_SPACE_PADDED_DAY, _NAMED)), True),
)

DATE_ONLY_PATTERNS: Sequence[_DatePattern] = (
    _DatePattern(
        "weekday_day_month_year",
        _compile(rf"{_WEEKDAY},?\s+{_SPACE_PADDED_DAY}\s+{_MONTH}\s+{_YEAR}"),
        False,
    ),
    _DatePattern(
        "iso_date",
        _compile(r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"),
        False,
    ),
)


def _as_utc(value: datetime) -> datetime:
    # Naive values carry no zone information; treat them as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_rfc2822(raw: str) -> Optional[datetime]:
    candidate = _TRAILING_GMT_RE.sub(" +0000", raw)
    try:
        return _as_utc(parsedate_to_datetime(candidate))
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def _parse_rfc3339(raw: str) -> Optional[datetime]:
    try:
        return _as_utc(date_parser.isoparse(raw))
    except (ValueError, OverflowError):
        return None


def _zone_offset(match: re.Match) -> Optional[timezone]:
    groups = match.groupdict()
    offset = groups.get("offset")
    if offset:
        digits = offset[1:].replace(":", "")
        delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
        return timezone(-delta if offset[0] == "-" else delta)
    zone = groups.get("zone")
    if zone:
        hours = _NAMED_ZONES.get(zone.upper())
        if hours is None:
            return None
        return timezone(timedelta(hours=hours))
    return timezone.utc


def _build_from_match(pattern: _DatePattern, match: re.Match) -> Optional[datetime]:
    groups = match.groupdict()
    if groups.get("mon"):
        month = _MONTHS[groups["mon"][:3].lower()]
    else:
        month = int(groups["month"])
    tz = _zone_offset(match) if pattern.has_time else timezone.utc
    if tz is None:
        return None
    try:
        value = datetime(
            int(groups["year"]),
            month,
            int(groups["day"]),
            int(groups.get("hour") or 0),
            int(groups.get("minute") or 0),
            int(groups.get("second") or 0),
            tzinfo=tz,
        )
    except ValueError:
        return None
    return value.astimezone(timezone.utc)


def _parse_patterns(raw: str, patterns: Sequence[_DatePattern]) -> Optional[datetime]:
    for pattern in patterns:
        match = pattern.regex.match(raw)
        if not match:
            continue
        parsed = _build_from_match(pattern, match)
        if parsed is not None:
            return parsed
    return None


def normalize_date(raw: Optional[str]) -> Optional[datetime]:
    """Return the canonical UTC instant for ``raw``, or None. Never raises."""
    if not raw:
        return None
    candidate = " ".join(raw.split())
    if not candidate:
        return None
    return (
        _parse_rfc2822(candidate)
        or _parse_rfc3339(candidate)
        or _parse_patterns(candidate, FALLBACK_PATTERNS)
        or _parse_patterns(candidate, DATE_ONLY_PATTERNS)
    )


def normalize_date_or_now(raw: Optional[str], **context) -> datetime:
    """
    Like ``normalize_date`` but substitutes the current instant (and logs a
    warning) when nothing matches. A bad date never blocks ingestion.
    """
    parsed = normalize_date(raw)
    if parsed is not None:
        return parsed
    logger.warning("date_normalization_failed", raw=raw, **context)
    return datetime.now(timezone.utc)
