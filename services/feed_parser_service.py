"""
Feed document classification and parsing.

feedparser does the XML work once; ordered readers then decide whether the
result is RSS or Atom and lift channel/entry fields into ``ParsedChannel``.
A document neither reader accepts is returned as Unrecognized, never raised.
"""

from __future__ import annotations

import asyncio
import io
from typing import Any, Callable, Optional, Sequence, Tuple

import feedparser

from harvester.core.logging import get_logger
from harvester.models.parsed_feed import FeedKind, FeedResult, ParsedChannel, ParsedEntry
from services.errors import FeedParseError

logger = get_logger()

RSS_UNTITLED_PLACEHOLDER = "Untitled"
MAX_PARSE_ATTEMPTS = 2  # first parse + one bounded retry


def _get(container: Any, key: str) -> Any:
    if isinstance(container, dict):
        return container.get(key)
    return getattr(container, key, None)


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def _parse_ttl(value: Any) -> Optional[int]:
    text = _clean_str(value)
    if text is None:
        return None
    try:
        return max(0, int(text))
    except ValueError:
        logger.debug("feed_parser_invalid_ttl", value=text)
        return None


def _entry_link(entry: Any) -> Optional[str]:
    """
    The entry's own alternate link, or None.

    feedparser copies a permalink ``<guid>`` (or an Atom ``<id>``) into
    ``link`` when the entry has no link element; ``links`` only ever holds
    real link elements.
    """
    links = _get(entry, "links")
    if links:
        for link in links:
            if (_get(link, "rel") or "alternate") != "alternate":
                continue
            href = _clean_str(_get(link, "href"))
            if href:
                return href
        return None
    link = _clean_str(_get(entry, "link"))
    if link and _get(entry, "guidislink") and link == _clean_str(_get(entry, "id")):
        return None
    return link


def _version(parsed: Any) -> str:
    return str(_get(parsed, "version") or "").lower()


def _read_rss(parsed: Any) -> ParsedChannel:
    version = _version(parsed)
    if not version.startswith("rss"):
        raise FeedParseError(f"not an RSS document (version={version or 'unknown'})")
    meta = _get(parsed, "feed") or {}
    entries = []
    for entry in _get(parsed, "entries") or []:
        entries.append(
            ParsedEntry(
                title=_clean_str(_get(entry, "title")) or RSS_UNTITLED_PLACEHOLDER,
                link=_entry_link(entry),
                # feedparser exposes <guid> as "id"
                guid=_clean_str(_get(entry, "id")),
                published_raw=_clean_str(_get(entry, "published")),
            )
        )
    return ParsedChannel(
        kind=FeedKind.RSS,
        title=_clean_str(_get(meta, "title")),
        link=_clean_str(_get(meta, "link")),
        description=_clean_str(_get(meta, "subtitle") or _get(meta, "description")),
        ttl=_parse_ttl(_get(meta, "ttl")),
        entries=entries,
    )


def _read_atom(parsed: Any) -> ParsedChannel:
    version = _version(parsed)
    if not version.startswith("atom"):
        raise FeedParseError(f"not an Atom document (version={version or 'unknown'})")
    meta = _get(parsed, "feed") or {}
    entries = []
    for entry in _get(parsed, "entries") or []:
        entries.append(
            ParsedEntry(
                # Atom requires a title; absence is reported by the mapper.
                title=_clean_str(_get(entry, "title")),
                link=_entry_link(entry),
                guid=_clean_str(_get(entry, "id")),
                published_raw=_clean_str(_get(entry, "published"))
                or _clean_str(_get(entry, "updated")),
            )
        )
    return ParsedChannel(
        kind=FeedKind.ATOM,
        title=_clean_str(_get(meta, "title")),
        link=_clean_str(_get(meta, "link")),
        description=_clean_str(_get(meta, "subtitle")),
        ttl=None,
        entries=entries,
    )


# Ordered: RSS first, Atom only if RSS rejected the document.
READERS: Sequence[Tuple[FeedKind, Callable[[Any], ParsedChannel]]] = (
    (FeedKind.RSS, _read_rss),
    (FeedKind.ATOM, _read_atom),
)


def parse_feed(raw: bytes) -> FeedResult:
    """
    Classify and parse ``raw`` as RSS, else Atom. Returns an Unrecognized
    result (never raises) when both readers reject the document.
    """
    if not raw or not raw.strip():
        return FeedResult.unrecognized("empty document")
    try:
        parsed = feedparser.parse(io.BytesIO(raw))
    except Exception as exc:
        return FeedResult.unrecognized(f"feedparser failure: {exc}")

    errors = []
    for kind, reader in READERS:
        try:
            channel = reader(parsed)
        except FeedParseError as err:
            errors.append(str(err))
            continue
        return FeedResult(kind=kind, channel=channel)

    bozo = _get(parsed, "bozo_exception")
    if bozo is not None:
        errors.append(f"bozo: {bozo}")
    return FeedResult.unrecognized("; ".join(errors))


async def parse_feed_with_retry(
    raw: bytes,
    *,
    retry_delay_s: float = 1.0,
    url: Optional[str] = None,
) -> Tuple[FeedResult, int]:
    """
    Parse with at most one retry after a fixed short delay. The document is
    not re-fetched. Returns the result and the number of attempts made.
    """
    result = FeedResult.unrecognized("not attempted")
    attempts = 0
    for attempt in range(MAX_PARSE_ATTEMPTS):
        attempts = attempt + 1
        result = parse_feed(raw)
        if result.recognized:
            return result, attempts
        if attempts < MAX_PARSE_ATTEMPTS:
            logger.warning(
                "feed_parse_retrying",
                url=url,
                attempt=attempts,
                delay_s=retry_delay_s,
                error=result.error,
            )
            await asyncio.sleep(retry_delay_s)
    return result, attempts
