from __future__ import annotations

from typing import List, Optional, Tuple
from urllib.parse import SplitResult, urlsplit
from uuid import UUID

from harvester.models.fetched_document import PageMetadata
from harvester.models.news_entities import Feed, NewsItem, Source
from harvester.models.outline import Outline
from harvester.models.parsed_feed import FeedKind, ParsedChannel, ParsedEntry
from services.date_normalization import normalize_date_or_now
from services.errors import MappingError
from services.feed_parser_service import RSS_UNTITLED_PLACEHOLDER
from services.identity import item_key


def _split(url: str) -> SplitResult:
    try:
        return urlsplit(url.strip())
    except ValueError as exc:
        raise MappingError(f"malformed url: {exc}", url=url) from exc


def site_origin(url: str) -> str:
    """scheme://host of ``url``; the whole url when it has no host."""
    parts = _split(url)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}"
    return url.strip()


def host_name(url: str) -> str:
    host = _split(url).hostname or url.strip()
    if host.startswith("www."):
        host = host[4:]
    return host


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None


def map_page_source(page: PageMetadata, *, type_id: int) -> Source:
    return Source(
        name=_first(page.site_name, page.title) or host_name(page.url),
        url=page.url.strip(),
        type_id=type_id,
        feed_available=page.feed_url is not None,
        description=_first(page.description),
    )


def map_outline_source(outline: Outline, *, type_id: int) -> Source:
    if not outline.xml_url:
        raise MappingError("outline has no xmlUrl", entry=outline.model_dump(exclude={"children"}))
    url = _first(outline.html_url) or site_origin(outline.xml_url)
    return Source(
        name=_first(outline.text, outline.title) or host_name(url),
        url=url,
        type_id=type_id,
        feed_available=True,
    )


def map_feed_source(feed_url: str, channel: ParsedChannel, *, type_id: int) -> Source:
    """Source for a feed ingested directly: its site link, else the feed's origin."""
    url = _first(channel.link) or site_origin(feed_url)
    if not url.startswith(("http://", "https://")):
        url = site_origin(feed_url)
    return Source(
        name=_first(channel.title) or host_name(url),
        url=url,
        type_id=type_id,
        feed_available=True,
        description=_first(channel.description),
    )


def map_feed(feed_url: str, channel: ParsedChannel, *, source_id: Optional[UUID]) -> Feed:
    return Feed(
        source_id=source_id,
        url=feed_url.strip(),
        title=_first(channel.title),
        feed_type=channel.feed_type,
        ttl=channel.ttl,
    )


def map_news_item(
    entry: ParsedEntry,
    *,
    feed_id: UUID,
    kind: FeedKind,
    feed_url: Optional[str] = None,
) -> NewsItem:
    link = _first(entry.link)
    if link is None:
        raise MappingError("entry has no link", url=feed_url, entry=entry.model_dump())
    title = _first(entry.title)
    if title is None:
        if kind is FeedKind.ATOM:
            raise MappingError("atom entry has no title", url=link, entry=entry.model_dump())
        title = RSS_UNTITLED_PLACEHOLDER
    guid = item_key(entry)
    published = normalize_date_or_now(entry.published_raw, url=link, feed_url=feed_url)
    return NewsItem(
        feed_id=feed_id,
        guid=guid,
        title=title,
        published_timestamp=published,
        url=link,
    )


def map_news_items(
    channel: ParsedChannel,
    *,
    feed_id: UUID,
    feed_url: Optional[str] = None,
) -> Tuple[List[NewsItem], List[MappingError]]:
    """
    Map every entry; a MappingError skips only that entry.
    Returns (items, errors).
    """
    items: List[NewsItem] = []
    errors: List[MappingError] = []
    for entry in channel.entries:
        try:
            items.append(map_news_item(entry, feed_id=feed_id, kind=channel.kind, feed_url=feed_url))
        except MappingError as err:
            errors.append(err)
    return items, errors
