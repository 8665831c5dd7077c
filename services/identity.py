"""
Natural keys used as the uniqueness boundary for deduplication.

Source -> url, Feed -> url, NewsItem -> guid, where an entry's guid is its
explicit guid/id when present and its link otherwise. The dedup store never
recomputes these; they are fixed at mapping time.
"""

from __future__ import annotations

from typing import Optional, Union

from harvester.models.news_entities import Feed, NewsItem, Source
from harvester.models.parsed_feed import ParsedEntry
from services.errors import MappingError


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def source_key(source: Source) -> str:
    return source.url


def feed_key(feed: Feed) -> str:
    return feed.url


def item_key(entry: ParsedEntry) -> str:
    key = _clean(entry.guid) or _clean(entry.link)
    if key is None:
        raise MappingError(
            "entry has neither guid nor link",
            entry=entry.model_dump(),
        )
    return key


def natural_key(record: Union[Source, Feed, NewsItem]) -> str:
    if isinstance(record, Source):
        return source_key(record)
    if isinstance(record, Feed):
        return feed_key(record)
    if isinstance(record, NewsItem):
        return record.guid
    raise TypeError(f"no natural key for {type(record).__name__}")
