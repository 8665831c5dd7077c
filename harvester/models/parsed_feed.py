from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class FeedKind(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    UNRECOGNIZED = "unrecognized"


class ParsedEntry(BaseModel):
    """
    One entry as read from the feed document, before mapping.

    ``link`` is optional here: a missing link is reported by the mapper for
    that single entry, never for the whole feed.
    """

    title: Optional[str] = None
    link: Optional[str] = None
    # RSS <guid> / Atom <id>, exactly as found (None when absent)
    guid: Optional[str] = None
    # RSS pubDate; Atom published, else updated
    published_raw: Optional[str] = None


class ParsedChannel(BaseModel):
    kind: FeedKind
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    ttl: Optional[int] = None
    entries: List[ParsedEntry] = Field(default_factory=list)

    @property
    def feed_type(self) -> Optional[str]:
        if self.kind is FeedKind.RSS:
            return "RSS"
        if self.kind is FeedKind.ATOM:
            return "Atom"
        return None


class FeedResult(BaseModel):
    """Rss(channel) | Atom(feed) | Unrecognized."""

    kind: FeedKind
    channel: Optional[ParsedChannel] = None
    error: Optional[str] = None

    @property
    def recognized(self) -> bool:
        return self.kind is not FeedKind.UNRECOGNIZED and self.channel is not None

    @classmethod
    def unrecognized(cls, error: str) -> "FeedResult":
        return cls(kind=FeedKind.UNRECOGNIZED, channel=None, error=error)
