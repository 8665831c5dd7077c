"""
Canonical records persisted by the ingestion pipeline.

SourceType 1-* Source 1-* Feed 1-* NewsItem. Every record carries a candidate
identifier generated at mapping time; the identifier that downstream code must
use is the one returned by the dedup store, which may belong to a row that
already existed for the same natural key.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceType(BaseModel):
    """Reference data, seeded out-of-band (e.g. 1 = Website)."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: Optional[str] = None
    description: Optional[str] = None


class Source(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    url: str
    type_id: int
    paywall: Optional[bool] = None
    feed_available: Optional[bool] = None
    description: Optional[str] = None
    short_name: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    create_timestamp: datetime = Field(default_factory=_utcnow)


FeedType = Literal["RSS", "Atom"]


class Feed(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    # None only when the owning source could not be resolved.
    source_id: Optional[UUID] = None
    url: str
    title: Optional[str] = None
    feed_type: Optional[FeedType] = None
    ttl: Optional[int] = None
    create_timestamp: datetime = Field(default_factory=_utcnow)


class NewsItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    feed_id: UUID
    guid: str
    title: str
    published_timestamp: datetime
    url: str
    create_timestamp: datetime = Field(default_factory=_utcnow)
    raw_content_path: Optional[str] = None
    extracted_content_path: Optional[str] = None
