from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class FetchedDocument(BaseModel):
    """Bytes plus metadata returned by the fetch layer."""

    url: str
    final_url: str
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    content: bytes = b""
    encoding: Optional[str] = None
    fetched_at: datetime

    @property
    def content_type(self) -> Optional[str]:
        value = self.headers.get("content-type")
        if not value:
            return None
        return value.split(";", 1)[0].strip().lower() or None

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")

    def info(self) -> Dict[str, object]:
        """JSON-friendly fetch metadata (no body)."""
        return {
            "url": self.url,
            "final_url": self.final_url,
            "status_code": self.status_code,
            "headers": dict(self.headers),
            "content_type": self.content_type,
            "content_length": len(self.content),
            "fetched_at": self.fetched_at.isoformat(),
        }


class PageMetadata(BaseModel):
    url: str
    title: Optional[str] = None
    site_name: Optional[str] = None
    description: Optional[str] = None
    feed_url: Optional[str] = None
