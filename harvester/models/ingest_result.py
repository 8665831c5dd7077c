from __future__ import annotations

from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class IngestStage(str, Enum):
    START = "start"
    FETCHING = "fetching"
    PARSING = "parsing"
    MAPPING = "mapping"
    PERSISTING = "persisting"
    DONE = "done"


class FeedIngestResult(BaseModel):
    """
    Terminal outcome of one Start..Done cycle. ``failed_stage`` set means the
    cycle ended in Failed(stage); items may still be partially persisted.
    """

    url: str
    stage: IngestStage = IngestStage.START
    failed_stage: Optional[IngestStage] = None
    error: Optional[str] = None
    source_id: Optional[UUID] = None
    feed_id: Optional[UUID] = None
    feed_type: Optional[str] = None
    parse_attempts: int = 0
    items_seen: int = 0
    items_persisted: int = 0
    items_failed: int = 0
    item_ids: List[UUID] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_stage is None and self.stage is IngestStage.DONE


class IngestRunResult(BaseModel):
    mode: str
    target: str
    error: Optional[str] = None
    source_id: Optional[UUID] = None
    feeds: List[FeedIngestResult] = Field(default_factory=list)

    @property
    def feeds_ok(self) -> int:
        return sum(1 for f in self.feeds if f.ok)

    @property
    def feeds_failed(self) -> int:
        return sum(1 for f in self.feeds if not f.ok)

    @property
    def items_persisted(self) -> int:
        return sum(f.items_persisted for f in self.feeds)

    @property
    def items_failed(self) -> int:
        return sum(f.items_failed for f in self.feeds)

    def summary(self) -> dict:
        return {
            "mode": self.mode,
            "target": self.target,
            "feeds_total": len(self.feeds),
            "feeds_ok": self.feeds_ok,
            "feeds_failed": self.feeds_failed,
            "items_persisted": self.items_persisted,
            "items_failed": self.items_failed,
            "error": self.error,
        }
