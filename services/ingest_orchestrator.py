from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional
from uuid import UUID

from harvester.core.logging import get_logger
from harvester.core.request_id import with_ingest_target
from harvester.models.ingest_result import FeedIngestResult, IngestRunResult, IngestStage
from harvester.models.news_entities import NewsItem, Source
from harvester.models.outline import Outline
from services.artifact_service import ArtifactRun, ArtifactWriter
from services.dedup_store import DedupStore
from services.entity_mapper import (
    map_feed,
    map_feed_source,
    map_news_items,
    map_outline_source,
    map_page_source,
)
from services.errors import (
    FeedParseError,
    FetchError,
    IngestError,
    OpmlParseError,
    PersistenceError,
)
from services.feed_parser_service import parse_feed_with_retry
from services.fetch_service import FetchService, extract_page_metadata
from services.outline_collector import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_NODES,
    collect_feed_outlines,
    parse_opml,
)

logger = get_logger()

FEED_PREFIX = "feed!"
OPML_PREFIX = "opml!"


class IngestMode(str, Enum):
    PAGE = "page"
    FEED = "feed"
    OPML = "opml"


@dataclass(frozen=True)
class IngestTarget:
    mode: IngestMode
    location: str


class UsageError(ValueError):
    """Invalid invocation; raised before any work begins."""


def parse_target(raw: str) -> IngestTarget:
    """
    ``http...`` -> page, ``feed!<url>`` -> feed, ``opml!<path-or-url>`` -> opml.
    """
    value = (raw or "").strip()
    if value.startswith(FEED_PREFIX):
        url = value[len(FEED_PREFIX):].strip()
        if not url.startswith(("http://", "https://")):
            raise UsageError(f"feed target must be an http(s) url: {raw!r}")
        return IngestTarget(IngestMode.FEED, url)
    if value.startswith(OPML_PREFIX):
        location = value[len(OPML_PREFIX):].strip()
        if not location:
            raise UsageError("opml target needs a path or url")
        return IngestTarget(IngestMode.OPML, location)
    if value.startswith(("http://", "https://")):
        return IngestTarget(IngestMode.PAGE, value)
    raise UsageError(f"unrecognized target: {raw!r}")


class IngestionOrchestrator:
    """
    Drives ingestion runs: fetch -> parse -> map -> dedup-persist.

    Each feed goes through one Start..Done cycle with an absorbing
    Failed(stage). Failures are logged and recorded on the result; nothing
    raised inside a cycle escapes it.
    """

    def __init__(
        self,
        *,
        fetcher: FetchService,
        store: DedupStore,
        artifacts: Optional[ArtifactWriter] = None,
        source_type_id: int = 1,
        max_concurrency: int = 5,
        parse_retry_delay_s: float = 1.0,
        outline_max_nodes: int = DEFAULT_MAX_NODES,
        outline_max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.artifacts = artifacts or ArtifactWriter(Path("downloads"), enabled=False)
        self.source_type_id = source_type_id
        self.max_concurrency = max(1, max_concurrency)
        self.parse_retry_delay_s = parse_retry_delay_s
        self.outline_max_nodes = outline_max_nodes
        self.outline_max_depth = outline_max_depth
        self._sem = asyncio.Semaphore(self.max_concurrency)

    # ---- entry modes -------------------------------------------------------

    async def run(self, target: IngestTarget) -> IngestRunResult:
        if target.mode is IngestMode.PAGE:
            return await self.ingest_page(target.location)
        if target.mode is IngestMode.FEED:
            return await self.ingest_feed_url(target.location)
        return await self.ingest_opml(target.location)

    async def ingest_page(self, url: str) -> IngestRunResult:
        run = IngestRunResult(mode=IngestMode.PAGE.value, target=url)
        with with_ingest_target(url):
            try:
                await self._run_page(run)
            except IngestError as err:
                logger.warning(f"ingest_{err.stage}_failed", **err.log_fields())
                run.error = str(err)
            except Exception as exc:
                logger.exception("ingest_unexpected_error", url=url, kind="page", error=str(exc))
                run.error = f"{type(exc).__name__}: {exc}"
        return run

    async def _run_page(self, run: IngestRunResult) -> None:
        url = run.target
        logger.info("ingest_fetching_started", url=url, kind="page")
        document = await self.fetcher.fetch(url)

        artifacts = self.artifacts.open_run(url)
        artifacts.write_bytes("content.html", document.content)
        page = extract_page_metadata(document)
        artifacts.write_json("html-info.json", {**document.info(), "page": page.model_dump()})

        source = map_page_source(page, type_id=self.source_type_id)
        run.source_id = await self._persist_source(source)

        if not page.feed_url:
            logger.info("ingest_page_no_feed", url=url)
            return

        run.feeds.append(
            await self.ingest_feed(page.feed_url, source_id=run.source_id, artifacts=artifacts)
        )

    async def ingest_feed_url(self, url: str) -> IngestRunResult:
        run = IngestRunResult(mode=IngestMode.FEED.value, target=url)
        result = await self.ingest_feed(url, resolve_source=True)
        run.source_id = result.source_id
        run.feeds.append(result)
        return run

    async def ingest_opml(self, location: str) -> IngestRunResult:
        run = IngestRunResult(mode=IngestMode.OPML.value, target=location)
        with with_ingest_target(location):
            try:
                text = await self._read_opml(location)
                tree = parse_opml(text, max_depth=self.outline_max_depth)
            except (FetchError, OpmlParseError) as err:
                logger.warning("ingest_opml_failed", **err.log_fields())
                run.error = str(err)
                return run
            except OSError as exc:
                logger.warning("ingest_opml_failed", stage="fetching", url=location, error=str(exc))
                run.error = str(exc)
                return run

            outlines = collect_feed_outlines(
                tree,
                max_nodes=self.outline_max_nodes,
                max_depth=self.outline_max_depth,
            )
            logger.info("ingest_opml_collected", location=location, outlines=len(outlines))

        results = await asyncio.gather(*(self._ingest_outline(o) for o in outlines))
        run.feeds.extend(results)
        return run

    # ---- one Start..Done cycle ----------------------------------------------

    async def ingest_feed(
        self,
        feed_url: str,
        *,
        source_id: Optional[UUID] = None,
        resolve_source: bool = False,
        artifacts: Optional[ArtifactRun] = None,
    ) -> FeedIngestResult:
        result = FeedIngestResult(url=feed_url, source_id=source_id)
        with with_ingest_target(feed_url):
            try:
                await self._run_feed_cycle(result, resolve_source=resolve_source, artifacts=artifacts)
            except IngestError as err:
                self._fail(result, err)
            except Exception as exc:
                logger.exception(
                    "ingest_unexpected_error",
                    url=feed_url,
                    stage=result.stage.value,
                    error=str(exc),
                )
                result.failed_stage = result.stage
                result.error = f"{type(exc).__name__}: {exc}"
        return result

    async def _run_feed_cycle(
        self,
        result: FeedIngestResult,
        *,
        resolve_source: bool,
        artifacts: Optional[ArtifactRun],
    ) -> None:
        feed_url = result.url

        self._transition(result, IngestStage.FETCHING)
        document = await self.fetcher.fetch(feed_url)
        if artifacts is None:
            artifacts = self.artifacts.open_run(feed_url)
        artifacts.write_bytes("feed.txt", document.content)
        artifacts.write_json("feed-info.json", document.info())

        self._transition(result, IngestStage.PARSING)
        parsed, attempts = await parse_feed_with_retry(
            document.content,
            retry_delay_s=self.parse_retry_delay_s,
            url=feed_url,
        )
        result.parse_attempts = attempts
        if not parsed.recognized:
            raise FeedParseError(parsed.error or "unrecognized feed", url=feed_url)
        channel = parsed.channel
        result.feed_type = channel.feed_type
        artifacts.write_json("feed-parsed.json", channel.model_dump(mode="json"))

        self._transition(result, IngestStage.MAPPING)
        if resolve_source and result.source_id is None:
            source = map_feed_source(feed_url, channel, type_id=self.source_type_id)
            result.source_id = await self._persist_source(source)
        feed = map_feed(feed_url, channel, source_id=result.source_id)
        items, mapping_errors = map_news_items(channel, feed_id=feed.id, feed_url=feed_url)
        result.items_seen = len(channel.entries)
        for err in mapping_errors:
            logger.warning("ingest_entry_skipped", **err.log_fields(), feed_url=feed_url)
        result.items_failed += len(mapping_errors)

        self._transition(result, IngestStage.PERSISTING)
        result.feed_id = await self.store.upsert(feed)
        await self._persist_items(result, items)

        self._transition(result, IngestStage.DONE)
        logger.info(
            "ingest_done",
            url=feed_url,
            feed_id=str(result.feed_id),
            feed_type=result.feed_type,
            items_seen=result.items_seen,
            items_persisted=result.items_persisted,
            items_failed=result.items_failed,
        )

    async def _persist_items(self, result: FeedIngestResult, items: List[NewsItem]) -> None:
        for item in items:
            # Items reference the feed row that actually persisted.
            bound = item.model_copy(update={"feed_id": result.feed_id})
            try:
                item_id = await self.store.upsert(bound)
            except PersistenceError as err:
                result.items_failed += 1
                logger.warning("ingest_item_persist_failed", **err.log_fields(), feed_url=result.url)
                continue
            result.items_persisted += 1
            result.item_ids.append(item_id)

    # ---- helpers ------------------------------------------------------------

    async def _ingest_outline(self, outline: Outline) -> FeedIngestResult:
        async with self._sem:
            # Source resolution counts as this outline's mapping stage.
            result = FeedIngestResult(
                url=outline.xml_url or outline.html_url or outline.label or "",
                stage=IngestStage.MAPPING,
            )
            with with_ingest_target(result.url):
                try:
                    source = map_outline_source(outline, type_id=self.source_type_id)
                    source_id = await self._persist_source(source)
                except IngestError as err:
                    self._fail(result, err)
                    return result
                except Exception as exc:
                    logger.exception(
                        "ingest_unexpected_error",
                        url=result.url,
                        stage=result.stage.value,
                        error=str(exc),
                    )
                    result.failed_stage = result.stage
                    result.error = f"{type(exc).__name__}: {exc}"
                    return result
            return await self.ingest_feed(outline.xml_url, source_id=source_id)

    async def _persist_source(self, source: Source) -> Optional[UUID]:
        try:
            return await self.store.upsert(source)
        except PersistenceError as err:
            # The feed can still be recorded without an owning source.
            logger.warning("ingest_source_persist_failed", **err.log_fields())
            return None

    async def _read_opml(self, location: str) -> str:
        if location.startswith(("http://", "https://")):
            document = await self.fetcher.fetch(location)
            return document.text
        return await asyncio.to_thread(Path(location).read_text, encoding="utf-8")

    @staticmethod
    def _transition(result: FeedIngestResult, stage: IngestStage) -> None:
        result.stage = stage
        if stage is not IngestStage.DONE:
            logger.info(f"ingest_{stage.value}_started", url=result.url)

    @staticmethod
    def _fail(result: FeedIngestResult, err: IngestError) -> None:
        result.failed_stage = result.stage
        result.error = str(err)
        fields = err.log_fields()
        fields["stage"] = result.stage.value
        if not fields.get("url"):
            fields["url"] = result.url
        logger.warning(f"ingest_{result.stage.value}_failed", **fields)
