from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from harvester.config import Settings, get_settings
from harvester.core.logging import configure_logging, get_logger
from harvester.core.request_id import with_run_id
from harvester.utils.db_url import mask_database_url
from services.artifact_service import ArtifactWriter
from services.db_service import Database
from services.dedup_store import DedupStore
from services.fetch_service import FetchService
from services.ingest_orchestrator import (
    IngestionOrchestrator,
    IngestTarget,
    UsageError,
    parse_target,
)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_USAGE = 2


def _target(value: str) -> IngestTarget:
    try:
        return parse_target(value)
    except UsageError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harvester-ingest",
        description="Ingest a news page, a feed or an OPML subscription list.",
    )
    parser.add_argument(
        "target",
        type=_target,
        help="http(s)://page-url | feed!<feed-url> | opml!<path-or-url>",
    )
    parser.add_argument(
        "--no-artifacts",
        action="store_true",
        help="Do not write content/feed dumps to the artifacts directory.",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Maximum feeds ingested concurrently (OPML mode).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG, INFO, WARNING, ...).",
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    # argparse exits with status 2 on usage errors, before any work begins.
    return build_parser().parse_args(argv)


async def run_ingest(
    target: IngestTarget,
    *,
    settings: Settings,
    artifacts_enabled: bool = True,
    max_concurrency: Optional[int] = None,
) -> int:
    logger = get_logger().bind(worker="ingest_bot")
    try:
        db = await Database.connect(settings)
    except Exception as exc:
        logger.error(
            "ingest_bot_db_unavailable",
            database=mask_database_url(settings.DATABASE_URL or ""),
            error=str(exc),
        )
        return EXIT_CONFIG_ERROR

    concurrency = max_concurrency or settings.INGEST_MAX_CONCURRENCY
    artifacts = ArtifactWriter(
        Path(settings.ARTIFACTS_DIR),
        enabled=settings.ARTIFACTS_ENABLED and artifacts_enabled,
    )

    async with db, FetchService(
        user_agent=settings.FETCH_USER_AGENT,
        timeout_s=settings.FETCH_TIMEOUT_S,
        max_concurrency=concurrency,
        verify_tls=settings.FETCH_VERIFY_TLS,
    ) as fetcher:
        orchestrator = IngestionOrchestrator(
            fetcher=fetcher,
            store=DedupStore(db),
            artifacts=artifacts,
            source_type_id=settings.DEFAULT_SOURCE_TYPE_ID,
            max_concurrency=concurrency,
            parse_retry_delay_s=settings.PARSE_RETRY_DELAY_S,
            outline_max_nodes=settings.OUTLINE_MAX_NODES,
            outline_max_depth=settings.OUTLINE_MAX_DEPTH,
        )
        result = await orchestrator.run(target)

    logger.info("ingest_run_summary", **result.summary())
    return EXIT_OK


async def main_async(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    level_name = (args.log_level or settings.LOG_LEVEL).upper()
    configure_logging(service_name="worker", level=getattr(logging, level_name, logging.INFO))
    with with_run_id():
        return await run_ingest(
            args.target,
            settings=settings,
            artifacts_enabled=not args.no_artifacts,
            max_concurrency=args.max_concurrency,
        )


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
