#!/usr/bin/env python3
"""
Apply the ingestion schema (source_type, source, feed, news).

The migration is idempotent; running it twice is harmless.
"""

import asyncio
import sys
from pathlib import Path

# Path setup
THIS_FILE = Path(__file__).resolve()
SCRIPTS_DIR = THIS_FILE.parent
REPO_ROOT = SCRIPTS_DIR.parent

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from harvester.core.logging import configure_logging, get_logger  # noqa: E402
from services.db_service import Database  # noqa: E402
from services.source_types_service import fetch_source_types  # noqa: E402

configure_logging(service_name="script")
logger = get_logger()

SQL_FILE = REPO_ROOT / "migrations" / "001_news_ingest_schema.sql"


async def apply_migration() -> int:
    if not SQL_FILE.exists():
        logger.error("schema_file_not_found", path=str(SQL_FILE))
        return 1

    sql_content = SQL_FILE.read_text(encoding="utf-8")
    logger.info("schema_file_read", path=SQL_FILE.name, size=len(sql_content))

    db = await Database.connect()
    async with db:
        server_version = await db.fetchval("SHOW server_version")
        async with db.transaction() as conn:
            await conn.execute(sql_content)
        logger.info("schema_applied", path=SQL_FILE.name, server_version=server_version)

        source_types = await fetch_source_types(db)
        logger.info(
            "schema_source_types",
            source_types=[st.model_dump() for st in source_types],
        )
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(asyncio.run(apply_migration()))
    except KeyboardInterrupt:
        logger.warning("schema_apply_interrupted")
        raise SystemExit(130)
