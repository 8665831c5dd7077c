"""
Idempotent upsert-or-fetch keyed by natural key.

Each call is one statement: a conditional insert that yields no row on a
natural-key conflict, unioned with a read of the existing row by the same
key. Callers always get the identifier of the persisted row, whether this
call created it or not.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Union
from uuid import UUID

import asyncpg

from harvester.core.logging import get_logger
from harvester.models.news_entities import Feed, NewsItem, Source
from services.errors import PersistenceError
from services.identity import natural_key

logger = get_logger()

Record = Union[Source, Feed, NewsItem]

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class TableSpec:
    name: str
    key_column: str
    columns: Sequence[str]

    def insert_or_fetch_sql(self) -> str:
        column_list = ", ".join(self.columns)
        placeholders = ", ".join(f"${i}" for i in range(1, len(self.columns) + 1))
        key_param = self.columns.index(self.key_column) + 1
        return f"""
            WITH ins AS (
                INSERT INTO {self.name} ({column_list})
                VALUES ({placeholders})
                ON CONFLICT ({self.key_column}) DO NOTHING
                RETURNING id
            )
            SELECT id FROM ins
            UNION ALL
            SELECT id FROM {self.name} WHERE {self.key_column} = ${key_param}
            LIMIT 1
        """

    def select_id_sql(self) -> str:
        return f"SELECT id FROM {self.name} WHERE {self.key_column} = $1"


SOURCE_TABLE = TableSpec(
    name="source",
    key_column="url",
    columns=(
        "id", "name", "url", "type_id", "paywall", "feed_available",
        "description", "short_name", "state", "city", "create_timestamp",
    ),
)

FEED_TABLE = TableSpec(
    name="feed",
    key_column="url",
    columns=("id", "source_id", "url", "title", "feed_type", "ttl", "create_timestamp"),
)

NEWS_TABLE = TableSpec(
    name="news",
    key_column="guid",
    columns=(
        "id", "feed_id", "guid", "title", "published_timestamp", "url",
        "create_timestamp", "raw_content_path", "extracted_content_path",
    ),
)

_SPECS: Dict[type, TableSpec] = {
    Source: SOURCE_TABLE,
    Feed: FEED_TABLE,
    NewsItem: NEWS_TABLE,
}
_SPECS_BY_NAME: Dict[str, TableSpec] = {spec.name: spec for spec in _SPECS.values()}


def table_for(record: Record) -> TableSpec:
    try:
        return _SPECS[type(record)]
    except KeyError:
        raise TypeError(f"no table for {type(record).__name__}") from None


def _row_values(spec: TableSpec, record: Record) -> list[Any]:
    data = record.model_dump()
    return [data[column] for column in spec.columns]


class DedupStore:
    def __init__(self, db: Any) -> None:
        # Anything exposing asyncpg-style ``fetchrow(query, *args)``.
        self._db = db

    async def upsert(self, record: Record) -> UUID:
        spec = table_for(record)
        key = natural_key(record)
        try:
            row = await self._db.fetchrow(spec.insert_or_fetch_sql(), *_row_values(spec, record))
            if row is None:
                # A concurrent insert committed after this statement's snapshot
                # was taken; a fresh statement sees it.
                logger.info("dedup_upsert_reread", table=spec.name, key=key)
                row = await self._db.fetchrow(spec.select_id_sql(), key)
        except _DB_ERRORS as exc:
            raise PersistenceError(
                f"{type(exc).__name__}: {exc}",
                table=spec.name,
                natural_key=key,
            ) from exc

        if row is None:
            raise PersistenceError(
                "insert-or-fetch returned no row",
                table=spec.name,
                natural_key=key,
            )

        effective_id = UUID(str(row["id"]))
        logger.debug(
            "dedup_upsert",
            table=spec.name,
            key=key,
            created=effective_id == record.id,
            id=str(effective_id),
        )
        return effective_id

    async def upsert_source(self, source: Source) -> UUID:
        return await self.upsert(source)

    async def upsert_feed(self, feed: Feed) -> UUID:
        return await self.upsert(feed)

    async def upsert_news_item(self, item: NewsItem) -> UUID:
        return await self.upsert(item)

    async def count(self, table: str) -> int:
        """Row count of one of the dedup tables (``source``, ``feed``, ``news``)."""
        spec = _SPECS_BY_NAME.get(table)
        if spec is None:
            raise ValueError(f"unknown table: {table!r}")
        try:
            value = await self._db.fetchval(f"SELECT count(*) FROM {spec.name}")
        except _DB_ERRORS as exc:
            raise PersistenceError(f"{type(exc).__name__}: {exc}", table=spec.name) from exc
        return int(value or 0)
