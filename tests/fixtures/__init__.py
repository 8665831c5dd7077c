# tests/fixtures/__init__.py
"""
Test fixtures for the ingestion pipeline.

- FakeDatabase: in-memory stand-in for the asyncpg surface that honours the
  insert-or-fetch statement shape used by DedupStore
- FakeFetcher: canned documents per url
- sample RSS / Atom / OPML / HTML documents
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from harvester.models.fetched_document import FetchedDocument
from services.errors import FetchError

_INSERT_RE = re.compile(r"INSERT INTO (\w+) \(([^)]*)\)", re.S)
_CONFLICT_RE = re.compile(r"ON CONFLICT \((\w+)\)")
_SELECT_ID_RE = re.compile(r"SELECT id FROM (\w+) WHERE (\w+) = \$1")
_COUNT_RE = re.compile(r"SELECT count\(\*\) FROM (\w+)")

_FOREIGN_KEYS = {
    "feed": ("source_id", "source"),
    "news": ("feed_id", "feed"),
}


class FakeDatabase:
    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.queries: List[str] = []
        self.fail_keys: Set[str] = set()
        # Natural keys for which the next insert-or-fetch yields no row, as if
        # a concurrent insert committed after the statement snapshot.
        self.race_keys: Set[str] = set()
        self.source_types: List[Dict[str, Any]] = [
            {"id": 1, "name": "Website", "description": None},
        ]

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def count(self, table: str) -> int:
        return len(self.tables.get(table, {}))

    def _ids(self, table: str) -> Set[Any]:
        return {row["id"] for row in self.rows(table)}

    async def fetchrow(self, query: str, *args: Any) -> Optional[Dict[str, Any]]:
        self.queries.append(query)
        insert = _INSERT_RE.search(query)
        if insert:
            table = insert.group(1)
            columns = [c.strip() for c in insert.group(2).split(",")]
            key_column = _CONFLICT_RE.search(query).group(1)
            row = dict(zip(columns, args))
            return self._insert_or_fetch(table, key_column, row)

        select = _SELECT_ID_RE.search(query)
        if select:
            table = select.group(1)
            existing = self.tables.get(table, {}).get(args[0])
            return {"id": existing["id"]} if existing else None

        raise AssertionError(f"unexpected query: {query}")

    def _insert_or_fetch(self, table: str, key_column: str, row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        key = row[key_column]
        if key in self.fail_keys:
            raise OSError(f"connection lost while writing {key}")

        table_rows = self.tables.setdefault(table, {})
        if key in self.race_keys:
            self.race_keys.discard(key)
            table_rows.setdefault(key, row)
            return None

        existing = table_rows.get(key)
        if existing is not None:
            return {"id": existing["id"]}

        fk = _FOREIGN_KEYS.get(table)
        if fk is not None:
            column, parent = fk
            value = row.get(column)
            if value is not None and value not in self._ids(parent):
                raise OSError(f"foreign key violation: {table}.{column}={value}")

        table_rows[key] = row
        return {"id": row["id"]}

    async def fetchval(self, query: str, *args: Any) -> Any:
        self.queries.append(query)
        counted = _COUNT_RE.search(query)
        if counted:
            return self.count(counted.group(1))
        raise AssertionError(f"unexpected query: {query}")

    async def fetch(self, query: str, *args: Any) -> List[Dict[str, Any]]:
        self.queries.append(query)
        if "FROM source_type" in query:
            return list(self.source_types)
        raise AssertionError(f"unexpected query: {query}")


def make_document(
    url: str,
    content: bytes | str,
    *,
    content_type: str = "application/xml",
    final_url: Optional[str] = None,
) -> FetchedDocument:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return FetchedDocument(
        url=url,
        final_url=final_url or url,
        status_code=200,
        headers={"content-type": content_type},
        content=content,
        encoding="utf-8",
        fetched_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class FakeFetcher:
    """Serves canned documents; unknown urls fail like an unreachable host."""

    def __init__(self, documents: Optional[Dict[str, FetchedDocument]] = None) -> None:
        self.documents: Dict[str, FetchedDocument] = dict(documents or {})
        self.failures: Dict[str, Tuple[str, Optional[int]]] = {}
        self.requests: List[str] = []

    def add(self, url: str, content: bytes | str, **kwargs: Any) -> None:
        self.documents[url] = make_document(url, content, **kwargs)

    def fail(self, url: str, message: str = "connection refused", status_code: Optional[int] = None) -> None:
        self.failures[url] = (message, status_code)

    async def fetch(self, url: str) -> FetchedDocument:
        self.requests.append(url)
        if url in self.failures:
            message, status = self.failures[url]
            raise FetchError(message, url=url, status_code=status)
        document = self.documents.get(url)
        if document is None:
            raise FetchError("connection refused", url=url)
        return document


RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com/</link>
    <description>All the news</description>
    <ttl>30</ttl>
    <item>
      <title>First story</title>
      <link>https://news.example.com/first</link>
      <guid isPermaLink="false">story-1</guid>
      <pubDate>Wed, 01 Jan 2020 12:34:56 GMT</pubDate>
    </item>
    <item>
      <title>Second story</title>
      <link>https://news.example.com/second</link>
      <pubDate>Tue, 1 Jul 2003 10:52:37 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <link href="https://atom.example.com/" rel="alternate"/>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <updated>2024-01-02T10:00:00Z</updated>
  <entry>
    <title>Atom entry</title>
    <link rel="alternate" href="https://atom.example.com/entries/1"/>
    <id>tag:atom.example.com,2024:1</id>
    <updated>2024-01-02T10:00:00Z</updated>
    <published>2024-01-01T09:30:00+01:00</published>
  </entry>
  <entry>
    <title>Only updated</title>
    <link rel="alternate" href="https://atom.example.com/entries/2"/>
    <id>tag:atom.example.com,2024:2</id>
    <updated>2024-01-03T08:00:00Z</updated>
  </entry>
</feed>
"""

HTML_PAGE = """<!doctype html>
<html>
  <head>
    <title>Example News - Home</title>
    <meta property="og:site_name" content="Example News">
    <meta name="description" content="Local news">
    <link rel="stylesheet" href="/main.css">
    <link rel="alternate" type="application/rss+xml" title="RSS" href="/feed.xml">
  </head>
  <body><h1>Hello</h1></body>
</html>
"""

OPML_DOCUMENT = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>Subscriptions</title></head>
  <body>
    <outline text="News">
      <outline text="Example News" type="rss"
               xmlUrl="https://news.example.com/feed.xml"
               htmlUrl="https://news.example.com/"/>
      <outline text="Tech">
        <outline text="Example Atom" type="rss"
                 xmlUrl="https://atom.example.com/atom.xml"
                 htmlUrl="https://atom.example.com/"/>
      </outline>
    </outline>
  </body>
</opml>
"""
