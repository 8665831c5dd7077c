from __future__ import annotations

import pytest

from harvester.config import Settings
from harvester.workers import ingest_bot
from harvester.workers.ingest_bot import EXIT_CONFIG_ERROR, EXIT_OK, parse_args, run_ingest
from services.ingest_orchestrator import IngestMode, parse_target
from tests.fixtures import RSS_FEED, FakeDatabase, FakeFetcher

FEED_URL = "https://news.example.com/feed.xml"


def _settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "postgresql://harvester@localhost:5432/news",
        "ARTIFACTS_ENABLED": False,
        "PARSE_RETRY_DELAY_S": 0,
    }
    values.update(overrides)
    return Settings(**values)


class _ContextDatabase(FakeDatabase):
    instances = []

    @classmethod
    async def connect(cls, settings=None):
        db = cls()
        cls.instances.append(db)
        return db

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


class _StubFetchService(FakeFetcher):
    def __init__(self, **kwargs):
        super().__init__()
        self.options = kwargs
        self.add(FEED_URL, RSS_FEED)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


def test_parse_args_feed_target():
    args = parse_args([f"feed!{FEED_URL}", "--no-artifacts", "--max-concurrency", "2"])
    assert args.target.mode is IngestMode.FEED
    assert args.target.location == FEED_URL
    assert args.no_artifacts is True
    assert args.max_concurrency == 2


@pytest.mark.parametrize("argv", [[], ["not-a-target"], ["feed!file:///etc/passwd"]])
def test_parse_args_usage_error_exits_2(argv):
    with pytest.raises(SystemExit) as excinfo:
        parse_args(argv)
    assert excinfo.value.code == 2


@pytest.mark.asyncio
async def test_run_ingest_without_database_returns_config_error(monkeypatch):
    class _UnavailableDatabase:
        @classmethod
        async def connect(cls, settings=None):
            raise RuntimeError("DATABASE_URL is not set")

    monkeypatch.setattr(ingest_bot, "Database", _UnavailableDatabase)

    code = await run_ingest(parse_target(f"feed!{FEED_URL}"), settings=_settings(DATABASE_URL=None))

    assert code == EXIT_CONFIG_ERROR


@pytest.mark.asyncio
async def test_run_ingest_success(monkeypatch):
    _ContextDatabase.instances = []
    monkeypatch.setattr(ingest_bot, "Database", _ContextDatabase)
    monkeypatch.setattr(ingest_bot, "FetchService", _StubFetchService)

    code = await run_ingest(parse_target(f"feed!{FEED_URL}"), settings=_settings(), max_concurrency=3)

    assert code == EXIT_OK
    (db,) = _ContextDatabase.instances
    assert db.count("feed") == 1
    assert db.count("news") == 2


@pytest.mark.asyncio
async def test_run_ingest_feed_failure_still_exits_ok(monkeypatch):
    class _EmptyFetchService(_StubFetchService):
        def __init__(self, **kwargs):
            FakeFetcher.__init__(self)

    _ContextDatabase.instances = []
    monkeypatch.setattr(ingest_bot, "Database", _ContextDatabase)
    monkeypatch.setattr(ingest_bot, "FetchService", _EmptyFetchService)

    code = await run_ingest(parse_target(f"feed!{FEED_URL}"), settings=_settings())

    assert code == EXIT_OK
    assert _ContextDatabase.instances[0].tables == {}
