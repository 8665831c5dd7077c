from __future__ import annotations

import pytest

from harvester.utils.db_url import mask_database_url, normalize_database_url


@pytest.mark.parametrize(
    "raw",
    [
        "postgres://user:pw@db.example.com:5432/news",
        "postgresql+asyncpg://user:pw@db.example.com:5432/news",
        "postgresql+psycopg2://user:pw@db.example.com:5432/news",
        ' "postgresql://user:pw@db.example.com:5432/news" ',
    ],
)
def test_normalize_database_url_schemes(raw):
    assert normalize_database_url(raw) == "postgresql://user:pw@db.example.com:5432/news"


def test_normalize_database_url_maps_sslmode():
    url = normalize_database_url("postgresql://user@db.example.com/news?sslmode=require")
    assert url == "postgresql://user@db.example.com/news?ssl=require"


@pytest.mark.parametrize("raw", ["", "mysql://user@db.example.com/news"])
def test_normalize_database_url_rejects(raw):
    with pytest.raises(RuntimeError):
        normalize_database_url(raw)


def test_mask_database_url():
    assert mask_database_url("postgresql://user:s3cret@db/news") == "postgresql://user:***@db/news"
    assert mask_database_url("postgresql://user@db/news") == "postgresql://user@db/news"
