from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from harvester.models.fetched_document import PageMetadata
from harvester.models.outline import Outline
from harvester.models.parsed_feed import FeedKind, ParsedChannel, ParsedEntry
from services.entity_mapper import (
    host_name,
    map_feed,
    map_feed_source,
    map_news_item,
    map_news_items,
    map_outline_source,
    map_page_source,
    site_origin,
)
from services.errors import MappingError
from services.feed_parser_service import parse_feed


def _entry(**kwargs) -> ParsedEntry:
    defaults = {
        "title": "A story",
        "link": "https://news.example.com/a",
        "guid": "guid-a",
        "published_raw": "Wed, 01 Jan 2020 12:34:56 GMT",
    }
    defaults.update(kwargs)
    return ParsedEntry(**defaults)


def test_site_origin_and_host_name():
    assert site_origin("https://www.example.com/path/feed.xml?x=1") == "https://www.example.com"
    assert host_name("https://www.example.com/path") == "example.com"
    assert site_origin("not a url") == "not a url"


def test_map_news_item_fields():
    feed_id = uuid4()
    item = map_news_item(_entry(), feed_id=feed_id, kind=FeedKind.RSS)

    assert item.feed_id == feed_id
    assert item.guid == "guid-a"
    assert item.title == "A story"
    assert item.url == "https://news.example.com/a"
    assert item.published_timestamp == datetime(2020, 1, 1, 12, 34, 56, tzinfo=timezone.utc)


def test_map_news_item_without_link_fails():
    with pytest.raises(MappingError):
        map_news_item(_entry(link=None), feed_id=uuid4(), kind=FeedKind.RSS)


def test_map_news_item_atom_without_title_fails():
    with pytest.raises(MappingError):
        map_news_item(_entry(title=None), feed_id=uuid4(), kind=FeedKind.ATOM)


def test_map_news_item_rss_without_title_gets_placeholder():
    item = map_news_item(_entry(title=None), feed_id=uuid4(), kind=FeedKind.RSS)
    assert item.title == "Untitled"


def test_map_news_item_unparseable_date_uses_ingestion_time():
    before = datetime.now(timezone.utc)
    item = map_news_item(_entry(published_raw="someday"), feed_id=uuid4(), kind=FeedKind.RSS)
    assert item.published_timestamp >= before


def test_map_news_items_skips_only_bad_entries():
    channel = ParsedChannel(
        kind=FeedKind.RSS,
        entries=[
            _entry(guid="g1", link="https://news.example.com/1"),
            _entry(guid=None, link=None),
            _entry(guid="g3", link="https://news.example.com/3"),
        ],
    )
    items, errors = map_news_items(channel, feed_id=uuid4(), feed_url="https://news.example.com/feed")

    assert [i.guid for i in items] == ["g1", "g3"]
    assert len(errors) == 1
    assert errors[0].stage == "mapping"


def test_map_feed_carries_channel_metadata():
    source_id = uuid4()
    channel = ParsedChannel(kind=FeedKind.ATOM, title="Atom", ttl=None)
    feed = map_feed(" https://atom.example.com/atom.xml ", channel, source_id=source_id)

    assert feed.url == "https://atom.example.com/atom.xml"
    assert feed.feed_type == "Atom"
    assert feed.source_id == source_id
    assert feed.title == "Atom"


def test_map_feed_source_prefers_channel_link():
    channel = ParsedChannel(kind=FeedKind.RSS, title="Example", link="https://news.example.com/")
    source = map_feed_source("https://feeds.example.com/news.xml", channel, type_id=1)
    assert source.url == "https://news.example.com/"
    assert source.name == "Example"
    assert source.feed_available is True


def test_map_feed_source_falls_back_to_feed_origin():
    channel = ParsedChannel(kind=FeedKind.RSS, link="/relative")
    source = map_feed_source("https://feeds.example.com/news.xml", channel, type_id=1)
    assert source.url == "https://feeds.example.com"
    assert source.name == "feeds.example.com"


def test_map_outline_source():
    outline = Outline(text="Example", type="rss", xml_url="https://example.com/feed.xml")
    source = map_outline_source(outline, type_id=3)
    assert source.url == "https://example.com"
    assert source.type_id == 3

    with pytest.raises(MappingError):
        map_outline_source(Outline(text="group"), type_id=1)


def test_map_page_source_name_fallbacks():
    page = PageMetadata(url="https://www.example.com/", title="Home", feed_url=None)
    source = map_page_source(page, type_id=1)
    assert source.name == "Home"
    assert source.feed_available is False

    bare = map_page_source(PageMetadata(url="https://www.example.com/"), type_id=1)
    assert bare.name == "example.com"


def test_atom_entry_with_id_but_no_link_is_rejected():
    channel = parse_feed(
        b"""<feed xmlns="http://www.w3.org/2005/Atom"><title>t</title>
          <entry><title>id only</title><id>urn:uuid:1234</id>
            <updated>2024-01-01T00:00:00Z</updated></entry>
          <entry><title>linked</title><id>urn:uuid:5678</id>
            <link href="https://example.com/5678"/>
            <updated>2024-01-01T00:00:00Z</updated></entry>
        </feed>"""
    ).channel

    items, errors = map_news_items(channel, feed_id=uuid4())

    assert [(i.guid, i.url) for i in items] == [("urn:uuid:5678", "https://example.com/5678")]
    assert len(errors) == 1
    assert str(errors[0]) == "entry has no link"


def test_malformed_url_raises_mapping_error():
    with pytest.raises(MappingError):
        site_origin("http://[broken/feed.xml")
    with pytest.raises(MappingError):
        map_outline_source(Outline(text="broken", type="rss", xml_url="http://[broken/feed.xml"), type_id=1)
