from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from harvester.core.logging import get_logger
from harvester.models.fetched_document import FetchedDocument, PageMetadata
from services.errors import FetchError

logger = get_logger()

FEED_LINK_TYPES = (
    "application/rss+xml",
    "application/atom+xml",
)


class FetchService:
    """
    HTTP fetch layer: one shared client, concurrency bounded by a semaphore,
    per-request timeout. Failures surface as FetchError and are never retried.
    """

    def __init__(
        self,
        *,
        user_agent: str,
        timeout_s: float = 15.0,
        max_concurrency: int = 5,
        verify_tls: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.user_agent = user_agent
        self.timeout_s = timeout_s
        self.max_concurrency = max(1, max_concurrency)
        self.verify_tls = verify_tls
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._sem = asyncio.Semaphore(self.max_concurrency)

    async def __aenter__(self) -> "FetchService":
        self._client = httpx.AsyncClient(
            timeout=self.timeout_s,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            verify=self.verify_tls,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()

    async def fetch(self, url: str) -> FetchedDocument:
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")

        try:
            async with self._sem:
                response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"HTTP {exc.response.status_code}",
                url=url,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"{type(exc).__name__}: {exc}", url=url) from exc
        except (httpx.InvalidURL, ValueError) as exc:
            # raised while building the request, before any I/O
            raise FetchError(f"invalid url: {exc}", url=url) from exc

        return FetchedDocument(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            content=response.content,
            encoding=response.encoding,
            fetched_at=datetime.now(timezone.utc),
        )


def _meta_content(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = tag.get("content")
    if isinstance(content, str) and content.strip():
        return content.strip()
    return None


def discover_feed_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    """First declared RSS/Atom alternate link, resolved against ``base_url``."""
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "alternate" not in [r.lower() for r in rel]:
            continue
        link_type = (link.get("type") or "").strip().lower()
        if link_type not in FEED_LINK_TYPES:
            continue
        href = link["href"].strip()
        if not href:
            continue
        try:
            return urljoin(base_url, href)
        except ValueError as exc:
            logger.warning("page_feed_link_invalid", base_url=base_url, href=href, error=str(exc))
    return None


def extract_page_metadata(document: FetchedDocument) -> PageMetadata:
    soup = BeautifulSoup(document.text, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else None
    feed_url = discover_feed_url(soup, document.final_url)
    if feed_url:
        logger.info("page_feed_discovered", url=document.url, feed_url=feed_url)
    return PageMetadata(
        url=document.url,
        title=title or None,
        site_name=_meta_content(soup, property="og:site_name"),
        description=_meta_content(soup, name="description"),
        feed_url=feed_url,
    )
