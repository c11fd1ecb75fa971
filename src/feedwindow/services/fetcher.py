"""HTTP retrieval of feed documents and per-source parse results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from feedwindow.config import SourceConfig
from feedwindow.models import ParsedArticle
from feedwindow.services.parser import parse_feed

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_HEADERS", "FeedFetcher", "FetchedDocument", "SourceResult", "fetch_source"]

DEFAULT_HEADERS = {
    "User-Agent": "feedwindow/0.1 (+RSS/ATOM reader)",
    "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5",
    "Accept-Encoding": "gzip, deflate",
}

DEFAULT_TIMEOUT = (10, 30)

# Only connection failures are retried here; HTTP status codes are reported as-is.
_connect_retry = Retry(total=2, connect=2, read=0, status=0, backoff_factor=0.5, allowed_methods={"GET"})


@dataclass
class FetchedDocument:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class SourceResult:
    """Outcome of fetching and parsing one source: articles or a failure reason."""

    source: str
    articles: List[ParsedArticle] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, source: str, articles: List[ParsedArticle]) -> "SourceResult":
        return cls(source=source, articles=list(articles))

    @classmethod
    def failure(cls, source: str, reason: str) -> "SourceResult":
        return cls(source=source, error=reason)


class FeedFetcher:
    """Thin wrapper around a :class:`requests.Session` tuned for feed endpoints."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: Tuple[float, float] = DEFAULT_TIMEOUT,
    ) -> None:
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(max_retries=_connect_retry)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session
        self._session.headers.update(DEFAULT_HEADERS)
        self.timeout = timeout

    def fetch(self, url: str) -> FetchedDocument:
        """GET ``url``; transport errors propagate as :class:`requests.RequestException`."""

        response = self._session.get(url, timeout=self.timeout)
        return FetchedDocument(status=response.status_code, body=response.text)

    def close(self) -> None:
        self._session.close()


def fetch_source(source: SourceConfig, fetcher: FeedFetcher) -> SourceResult:
    """Fetch and parse ``source``. Never raises; failures are described in the result."""

    url = source.feed_url
    try:
        document = fetcher.fetch(url)
    except requests.RequestException as exc:
        return SourceResult.failure(source.name, f"Request to {url} failed: {exc}")

    if not document.ok:
        return SourceResult.failure(source.name, f"Failed to fetch {url}: HTTP {document.status}")

    parsed = parse_feed(document.body, source_name=source.name, feed_url=url)
    if not parsed.recognized:
        return SourceResult.failure(source.name, f"No RSS items or ATOM entries found at {url}")

    logger.debug("Parsed %d %s articles from %s", len(parsed.articles), parsed.format.value, source.name)
    return SourceResult.success(source.name, parsed.articles)
