"""Format-detecting parser for RSS and ATOM documents.

Detection is structural: a document with ``item`` elements is RSS, one with
``entry`` elements is ATOM, regardless of the root element or the declared
namespaces.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterator, List

from bs4 import BeautifulSoup, ParserRejectedMarkup, Tag
from pydantic import BaseModel, Field

from feedwindow.models import ParsedArticle
from feedwindow.services.hashing import hash_url
from feedwindow.services.normalizer import normalize

logger = logging.getLogger(__name__)

__all__ = ["FeedFormat", "ParsedFeed", "detect_format", "parse_feed", "resolve_atom_link"]


class FeedFormat(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    UNRECOGNIZED = "unrecognized"


class ParsedFeed(BaseModel):
    """Result of parsing one document: the detected format and its articles."""

    format: FeedFormat
    articles: List[ParsedArticle] = Field(default_factory=list)

    @property
    def recognized(self) -> bool:
        return self.format is not FeedFormat.UNRECOGNIZED


def _child_text(element: Tag, name: str) -> str:
    child = element.find(name)
    if child is None:
        return ""
    return normalize(child.get_text())


def _rss_link(item: Tag) -> str:
    # ``atom:link`` self references are empty elements; take the first link with text.
    for link in item.find_all("link"):
        text = normalize(link.get_text())
        if text:
            return text
    return ""


def resolve_atom_link(entry: Tag) -> str:
    """Return the ``alternate`` (or rel-less) link of an entry, else the first link."""

    links = entry.find_all("link")
    for link in links:
        rel = link.get("rel")
        if not rel or rel == "alternate":
            return (link.get("href") or "").strip()
    if links:
        return (links[0].get("href") or "").strip()
    return ""


def detect_format(soup: BeautifulSoup) -> FeedFormat:
    """Classify a parsed document by the elements it contains."""

    if soup.find("item") is not None:
        return FeedFormat.RSS
    if soup.find("entry") is not None:
        return FeedFormat.ATOM
    return FeedFormat.UNRECOGNIZED


def _iter_rss(soup: BeautifulSoup, source_name: str, feed_url: str) -> Iterator[ParsedArticle]:
    for item in soup.find_all("item"):
        link = _rss_link(item)
        title = _child_text(item, "title")
        if not link:
            logger.debug("Skipping RSS item without link from %s: %r", source_name, title)
            continue

        yield ParsedArticle(
            id=hash_url(link),
            url=link,
            title=title or source_name,
            snippet=_child_text(item, "description"),
            source=source_name,
            source_url=feed_url,
        )


def _iter_atom(soup: BeautifulSoup, source_name: str, feed_url: str) -> Iterator[ParsedArticle]:
    for entry in soup.find_all("entry"):
        title = _child_text(entry, "title")
        link = resolve_atom_link(entry)
        if not link or not title:
            logger.debug("Skipping ATOM entry with missing fields from %s: %r", source_name, title)
            continue

        body = _child_text(entry, "content") or _child_text(entry, "summary")
        yield ParsedArticle(
            id=hash_url(link),
            url=link,
            title=title,
            snippet=body,
            source=source_name,
            source_url=feed_url,
        )


def parse_feed(document: str | bytes, *, source_name: str, feed_url: str) -> ParsedFeed:
    """Parse an RSS or ATOM ``document`` into :class:`ParsedArticle` records.

    Anything that cannot be parsed, or that contains neither ``item`` nor
    ``entry`` elements, yields an ``UNRECOGNIZED`` result with no articles.
    """

    if not document or not document.strip():
        return ParsedFeed(format=FeedFormat.UNRECOGNIZED)

    from_encoding = None
    if isinstance(document, str):
        # Decoded text: any encoding declaration in the prolog no longer applies.
        document = document.encode("utf-8")
        from_encoding = "utf-8"

    try:
        soup = BeautifulSoup(document, "xml", from_encoding=from_encoding)
    except ParserRejectedMarkup as exc:
        logger.debug("Rejected markup from %s: %s", feed_url, exc)
        return ParsedFeed(format=FeedFormat.UNRECOGNIZED)

    feed_format = detect_format(soup)
    if feed_format is FeedFormat.RSS:
        articles = list(_iter_rss(soup, source_name, feed_url))
    elif feed_format is FeedFormat.ATOM:
        articles = list(_iter_atom(soup, source_name, feed_url))
    else:
        articles = []

    return ParsedFeed(format=feed_format, articles=articles)
