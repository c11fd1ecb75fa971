"""Merge freshly parsed articles into the rolling retention window."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Dict, Iterable, List, Sequence, Set

from feedwindow.models import Article, ParsedArticle

logger = logging.getLogger(__name__)

__all__ = [
    "RETENTION_HOURS",
    "MergeResult",
    "format_timestamp",
    "is_within_window",
    "merge",
    "parse_timestamp",
    "sort_articles",
]

RETENTION_HOURS = 48


@dataclass
class MergeResult:
    articles: List[Article] = field(default_factory=list)
    new_ids: Set[str] = field(default_factory=set)

    @property
    def new_count(self) -> int:
        return len(self.new_ids)


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as an ISO-8601 UTC string with millisecond precision."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    moment = moment.astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning ``None`` when it is not one."""

    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_within_window(article: Article, now: datetime, retention: timedelta) -> bool:
    published = parse_timestamp(article.publication_datetime)
    if published is None:
        return False
    return now - published <= retention


def sort_articles(articles: Iterable[Article]) -> List[Article]:
    """Sort newest first; unparseable timestamps go last in their original order."""

    def sort_key(article: Article) -> tuple[int, float]:
        published = parse_timestamp(article.publication_datetime)
        if published is None:
            return (1, 0.0)
        return (0, -published.timestamp())

    return sorted(articles, key=sort_key)


def merge(
    previous: Sequence[Article],
    batches: Iterable[Iterable[ParsedArticle]],
    *,
    now: datetime | None = None,
    retention: timedelta = timedelta(hours=RETENTION_HOURS),
) -> MergeResult:
    """Combine the previous snapshot with the articles parsed in this cycle.

    An article keeps the first-seen timestamp recorded in ``previous``; ids
    seen for the first time are stamped with ``now``. Only ids present in
    ``batches`` survive, so an article removed upstream is dropped even if it
    is still inside the window.
    """

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    stamp = format_timestamp(now)
    known: Dict[str, Article] = {article.id: article for article in previous}

    merged: Dict[str, Article] = {}
    new_ids: Set[str] = set()
    for batch in batches:
        for parsed in batch:
            prior = known.get(parsed.id)
            if prior is not None:
                published = prior.publication_datetime
            else:
                published = stamp
                new_ids.add(parsed.id)
            merged[parsed.id] = Article(**parsed.model_dump(), publication_datetime=published)

    retained: List[Article] = []
    for article in merged.values():
        if is_within_window(article, now, retention):
            retained.append(article)
            continue
        if parse_timestamp(article.publication_datetime) is None:
            logger.warning(
                "Dropping %s with unreadable timestamp %r",
                article.url,
                article.publication_datetime,
            )
        new_ids.discard(article.id)

    return MergeResult(articles=sort_articles(retained), new_ids=new_ids)
