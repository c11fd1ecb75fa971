"""Service layer entry points for Feed Window."""

from __future__ import annotations

from .fetcher import FeedFetcher, SourceResult, fetch_source  # noqa: F401
from .merge import merge  # noqa: F401
from .parser import parse_feed  # noqa: F401
from .persistence import PersistenceError, persist, with_backoff  # noqa: F401
from .refresh import refresh_articles  # noqa: F401

__all__ = [
    "FeedFetcher",
    "PersistenceError",
    "SourceResult",
    "fetch_source",
    "merge",
    "parse_feed",
    "persist",
    "refresh_articles",
    "with_backoff",
]
