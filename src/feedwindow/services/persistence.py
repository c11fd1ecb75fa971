"""Snapshot persistence with bounded exponential-backoff retries."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Callable, List, Protocol, Sequence, Tuple, Type, TypeVar

from pydantic import ValidationError

from feedwindow.models import Article, dump_snapshot, load_snapshot_json

logger = logging.getLogger(__name__)

__all__ = [
    "ARTICLES_KEY",
    "INITIAL_DELAY",
    "LAST_UPDATE_KEY",
    "MAX_RETRIES",
    "KeyValueStore",
    "PersistenceError",
    "load_last_update",
    "load_snapshot",
    "persist",
    "with_backoff",
]

ARTICLES_KEY = "all_articles"
LAST_UPDATE_KEY = "last_update"
MAX_RETRIES = 3
INITIAL_DELAY = 0.2

T = TypeVar("T")


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...


class PersistenceError(RuntimeError):
    """Raised when a store write still fails after every retry."""

    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(f"Failed to write {key!r} after {attempts} attempts")
        self.key = key
        self.attempts = attempts


def with_backoff(
    operation: Callable[[], T],
    *,
    max_retries: int = MAX_RETRIES,
    initial_delay: float = INITIAL_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """Call ``operation`` and retry it up to ``max_retries`` more times.

    The wait before retry ``n`` (zero based) is ``initial_delay * 2 ** n``. The
    last error is re-raised once the retries are exhausted.
    """

    attempt = 0
    while True:
        try:
            return operation()
        except retry_on as exc:
            if attempt >= max_retries:
                raise
            delay = initial_delay * (2**attempt)
            attempt += 1
            logger.warning(
                "Attempt %d/%d failed (%s); retrying in %.2fs",
                attempt,
                max_retries + 1,
                exc,
                delay,
            )
            sleep(delay)


def _write(
    store: KeyValueStore,
    key: str,
    value: str,
    *,
    max_retries: int,
    initial_delay: float,
    sleep: Callable[[float], None],
) -> None:
    try:
        with_backoff(
            lambda: store.put(key, value),
            max_retries=max_retries,
            initial_delay=initial_delay,
            sleep=sleep,
        )
    except Exception as exc:
        raise PersistenceError(key, max_retries + 1) from exc


def persist(
    store: KeyValueStore,
    articles: Sequence[Article],
    *,
    now: datetime | None = None,
    max_retries: int = MAX_RETRIES,
    initial_delay: float = INITIAL_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Write the snapshot and then the refresh marker.

    If the snapshot is written but the marker is not, readers already see the
    new articles while the call still raises :class:`PersistenceError`.
    """

    moment = now or datetime.now(UTC)
    options = {"max_retries": max_retries, "initial_delay": initial_delay, "sleep": sleep}

    _write(store, ARTICLES_KEY, dump_snapshot(list(articles)), **options)
    _write(store, LAST_UPDATE_KEY, str(int(moment.timestamp())), **options)


def load_snapshot(store: KeyValueStore) -> List[Article]:
    """Return the stored snapshot, or an empty one when it is missing or unreadable."""

    try:
        payload = store.get(ARTICLES_KEY)
    except UnicodeDecodeError as exc:
        logger.warning("Stored snapshot is not UTF-8, starting from empty: %s", exc)
        return []

    if payload is None:
        return []

    try:
        return load_snapshot_json(payload)
    except ValidationError as exc:
        logger.warning("Stored snapshot is invalid, starting from empty: %s", exc)
        return []


def load_last_update(store: KeyValueStore) -> int | None:
    """Return the Unix timestamp of the last successful refresh, if any."""

    try:
        payload = store.get(LAST_UPDATE_KEY)
    except UnicodeDecodeError as exc:
        logger.warning("Stored refresh marker is not UTF-8: %s", exc)
        return None

    if payload is None:
        return None

    try:
        return int(payload.strip())
    except ValueError:
        logger.warning("Stored refresh marker is not a timestamp: %r", payload)
        return None
