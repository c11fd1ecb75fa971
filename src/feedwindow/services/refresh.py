"""One refresh cycle: fetch every source, merge into the window, persist.

The previous snapshot is read and the new one written without a transaction,
so at most one cycle may run at a time. Overlapping invocations must be
prevented by whatever schedules the cycle.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import Callable, List, Sequence

from feedwindow.config import Settings, SourceConfig
from feedwindow.models import CycleState, ParsedArticle, RefreshReport
from feedwindow.services.fetcher import FeedFetcher, SourceResult, fetch_source
from feedwindow.services.merge import merge
from feedwindow.services.persistence import KeyValueStore, PersistenceError, load_snapshot, persist

logger = logging.getLogger(__name__)

__all__ = ["collect_sources", "refresh_articles"]


def _fetch_guarded(source: SourceConfig, fetcher: FeedFetcher) -> SourceResult:
    try:
        return fetch_source(source, fetcher)
    except Exception as exc:  # noqa: BLE001 - one broken source must not abort the cycle
        return SourceResult.failure(source.name, f"Unexpected error: {exc}")


def collect_sources(
    sources: Sequence[SourceConfig], fetcher: FeedFetcher, *, max_workers: int
) -> List[SourceResult]:
    """Fetch all sources concurrently and return one result per source, in order."""

    if not sources:
        return []

    workers = max(1, min(len(sources), max_workers))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="feed-fetch") as pool:
        results = list(pool.map(lambda source: _fetch_guarded(source, fetcher), sources))

    for result in results:
        if not result.ok:
            logger.warning("Error processing %s: %s", result.source, result.error)
    return results


def refresh_articles(
    sources: Sequence[SourceConfig],
    store: KeyValueStore,
    *,
    fetcher: FeedFetcher | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RefreshReport:
    """Run one refresh cycle and return its report.

    Source failures are reported but never fail the cycle. A
    :class:`~feedwindow.services.persistence.PersistenceError` is logged and
    re-raised.
    """

    settings = settings or Settings()
    owns_fetcher = fetcher is None
    if fetcher is None:
        fetcher = FeedFetcher(timeout=settings.request_timeout)

    state = CycleState.IDLE

    def advance(next_state: CycleState) -> CycleState:
        logger.debug("Refresh cycle %s -> %s", state.value, next_state.value)
        return next_state

    logger.info("Running refresh of %d sources", len(sources))

    state = advance(CycleState.FETCHING)
    try:
        results = collect_sources(sources, fetcher, max_workers=settings.max_workers)
    finally:
        if owns_fetcher:
            fetcher.close()
    batches: List[List[ParsedArticle]] = [result.articles for result in results]

    state = advance(CycleState.MERGING)
    moment = now or datetime.now(UTC)
    previous = load_snapshot(store)
    merged = merge(
        previous,
        batches,
        now=moment,
        retention=timedelta(hours=settings.retention_hours),
    )

    state = advance(CycleState.PERSISTING)
    try:
        persist(
            store,
            merged.articles,
            now=moment,
            max_retries=settings.max_retries,
            initial_delay=settings.initial_delay,
            sleep=sleep,
        )
    except PersistenceError:
        state = advance(CycleState.FAILED)
        logger.exception("Refresh failed while persisting %d articles", len(merged.articles))
        raise

    state = advance(CycleState.SUCCEEDED)
    logger.info(
        "Successfully refreshed %d articles (%d new) at %s",
        len(merged.articles),
        merged.new_count,
        moment.isoformat(),
    )
    return RefreshReport(
        state=state,
        total=len(merged.articles),
        new=merged.new_count,
        failed_sources={result.source: result.error for result in results if not result.ok},
        refreshed_at=moment,
    )
