"""Tests for retried snapshot writes and tolerant reads in :mod:`feedwindow.services.persistence`."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from feedwindow.blobstore import BlobStore
from feedwindow.models import Article
from feedwindow.services.persistence import (
    ARTICLES_KEY,
    LAST_UPDATE_KEY,
    PersistenceError,
    load_last_update,
    load_snapshot,
    persist,
    with_backoff,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class MemoryStore:
    def __init__(self, failures: dict[str, int] | None = None) -> None:
        self.data: dict[str, str] = {}
        self.failures = dict(failures or {})
        self.calls: list[str] = []

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def put(self, key: str, value: str) -> None:
        self.calls.append(key)
        if self.failures.get(key, 0) > 0:
            self.failures[key] -= 1
            raise OSError(f"write to {key} failed")
        self.data[key] = value


def article(url: str = "https://a/1") -> Article:
    return Article(
        id="abc",
        url=url,
        title="Title",
        snippet="",
        source="Source",
        source_url="https://a/feed",
        publication_datetime="2024-05-01T11:00:00.000Z",
    )


def test_with_backoff_returns_first_success() -> None:
    """A successful first call does not sleep."""

    delays: list[float] = []

    assert with_backoff(lambda: "done", sleep=delays.append) == "done"
    assert delays == []


def test_with_backoff_doubles_delay_between_attempts() -> None:
    """Waits double between attempts until the call succeeds."""

    attempts = []
    delays: list[float] = []

    def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise OSError("busy")
        return "ok"

    assert with_backoff(flaky, max_retries=3, initial_delay=0.2, sleep=delays.append) == "ok"
    assert len(attempts) == 3
    assert delays == pytest.approx([0.2, 0.4])


def test_with_backoff_reraises_after_exhausting_retries() -> None:
    """The last error is raised after the final retry."""

    delays: list[float] = []

    def always_fails() -> None:
        raise OSError("down")

    with pytest.raises(OSError, match="down"):
        with_backoff(always_fails, max_retries=3, initial_delay=0.2, sleep=delays.append)

    assert delays == pytest.approx([0.2, 0.4, 0.8])


def test_with_backoff_only_retries_selected_errors() -> None:
    """Errors outside ``retry_on`` are raised immediately."""

    delays: list[float] = []

    def broken() -> None:
        raise KeyError("nope")

    with pytest.raises(KeyError):
        with_backoff(broken, retry_on=(OSError,), sleep=delays.append)

    assert delays == []


def test_persist_writes_snapshot_then_marker() -> None:
    """The snapshot is written before the refresh marker."""

    store = MemoryStore()

    persist(store, [article()], now=NOW, sleep=lambda _: None)

    assert store.calls == [ARTICLES_KEY, LAST_UPDATE_KEY]
    payload = json.loads(store.data[ARTICLES_KEY])
    assert payload[0]["sourceUrl"] == "https://a/feed"
    assert payload[0]["publicationDatetime"] == "2024-05-01T11:00:00.000Z"
    assert store.data[LAST_UPDATE_KEY] == str(int(NOW.timestamp()))


def test_persist_empty_snapshot_still_writes_both_keys() -> None:
    """An empty snapshot still refreshes the marker."""

    store = MemoryStore()

    persist(store, [], now=NOW, sleep=lambda _: None)

    assert store.data[ARTICLES_KEY] == "[]"
    assert store.data[LAST_UPDATE_KEY] == str(int(NOW.timestamp()))


def test_persist_recovers_from_transient_failures() -> None:
    """Two failed writes followed by success cost 0.2s + 0.4s of waiting."""

    store = MemoryStore(failures={ARTICLES_KEY: 2})
    delays: list[float] = []

    persist(store, [article()], now=NOW, sleep=delays.append)

    assert delays == pytest.approx([0.2, 0.4])
    assert sum(delays) == pytest.approx(0.6)
    assert ARTICLES_KEY in store.data


def test_persist_raises_when_snapshot_write_keeps_failing() -> None:
    """A snapshot write that never succeeds raises and skips the marker."""

    store = MemoryStore(failures={ARTICLES_KEY: 10})

    with pytest.raises(PersistenceError) as excinfo:
        persist(store, [article()], now=NOW, sleep=lambda _: None)

    assert excinfo.value.key == ARTICLES_KEY
    assert excinfo.value.attempts == 4
    assert isinstance(excinfo.value.__cause__, OSError)
    assert LAST_UPDATE_KEY not in store.calls


def test_persist_reports_failure_when_only_marker_fails() -> None:
    """A failed marker write fails the call even though the snapshot is stored."""

    store = MemoryStore(failures={LAST_UPDATE_KEY: 10})

    with pytest.raises(PersistenceError) as excinfo:
        persist(store, [article()], now=NOW, sleep=lambda _: None)

    assert excinfo.value.key == LAST_UPDATE_KEY
    # Readers already see the new snapshot even though the cycle failed.
    assert ARTICLES_KEY in store.data


def test_load_snapshot_round_trip() -> None:
    """A persisted snapshot and marker load back unchanged."""

    store = MemoryStore()
    persist(store, [article()], now=NOW, sleep=lambda _: None)

    assert load_snapshot(store) == [article()]
    assert load_last_update(store) == int(NOW.timestamp())


def test_load_snapshot_treats_missing_or_corrupt_data_as_empty() -> None:
    """Missing or corrupt stored values load as empty."""

    store = MemoryStore()
    assert load_snapshot(store) == []
    assert load_last_update(store) is None

    store.data[ARTICLES_KEY] = "{broken"
    store.data[LAST_UPDATE_KEY] = "soon"
    assert load_snapshot(store) == []
    assert load_last_update(store) is None


def test_load_snapshot_treats_undecodable_files_as_empty(tmp_path: Path) -> None:
    """Stored bytes that are not UTF-8 load as an empty snapshot and no marker."""

    store = BlobStore(tmp_path)
    (tmp_path / ARTICLES_KEY).write_bytes(b"\xff\xfe garbage")
    (tmp_path / LAST_UPDATE_KEY).write_bytes(b"\xff\xfe")

    assert load_snapshot(store) == []
    assert load_last_update(store) is None

    persist(store, [article()], now=NOW, sleep=lambda _: None)

    assert [item.url for item in load_snapshot(store)] == ["https://a/1"]
