"""Tests for the read endpoint and manual refresh trigger in :mod:`feedwindow.api.routes`."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient

from feedwindow.api.app import create_app
from feedwindow.blobstore import BlobStore
from feedwindow.config import AppConfig, SourceConfig
from feedwindow.models import CycleState, RefreshReport
from feedwindow.services.persistence import ARTICLES_KEY, LAST_UPDATE_KEY, PersistenceError

SNAPSHOT = (
    '[{"id":"abc","url":"https://a/1","title":"Title","snippet":"","source":"Source",'
    '"sourceUrl":"https://a/feed","publicationDatetime":"2024-05-01T12:00:00.000Z"}]'
)


def test_articles_returns_404_before_first_refresh(tmp_path: Path) -> None:
    """An empty store responds with a 'not yet populated' error."""

    client = TestClient(create_app())

    with patch("feedwindow.api.routes.get_store", return_value=BlobStore(tmp_path)):
        response = client.get("/api/articles")

    assert response.status_code == 404
    assert "scheduled task may not have run yet" in response.json()["detail"]


def test_articles_serves_stored_snapshot(tmp_path: Path) -> None:
    """A stored snapshot is served verbatim with a cache header, also at the root path."""

    store = BlobStore(tmp_path)
    store.put(ARTICLES_KEY, SNAPSHOT)
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.get_store", return_value=store):
        response = client.get("/api/articles")
        root_response = client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.headers["cache-control"] == "public, max-age=300"
    assert response.json()[0]["publicationDatetime"] == "2024-05-01T12:00:00.000Z"
    assert root_response.json() == response.json()


def test_last_update_endpoint(tmp_path: Path) -> None:
    """The refresh marker is returned as an integer once it exists."""

    store = BlobStore(tmp_path)
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.get_store", return_value=store):
        missing = client.get("/api/last-update")
        store.put(LAST_UPDATE_KEY, "1714564800")
        present = client.get("/api/last-update")

    assert missing.status_code == 404
    assert present.status_code == 200
    assert present.json() == {"lastUpdate": 1714564800}


def test_list_sources_returns_configured_sources() -> None:
    """Configured sources are listed with their title and feed URL."""

    config = AppConfig(
        sources=[
            SourceConfig(title="Alpha", url="https://alpha.example.com/rss"),
            SourceConfig(title="Beta", url="https://beta.example.com/atom.xml"),
        ]
    )
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.AppConfig.from_file", return_value=config):
        response = client.get("/api/sources")

    assert response.status_code == 200
    assert response.json()["sources"] == [
        {"title": "Alpha", "url": "https://alpha.example.com/rss"},
        {"title": "Beta", "url": "https://beta.example.com/atom.xml"},
    ]


def test_list_sources_surfaces_configuration_errors() -> None:
    """An invalid source list is reported as a server error."""

    client = TestClient(create_app())

    with patch(
        "feedwindow.api.routes.AppConfig.from_file",
        side_effect=ValueError("Configuration file is invalid"),
    ):
        response = client.get("/api/sources")

    assert response.status_code == 500
    assert "invalid" in response.json()["detail"]


def test_trigger_refresh_returns_report(tmp_path: Path) -> None:
    """A manual refresh runs one cycle over the configured sources and returns its report."""

    config = AppConfig(sources=[SourceConfig(title="Alpha", url="https://alpha.example.com/rss")])
    report = RefreshReport(
        state=CycleState.SUCCEEDED,
        total=3,
        new=1,
        refreshed_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
    )
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.AppConfig.from_file", return_value=config), patch(
        "feedwindow.api.routes.get_store", return_value=BlobStore(tmp_path)
    ), patch("feedwindow.api.routes.refresh_articles", return_value=report) as mock_refresh:
        response = client.post("/api/refresh")

    assert response.status_code == 200
    payload = response.json()
    assert payload["state"] == "succeeded"
    assert payload["total"] == 3
    assert payload["new"] == 1
    assert mock_refresh.call_args.args[0] == config.sources


def test_trigger_refresh_returns_500_on_persistence_failure(tmp_path: Path) -> None:
    """A store that cannot be written is reported as a server error naming the key."""

    config = AppConfig(sources=[])
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.AppConfig.from_file", return_value=config), patch(
        "feedwindow.api.routes.get_store", return_value=BlobStore(tmp_path)
    ), patch(
        "feedwindow.api.routes.refresh_articles",
        side_effect=PersistenceError(ARTICLES_KEY, 4),
    ):
        response = client.post("/api/refresh")

    assert response.status_code == 500
    assert ARTICLES_KEY in response.json()["detail"]


def test_trigger_refresh_returns_500_on_unexpected_error(tmp_path: Path) -> None:
    """Any other failure during a manual refresh is reported as a server error."""

    config = AppConfig(sources=[])
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.AppConfig.from_file", return_value=config), patch(
        "feedwindow.api.routes.get_store", return_value=BlobStore(tmp_path)
    ), patch(
        "feedwindow.api.routes.refresh_articles",
        side_effect=RuntimeError("boom"),
    ):
        response = client.post("/api/refresh")

    assert response.status_code == 500
    assert response.json()["detail"] == "Refresh failed: boom"


def test_articles_returns_500_for_undecodable_snapshot(tmp_path: Path) -> None:
    """A stored snapshot that is not UTF-8 is reported as a server error."""

    (tmp_path / ARTICLES_KEY).write_bytes(b"\xff\xfe")
    client = TestClient(create_app())

    with patch("feedwindow.api.routes.get_store", return_value=BlobStore(tmp_path)):
        response = client.get("/api/articles")
        marker = client.get("/api/last-update")

    assert response.status_code == 500
    assert "Error fetching articles" in response.json()["detail"]
    assert marker.status_code == 404
