"""API routes serving the persisted snapshot and triggering refreshes."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from feedwindow.blobstore import BlobStore
from feedwindow.config import AppConfig, Settings
from feedwindow.models import RefreshReport
from feedwindow.services.persistence import (
    ARTICLES_KEY,
    PersistenceError,
    load_last_update,
)
from feedwindow.services.refresh import refresh_articles

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_POPULATED_DETAIL = "No articles found. The scheduled task may not have run yet."


class SourceEntry(BaseModel):
    title: str
    url: str


class SourcesResponse(BaseModel):
    sources: List[SourceEntry] = Field(default_factory=list)


class LastUpdateResponse(BaseModel):
    last_update: int = Field(serialization_alias="lastUpdate")


def get_settings() -> Settings:
    try:
        return Settings.from_env()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_store(settings: Settings) -> BlobStore:
    return BlobStore(settings.blob_root)


def _load_config() -> AppConfig:
    try:
        return AppConfig.from_file()
    except FileNotFoundError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def snapshot_response() -> Response:
    """Return the stored snapshot verbatim, or a 404 before the first refresh."""

    settings = get_settings()
    store = get_store(settings)
    try:
        payload = store.get(ARTICLES_KEY)
    except (OSError, UnicodeDecodeError) as exc:
        logger.exception("Failed to read stored articles")
        raise HTTPException(status_code=500, detail=f"Error fetching articles: {exc}") from exc

    if payload is None:
        raise HTTPException(status_code=404, detail=NOT_POPULATED_DETAIL)

    return Response(
        content=payload,
        media_type="application/json",
        headers={"Cache-Control": f"public, max-age={settings.cache_max_age}"},
    )


@router.get("/articles")
async def list_articles() -> Response:
    """Return the most recently persisted article snapshot."""

    return await run_in_threadpool(snapshot_response)


@router.get("/last-update", response_model=LastUpdateResponse)
async def last_update() -> LastUpdateResponse:
    """Return the Unix timestamp of the last successful refresh."""

    store = get_store(get_settings())
    value = await run_in_threadpool(load_last_update, store)
    if value is None:
        raise HTTPException(status_code=404, detail=NOT_POPULATED_DETAIL)
    return LastUpdateResponse(last_update=value)


@router.get("/sources", response_model=SourcesResponse)
async def list_sources() -> SourcesResponse:
    """Return the configured feed sources."""

    config = _load_config()
    return SourcesResponse(
        sources=[SourceEntry(title=source.title, url=source.feed_url) for source in config.sources]
    )


@router.post("/refresh", response_model=RefreshReport)
async def trigger_refresh() -> RefreshReport:
    """Run one refresh cycle now and return its report."""

    config = _load_config()
    settings = get_settings()
    store = get_store(settings)

    try:
        return await run_in_threadpool(
            refresh_articles,
            config.sources,
            store,
            settings=settings,
        )
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001 - any other cycle failure is a server error
        logger.exception("Manual refresh failed")
        raise HTTPException(status_code=500, detail=f"Refresh failed: {exc}") from exc
