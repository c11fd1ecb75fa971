"""Domain models used across the application."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ParsedArticle(BaseModel):
    """An entry extracted from a feed document, before any timestamp is attached."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    title: str
    snippet: str = ""
    source: str
    source_url: str = Field(alias="sourceUrl")


class Article(ParsedArticle):
    """A persisted article.

    ``publication_datetime`` records when this system first saw the article,
    not the date the feed declares.
    """

    publication_datetime: str = Field(alias="publicationDatetime")


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    PERSISTING = "persisting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RefreshReport(BaseModel):
    """Outcome of one refresh cycle."""

    state: CycleState
    total: int = 0
    new: int = 0
    failed_sources: Dict[str, str] = Field(default_factory=dict)
    refreshed_at: datetime


SnapshotAdapter = TypeAdapter(List[Article])


def dump_snapshot(articles: List[Article]) -> str:
    """Serialise a snapshot as a JSON array of camelCase records."""

    return SnapshotAdapter.dump_json(articles, by_alias=True).decode("utf-8")


def load_snapshot_json(payload: str | bytes) -> List[Article]:
    """Validate a serialised snapshot back into :class:`Article` objects."""

    return SnapshotAdapter.validate_json(payload)
