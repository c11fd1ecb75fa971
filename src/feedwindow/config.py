"""Configuration models and helpers for the feed refresh cycle."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, List, Tuple

from pydantic import BaseModel, Field, HttpUrl, ValidationError

__all__ = [
    "AppConfig",
    "SourceConfig",
    "Settings",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
]

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "data" / "sources.json"

ENV_PREFIX = "FEEDWINDOW_"


class SourceConfig(BaseModel):
    """A single RSS or ATOM endpoint to poll."""

    title: str = Field(..., description="Human friendly source name")
    url: HttpUrl = Field(..., description="Feed endpoint to fetch")

    @property
    def name(self) -> str:
        """Return the name attached to every article parsed from this source."""

        return self.title

    @property
    def feed_url(self) -> str:
        """Return the endpoint as a plain string."""

        return str(self.url)


class AppConfig(BaseModel):
    """Collection of :class:`SourceConfig` entries polled on every refresh."""

    sources: List[SourceConfig] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "AppConfig":
        """Load the source list from a JSON file."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise FileNotFoundError(f"Configuration file not found: {config_path}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in configuration file: {config_path}") from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Configuration file is invalid: {config_path}\n{exc}") from exc

    def dump(self, path: Path | str | None = None) -> None:
        """Persist the configuration back to disk as JSON."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")

    def iter_sources(self) -> Iterable[SourceConfig]:
        """Iterate over configured sources."""

        return iter(self.sources)


class Settings(BaseModel):
    """Runtime knobs for the refresh cycle and the read endpoint."""

    retention_hours: float = Field(default=48, gt=0, description="Retention window in hours")
    max_retries: int = Field(default=3, ge=0, description="Additional attempts per store write")
    initial_delay: float = Field(
        default=0.2, ge=0, description="Seconds to wait before the first retry; doubles each time"
    )
    request_timeout: Tuple[float, float] = Field(
        default=(10, 30), description="Connect and read timeout for each feed request"
    )
    max_workers: int = Field(default=8, ge=1, description="Upper bound on concurrent feed fetches")
    blob_root: Path | None = Field(
        default=None, description="Directory of the key-value store. Defaults to the package blobstore."
    )
    cache_max_age: int = Field(default=300, ge=0, description="max-age for served snapshots")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``FEEDWINDOW_*`` environment variables."""

        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for field_name in cls.model_fields:
            raw = env.get(ENV_PREFIX + field_name.upper())
            if raw is None or not raw.strip():
                continue
            if field_name == "request_timeout":
                parts = [part.strip() for part in raw.split(",") if part.strip()]
                if len(parts) == 1:
                    parts = parts * 2
                values[field_name] = tuple(parts)
            else:
                values[field_name] = raw.strip()

        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ValueError(f"Invalid {ENV_PREFIX}* environment settings\n{exc}") from exc
