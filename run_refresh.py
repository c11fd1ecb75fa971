"""Convenience script for running feed refresh cycles locally or from cron."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Callable

# Ensure the src directory is on the Python path so the feedwindow package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from feedwindow.blobstore import BlobStore  # noqa: E402  (import after path setup)
from feedwindow.config import AppConfig, Settings  # noqa: E402
from feedwindow.services.persistence import PersistenceError  # noqa: E402
from feedwindow.services.refresh import refresh_articles  # noqa: E402


def run_once(config_path: str | None) -> int:
    """Load the source list and run a single refresh cycle."""

    try:
        config = AppConfig.from_file(config_path)
        settings = Settings.from_env()
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Could not load configuration: %s", exc)
        return 1

    try:
        report = refresh_articles(config.sources, BlobStore(settings.blob_root), settings=settings)
    except PersistenceError as exc:
        logging.error("Refresh failed: %s", exc)
        return 1
    except Exception:  # noqa: BLE001 - report the failure through the exit status
        logging.exception("Refresh failed unexpectedly")
        return 1

    print(json.dumps(report.model_dump(mode="json"), indent=2))
    return 0


def run_scheduled(
    config_path: str | None,
    interval_minutes: float,
    *,
    cycles: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Run a refresh every ``interval_minutes``; a failed cycle never stops the loop."""

    completed = 0
    while cycles is None or completed < cycles:
        started = time.monotonic()
        try:
            run_once(config_path)
        except Exception:  # noqa: BLE001 - keep the schedule alive
            logging.exception("Refresh cycle crashed")
        completed += 1
        if cycles is not None and completed >= cycles:
            break
        elapsed = time.monotonic() - started
        sleep(max(0.0, interval_minutes * 60 - elapsed))


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh the merged feed snapshot.")
    parser.add_argument("--config", help="Path to the sources JSON file")
    parser.add_argument(
        "--interval",
        type=float,
        help="Repeat the refresh every INTERVAL minutes instead of running once",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    if args.interval is None:
        sys.exit(run_once(args.config))

    run_scheduled(args.config, args.interval)


if __name__ == "__main__":
    main()
