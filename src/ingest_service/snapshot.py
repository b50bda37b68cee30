"""
snapshot.py
Builds and reads the bundled restaurant snapshot.

The snapshot is a JSON array of consolidated restaurants (ISO-8601 dates).
A fresh install loads it into the local store so the first launch has data
before the first download finishes.

Generate a new snapshot from the project's root folder:
    python -m ingest_service.snapshot [output_path]
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List

from ingest_service import config
from ingest_service.ingestion.socrata_fetcher import iter_pages
from ingest_service.models import Restaurant
from ingest_service.processing.consolidator import consolidate_pages

logger = logging.getLogger(__name__)


def load_snapshot(path) -> List[Restaurant]:
    """
    Read restaurants from a snapshot file.
    Returns an empty list if the file is missing or cannot be read.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"No bundled restaurant data found at {path}")
        return []

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return [Restaurant.from_dict(item) for item in data]
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.error(f"Failed to load bundled data from {path}: {e}")
        return []


def write_snapshot(restaurants, path):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([r.to_dict() for r in restaurants], f, indent=2)
    logger.info(f"Saved {len(restaurants)} restaurants to {path} ({path.stat().st_size:,} bytes)")


def generate_snapshot(path, page_size=None):
    """Download the whole dataset, consolidate it and write the snapshot file."""
    page_size = page_size or config.PAGE_SIZE
    logger.info(f"Starting restaurant data generation at {datetime.now().isoformat()}")

    restaurants = []
    dropped = 0
    for offset, row_count, result in consolidate_pages(iter_pages(page_size), page_size):
        restaurants.extend(result.restaurants)
        dropped += result.dropped
        logger.info(f"Offset {offset}: {row_count} rows, {len(restaurants):,} restaurants so far")

    logger.info(f"Finished downloading all restaurants! Total: {len(restaurants):,}, dropped: {dropped:,}")
    write_snapshot(restaurants, path)
    return restaurants


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT)
    output = sys.argv[1] if len(sys.argv) > 1 else config.SNAPSHOT_PATH
    generate_snapshot(output)
