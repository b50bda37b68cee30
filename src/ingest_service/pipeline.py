"""
pipeline.py
------------
Full refresh of the local store from the NYC Open Data API.

Pages are fetched one at a time. Each page is consolidated and written to
the store before the next request goes out, so a refresh that fails half
way leaves every page up to that point in the store. The sync time is only
recorded once the last page has been written.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ingest_service import config
from ingest_service.errors import FetchError, RefreshInProgressError, StorageError, TaskExpiredError
from ingest_service.ingestion.socrata_fetcher import iter_pages
from ingest_service.processing.consolidator import consolidate_pages

logger = logging.getLogger(__name__)


def is_stale(last_sync: Optional[datetime], now: Optional[datetime] = None, max_age: Optional[timedelta] = None) -> bool:
    """Data that was never synced, or synced more than max_age ago, is stale."""
    if last_sync is None:
        return True
    now = now or datetime.now()
    max_age = max_age or timedelta(hours=config.STALE_AFTER_HOURS)
    return now - last_sync > max_age


@dataclass
class RefreshResult:
    restaurants: int
    dropped: int
    pages: int
    duration_seconds: float

    def to_dict(self):
        return {
            "restaurants": self.restaurants,
            "dropped": self.dropped,
            "pages": self.pages,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class RefreshService:
    """
    Runs full refreshes against one store, one at a time.

    Args:
        store: RestaurantStore to write into
        pages: callable(page_size) returning an iterable of (offset, rows);
            defaults to the Socrata fetcher
        page_size: rows per request
    """

    def __init__(self, store, pages=None, page_size=None):
        self.store = store
        self.pages = pages or iter_pages
        self.page_size = page_size or config.PAGE_SIZE
        self._lock = threading.Lock()

        # Status for display
        self.progress_message = ""
        self.total_loaded = 0
        self.error_message: Optional[str] = None
        self.last_result: Optional[RefreshResult] = None

    @property
    def is_loading(self) -> bool:
        return self._lock.locked()

    def refresh(self, cancel_event: Optional[threading.Event] = None) -> RefreshResult:
        """
        Replace the store contents with a fresh download.

        The store-wide refresh claim is held for the whole run, so a refresh
        started by another process over the same database is rejected.

        Raises:
            RefreshInProgressError: another refresh is running, here or in
                another process sharing the store
            TaskExpiredError: cancel_event was set before the last page
            FetchError: the API could not be read after retries
            StorageError: a page could not be written
        """
        if not self._lock.acquire(blocking=False):
            raise RefreshInProgressError("A refresh is already in progress")

        try:
            owner = uuid.uuid4().hex
            if not self.store.claim_refresh(owner):
                raise RefreshInProgressError("Another service is refreshing this store")
            try:
                return self._run(cancel_event)
            finally:
                self.store.release_refresh(owner)
        finally:
            self._lock.release()

    def _pages_until_cancelled(self, cancel_event):
        """The page source, stopped before each further request once cancel_event is set."""
        fetched = 0
        for offset, rows in self.pages(self.page_size):
            fetched += 1
            yield offset, rows
            if cancel_event is not None and cancel_event.is_set():
                raise TaskExpiredError(f"Refresh abandoned after {fetched} pages")

    def _run(self, cancel_event):
        started = time.monotonic()
        logger.info("Starting restaurant data download...")
        self.error_message = None
        self.total_loaded = 0
        self.progress_message = "Starting data download..."

        pages = 0
        dropped = 0
        try:
            self.store.begin_refresh()
            for offset, row_count, result in consolidate_pages(self._pages_until_cancelled(cancel_event), self.page_size):
                pages += 1
                self.total_loaded += self.store.append(result.restaurants)
                dropped += result.dropped
                self.progress_message = f"Downloaded {self.total_loaded:,} restaurants..."
                logger.info(f"Processed offset {offset}: {row_count} rows, {len(result.restaurants)} restaurants, {result.dropped} dropped")

            self.store.mark_synced()

        except TaskExpiredError as e:
            self.error_message = "Refresh stopped before it finished."
            logger.warning(f"{e}; {self.total_loaded:,} restaurants kept")
            raise
        except FetchError as e:
            self.error_message = e.user_message
            logger.error(f"API request failed: {e}")
            raise
        except StorageError as e:
            self.error_message = "Could not save restaurant data."
            logger.error(f"Refresh aborted: {e}")
            raise

        self.last_result = RefreshResult(
            restaurants=self.total_loaded,
            dropped=dropped,
            pages=pages,
            duration_seconds=time.monotonic() - started,
        )
        self.progress_message = f"Successfully downloaded {self.total_loaded:,} restaurants"
        logger.info(f"Finished downloading all restaurants! Total: {self.total_loaded:,} in {self.last_result.duration_seconds:.1f}s")
        return self.last_result

    def refresh_if_stale(self, now: Optional[datetime] = None) -> Optional[RefreshResult]:
        """Refresh only when the last sync is older than the staleness threshold."""
        last_sync = self.store.last_sync_time()
        if not is_stale(last_sync, now):
            logger.info(f"Data is fresh (last sync {last_sync}), skipping refresh")
            return None
        logger.info(f"Data is stale (last sync {last_sync}), refreshing")
        return self.refresh()

    def status(self):
        last_sync = self.store.last_sync_time()
        return {
            "is_loading": self.is_loading,
            "store_refreshing": self.store.is_refreshing(),
            "progress_message": self.progress_message,
            "total_loaded": self.total_loaded,
            "error_message": self.error_message,
            "last_sync_time": last_sync.isoformat() if last_sync else None,
            "is_stale": is_stale(last_sync),
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
