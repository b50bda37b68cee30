"""
Tests for the full refresh pipeline.
"""

import threading
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from conftest import make_restaurant, make_row
from ingest_service.db.session import make_session_factory
from ingest_service.errors import (
    NetworkError,
    RefreshInProgressError,
    StorageError,
    TaskExpiredError,
)
from ingest_service.pipeline import RefreshService, is_stale
from ingest_service.store.restaurant_store import RestaurantStore


def pages_from(*pages):
    """A page source that serves the given row lists at offsets 0, n, 2n, ..."""
    def source(page_size):
        for index, rows in enumerate(pages):
            yield index * page_size, rows
    return source


def test_is_stale():
    now = datetime(2025, 7, 12, 12, 0)
    assert is_stale(None, now)
    assert not is_stale(now - timedelta(hours=23), now)
    assert is_stale(now - timedelta(hours=25), now)
    assert not is_stale(now - timedelta(hours=2), now, max_age=timedelta(hours=4))


def test_refresh_replaces_store_contents(store):
    store.replace_all([make_restaurant("old")], synced_at=datetime(2020, 1, 1))
    service = RefreshService(store, pages=pages_from(
        [make_row("1"), make_row("2")],
        [make_row("3"), make_row("4", latitude="0", longitude="0")],
        [make_row("5")],
    ), page_size=2)

    result = service.refresh()

    assert sorted(r.id for r in store.load_all()) == ["1", "2", "3", "5"]
    assert result.restaurants == 4
    assert result.dropped == 1
    assert result.pages == 3
    assert store.last_sync_time() > datetime(2020, 1, 1)
    assert service.error_message is None
    assert service.progress_message == "Successfully downloaded 4 restaurants"
    assert not service.is_loading


def test_fetch_failure_keeps_checkpointed_pages(store):
    """Pages written before a failure stay; the sync time is not advanced."""
    def failing_pages(page_size):
        yield 0, [make_row("1"), make_row("2")]
        raise NetworkError("offline", "No internet connection. Please check your network.")

    store.replace_all([make_restaurant("old")], synced_at=datetime(2020, 1, 1))
    service = RefreshService(store, pages=failing_pages, page_size=2)

    with pytest.raises(NetworkError):
        service.refresh()

    # "2" is held back waiting for the next page, only "1" was written
    assert [r.id for r in store.load_all()] == ["1"]
    assert store.last_sync_time() == datetime(2020, 1, 1)
    assert service.error_message == "No internet connection. Please check your network."
    assert not store.is_refreshing()


def test_storage_failure_aborts_refresh(store):
    store.append = MagicMock(side_effect=StorageError("disk full"))
    service = RefreshService(store, pages=pages_from([make_row("1")]), page_size=2)

    with pytest.raises(StorageError):
        service.refresh()

    assert service.error_message == "Could not save restaurant data."
    assert store.last_sync_time() is None


def test_overlapping_refresh_is_rejected(store):
    """A second refresh while one is running raises instead of starting."""
    started = threading.Event()
    release = threading.Event()

    def slow_pages(page_size):
        started.set()
        release.wait(5)
        yield 0, [make_row("1")]

    service = RefreshService(store, pages=slow_pages, page_size=2)
    worker = threading.Thread(target=service.refresh)
    worker.start()
    try:
        assert started.wait(5)
        assert service.is_loading
        with pytest.raises(RefreshInProgressError):
            service.refresh()
    finally:
        release.set()
        worker.join(5)

    assert not service.is_loading
    assert [r.id for r in store.load_all()] == ["1"]


def test_cancel_event_abandons_refresh(store):
    """Once the cancellation token is set the refresh stops after the current page."""
    cancel = threading.Event()

    def pages(page_size):
        yield 0, [make_row("1"), make_row("2")]
        cancel.set()
        yield 2, [make_row("3"), make_row("4")]
        yield 4, [make_row("5")]

    service = RefreshService(store, pages=pages, page_size=2)

    with pytest.raises(TaskExpiredError):
        service.refresh(cancel_event=cancel)

    assert sorted(r.id for r in store.load_all()) == ["1", "2", "3"]
    assert store.last_sync_time() is None


def test_refresh_if_stale(store):
    service = RefreshService(store, pages=pages_from([make_row("1")]), page_size=2)

    store.mark_synced(datetime.now())
    assert service.refresh_if_stale() is None

    store.mark_synced(datetime.now() - timedelta(hours=30))
    result = service.refresh_if_stale()
    assert result is not None
    assert result.restaurants == 1


def test_status(store):
    service = RefreshService(store, pages=pages_from([make_row("1")]), page_size=2)
    service.refresh()

    status = service.status()

    assert status["is_loading"] is False
    assert status["store_refreshing"] is False
    assert status["is_stale"] is False
    assert status["last_sync_time"] is not None
    assert status["last_result"]["restaurants"] == 1


def test_refresh_from_another_service_is_rejected(engine, store):
    """A second service sharing the database cannot start a refresh mid-way through the first."""
    started = threading.Event()
    release = threading.Event()

    def slow_pages(page_size):
        yield 0, [make_row("1"), make_row("2")]
        started.set()
        release.wait(5)
        yield 2, [make_row("3")]

    first = RefreshService(store, pages=slow_pages, page_size=2)
    other_store = RestaurantStore(make_session_factory(engine))
    second = RefreshService(other_store, pages=pages_from([make_row("9")]), page_size=2)

    worker = threading.Thread(target=first.refresh)
    worker.start()
    try:
        assert started.wait(5)
        with pytest.raises(RefreshInProgressError):
            second.refresh()
        assert not second.is_loading
    finally:
        release.set()
        worker.join(5)

    assert sorted(r.id for r in store.load_all()) == ["1", "2", "3"]
    assert store.last_sync_time() is not None
    assert not store.is_refreshing()

    # Once the first refresh is done the other service can run
    assert second.refresh().restaurants == 1


def test_cancel_during_last_page_still_completes(store):
    """A cancel that arrives with the final page does not throw away a finished download."""
    cancel = threading.Event()

    def pages(page_size):
        cancel.set()
        yield 0, [make_row("1")]

    service = RefreshService(store, pages=pages, page_size=2)

    result = service.refresh(cancel_event=cancel)

    assert result.restaurants == 1
    assert [r.id for r in store.load_all()] == ["1"]
    assert store.last_sync_time() is not None
    assert service.error_message is None
