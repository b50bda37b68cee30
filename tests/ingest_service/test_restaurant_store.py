"""
Tests for the local restaurant store (in-memory SQLite).
"""

import json
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_restaurant
from ingest_service.db.session import make_session_factory
from ingest_service.errors import StorageError
from ingest_service.models import Violation
from ingest_service.store.restaurant_store import RestaurantStore


def test_replace_all_round_trip(store):
    """Restaurants come back with every field, including violations."""
    violation = Violation(id="04L2024-01-01", code="04L", description="Mice",
                          critical_flag="Critical", inspection_date=datetime(2024, 1, 1))
    restaurant = make_restaurant("123", inspection_date=datetime(2024, 6, 1), violations=[violation])

    store.replace_all([restaurant], synced_at=datetime(2025, 1, 1, 8, 0))

    loaded = store.load_all()
    assert loaded == [restaurant]
    assert loaded[0].violations[0].is_critical
    assert store.last_sync_time() == datetime(2025, 1, 1, 8, 0)


def test_replace_all_replaces_previous_set(store):
    store.replace_all([make_restaurant("1"), make_restaurant("2")])
    store.replace_all([make_restaurant("3")])

    assert [r.id for r in store.load_all()] == ["3"]
    assert store.count() == 1


def test_paged_refresh_writes(store):
    """begin_refresh clears rows but keeps the sync time until mark_synced."""
    store.replace_all([make_restaurant("old")], synced_at=datetime(2025, 1, 1))

    store.begin_refresh()
    assert store.is_empty()
    assert store.last_sync_time() == datetime(2025, 1, 1)

    assert store.append([make_restaurant("1"), make_restaurant("2")]) == 2
    assert store.append([make_restaurant("3")]) == 1
    store.mark_synced(datetime(2025, 1, 2))

    assert sorted(r.id for r in store.load_all()) == ["1", "2", "3"]
    assert store.last_sync_time() == datetime(2025, 1, 2)


def test_get_by_id(store):
    store.replace_all([make_restaurant("1", name="Joe's Pizza")])

    assert store.get("1").name == "Joe's Pizza"
    assert store.get("missing") is None


def test_clear_removes_everything(store):
    store.replace_all([make_restaurant("1")])

    store.clear()

    assert store.load_all() == []
    assert store.last_sync_time() is None


def test_duplicate_ids_raise_storage_error(store):
    """A failed write is rolled back and reported as a StorageError."""
    store.replace_all([make_restaurant("1")])

    with pytest.raises(StorageError):
        store.append([make_restaurant("1")])

    assert store.count() == 1


def test_read_failure_raises_storage_error(store):
    with patch.object(store, "session_factory") as factory:
        factory.return_value.scalars.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))
        with pytest.raises(StorageError):
            store.load_all()


def test_bootstrap_from_snapshot(store, tmp_path):
    """An untouched store is seeded from the bundled snapshot file."""
    snapshot = tmp_path / "restaurants_data.json"
    snapshot.write_text(json.dumps([
        make_restaurant("1").to_dict(),
        make_restaurant("2", name="Sushi Palace").to_dict(),
    ]))

    assert store.bootstrap_from_snapshot(snapshot) == 2
    assert sorted(r.id for r in store.load_all()) == ["1", "2"]
    assert store.last_sync_time() is not None


def test_bootstrap_skipped_when_data_exists(store, tmp_path):
    snapshot = tmp_path / "restaurants_data.json"
    snapshot.write_text(json.dumps([make_restaurant("1").to_dict()]))
    store.replace_all([make_restaurant("9")])

    assert store.bootstrap_from_snapshot(snapshot) == 0
    assert [r.id for r in store.load_all()] == ["9"]


def test_bootstrap_with_missing_or_broken_file(store, tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    assert store.bootstrap_from_snapshot(tmp_path / "missing.json") == 0
    assert store.bootstrap_from_snapshot(broken) == 0
    assert store.is_empty()


def test_bundled_snapshot_loads(store):
    """The snapshot shipped in data/ is readable and has valid coordinates."""
    from ingest_service import config

    assert store.bootstrap_from_snapshot(config.SNAPSHOT_PATH) > 0
    assert all(r.latitude != 0 and r.longitude != 0 for r in store.load_all())


def test_refresh_claim_is_exclusive(store):
    """Only one owner at a time can hold the store-wide refresh claim."""
    assert store.claim_refresh("ingest-a")
    assert store.is_refreshing()
    assert not store.claim_refresh("ingest-b")

    # Releasing someone else's claim does nothing
    store.release_refresh("ingest-b")
    assert store.is_refreshing()

    store.release_refresh("ingest-a")
    assert not store.is_refreshing()
    assert store.claim_refresh("ingest-b")


def test_refresh_claim_shared_between_store_objects(engine, store):
    """Two services pointing at the same database see each other's claim."""
    other = RestaurantStore(make_session_factory(engine))

    assert store.claim_refresh("ingest-a")
    assert other.is_refreshing()
    assert not other.claim_refresh("ingest-b")


def test_stale_refresh_claim_is_taken_over(store):
    store.claim_refresh("crashed", now=datetime(2025, 1, 1, 0, 0))

    assert not store.claim_refresh("ingest-b", now=datetime(2025, 1, 1, 1, 0), stale_after=timedelta(hours=2))
    assert store.claim_refresh("ingest-b", now=datetime(2025, 1, 1, 3, 0), stale_after=timedelta(hours=2))


def test_clear_keeps_refresh_claim(store):
    store.replace_all([make_restaurant("1")])
    store.claim_refresh("ingest-a")

    store.clear()

    assert store.is_empty()
    assert store.last_sync_time() is None
    assert store.is_refreshing()
