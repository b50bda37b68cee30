"""
Tests for the write service endpoints.
"""

import pytest

from conftest import make_restaurant, make_row
from ingest_service.app import create_app
from ingest_service.errors import DecodeError, RefreshInProgressError
from ingest_service.pipeline import RefreshService


@pytest.fixture
def refresh_service(store):
    def pages(page_size):
        yield 0, [make_row("1"), make_row("2", latitude="0", longitude="0")]
    return RefreshService(store, pages=pages, page_size=1000)


@pytest.fixture
def client(refresh_service):
    app = create_app(refresh_service)
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


def test_refresh_endpoint(client, store):
    response = client.post('/refresh')

    assert response.status_code == 202
    data = response.get_json()
    assert data["result"]["restaurants"] == 1
    assert data["result"]["dropped"] == 1
    assert [r.id for r in store.load_all()] == ["1"]


def test_refresh_reports_readable_fetch_error(client, refresh_service, mocker):
    mocker.patch.object(refresh_service, "refresh",
                        side_effect=DecodeError("bad page", "Data format error: unexpected format."))

    response = client.post('/refresh')

    assert response.status_code == 502
    assert response.get_json() == {"error": "Data format error: unexpected format."}


def test_refresh_conflict(client, refresh_service, mocker):
    mocker.patch.object(refresh_service, "refresh", side_effect=RefreshInProgressError("busy"))

    response = client.post('/refresh')

    assert response.status_code == 409


def test_status_endpoint(client):
    client.post('/refresh')

    data = client.get('/status').get_json()

    assert data["is_loading"] is False
    assert data["last_sync_time"] is not None
    assert data["last_result"]["restaurants"] == 1


def test_clear_endpoint(client, store):
    store.replace_all([make_restaurant("1")])

    response = client.post('/clear')

    assert response.status_code == 200
    assert store.is_empty()
    assert store.last_sync_time() is None


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_unknown_endpoint(client):
    response = client.get('/nope')
    assert response.status_code == 404
    assert "error" in response.get_json()


def test_refresh_rejected_while_another_service_refreshes(client, store):
    store.claim_refresh("other-ingest-process")

    response = client.post('/refresh')

    assert response.status_code == 409
    assert store.is_empty()


def test_clear_rejected_while_another_service_refreshes(client, store):
    store.replace_all([make_restaurant("1")])
    store.claim_refresh("other-ingest-process")

    response = client.post('/clear')

    assert response.status_code == 409
    assert store.count() == 1
