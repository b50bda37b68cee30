"""
Shared fixtures: an in-memory SQLite store and builders for inspection rows
and restaurants.
"""

import os

# Keep the module-level engines in the app modules off the real database file
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ingest_service.db.session import make_session_factory
from ingest_service.models import InspectionRecord, Restaurant
from ingest_service.store.restaurant_store import RestaurantStore


@pytest.fixture
def engine():
    """In-memory database shared by every session and thread in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return RestaurantStore(make_session_factory(engine), engine)


def make_row(camis="123", **overrides):
    """One raw inspection row with valid Manhattan coordinates."""
    values = {
        "camis": camis,
        "dba": f"Restaurant {camis}",
        "boro": "Manhattan",
        "building": "1",
        "street": "MAIN STREET",
        "zipcode": "10001",
        "phone": "2125550101",
        "cuisine_description": "American",
        "inspection_date": "2024-01-01T00:00:00.000",
        "score": "10",
        "grade": "A",
        "latitude": "40.7505",
        "longitude": "-73.9934",
    }
    values.update(overrides)
    return InspectionRecord(**values)


def make_restaurant(id="1", name="Joe's Pizza", borough="Manhattan", latitude=40.7505, longitude=-73.9934, **overrides):
    values = {
        "id": id,
        "name": name,
        "grade": "A",
        "food_type": "Pizza",
        "address": "123 Main St",
        "borough": borough,
        "zip_code": "10001",
        "latitude": latitude,
        "longitude": longitude,
        "last_updated": datetime(2025, 7, 12, 4, 0, 0),
        "phone": "212-555-0101",
        "cuisine": "Italian",
        "score": 8,
    }
    values.update(overrides)
    return Restaurant(**values)


@pytest.fixture
def sample_restaurants():
    """A handful of restaurants across three boroughs."""
    return [
        make_restaurant("1", "Joe's Pizza", "Manhattan", 40.7505, -73.9934, cuisine="Pizza"),
        make_restaurant("2", "Sushi Palace", "Manhattan", 40.7205, -74.0050, cuisine="Japanese",
                        food_type="Japanese", address="456 Broadway", score=7),
        make_restaurant("3", "Burger Joint", "Manhattan", 40.7625, -73.9730, cuisine="American",
                        food_type="American", address="789 5th Ave", grade="B", score=12),
        make_restaurant("4", "Pizza", "Manhattan", 40.7510, -73.9940, cuisine="Pizza"),
        make_restaurant("5", "Brooklyn Pizza Co", "Brooklyn", 40.6782, -73.9442, cuisine="Pizza"),
        make_restaurant("6", "Bronx Diner", "Bronx", 40.8448, -73.8648, cuisine="American",
                        address="12 PIZZA LANE", grade="C", score=30),
    ]
