"""
models.py
----------
Defines the local restaurant tables using SQLAlchemy ORM.
Each class here represents one table in the database.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, JSON

from ingest_service.models import Restaurant, Violation
from .session import Base


class RestaurantRow(Base):
    """
    One consolidated restaurant (one row per camis).

    The violation history is small and always read together with the
    restaurant, so it is stored as a JSON list on the same row.
    """
    __tablename__ = "restaurants"

    # camis from the NYC dataset
    id = Column(String(32), primary_key=True)

    name = Column(String(255), nullable=False)
    grade = Column(String(8), nullable=False, default="N/A")
    food_type = Column(String(128), nullable=False, default="Unknown")
    address = Column(String(255), nullable=False)
    borough = Column(String(64), nullable=False, index=True)
    zip_code = Column(String(16), nullable=False, default="")

    # Coordinates for map pins and proximity search (never zero)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    last_updated = Column(DateTime, nullable=False)
    phone = Column(String(32))
    cuisine = Column(String(128))
    inspection_date = Column(DateTime)
    score = Column(Integer, nullable=False, default=0)

    # List of violation dictionaries, same shape as Violation.to_dict()
    violations = Column(JSON, nullable=False, default=list)

    @classmethod
    def from_restaurant(cls, restaurant: Restaurant) -> "RestaurantRow":
        return cls(
            id=restaurant.id,
            name=restaurant.name,
            grade=restaurant.grade,
            food_type=restaurant.food_type,
            address=restaurant.address,
            borough=restaurant.borough,
            zip_code=restaurant.zip_code,
            latitude=restaurant.latitude,
            longitude=restaurant.longitude,
            last_updated=restaurant.last_updated,
            phone=restaurant.phone,
            cuisine=restaurant.cuisine,
            inspection_date=restaurant.inspection_date,
            score=restaurant.score,
            violations=[v.to_dict() for v in restaurant.violations],
        )

    def to_restaurant(self) -> Restaurant:
        return Restaurant(
            id=self.id,
            name=self.name,
            grade=self.grade,
            food_type=self.food_type,
            address=self.address,
            borough=self.borough,
            zip_code=self.zip_code,
            latitude=self.latitude,
            longitude=self.longitude,
            last_updated=self.last_updated,
            phone=self.phone,
            cuisine=self.cuisine,
            inspection_date=self.inspection_date,
            score=self.score or 0,
            violations=[Violation.from_dict(v) for v in self.violations or []],
        )


class SyncState(Base):
    """
    Single-row table holding the time of the last successful full refresh
    and the claim of the refresh currently writing to the store, if any.
    """
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True)
    last_sync_time = Column(DateTime)

    # Set while a refresh owns the store; shared by every process using it
    refresh_owner = Column(String(64))
    refresh_started_at = Column(DateTime)


def create_tables(engine):
    """Create all tables if not present."""
    Base.metadata.create_all(engine)
