"""
session.py
-----------
Creates the database engine and session factory for SQLAlchemy.
This connects to the local restaurant database using DATABASE_URL
(an embedded SQLite file unless configured otherwise).
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from ingest_service import config

# Base class for ORM models to inherit from (like RestaurantRow)
Base = declarative_base()


def make_engine(url=None):
    """
    Create a SQLAlchemy engine for the given URL (defaults to DATABASE_URL).
    SQLite connections are shared between the web server threads and the
    background refresh thread.
    """
    url = url or config.DATABASE_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args)


def make_session_factory(engine):
    """Session factory bound to engine; objects stay readable after commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


# Engine and session factory for the configured database
engine = make_engine()
SessionLocal = make_session_factory(engine)
