"""Shared pytest fixtures: in-memory DB, stored location rows, session factory."""

import sys
import os

# Add server root to path so imports work
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from models import Config, Location  # noqa: F401


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite database for each test."""
    # StaticPool so worker threads see the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db(session_factory):
    """Provide a DB session, closed after each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def populated_db(db):
    """A DB holding the van and bike traces plus the rows that must be filtered."""
    from tests.gps_test_fixtures import STORED_ROWS

    for pt in STORED_ROWS:
        db.add(Location(**pt))
    db.commit()
    return db
