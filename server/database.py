"""Database setup and session management using SQLAlchemy + SQLite."""

import logging
import os

logger = logging.getLogger(__name__)

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///locations.db")

engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables, run migrations, and seed default configuration."""
    from models import Config, Location  # noqa: F401

    logger.info("Initializing database at %s", DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    _migrate()
    _seed_config()


def _migrate():
    """Add any missing columns to existing tables."""
    insp = inspect(engine)
    if "locations" in insp.get_table_names():
        columns = {c["name"] for c in insp.get_columns("locations")}
        for name, ddl in (
            ("battery_percent", "FLOAT"),
            ("device_info", "TEXT"),
        ):
            if name not in columns:
                logger.info("Migrating: adding %s column to locations table", name)
                with engine.begin() as conn:
                    conn.execute(text(f"ALTER TABLE locations ADD COLUMN {name} {ddl}"))


# Default algorithm thresholds (must match processing.py module-level constants)
DEFAULT_THRESHOLDS = {
    "stop_radius_m": "50.0",
    "min_stop_duration_s": "300",
    "walking_speed_kmh": "5.0",
}


DEFAULT_SETTINGS = {
    "timezone": "UTC",
    "matching_profile": "driving",
}


def get_setting(db, key: str) -> str:
    """Read a display/integration setting, falling back to DEFAULT_SETTINGS."""
    from models import Config

    row = db.query(Config).filter(Config.key == key).first()
    return row.value if row else DEFAULT_SETTINGS[key]


def _seed_config():
    """Insert default algorithm thresholds and settings if not present."""
    from models import Config

    db = SessionLocal()
    try:
        for key, value in {**DEFAULT_THRESHOLDS, **DEFAULT_SETTINGS}.items():
            if not db.query(Config).filter(Config.key == key).first():
                db.add(Config(key=key, value=value))
        db.commit()
    finally:
        db.close()
