"""SQLAlchemy models for stored location fixes and configuration."""

from sqlalchemy import Column, DateTime, Float, Integer, String, Text

from database import Base


class Location(Base):
    """One raw fix as written by the tracking app.

    Coordinates are nullable because the tracking app occasionally writes rows
    without a position; those rows are dropped on read, never on write.
    Timestamps are naive UTC.
    """

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    tracking_id = Column(String, nullable=True, index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    address = Column(Text, nullable=True)
    battery_percent = Column(Float, nullable=True)
    device_info = Column(Text, nullable=True)


class Config(Base):
    """Key/value store for algorithm thresholds and display settings."""

    __tablename__ = "config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
