"""Tests for REST API endpoints using the ASGI test client."""

import datetime
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db as original_get_db
from fixes import SnappedPoint
from models import Location
from snapping import FALLBACK, SnapResult
from tests.gps_test_fixtures import BIKE, BIKE_TRACE, EXPECTED_STOP_COUNT, GPS_TRACE, STORED_ROWS, VAN


def _raw_route(fixes, profile=None):
    return SnapResult(points=tuple(SnappedPoint(f.latitude, f.longitude) for f in fixes), outcome=FALLBACK)


# ---------------------------------------------------------------------------
# Test setup: override get_db using the original function reference as key
# ---------------------------------------------------------------------------

@pytest.fixture
def client():
    """Create a test FastAPI app with an in-memory database holding the fixture rows."""
    # Use StaticPool so all threads/connections share the same in-memory DB
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestSession = sessionmaker(bind=engine)

    def test_get_db():
        session = TestSession()
        try:
            yield session
        finally:
            session.close()

    from api import router

    app = FastAPI()
    app.dependency_overrides[original_get_db] = test_get_db
    app.include_router(router)

    session = TestSession()
    for pt in STORED_ROWS:
        session.add(Location(**pt))
    session.commit()
    session.close()

    return TestClient(app)


# ---------------------------------------------------------------------------
# Tracking id endpoint tests
# ---------------------------------------------------------------------------

class TestTrackingIds:
    def test_lists_distinct_ids(self, client):
        resp = client.get("/api/tracking-ids")
        assert resp.status_code == 200
        assert resp.json() == [BIKE, VAN]

    @patch("api.list_tracking_ids", side_effect=OperationalError("SELECT", {}, Exception("locked")))
    def test_store_failure(self, mock_list, client):
        resp = client.get("/api/tracking-ids")
        assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Trip endpoint tests
# ---------------------------------------------------------------------------

class TestTripEndpoint:
    @patch("trips.snap_to_road", side_effect=_raw_route)
    def test_custom_range_for_one_tracker(self, mock_snap, client):
        resp = client.get("/api/trip", params={"start": "2024-03-14", "end": "2024-03-14", "tracking_id": VAN})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert len(data["fixes"]) == len(GPS_TRACE)
        assert len(data["stops"]) == EXPECTED_STOP_COUNT
        assert data["fixes"][0]["mode"] is None
        assert data["fixes"][5]["mode"] == "Vehicle"
        assert data["fixes"][-1]["mode"] == "Walking"
        assert data["range_start"] == "2024-03-14T00:00:00+00:00"
        assert data["range_end"] == "2024-03-14T23:59:59.999000+00:00"
        assert data["start_time"] == "2024-03-14T08:00:00+00:00"
        assert data["route"]["outcome"] == "fallback"
        assert len(data["route"]["points"]) == len(GPS_TRACE)
        assert 4.45 < float(data["distance_km"]) < 4.55

    @patch("trips.snap_to_road", side_effect=_raw_route)
    def test_all_trackers(self, mock_snap, client):
        resp = client.get("/api/trip", params={"start": "2024-03-14", "end": "2024-03-14"})
        assert resp.status_code == 200
        assert len(resp.json()["fixes"]) == len(GPS_TRACE) + len(BIKE_TRACE) + 1

    @patch("trips.snap_to_road", side_effect=_raw_route)
    def test_multi_day_range_includes_previous_day(self, mock_snap, client):
        resp = client.get("/api/trip", params={"start": "2024-03-13", "end": "2024-03-14", "tracking_id": VAN})
        assert len(resp.json()["fixes"]) == len(GPS_TRACE) + 1

    @patch("trips.snap_to_road")
    def test_empty_range(self, mock_snap, client):
        resp = client.get("/api/trip", params={"start": "2023-01-01", "end": "2023-01-02"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "empty"
        assert data["distance_km"] == "0.00"
        assert data["fixes"] == []
        assert data["route"]["points"] == []
        mock_snap.assert_not_called()

    @patch("trips.snap_to_road")
    def test_today_preset(self, mock_snap, client):
        resp = client.get("/api/trip", params={"preset": "today"})
        assert resp.status_code == 200
        data = resp.json()
        today = datetime.datetime.now().astimezone().date().isoformat()
        assert data["range_start"].startswith(today)
        assert data["status"] == "empty"

    def test_unknown_preset(self, client):
        resp = client.get("/api/trip", params={"preset": "fortnight"})
        assert resp.status_code == 400

    def test_inverted_custom_range(self, client):
        resp = client.get("/api/trip", params={"start": "2024-03-14", "end": "2024-03-10"})
        assert resp.status_code == 400

    def test_half_open_custom_range(self, client):
        resp = client.get("/api/trip", params={"start": "2024-03-14"})
        assert resp.status_code == 400

    def test_malformed_date(self, client):
        resp = client.get("/api/trip", params={"start": "14/03/2024", "end": "2024-03-14"})
        assert resp.status_code == 422
