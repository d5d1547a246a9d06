"""REST API endpoints: tracking ids and the derived trip for a date selection."""

import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from date_ranges import TODAY, CustomRange, resolve_date_range
from fixes import Fix
from history import list_tracking_ids
from trips import load_trip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class FixResponse(BaseModel):
    latitude: float
    longitude: float
    timestamp: str
    tracking_id: Optional[str] = None
    address: Optional[str] = None
    battery_percent: Optional[float] = None
    device_info: Optional[dict] = None
    mode: Optional[str] = None


class RoutePoint(BaseModel):
    latitude: float
    longitude: float


class RouteResponse(BaseModel):
    outcome: str
    points: list[RoutePoint]


class TripResponse(BaseModel):
    status: str
    range_start: str
    range_end: str
    distance_km: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    fixes: list[FixResponse]
    stops: list[FixResponse]
    route: RouteResponse


def _fix_response(fix: Fix, mode: Optional[str] = None) -> FixResponse:
    return FixResponse(
        latitude=fix.latitude,
        longitude=fix.longitude,
        timestamp=fix.timestamp.isoformat(),
        tracking_id=fix.tracking_id,
        address=fix.address,
        battery_percent=fix.battery_percent,
        device_info=fix.device_info,
        mode=mode,
    )


# ---------------------------------------------------------------------------
# Tracking ids
# ---------------------------------------------------------------------------

@router.get("/tracking-ids", response_model=list[str])
def get_tracking_ids(db: Session = Depends(get_db)):
    try:
        return list_tracking_ids(db)
    except SQLAlchemyError as e:
        logger.error("Tracking id lookup failed: %s", e)
        raise HTTPException(status_code=503, detail="Location store unavailable")


# ---------------------------------------------------------------------------
# Trip
# ---------------------------------------------------------------------------

@router.get("/trip", response_model=TripResponse)
def get_trip(
    preset: Optional[str] = None,
    start: Optional[datetime.date] = None,
    end: Optional[datetime.date] = None,
    tracking_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Distance, stops, per-fix modes and the display route for one selection.

    Pass either ``preset`` (today / yesterday) or both ``start`` and ``end``.
    Presets resolve in the server's local timezone.
    """
    if start is not None or end is not None:
        if start is None or end is None:
            raise HTTPException(status_code=400, detail="Both start and end are required for a custom range")
        selection = CustomRange(start_day=start, end_day=end)
    else:
        selection = preset or TODAY

    try:
        date_range = resolve_date_range(selection)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    snapshot = load_trip(db, date_range, tracking_id or None)
    logger.info(
        "Trip %s..%s tracking_id=%s: status=%s fixes=%d stops=%d route=%s",
        date_range.start.isoformat(), date_range.end.isoformat(), tracking_id,
        snapshot.status, len(snapshot.fixes), len(snapshot.stops), snapshot.route.outcome,
    )

    return TripResponse(
        status=snapshot.status,
        range_start=date_range.start.isoformat(),
        range_end=date_range.end.isoformat(),
        distance_km=snapshot.distance_km,
        start_time=snapshot.start_time.isoformat() if snapshot.start_time else None,
        end_time=snapshot.end_time.isoformat() if snapshot.end_time else None,
        fixes=[_fix_response(f, m) for f, m in zip(snapshot.fixes, snapshot.modes)],
        stops=[_fix_response(s.fix) for s in snapshot.stops],
        route=RouteResponse(
            outcome=snapshot.route.outcome,
            points=[RoutePoint(latitude=p.latitude, longitude=p.longitude) for p in snapshot.route.points],
        ),
    )
