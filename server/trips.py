"""One retrieval-and-derive cycle for the map: fixes in, trip snapshot out.

A TripSnapshot is built once per filter change and never modified; the page
swaps in a new one when the next cycle finishes.
"""

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_setting
from date_ranges import DateRange
from fixes import Fix, StopEvent, prepare_fixes
from history import fetch_fixes
from processing import detect_stops, get_thresholds, total_distance, travel_modes
from snapping import TOO_FEW_POINTS, SnapResult, snap_to_road

logger = logging.getLogger(__name__)

LOADING = "loading"
OK = "ok"
EMPTY = "empty"
ERROR = "error"


@dataclass(frozen=True, slots=True)
class TripSnapshot:
    status: str
    fixes: tuple[Fix, ...] = ()
    route: SnapResult = field(default_factory=lambda: SnapResult(points=(), outcome=TOO_FEW_POINTS))
    distance_km: str = "0.00"
    stops: tuple[StopEvent, ...] = ()
    modes: tuple[Optional[str], ...] = ()
    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None

    @property
    def has_route(self) -> bool:
        return bool(self.route.points)


def cleared(status: str) -> TripSnapshot:
    """A snapshot with every derived value reset."""
    return TripSnapshot(status=status)


def build_snapshot(fixes: list[Fix], route: SnapResult, thresholds: dict | None = None) -> TripSnapshot:
    """Derive every trip metric from the raw fixes; the route is carried alongside."""
    if not fixes:
        return cleared(EMPTY)
    return TripSnapshot(
        status=OK,
        fixes=tuple(fixes),
        route=route,
        distance_km=total_distance(fixes),
        stops=tuple(detect_stops(fixes, thresholds)),
        modes=tuple(travel_modes(fixes, thresholds)),
        start_time=fixes[0].timestamp,
        end_time=fixes[-1].timestamp,
    )


def load_trip(
    db: Session,
    date_range: DateRange,
    tracking_id: Optional[str] = None,
    thresholds: dict | None = None,
) -> TripSnapshot:
    """Fetch, snap and analyse the fixes for one filter selection.

    Store errors produce an ERROR snapshot instead of propagating.
    """
    try:
        if thresholds is None:
            thresholds = get_thresholds(db)
        profile = get_setting(db, "matching_profile")
        fixes = prepare_fixes(fetch_fixes(db, date_range, tracking_id))
    except SQLAlchemyError:
        logger.exception("Failed to fetch fixes for %s..%s", date_range.start, date_range.end)
        return cleared(ERROR)

    if not fixes:
        logger.info("No fixes between %s and %s (tracking_id=%s)", date_range.start, date_range.end, tracking_id)
        return cleared(EMPTY)

    route = snap_to_road(fixes, profile=profile)
    return build_snapshot(fixes, route, thresholds)


class TripLoader:
    """Runs load cycles off the event loop and drops results that went stale.

    Every call to ``load`` (or ``invalidate``) bumps a generation counter; a
    cycle whose generation is no longer current when it finishes returns None,
    so a slow earlier request can never overwrite a newer one.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._generation = 0

    def invalidate(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _run(self, date_range: DateRange, tracking_id: Optional[str]) -> TripSnapshot:
        db = self._session_factory()
        try:
            return load_trip(db, date_range, tracking_id)
        finally:
            db.close()

    async def load(self, date_range: DateRange, tracking_id: Optional[str] = None) -> Optional[TripSnapshot]:
        generation = self.invalidate()
        snapshot = await asyncio.to_thread(self._run, date_range, tracking_id)
        if not self.is_current(generation):
            logger.debug("Discarding superseded trip load (generation %d)", generation)
            return None
        return snapshot
