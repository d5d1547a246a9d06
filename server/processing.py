"""Trip metrics engine: distance, stop detection, travel-mode classification.

Every function here is a pure computation over an already-prepared,
time-ordered list of Fix objects:
1. Total great-circle distance across consecutive fixes
2. Stops: consecutive pairs within ~50m of each other but >= 5 min apart
3. Walking/Vehicle label per pair, from the pair's average speed
"""

import logging
import math
from typing import Optional

from sqlalchemy.orm import Session

from fixes import Fix, StopEvent, is_valid
from models import Config

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Stop detection
STOP_RADIUS_M = 50.0             # max distance between the two fixes of a stop
MIN_STOP_DURATION_S = 300        # 5 minutes

# Mode classification
WALKING_SPEED_KMH = 5.0          # at or above this a pair is labelled Vehicle

WALKING = "Walking"
VEHICLE = "Vehicle"

EARTH_RADIUS_KM = 6371.0


def get_thresholds(db: Session) -> dict:
    """Read algorithm thresholds from the Config table, falling back to module defaults."""
    defaults = {
        "stop_radius_m": STOP_RADIUS_M,
        "min_stop_duration_s": MIN_STOP_DURATION_S,
        "walking_speed_kmh": WALKING_SPEED_KMH,
    }
    rows = db.query(Config).filter(Config.key.in_(defaults.keys())).all()
    for row in rows:
        try:
            defaults[row.key] = float(row.value)
        except ValueError:
            logger.warning("Ignoring non-numeric threshold %s=%r", row.key, row.value)
    return defaults


# ---------------------------------------------------------------------------
# Geo math
# ---------------------------------------------------------------------------

def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two WGS-84 points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in metres between two WGS-84 points."""
    return haversine_km(lat1, lon1, lat2, lon2) * 1000.0


def fix_distance_km(a: Fix, b: Fix) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def elapsed_seconds(previous: Fix, current: Fix) -> float:
    return (current.timestamp - previous.timestamp).total_seconds()


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------

def total_distance_km(fixes: list[Fix]) -> float:
    """Sum of great-circle distances over consecutive pairs.

    A pair with an invalid member is skipped rather than treated as an error.
    """
    if not fixes or len(fixes) < 2:
        return 0.0

    distance = 0.0
    for a, b in zip(fixes, fixes[1:]):
        if not (is_valid(a) and is_valid(b)):
            continue
        distance += fix_distance_km(a, b)
    return distance


def format_distance(km: float) -> str:
    """Fixed two-decimal kilometres, e.g. ``"12.35"``."""
    return f"{km:.2f}"


def total_distance(fixes: list[Fix]) -> str:
    """Total distance of the trip in km, formatted to two decimals."""
    return format_distance(total_distance_km(fixes))


# ---------------------------------------------------------------------------
# Stop detection
# ---------------------------------------------------------------------------

def is_stop(previous: Fix, current: Fix, thresholds: dict | None = None) -> bool:
    """A pair is a stop when it is close in space but far apart in time.

    Both bounds are inclusive.
    """
    radius = (thresholds or {}).get("stop_radius_m", STOP_RADIUS_M)
    min_duration = (thresholds or {}).get("min_stop_duration_s", MIN_STOP_DURATION_S)

    distance_m = fix_distance_km(previous, current) * 1000.0
    return distance_m <= radius and elapsed_seconds(previous, current) >= min_duration


def detect_stops(fixes: list[Fix], thresholds: dict | None = None) -> list[StopEvent]:
    """Flag every consecutive pair that qualifies as a stop.

    Each qualifying pair yields one StopEvent wrapping its later fix, so a long
    dwell sampled several times produces several events.
    """
    if len(fixes) < 2:
        return []

    return [
        StopEvent(fix=current)
        for previous, current in zip(fixes, fixes[1:])
        if is_stop(previous, current, thresholds)
    ]


# ---------------------------------------------------------------------------
# Speed / mode classification
# ---------------------------------------------------------------------------

def speed_kmh(previous: Fix, current: Fix) -> float:
    """Average speed between two fixes in km/h; 0 for zero or negative elapsed time."""
    hours = elapsed_seconds(previous, current) / 3600.0
    if hours <= 0:
        return 0.0
    return fix_distance_km(previous, current) / hours


def classify_mode(previous: Fix, current: Fix, thresholds: dict | None = None) -> str:
    limit = (thresholds or {}).get("walking_speed_kmh", WALKING_SPEED_KMH)
    return WALKING if speed_kmh(previous, current) < limit else VEHICLE


def travel_modes(fixes: list[Fix], thresholds: dict | None = None) -> list[Optional[str]]:
    """Mode label for each fix relative to its predecessor (None for the first)."""
    if not fixes:
        return []
    return [None] + [
        classify_mode(previous, current, thresholds)
        for previous, current in zip(fixes, fixes[1:])
    ]
