"""Value types for GPS fixes and the records derived from them.

Rows coming out of the store are normalized here into immutable ``Fix``
objects before any trip computation sees them.
"""

import datetime
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Fix:
    """A single geostamped sample of a tracked entity.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        timestamp: Timezone-aware time of the sample.
        tracking_id: Identifier of the tracked person or vehicle.
        address: Reverse-geocoded address stored with the sample, if any.
        battery_percent: Device battery level at sample time, if reported.
        device_info: Device telemetry, always a dict or None.
    """

    latitude: float
    longitude: float
    timestamp: datetime.datetime
    tracking_id: Optional[str] = None
    address: Optional[str] = None
    battery_percent: Optional[float] = None
    device_info: Optional[dict] = None


@dataclass(frozen=True, slots=True)
class StopEvent:
    """The later fix of a pair that stayed put long enough to count as a stop."""

    fix: Fix


@dataclass(frozen=True, slots=True)
class SnappedPoint:
    """A bare coordinate of the display route line."""

    latitude: float
    longitude: float


def _is_coordinate(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def is_valid(fix: Any) -> bool:
    """True when latitude and longitude are present, numeric and not NaN."""
    if fix is None:
        return False
    return _is_coordinate(getattr(fix, "latitude", None)) and _is_coordinate(
        getattr(fix, "longitude", None)
    )


def normalize_device_info(raw: Any) -> Optional[dict]:
    """Coerce a telemetry payload into a dict, or None when it can't be read.

    The store holds either a JSON-encoded object or structured data; anything
    else (free text, arrays, scalars, broken JSON) is treated as absent.
    """
    if raw is None:
        return None
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring undecodable device_info payload: %.60s", raw)
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


def normalize_battery(raw: Any) -> Optional[float]:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def as_utc(ts: datetime.datetime) -> datetime.datetime:
    """Treat naive datetimes as UTC (the store's convention) and convert aware ones."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc)


def fix_from_row(row: Any) -> Optional[Fix]:
    """Build a Fix from a Location row (or any object with the same attributes).

    Returns None for rows that fail the coordinate check.
    """
    if not is_valid(row) or getattr(row, "timestamp", None) is None:
        return None
    return Fix(
        latitude=float(row.latitude),
        longitude=float(row.longitude),
        timestamp=as_utc(row.timestamp),
        tracking_id=getattr(row, "tracking_id", None),
        address=getattr(row, "address", None) or None,
        battery_percent=normalize_battery(getattr(row, "battery_percent", None)),
        device_info=normalize_device_info(getattr(row, "device_info", None)),
    )


def prepare_fixes(fixes) -> list[Fix]:
    """Drop invalid fixes and order the rest by timestamp.

    The sort is stable, so rows sharing a timestamp keep the store's order.
    """
    fixes = list(fixes)
    valid = [f for f in fixes if is_valid(f)]
    dropped = len(fixes) - len(valid)
    if dropped:
        logger.info("Dropped %d fixes with missing or non-numeric coordinates", dropped)
    return sorted(valid, key=lambda f: f.timestamp)
