"""Road snapping for the display route via the Mapbox Map Matching API.

The snapped line is for drawing only. It never replaces or annotates the
fixes: distance, stops, modes and popups are all computed from the raw fixes.
If matching is unavailable for any reason the route falls back to the raw
coordinates so there is always a line to draw.
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Optional

import requests

from fixes import Fix, SnappedPoint

logger = logging.getLogger(__name__)

DEFAULT_MATCHING_URL = "https://api.mapbox.com/matching/v5/mapbox"
DEFAULT_PROFILE = "driving"
DEFAULT_TIMEOUT_S = 10.0

# Mapbox rejects match requests with more coordinates than this
MAX_COORDINATES_PER_REQUEST = 100

SNAPPED = "snapped"
FALLBACK = "fallback"
TOO_FEW_POINTS = "too_few_points"


class MatchingError(Exception):
    """The matching service could not produce a usable geometry."""


@dataclass(frozen=True, slots=True)
class SnapResult:
    points: tuple[SnappedPoint, ...]
    outcome: str

    @property
    def snapped(self) -> bool:
        return self.outcome == SNAPPED


def _strip(fixes: list[Fix]) -> tuple[SnappedPoint, ...]:
    return tuple(SnappedPoint(latitude=f.latitude, longitude=f.longitude) for f in fixes)


def _windows(fixes: list[Fix], size: int = MAX_COORDINATES_PER_REQUEST) -> list[list[Fix]]:
    """Split into request-sized windows; neighbouring windows share one fix."""
    if len(fixes) <= size:
        return [fixes]
    windows = []
    start = 0
    while start < len(fixes) - 1:
        windows.append(fixes[start:start + size])
        start += size - 1
    return windows


def dedupe_adjacent(coords: list[list[float]]) -> list[list[float]]:
    """Collapse runs of identical consecutive coordinates into one."""
    unique = []
    for coord in coords:
        if unique and coord[0] == unique[-1][0] and coord[1] == unique[-1][1]:
            continue
        unique.append(coord)
    return unique


def _request_matchings(
    fixes: list[Fix],
    access_token: str,
    profile: str,
    base_url: str,
    timeout: float,
) -> list[list[float]]:
    """Call the matching endpoint for one window and return its [lon, lat] pairs."""
    coord_string = ";".join(f"{f.longitude},{f.latitude}" for f in fixes)
    url = f"{base_url.rstrip('/')}/{profile}/{coord_string}"
    try:
        resp = requests.get(
            url,
            params={
                "geometries": "geojson",
                "overview": "full",
                "steps": "true",
                "access_token": access_token,
            },
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise MatchingError(f"request failed: {e}") from e

    if not 200 <= resp.status_code < 300:
        raise MatchingError(f"HTTP {resp.status_code}: {resp.text[:200]}")

    try:
        data = resp.json()
    except ValueError as e:
        raise MatchingError("response is not JSON") from e

    matchings = data.get("matchings") if isinstance(data, dict) else None
    if not matchings:
        raise MatchingError(f"no matchings (code={data.get('code') if isinstance(data, dict) else None})")

    if not isinstance(matchings, list):
        raise MatchingError(f"matchings is a {type(matchings).__name__}, not a list")

    coords = []
    for matching in matchings:
        if not isinstance(matching, dict):
            raise MatchingError(f"malformed matching: {matching!r:.80}")
        geometry = matching.get("geometry") or {}
        if not isinstance(geometry, dict):
            raise MatchingError(f"malformed geometry: {geometry!r:.80}")
        raw_coords = geometry.get("coordinates") or []
        if not isinstance(raw_coords, list):
            raise MatchingError(f"malformed coordinates: {raw_coords!r:.80}")
        coords.extend(_coordinate(c) for c in raw_coords)
    return coords


def _coordinate(raw) -> list[float]:
    """Validate one GeoJSON position and return it as [lon, lat]."""
    if not isinstance(raw, (list, tuple)) or len(raw) < 2:
        raise MatchingError(f"malformed coordinate: {raw!r:.80}")
    lng, lat = raw[0], raw[1]
    for value in (lng, lat):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise MatchingError(f"malformed coordinate: {raw!r:.80}")
    return [float(lng), float(lat)]


def _timeout_from_env() -> float:
    raw = os.environ.get("MAP_MATCHING_TIMEOUT_S")
    if not raw:
        return DEFAULT_TIMEOUT_S
    try:
        timeout = float(raw)
    except ValueError:
        timeout = 0.0
    if not timeout > 0:
        logger.warning("Ignoring invalid MAP_MATCHING_TIMEOUT_S=%r, using %.0fs", raw, DEFAULT_TIMEOUT_S)
        return DEFAULT_TIMEOUT_S
    return timeout


def snap_to_road(
    fixes: list[Fix],
    access_token: Optional[str] = None,
    profile: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> SnapResult:
    """Return a road-aligned polyline for the fixes, or the fixes themselves.

    Matched segments are concatenated in the order the service returns them
    and adjacent duplicate coordinates are collapsed. Any failure yields a
    FALLBACK result holding the original coordinates.
    """
    if len(fixes) < 2:
        return SnapResult(points=_strip(fixes), outcome=TOO_FEW_POINTS)

    token = access_token or os.environ.get("MAPBOX_TOKEN")
    if not token:
        logger.warning("MAPBOX_TOKEN not configured; drawing unsnapped route")
        return SnapResult(points=_strip(fixes), outcome=FALLBACK)

    profile = profile or DEFAULT_PROFILE
    base_url = base_url or os.environ.get("MAPBOX_MATCHING_URL", DEFAULT_MATCHING_URL)
    if timeout is None:
        timeout = _timeout_from_env()

    all_coords = []
    try:
        for window in _windows(fixes):
            all_coords.extend(_request_matchings(window, token, profile, base_url, timeout))
        points = tuple(SnappedPoint(latitude=lat, longitude=lng) for lng, lat in dedupe_adjacent(all_coords))
    except MatchingError as e:
        logger.warning("Map matching failed for %d fixes, using raw route: %s", len(fixes), e)
        return SnapResult(points=_strip(fixes), outcome=FALLBACK)

    if not points:
        logger.warning("Map matching returned empty geometry for %d fixes", len(fixes))
        return SnapResult(points=_strip(fixes), outcome=FALLBACK)

    logger.info("Snapped %d fixes onto %d route points", len(fixes), len(points))
    return SnapResult(points=points, outcome=SNAPPED)
