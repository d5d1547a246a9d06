"""Turn a date filter selection into a concrete inclusive time window."""

import datetime
import logging
import os
from dataclasses import dataclass
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

TODAY = "today"
YESTERDAY = "yesterday"
PRESETS = (TODAY, YESTERDAY)

START_OF_DAY = datetime.time(0, 0, 0)
END_OF_DAY = datetime.time(23, 59, 59, 999000)


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive [start, end] window, both ends timezone-aware."""

    start: datetime.datetime
    end: datetime.datetime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Range start {self.start.isoformat()} is after end {self.end.isoformat()}")

    def as_naive_utc(self) -> tuple[datetime.datetime, datetime.datetime]:
        """Bounds in the store's convention (naive UTC)."""
        utc = datetime.timezone.utc
        return (
            self.start.astimezone(utc).replace(tzinfo=None),
            self.end.astimezone(utc).replace(tzinfo=None),
        )


@dataclass(frozen=True, slots=True)
class CustomRange:
    """Explicit calendar days picked by the user."""

    start_day: datetime.date
    end_day: datetime.date


Selection = Union[str, CustomRange]


def _day_bounds(day: datetime.date, tz: Optional[datetime.tzinfo]) -> DateRange:
    """Local-midnight bounds of ``day``; with no tz the system rules give each offset."""
    if tz is None:
        return DateRange(
            start=datetime.datetime.combine(day, START_OF_DAY).astimezone(),
            end=datetime.datetime.combine(day, END_OF_DAY).astimezone(),
        )
    return DateRange(
        start=datetime.datetime.combine(day, START_OF_DAY, tzinfo=tz),
        end=datetime.datetime.combine(day, END_OF_DAY, tzinfo=tz),
    )


def _zone_name_from_localtime(path: str = "/etc/localtime") -> Optional[str]:
    target = os.path.realpath(path)
    marker = "zoneinfo" + os.sep
    if marker not in target:
        return None
    return target.split(marker, 1)[1]


def local_timezone() -> Optional[ZoneInfo]:
    """The system zone with its full DST rules, or None if it has no IANA name.

    ``TZ`` wins over the ``/etc/localtime`` symlink, as it does for libc.
    """
    name = os.environ.get("TZ", "").lstrip(":") or _zone_name_from_localtime()
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("System timezone %r is not an IANA zone; using per-day offsets", name)
        return None


def resolve_date_range(
    selection: Selection,
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> DateRange:
    """Resolve a preset name or a CustomRange into a DateRange.

    Presets use local-day boundaries in ``tz`` (the system zone by default,
    with the DST offset in force on the resolved day).
    Custom ranges are expanded to whole UTC days.

    Raises:
        ValueError: unknown preset, or a custom range whose start is after its end.
    """
    if isinstance(selection, CustomRange):
        if selection.start_day > selection.end_day:
            raise ValueError(
                f"Start day {selection.start_day.isoformat()} is after end day {selection.end_day.isoformat()}"
            )
        utc = datetime.timezone.utc
        return DateRange(
            start=datetime.datetime.combine(selection.start_day, START_OF_DAY, tzinfo=utc),
            end=datetime.datetime.combine(selection.end_day, END_OF_DAY, tzinfo=utc),
        )

    tz = tz or local_timezone()
    if now is None:
        now = datetime.datetime.now(tz)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    else:
        now = now.astimezone(tz)

    preset = str(selection).strip().lower()
    if preset == TODAY:
        return _day_bounds(now.date(), tz)
    if preset == YESTERDAY:
        return _day_bounds(now.date() - datetime.timedelta(days=1), tz)
    raise ValueError(f"Unknown date preset: {selection!r}")
