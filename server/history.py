"""Store queries: fixes for a time window and the known tracking ids."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from date_ranges import DateRange
from fixes import Fix, fix_from_row
from models import Location

logger = logging.getLogger(__name__)


def fetch_fixes(db: Session, date_range: DateRange, tracking_id: Optional[str] = None) -> list[Fix]:
    """Return valid fixes within the inclusive range, oldest first.

    ``tracking_id=None`` means every tracked entity.
    """
    start, end = date_range.as_naive_utc()
    query = (
        db.query(Location)
        .filter(Location.timestamp >= start, Location.timestamp <= end)
    )
    if tracking_id is not None:
        query = query.filter(Location.tracking_id == tracking_id)
    rows = query.order_by(Location.timestamp.asc(), Location.id.asc()).all()

    fixes = []
    for row in rows:
        fix = fix_from_row(row)
        if fix is not None:
            fixes.append(fix)

    if len(fixes) != len(rows):
        logger.info("Dropped %d of %d rows without usable coordinates", len(rows) - len(fixes), len(rows))
    logger.debug(
        "Fetched %d fixes between %s and %s (tracking_id=%s)",
        len(fixes), start.isoformat(), end.isoformat(), tracking_id,
    )
    return fixes


def list_tracking_ids(db: Session) -> list[str]:
    """Distinct non-null tracking ids, sorted."""
    rows = (
        db.query(Location.tracking_id)
        .filter(Location.tracking_id.isnot(None))
        .distinct()
        .order_by(Location.tracking_id)
        .all()
    )
    return [r[0] for r in rows]
