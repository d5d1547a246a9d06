#!/usr/bin/env python3
"""Seed the database with GPS test fixture data for development and web UI testing.

Usage:
    python seed_test_data.py [--today]

This loads the Dublin delivery-round trace for "van-07" and "bike-12" (plus a
row without coordinates) into the configured database. With --today the
trace is shifted so it lands on the current day and shows up under the
"Today" filter.
"""

import argparse
import datetime

from database import SessionLocal, init_db
from fixes import prepare_fixes
from models import Location
from processing import detect_stops, total_distance
from tests.gps_test_fixtures import STORED_ROWS, TRACE_DAY, as_fixes


def seed(shift_to_today: bool = False):
    init_db()
    db = SessionLocal()

    if db.query(Location).count():
        print("Location data already present. Skipping seed.")
        db.close()
        return

    offset = datetime.timedelta(0)
    if shift_to_today:
        offset = datetime.datetime.now(datetime.timezone.utc).date() - TRACE_DAY

    rows = [{**pt, "timestamp": pt["timestamp"] + offset} for pt in STORED_ROWS]
    for pt in rows:
        db.add(Location(**pt))
    db.commit()
    print(f"Inserted {len(rows)} location rows")

    for tracking_id in sorted({pt["tracking_id"] for pt in rows if pt["tracking_id"]}):
        fixes = prepare_fixes(as_fixes([pt for pt in rows if pt["tracking_id"] == tracking_id]))
        stops = detect_stops(fixes)
        print(f"  - {tracking_id}: {len(fixes)} fixes, {total_distance(fixes)} km, {len(stops)} stops")

    db.close()
    print("\nDone! Start the server with: python main.py")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--today", action="store_true", help="shift the trace onto the current day")
    seed(shift_to_today=parser.parse_args().today)
