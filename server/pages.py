"""NiceGUI web page: location history map with date and tracking-id filters."""

import datetime
import html
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from nicegui import app, ui
from sqlalchemy.exc import SQLAlchemyError

from database import SessionLocal, get_setting
from date_ranges import TODAY, YESTERDAY, CustomRange, resolve_date_range
from history import list_tracking_ids
from trips import ERROR, LOADING, TripLoader, TripSnapshot, cleared

logger = logging.getLogger(__name__)

ALL_TRACKING_IDS = "All"
CUSTOM = "custom"

DATE_OPTIONS = {
    TODAY: "Today",
    YESTERDAY: "Yesterday",
    CUSTOM: "Custom range",
}


async def _ensure_timezone():
    """Detect browser timezone via JS and store in the user session."""
    if "timezone" not in app.storage.user:
        tz = await ui.run_javascript(
            "Intl.DateTimeFormat().resolvedOptions().timeZone"
        )
        if tz:
            app.storage.user["timezone"] = tz


def _user_tz() -> ZoneInfo:
    """Browser timezone, else the configured default, else UTC."""
    tz_name = app.storage.user.get("timezone")
    if not tz_name:
        db = SessionLocal()
        try:
            tz_name = get_setting(db, "timezone")
        except SQLAlchemyError:
            tz_name = "UTC"
        finally:
            db.close()
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _fmt(dt: datetime.datetime | None, tz: ZoneInfo, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Format an aware datetime in the given (browser) timezone."""
    if dt is None:
        return "-"
    return dt.astimezone(tz).strftime(fmt)


def _tracking_options() -> list[str]:
    db = SessionLocal()
    try:
        return [ALL_TRACKING_IDS] + list_tracking_ids(db)
    except SQLAlchemyError as e:
        logger.error("Could not load tracking ids: %s", e)
        return [ALL_TRACKING_IDS]
    finally:
        db.close()


def _picked_days(value) -> CustomRange | None:
    """Read the date picker value; a one-day range comes back as a plain string."""
    if not value:
        return None
    if isinstance(value, str):
        start = end = value
    else:
        start, end = value.get("from"), value.get("to")
        if not start or not end:
            return None
    # Quasar formats dates as YYYY/MM/DD
    return CustomRange(
        start_day=datetime.date.fromisoformat(start.replace("/", "-")),
        end_day=datetime.date.fromisoformat(end.replace("/", "-")),
    )


def _fix_popup(index: int, fix, mode: str | None, tz: ZoneInfo) -> str:
    lines = [
        f"<b>Point {index + 1}</b>",
        f"Tracking ID: {html.escape(fix.tracking_id or '-')}",
        f"Address: {html.escape(fix.address) if fix.address else 'N/A'}",
        f"Time: {_fmt(fix.timestamp, tz)}",
    ]
    if fix.battery_percent is not None:
        lines.append(f"Battery: {fix.battery_percent:.0f}%")
    lines.append(f"Mode: {mode or ''}")
    return "<br>".join(lines)


def _stop_popup(fix, tz: ZoneInfo) -> str:
    return "<br>".join([
        "<b>Stopped Here</b>",
        f"Tracking ID: {html.escape(fix.tracking_id or '-')}",
        f"Address: {html.escape(fix.address) if fix.address else 'N/A'}",
        f"Time: {_fmt(fix.timestamp, tz)}",
    ])


# ---------------------------------------------------------------------------
# Map page
# ---------------------------------------------------------------------------
@ui.page("/")
async def map_page():
    await _ensure_timezone()

    tz = _user_tz()
    loader = TripLoader(SessionLocal)

    with ui.header().classes("items-center justify-center q-gutter-lg bg-grey-2 text-dark"):
        with ui.column().classes("gap-0"):
            distance_label = ui.label("Distance: 0.00 km").classes("text-h6")
            times_label = ui.label("")
        date_select = ui.select(options=DATE_OPTIONS, label="Date", value=TODAY).classes("w-40").props("outlined dense")
        tracking_select = ui.select(
            options=_tracking_options(),
            label="Tracking ID",
            value=ALL_TRACKING_IDS,
        ).classes("w-48").props("outlined dense")

    with ui.column().classes("q-pa-md w-full"):
        with ui.row().classes("items-center") as custom_row:
            date_picker = ui.date().props("range")
            ui.button("Show", on_click=lambda: refresh()).props("color=primary")
        custom_row.set_visibility(False)

        map_container = ui.column().classes("w-full")

    def render(snapshot: TripSnapshot):
        distance_label.text = f"Distance: {snapshot.distance_km} km"
        if snapshot.start_time and snapshot.end_time:
            times_label.text = f"Start: {_fmt(snapshot.start_time, tz)}  |  End: {_fmt(snapshot.end_time, tz)}"
        else:
            times_label.text = ""

        map_container.clear()
        with map_container:
            if not snapshot.has_route:
                ui.label("Loading route...").classes("text-grey text-subtitle1 self-center q-pa-xl")
                return

            first = snapshot.route.points[0]
            m = ui.leaflet(center=(first.latitude, first.longitude), zoom=15).classes("w-full").style("height: 75vh")

            path = [[p.latitude, p.longitude] for p in snapshot.route.points]
            m.generic_layer(name="polyline", args=[path, {"color": "blue", "weight": 4}])

            for i, (fix, mode) in enumerate(zip(snapshot.fixes, snapshot.modes)):
                marker = m.marker(latlng=(fix.latitude, fix.longitude))
                m.run_layer_method(marker.id, "bindPopup", _fix_popup(i, fix, mode, tz))

            for stop in snapshot.stops:
                layer = m.generic_layer(
                    name="circleMarker",
                    args=[
                        [stop.fix.latitude, stop.fix.longitude],
                        {"radius": 10, "color": "#F44336", "fillColor": "#F44336", "fillOpacity": 0.7},
                    ],
                )
                m.run_layer_method(layer.id, "bindPopup", _stop_popup(stop.fix, tz))

    async def refresh():
        if date_select.value == CUSTOM:
            selection = _picked_days(date_picker.value)
            if selection is None:
                ui.notify("Pick a start and end day", type="warning")
                return
        else:
            selection = date_select.value

        try:
            date_range = resolve_date_range(selection, tz=tz)
        except ValueError as e:
            ui.notify(str(e), type="warning")
            return

        tracking_id = tracking_select.value
        if tracking_id == ALL_TRACKING_IDS:
            tracking_id = None

        # Blank everything before the request so stale data never shows
        render(cleared(LOADING))
        snapshot = await loader.load(date_range, tracking_id)
        if snapshot is None:
            return
        if snapshot.status == ERROR:
            logger.warning("Trip load failed; showing empty map")
        render(snapshot)

    async def on_date_change(_):
        custom_row.set_visibility(date_select.value == CUSTOM)
        if date_select.value != CUSTOM:
            await refresh()

    date_select.on_value_change(on_date_change)
    tracking_select.on_value_change(lambda _: refresh())

    await refresh()
