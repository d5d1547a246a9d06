"""Entry point: serves the location history map and its read-only REST API."""

import logging
import logging.handlers
import os

from nicegui import app, ui

from api import router
from database import init_db

logger = logging.getLogger("locationhistory")

NOISY_LOGGERS = ("watchfiles", "multipart", "urllib3")


def configure_logging():
    log_dir = os.environ.get("LOG_DIR", "/data" if os.path.isdir("/data") else ".")
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(),
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, "location-history.log"),
                maxBytes=5 * 1024 * 1024,
                backupCount=3,
            ),
        ],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def main():
    configure_logging()
    if not os.environ.get("MAPBOX_TOKEN"):
        logger.warning("MAPBOX_TOKEN is not set; routes will be drawn from raw fixes")

    app.include_router(router)
    app.on_startup(init_db)

    # registers the @ui.page routes
    import pages  # noqa: F401

    ui.run(
        title="Location History",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
        storage_secret=os.environ.get("STORAGE_SECRET", "change-me-in-production"),
        show=False,
        reload=False,
    )


if __name__ in {"__main__", "__mp_main__"}:
    main()
