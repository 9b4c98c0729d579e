from __future__ import annotations

import logging
import os

from services.api.app.db.database import get_engine
from services.api.app.db.models import Base

logger = logging.getLogger(__name__)


def _auto_create_enabled() -> bool:
    return os.getenv("FOODHUB_DB_AUTO_CREATE", "true").strip().lower() in {"1", "true", "yes", "y"}


def init_db() -> None:
    if not _auto_create_enabled():
        return

    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Checkout tables ready on %s", engine.url.render_as_string(hide_password=True))
