# backend/revshare/core/logging.py
from __future__ import annotations

import logging

from revshare.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Apply LOG_LEVEL to the root logger once at startup.
    Modules log through `logging.getLogger(__name__)`.
    """
    resolved = (level or settings.LOG_LEVEL or "INFO").strip().upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("revshare").setLevel(resolved)

    # SQL echo stays off unless explicitly asked for.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING if resolved != "DEBUG" else logging.DEBUG)
