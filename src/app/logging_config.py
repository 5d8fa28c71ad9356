from __future__ import annotations

import logging

from app.settings import Settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install one stream handler on the root logger (idempotent)."""
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level, logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_table_export", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._table_export = True  # type: ignore[attr-defined]
        root.addHandler(handler)
