# -*- coding: utf-8 -*-
from __future__ import annotations
import logging, logging.handlers
from pathlib import Path

LOG_FILENAME = "portal_hub.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")


def _level(settings) -> int:
    level = logging.getLevelName(str(getattr(settings, "LOG_LEVEL", "INFO")).upper())
    return level if isinstance(level, int) else logging.INFO


def _has_portal_file(lg: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.handlers.RotatingFileHandler) and h.baseFilename.endswith(LOG_FILENAME)
        for h in lg.handlers
    )


def setup_logging(settings) -> Path:
    """
    Rotating file log under PORTAL_DATA_ROOT/logs/portal_hub.log.

    Safe to call more than once (app reloads, test imports): the handler is
    only attached where it is missing.
    """
    log_dir = Path(settings.PORTAL_DATA_ROOT).expanduser() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILENAME
    level = _level(settings)

    handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)

    root = logging.getLogger()
    root.setLevel(level)
    if not _has_portal_file(root):
        root.addHandler(handler)

    for name in SERVER_LOGGERS:
        lg = logging.getLogger(name)
        lg.setLevel(level)
        if not _has_portal_file(lg):
            lg.addHandler(handler)

    # SQL statements only with DB_ECHO
    if not getattr(settings, "DB_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return log_path
