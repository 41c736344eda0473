from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from projectdesk.config import SETTINGS, PROJECT_ROOT

LOG_FILE_NAME = "projectdesk.log"


def setup_logging(level: str | None = None) -> Path:
    """Send records to a rotating ``projectdesk.log`` and the console.

    Returns the log file path. ``level`` overrides ``LOG_LEVEL``.
    """
    log_dir = Path(SETTINGS.log_dir)
    if not log_dir.is_absolute():
        log_dir = PROJECT_ROOT / log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=(level or SETTINGS.log_level).upper(),
        handlers=[file_handler, console_handler],
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return log_file
