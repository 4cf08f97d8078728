"""Logging setup: stderr always, plus a daily debug log file when enabled."""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

from .types import InterceptConfig

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s: %(message)s"


def daily_log_path(log_dir: Path, day: date | None = None) -> Path:
    day = day or date.today()
    return log_dir / "daily" / f"{day.isoformat()}.log"


def configure_logging(config: InterceptConfig) -> Path | None:
    """Configure the ``llm_intercept`` logger tree.

    Returns the debug log file path when one was attached.  Failing to create
    the log directory only disables the file handler.
    """
    root = logging.getLogger("llm_intercept")
    root.setLevel(logging.DEBUG if config.debug else logging.INFO)

    if not any(getattr(h, "_llm_intercept", False) for h in root.handlers):
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter(LOG_FORMAT))
        stream._llm_intercept = True
        root.addHandler(stream)

    if not config.debug:
        return None

    path = daily_log_path(config.resolved_log_dir())
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path.resolve():
            return path
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler._llm_intercept = True
    root.addHandler(file_handler)
    return path
