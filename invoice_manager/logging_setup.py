"""Process-wide logging configuration."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from .config import LOG_LEVEL

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    log_level = logging.getLevelName((level or LOG_LEVEL).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root_logger = logging.getLogger()
    if getattr(root_logger, "_invoice_logging_configured", False):
        root_logger.setLevel(log_level)
        for handler in root_logger.handlers:
            handler.setLevel(log_level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(_FORMAT))

    root_logger.handlers.clear()
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)
    root_logger._invoice_logging_configured = True  # type: ignore[attr-defined]
