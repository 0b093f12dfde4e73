"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from typing import Optional


def env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def env_path(name: str) -> Optional[str]:
    """Return a filesystem path from the environment, or None to keep state in memory."""
    raw = os.getenv(name)
    if not raw or not raw.strip():
        return None
    return os.path.expanduser(raw.strip())


HOST = env_str("INVOICE_HOST", "0.0.0.0")
PORT = env_int("INVOICE_PORT", 8080, minimum=0)
LOG_LEVEL = env_str("INVOICE_LOG_LEVEL", "INFO").upper()

DEFAULT_MAX_CONCURRENT_RENDERS = max(2, min(8, os.cpu_count() or 2))
MAX_CONCURRENT_RENDERS = env_int(
    "INVOICE_MAX_CONCURRENT_RENDERS",
    DEFAULT_MAX_CONCURRENT_RENDERS,
    minimum=1,
)
MAX_INFLIGHT_RENDERS = env_int(
    "INVOICE_MAX_INFLIGHT_RENDERS",
    max(16, MAX_CONCURRENT_RENDERS * 4),
    minimum=1,
)
RENDER_QUEUE_TIMEOUT_MS = env_int("INVOICE_RENDER_QUEUE_TIMEOUT_MS", 30000, minimum=0)
RENDER_TIMEOUT_MS = env_int("INVOICE_RENDER_TIMEOUT_MS", 60000, minimum=1000)

MAX_BODY_BYTES = env_int("INVOICE_MAX_BODY_BYTES", 10 * 1024 * 1024, minimum=1024)
MAX_PAGES = env_int("INVOICE_MAX_PAGES", 500, minimum=1)
LISTEN_BACKLOG = env_int("INVOICE_LISTEN_BACKLOG", 128, minimum=1)

DEFAULT_PAGE_LIMIT = env_int("INVOICE_DEFAULT_PAGE_LIMIT", 10, minimum=1)
MAX_PAGE_LIMIT = env_int("INVOICE_MAX_PAGE_LIMIT", 100, minimum=1)
MAX_BULK_IDS = env_int("INVOICE_MAX_BULK_IDS", 500, minimum=1)

NUMBERING_STATE_PATH = env_path("INVOICE_NUMBERING_STATE_PATH")
DUE_DATE_CONFIG_PATH = env_path("INVOICE_DUE_DATE_CONFIG_PATH")

DEFAULT_CURRENCY = env_str("INVOICE_CURRENCY", "USD").upper()
