"""Sequential, human-readable invoice number generation.

The counter and its configuration are kept in a small JSON state file so that
numbering survives a restart. When no state path is configured the service is
purely in-memory. Failures to read or write the file are logged and never
interrupt invoice creation.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from dataclasses import asdict, dataclass, replace
from datetime import date
from typing import Any, Callable, Dict, Optional

from .config import NUMBERING_STATE_PATH
from .store import write_json_atomic

logger = logging.getLogger(__name__)

MAX_PADDING = 12

# generated numbers must still pass invoice number validation
PREFIX_RE = re.compile(r"^[A-Z0-9_-]+$")
SEPARATOR_RE = re.compile(r"^[-_]?$")

_CONFIG_KEYS = {
    "prefix": "prefix",
    "startNumber": "start_number",
    "padding": "padding",
    "includeYear": "include_year",
    "includeMonth": "include_month",
    "separator": "separator",
}


class NumberingConfigError(ValueError):
    """Raised when a numbering configuration update is rejected."""

    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.field = field


@dataclass(frozen=True)
class NumberingConfig:
    prefix: str = "INV"
    start_number: int = 1
    padding: int = 4
    include_year: bool = True
    include_month: bool = False
    separator: str = "-"

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        return {wire: values[attr] for wire, attr in _CONFIG_KEYS.items()}


def _coerce_config_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    """Map camelCase or snake_case keys onto checked dataclass fields."""
    coerced: Dict[str, Any] = {}
    attrs = set(_CONFIG_KEYS.values())
    for key, value in updates.items():
        attr = _CONFIG_KEYS.get(key, key)
        if attr not in attrs:
            raise NumberingConfigError(f"Unknown numbering option '{key}'", key)

        if attr in ("prefix", "separator"):
            if not isinstance(value, str):
                raise NumberingConfigError(f"'{key}' must be a string", key)
            if attr == "prefix" and not value.strip():
                raise NumberingConfigError("Prefix cannot be empty", key)
            if len(value) > 20:
                raise NumberingConfigError(f"'{key}' must be 20 characters or less", key)
            if attr == "prefix":
                value = value.strip()
                if not PREFIX_RE.match(value):
                    raise NumberingConfigError(
                        "Prefix can only contain uppercase letters, numbers, hyphens, and underscores", key
                    )
            elif not SEPARATOR_RE.match(value):
                raise NumberingConfigError("Separator must be '-', '_' or empty", key)
            coerced[attr] = value
        elif attr in ("include_year", "include_month"):
            if not isinstance(value, bool):
                raise NumberingConfigError(f"'{key}' must be a boolean", key)
            coerced[attr] = value
        else:
            if isinstance(value, bool) or not isinstance(value, int):
                raise NumberingConfigError(f"'{key}' must be an integer", key)
            if attr == "padding" and not 1 <= value <= MAX_PADDING:
                raise NumberingConfigError(f"Padding must be between 1 and {MAX_PADDING}", key)
            if attr == "start_number" and value < 1:
                raise NumberingConfigError("Start number must be at least 1", key)
            coerced[attr] = value
    return coerced


class InvoiceNumberingService:
    def __init__(
        self,
        state_path: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.state_path = state_path
        self._today = today
        self._lock = threading.Lock()
        self.config = NumberingConfig()
        self.last_number = 0
        self.last_generated = ""
        self.total_generated = 0
        self._load_state()

    def _load_state(self) -> None:
        if not self.state_path or not os.path.exists(self.state_path):
            return
        try:
            with open(self.state_path, "r", encoding="utf-8") as handle:
                saved = json.load(handle)
            config = replace(NumberingConfig(), **_coerce_config_updates(saved.get("config") or {}))
            self.config = config
            self.last_number = int(saved.get("lastNumber", 0))
            self.last_generated = str(saved.get("lastGenerated", ""))
            self.total_generated = int(saved.get("totalGenerated", 0))
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Failed to load numbering state from %s: %s", self.state_path, exc)

    def _save_state(self) -> None:
        if not self.state_path:
            return
        state = {
            "lastNumber": self.last_number,
            "lastGenerated": self.last_generated,
            "totalGenerated": self.total_generated,
            "config": self.config.to_dict(),
        }
        try:
            write_json_atomic(self.state_path, state)
        except OSError as exc:
            logger.warning("Failed to save numbering state to %s: %s", self.state_path, exc)

    def _next_counter(self) -> int:
        return max(self.last_number + 1, self.config.start_number)

    def _format(self, counter: int) -> str:
        config = self.config
        today = self._today()
        parts = [config.prefix]
        if config.include_year:
            parts.append(f"{today.year:04d}")
        if config.include_month:
            parts.append(f"{today.month:02d}")
        parts.append(str(counter).zfill(config.padding))
        return config.separator.join(parts)

    def generate_invoice_number(self) -> str:
        with self._lock:
            counter = self._next_counter()
            number = self._format(counter)
            self.last_number = counter
            self.last_generated = number
            self.total_generated += 1
            self._save_state()
        logger.debug("Generated invoice number %s", number)
        return number

    def get_next_number(self) -> str:
        with self._lock:
            return self._format(self._next_counter())

    def get_last_generated(self) -> str:
        return self.last_generated

    def get_config(self) -> Dict[str, Any]:
        return self.config.to_dict()

    def update_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(updates, dict):
            raise NumberingConfigError("Configuration data must be an object", "config")
        coerced = _coerce_config_updates(updates)
        with self._lock:
            self.config = replace(self.config, **coerced)
            self._save_state()
        logger.info("Numbering configuration updated: %s", sorted(coerced))
        return self.config.to_dict()

    def reset_numbering(self) -> None:
        with self._lock:
            self.last_number = 0
            self.last_generated = ""
            self.total_generated = 0
            self._save_state()
        logger.info("Invoice numbering reset to %d", self.config.start_number)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "totalGenerated": self.total_generated,
            "lastGenerated": self.last_generated,
            "nextNumber": self.get_next_number(),
            "config": self.get_config(),
        }


_SERVICE: Optional[InvoiceNumberingService] = None
_SERVICE_LOCK = threading.Lock()


def get_numbering_service() -> InvoiceNumberingService:
    global _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            _SERVICE = InvoiceNumberingService(NUMBERING_STATE_PATH)
        return _SERVICE
