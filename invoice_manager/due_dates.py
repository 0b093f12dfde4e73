"""Due-date tracking: overdue / due-soon classification and reminders."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, replace
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from .calculator import round_money
from .config import DUE_DATE_CONFIG_PATH
from .formatting import DateLike, iso_date, parse_date
from .models import STATUS_DRAFT, STATUS_OVERDUE, STATUS_PAID, Invoice
from .store import write_json_atomic

logger = logging.getLogger(__name__)

ALERT_OVERDUE = "overdue"
ALERT_REMINDER = "reminder"

_CONFIG_KEYS = {
    "defaultDays": "default_days",
    "reminderDays": "reminder_days",
    "overdueDays": "overdue_days",
    "autoUpdateStatus": "auto_update_status",
}


class DueDateConfigError(ValueError):
    def __init__(self, message: str, field: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.field = field


@dataclass(frozen=True)
class DueDateConfig:
    default_days: int = 30
    reminder_days: int = 7
    overdue_days: int = 0
    auto_update_status: bool = True

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        return {wire: values[attr] for wire, attr in _CONFIG_KEYS.items()}


@dataclass(frozen=True)
class DueDateAlert:
    invoice_id: str
    invoice_number: str
    client_name: str
    due_date: str
    days_overdue: int
    amount: float
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoiceId": self.invoice_id,
            "invoiceNumber": self.invoice_number,
            "clientName": self.client_name,
            "dueDate": self.due_date,
            "daysOverdue": self.days_overdue,
            "amount": self.amount,
            "type": self.type,
        }


def _coerce_config_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    coerced: Dict[str, Any] = {}
    attrs = set(_CONFIG_KEYS.values())
    for key, value in updates.items():
        attr = _CONFIG_KEYS.get(key, key)
        if attr not in attrs:
            raise DueDateConfigError(f"Unknown due date option '{key}'", key)
        if attr == "auto_update_status":
            if not isinstance(value, bool):
                raise DueDateConfigError(f"'{key}' must be a boolean", key)
        elif isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise DueDateConfigError(f"'{key}' must be a non-negative integer", key)
        elif attr == "default_days" and value > 3650:
            raise DueDateConfigError(f"'{key}' must be 3650 days or less", key)
        coerced[attr] = value
    return coerced


class DueDateTrackingService:
    def __init__(
        self,
        config_path: Optional[str] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.config_path = config_path
        self._today = today
        self._lock = threading.Lock()
        self.config = DueDateConfig()
        self._load_config()

    def _load_config(self) -> None:
        if not self.config_path or not os.path.exists(self.config_path):
            return
        try:
            with open(self.config_path, "r", encoding="utf-8") as handle:
                saved = json.load(handle)
            self.config = replace(DueDateConfig(), **_coerce_config_updates(saved))
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Failed to load due date config from %s: %s", self.config_path, exc)

    def _save_config(self) -> None:
        if not self.config_path:
            return
        try:
            write_json_atomic(self.config_path, self.config.to_dict())
        except OSError as exc:
            logger.warning("Failed to save due date config to %s: %s", self.config_path, exc)

    def today(self) -> date:
        return self._today()

    def get_config(self) -> Dict[str, Any]:
        return self.config.to_dict()

    def update_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(updates, dict):
            raise DueDateConfigError("Configuration data must be an object", "config")
        coerced = _coerce_config_updates(updates)
        with self._lock:
            self.config = replace(self.config, **coerced)
            self._save_config()
        return self.config.to_dict()

    def calculate_due_date(self, invoice_date: DateLike, days: Optional[int] = None) -> str:
        start = parse_date(invoice_date) or self.today()
        due_days = self.config.default_days if days is None else days
        return iso_date(start + timedelta(days=due_days))

    def get_days_until_due(self, due_date: DateLike) -> int:
        due = parse_date(due_date)
        if due is None:
            return 0
        return (due - self.today()).days

    def get_days_overdue(self, due_date: DateLike) -> int:
        due = parse_date(due_date)
        if due is None:
            return 0
        return max(0, (self.today() - due).days)

    def is_overdue(self, due_date: DateLike) -> bool:
        return self.get_days_overdue(due_date) > self.config.overdue_days

    def is_due_soon(self, due_date: DateLike) -> bool:
        if parse_date(due_date) is None:
            return False
        days_until_due = self.get_days_until_due(due_date)
        return 0 <= days_until_due <= self.config.reminder_days

    def get_invoice_status(self, invoice: Invoice) -> str:
        if invoice.status in (STATUS_PAID, STATUS_DRAFT):
            return invoice.status
        if invoice.due_date and self.is_overdue(invoice.due_date):
            return STATUS_OVERDUE
        return invoice.status

    def get_due_date_alerts(self, invoices: Iterable[Invoice]) -> List[DueDateAlert]:
        alerts: List[DueDateAlert] = []
        for invoice in invoices:
            if not invoice.due_date or invoice.status in (STATUS_PAID, STATUS_DRAFT):
                continue

            if self.is_overdue(invoice.due_date):
                alert_type = ALERT_OVERDUE
                days_overdue = self.get_days_overdue(invoice.due_date)
            elif self.is_due_soon(invoice.due_date):
                alert_type = ALERT_REMINDER
                days_overdue = 0
            else:
                continue

            alerts.append(
                DueDateAlert(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    client_name=invoice.client.name,
                    due_date=invoice.due_date,
                    days_overdue=days_overdue,
                    amount=invoice.total,
                    type=alert_type,
                )
            )

        alerts.sort(key=lambda alert: (alert.type != ALERT_OVERDUE, -alert.days_overdue))
        return alerts

    def get_overdue_invoices(self, invoices: Iterable[Invoice]) -> List[Invoice]:
        return [
            invoice
            for invoice in invoices
            if invoice.due_date and invoice.status != STATUS_PAID and self.is_overdue(invoice.due_date)
        ]

    def get_due_soon_invoices(self, invoices: Iterable[Invoice]) -> List[Invoice]:
        return [
            invoice
            for invoice in invoices
            if invoice.due_date
            and invoice.status != STATUS_PAID
            and self.is_due_soon(invoice.due_date)
            and not self.is_overdue(invoice.due_date)
        ]

    def get_due_date_stats(self, invoices: Iterable[Invoice]) -> Dict[str, Any]:
        invoices = list(invoices)
        overdue = self.get_overdue_invoices(invoices)
        due_soon = self.get_due_soon_invoices(invoices)
        return {
            "total": len(invoices),
            "overdue": len(overdue),
            "dueSoon": len(due_soon),
            "paid": sum(1 for invoice in invoices if invoice.status == STATUS_PAID),
            "draft": sum(1 for invoice in invoices if invoice.status == STATUS_DRAFT),
            "overdueAmount": round_money(sum(invoice.total for invoice in overdue)),
            "dueSoonAmount": round_money(sum(invoice.total for invoice in due_soon)),
        }

    def should_update_status(self, invoice: Invoice) -> bool:
        if not self.config.auto_update_status or not invoice.due_date:
            return False
        return self.get_invoice_status(invoice) != invoice.status

    def get_status_update(self, invoice: Invoice) -> Optional[str]:
        if not self.should_update_status(invoice):
            return None
        return self.get_invoice_status(invoice)


_SERVICE: Optional[DueDateTrackingService] = None
_SERVICE_LOCK = threading.Lock()


def get_due_date_service() -> DueDateTrackingService:
    global _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            _SERVICE = DueDateTrackingService(DUE_DATE_CONFIG_PATH)
        return _SERVICE
