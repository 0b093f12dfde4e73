"""Public package API for invoice management."""

from __future__ import annotations

from typing import Any, Dict

from .calculator import calculate_invoice_totals, format_currency
from .models import Client, Invoice, LineItem
from .service import InvoiceService
from .validation import InvoiceValidationError, validate_invoice


def render_invoice(data: Dict[str, Any]) -> bytes:
    from .rendering import render_invoice as _render_invoice

    return _render_invoice(data)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = [
    "Client",
    "Invoice",
    "InvoiceService",
    "InvoiceValidationError",
    "LineItem",
    "calculate_invoice_totals",
    "format_currency",
    "render_invoice",
    "run",
    "validate_invoice",
]
