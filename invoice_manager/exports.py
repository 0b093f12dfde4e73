"""CSV, JSON and ZIP exports of invoice collections."""

from __future__ import annotations

import csv
import io
import json
import logging
import zipfile
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from .calculator import format_currency
from .formatting import safe_filename_part
from .models import Invoice

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "Invoice Number",
    "Client Name",
    "Client Email",
    "Date",
    "Due Date",
    "Status",
    "Subtotal",
    "Tax Amount",
    "Total",
]

SUMMARY_NAME = "download-summary.txt"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def invoices_to_csv(invoices: Iterable[Invoice]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for invoice in invoices:
        writer.writerow(
            [
                invoice.invoice_number,
                invoice.client.name,
                invoice.client.email,
                invoice.date,
                invoice.due_date or "",
                invoice.status,
                f"{invoice.subtotal:.2f}",
                f"{invoice.tax_amount:.2f}",
                f"{invoice.total:.2f}",
            ]
        )
    return buffer.getvalue().encode("utf-8")


def invoices_to_json(
    invoices: List[Invoice],
    filters: Dict[str, Any],
    now: Optional[datetime] = None,
) -> bytes:
    export = {
        "exportedAt": utc_timestamp(now),
        "totalInvoices": len(invoices),
        "filters": filters,
        "invoices": [invoice.to_dict() for invoice in invoices],
    }
    return json.dumps(export, indent=2, ensure_ascii=False).encode("utf-8")


def _summary(invoices: List[Invoice], failures: List[str], now: Optional[datetime]) -> str:
    lines = [
        "Bulk PDF Download Summary",
        "",
        f"Generated: {utc_timestamp(now)}",
        f"Total Invoices: {len(invoices)}",
    ]
    if failures:
        lines.append(f"Failed: {len(failures)}")
    lines.append("")
    lines.append("Invoices included:")
    for invoice in invoices:
        amount = format_currency(invoice.total, invoice.currency)
        lines.append(f"- {invoice.invoice_number} - {invoice.client.name} - {amount}")
    return "\n".join(lines) + "\n"


def build_pdf_archive(
    invoices: List[Invoice],
    render: Callable[[Dict[str, Any]], bytes],
    now: Optional[datetime] = None,
) -> bytes:
    """Render each invoice in order into one ZIP.

    A failed render is recorded as ``error-<number>.txt`` and the rest of the
    batch continues; a summary file is always appended last.
    """
    buffer = io.BytesIO()
    failures: List[str] = []
    used: Set[str] = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for invoice in invoices:
            try:
                pdf_bytes = render(invoice.to_dict())
            except Exception as exc:
                logger.exception("Failed to render PDF for invoice %s", invoice.id)
                failures.append(invoice.id)
                archive.writestr(
                    _unique_name(f"error-{safe_filename_part(invoice.invoice_number)}.txt", used),
                    f"Error generating PDF for {invoice.invoice_number}: {exc}\n",
                )
                continue
            archive.writestr(_unique_name(archive_member_name(invoice), used), pdf_bytes)
        archive.writestr(SUMMARY_NAME, _summary(invoices, failures, now))
    return buffer.getvalue()


def pdf_filename(invoice: Invoice) -> str:
    """Download name: ``invoice-<number>-<YYYY-MM-DD>.pdf``."""
    number = safe_filename_part(invoice.invoice_number or invoice.id)
    stamp = invoice.date or date.today().isoformat()
    return f"invoice-{number}-{stamp}.pdf"


def archive_member_name(invoice: Invoice) -> str:
    client = safe_filename_part(invoice.client.name, r"[^a-zA-Z0-9]", "_")
    return f"invoice-{safe_filename_part(invoice.invoice_number)}-{client}.pdf"


def _unique_name(name: str, used: Set[str]) -> str:
    """Suffix ``-2``, ``-3``... before the extension until ``name`` is unused."""
    stem, dot, ext = name.rpartition(".")
    candidate = name
    counter = 2
    while candidate in used:
        candidate = f"{stem}-{counter}{dot}{ext}"
        counter += 1
    used.add(candidate)
    return candidate


def dated_export_name(extension: str, on: Optional[date] = None) -> str:
    return f"invoices-{(on or date.today()).isoformat()}.{extension}"
